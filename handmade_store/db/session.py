from contextlib import contextmanager
import logging
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from handmade_store.core.config import settings
from handmade_store.core.errors import PersistenceFault, StoreError

logger = logging.getLogger(__name__)

class Base(DeclarativeBase): pass
engine = create_engine(settings.POSTGRES_DSN, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

@contextmanager
def atomic(db: Session):
    """Run the block as one transaction on ``db``.

    Commits on success. Any exception rolls everything back; store-level
    failures that are not already a ``StoreError`` surface as
    ``PersistenceFault``.
    """
    try:
        yield db
        db.commit()
    except StoreError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("transaction aborted by the database")
        raise PersistenceFault('Database error; transaction rolled back',
                               details={'error': exc.__class__.__name__}) from exc
    except Exception:
        db.rollback()
        raise
