import logging
import sys

from handmade_store.core.config import settings

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

_configured = False

def configure_logging(level: str | None = None):
    """Set up the root logger once: console handler, level from LOG_LEVEL."""
    global _configured
    root = logging.getLogger()
    level_name = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    if _configured:
        return root
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    # uvicorn installs its own handlers; keep its access log out of ours
    logging.getLogger('uvicorn.access').propagate = False
    _configured = True
    return root
