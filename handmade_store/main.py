import logging
from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from prometheus_fastapi_instrumentator import Instrumentator
from handmade_store.version import VERSION
from handmade_store.api import orders, fulfillment, items
from handmade_store.api.deps import get_db
from handmade_store.core.errors import StoreError
from handmade_store.core.logging_setup import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title='Handmade Store', version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.get('/health')
def health(db: Session = Depends(get_db)):
    db.execute(text('select 1'))
    return {'status': 'ok'}

@app.get('/v1/_info')
def info(): return {'service': 'handmade-store', 'version': VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("route %s %s", sorted(route.methods), route.path)

app.include_router(orders.router, tags=['orders'])
app.include_router(fulfillment.router, prefix='/admin/v1/fulfillment', tags=['fulfillment'])
app.include_router(items.router, prefix='/admin/v1/items', tags=['items'])
