from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from app import config
from app.db import Base, engine
from app.exceptions import InvalidInput, InvalidTransition, ListingNotFound, ServiceError
from app.utils import logger
import app.models  # noqa: F401 ensure models are imported so tables are known
from app.api.routes import router as api_router

# create FastAPI instance
app = FastAPI()
app.include_router(api_router)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if isinstance(exc, ListingNotFound):
        status_code = 404
    elif isinstance(exc, InvalidTransition):
        status_code = 409
    elif isinstance(exc, InvalidInput):
        status_code = 422
    else:
        status_code = 400
    logger.warning("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.on_event("startup")
def on_startup_create_tables():
    # Ensure database tables are created on startup; migrations may own the schema instead
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error("Table creation skipped: %s", e)


@app.on_event("startup")
def on_startup_scheduler():
    if config.SCHEDULER_ENABLED:
        from app.scheduler import start_scheduler
        start_scheduler()
