"""Main FastAPI application for the medication reminder engine."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from medreminder import __version__
from medreminder.core.config import settings
from medreminder.db.init import init_db
from medreminder.errors import NotFoundError, ReminderError, StorageError, ValidationError
from medreminder.middleware.cors import add_cors_middleware
from medreminder.routers import medicines_router
from medreminder.utils.metrics import metrics_collector

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    try:
        init_db()
        logger.info("[SUCCESS] Database tables initialized successfully.")
    except Exception as e:
        logger.warning(f"[WARNING] Database initialization failed: {str(e)}")
        logger.warning("[WARNING] Server will continue but reminder operations may fail.")
    yield


app = FastAPI(
    title="Medication Reminder API",
    description="Reminder scheduling, intake tracking and adherence statistics for medications",
    version=__version__,
    lifespan=lifespan,
)

add_cors_middleware(app, settings)


@app.exception_handler(ReminderError)
async def reminder_error_handler(request: Request, exc: ReminderError):
    """Map engine errors to the standard error envelope."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    return JSONResponse(status_code=status_code, content={"success": False, "error": exc.to_dict()})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/metrics")
async def get_metrics():
    return metrics_collector.get_metrics()


app.include_router(medicines_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "medreminder.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
    )
