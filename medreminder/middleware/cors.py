"""CORS configuration for the reminder API."""
import logging
from typing import List

from fastapi.middleware.cors import CORSMiddleware

from medreminder.core.config import ReminderSettings

logger = logging.getLogger(__name__)

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:19006",  # Expo web
]


def allowed_origins(config: ReminderSettings) -> List[str]:
    if config.environment == "production":
        return [config.frontend_url] if config.frontend_url else []
    origins = list(DEV_ORIGINS)
    if config.frontend_url and config.frontend_url not in origins:
        origins.append(config.frontend_url)
    return origins


def add_cors_middleware(app, config: ReminderSettings):
    """Add CORS middleware to the FastAPI application."""
    origins = allowed_origins(config)
    logger.info(f"[CORS] Environment: {config.environment}, allowed origins: {origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
