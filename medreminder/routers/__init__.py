"""Routers package for the medication reminder API."""

from .medicines import router as medicines_router

__all__ = ["medicines_router"]
