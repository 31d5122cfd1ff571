"""Delivery API package."""

from delivery.api.errors import install_error_handlers
from delivery.api.routes import router

__all__ = ["router", "install_error_handlers"]
