"""HTTP control surface of the playback engine."""

from .errors import ApiError, api_error_handler
from .routes import router

__all__ = ["ApiError", "api_error_handler", "router"]
