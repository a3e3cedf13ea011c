"""HTTP API package."""

from .errors import ApiError, api_error_handler

__all__ = ["ApiError", "api_error_handler"]
