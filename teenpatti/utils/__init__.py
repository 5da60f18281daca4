"""Shared utilities."""
from .logger import get_logger
from .retry import retry_async

__all__ = ["get_logger", "retry_async"]
