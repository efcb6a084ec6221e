"""Import every operation module so its handlers register themselves."""

from app.operations import compare, convert, crop, optimize, pages, security, stamps  # noqa: F401
from app.operations.registry import registry

__all__ = ["registry"]
