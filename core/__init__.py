"""
Core utilities and infrastructure for the companion backend.
"""

from core.exceptions import (
    CompanionException,
    DatabaseException,
    RecordNotFoundError,
    MemoryException,
    UserNotFoundError,
    ContextAssemblyError,
    LLMServiceError,
)
from core.logging_config import configure_logging, get_logger

__all__ = [
    "CompanionException",
    "DatabaseException",
    "RecordNotFoundError",
    "MemoryException",
    "UserNotFoundError",
    "ContextAssemblyError",
    "LLMServiceError",
    "configure_logging",
    "get_logger",
]
