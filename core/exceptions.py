"""
Exception hierarchy for the companion backend.

Each error carries a machine-readable code and a context dict that is safe
to log or return from the API.
"""

from typing import Optional, Dict, Any


class CompanionException(Exception):
    """Base exception for all companion backend errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """JSON body for API error responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# ==================== Fact store ====================


class DatabaseException(CompanionException):
    """A fact store query or write failed."""


class RecordNotFoundError(DatabaseException):
    """A row is missing or not owned by the caller."""

    def __init__(self, model: str, identifier: Any):
        super().__init__(
            message=f"{model} not found",
            error_code="RECORD_NOT_FOUND",
            context={"model": model, "identifier": identifier},
        )


# ==================== Memory ====================


class MemoryException(CompanionException):
    """Base for memory layer errors."""


class UserNotFoundError(MemoryException):
    """Profile writes target a user that does not exist."""

    def __init__(self, user_id: int):
        super().__init__(
            message=f"User {user_id} not found",
            error_code="USER_NOT_FOUND",
            context={"user_id": user_id},
        )


class ContextAssemblyError(MemoryException):
    """Raised when the memory context for a chat turn cannot be read."""

    def __init__(self, user_id: int, details: Optional[str] = None):
        super().__init__(
            message=f"Failed to assemble memory context for user {user_id}",
            error_code="CONTEXT_ASSEMBLY_ERROR",
            context={"user_id": user_id, "details": details},
        )


# ==================== Model provider ====================


class LLMServiceError(CompanionException):
    """Raised when the LLM provider call fails or returns nothing usable."""

    def __init__(self, model: str, details: Optional[str] = None):
        super().__init__(
            message="LLM request failed",
            error_code="LLM_SERVICE_ERROR",
            context={"model": model, "details": details},
        )
