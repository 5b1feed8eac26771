"""
Operation Results

Expected business outcomes (not found, not authorized, uniqueness
conflicts, bad input) are returned as values so callers can map each one
to its own user-visible response. Exceptions are kept for infrastructure
failures.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError


class FailureReason(str, Enum):
    """Why a service operation did not succeed."""
    NOT_FOUND = "not_found"
    NOT_AUTHORIZED = "not_authorized"
    VALIDATION = "validation"
    USER_EXISTS = "user_exists"
    EMAIL_IN_USE = "email_in_use"
    USERNAME_IN_USE = "username_in_use"
    INVALID_CREDENTIALS = "invalid_credentials"


class OperationResult(BaseModel):
    """Outcome of a mutating service call."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    record: Optional[Any] = None
    reason: Optional[FailureReason] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, record: Any = None) -> "OperationResult":
        return cls(ok=True, record=record)

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        message: Optional[str] = None,
    ) -> "OperationResult":
        return cls(ok=False, reason=reason, message=message or reason.value)

    @classmethod
    def invalid(cls, error: ValidationError) -> "OperationResult":
        """Validation failure carrying a readable summary of the errors."""
        parts = []
        for item in error.errors():
            location = ".".join(str(part) for part in item["loc"]) or "input"
            parts.append(f"{location}: {item['msg']}")
        return cls.failure(FailureReason.VALIDATION, "; ".join(parts))

    @property
    def not_found(self) -> bool:
        return self.reason == FailureReason.NOT_FOUND

    @property
    def not_authorized(self) -> bool:
        return self.reason == FailureReason.NOT_AUTHORIZED
