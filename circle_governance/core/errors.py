"""Error Hierarchy: typed, categorized exceptions for every governance failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) never mutate state; infrastructure errors are 500-level
    - to_response() produces the REST envelope used by the global handlers
    - `retryable` separates "try again" (races) from "final" and "not allowed"

Design Decisions:
    - Single hierarchy rooted at CircleGovernanceError: one FastAPI handler catches all
    - ErrorContext as dataclass: carries circle/vote/user ids for logs and clients
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Identifiers and extra details attached to an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    circle_id: str | None = None
    vote_id: str | None = None
    user_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class CircleGovernanceError(Exception):
    """Base exception for all circle governance errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "circle_id": self.context.circle_id,
                    "vote_id": self.context.vote_id,
                },
                "details": self.context.details,
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class AuthenticationError(CircleGovernanceError):
    """No authenticated identity was supplied."""
    def __init__(self, message: str = "Authentication required", context: ErrorContext | None = None):
        super().__init__(
            message, "AUTHENTICATION_REQUIRED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


class AuthorizationError(CircleGovernanceError):
    """Role insufficient, or the action targets the owner."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "FORBIDDEN", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class NotFoundError(CircleGovernanceError):
    """Circle, vote, membership or invite does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type


class ValidationError(CircleGovernanceError):
    """Malformed input or ineligible target."""
    def __init__(self, message: str, field: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field
        if field:
            self.context.details.setdefault("field", field)


class ConflictError(CircleGovernanceError):
    """Duplicate active vote, duplicate ballot, already a member, or vote required."""

    retryable = True

    def __init__(
        self, message: str, reason: str, context: ErrorContext | None = None,
        **details: Any,
    ):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )
        self.reason = reason
        self.context.details.update({"reason": reason, **details})


class ExpiredOrResolvedError(CircleGovernanceError):
    """Vote is no longer active (expired, passed or failed)."""
    def __init__(self, status: str, context: ErrorContext | None = None):
        message = (
            "This vote has expired" if status == "expired"
            else f"This vote is no longer active ({status})"
        )
        super().__init__(
            message, "VOTE_NOT_ACTIVE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.INFO, context, 400,
        )
        self.status = status
        self.context.details["status"] = status


_INVITE_DENIAL_MESSAGES = {
    "not_found": "Invite not found",
    "deactivated": "This invite link has been deactivated",
    "expired": "This invite link has expired",
    "exhausted": "This invite link has reached its maximum uses",
    "circle_deleted": "The circle no longer exists",
}


class InviteDeniedError(CircleGovernanceError):
    """Invite token cannot be validated or redeemed. `reason` is the denial code."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(
            _INVITE_DENIAL_MESSAGES.get(reason, "Invite cannot be used"),
            "INVITE_DENIED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.INFO, context, 404 if reason == "not_found" else 410,
        )
        self.reason = reason
        self.context.details["reason"] = reason


# ─── Infrastructure Errors (500-level) ──────────────────────────

class CircleCreationError(CircleGovernanceError):
    """Owner membership could not be written; the circle row was compensated."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Circle creation failed: {message}",
            "CIRCLE_CREATION_FAILED", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 500,
        )


class DatabaseError(CircleGovernanceError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
