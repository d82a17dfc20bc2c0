"""
Exception hierarchy for marksync.

Every error carries a machine-readable code, a message suitable for logs and a
short message that can be shown to the user.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ErrorContext:
    """Where an error happened."""
    operation: str = ""
    folder_id: Optional[str] = None
    resource_id: Optional[str] = None
    path: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "folder_id": self.folder_id,
            "resource_id": self.resource_id,
            "path": self.path,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


def create_error_context(
    operation: str = "",
    folder_id: Optional[str] = None,
    resource_id: Optional[str] = None,
    path: Optional[str] = None,
    **details: Any,
) -> ErrorContext:
    """Build an ErrorContext from keyword arguments."""
    return ErrorContext(
        operation=operation,
        folder_id=folder_id,
        resource_id=resource_id,
        path=path,
        details=details,
    )


class MarkSyncException(Exception):
    """Base exception for all marksync errors."""

    default_code = "MARKSYNC_ERROR"
    default_user_message = "Something went wrong while syncing bookmarks."

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        user_message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context or ErrorContext()
        self.user_message = user_message or self.default_user_message
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "context": self.context.to_dict(),
        }

    def to_log_string(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context.operation:
            parts.append(f"operation={self.context.operation}")
        if self.context.folder_id:
            parts.append(f"folder={self.context.folder_id}")
        if self.context.resource_id:
            parts.append(f"resource={self.context.resource_id}")
        if self.context.path:
            parts.append(f"path={self.context.path}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        return " ".join(parts)


class ConfigurationError(MarkSyncException):
    default_code = "CONFIGURATION_ERROR"
    default_user_message = "marksync is not configured correctly."


class StorageError(MarkSyncException):
    """Durable storage could not be read or written."""
    default_code = "STORAGE_ERROR"
    default_user_message = "Failed to save sync settings."


class ValidationError(MarkSyncException):
    """A snapshot document is malformed."""
    default_code = "INVALID_COLLECTION"
    default_user_message = "The bookmark collection is not in a valid format."


class NetworkError(MarkSyncException):
    """The remote service could not be reached or timed out."""
    default_code = "NETWORK_ERROR"
    default_user_message = "Unable to reach GitHub. Check your internet connection."


class RemoteError(MarkSyncException):
    """The remote service answered with an error status."""

    default_code = "REMOTE_ERROR"
    default_user_message = "GitHub rejected the request."

    def __init__(self, message: str, status_code: int = 0, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class AuthenticationError(RemoteError):
    """Missing, invalid or expired credential."""
    default_code = "AUTHENTICATION_FAILED"
    default_user_message = "Your GitHub connection has expired. Please reconnect."


class NotFoundError(RemoteError):
    """The remote resource or file does not exist."""
    default_code = "NOT_FOUND"
    default_user_message = "Nothing has been synced yet."


class ConflictError(RemoteError):
    """The conditional-write token was stale."""
    default_code = "CONFLICT"
    default_user_message = (
        "The remote file changed since it was last read. Sync again to overwrite it."
    )


class RejectedError(RemoteError):
    """Any other rejection by the remote service."""
    default_code = "REJECTED"


def handle_unexpected_error(error: BaseException) -> MarkSyncException:
    """Wrap an arbitrary exception so it can be logged uniformly."""
    if isinstance(error, MarkSyncException):
        return error
    return MarkSyncException(
        message=f"Unexpected error: {error}",
        error_code="UNEXPECTED_ERROR",
        context=create_error_context(exception_type=type(error).__name__),
        cause=error,
    )
