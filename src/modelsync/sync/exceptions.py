"""Custom exceptions for collaboration operations."""

from typing import Optional, Dict, Any
from datetime import datetime


class SyncError(Exception):
    """Base exception for collaboration errors."""

    def __init__(self, message: str, error_code: str = "sync_error",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class TransportError(SyncError):
    """Raised when the transport cannot be opened or is lost."""

    def __init__(self, endpoint: str, reason: str):
        message = f"Transport error for {endpoint}: {reason}"
        details = {
            "endpoint": endpoint,
            "reason": reason
        }
        super().__init__(message, "transport_error", details)


class EnvelopeDecodeError(SyncError):
    """Raised when an inbound envelope cannot be decoded."""

    def __init__(self, reason: str, raw: Any = None):
        message = f"Malformed envelope: {reason}"
        details = {
            "reason": reason,
            "raw": repr(raw)[:200] if raw is not None else None
        }
        super().__init__(message, "envelope_decode_error", details)


class MissingCredentialError(SyncError):
    """Raised when no access token is available for a workspace."""

    def __init__(self, workspace_id: str):
        message = f"No access token available for workspace {workspace_id}"
        details = {
            "workspace_id": workspace_id
        }
        super().__init__(message, "credential_missing", details)
