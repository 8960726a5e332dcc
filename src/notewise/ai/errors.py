"""Error taxonomy for the AI generation engine.

User cancellation is deliberately absent: a cancelled stream simply stops
emitting callbacks and is never reported as a failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for machine-readable error codes."""

    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    MALFORMED_RECORD = "malformed_record"


@dataclass
class AIError(Exception):
    """Base exception for failures raised by the AI layer.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable description suitable for display.
        details: Additional structured information for logs.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    recoverable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class ConfigurationError(AIError):
    """Raised before any network I/O when the connection settings are unusable."""

    error_code: str = field(default=ErrorCode.CONFIGURATION)
    message: str = field(default="Configure an API key in settings first")
    details: dict[str, Any] = field(default_factory=dict)

    setting: str | None = field(default=None)


@dataclass
class TransportError(AIError):
    """Connection failure or non-success HTTP status from the endpoint."""

    error_code: str = field(default=ErrorCode.TRANSPORT)
    message: str = field(default="Request to the AI endpoint failed")
    details: dict[str, Any] = field(default_factory=dict)

    status_code: int | None = field(default=None)

    @classmethod
    def from_status(cls, status_code: int, reason: str = "") -> "TransportError":
        text = f"API error: {status_code}"
        if reason:
            text = f"{text} {reason}"
        return cls(message=text, status_code=status_code)


@dataclass
class MalformedRecordError(AIError):
    """A single streamed record could not be decoded; the stream continues."""

    error_code: str = field(default=ErrorCode.MALFORMED_RECORD)
    message: str = field(default="Streamed record could not be decoded")
    details: dict[str, Any] = field(default_factory=dict)

    recoverable: ClassVar[bool] = True

    record: str | None = field(default=None)


__all__ = [
    "AIError",
    "ConfigurationError",
    "ErrorCode",
    "MalformedRecordError",
    "TransportError",
]
