"""Exception hierarchy for the BTN client.

Provides the error taxonomy used across the client: transport faults,
HTTP application errors and validation/parse faults.
"""

from __future__ import annotations

from typing import Any


class BtnError(Exception):
    """Base exception for all BTN client errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize BTN error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class NetworkError(BtnError):
    """Network-related errors."""


class TransportError(NetworkError):
    """Transport fault that survived the whole retry budget."""


class BtnHttpError(NetworkError):
    """Non-success HTTP status returned by the BTN server."""

    def __init__(self, status: int, body: str = "", url: str | None = None):
        """Initialize HTTP error with the response status and body."""
        super().__init__(
            f"HTTP {status}: {body}",
            {"url": url} if url else None,
        )
        self.status = status
        self.body = body


class ValidationError(BtnError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class RuleParseError(ValidationError):
    """Malformed rule document."""
