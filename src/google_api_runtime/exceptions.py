"""Google API runtime exceptions."""

from __future__ import annotations

from typing import Any


class GoogleAPIRuntimeError(Exception):
    """Base exception for all runtime errors."""

    pass


class MissingPathParameterError(GoogleAPIRuntimeError):
    """Raised when a path template placeholder has no value."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Missing path parameter: {name}")


class InvalidResponseError(GoogleAPIRuntimeError):
    """Raised when the server returned no body but a result was expected."""

    def __init__(self, message: str = "Invalid response from server"):
        super().__init__(message)


class ResponseDecodeError(GoogleAPIRuntimeError):
    """Raised when a response body is not valid JSON or doesn't match the result type."""

    def __init__(self, message: str, content: bytes | None = None):
        self.content = content
        super().__init__(message)


class TransportError(GoogleAPIRuntimeError):
    """Raised when the HTTP call itself fails (connection, timeout, protocol)."""

    def __init__(self, message: str, original: Exception | None = None):
        self.original = original
        super().__init__(message)


class APIError(GoogleAPIRuntimeError):
    """Raised when the server returns an error envelope.

    Attributes:
        code: Numeric error code (usually the HTTP status).
        status: Canonical status string, e.g. "PERMISSION_DENIED".
        message: Human readable message from the server.
        errors: Legacy per-error list from the envelope, if any.
        details: Structured error details, if any.
        payload: The raw ``error`` object as returned.
    """

    def __init__(
        self,
        code: int,
        message: str | None = None,
        status: str | None = None,
        errors: list[dict[str, Any]] | None = None,
        details: list[dict[str, Any]] | None = None,
        payload: Any = None,
    ):
        self.code = code
        self.status = status
        self.message = message
        self.errors = errors or []
        self.details = details or []
        self.payload = payload

        text = f"{code}"
        if status:
            text += f" {status}"
        if message:
            text += f": {message}"
        super().__init__(text)


class AuthError(GoogleAPIRuntimeError):
    """Base exception for credential and token errors."""

    pass


class CredentialsNotFoundError(AuthError):
    """Raised when an OAuth client secrets or key file is not found."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Credentials file not found at {path}. "
            "Please download credentials from Google Cloud Console."
        )


class TokenError(AuthError):
    """Raised when an access token cannot be obtained or refreshed."""

    pass


class ScopeMismatchError(AuthError):
    """Raised when token scopes don't match required scopes."""

    def __init__(self, missing_scopes: set[str]):
        self.missing_scopes = missing_scopes
        super().__init__(f"Token missing required scopes: {missing_scopes}")
