"""Exceptions raised by the Clawbreaker client."""

from typing import Any


class ClawbreakerError(Exception):
    """Base class for all Clawbreaker client errors."""

    pass


class ConnectError(ClawbreakerError):
    """Connecting or authenticating to Clawbreaker failed.

    Raised when:
    - The API key is missing or invalid
    - The server is unreachable
    - The interactive OAuth flow fails, times out or is cancelled
    """

    pass


class APIError(ClawbreakerError):
    """An API request failed.

    Attributes:
        status: HTTP status code, or None for transport failures
        body: Decoded response body, when one was received
    """

    def __init__(self, message: str, status: int | None = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body

    @classmethod
    def from_response(cls, status: int, body: Any) -> "APIError":
        """Build an error from an HTTP status and decoded body."""
        if status == 401:
            return cls(
                "Unauthorized. Check your API key or re-authenticate with `clawbreaker connect`.",
                status=401,
                body=body,
            )
        if status == 404:
            return cls("Resource not found", status=404, body=body)

        return cls(extract_error_message(body, status), status=status, body=body)


def extract_error_message(body: Any, status: int) -> str:
    """Pull a human-readable message out of an error response body.

    Understands {"error": {"message": ...}}, {"error": "..."} and
    {"message": "..."}; anything else yields a generic message.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
        if isinstance(body.get("message"), str):
            return body["message"]

    return f"API request failed with status {status}"
