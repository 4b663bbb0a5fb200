"""Errors raised by the interactive OAuth login."""

from ..errors import ConnectError


class OAuthError(ConnectError):
    """Error during the interactive OAuth flow."""

    pass


class PortInUseError(OAuthError):
    """The fixed callback port could not be bound.

    The redirect URI registered with the service names this port, so there
    is no fallback port to try.
    """

    def __init__(self, port: int, cause: OSError | None = None):
        detail = f": {cause.strerror}" if cause is not None and cause.strerror else ""
        super().__init__(
            f"Callback port {port} is already in use{detail}. "
            f"Close any other login in progress and try again."
        )
        self.port = port


class ListenerTimeoutError(OAuthError):
    """No browser reached the callback listener in time. Safe to retry."""

    def __init__(self, timeout: float):
        super().__init__(f"No OAuth callback received within {timeout:g} seconds")
        self.timeout = timeout


class MalformedCallbackError(OAuthError):
    """The callback request could not be understood."""

    def __init__(self, reason: str):
        super().__init__(f"Invalid OAuth callback: {reason}")
        self.reason = reason


class StateMismatchError(OAuthError):
    """The callback's state did not match the state we sent."""

    def __init__(self, expected: str, received: str):
        super().__init__("State mismatch in OAuth callback - possible CSRF attack")
        self.expected = expected
        self.received = received


class AuthorizationDeniedError(OAuthError):
    """The user or the service declined the authorization request."""

    def __init__(self, error: str, description: str | None = None):
        message = f"Authorization denied: {error}"
        if description:
            message += f" - {description}"
        super().__init__(message)
        self.error = error
        self.description = description


class TokenExchangeError(OAuthError):
    """The token endpoint rejected the authorization code."""

    def __init__(self, detail: str, status: int | None = None):
        super().__init__(f"Token exchange failed: {detail}")
        self.detail = detail
        self.status = status


class TransportError(OAuthError):
    """The token endpoint could not be reached."""

    def __init__(self, cause: Exception):
        super().__init__(f"Network error during token exchange: {cause}")
        self.cause = cause


class FlowTimeoutError(OAuthError):
    """The whole interactive login took longer than allowed."""

    def __init__(self, timeout: float):
        super().__init__(f"OAuth login did not complete within {timeout:g} seconds")
        self.timeout = timeout
