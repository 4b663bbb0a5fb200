"""State parameter generation for CSRF protection."""

import base64
import hmac
import secrets

# Random bytes behind each state token
STATE_BYTES = 16


def generate_state() -> str:
    """Generate a cryptographically random state parameter.

    The state parameter protects against CSRF attacks by ensuring
    the authorization response came from a request we initiated.

    Returns:
        22-character base64url string (16 random bytes, no padding)
    """
    raw = secrets.token_bytes(STATE_BYTES)
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def state_matches(expected: str, received: str | None) -> bool:
    """Compare a received state against the expected one in constant time."""
    if received is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
