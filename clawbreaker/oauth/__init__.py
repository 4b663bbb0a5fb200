"""Interactive OAuth login for Clawbreaker.

Main Components:
    interactive_oauth: Blocking entry point running one browser login
    OAuthFlow: Authorization code flow orchestration
    CallbackListener: One-shot localhost listener for the redirect

Quick Start:
    from clawbreaker.credentials import CredentialStore
    from clawbreaker.oauth import interactive_oauth

    credentials = interactive_oauth("https://api.clawbreaker.dev", CredentialStore())
"""

from .browser import BrowserLaunchError, open_browser
from .callback import (
    AuthorizationDenied,
    AuthorizationGranted,
    CallbackListener,
    CallbackOutcome,
    ListenerState,
    ListenerTimeout,
    MalformedRequest,
    StateMismatch,
)
from .errors import (
    AuthorizationDeniedError,
    FlowTimeoutError,
    ListenerTimeoutError,
    MalformedCallbackError,
    OAuthError,
    PortInUseError,
    StateMismatchError,
    TokenExchangeError,
    TransportError,
)
from .flow import (
    FlowState,
    OAuthFlow,
    build_authorize_url,
    exchange_code,
    interactive_oauth,
    interactive_oauth_async,
)
from .state import generate_state

__all__ = [
    # Flow (main entry point)
    "interactive_oauth",
    "interactive_oauth_async",
    "OAuthFlow",
    "FlowState",
    "build_authorize_url",
    "exchange_code",
    # Errors
    "OAuthError",
    "PortInUseError",
    "ListenerTimeoutError",
    "MalformedCallbackError",
    "StateMismatchError",
    "AuthorizationDeniedError",
    "TokenExchangeError",
    "TransportError",
    "FlowTimeoutError",
    # Callback
    "CallbackListener",
    "CallbackOutcome",
    "ListenerState",
    "AuthorizationGranted",
    "AuthorizationDenied",
    "StateMismatch",
    "MalformedRequest",
    "ListenerTimeout",
    # Browser
    "open_browser",
    "BrowserLaunchError",
    # State
    "generate_state",
]
