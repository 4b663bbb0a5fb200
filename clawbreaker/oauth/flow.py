"""Interactive OAuth login.

This module orchestrates the browser-based authorization code flow:
1. Generate a state token
2. Build the callback and authorization URLs
3. Start the localhost callback listener on the fixed port
4. Open the browser (and print the URL as a fallback)
5. Wait for the callback, bounded by the overall flow timeout
6. Exchange the code for an access token
7. Hand the credentials to the credential store
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode

import click
import httpx

from ..config import Config, Credentials, validate_timeouts
from ..credentials import CredentialStore
from .browser import BrowserLaunchError, open_browser
from .callback import (
    AuthorizationDenied,
    AuthorizationGranted,
    CallbackListener,
    CallbackOutcome,
    ListenerTimeout,
    MalformedRequest,
    StateMismatch,
    build_callback_url,
)
from .errors import (
    AuthorizationDeniedError,
    FlowTimeoutError,
    ListenerTimeoutError,
    MalformedCallbackError,
    OAuthError,
    StateMismatchError,
    TokenExchangeError,
    TransportError,
)
from .state import generate_state

logger = logging.getLogger(__name__)


@dataclass
class FlowState:
    """Per-login values, discarded once the login resolves.

    Attributes:
        state_token: CSRF correlator sent to and expected back from the service
        callback_url: Redirect URI served by the local listener
        authorize_url: URL the user opens to grant access
        deadline: Event loop time after which the login times out
    """

    state_token: str
    callback_url: str
    authorize_url: str
    deadline: float


def build_authorize_url(
    base_url: str,
    callback_url: str,
    state: str,
    org: str | None = None,
) -> str:
    """Build the authorization URL for browser redirect.

    Args:
        base_url: Clawbreaker API base URL
        callback_url: The redirect URI of the local listener
        state: State parameter for CSRF protection
        org: Optional organization hint

    Returns:
        Complete authorization URL
    """
    params: dict[str, str] = {
        "response_type": "code",
        "redirect_uri": callback_url,
        "state": state,
    }
    if org:
        params["org"] = org

    return f"{base_url.rstrip('/')}/oauth/authorize?{urlencode(params)}"


async def exchange_code(
    base_url: str,
    code: str,
    redirect_uri: str,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> str:
    """Exchange an authorization code for an access token.

    Args:
        base_url: Clawbreaker API base URL
        code: Authorization code from the callback
        redirect_uri: The redirect URI used in authorization
        http_client: Optional HTTP client
        timeout: Request timeout when no client is given

    Returns:
        The access token

    Raises:
        TokenExchangeError: If the token endpoint rejects the code
        TransportError: If the token endpoint cannot be reached
    """
    http = http_client or httpx.AsyncClient(timeout=timeout)
    should_close = http_client is None

    try:
        response = await http.post(
            f"{base_url.rstrip('/')}/oauth/token",
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
    except httpx.RequestError as e:
        raise TransportError(e) from e
    finally:
        if should_close:
            await http.aclose()

    try:
        data: Any = response.json()
    except ValueError:
        data = None

    if response.status_code == 200 and isinstance(data, dict):
        token = data.get("access_token")
        if isinstance(token, str) and token:
            return token

    # Only extract the error field, never the raw body - it might contain secrets
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, str) and error:
        detail = error
    elif response.status_code == 200:
        detail = "response did not include an access token"
    else:
        detail = f"token endpoint returned HTTP {response.status_code}"

    raise TokenExchangeError(detail, status=response.status_code)


def outcome_to_error(outcome: CallbackOutcome) -> OAuthError:
    """Convert a failed callback outcome into the matching error."""
    if isinstance(outcome, AuthorizationDenied):
        return AuthorizationDeniedError(outcome.error, outcome.error_description)
    if isinstance(outcome, StateMismatch):
        return StateMismatchError(outcome.expected, outcome.received)
    if isinstance(outcome, MalformedRequest):
        return MalformedCallbackError(outcome.reason)
    if isinstance(outcome, ListenerTimeout):
        return ListenerTimeoutError(outcome.timeout)
    raise TypeError(f"Not a failed callback outcome: {outcome!r}")


class OAuthFlow:
    """Runs one interactive OAuth login.

    A flow runs once; call run() on a new instance to retry, which
    generates a fresh state token and listener.

    Usage:
        flow = OAuthFlow(base_url, store)
        credentials = await flow.run()
    """

    def __init__(
        self,
        base_url: str,
        store: CredentialStore,
        org: str | None = None,
        config: Config | None = None,
        http_client: httpx.AsyncClient | None = None,
        on_status: Callable[[str], None] | None = None,
        launch_browser: Callable[[str], None] = open_browser,
        persist: bool = True,
    ):
        """Initialize OAuth flow.

        Args:
            base_url: Clawbreaker API base URL
            store: Credential store receiving the result
            org: Optional organization to log into
            config: Timeouts and callback port (defaults to Config())
            http_client: Optional HTTP client for the token exchange
            on_status: Callback for progress messages (default: echo to stdout)
            launch_browser: Function opening a URL in the browser
            persist: Save the resulting credentials to disk
        """
        self.base_url = base_url.rstrip("/")
        self.store = store
        self.org = org
        self.config = config or Config()
        self.http_client = http_client
        self.on_status = on_status or click.echo
        self.launch_browser = launch_browser
        self.persist = persist

        validate_timeouts(self.config.accept_timeout, self.config.flow_timeout)
        self._started = False

    def _emit_status(self, message: str) -> None:
        """Emit a status message."""
        logger.info(message)
        self.on_status(message)

    def _open_browser(self, authorize_url: str) -> None:
        """Try to open the browser; failure only means the user clicks the link."""
        self._emit_status("Opening browser for authentication...")
        self._emit_status(f"If the browser doesn't open, visit: {authorize_url}")

        try:
            self.launch_browser(authorize_url)
        except BrowserLaunchError as e:
            logger.warning(f"Browser launch failed: {e}")
            self._emit_status("Could not open browser. Please open the URL above manually.")

    def prepare(self) -> FlowState:
        """Create the per-login state."""
        loop = asyncio.get_running_loop()
        state_token = generate_state()
        callback_url = build_callback_url(self.config.callback_port)
        return FlowState(
            state_token=state_token,
            callback_url=callback_url,
            authorize_url=build_authorize_url(
                self.base_url, callback_url, state_token, self.org
            ),
            deadline=loop.time() + self.config.flow_timeout,
        )

    async def run(self) -> Credentials:
        """Execute the login.

        Returns:
            Credentials handed to the credential store

        Raises:
            PortInUseError: If the callback port is taken
            FlowTimeoutError: If the login does not finish in time
            OAuthError: For every other failure (see oauth.errors)
        """
        if self._started:
            raise OAuthError("This OAuth flow has already run; start a new one to retry")
        self._started = True

        loop = asyncio.get_running_loop()
        flow = self.prepare()
        listener = CallbackListener(
            flow.state_token,
            port=self.config.callback_port,
            accept_timeout=self.config.accept_timeout,
            read_timeout=self.config.read_timeout,
        )

        # Raises PortInUseError; nothing to clean up yet
        await listener.start()
        try:
            self._open_browser(flow.authorize_url)

            remaining = max(flow.deadline - loop.time(), 0)
            try:
                outcome = await asyncio.wait_for(listener.wait(), timeout=remaining)
            except TimeoutError:
                raise FlowTimeoutError(self.config.flow_timeout) from None
        finally:
            await listener.stop()

        if not isinstance(outcome, AuthorizationGranted):
            raise outcome_to_error(outcome)

        self._emit_status("Exchanging code for access token...")
        token = await exchange_code(
            self.base_url,
            outcome.code,
            flow.callback_url,
            http_client=self.http_client,
            timeout=self.config.http_timeout,
        )

        credentials = self.store.configure(
            self.base_url, token, self.org, persist=self.persist
        )
        self._emit_status("Successfully authenticated!")
        return credentials


async def interactive_oauth_async(
    base_url: str,
    store: CredentialStore,
    org: str | None = None,
    **kwargs: Any,
) -> Credentials:
    """Run the interactive OAuth login inside a running event loop.

    Keyword arguments are passed to OAuthFlow.
    """
    return await OAuthFlow(base_url, store, org=org, **kwargs).run()


def interactive_oauth(
    base_url: str,
    store: CredentialStore,
    org: str | None = None,
    **kwargs: Any,
) -> Credentials:
    """Run the interactive OAuth login, blocking until it resolves.

    Opens the browser, waits for the redirect and exchanges the code.
    Progress lines are written to stdout.

    Returns:
        The configured Credentials

    Raises:
        OAuthError: If the login fails (see oauth.errors for the variants)
    """
    return asyncio.run(interactive_oauth_async(base_url, store, org=org, **kwargs))
