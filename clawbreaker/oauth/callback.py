"""Localhost callback listener for the OAuth redirect.

This module provides a one-shot HTTP listener that receives the OAuth
authorization callback. It:
- Binds the fixed callback port registered with Clawbreaker
- Accepts exactly one connection, then stops listening
- Checks the returned state against the one we sent
- Returns a user-friendly HTML page with success/error message
- Reports a single CallbackOutcome through a future
"""

import asyncio
import html
import logging
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from ..config import DEFAULT_ACCEPT_TIMEOUT, DEFAULT_CALLBACK_PORT, DEFAULT_READ_TIMEOUT
from .errors import OAuthError, PortInUseError
from .state import state_matches

logger = logging.getLogger(__name__)

CALLBACK_HOST = "127.0.0.1"
CALLBACK_PATH = "/callback"

# Upper bound on header lines drained from the callback request
MAX_HEADER_LINES = 100


class ListenerState(Enum):
    """Lifecycle of a CallbackListener."""

    LISTENING = "listening"
    ACCEPTING = "accepting"
    PARSING_REQUEST = "parsing_request"
    DISPATCHING = "dispatching"
    RESPONDING = "responding"
    CLOSED = "closed"


@dataclass(frozen=True)
class AuthorizationGranted:
    """The callback carried a code and the expected state."""

    code: str
    state: str


@dataclass(frozen=True)
class AuthorizationDenied:
    """The service redirected back with an error."""

    error: str
    error_description: str | None = None


@dataclass(frozen=True)
class StateMismatch:
    """The callback's state differs from the one we generated."""

    expected: str
    received: str


@dataclass(frozen=True)
class MalformedRequest:
    """The request was not a usable callback."""

    reason: str


@dataclass(frozen=True)
class ListenerTimeout:
    """Nothing connected before the accept timeout."""

    timeout: float


CallbackOutcome = (
    AuthorizationGranted
    | AuthorizationDenied
    | StateMismatch
    | MalformedRequest
    | ListenerTimeout
)


# HTML templates for callback responses
SUCCESS_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Clawbreaker</title>
    <style>
        body {{
            font-family: system-ui, -apple-system, 'Segoe UI', Roboto, sans-serif;
            text-align: center;
            padding: 50px;
        }}
        .icon {{ font-size: 64px; margin-bottom: 16px; color: #2e7d32; }}
        h1 {{ color: #1a1a1a; margin: 0 0 8px 0; font-size: 24px; }}
        p {{ color: #666; margin: 0; }}
    </style>
</head>
<body>
    <div class="icon">✓</div>
    <h1>Connected!</h1>
    <p>You can close this window and return to your terminal.</p>
</body>
</html>"""

ERROR_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Clawbreaker</title>
    <style>
        body {{
            font-family: system-ui, -apple-system, 'Segoe UI', Roboto, sans-serif;
            text-align: center;
            padding: 50px;
        }}
        .icon {{ font-size: 64px; margin-bottom: 16px; color: #c0392b; }}
        h1 {{ color: #1a1a1a; margin: 0 0 8px 0; font-size: 24px; }}
        p {{ color: #666; margin: 0 0 16px 0; }}
        .error {{
            display: inline-block;
            background: #fee;
            padding: 12px;
            border-radius: 8px;
            color: #c0392b;
            font-family: monospace;
        }}
    </style>
</head>
<body>
    <div class="icon">✗</div>
    <h1>Authentication Failed</h1>
    <div class="error">{error}</div>
    <p>Please try again.</p>
</body>
</html>"""


def build_callback_url(port: int, path: str = CALLBACK_PATH) -> str:
    """The redirect URI for a listener on the given port."""
    return f"http://localhost:{port}{path}"


def parse_request_line(line: str, path: str = CALLBACK_PATH) -> dict[str, str]:
    """Parse an HTTP request line into callback query parameters.

    Args:
        line: Request line such as "GET /callback?code=x&state=y HTTP/1.1"
        path: The only path accepted

    Returns:
        Flat mapping of query parameters; on duplicate keys the last wins

    Raises:
        ValueError: If the line is not a GET request for the callback path
    """
    parts = line.strip().split(" ")
    if len(parts) != 3 or not parts[2].startswith("HTTP/"):
        raise ValueError("Malformed request line")

    method, target = parts[0], parts[1]
    if method != "GET":
        raise ValueError(f"Unsupported method {method}")

    parsed = urlsplit(target)
    if parsed.path != path:
        raise ValueError(f"Unexpected path {parsed.path}")

    return dict(parse_qsl(parsed.query))


def dispatch_callback(params: dict[str, str], expected_state: str) -> CallbackOutcome:
    """Decide the outcome of a callback from its query parameters."""
    code = params.get("code")
    state = params.get("state")

    if code is not None and state_matches(expected_state, state):
        return AuthorizationGranted(code=code, state=expected_state)

    if "error" in params:
        return AuthorizationDenied(
            error=params["error"],
            error_description=params.get("error_description"),
        )

    if state is not None:
        # A matching state without code or error falls through to malformed
        if not state_matches(expected_state, state):
            return StateMismatch(expected=expected_state, received=state)

    return MalformedRequest("Callback is missing the code and error parameters")


def describe_outcome(outcome: CallbackOutcome) -> str:
    """Human-readable reason shown on the failure page."""
    if isinstance(outcome, AuthorizationDenied):
        if outcome.error_description:
            return f"{outcome.error}: {outcome.error_description}"
        return outcome.error
    if isinstance(outcome, StateMismatch):
        return "State mismatch: this response does not belong to the login in progress"
    if isinstance(outcome, MalformedRequest):
        return f"Invalid callback: {outcome.reason}"
    if isinstance(outcome, ListenerTimeout):
        return f"Timed out after {outcome.timeout:g} seconds"
    return "Authorization succeeded"


def render_response(outcome: CallbackOutcome) -> bytes:
    """Render the complete HTTP response for an outcome.

    200 with the success page for a granted authorization, 400 with the
    (escaped) reason for everything else.
    """
    if isinstance(outcome, AuthorizationGranted):
        status = HTTPStatus.OK
        page = SUCCESS_HTML.format()
    else:
        status = HTTPStatus.BAD_REQUEST
        # HTML-escape error messages to prevent XSS attacks
        page = ERROR_HTML.format(error=html.escape(describe_outcome(outcome)))

    body = page.encode("utf-8")
    headers = (
        f"HTTP/1.1 {status.value} {status.phrase}\r\n"
        f"Content-Type: text/html; charset=utf-8\r\n"
        f"Content-Length: {len(body)}\r\n"
        f"X-Content-Type-Options: nosniff\r\n"
        f"X-Frame-Options: DENY\r\n"
        f"Content-Security-Policy: default-src 'none'; style-src 'unsafe-inline'\r\n"
        f"Connection: close\r\n"
        f"\r\n"
    )
    return headers.encode("ascii") + body


class CallbackListener:
    """One-shot HTTP listener for the OAuth callback.

    Binds the fixed callback port, serves the first connection only and
    resolves exactly one CallbackOutcome. If nothing connects within
    ``accept_timeout`` seconds the outcome is ListenerTimeout. The listening
    socket is released on every exit path.

    Usage:
        async with CallbackListener(state) as listener:
            # Open browser with authorization URL using listener.callback_url
            outcome = await listener.wait()
    """

    def __init__(
        self,
        expected_state: str,
        port: int = DEFAULT_CALLBACK_PORT,
        accept_timeout: float = DEFAULT_ACCEPT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        path: str = CALLBACK_PATH,
        host: str = CALLBACK_HOST,
    ):
        """Initialize callback listener.

        Args:
            expected_state: State token the callback must echo back
            port: Fixed local port to bind
            accept_timeout: Seconds to wait for the browser to connect
            read_timeout: Seconds allowed for reading the request
            path: URL path to accept (default "/callback")
            host: Interface to bind
        """
        self.expected_state = expected_state
        self.port = port
        self.accept_timeout = accept_timeout
        self.read_timeout = read_timeout
        self.path = path
        self.host = host
        self.status = ListenerState.CLOSED

        self._server: asyncio.Server | None = None
        self._outcome: asyncio.Future[CallbackOutcome] | None = None
        self._accept_timer: asyncio.TimerHandle | None = None
        self._handler: asyncio.Task[Any] | None = None
        self._accepted = False

    @property
    def callback_url(self) -> str:
        """The redirect URI served by this listener."""
        return build_callback_url(self.port, self.path)

    @property
    def is_serving(self) -> bool:
        """Whether the listening socket is still open."""
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        """Bind the callback port and start accepting.

        Raises:
            PortInUseError: If the port cannot be bound
        """
        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()
        self._accepted = False

        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                self.host,
                self.port,
            )
        except OSError as e:
            self.status = ListenerState.CLOSED
            raise PortInUseError(self.port, e) from e

        self.status = ListenerState.LISTENING
        logger.debug(f"Callback listener bound on {self.host}:{self.port}")

        self._accept_timer = loop.call_later(self.accept_timeout, self._on_accept_timeout)
        self.status = ListenerState.ACCEPTING

    async def wait(self) -> CallbackOutcome:
        """Wait for the single outcome of this listener.

        Raises:
            OAuthError: If the listener was never started
        """
        if self._outcome is None:
            raise OAuthError("Callback listener not started")
        return await asyncio.shield(self._outcome)

    async def stop(self) -> None:
        """Stop listening and release the port. Safe to call repeatedly."""
        self._cancel_accept_timer()
        self._close_server()

        handler = self._handler
        if handler is not None and not handler.done() and handler is not asyncio.current_task():
            handler.cancel()
            await asyncio.gather(handler, return_exceptions=True)

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None
            logger.debug("Callback listener stopped")

        if self._outcome is not None and not self._outcome.done():
            self._outcome.cancel()

        self.status = ListenerState.CLOSED

    def _deliver(self, outcome: CallbackOutcome) -> None:
        """Resolve the outcome future; only the first call has an effect."""
        if self._outcome is None or self._outcome.done():
            logger.debug(f"Dropping extra callback outcome {type(outcome).__name__}")
            return
        logger.debug(f"Callback outcome: {type(outcome).__name__}")
        self._outcome.set_result(outcome)

    def _cancel_accept_timer(self) -> None:
        if self._accept_timer is not None:
            self._accept_timer.cancel()
            self._accept_timer = None

    def _close_server(self) -> None:
        """Close the listening socket without waiting."""
        if self._server is not None and self._server.is_serving():
            self._server.close()

    def _on_accept_timeout(self) -> None:
        """Timer callback: no connection arrived in time."""
        self._accept_timer = None
        if self._accepted:
            return
        logger.warning(f"No OAuth callback within {self.accept_timeout:g} seconds")
        self._close_server()
        self.status = ListenerState.CLOSED
        self._deliver(ListenerTimeout(self.accept_timeout))

    async def _read_request_line(self, reader: asyncio.StreamReader) -> str:
        """Read the request line and drain the headers."""
        request_line = await reader.readline()

        for _ in range(MAX_HEADER_LINES):
            header_line = await reader.readline()
            if header_line in (b"\r\n", b"\n", b""):
                break
        else:
            raise ValueError("Too many header lines")

        return request_line.decode("utf-8", errors="replace")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle the callback connection."""
        if self._accepted:
            # Only the first connection is served
            await self._close_writer(writer)
            return

        self._accepted = True
        self._handler = asyncio.current_task()
        self._cancel_accept_timer()
        self._close_server()

        outcome: CallbackOutcome | None = None
        try:
            self.status = ListenerState.PARSING_REQUEST
            try:
                request_line = await asyncio.wait_for(
                    self._read_request_line(reader), timeout=self.read_timeout
                )
                params = parse_request_line(request_line, self.path)
            except TimeoutError:
                outcome = MalformedRequest("Timed out reading request")
            except (ValueError, OSError) as e:
                # StreamReader also raises ValueError for oversized lines
                outcome = MalformedRequest(str(e) or type(e).__name__)
            else:
                self.status = ListenerState.DISPATCHING
                outcome = dispatch_callback(params, self.expected_state)

            self.status = ListenerState.RESPONDING
            try:
                writer.write(render_response(outcome))
                await writer.drain()
            except OSError as e:
                logger.warning(f"Could not send callback response: {e}")
        except Exception as e:
            logger.debug(f"Callback connection failed: {e!r}")
            if outcome is None:
                outcome = MalformedRequest(str(e) or type(e).__name__)
        finally:
            await self._close_writer(writer)
            self.status = ListenerState.CLOSED
            if outcome is not None:
                self._deliver(outcome)

    async def _close_writer(self, writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing callback connection: {e}")

    async def __aenter__(self) -> "CallbackListener":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.stop()
