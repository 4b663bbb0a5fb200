"""Configuration loading for the Clawbreaker client."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_URL = "https://api.clawbreaker.dev"

# Fixed by the redirect URI registered with the service
DEFAULT_CALLBACK_PORT = 19283

DEFAULT_ACCEPT_TIMEOUT = 60.0  # seconds a browser has to hit the callback
DEFAULT_FLOW_TIMEOUT = 300.0  # seconds the whole interactive login may take
DEFAULT_READ_TIMEOUT = 5.0  # seconds to read the callback request
DEFAULT_HTTP_TIMEOUT = 30.0

DEFAULT_CREDENTIALS_DIR = Path.home() / ".clawbreaker"

# Env file search paths in priority order
ENV_SEARCH_PATHS = [
    Path(".env"),
    Path.home() / ".clawbreaker" / ".env",
]


@dataclass
class Credentials:
    """Connection credentials produced by connect or the OAuth flow."""

    base_url: str
    api_key: str
    org: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        """Serialize credentials to dictionary."""
        return {"url": self.base_url, "api_key": self.api_key, "org": self.org}

    @classmethod
    def from_dict(cls, data: dict[str, str | None]) -> "Credentials":
        """Deserialize credentials from dictionary."""
        api_key = data["api_key"]
        if not isinstance(api_key, str):
            raise ValueError("api_key must be a string")
        return cls(
            base_url=data.get("url") or DEFAULT_URL,
            api_key=api_key,
            org=data.get("org"),
        )


@dataclass
class Config:
    """Complete Clawbreaker client configuration.

    The timeouts drive the interactive login: ``accept_timeout`` bounds how
    long the callback listener waits for the browser, ``flow_timeout`` bounds
    the whole flow. ``accept_timeout`` may not exceed ``flow_timeout``.
    """

    url: str = DEFAULT_URL
    api_key: str | None = None
    org: str | None = None
    credentials_dir: Path = field(default_factory=lambda: DEFAULT_CREDENTIALS_DIR)
    callback_port: int = DEFAULT_CALLBACK_PORT
    accept_timeout: float = DEFAULT_ACCEPT_TIMEOUT
    flow_timeout: float = DEFAULT_FLOW_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    env_path: Path | None = None

    def __post_init__(self) -> None:
        self.url = self.url.rstrip("/")
        validate_timeouts(self.accept_timeout, self.flow_timeout)
        if not 0 < self.callback_port < 65536:
            raise ValueError(f"Invalid callback port: {self.callback_port}")


def validate_timeouts(accept_timeout: float, flow_timeout: float) -> None:
    """Check the listener and flow timeouts are usable together.

    Raises:
        ValueError: If either is not positive or accept_timeout > flow_timeout
    """
    if accept_timeout <= 0 or flow_timeout <= 0:
        raise ValueError("Timeouts must be positive")
    if accept_timeout > flow_timeout:
        raise ValueError(
            f"accept_timeout ({accept_timeout}s) must not exceed "
            f"flow_timeout ({flow_timeout}s)"
        )


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file, checking project then user level."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path
    return None


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, with a readable error."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_config(env_path: Path | None = None) -> Config:
    """Load configuration from the environment.

    A .env file is loaded first (without overriding variables already set),
    then these variables are read:

    - CLAWBREAKER_URL
    - CLAWBREAKER_API_KEY
    - CLAWBREAKER_ORG
    - CLAWBREAKER_CREDENTIALS_DIR
    - CLAWBREAKER_CALLBACK_PORT
    - CLAWBREAKER_ACCEPT_TIMEOUT
    - CLAWBREAKER_FLOW_TIMEOUT

    Args:
        env_path: Explicit path to .env file (optional)

    Returns:
        Config object

    Raises:
        ValueError: If a numeric variable is invalid or the timeouts conflict
    """
    env_file = find_env_file(env_path)
    if env_file:
        load_dotenv(env_file)

    credentials_dir = os.environ.get("CLAWBREAKER_CREDENTIALS_DIR")

    return Config(
        url=os.environ.get("CLAWBREAKER_URL") or DEFAULT_URL,
        api_key=os.environ.get("CLAWBREAKER_API_KEY") or None,
        org=os.environ.get("CLAWBREAKER_ORG") or None,
        credentials_dir=Path(credentials_dir).expanduser() if credentials_dir else DEFAULT_CREDENTIALS_DIR,
        callback_port=_env_int("CLAWBREAKER_CALLBACK_PORT", DEFAULT_CALLBACK_PORT),
        accept_timeout=_env_float("CLAWBREAKER_ACCEPT_TIMEOUT", DEFAULT_ACCEPT_TIMEOUT),
        flow_timeout=_env_float("CLAWBREAKER_FLOW_TIMEOUT", DEFAULT_FLOW_TIMEOUT),
        env_path=env_file,
    )
