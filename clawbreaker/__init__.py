"""Clawbreaker - Python client for the Clawbreaker AI agent platform."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("clawbreaker")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    # Connection
    "connect",
    "connect_from_env",
    "disconnect",
    "is_connected",
    "whoami",
    "orgs",
    # Core modules
    "Config",
    "Credentials",
    "load_config",
    "CredentialStore",
    "Client",
    "Agent",
    "Agents",
    "OutputHandler",
    # Errors
    "ClawbreakerError",
    "ConnectError",
    "APIError",
]

# Lazy imports to avoid circular dependencies
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("connect", "connect_from_env", "disconnect", "is_connected", "whoami", "orgs"):
        from . import connection
        return getattr(connection, name)
    elif name in ("Config", "Credentials", "load_config"):
        from .config import Config, Credentials, load_config
        return {"Config": Config, "Credentials": Credentials, "load_config": load_config}[name]
    elif name == "CredentialStore":
        from .credentials import CredentialStore
        return CredentialStore
    elif name == "Client":
        from .client import Client
        return Client
    elif name in ("Agent", "Agents"):
        from .agent import Agent, Agents
        return {"Agent": Agent, "Agents": Agents}[name]
    elif name == "OutputHandler":
        from .output import OutputHandler
        return OutputHandler
    elif name in ("ClawbreakerError", "ConnectError", "APIError"):
        from .errors import APIError, ClawbreakerError, ConnectError
        return {"ClawbreakerError": ClawbreakerError, "ConnectError": ConnectError, "APIError": APIError}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
