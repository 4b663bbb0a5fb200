"""Connecting to Clawbreaker.

connect() picks the first source of credentials that applies:
1. An explicit API key
2. Credentials stored by an earlier session
3. The interactive OAuth login in the browser

Usage:
    from clawbreaker import connect
    from clawbreaker.client import Client

    credentials = connect()
    async with Client(credentials) as client:
        print(await whoami(client))
"""

import logging
import os
from typing import Any

from .client import Client
from .config import Config, Credentials, load_config
from .credentials import CredentialStore, CredentialStoreError
from .errors import APIError, ConnectError
from .oauth import interactive_oauth

logger = logging.getLogger(__name__)


def _default_store(config: Config) -> CredentialStore:
    return CredentialStore(config.credentials_dir)


def connect(
    url: str | None = None,
    api_key: str | None = None,
    org: str | None = None,
    *,
    store: CredentialStore | None = None,
    config: Config | None = None,
    persist: bool = True,
    **oauth_kwargs: Any,
) -> Credentials:
    """Connect to Clawbreaker and return the active credentials.

    Args:
        url: Instance URL (default from config, https://api.clawbreaker.dev)
        api_key: API key; skips stored credentials and OAuth
        org: Organization to connect to, if you belong to several
        store: Credential store (default: one under config.credentials_dir)
        config: Configuration (default: Config())
        persist: Save credentials from an API key or OAuth login to disk
        **oauth_kwargs: Passed to the OAuth flow (e.g. on_status)

    Returns:
        The configured Credentials

    Raises:
        ConnectError: If credentials cannot be loaded or the login fails
    """
    config = config or Config()
    store = store or _default_store(config)
    base_url = (url or config.url).rstrip("/")

    if api_key:
        logger.debug(f"Connecting to {base_url} with an API key")
        return store.configure(base_url, api_key, org, persist=persist)

    if store.has_stored_credentials():
        try:
            credentials = store.load_stored_credentials()
        except CredentialStoreError as e:
            raise ConnectError(str(e)) from e
        if credentials is not None:
            logger.debug(f"Loaded stored credentials for {credentials.base_url}")
            return credentials

    logger.debug(f"No stored credentials, starting OAuth login for {base_url}")
    return interactive_oauth(
        base_url, store, org=org, config=config, persist=persist, **oauth_kwargs
    )


def connect_from_env(
    *,
    store: CredentialStore | None = None,
    config: Config | None = None,
    persist: bool = True,
) -> Credentials:
    """Connect using CLAWBREAKER_URL (optional) and CLAWBREAKER_API_KEY.

    Raises:
        ConnectError: If CLAWBREAKER_API_KEY is not set
    """
    api_key = os.environ.get("CLAWBREAKER_API_KEY")
    if not api_key:
        raise ConnectError("CLAWBREAKER_API_KEY environment variable not set")

    config = config or load_config()
    return connect(
        url=os.environ.get("CLAWBREAKER_URL") or config.url,
        api_key=api_key,
        org=os.environ.get("CLAWBREAKER_ORG") or None,
        store=store,
        config=config,
        persist=persist,
    )


def is_connected(store: CredentialStore) -> bool:
    """Check whether the store holds active credentials."""
    return store.is_configured()


def disconnect(store: CredentialStore) -> None:
    """Forget the active credentials and delete the stored ones."""
    store.clear()


async def whoami(client: Client) -> dict[str, Any]:
    """Get the user, organization and URL of the current connection."""
    result: dict[str, Any] = await client.get("/v1/whoami")
    return result


async def orgs(client: Client) -> list[dict[str, Any]]:
    """List the organizations you belong to."""
    data = await client.get("/v1/orgs")
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    if isinstance(data, list):
        return data
    raise APIError("Unexpected response listing orgs", body=data)
