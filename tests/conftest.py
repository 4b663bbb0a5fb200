"""Shared fixtures and utilities for Clawbreaker tests."""

import os
import socket
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from clawbreaker.client import Client
from clawbreaker.config import Config, Credentials
from clawbreaker.credentials import CredentialStore


# ============================================================================
# Keyring Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def fake_keyring() -> Generator[dict[tuple[str, str], str], None, None]:
    """Replace the OS keyring with an in-memory dict for every test."""
    secrets: dict[tuple[str, str], str] = {}

    def get_password(service: str, username: str) -> str | None:
        return secrets.get((service, username))

    def set_password(service: str, username: str, password: str) -> None:
        secrets[(service, username)] = password

    with (
        patch("clawbreaker.credentials.keyring.get_password", side_effect=get_password),
        patch("clawbreaker.credentials.keyring.set_password", side_effect=set_password),
    ):
        yield secrets


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def credentials() -> Credentials:
    """Credentials for a test instance."""
    return Credentials(base_url="https://api.test.clawbreaker.dev", api_key="sk_test_123", org="acme")


@pytest.fixture
def sample_agent_data() -> dict[str, Any]:
    """An agent as returned by the API."""
    return {
        "id": "agt_123",
        "name": "Support Bot",
        "model": "claude-sonnet-4",
        "system_prompt": "You are a helpful support agent.",
        "tools": ["search_kb", "create_ticket"],
        "temperature": 0.5,
        "metadata": {"team": "support"},
    }


# ============================================================================
# Store and Config Fixtures
# ============================================================================


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    """A credential store in a temporary directory."""
    return CredentialStore(store_dir=tmp_path / "clawbreaker")


def find_free_port() -> int:
    """Find a free loopback port for listener tests."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    return find_free_port()


@pytest.fixture
def fast_config(tmp_path: Path, free_port: int) -> Config:
    """Config with short timeouts and a free callback port."""
    return Config(
        credentials_dir=tmp_path / "clawbreaker",
        callback_port=free_port,
        accept_timeout=2.0,
        flow_timeout=5.0,
        read_timeout=1.0,
    )


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
def make_client(credentials: Credentials) -> Callable[[Callable[[httpx.Request], httpx.Response]], Client]:
    """Create a Client whose requests are answered by a handler function."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> Client:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return Client(credentials, http_client=http)

    return _make


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Temporarily clear CLAWBREAKER_* environment variables."""
    old_env = os.environ.copy()
    for key in list(os.environ.keys()):
        if key.startswith("CLAWBREAKER_"):
            del os.environ[key]
    yield
    os.environ.clear()
    os.environ.update(old_env)
