"""Tests for CLI module."""

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from clawbreaker.cli import main
from clawbreaker.client import Client
from clawbreaker.config import Config, Credentials
from clawbreaker.credentials import CredentialStore
from clawbreaker.oauth.errors import PortInUseError


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_env(clean_env, tmp_path: Path, monkeypatch) -> Path:
    """Isolate the CLI from the real environment; returns the credentials dir."""
    monkeypatch.chdir(tmp_path)
    credentials_dir = tmp_path / "creds"
    monkeypatch.setenv("CLAWBREAKER_CREDENTIALS_DIR", str(credentials_dir))
    return credentials_dir


@pytest.fixture
def api_key_env(cli_env: Path, monkeypatch) -> Path:
    monkeypatch.setenv("CLAWBREAKER_API_KEY", "sk_env_key")
    monkeypatch.setenv("CLAWBREAKER_URL", "https://cb.example.com")
    return cli_env


class FakeAPI:
    """Routes requests to canned JSON responses by method and path."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"error": "not found"})
        return response


def serve(api: FakeAPI) -> Any:
    """Patch the CLI so its client talks to the fake API."""

    def make_client(credentials: Credentials, config: Config) -> Client:
        return Client(credentials, http_client=httpx.AsyncClient(transport=httpx.MockTransport(api)))

    return patch("clawbreaker.cli.make_client", side_effect=make_client)


AGENT = {
    "id": "agt_123",
    "name": "Support Bot",
    "model": "claude-sonnet-4",
    "system_prompt": "You are helpful.",
    "tools": ["search_kb"],
    "temperature": 0.7,
}


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output.lower()

    def test_help(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Clawbreaker" in result.output
        for command in ("connect", "disconnect", "whoami", "orgs", "agents"):
            assert command in result.output

    def test_invalid_config(self, runner: CliRunner, cli_env: Path, monkeypatch) -> None:
        monkeypatch.setenv("CLAWBREAKER_ACCEPT_TIMEOUT", "abc")

        result = runner.invoke(main, ["--json", "disconnect"])

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["success"] is False
        assert data["error"]["type"] == "ConfigError"


class TestConnectCommand:
    """Tests for connect and disconnect."""

    def test_connect_with_api_key(self, runner: CliRunner, cli_env: Path) -> None:
        result = runner.invoke(main, ["connect", "--api-key", "sk_abc", "--url", "https://cb.example.com"])

        assert result.exit_code == 0
        assert "Connected to https://cb.example.com" in result.output
        stored = CredentialStore(cli_env).load_stored_credentials()
        assert stored == Credentials("https://cb.example.com", "sk_abc")

    def test_connect_no_persist(self, runner: CliRunner, cli_env: Path) -> None:
        result = runner.invoke(main, ["connect", "--api-key", "sk_abc", "--no-persist"])

        assert result.exit_code == 0
        assert not CredentialStore(cli_env).has_stored_credentials()

    def test_connect_json(self, runner: CliRunner, cli_env: Path) -> None:
        result = runner.invoke(main, ["--json", "connect", "--api-key", "sk_abc", "--org", "acme"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["data"] == {"url": "https://api.clawbreaker.dev", "org": "acme"}

    def test_connect_runs_oauth(self, runner: CliRunner, cli_env: Path) -> None:
        credentials = Credentials("https://api.clawbreaker.dev", "cb_token")

        with patch("clawbreaker.connection.interactive_oauth", return_value=credentials) as oauth:
            result = runner.invoke(main, ["connect", "--org", "acme"])

        assert result.exit_code == 0
        assert oauth.call_args.kwargs["org"] == "acme"
        assert oauth.call_args.kwargs["persist"] is True

    def test_connect_oauth_failure(self, runner: CliRunner, cli_env: Path) -> None:
        with patch("clawbreaker.connection.interactive_oauth", side_effect=PortInUseError(19283)):
            result = runner.invoke(main, ["connect"])

        assert result.exit_code == 1
        assert "19283" in result.output

    def test_disconnect(self, runner: CliRunner, cli_env: Path) -> None:
        CredentialStore(cli_env).configure("https://cb.example.com", "sk_abc")

        result = runner.invoke(main, ["disconnect"])

        assert result.exit_code == 0
        assert "Disconnected" in result.output
        assert not CredentialStore(cli_env).has_stored_credentials()


class TestAccountCommands:
    """Tests for whoami and orgs."""

    def test_not_connected(self, runner: CliRunner, cli_env: Path) -> None:
        result = runner.invoke(main, ["whoami"])

        assert result.exit_code == 1
        assert "Not connected" in result.output

    def test_whoami_with_stored_credentials(self, runner: CliRunner, cli_env: Path) -> None:
        CredentialStore(cli_env).configure("https://stored.example.com", "sk_stored")
        api = FakeAPI({("GET", "/v1/whoami"): httpx.Response(200, json={"user": "jim@example.com"})})

        with serve(api):
            result = runner.invoke(main, ["whoami"])

        assert result.exit_code == 0
        assert "jim@example.com" in result.output
        assert api.requests[0].headers["authorization"] == "Bearer sk_stored"
        assert api.requests[0].url.host == "stored.example.com"

    def test_whoami_json(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("GET", "/v1/whoami"): httpx.Response(200, json={"user": "jim@example.com"})})

        with serve(api):
            result = runner.invoke(main, ["--json", "whoami"])

        assert result.exit_code == 0
        assert json.loads(result.output)["data"] == {"user": "jim@example.com"}
        assert api.requests[0].headers["authorization"] == "Bearer sk_env_key"

    def test_orgs_table(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({
            ("GET", "/v1/orgs"): httpx.Response(200, json=[{"id": "acme", "name": "Acme", "role": "admin"}]),
        })

        with serve(api):
            result = runner.invoke(main, ["orgs"])

        assert result.exit_code == 0
        assert "ID" in result.output
        assert "Acme" in result.output

    def test_orgs_json_keeps_api_fields(self, runner: CliRunner, api_key_env: Path) -> None:
        org = {"id": "acme", "name": "Acme", "role": "admin", "plan": "enterprise"}
        api = FakeAPI({("GET", "/v1/orgs"): httpx.Response(200, json={"data": [org]})})

        with serve(api):
            result = runner.invoke(main, ["--json", "orgs"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"success": True, "data": [org]}

    def test_api_error(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("GET", "/v1/whoami"): httpx.Response(401, json={"error": "bad key"})})

        with serve(api):
            result = runner.invoke(main, ["--json", "whoami"])

        assert result.exit_code == 1
        error = json.loads(result.output)["error"]
        assert error["type"] == "APIError"
        assert error["status"] == 401


class TestAgentsCommands:
    """Tests for the agents command group."""

    def test_list(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("GET", "/v1/agents"): httpx.Response(200, json={"data": [AGENT]})})

        with serve(api):
            result = runner.invoke(main, ["agents", "list", "--limit", "5"])

        assert result.exit_code == 0
        assert "agt_123" in result.output
        assert "Support Bot" in result.output
        assert api.requests[0].url.params["limit"] == "5"

    def test_list_json(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("GET", "/v1/agents"): httpx.Response(200, json=[AGENT])})

        with serve(api):
            result = runner.invoke(main, ["--json", "agents", "list"])

        assert result.exit_code == 0
        assert json.loads(result.output)["data"][0]["id"] == "agt_123"

    def test_get(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("GET", "/v1/agents/agt_123"): httpx.Response(200, json=AGENT)})

        with serve(api):
            result = runner.invoke(main, ["--json", "agents", "get", "agt_123"])

        assert result.exit_code == 0
        assert json.loads(result.output)["data"]["name"] == "Support Bot"

    def test_get_missing(self, runner: CliRunner, api_key_env: Path) -> None:
        with serve(FakeAPI({})):
            result = runner.invoke(main, ["agents", "get", "agt_missing"])

        assert result.exit_code == 1
        assert "Resource not found" in result.output

    def test_create(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("POST", "/v1/agents"): httpx.Response(201, json=AGENT)})

        with serve(api):
            result = runner.invoke(
                main,
                [
                    "agents", "create",
                    "--name", "Support Bot",
                    "--model", "claude-sonnet-4",
                    "--system-prompt", "You are helpful.",
                    "--tool", "search_kb",
                    "--tool", "create_ticket",
                    "--temperature", "0.3",
                ],
            )

        assert result.exit_code == 0
        assert "Created agent agt_123" in result.output
        body = json.loads(api.requests[0].content)
        assert body["tools"] == ["search_kb", "create_ticket"]
        assert body["temperature"] == 0.3

    def test_create_requires_name(self, runner: CliRunner, api_key_env: Path) -> None:
        result = runner.invoke(main, ["agents", "create", "--model", "m", "--system-prompt", "p"])
        assert result.exit_code == 2

    def test_delete(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("DELETE", "/v1/agents/agt_123"): httpx.Response(204)})

        with serve(api):
            result = runner.invoke(main, ["agents", "delete", "agt_123"])

        assert result.exit_code == 0
        assert "Deleted agent agt_123" in result.output

    def test_test(self, runner: CliRunner, api_key_env: Path) -> None:
        api = FakeAPI({("POST", "/v1/agents/agt_123/test"): httpx.Response(200, json={"content": "Hello back!"})})

        with serve(api):
            result = runner.invoke(main, ["agents", "test", "agt_123", "Hello!"])

        assert result.exit_code == 0
        assert "Hello back!" in result.output
        assert json.loads(api.requests[0].content) == {"messages": [{"role": "user", "content": "Hello!"}]}

    def test_test_stream(self, runner: CliRunner, api_key_env: Path) -> None:
        body = (
            b'{"type": "chunk", "text": "Once "}\n'
            b'{"type": "tool_call", "name": "search_kb"}\n'
            b'{"type": "chunk", "text": "upon a time"}\n'
            b'{"type": "done"}\n'
        )
        api = FakeAPI({("POST", "/v1/agents/agt_123/test/stream"): httpx.Response(200, content=body)})

        with serve(api):
            result = runner.invoke(main, ["agents", "test", "agt_123", "Story?", "--stream"])

        assert result.exit_code == 0
        assert "Once " in result.output
        assert "upon a time" in result.output
        assert "[tool call] search_kb" in result.output

    def test_test_stream_json(self, runner: CliRunner, api_key_env: Path) -> None:
        body = b'{"type": "chunk", "text": "Hi"}\n{"type": "chunk", "text": "!"}\n{"type": "done"}\n'
        api = FakeAPI({("POST", "/v1/agents/agt_123/test/stream"): httpx.Response(200, content=body)})

        with serve(api):
            result = runner.invoke(main, ["--json", "agents", "test", "agt_123", "Hey", "--stream"])

        assert result.exit_code == 0
        assert json.loads(result.output)["data"] == {"content": "Hi!", "tool_calls": []}

    def test_deploy(self, runner: CliRunner, api_key_env: Path) -> None:
        deployment = {"id": "dep_1", "endpoint": "https://agents.clawbreaker.dev/agt_123"}
        api = FakeAPI({("POST", "/v1/agents/agt_123/deploy"): httpx.Response(200, json=deployment)})

        with serve(api):
            result = runner.invoke(main, ["agents", "deploy", "agt_123", "--env", "production", "--note", "v1"])

        assert result.exit_code == 0
        assert "Deployed agt_123 to production" in result.output
        assert "Endpoint: https://agents.clawbreaker.dev/agt_123" in result.output
        assert json.loads(api.requests[0].content) == {"environment": "production", "note": "v1"}

    def test_deploy_invalid_env(self, runner: CliRunner, api_key_env: Path) -> None:
        result = runner.invoke(main, ["agents", "deploy", "agt_123", "--env", "dev"])
        assert result.exit_code == 2
