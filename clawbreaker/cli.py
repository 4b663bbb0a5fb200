"""CLI entry point for Clawbreaker."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import click

from . import __version__
from .agent import DEPLOY_ENVIRONMENTS, Agent, Chunk, ToolCall, ToolResult
from .client import Client
from .config import Config, Credentials, load_config
from .connection import connect as connect_to, disconnect as disconnect_from, orgs as list_orgs, whoami as get_whoami
from .credentials import CredentialStore, CredentialStoreError
from .errors import ClawbreakerError
from .output import OutputHandler

# Logger for CLI
logger = logging.getLogger("clawbreaker")

T = TypeVar("T")


@click.group()
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, json_mode: bool, env_path: str | None, verbose: bool) -> None:
    """Clawbreaker - Build, test and deploy AI agents."""
    ctx.ensure_object(dict)
    ctx.obj["json_mode"] = json_mode
    ctx.obj["env_path"] = Path(env_path) if env_path else None
    ctx.obj["output"] = OutputHandler(json_mode)

    # Configure logging based on verbosity
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def get_config(ctx: click.Context) -> Config:
    """Get config from context, handling errors."""
    output: OutputHandler = ctx.obj["output"]
    try:
        return load_config(ctx.obj["env_path"])
    except ValueError as e:
        output.error(
            e,
            error_type="ConfigError",
            help_text="Check the CLAWBREAKER_* environment variables and your .env file.",
        )


def get_store(config: Config) -> CredentialStore:
    return CredentialStore(config.credentials_dir)


def make_client(credentials: Credentials, config: Config) -> Client:
    """Create the API client used by commands."""
    return Client(credentials, timeout=config.http_timeout)


def get_credentials(ctx: click.Context, config: Config) -> Credentials:
    """Resolve credentials from the environment or the credential store."""
    output: OutputHandler = ctx.obj["output"]

    if config.api_key:
        return Credentials(base_url=config.url, api_key=config.api_key, org=config.org)

    try:
        credentials = get_store(config).load_stored_credentials()
    except CredentialStoreError as e:
        output.error(e)

    if credentials is None:
        output.error(
            ClawbreakerError("Not connected to Clawbreaker"),
            error_type="NotConnected",
            help_text="Run 'clawbreaker connect' or set CLAWBREAKER_API_KEY.",
        )
    return credentials


def run_with_client(ctx: click.Context, action: Callable[[Client], Awaitable[T]]) -> T:
    """Run an async action against an authenticated client."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)
    credentials = get_credentials(ctx, config)
    logger.debug(f"Using credentials for {credentials.base_url}")

    async def _run() -> T:
        async with make_client(credentials, config) as client:
            return await action(client)

    try:
        return asyncio.run(_run())
    except ClawbreakerError as e:
        output.error(e)


def _agent_ref(agent_id: str) -> Agent:
    """A saved agent known only by its id."""
    return Agent(name="", model="", system_prompt="", id=agent_id)


@main.command()
@click.option("--url", help="Clawbreaker instance URL")
@click.option("--api-key", help="API key (skips the browser login)")
@click.option("--org", help="Organization to connect to")
@click.option("--no-persist", is_flag=True, help="Do not save credentials to disk")
@click.pass_context
def connect(ctx: click.Context, url: str | None, api_key: str | None, org: str | None, no_persist: bool) -> None:
    """Connect to Clawbreaker.

    Uses --api-key when given, then credentials saved by an earlier
    session, and otherwise opens the browser to log in.
    """
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)

    try:
        credentials = connect_to(
            url=url,
            api_key=api_key or config.api_key,
            org=org or config.org,
            store=get_store(config),
            config=config,
            persist=not no_persist,
            on_status=output.status,
        )
    except (ClawbreakerError, ValueError) as e:
        output.error(e, help_text="Run 'clawbreaker connect' again to retry.")

    output.success(
        {"url": credentials.base_url, "org": credentials.org},
        human_message=click.style(f"Connected to {credentials.base_url}", fg="green"),
    )


@main.command()
@click.pass_context
def disconnect(ctx: click.Context) -> None:
    """Disconnect and delete stored credentials."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)

    try:
        disconnect_from(get_store(config))
    except OSError as e:
        output.error(e)

    output.success({"message": "Disconnected"}, human_message="Disconnected from Clawbreaker.")


@main.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the current user and organization."""
    output: OutputHandler = ctx.obj["output"]
    info = run_with_client(ctx, get_whoami)

    if ctx.obj["json_mode"]:
        output.success(info)
        return

    for key, value in info.items():
        click.secho(f"{key}: ", fg="cyan", nl=False)
        click.echo(value)


@main.command()
@click.pass_context
def orgs(ctx: click.Context) -> None:
    """List organizations you belong to."""
    output: OutputHandler = ctx.obj["output"]
    result = run_with_client(ctx, list_orgs)

    if ctx.obj["json_mode"]:
        output.success(result)
        return

    output.table(
        ["ID", "NAME", "ROLE"],
        [[str(o.get("id", "")), str(o.get("name", "")), str(o.get("role", ""))] for o in result],
    )


@main.group()
@click.pass_context
def agents(ctx: click.Context) -> None:
    """Create, test and deploy agents."""
    pass


@agents.command("list")
@click.option("--limit", "-l", type=int, help="Maximum agents to return")
@click.option("--offset", type=int, help="Number of agents to skip")
@click.pass_context
def agents_list(ctx: click.Context, limit: int | None, offset: int | None) -> None:
    """List agents."""
    output: OutputHandler = ctx.obj["output"]
    result = run_with_client(ctx, lambda client: client.agents.list(limit=limit, offset=offset))

    if ctx.obj["json_mode"]:
        output.success([agent.to_dict() for agent in result])
        return

    output.table(
        ["ID", "NAME", "MODEL", "TOOLS"],
        [[a.id or "", a.name, a.model, ", ".join(a.tools)] for a in result],
    )


@agents.command("get")
@click.argument("agent_id")
@click.pass_context
def agents_get(ctx: click.Context, agent_id: str) -> None:
    """Show an agent."""
    output: OutputHandler = ctx.obj["output"]
    agent = run_with_client(ctx, lambda client: client.agents.get(agent_id))
    output.success(agent.to_dict())


@agents.command("create")
@click.option("--name", required=True, help="Agent name")
@click.option("--model", required=True, help="Model ID, e.g. claude-sonnet-4")
@click.option("--system-prompt", required=True, help="System prompt")
@click.option("--tool", "tools", multiple=True, help="Tool ID (repeatable)")
@click.option("--temperature", type=click.FloatRange(0.0, 1.0), default=0.7, show_default=True)
@click.pass_context
def agents_create(
    ctx: click.Context,
    name: str,
    model: str,
    system_prompt: str,
    tools: tuple[str, ...],
    temperature: float,
) -> None:
    """Create an agent."""
    output: OutputHandler = ctx.obj["output"]
    agent = run_with_client(
        ctx,
        lambda client: client.agents.create(
            name=name,
            model=model,
            system_prompt=system_prompt,
            tools=list(tools),
            temperature=temperature,
        ),
    )
    output.success(agent.to_dict(), human_message=click.style(f"Created agent {agent.id}", fg="green"))


@agents.command("delete")
@click.argument("agent_id")
@click.pass_context
def agents_delete(ctx: click.Context, agent_id: str) -> None:
    """Delete an agent."""
    output: OutputHandler = ctx.obj["output"]
    run_with_client(ctx, lambda client: client.agents.delete(_agent_ref(agent_id)))
    output.success({"id": agent_id, "deleted": True}, human_message=f"Deleted agent {agent_id}")


@agents.command("test")
@click.argument("agent_id")
@click.argument("message")
@click.option("--stream", is_flag=True, help="Print the response as it is generated")
@click.pass_context
def agents_test(ctx: click.Context, agent_id: str, message: str, stream: bool) -> None:
    """Send MESSAGE to an agent and show the response."""
    output: OutputHandler = ctx.obj["output"]
    agent = _agent_ref(agent_id)

    if not stream:
        result = run_with_client(ctx, lambda client: client.agents.test(agent, message))
        content = result.get("content") if isinstance(result, dict) else None
        output.success(result, human_message=content if isinstance(content, str) else None)
        return

    async def _stream(client: Client) -> dict[str, Any]:
        text: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        async for event in client.agents.stream_test(agent, message):
            if isinstance(event, Chunk):
                text.append(event.text)
                output.stream_text(event.text)
            elif isinstance(event, ToolCall):
                tool_calls.append(event.data)
                output.note(f"\n[tool call] {event.data.get('name', '')}")
            elif isinstance(event, ToolResult):
                output.note(f"[tool result] {event.data.get('name', '')}")
        return {"content": "".join(text), "tool_calls": tool_calls}

    result = run_with_client(ctx, _stream)
    if ctx.obj["json_mode"]:
        output.success(result)
    else:
        click.echo()


@agents.command("deploy")
@click.argument("agent_id")
@click.option("--env", type=click.Choice(DEPLOY_ENVIRONMENTS), default="staging", show_default=True)
@click.option("--note", help="Deployment note")
@click.pass_context
def agents_deploy(ctx: click.Context, agent_id: str, env: str, note: str | None) -> None:
    """Deploy an agent to staging or production."""
    output: OutputHandler = ctx.obj["output"]
    deployment = run_with_client(
        ctx, lambda client: client.agents.deploy(_agent_ref(agent_id), env=env, note=note)
    )

    endpoint = deployment.get("endpoint") if isinstance(deployment, dict) else None
    message = f"Deployed {agent_id} to {env}"
    if endpoint:
        message += f"\nEndpoint: {endpoint}"
    output.success(deployment, human_message=click.style(message, fg="green"))


if __name__ == "__main__":
    main()
