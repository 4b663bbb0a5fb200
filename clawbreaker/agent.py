"""Agent management on the Clawbreaker platform.

Creating agents:

    agent = await client.agents.create(
        name="Support Bot",
        model="claude-sonnet-4",
        system_prompt="You are a helpful support agent.",
        tools=["search_kb", "create_ticket"],
    )

Testing agents, including unsaved ones built locally with Agent(...):

    response = await client.agents.test(agent, "Hello!")

    async for event in client.agents.stream_test(agent, "Tell me a story"):
        if isinstance(event, Chunk):
            print(event.text, end="")

Deploying agents:

    deployment = await client.agents.deploy(agent, env="production")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator

from .errors import APIError, ClawbreakerError

if TYPE_CHECKING:
    from .client import Client

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7

DEPLOY_ENVIRONMENTS = ("staging", "production")


@dataclass
class Agent:
    """An agent definition, saved on the server once it has an id."""

    name: str
    model: str
    system_prompt: str
    tools: list[str] = field(default_factory=list)
    temperature: float = DEFAULT_TEMPERATURE
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    def is_saved(self) -> bool:
        """Check whether the agent exists on the server."""
        return self.id is not None

    def to_api(self) -> dict[str, Any]:
        """Fields sent when creating or testing an agent."""
        return {
            "name": self.name,
            "model": self.model,
            "system_prompt": self.system_prompt,
            "tools": list(self.tools),
            "temperature": self.temperature,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {"id": self.id, **self.to_api(), "metadata": self.metadata}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Agent:
        """Create from an API response object."""
        temperature = data.get("temperature")
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            model=data.get("model", ""),
            system_prompt=data.get("system_prompt", ""),
            tools=data.get("tools") or [],
            temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
            metadata=data.get("metadata") or {},
        )


# Stream events


@dataclass(frozen=True)
class Chunk:
    """Text produced by the model."""

    text: str


@dataclass(frozen=True)
class ToolCall:
    """The agent is calling a tool."""

    data: dict[str, Any]


@dataclass(frozen=True)
class ToolResult:
    """A tool returned a result."""

    data: dict[str, Any]


@dataclass(frozen=True)
class Done:
    """The stream is complete."""


@dataclass(frozen=True)
class Unknown:
    """An event type this client does not know."""

    data: dict[str, Any]


StreamEvent = Chunk | ToolCall | ToolResult | Done | Unknown


def parse_stream_event(event: dict[str, Any]) -> StreamEvent:
    """Map a decoded stream line to a StreamEvent."""
    event_type = event.get("type")
    if event_type == "chunk" and isinstance(event.get("text"), str):
        return Chunk(event["text"])
    if event_type == "tool_call":
        return ToolCall(event)
    if event_type == "tool_result":
        return ToolResult(event)
    if event_type == "done":
        return Done()
    return Unknown(event)


def normalize_messages(message: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Turn a single user message into a conversation."""
    if isinstance(message, str):
        return [{"role": "user", "content": message}]
    return list(message)


def _require_id(agent: Agent, action: str) -> str:
    if agent.id is None:
        raise ClawbreakerError(
            f"Cannot {action} an agent that hasn't been created. Use create() first."
        )
    return agent.id


class Agents:
    """Agent operations for a Client."""

    def __init__(self, client: Client):
        self.client = client

    async def create(
        self,
        name: str,
        model: str,
        system_prompt: str,
        tools: list[str] | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> Agent:
        """Create a new agent on the server.

        Args:
            name: Agent name
            model: Model ID like "claude-sonnet-4"
            system_prompt: System prompt
            tools: List of tool IDs
            temperature: Sampling temperature 0.0-1.0

        Returns:
            The created Agent, with its id
        """
        agent = Agent(
            name=name,
            model=model,
            system_prompt=system_prompt,
            tools=tools or [],
            temperature=temperature,
        )
        data = await self.client.post("/v1/agents", agent.to_api())
        return Agent.from_api(data)

    async def list(self, limit: int | None = None, offset: int | None = None) -> list[Agent]:
        """List agents.

        The server may answer with {"data": [...]} or a bare list.
        """
        data = await self.client.get("/v1/agents", params={"limit": limit, "offset": offset})

        if isinstance(data, dict) and isinstance(data.get("data"), list):
            items = data["data"]
        elif isinstance(data, list):
            items = data
        else:
            raise APIError("Unexpected response listing agents", body=data)

        return [Agent.from_api(item) for item in items]

    async def get(self, agent_id: str) -> Agent:
        """Get an agent by ID."""
        data = await self.client.get(f"/v1/agents/{agent_id}")
        return Agent.from_api(data)

    async def update(self, agent: Agent, **updates: Any) -> Agent:
        """Update fields of a saved agent.

        Example:
            agent = await client.agents.update(agent, temperature=0.5, name="New Name")
        """
        agent_id = _require_id(agent, "update")
        data = await self.client.put(f"/v1/agents/{agent_id}", updates)
        return Agent.from_api(data)

    async def delete(self, agent: Agent) -> None:
        """Delete a saved agent."""
        agent_id = _require_id(agent, "delete")
        await self.client.delete(f"/v1/agents/{agent_id}")

    async def test(
        self,
        agent: Agent,
        message: str | list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Test an agent with a message or a conversation.

        Unsaved agents are sent inline with the request.
        """
        messages = normalize_messages(message)

        if agent.id is not None:
            result: dict[str, Any] = await self.client.post(
                f"/v1/agents/{agent.id}/test", {"messages": messages}
            )
        else:
            result = await self.client.post(
                "/v1/agents/test", {"agent": agent.to_api(), "messages": messages}
            )
        return result

    async def stream_test(
        self,
        agent: Agent,
        message: str | list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        """Test an agent, yielding events as the model produces them."""
        messages = normalize_messages(message)

        if agent.id is not None:
            path = f"/v1/agents/{agent.id}/test/stream"
            body: dict[str, Any] = {"messages": messages}
        else:
            path = "/v1/agents/test/stream"
            body = {"agent": agent.to_api(), "messages": messages}

        async for event in self.client.stream(path, body):
            yield parse_stream_event(event)

    async def deploy(
        self,
        agent: Agent,
        env: str = "staging",
        note: str | None = None,
    ) -> dict[str, Any]:
        """Deploy a saved agent to staging or production.

        Returns:
            The deployment object, e.g. with its "endpoint"
        """
        agent_id = _require_id(agent, "deploy")
        if env not in DEPLOY_ENVIRONMENTS:
            raise ValueError(f"env must be one of {', '.join(DEPLOY_ENVIRONMENTS)}, got {env!r}")

        result: dict[str, Any] = await self.client.post(
            f"/v1/agents/{agent_id}/deploy", {"environment": env, "note": note}
        )
        return result
