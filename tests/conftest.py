from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from persona_chat.domain.context.memory.session_store import SessionStore
from persona_chat.domain.models.chat_state import ModelResponse, PersonaConfig, ToolSpec, Turn
from persona_chat.domain.orchestration.core.chat_engine import ChatEngine, EngineConfig

Scripted = Union[ModelResponse, Exception, Callable[[str, Sequence[Turn]], ModelResponse]]


class ScriptedModelClient:
    """Replays canned responses and records every request"""

    def __init__(self, responses: Optional[List[Scripted]] = None, default: Optional[ModelResponse] = None) -> None:
        self.responses = list(responses or [])
        self.default = default or ModelResponse(text="ok")
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system_prompt: str, messages: Sequence[Turn], tool_specs=None) -> ModelResponse:
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tool_specs": list(tool_specs or []),
        })
        if not self.responses:
            return self.default
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(system_prompt, messages)
        return item


class EchoModelClient(ScriptedModelClient):
    """Replies with the text of the newest user turn"""

    def __init__(self, delay: float = 0.0) -> None:
        super().__init__()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, system_prompt: str, messages: Sequence[Turn], tool_specs=None) -> ModelResponse:
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages), "tool_specs": list(tool_specs or [])})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return ModelResponse(text=f"echo: {messages[-1].text}")
        finally:
            self.in_flight -= 1


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_engine(model_client, persona: Optional[PersonaConfig] = None, **kwargs) -> ChatEngine:
    persona = persona or PersonaConfig(name="code_helper", instruction="You are a programming assistant.")
    config_fields = {key: kwargs.pop(key) for key in ("max_tool_depth", "model_timeout", "tool_timeout") if key in kwargs}
    config = EngineConfig(persona=persona, **config_fields)
    return ChatEngine(config, model_client, **kwargs)


def make_tool(name: str, handler, parameters: Optional[Dict[str, Any]] = None, **kwargs) -> ToolSpec:
    return ToolSpec(
        name=name,
        description=f"{name} tool",
        parameters=parameters or {"type": "object", "properties": {}},
        handler=handler,
        **kwargs,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> SessionStore:
    return SessionStore(ttl_seconds=60, clock=clock)
