"""
Shared fixtures: a scripted generation backend and scripted lookup tools,
so no test reaches a real backend. HTTP clients are pointed at a local
aiohttp server instead.
"""

import os

os.environ.setdefault("LOG_TO_FILE", "false")

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

import pytest
from aiohttp import test_utils, web

from app.core.llm_service import BaseLLMService, LLMConfig, LLMResponse
from app.memory.conversation_store import ConversationStore
from app.tools.base_tool import BaseTool, ToolInput, ToolMetadata, ToolOutput, ExternalDataFailure
from app.tools.data_gateway import ExternalDataGateway
from app.agents.travel_assistant import TravelAssistant

LONG_REPLY = (
    "Paris in summer is lovely: stroll along the Seine, visit the Louvre early "
    "in the morning and book a picnic spot in the Luxembourg Gardens."
)


class FakeLLMService(BaseLLMService):
    """Replays scripted replies; an Exception entry is raised instead of returned"""

    def __init__(self, script: Optional[List[Union[str, Exception]]] = None,
                 default: Union[str, Exception] = LONG_REPLY,
                 health: Optional[Dict[str, Any]] = None,
                 delay: float = 0.0):
        super().__init__(LLMConfig(provider="fake", model="fake-model"))
        self.script = list(script or [])
        self.default = default
        self.health = health or {
            "available": True, "model": "fake-model", "modelReady": True, "message": "ok",
        }
        self.delay = delay
        self.calls: List[List[Dict[str, str]]] = []

    async def chat_completion(self, messages, **kwargs) -> LLMResponse:
        self.calls.append([dict(m) for m in messages])
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        return LLMResponse(content=item, model="fake-model", token_count=len(item.split()))

    async def health_check(self) -> Dict[str, Any]:
        return dict(self.health)


class FakeTool(BaseTool):
    """Lookup returning fixed data, raising, or hanging"""

    def __init__(self, name: str, data: Optional[Dict[str, Any]] = None,
                 fail: bool = False, hang: bool = False, timeout: float = 1.0):
        super().__init__(ToolMetadata(name=name, description=f"fake {name}", category="test", timeout=timeout))
        self.data = data or {}
        self.fail = fail
        self.hang = hang
        self.locations: List[str] = []

    async def _execute(self, input_data: ToolInput) -> ToolOutput:
        self.locations.append(input_data.location)
        if self.hang:
            await asyncio.sleep(10)
        if self.fail:
            raise ExternalDataFailure(f"{self.metadata.name} lookup failed")
        return ToolOutput(success=True, data=dict(self.data))


WEATHER_DATA = {"temperature": 21, "condition": "clear sky", "humidity": 40}
COUNTRY_DATA = {"name": "France", "capital": "Paris", "languages": ["French"],
                "currency": "Euro (€)", "region": "Europe"}


@pytest.fixture
def store():
    return ConversationStore(max_history_length=20)


@pytest.fixture
def llm():
    return FakeLLMService()


@pytest.fixture
def weather_tool():
    return FakeTool("weather", data=WEATHER_DATA)


@pytest.fixture
def country_tool():
    return FakeTool("country", data=COUNTRY_DATA)


@pytest.fixture
def gateway(weather_tool, country_tool):
    return ExternalDataGateway(weather_tool=weather_tool, country_tool=country_tool)


@pytest.fixture
def assistant(llm, store, gateway):
    return TravelAssistant(
        llm_service=llm,
        store=store,
        data_gateway=gateway,
        retry_attempts=3,
        retry_delay=0,
    )


@pytest.fixture
def make_llm():
    return FakeLLMService


@pytest.fixture
def make_tool():
    return FakeTool


@asynccontextmanager
async def local_server(routes: List[web.RouteDef]):
    """Serve the given routes on localhost and yield the base url"""
    app = web.Application()
    app.add_routes(routes)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("")).rstrip("/")
    finally:
        await server.close()


@pytest.fixture
def serve():
    return local_server
