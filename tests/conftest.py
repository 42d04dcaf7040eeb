import asyncio

import pytest

pytest.importorskip("httpx", reason="httpx is required for the FastAPI test client")

from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from storychain.apps.rooms.registry import RoomRegistry
from storychain.apps.rooms.service import RoomService
from storychain.apps.ws.service import BroadcastHub
from storychain.core.config import Settings
from storychain.main import create_app


class StubProvider:
    """Content provider that answers instantly with canned text."""

    def __init__(self, twist="A dragon lands on the roof.", suggestion="Ada should go next.", prompt="Describe the storm."):
        self.twist = twist
        self.suggestion = suggestion
        self.prompt = prompt
        self.calls = []

    async def generate_twist(self, story_text):
        self.calls.append(("twist", story_text))
        return self.twist

    async def generate_player_suggestion(self, player_names):
        self.calls.append(("suggestion", list(player_names)))
        return self.suggestion

    async def generate_prompt(self, story_text, player_names):
        self.calls.append(("prompt", story_text, list(player_names)))
        return self.prompt


class FakeChannel:
    """Stands in for a starlette WebSocket inside the hub."""

    def __init__(self, name="ch", fail=False, stall=False):
        self.name = name
        self.fail = fail
        self.stall = stall
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection reset")
        if self.stall:
            await asyncio.sleep(3600)
        self.sent.append(data)

    def types(self):
        return [m["type"] for m in self.sent]

    def __repr__(self):
        return f"FakeChannel({self.name})"


@pytest.fixture
def settings():
    return Settings(
        GEMINI_API_KEY="",
        DEFAULT_MAX_ROUNDS=5,
        DEFAULT_AI_MODE="manual_only",
        AUTO_TWIST_ENABLED=True,
        CONTENT_PROVIDER_TIMEOUT=1.0,
        LOG_LEVEL="WARNING",
        _env_file=None,
    )


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def service(settings, provider):
    return RoomService(RoomRegistry(), BroadcastHub(), provider, settings)


@pytest.fixture
def app(settings, provider):
    return create_app(settings=settings, content_provider=provider)


@pytest.fixture
def client(app):
    # Context-managed so REST calls, websockets and background tasks share one event loop
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_channel():
    return FakeChannel
