import pathlib
import sys
from types import MappingProxyType, SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from botbridge.bots.messages import BotMessage
from botbridge.bots.webhook import WebhookClient, WebhookDestination
from botbridge.channels.hangouts import HangoutsChatChannel
from botbridge.config import Settings

VERIFY_TOKEN = "verify-me"
WEBHOOK_URL = "https://bot.example.com/webhook"
WEBHOOK_SECRET = "webhook-secret"


class FakeAuth:
    """Stands in for GoogleServiceAuth without touching Google."""

    def __init__(self, error: Exception | None = None):
        self.calls = 0
        self.error = error
        self.credentials = SimpleNamespace(token="access-token")

    async def authorize(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.credentials


class FakeChatApi:
    def __init__(self, error: Exception | None = None):
        self.messages: list[dict[str, Any]] = []
        self.error = error

    async def create_message(self, credentials, parent, body):
        if self.error is not None:
            raise self.error
        self.messages.append({"credentials": credentials, "parent": parent, "body": body})
        return {"name": f"{parent}/messages/1"}


class RecordingWebhookClient(WebhookClient):
    """Records outgoing bot messages; replies are verified by the real client."""

    def __init__(self, error: Exception | None = None):
        super().__init__(timeout=5)
        self.sent: list[tuple[BotMessage, WebhookDestination]] = []
        self.error = error

    async def send(self, message, destination):
        if self.error is not None:
            raise self.error
        self.sent.append((message, destination))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        verification_token=VERIFY_TOKEN,
        webhook_url=WEBHOOK_URL,
        webhook_secret=WEBHOOK_SECRET,
        request_timeout=5.0,
        static_dir=str(tmp_path / "static"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def fake_auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def chat_api() -> FakeChatApi:
    return FakeChatApi()


@pytest.fixture
def hangouts(fake_auth, chat_api) -> HangoutsChatChannel:
    return HangoutsChatChannel(VERIFY_TOKEN, auth=fake_auth, chat_api=chat_api)


@pytest.fixture
def webhook() -> RecordingWebhookClient:
    return RecordingWebhookClient()


@pytest.fixture
def app_factory(settings, hangouts, webhook):
    from botbridge.main import create_app

    def _create_app(**overrides):
        registry = overrides.pop("registry", MappingProxyType({"hangouts": hangouts}))
        return create_app(
            overrides.pop("settings", settings),
            registry=registry,
            webhook=overrides.pop("webhook", webhook),
        )

    return _create_app


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as test_client:
        yield test_client


def hangouts_event(event_type: str = "MESSAGE", **overrides: Any) -> dict[str, Any]:
    """Build a Hangouts Chat event payload."""

    event = {
        "type": event_type,
        "token": VERIFY_TOKEN,
        "user": {
            "name": "users/42",
            "displayName": "Ada Lovelace",
            "email": "a@x.com",
        },
        "space": {"name": "spaces/7", "type": "DM"},
        "message": {"name": "spaces/7/messages/1", "argumentText": " hello "},
    }
    event.update(overrides)
    return event
