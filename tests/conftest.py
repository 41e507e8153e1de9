"""Shared fixtures for telegram-logger tests."""

import json
from pathlib import Path

import httpx
import pytest

from telegram_logger.alerter import MemoryStore, TelegramClient
from telegram_logger.config import ENV_VARS, Config


class FakeTelegram:
    """Stub Bot API recording every sendMessage call.

    `responses` is consumed in order; once empty, every call succeeds.
    An entry may be a dict (JSON body), bytes (raw body) or an exception.
    """

    def __init__(self):
        self.requests: list[dict] = []
        self.responses: list = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        response = self.responses.pop(0) if self.responses else {"ok": True}

        if isinstance(response, Exception):
            raise response
        if isinstance(response, bytes):
            return httpx.Response(200, content=response)

        status = 200 if response.get("ok") else 400
        return httpx.Response(status, json=response)

    @property
    def texts(self) -> list[str]:
        return [r["text"] for r in self.requests]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's TELEGRAM_LOGGER_* settings out of tests."""
    for var in list(ENV_VARS.values()) + ["APP_NAME", "APP_ENV"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        bot_token="123:abc",
        chat_id="-100200",
        project_name="Shop",
        environment="production",
        notify_environments=["production", "staging"],
        throttle=60,
        log_path=tmp_path / "laravel.log",
        state_dir=tmp_path / "state",
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def telegram() -> FakeTelegram:
    return FakeTelegram()


@pytest.fixture
def client(telegram: FakeTelegram) -> TelegramClient:
    return TelegramClient("123:abc", "-100200", transport=httpx.MockTransport(telegram.handler))
