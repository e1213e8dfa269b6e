"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from signet.models import WebhookSubscription
from signet.storage import SignetStorage

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def storage(tmp_path: Path) -> AsyncIterator[SignetStorage]:
    """SignetStorage backed by a fresh SQLite file."""
    store = SignetStorage(f"sqlite+aiosqlite:///{tmp_path / 'signet.db'}", echo=False)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def make_subscription() -> Callable[..., WebhookSubscription]:
    """Factory for subscriptions with sensible defaults."""

    def _make(**overrides: object) -> WebhookSubscription:
        fields: dict[str, object] = {
            "user_id": "user_1",
            "url": "https://hooks.example.com/signet",
            "events": ["document.completed"],
            "secret": "s3cret",
        }
        fields.update(overrides)
        return WebhookSubscription(**fields)  # type: ignore[arg-type]

    return _make


class FakeEndpoint:
    """Scripted receiver for ``httpx.MockTransport``.

    Replies are consumed in order and the last one repeats. A reply may
    be a status code or an exception instance to raise.
    """

    def __init__(self, *replies: int | Exception) -> None:
        self.replies = list(replies) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies[min(len(self.requests), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        return httpx.Response(reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def bodies(self) -> list[dict[str, object]]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def endpoint_factory() -> Callable[..., FakeEndpoint]:
    return FakeEndpoint
