"""Shared fixtures: HttpClients backed by fake upstreams, and a sleep recorder."""

from __future__ import annotations

import httpx
import pytest

from carrot_commons.clients.base import HttpClient
from carrot_commons.utils import retry as retry_module


@pytest.fixture
def make_client():
    """Factory building an HttpClient whose transport is a fake upstream."""

    def factory(base_url: str, upstream, **kwargs) -> HttpClient:
        return HttpClient(base_url, 5.0, transport=httpx.MockTransport(upstream), **kwargs)

    return factory


@pytest.fixture
def no_sleep(monkeypatch):
    """Replace the retry driver's backoff sleeps with a recorder."""
    sleeps: list[float] = []
    real_sleep = retry_module.asyncio.sleep

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(retry_module.asyncio, "sleep", fake_sleep)
    return sleeps
