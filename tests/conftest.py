"""
Pytest fixtures for the PageLM client.

- backend: an in-memory FakeBackend (FastAPI app, reached through httpx ASGITransport)
- api: a PageLMClient bound to it
- ws: FakeStreams, the scripted WebSocket connector
- streams: a SubscriptionManager using ws
- prefs: a MemoryPreferenceStore
"""
import os

import pytest

# keep the developer's real backend and preference file out of tests
os.environ.setdefault("PAGELM_BACKEND_URL", "http://pagelm.test")
os.environ.setdefault("PAGELM_LOG_LEVEL", "DEBUG")

from pagelm.db.preferences import MemoryPreferenceStore
from pagelm.services.api_client import PageLMClient
from pagelm.services.subscription import SubscriptionManager
from tests.fake_backend import FakeBackend, FakeStreams

BASE_URL = "http://pagelm.test"


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def api(backend):
    client = PageLMClient(BASE_URL, transport=backend.transport())
    yield client
    await client.aclose()


@pytest.fixture
def ws():
    return FakeStreams()


@pytest.fixture
async def streams(ws):
    manager = SubscriptionManager(ws)
    yield manager
    manager.close_all()


@pytest.fixture
def prefs():
    return MemoryPreferenceStore()


@pytest.fixture
def subject(backend):
    """A subject that already exists on the backend."""
    return backend.add_subject("Biology")
