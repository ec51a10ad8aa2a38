"""
Shared fixtures for agent_core tests
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
import fakeredis
from fakeredis import aioredis as fake_aioredis

from agent_core.embeddings import HashingEmbeddingProvider
from agent_core.session_store import InMemorySessionStore, RedisSessionStore


MARKDOWN_DOC = """---
title: Markdown Guide
---
Markdown syntax uses hash characters for headings and asterisks for emphasis. Markdown syntax also defines lists, links and code blocks. Tables in markdown syntax use pipes and dashes."""

BLOGGING_DOC = """---
title: Blogging Tips
---
A blog post should open with a strong headline. Publish posts on a regular schedule and keep paragraphs short. Proofread every post before publishing it online."""


class FakeClock:
    """Controllable time source"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


def make_completion(content):
    """Shape of an AsyncOpenAI chat completion"""
    return SimpleNamespace(
        choices=[SimpleNamespace(
            message=SimpleNamespace(content=content),
            finish_reason="stop",
        )],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hashing_provider():
    return HashingEmbeddingProvider(dimension=1024)


@pytest.fixture
def docs_dir(tmp_path):
    """Two-document corpus; with max_chunk_size=80 and no overlap each sentence is one chunk"""
    (tmp_path / "markdown.md").write_text(MARKDOWN_DOC, encoding="utf-8")
    (tmp_path / "blogging.md").write_text(BLOGGING_DOC, encoding="utf-8")
    return tmp_path


@pytest.fixture
def memory_store(clock):
    return InMemorySessionStore(ttl_seconds=3600, clock=clock)


@pytest.fixture
def fake_redis():
    return fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest_asyncio.fixture
async def redis_store(fake_redis, clock):
    store = RedisSessionStore(ttl_seconds=3600, client=fake_redis, clock=clock)
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
def mock_openai_client():
    """AsyncOpenAI stand-in returning a fixed completion"""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion("This is a test response"))
    return client
