from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cfp_engine.core.config import settings

# Override settings for tests
settings.app_env = "development"
settings.openrouter_api_key = "test-openrouter-key"
settings.firecrawl_api_key = ""
settings.llm_cache_enabled = False

from cfp_engine.analysis.types import QueryResult, Sentiment  # noqa: E402
from cfp_engine.core.result import Err, Ok  # noqa: E402
from cfp_engine.db.postgres import create_schema, make_session_factory  # noqa: E402
from cfp_engine.gateway.types import LlmResponse, PromptType, Query  # noqa: E402
from cfp_engine.main import app  # noqa: E402

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

MODELS = ["openai/gpt-4-turbo", "anthropic/claude-3-opus", "google/gemini-2.5-flash"]


async def no_sleep(_seconds: float) -> None:
    return None


class FakeGateway:
    """Stands in for OpenRouterClient.query_parallel.

    ``replies`` maps (model, prompt_type) to reply text; an Exception value
    becomes an Err for that query.
    """

    def __init__(self, replies=None, default: str = "", raise_on_call: Exception | None = None):
        self.replies = replies or {}
        self.default = default
        self.raise_on_call = raise_on_call
        self.calls: list[list[Query]] = []
        self.concurrency_limits: list[int | None] = []

    async def query_parallel(self, queries, max_concurrency=None):
        self.calls.append(list(queries))
        self.concurrency_limits.append(max_concurrency)
        if self.raise_on_call is not None:
            raise self.raise_on_call
        results = []
        for q in queries:
            reply = self.replies.get((q.model, q.prompt_type), self.default)
            if isinstance(reply, Exception):
                results.append(Err(reason=str(reply), exception=reply))
            else:
                results.append(Ok(LlmResponse(content=reply, tokens_used=42, model=q.model, processing_time_ms=5)))
        return results


def make_result(
    mentioned: bool = True,
    sentiment: Sentiment = Sentiment.POSITIVE,
    rank: int | None = None,
    prompt_type: PromptType = PromptType.RECOMMENDATION,
    confidence: float = 0.9,
    competitors: list[str] | None = None,
    raw: str = "",
    model: str = "openai/gpt-4-turbo",
    error: str | None = None,
) -> QueryResult:
    return QueryResult(
        model=model,
        prompt_type=prompt_type,
        mentioned=mentioned,
        sentiment=sentiment,
        confidence=confidence,
        rank_position=rank,
        competitor_mentions=competitors or [],
        raw_response=raw,
        tokens_used=100,
        prompt="test prompt",
        processing_time_ms=10,
        error=error,
    )


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite with the full schema, one database per test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await create_schema(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
