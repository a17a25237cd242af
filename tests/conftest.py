import json
from dataclasses import dataclass
from typing import Any, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from agent.query_pipeline import QueryPipeline
from api.routes import get_query_logger, get_query_pipeline
from main import app
from services.auth import get_optional_user_id
from services.query_logger import QueryLogger
from services.schema_registry import SchemaRegistry

TEST_REGISTRY = {
    "update.cl_pool_hist": {
        "description": "Live liquidity pool snapshots. ts is a BIGINT unix timestamp in seconds.",
        "columns": {
            "pool_id": "Pool identifier",
            "chain": "Chain name",
            "project": "Protocol name",
            "symbol": "Pool symbol, e.g. WETH-USDC",
            "tvl_usd": "Total value locked in USD",
            "apy": "Total APY in percent",
            "ts": "BIGINT unix seconds"
        },
        "primary_key": ["pool_id", "ts"]
    },
    "update.lending_market_history": {
        "description": "Live lending market rates.",
        "columns": {
            "symbol": "Asset symbol",
            "project": "Lending protocol",
            "chain": "Chain name",
            "apy_base_supply": "Supply APY",
            "apy_base_borrow": "Borrow APY",
            "ts": "BIGINT unix seconds"
        },
        "primary_key": ["symbol", "project", "chain", "ts"]
    },
    "update.token_price_daily": {
        "description": "Real-time token prices in USD.",
        "columns": {
            "symbol": "Token symbol",
            "price_usd": "Price in USD",
            "price_timestamp": "Timestamp of the price"
        },
        "primary_key": ["symbol", "price_timestamp"]
    },
    "clean.cl_pool_hist": {
        "description": "Historical liquidity pool snapshots.",
        "columns": {
            "pool_id": "Pool identifier",
            "symbol": "Pool symbol",
            "tvl_usd": "Total value locked in USD",
            "apy": "Total APY in percent",
            "ts": "BIGINT unix seconds"
        },
        "primary_key": ["pool_id", "ts"]
    },
    "clean.token_price_daily_enriched": {
        "description": "Daily token price history with market data.",
        "columns": {
            "symbol": "Token symbol",
            "price_usd": "Close price in USD",
            "day": "Calendar day"
        },
        "primary_key": ["symbol", "day"]
    }
}


class ScriptedChatModel(FakeListChatModel):
    """FakeListChatModel that also counts completed invoke calls."""

    calls: int = 0

    def _call(self, *args, **kwargs) -> str:
        self.calls += 1
        return super()._call(*args, **kwargs)


def plan_response(sql: Optional[str]) -> str:
    if sql is None:
        return json.dumps({"note": "I could not find a suitable table"})
    return json.dumps({"sql": sql})


class FakeConnection:
    def __init__(self, pool: "FakePool"):
        self.pool = pool
        self.executed: List[Any] = []

    async def execute(self, sql: str, *args):
        if self.pool.execute_error is not None:
            raise self.pool.execute_error
        self.executed.append((sql, args))
        self.pool.executed.append((sql, args))
        return "OK"

    async def fetch(self, sql: str, *args):
        self.pool.fetched.append(sql)
        result = self.pool.results.pop(0) if self.pool.results else []
        if isinstance(result, Exception):
            raise result
        return result


class FakePool:
    """
    Stand-in for DatabasePool. fetch() results are scripted in order;
    an Exception entry is raised instead of returned.
    """

    def __init__(self, results=None, acquire_error: Optional[Exception] = None):
        self.results = list(results or [])
        self.acquire_error = acquire_error
        self.execute_error: Optional[Exception] = None
        self.acquired = 0
        self.released = 0
        self.fetched: List[str] = []
        self.executed: List[Any] = []

    async def acquire(self):
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        return FakeConnection(self)

    async def release(self, conn) -> None:
        self.released += 1


class FakeDatabaseError(Exception):
    """Carries the diagnostics asyncpg's PostgresError exposes."""

    def __init__(self, message, sqlstate=None, detail=None, hint=None, position=None):
        super().__init__(message)
        self.sqlstate = sqlstate
        self.detail = detail
        self.hint = hint
        self.position = position


@dataclass
class PipelineHarness:
    pipeline: QueryPipeline
    pool: FakePool
    planner_llm: ScriptedChatModel
    answer_llm: ScriptedChatModel


@pytest.fixture
def registry_path(tmp_path):
    path = tmp_path / "llm_table_registry.json"
    path.write_text(json.dumps(TEST_REGISTRY))
    return path


@pytest.fixture
def registry(registry_path):
    return SchemaRegistry(str(registry_path))


@pytest.fixture
def make_pipeline(registry):
    def _make(
        plans,
        results=None,
        answers=None,
        acquire_error: Optional[Exception] = None,
        max_retries: int = 3
    ) -> PipelineHarness:
        planner_llm = ScriptedChatModel(responses=[plan_response(p) for p in plans])
        answer_llm = ScriptedChatModel(responses=answers or ["No answer available."])
        pool = FakePool(results, acquire_error=acquire_error)
        pipeline = QueryPipeline(
            planner_llm,
            pool,
            registry,
            answer_llm=answer_llm,
            max_retries=max_retries,
            max_limit=500
        )
        return PipelineHarness(pipeline, pool, planner_llm, answer_llm)

    return _make


@pytest.fixture
def log_pool():
    return FakePool()


@pytest_asyncio.fixture(scope="function")
async def make_client(log_pool):
    clients = []

    async def _make(harness: PipelineHarness, user_id: Optional[str] = None) -> AsyncClient:
        app.dependency_overrides[get_query_pipeline] = lambda: harness.pipeline
        app.dependency_overrides[get_query_logger] = lambda: QueryLogger(log_pool)
        app.dependency_overrides[get_optional_user_id] = lambda: user_id

        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()
