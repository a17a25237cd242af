import json
from decimal import Decimal

import pytest

from tests.conftest import FakeDatabaseError

GOOD_SQL = "SELECT symbol, apy FROM clean.cl_pool_hist ORDER BY apy DESC LIMIT 5"
ROWS = [
    {"symbol": "WETH-USDC", "apy": Decimal("12.5")},
    {"symbol": "WBTC-ETH", "apy": Decimal("8.1")},
]
ANSWER = "WETH-USDC leads at 12.5 % APY."


def _events(body: str):
    return [json.loads(chunk[len("data: "):]) for chunk in body.split("\n\n") if chunk]


@pytest.mark.asyncio
async def test_health(make_pipeline, make_client):
    client = await make_client(make_pipeline([GOOD_SQL]))
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": "1.0.0"}


@pytest.mark.asyncio
async def test_missing_question(make_pipeline, make_client):
    client = await make_client(make_pipeline([GOOD_SQL]))
    response = await client.post("/api/query", json={})

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == (
        "Missing 'question'. Provide JSON body {\"question\":\"...\"} or use ?q= in the URL."
    )
    assert "http://test/api/query" in data["exampleCurl"]


@pytest.mark.asyncio
async def test_meta_question_never_touches_the_database(make_pipeline, make_client):
    harness = make_pipeline([GOOD_SQL])
    client = await make_client(harness)

    response = await client.get("/api/query", params={"q": "What can I ask you?"})

    data = response.json()
    assert response.status_code == 200
    assert data["source"] == "meta_response"
    assert data["note"] == "Service capabilities overview"
    assert "Liquidity Pools" in data["answer"]
    assert harness.pool.acquired == 0
    assert harness.planner_llm.calls == 0


@pytest.mark.asyncio
async def test_general_knowledge_scope(make_pipeline, make_client):
    harness = make_pipeline([GOOD_SQL], answers=["A blockchain is a shared ledger."])
    client = await make_client(harness)

    response = await client.post("/api/query", json={"question": "What is blockchain?"})

    data = response.json()
    assert data["source"] == "general_knowledge"
    assert data["answer"] == "A blockchain is a shared ledger."
    assert "general knowledge" in data["note"]
    assert harness.pool.acquired == 0


@pytest.mark.asyncio
async def test_general_knowledge_intent(make_pipeline, make_client):
    harness = make_pipeline([GOOD_SQL], answers=["Nobody can say for sure."])
    client = await make_client(harness)

    response = await client.post("/api/query", json={"question": "Do you predict rates will rise?"})

    assert response.json() == {
        "answer": "Nobody can say for sure.",
        "source": "general_knowledge",
        "intent": "general_prediction"
    }


@pytest.mark.asyncio
async def test_minimal_response(make_pipeline, make_client):
    client = await make_client(make_pipeline([GOOD_SQL], results=[ROWS]))

    response = await client.post("/api/query", json={"question": "top pools by apy", "minimal": True})

    assert response.json() == {
        "sql": GOOD_SQL,
        "rows": [{"symbol": "WETH-USDC", "apy": 12.5}, {"symbol": "WBTC-ETH", "apy": 8.1}],
        "source": "database_query",
        "intent": "pool_analysis"
    }


@pytest.mark.asyncio
async def test_non_json_body_falls_back_to_query_string(make_pipeline, make_client):
    client = await make_client(make_pipeline([GOOD_SQL], results=[ROWS]))

    response = await client.post(
        "/api/query",
        params={"question": "top pools by apy", "minimal": "true"},
        content=b"not json",
        headers={"content-type": "application/json"}
    )

    assert response.status_code == 200
    assert response.json()["sql"] == GOOD_SQL


@pytest.mark.asyncio
async def test_full_response(make_pipeline, make_client, log_pool):
    client = await make_client(make_pipeline([GOOD_SQL], results=[ROWS], answers=[ANSWER]), user_id="user-1234")

    response = await client.post("/api/query", json={"question": "top pools by apy"})

    data = response.json()
    assert response.status_code == 200
    assert data["answer"] == "WETH-USDC leads at 12.5% APY."
    assert data["source"] == "database_query"
    assert data["intent"] == "pool_analysis"
    assert data["retryCount"] == 0
    assert data["debug"] == {"sql": GOOD_SQL, "raw_data_sample": data["rows"], "total_rows": 2}
    assert data["chart"]["type"] == "bar"

    # upsert user, then the logged exchange
    assert len(log_pool.executed) == 2
    logged = log_pool.executed[1][1]
    assert logged[0] == "user-1234"
    assert logged[1] == "top pools by apy"
    assert json.loads(logged[2]) == {
        "intent": "pool_analysis",
        "sql": GOOD_SQL,
        "rows": 2,
        "tables": ["clean.cl_pool_hist"]
    }
    assert logged[3] == data["answer"]


@pytest.mark.asyncio
async def test_anonymous_requests_are_not_logged(make_pipeline, make_client, log_pool):
    client = await make_client(make_pipeline([GOOD_SQL], results=[ROWS], answers=[ANSWER]))

    response = await client.post("/api/query", json={"question": "top pools by apy"})

    assert response.status_code == 200
    assert log_pool.executed == []


@pytest.mark.asyncio
async def test_stream_response(make_pipeline, make_client):
    client = await make_client(make_pipeline([GOOD_SQL], results=[ROWS], answers=[ANSWER]))

    response = await client.post("/api/query", json={"question": "top pools by apy", "stream": True})

    assert response.headers["content-type"].startswith("text/event-stream")
    events = _events(response.text)
    assert events[0] == {"type": "sql", "sql": GOOD_SQL}
    assert events[1]["type"] == "rows"
    assert events[1]["totalRows"] == 2
    assert events[2] == {"type": "answer_start"}
    chunks = [e["content"] for e in events if e["type"] == "answer_chunk"]
    assert "".join(chunks) == "WETH-USDC leads at 12.5% APY."
    assert events[-1] == {"type": "done", "retryCount": 0, "intent": "pool_analysis"}


@pytest.mark.asyncio
async def test_stream_query_flag(make_pipeline, make_client):
    client = await make_client(make_pipeline([GOOD_SQL], results=[ROWS], answers=[ANSWER]))

    response = await client.get("/api/query", params={"q": "top pools by apy", "stream": "true"})

    assert _events(response.text)[-1]["type"] == "done"


@pytest.mark.asyncio
async def test_database_unavailable(make_pipeline, make_client):
    harness = make_pipeline([GOOD_SQL, GOOD_SQL], acquire_error=OSError("connection refused"))
    client = await make_client(harness)

    response = await client.post("/api/query", json={"question": "top pools by apy"})

    assert response.status_code == 503
    assert response.json() == {
        "error": "Database temporarily unavailable. Please try again.",
        "details": "connection refused"
    }
    assert harness.planner_llm.calls == 1


@pytest.mark.asyncio
async def test_failed_query_has_contextual_error(make_pipeline, make_client):
    error = FakeDatabaseError('column "apy_supply" does not exist', sqlstate="42703", position="8")
    bad_sql = "SELECT apy_supply FROM clean.cl_pool_hist"
    client = await make_client(make_pipeline([bad_sql] * 4, results=[error] * 4))

    response = await client.post("/api/query", json={"question": "top pools by apy"})

    data = response.json()
    assert response.status_code == 500
    assert data["error"] == (
        "This query requires data fields that aren't available. Try a simpler version of your question."
    )
    assert data["intent"] == "pool_analysis"
    assert data["technical_details"].startswith("Query failed after 3 learning attempts")
    assert data["db"] == {"code": "42703", "detail": None, "hint": None, "position": "8"}
    assert data["sql"] == bad_sql + "\nLIMIT 500"


@pytest.mark.asyncio
async def test_planner_failure_message(make_pipeline, make_client):
    client = await make_client(make_pipeline([None] * 4))

    response = await client.post("/api/query", json={"question": "top pools by apy"})

    data = response.json()
    assert response.status_code == 500
    assert data["error"].startswith("This query is too complex for our current capabilities")
    assert data["sql"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("question", [123, ["top pools"], {"q": "top pools"}])
async def test_non_string_question_is_missing(make_pipeline, make_client, question):
    harness = make_pipeline([GOOD_SQL])
    client = await make_client(harness)

    response = await client.post("/api/query", json={"question": question})

    assert response.status_code == 400
    assert response.json()["error"].startswith("Missing 'question'.")
    assert harness.planner_llm.calls == 0


@pytest.mark.asyncio
async def test_signed_in_meta_question_skips_user_upsert(make_pipeline, make_client, log_pool):
    harness = make_pipeline([GOOD_SQL])
    client = await make_client(harness, user_id="user-1234")

    response = await client.post("/api/query", json={"question": "What can I ask you?"})

    assert response.json()["source"] == "meta_response"
    assert log_pool.acquired == 0
    assert harness.pool.acquired == 0


@pytest.mark.asyncio
async def test_stream_with_empty_answer_ends_in_error(make_pipeline, make_client, log_pool):
    client = await make_client(make_pipeline([GOOD_SQL], results=[ROWS], answers=["  "]), user_id="user-1234")

    response = await client.post("/api/query", json={"question": "top pools by apy", "stream": True})

    events = _events(response.text)
    assert events[-1] == {"type": "error", "error": "Model returned an empty answer"}
    assert all(e["type"] != "done" for e in events)
    # Only the user upsert, no logged exchange
    assert len(log_pool.executed) == 1
