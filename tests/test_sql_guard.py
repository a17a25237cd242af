import pytest

from agent.errors import SQLGuardError
from query_tools.sql_guard import SQLGuard, referenced_tables


@pytest.fixture
def guard():
    return SQLGuard(max_limit=500)


def test_appends_limit_when_missing(guard):
    sql = guard.guard("SELECT * FROM clean.token_price_daily_enriched", max_limit=500)
    assert sql == "SELECT * FROM clean.token_price_daily_enriched\nLIMIT 500"


def test_clamps_existing_limits(guard):
    sql = guard.guard("SELECT * FROM t LIMIT 10000", max_limit=500)
    assert sql == "SELECT * FROM t LIMIT 500"


def test_keeps_smaller_limit(guard):
    assert guard.guard("SELECT * FROM t LIMIT 20") == "SELECT * FROM t LIMIT 20"


def test_clamps_every_limit_clause(guard):
    sql = guard.guard(
        "WITH x AS (SELECT * FROM a LIMIT 900) SELECT * FROM x LIMIT 1000",
        max_limit=100
    )
    assert "LIMIT 900" not in sql
    assert sql.count("LIMIT 100") == 2


def test_strips_trailing_semicolons(guard):
    assert guard.guard("SELECT 1;;  ") == "SELECT 1\nLIMIT 500"


def test_rejects_multiple_statements(guard):
    with pytest.raises(SQLGuardError, match="Multiple SQL statements"):
        guard.guard("SELECT 1; DROP TABLE x;")


def test_rejects_empty(guard):
    with pytest.raises(SQLGuardError, match="Empty SQL"):
        guard.guard("   ")


def test_rejects_non_select(guard):
    with pytest.raises(SQLGuardError, match="Only SELECT"):
        guard.guard("EXPLAIN SELECT 1")


@pytest.mark.parametrize("keyword", [
    "Update", "insert", "DELETE", "drop", "Alter", "TRUNCATE",
    "create", "grant", "REVOKE", "copy", "VACUUM", "analyze"
])
def test_rejects_forbidden_keywords(guard, keyword):
    with pytest.raises(SQLGuardError, match="Destructive or administrative SQL keyword"):
        guard.guard(f"WITH x AS ({keyword} something) SELECT 1")


def test_keyword_match_is_whole_word(guard):
    sql = guard.guard("SELECT updated_at, created_at FROM t")
    assert sql.endswith("LIMIT 500")


@pytest.mark.parametrize("sql", ["SELECT 1 -- note", "SELECT /* hi */ 1"])
def test_rejects_comments(guard, sql):
    with pytest.raises(SQLGuardError, match="comments"):
        guard.guard(sql)


def test_guard_is_idempotent(guard):
    once = guard.guard("SELECT symbol, price_usd FROM update.token_price_daily ORDER BY price_usd DESC LIMIT 5000;")
    assert guard.guard(once) == once


def test_allow_lists_are_not_enforced(guard):
    sql = guard.guard(
        "SELECT * FROM update.cl_pool_hist",
        allowed_tables=["clean.token_price_daily_enriched"],
        cols_by_table={"clean.token_price_daily_enriched": {"symbol"}}
    )
    assert sql.startswith("SELECT * FROM update.cl_pool_hist")


def test_guard_error_is_value_error(guard):
    with pytest.raises(ValueError):
        guard.guard("DELETE FROM t")


def test_referenced_tables_skips_ctes():
    sql = (
        "WITH latest AS (SELECT * FROM clean.cl_pool_hist) "
        "SELECT l.*, p.price_usd FROM latest l JOIN clean.token_price_daily_enriched p ON p.symbol = l.symbol"
    )
    assert sorted(referenced_tables(sql)) == ["clean.cl_pool_hist", "clean.token_price_daily_enriched"]


def test_referenced_tables_unparseable_sql():
    assert referenced_tables("") == []


def test_schema_qualifier_is_not_a_keyword(guard):
    sql = guard.guard('SELECT * FROM update.cl_pool_hist JOIN "update".token_price_daily USING (symbol)')
    assert sql.startswith("SELECT * FROM update.cl_pool_hist")


def test_update_statement_inside_cte_is_rejected(guard):
    with pytest.raises(SQLGuardError, match="UPDATE"):
        guard.guard("WITH x AS (UPDATE update.cl_pool_hist SET apy = 0 RETURNING *) SELECT * FROM x")


@pytest.mark.parametrize("schema", ["drop", "delete", "insert", "Grant"])
def test_other_keywords_are_rejected_as_qualifiers(guard, schema):
    with pytest.raises(SQLGuardError, match="Destructive or administrative SQL keyword"):
        guard.guard(f"SELECT * FROM {schema}.x")


def test_limit_inside_string_literal_does_not_bound(guard):
    sql = guard.guard("SELECT * FROM update.cl_pool_hist WHERE symbol <> 'limit 5'")
    assert sql == "SELECT * FROM update.cl_pool_hist WHERE symbol <> 'limit 5'\nLIMIT 500"


def test_limit_inside_literal_is_left_alone(guard):
    sql = guard.guard("SELECT * FROM t WHERE note = 'it''s limit 9000' LIMIT 800")
    assert sql == "SELECT * FROM t WHERE note = 'it''s limit 9000' LIMIT 500"


def test_subquery_limit_does_not_bound_outer_select(guard):
    sql = guard.guard("SELECT * FROM (SELECT * FROM update.cl_pool_hist LIMIT 5000) p")
    assert sql == "SELECT * FROM (SELECT * FROM update.cl_pool_hist LIMIT 500) p\nLIMIT 500"
