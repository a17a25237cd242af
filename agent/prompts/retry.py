"""
Retry strategies handed to the retry planner.

The first retry is targeted at the classified error type. Later retries
progressively simplify the query.
"""

TARGETED_RETRY_STRATEGIES = {
    "timestamp": """TIMESTAMP ERROR FIX:
- Use ONLY update.* tables with integer arithmetic (BIGINT timestamps)
- Pattern: WHERE ts >= (SELECT MAX(ts) - 21600 FROM update.table_name)
- NEVER mix update.* and clean.* schemas
- NEVER use INTERVAL syntax on ts columns, they are BIGINT not TIMESTAMP
- Example: SELECT * FROM update.cl_pool_hist WHERE ts >= (SELECT MAX(ts) - 21600 FROM update.cl_pool_hist) AND apy > 10""",

    "union": """UNION ERROR FIX:
- REMOVE ALL UNION operations, they always fail between schemas
- Use ONLY update.* tables
- Pattern: SELECT * FROM update.table WHERE conditions ORDER BY value DESC
- For multiple results: use json_build_object() instead of UNION""",

    "complex_pool_query": """COMPLEX QUERY FIX:
- Use simple WHERE conditions with AND (no UNION)
- Pattern: SELECT pool_id, symbol, apy, tvl_usd, ts FROM update.cl_pool_hist
  WHERE ts >= (SELECT MAX(ts) - 21600 FROM update.cl_pool_hist)
  AND apy > X AND tvl_usd > Y ORDER BY tvl_usd DESC LIMIT 20""",

    "advanced_analytics": """ANALYTICS FIX:
- Use ONLY update.* tables
- Pattern: SELECT symbol, AVG(apy) as mean, STDDEV(apy) as vol FROM update.cl_pool_hist GROUP BY symbol
- No schema mixing, use window functions within a single schema""",

    "schema": """SCHEMA ERROR FIX:
- Check column names in the schema document
- Fix misspelled columns/tables only
- Keep the same query structure""",
}

# union_forbidden shares the union fix
TARGETED_RETRY_STRATEGIES["union_forbidden"] = TARGETED_RETRY_STRATEGIES["union"]

GENERAL_RETRY_STRATEGY = """GENERAL FIX:
- Identify the specific error in the message
- Fix that issue only
- Keep the query simple, use update.* tables"""

SIMPLIFY_RETRY_STRATEGY = """SECOND RETRY - Simplify approach:
- Use separate simple queries (no complex JOINs)
- Combine with json_build_object() if needed
- Use ONLY update.* tables
- LIMIT to top 5 results"""

FINAL_RETRY_STRATEGY = """FINAL RETRY - Simple single query:
- Query ONE table only (update.table_name)
- Basic WHERE conditions
- Simple ORDER BY and LIMIT
- Focus on answering the core question"""
