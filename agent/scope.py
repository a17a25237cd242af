"""
Scope and intent classification.

Both classifiers are ordered rule tables of (predicate, label) pairs evaluated
first-match-wins over the lowercased question. They are pure functions of the
question text.
"""

import re
from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple


class Scope(str, Enum):
    IN_SCOPE = "in_scope"
    META = "meta"
    GENERAL_KNOWLEDGE = "general_knowledge"


class Intent(str, Enum):
    LENDING_OPPORTUNITIES = "lending_opportunities"
    POOL_ANALYSIS = "pool_analysis"
    PRICE_QUERY = "price_query"
    PORTFOLIO_OPTIMIZATION = "portfolio_optimization"
    GENERAL_PREDICTION = "general_prediction"
    STANDARD_QUERY = "standard_query"


# In-scope intents that are still answered from general knowledge
GENERAL_KNOWLEDGE_INTENTS = {Intent.PORTFOLIO_OPTIMIZATION, Intent.GENERAL_PREDICTION}

Predicate = Callable[[str], bool]


class Classification(NamedTuple):
    scope: Scope
    intent: Optional[Intent]


META_QUESTION_PATTERNS = [
    r"what\s+(type|kind|sort).*questions.*ask",
    r"what\s+can\s+(you|i)\s+(ask|query)",
    r"what.*can.*you.*answer",
    r"what.*do.*you.*know",
    r"what.*questions.*answer",
    r"help.*what.*ask",
]

EXPLICIT_GENERAL_PATTERNS = [
    r"should\s+i\s+(buy|sell|invest|trade)",
    r"what\s+(is|are)\s+(blockchain|cryptocurrency|bitcoin|ethereum|defi|smart\s+contract)",
    r"how\s+does\s+(blockchain|cryptocurrency|bitcoin|ethereum|defi|smart\s+contract)",
    r"investment\s+advice",
    r"financial\s+advice",
    r"risk\s+tolerance.*strateg",
    r"recommend.*strateg",
    r"optimal\s+allocation.*given",
    r"based\s+on\s+my\s+risk",
    r"what.*should.*do",
    r"advice.*invest",
    r"construct.*optimal.*allocation",
    r"targeting.*sharpe",
    r"portfolio.*optim",
]

GENERAL_KNOWLEDGE_KEYWORDS = [
    'define', 'definition', 'explain concept', 'how does consensus',
    'web3', 'consensus mechanism', 'mining algorithm', 'validator',
    'smart contract security', 'wallet security', 'regulation',
    'investment strategy', 'portfolio theory', 'risk management',
]

DATA_SPECIFIC_KEYWORDS = [
    # Lending markets
    'lending', 'lent', 'borrow', 'supply', 'apy', 'apr', 'yield', 'rate', 'interest',
    'aave', 'compound', 'utilization', 'lending rate', 'borrow rate', 'supply rate',
    # Liquidity pools
    'pool', 'liquidity', 'farming', 'yield farming', 'lp token', 'pool apy',
    'uniswap', 'curve', 'balancer', 'aerodrome', 'velodrome', 'sushiswap',
    # Token prices
    'price', 'token price', 'usd', 'cost', 'worth', 'value',
    'bitcoin', 'btc', 'ethereum', 'eth', 'usdc', 'usdt', 'dai', 'weth', 'wbtc', 'steth',
    # Opportunities and comparisons
    'opportunity', 'opportunities', 'arbitrage', 'best rate', 'highest', 'optimal',
    'compare', 'comparison', 'where can i get', 'maximize yield', 'rate difference',
]


def matches_any_pattern(patterns: Sequence[str]) -> Predicate:
    compiled = [re.compile(p) for p in patterns]
    return lambda q: any(p.search(q) for p in compiled)


def contains_any(words: Sequence[str]) -> Predicate:
    return lambda q: any(w in q for w in words)


def contains_all_groups(*groups: Sequence[str]) -> Predicate:
    return lambda q: all(any(w in q for w in group) for group in groups)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda q: any(p(q) for p in predicates)


SCOPE_RULES: List[Tuple[Predicate, Scope]] = [
    (matches_any_pattern(META_QUESTION_PATTERNS), Scope.META),
    (matches_any_pattern(EXPLICIT_GENERAL_PATTERNS), Scope.GENERAL_KNOWLEDGE),
    # Data-specific vocabulary overrides general-knowledge vocabulary
    (contains_any(DATA_SPECIFIC_KEYWORDS), Scope.IN_SCOPE),
    (contains_any(GENERAL_KNOWLEDGE_KEYWORDS), Scope.GENERAL_KNOWLEDGE),
]

INTENT_RULES: List[Tuple[Predicate, Intent]] = [
    (
        contains_all_groups(
            ['lending'],
            ['opportunity', 'opportunities', 'where', 'best rate', 'highest', 'arbitrage'],
        ),
        Intent.LENDING_OPPORTUNITIES,
    ),
    (
        any_of(
            contains_any(['pool', 'liquidity']),
            contains_all_groups(['apy'], ['weth', 'usdc', 'eth']),
        ),
        Intent.POOL_ANALYSIS,
    ),
    (contains_any(['price', 'cost', 'worth', 'value']), Intent.PRICE_QUERY),
    (
        contains_any(['should i', 'recommend', 'advice', 'predict', 'forecast', 'expect']),
        Intent.GENERAL_PREDICTION,
    ),
]


def _first_match(rules, question: str, default):
    q = question.lower()
    for predicate, label in rules:
        if predicate(q):
            return label
    return default


def classify_scope(question: str) -> Scope:
    return _first_match(SCOPE_RULES, question, Scope.IN_SCOPE)


def detect_intent(question: str) -> Intent:
    return _first_match(INTENT_RULES, question, Intent.STANDARD_QUERY)


def classify(question: str) -> Classification:
    scope = classify_scope(question)
    intent = detect_intent(question) if scope is Scope.IN_SCOPE else None
    return Classification(scope=scope, intent=intent)
