from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import structlog

from services.schema_registry import SchemaRegistry, TableEntry, render_schema_doc

logger = structlog.get_logger()

UPDATE_GENERATION = "update"
CLEAN_GENERATION = "clean"

# (trigger phrases, expanded registry search terms)
KEYWORD_GROUPS: List[Tuple[List[str], List[str]]] = [
    (['tvl', 'total value locked', 'liquidity'], ['tvl', 'liquidity', 'protocol']),
    (['bridge', 'cross-chain', 'deposit', 'withdraw'], ['bridge', 'volume', 'deposit', 'withdraw']),
    (['price', 'token price', 'usd', 'cost'], ['price', 'token', 'usd']),
    (['lending', 'borrow', 'supply', 'apy'], ['lending', 'borrow', 'supply', 'apy', 'market']),
    (['etf', 'flow', 'inflow', 'outflow'], ['etf', 'flow']),
    (['stablecoin', 'peg', 'mcap'], ['stablecoin', 'peg', 'mcap']),
    (['pool', 'yield', 'farming'], ['pool', 'yield', 'tvl']),
    (['holding', 'treasury', 'reserve'], ['holding', 'treasury', 'reserve', 'token']),
    (['sector', 'narrative', 'ai', 'gaming', 'meme', 'performance'], ['narrative', 'sector', 'performance']),
]

HISTORICAL_TERMS = ['historical', 'history', 'trend', 'past', 'over time', 'since', 'months', 'years']
BOTH_GENERATION_PHRASES = ['compare', 'vs', 'historical vs current', 'trend']
BOTH_GENERATION_KEYWORDS = {'correlation', 'comparison', 'vs', 'versus'}

FALLBACK_TABLES = {
    UPDATE_GENERATION: [
        'update.cl_pool_hist',
        'update.lending_market_history',
        'update.token_price_daily',
    ],
    CLEAN_GENERATION: [
        'clean.cl_pool_hist',
        'clean.lending_market_history',
        'clean.token_price_daily_enriched',
    ],
}


@dataclass
class FilteredSchema:
    doc: str
    tables: List[str]
    generations: List[str] = field(default_factory=list)


class SchemaDocCache:
    """Filtered schema docs keyed by question prefix. Entries live for the process lifetime."""

    def __init__(self):
        self._entries: Dict[str, FilteredSchema] = {}

    @staticmethod
    def key_for(question: str) -> str:
        return f"schema_{question.lower()[:50]}"

    def get(self, question: str) -> Optional[FilteredSchema]:
        return self._entries.get(self.key_for(question))

    def set(self, question: str, value: FilteredSchema) -> None:
        self._entries[self.key_for(question)] = value

    def __contains__(self, question: str) -> bool:
        return self.key_for(question) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


def extract_keywords(question: str) -> List[str]:
    q = question.lower()
    keywords: List[str] = []
    for triggers, terms in KEYWORD_GROUPS:
        if any(t in q for t in triggers):
            keywords.extend(terms)
    return keywords


def is_historical(question: str, keywords: List[str]) -> bool:
    q = question.lower()
    return any(term in q for term in HISTORICAL_TERMS) or any(k in HISTORICAL_TERMS for k in keywords)


def needs_both_generations(question: str, keywords: List[str]) -> bool:
    q = question.lower()
    return any(p in q for p in BOTH_GENERATION_PHRASES) or any(k in BOTH_GENERATION_KEYWORDS for k in keywords)


def select_generations(question: str, keywords: List[str]) -> Tuple[List[str], str]:
    """Returns (generations to search, preferred generation for the fallback set)."""
    preferred = CLEAN_GENERATION if is_historical(question, keywords) else UPDATE_GENERATION
    if needs_both_generations(question, keywords):
        return [UPDATE_GENERATION, CLEAN_GENERATION], preferred
    return [preferred], preferred


def _is_relevant(fqtn: str, entry: TableEntry, keywords: List[str]) -> bool:
    table_name = fqtn.lower()
    description = entry.description.lower()
    columns = [c.lower() for c in entry.columns]
    return any(
        k in table_name or k in description or any(k in col for col in columns)
        for k in keywords
    )


def select_tables(registry: Dict[str, TableEntry], question: str) -> Tuple[List[str], List[str]]:
    keywords = extract_keywords(question)
    generations, preferred = select_generations(question, keywords)

    tables = [
        fqtn for fqtn, entry in registry.items()
        if fqtn.split('.', 1)[0] in generations and _is_relevant(fqtn, entry, keywords)
    ]
    if not tables:
        tables = list(FALLBACK_TABLES[preferred])

    logger.info(
        "Schema tables selected",
        keywords=keywords[:5],
        generations=generations,
        table_count=len(tables),
        tables=tables[:5]
    )
    return tables, generations


class SchemaFilter:
    """Narrows the registry to the tables relevant to one question."""

    def __init__(self, registry: SchemaRegistry, cache: Optional[SchemaDocCache] = None):
        self.registry = registry
        self.cache = cache if cache is not None else SchemaDocCache()

    def build(self, question: str) -> FilteredSchema:
        cached = self.cache.get(question)
        if cached is not None:
            return cached

        tables_by_name = self.registry.load()
        tables, generations = select_tables(tables_by_name, question)
        result = FilteredSchema(
            doc=render_schema_doc(tables_by_name, tables),
            tables=tables,
            generations=generations
        )
        self.cache.set(question, result)
        return result

    def full_doc(self) -> str:
        return self.registry.full_doc()
