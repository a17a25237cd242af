"""
Chart selection for query results.

Decides from the question wording and the shape of the rows whether a chart
is worth returning, and builds a renderer-agnostic chart config.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

CHART_KEYWORDS = [
    'chart', 'graph', 'plot', 'visualize', 'show me', 'compare', 'trend',
    'over time', 'history', 'historical', 'performance', 'growth',
    'distribution', 'breakdown', 'top', 'best', 'highest', 'lowest'
]

CHART_INTENTS = {
    'comparison',
    'trend_analysis',
    'top_opportunities',
    'historical_query',
    'multiple_comparison'
}

PIE_WORDS = ['distribution', 'share', 'breakdown']
PIE_VALUE_WORDS = ['percent', 'share']
DATE_COLUMN_WORDS = ['date', 'time', 'timestamp']

PALETTE = ['#10b981', '#34d399', '#6ee7b7', '#059669', '#047857', '#065f46']
SERIES_COLORS = PALETTE[:3]

MAX_SERIES = 3
MAX_PIE_ROWS = 10
MAX_PIE_SLICES = 8
MAX_BARS = 15
MAX_LABEL_LENGTH = 30

# (question words, title), checked in order
TITLE_RULES = [
    (['top'], 'Top Opportunities'),
    (['compare', 'comparison'], 'Comparison'),
    (['trend', 'over time'], 'Trend Analysis'),
    (['distribution', 'breakdown'], 'Distribution'),
    (['performance'], 'Performance Metrics'),
    (['historical', 'history'], 'Historical Data'),
]

DEFAULT_TITLES = {
    'time series': 'Time Series',
    'comparison': 'Comparison',
    'distribution': 'Distribution',
    'metrics': 'Key Metrics'
}

ISO_DATE_PREFIX = re.compile(r'^\d{4}-\d{2}-\d{2}')


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_number(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def sanitize_key(key: Any) -> str:
    key = re.sub(r'[^a-zA-Z0-9]', '_', str(key))
    key = re.sub(r'^[0-9]', lambda m: '_' + m.group(0), key)
    return key.lower()


def format_label(value: Any) -> str:
    if not value:
        return 'Unknown'

    if isinstance(value, (date, datetime)):
        return f"{value.strftime('%b')} {value.day}"
    if isinstance(value, str) and ISO_DATE_PREFIX.match(value):
        try:
            parsed = date.fromisoformat(value[:10])
            return f"{parsed.strftime('%b')} {parsed.day}"
        except ValueError:
            return value

    text = str(value)
    return text[:27] + '...' if len(text) > MAX_LABEL_LENGTH else text


def format_chart_data(
    rows: List[Dict[str, Any]],
    x_key: str,
    y_keys: Union[str, Sequence[str]]
) -> List[Dict[str, Any]]:
    if isinstance(y_keys, str):
        y_keys = [y_keys]

    data = []
    for row in rows:
        point = {'name': format_label(row.get(x_key))}
        for key in y_keys:
            point[sanitize_key(key)] = _to_number(row.get(key))
        data.append(point)
    return data


def generate_chart_title(question: str, chart_kind: str) -> str:
    q = question.lower()
    for words, title in TITLE_RULES:
        if any(w in q for w in words):
            return title
    return DEFAULT_TITLES.get(chart_kind, 'Data Visualization')


def detect_chart_type(rows: List[Dict[str, Any]], columns: List[str], question: str) -> Optional[Dict[str, Any]]:
    q = question.lower()
    first = rows[0]

    numeric_columns = [c for c in columns if _is_numeric(first.get(c))]
    date_columns = [c for c in columns if any(w in c.lower() for w in DATE_COLUMN_WORDS)]
    category_columns = [c for c in columns if isinstance(first.get(c), str) and c not in date_columns]

    # Time series
    if date_columns and numeric_columns:
        y_keys = numeric_columns[:MAX_SERIES]
        return {
            'type': 'area' if 'area' in q else 'line',
            'title': generate_chart_title(question, 'time series'),
            'description': f"Showing {', '.join(y_keys)} over time",
            'data': format_chart_data(rows, date_columns[0], y_keys),
            'xKey': 'name',
            'yKey': [sanitize_key(k) for k in y_keys],
            'colors': SERIES_COLORS
        }

    # Distribution, only for share-like data or when asked for explicitly
    if len(rows) <= MAX_PIE_ROWS and category_columns and len(numeric_columns) == 1:
        name_key, value_key = category_columns[0], numeric_columns[0]
        if any(w in q for w in PIE_WORDS) or any(w in value_key.lower() for w in PIE_VALUE_WORDS):
            return {
                'type': 'pie',
                'title': generate_chart_title(question, 'distribution'),
                'description': f"{name_key} breakdown by {value_key}",
                'data': [
                    {'name': str(row.get(name_key) or 'Unknown'), 'value': _to_number(row.get(value_key))}
                    for row in rows[:MAX_PIE_SLICES]
                ],
                'xKey': 'name',
                'yKey': 'value',
                'colors': PALETTE + PALETTE[:2]
            }

    # Categorical comparison
    if category_columns and numeric_columns:
        x_key = category_columns[0]
        y_keys = numeric_columns[:MAX_SERIES]
        return {
            'type': 'bar',
            'title': generate_chart_title(question, 'comparison'),
            'description': f"Comparing {x_key} by {', '.join(y_keys)}",
            'data': format_chart_data(rows[:MAX_BARS], x_key, y_keys),
            'xKey': 'name',
            'yKey': [sanitize_key(k) for k in y_keys],
            'colors': SERIES_COLORS
        }

    # Multiple metrics
    if len(numeric_columns) >= 2:
        y_keys = numeric_columns[:MAX_SERIES]
        return {
            'type': 'bar',
            'title': generate_chart_title(question, 'metrics'),
            'description': 'Showing multiple metrics',
            'data': format_chart_data(rows[:MAX_BARS], columns[0], y_keys),
            'xKey': 'name',
            'yKey': [sanitize_key(k) for k in y_keys],
            'colors': SERIES_COLORS
        }

    return None


def select_chart(question: str, rows: List[Dict[str, Any]], intent: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Chart config for a result set, or None when the rows do not merit a chart."""
    if not rows:
        return None

    q = question.lower()
    triggered = intent in CHART_INTENTS or any(k in q for k in CHART_KEYWORDS)
    if not triggered and len(rows) < 2:
        return None

    columns = list(rows[0].keys())
    if len(columns) < 2:
        return None

    return detect_chart_type(rows, columns, question)
