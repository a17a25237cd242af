"""
Answer post-formatting.

finalize_answer rewrites ISO dates into long form, abbreviates large dollar
amounts and collapses stray whitespace before '%' and ','. The streaming
formatter applies the same rules to an answer that arrives in fragments.
"""
import calendar
import re
from typing import Union

INVISIBLE_CHARS = re.compile('[\u00ad\u200b\u200c\u200d\u2060]')
ISO_DATE_PATTERN = re.compile(r'\b(\d{4})-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])\b')
DOLLAR_PATTERN = re.compile(r'\$\s?(\d{1,3}(?:,\d{3})+|\d+)(\.\d+)?\b')
SPACE_BEFORE_PERCENT = re.compile(r'\s+%')
SPACE_BEFORE_COMMA = re.compile(r'\s+,')
WHITESPACE_RUN = re.compile(r'\s+')

# (threshold, suffix), largest first
DOLLAR_SCALES = [(1e12, 'T'), (1e9, 'B'), (1e6, 'M')]


def strip_invisibles(text: str = "") -> str:
    return INVISIBLE_CHARS.sub("", text or "")


def humanize_dates(text: str) -> str:
    """2025-09-29 -> September 29, 2025"""
    if not text:
        return text
    return ISO_DATE_PATTERN.sub(
        lambda m: f"{calendar.month_name[int(m.group(2))]} {int(m.group(3))}, {m.group(1)}",
        text
    )


def format_grouped(n: Union[int, float]) -> str:
    """Comma grouping with at most two decimals: 1234.5 -> 1,234.5"""
    formatted = f"{n:,.2f}"
    return formatted.rstrip('0').rstrip('.')


def abbrev_number(n: Union[int, float]) -> str:
    for threshold, suffix in DOLLAR_SCALES:
        if abs(n) >= threshold:
            return f"{n / threshold:.2f}{suffix}"
    return format_grouped(n)


def scale_dollars(text: str = "") -> str:
    """$1,234,567,890 -> $1.23B; smaller amounts only get grouped."""
    def _replace(m: re.Match) -> str:
        whole, dec = m.group(1), m.group(2) or ""
        return f"${abbrev_number(float(whole.replace(',', '') + dec))}"

    return DOLLAR_PATTERN.sub(_replace, text or "")


def tighten_numbers(text: str, strip: bool = True) -> str:
    if not text:
        return text
    text = SPACE_BEFORE_COMMA.sub(",", SPACE_BEFORE_PERCENT.sub("%", text))
    return text.strip() if strip else text


def finalize_answer(text) -> str:
    out = str(text or "")
    out = humanize_dates(out)
    out = scale_dollars(out)
    return tighten_numbers(out)


class StreamingAnswerFormatter:
    """
    Incremental finalize_answer for streamed text.

    Text is released only up to the start of the last whitespace run in the
    buffer, so every date, dollar amount and whitespace-before-punctuation run
    is formatted as a whole. Runs directly after '$' are never used as a cut
    point since the dollar pattern may span them. Concatenating every value
    returned by feed() and flush() equals finalize_answer of the full text.
    """

    def __init__(self):
        self._buffer = ""
        self._started = False

    def _format(self, segment: str, final: bool = False) -> str:
        out = tighten_numbers(scale_dollars(humanize_dates(segment)), strip=False)
        if not self._started:
            out = out.lstrip()
            self._started = bool(out)
        if final:
            out = out.rstrip()
        return out

    def _cut_point(self) -> int:
        cut = 0
        for run in WHITESPACE_RUN.finditer(self._buffer):
            start = run.start()
            if start > 0 and self._buffer[start - 1] != '$':
                cut = start
        return cut

    def feed(self, fragment: str) -> str:
        if not fragment:
            return ""
        self._buffer += fragment

        cut = self._cut_point()
        if cut == 0:
            return ""

        segment, self._buffer = self._buffer[:cut], self._buffer[cut:]
        return self._format(segment)

    def flush(self) -> str:
        segment, self._buffer = self._buffer, ""
        return self._format(segment, final=True)
