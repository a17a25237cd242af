import pytest

from agent.text_utils import (
    StreamingAnswerFormatter,
    abbrev_number,
    finalize_answer,
    humanize_dates,
    scale_dollars,
    strip_invisibles,
    tighten_numbers,
)

SAMPLE_ANSWER = (
    "As of 2025-09-29 the WETH-USDC pool on Aerodrome holds $1,234,567,890 in TVL "
    "with an APY of 12.5 %. Total borrows reached $ 45,000,000.75 , while the "
    "smallest pool held $950.5 on 2025-01-03."
)


def test_humanize_dates():
    assert humanize_dates("Data from 2025-09-29.") == "Data from September 29, 2025."


def test_humanize_dates_ignores_invalid_months():
    assert humanize_dates("id 2025-13-01") == "id 2025-13-01"


@pytest.mark.parametrize("value, expected", [
    (1_234_567_890, "1.23B"),
    (2_500_000, "2.50M"),
    (3_100_000_000_000, "3.10T"),
    (950.5, "950.5"),
    (12_345, "12,345"),
])
def test_abbrev_number(value, expected):
    assert abbrev_number(value) == expected


def test_scale_dollars():
    assert scale_dollars("TVL is $1,234,567,890 today") == "TVL is $1.23B today"
    assert scale_dollars("fees of $ 12,345.50") == "fees of $12,345.5"


def test_tighten_numbers():
    assert tighten_numbers("  APY 4.2 % , up  ") == "APY 4.2%, up"


def test_strip_invisibles():
    assert strip_invisibles("W\u200bETH\u00ad") == "WETH"


def test_finalize_answer():
    out = finalize_answer(SAMPLE_ANSWER)
    assert out.startswith("As of September 29, 2025")
    assert "$1.23B" in out
    assert "12.5%." in out
    assert "$45.00M," in out
    assert out.endswith("January 3, 2025.")


def _stream(text, size):
    formatter = StreamingAnswerFormatter()
    pieces = [formatter.feed(text[i:i + size]) for i in range(0, len(text), size)]
    pieces.append(formatter.flush())
    return pieces


@pytest.mark.parametrize("size", [1, 2, 3, 7, 16, len(SAMPLE_ANSWER)])
def test_streamed_fragments_match_finalized_answer(size):
    text = "  " + SAMPLE_ANSWER + "  "
    assert "".join(_stream(text, size)) == finalize_answer(text)


def test_streaming_holds_back_incomplete_tokens():
    formatter = StreamingAnswerFormatter()
    assert formatter.feed("Price on 2025-") == "Price on"
    assert formatter.feed("09-29 was $3") == " September 29, 2025 was"
    assert formatter.flush() == " $3"
