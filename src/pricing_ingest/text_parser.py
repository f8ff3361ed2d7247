"""Heuristic reconstruction of tabular records from free text.

Used for OCR output, PDF page text and plain-text uploads. Each line is
split into fields with the first delimiter strategy that produces more
than one field, and kept only if it looks like it carries product or
price information.
"""

from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pricing_ingest.models import RawRecord

# Ordered from most to least structured. Single-space splitting must stay
# last or ordinary prose fragments into one field per word.
SPLITTERS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("tab", re.compile(r"\t")),
    ("wide_space", re.compile(r"\s{2,}")),
    ("pipe", re.compile(r"\|")),
    ("comma", re.compile(r",\s+")),
    ("whitespace", re.compile(r"\s+")),
)

CURRENCY_PATTERN = re.compile(
    r"([$€£])\s?(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
)
NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")
KEYWORD_PATTERN = re.compile(
    r"\b(?:service|product|plan|subscription|api|usage)", re.IGNORECASE
)

# Unicode spaces other than tab, e.g. the no-break spaces PDF text carries.
_SPACES = re.compile(r"[^\S\t\n]")
_DROPPED_CATEGORIES = frozenset({"Cc", "Cf"})

MIN_LINE_LENGTH = 3


def split_fields(line: str) -> tuple[str, list[str]]:
    """Split a line using the first strategy that yields more than one field.

    Returns the strategy name and the non-empty, stripped fields. A line
    no strategy can split comes back as a single field under "none".
    """
    for name, pattern in SPLITTERS:
        fields = [part.strip() for part in pattern.split(line) if part.strip()]
        if len(fields) > 1:
            return name, fields
    stripped = line.strip()
    return "none", [stripped] if stripped else []


def find_prices(line: str) -> list[str]:
    """Return every currency-formatted amount in the line, in order."""
    return [match.group(2) for match in CURRENCY_PATTERN.finditer(line)]


def clean_line(line: str) -> str:
    """Drop characters OCR engines emit as noise, keeping delimiters intact."""
    line = _SPACES.sub(" ", line.replace("∞", "unlimited"))
    return "".join(
        char
        for char in line
        if char == "\t" or unicodedata.category(char) not in _DROPPED_CATEGORIES
    ).strip()


def is_candidate(line: str, fields: list[str], prices: list[str]) -> bool:
    """Decide whether a line is worth turning into a record.

    Single-field lines without numbers are almost always headings or
    footers, so they need a domain keyword to survive.
    """
    if prices or NUMBER_PATTERN.search(line) or len(fields) >= 2:
        return True
    return KEYWORD_PATTERN.search(line) is not None


def parse_text(
    text: str, *, source: str = "text", min_length: int = MIN_LINE_LENGTH
) -> list[RawRecord]:
    """Reconstruct candidate records from a block of free text.

    Records keep source order. The last currency amount on a line is used
    as the price, since leading numbers tend to be quantities or IDs.
    """
    records: list[RawRecord] = []

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = clean_line(raw_line)
        if len(line) < min_length:
            continue

        _strategy, fields = split_fields(line)
        if not fields:
            continue

        matches = list(CURRENCY_PATTERN.finditer(line))
        prices = [match.group(2) for match in matches]
        if not is_candidate(line, fields, prices):
            continue

        record: RawRecord = {
            "id": f"{source}-{len(records)}",
            "product": fields[0],
            "source": source,
            "line_number": line_number,
            "original_line": line,
        }
        if len(fields) > 1:
            details = " ".join(fields[1:])
            record["description"] = details
            record["details"] = details
        if matches:
            symbol, amount = matches[-1].groups()
            # Non-dollar symbols stay on the price so the currency survives.
            record["price"] = amount if symbol == "$" else f"{symbol}{amount}"

        records.append(record)

    return records


def reconstruction_confidence(records: list[RawRecord]) -> int:
    """Score a reconstruction from 70 to 85 by the share of priced records."""
    if not records:
        return 0
    priced = sum(1 for record in records if "price" in record)
    return round(70 + 15 * priced / len(records))
