"""Normalization of raw records into canonical billing items.

Also hosts the structured-object (JSON) reader, since a JSON document is
already a list of records and needs no extraction beyond locating them.
"""

from __future__ import annotations

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from slugify import slugify

from pricing_ingest.errors import EmptyOrMalformedInput
from pricing_ingest.models import (
    BillingType,
    MeteredItem,
    OneTimeItem,
    RecurringItem,
    to_minor_units,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pricing_ingest.models import BillingItem, Interval, RawRecord

logger = logging.getLogger(__name__)

# Evaluated in order, first match wins. Usage signals outrank recurrence,
# so "per month API usage" is metered.
TYPE_RULES: tuple[tuple[re.Pattern[str], BillingType], ...] = (
    (re.compile(r"\bper\b"), BillingType.METERED),
    (re.compile(r"\busage\b"), BillingType.METERED),
    (re.compile(r"\bmeter(?:ed|s)?\b"), BillingType.METERED),
    (re.compile(r"\bapi call\b"), BillingType.METERED),
    (re.compile(r"\brequests?\b"), BillingType.METERED),
    (re.compile(r"\btransactions?\b"), BillingType.METERED),
    (re.compile(r"\bmonth(?:ly)?\b"), BillingType.RECURRING),
    (re.compile(r"\bsubscription\b"), BillingType.RECURRING),
    (re.compile(r"\brecurring\b"), BillingType.RECURRING),
    (re.compile(r"\b(?:annual(?:ly)?|yearly)\b"), BillingType.RECURRING),
    (re.compile(r"\b(?:weekly|daily)\b"), BillingType.RECURRING),
)

INTERVAL_RULES: tuple[tuple[re.Pattern[str], Interval], ...] = (
    (re.compile(r"\b(?:annual(?:ly)?|yearly)\b"), "year"),
    (re.compile(r"\bweekly\b"), "week"),
    (re.compile(r"\bdaily\b"), "day"),
)

PRODUCT_FIELDS = (
    "product",
    "name",
    "product name",
    "service",
    "metric description",
    "title",
    "item",
    "description",
)
PRICE_FIELDS = (
    "price",
    "per unit rate (usd)",
    "unit price",
    "rate",
    "amount",
    "cost",
    "fee",
)
# Already in minor units; only consulted when no major-unit price exists.
MINOR_UNIT_FIELDS = ("unit amount",)
EVENT_FIELDS = ("event name", "meter name", "event", "meter")
INTERVAL_FIELDS = ("interval", "billing cycle", "period")
UNIT_FIELDS = ("unit label", "unit", "units")

_KNOWN_FIELDS = frozenset(
    {
        *PRODUCT_FIELDS,
        *PRICE_FIELDS,
        *MINOR_UNIT_FIELDS,
        *EVENT_FIELDS,
        *INTERVAL_FIELDS,
        *UNIT_FIELDS,
        "id",
        "details",
        "currency",
        "source",
        "line number",
        "original line",
        "type",
        "metadata",
    }
)

_PRICE_NOISE = re.compile(r"[\s,$€£¥]|\b(?:usd|eur|gbp)\b", re.IGNORECASE)
_CURRENCY_SYMBOLS = {"€": "eur", "£": "gbp", "¥": "jpy"}
_CURRENCY_CODE = re.compile(r"^[A-Za-z]{3}$")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_KEY_SEPARATORS = re.compile(r"[\s_\-]+")

JSON_CONTAINER_KEYS = ("data", "products", "items")


def infer_billing_type(text: str) -> BillingType:
    """Classify free text as metered, recurring or one-time."""
    lowered = text.lower()
    for pattern, billing_type in TYPE_RULES:
        if pattern.search(lowered):
            return billing_type
    return BillingType.ONE_TIME


def infer_interval(text: str) -> Interval:
    """Pick the billing interval for a recurring item, defaulting to month."""
    lowered = text.lower()
    for pattern, interval in INTERVAL_RULES:
        if pattern.search(lowered):
            return interval
    return "month"


def event_name_for(product: str, index: int) -> str:
    """Derive a meter event identifier from a product name."""
    slug = str(slugify(product, separator="_", max_length=64))
    return slug or f"event_{index}"


def parse_price(value: Any) -> Decimal | None:
    """Parse a price-like value, returning None unless it is a finite amount >= 0."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    else:
        text = _PRICE_NOISE.sub("", str(value))
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def normalize_record(
    record: RawRecord,
    index: int,
    *,
    confidence: int,
    id_prefix: str = "item",
    source: str | None = None,
) -> BillingItem:
    """Map a raw record onto the billing item variant its text implies."""
    fields = _canonical_fields(record)

    product = _first_text(fields, PRODUCT_FIELDS) or f"Product {index + 1}"
    description = _text(fields.get("description"))
    details = _text(fields.get("details"))
    price_value = _resolve_price_value(fields)
    price = _resolve_price(fields)

    type_text = " ".join(part for part in (product, description, details) if part)
    billing_type = infer_billing_type(type_text)

    metadata: dict[str, Any] = {
        "auto_detected_type": billing_type.value,
        "confidence": confidence,
    }
    if source:
        metadata["extraction_source"] = source
    extras = {
        str(key): _plain(value)
        for key, value in record.items()
        if _canonical_key(key) not in _KNOWN_FIELDS
    }
    if extras:
        metadata["fields"] = extras

    line_number = fields.get("line number")
    common: dict[str, Any] = {
        "id": _text(fields.get("id")) or f"{id_prefix}-{index}",
        "product": product,
        "price": price,
        "unit_amount": to_minor_units(price),
        "currency": _resolve_currency(fields, price_value),
        "description": description or details,
        "source": _text(fields.get("source")) or source,
        "line_number": line_number if isinstance(line_number, int) else None,
        "original_line": _text(fields.get("original line")),
        "metadata": metadata,
    }

    if billing_type is BillingType.METERED:
        event_source = _first_text(fields, EVENT_FIELDS) or product
        return MeteredItem(
            **common,
            event_name=event_name_for(event_source, index),
            unit_label=_first_text(fields, UNIT_FIELDS),
        )
    if billing_type is BillingType.RECURRING:
        cycle = _first_text(fields, INTERVAL_FIELDS)
        interval = _interval_from_cycle(cycle) if cycle else None
        return RecurringItem(**common, interval=interval or infer_interval(type_text))
    return OneTimeItem(**common)


def normalize_records(
    records: Iterable[RawRecord],
    *,
    confidence: int,
    id_prefix: str = "item",
    source: str | None = None,
) -> list[BillingItem]:
    """Normalize records in order."""
    return [
        normalize_record(
            record, index, confidence=confidence, id_prefix=id_prefix, source=source
        )
        for index, record in enumerate(records)
    ]


def whole_document_item(
    item_id: str,
    product: str,
    text: str,
    *,
    confidence: int,
    source: str,
    excerpt_length: int = 200,
) -> OneTimeItem:
    """Represent an unstructured document as a single zero-priced item."""
    excerpt = text[:excerpt_length]
    if len(text) > excerpt_length:
        excerpt += "..."
    return OneTimeItem(
        id=item_id,
        product=product,
        price=Decimal(0),
        unit_amount=0,
        description=excerpt or None,
        source=source,
        metadata={
            "auto_detected_type": BillingType.ONE_TIME.value,
            "confidence": confidence,
            "extraction_source": source,
        },
    )


def records_from_json(
    content: str | bytes, *, filename: str | None = None
) -> list[RawRecord]:
    """Locate the record list in a JSON document.

    Accepts a top-level array, an object holding a "data", "products" or
    "items" array, or a single object treated as one record.
    """
    try:
        document = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = f"Invalid JSON format ({exc})"
        raise EmptyOrMalformedInput(msg, filename=filename) from exc

    entries: list[Any]
    if isinstance(document, list):
        entries = document
    elif isinstance(document, dict):
        entries = [document]
        for key in JSON_CONTAINER_KEYS:
            if isinstance(document.get(key), list):
                entries = document[key]
                break
    else:
        msg = "JSON document must be an object or an array of objects"
        raise EmptyOrMalformedInput(msg, filename=filename)

    records: list[RawRecord] = []
    for position, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning("Skipping non-object JSON entry at position %d", position)
            continue
        record = dict(entry)
        record["id"] = _text(entry.get("id")) or f"json-{position}"
        records.append(record)

    if not records:
        msg = "JSON document contains no records"
        raise EmptyOrMalformedInput(msg, filename=filename)
    return records


def _canonical_key(key: object) -> str:
    """Lower-case a field name and collapse camelCase, underscores and dashes."""
    spaced = _CAMEL_BOUNDARY.sub(" ", str(key).strip())
    return _KEY_SEPARATORS.sub(" ", spaced).lower()


def _canonical_fields(record: RawRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, value in record.items():
        fields.setdefault(_canonical_key(key), value)
    return fields


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_text(fields: dict[str, Any], names: Iterable[str]) -> str | None:
    for name in names:
        text = _text(fields.get(name))
        if text:
            return text
    return None


def _interval_from_cycle(cycle: str) -> Interval | None:
    """Read an explicit billing-cycle column such as "Monthly" or "per year"."""
    lowered = cycle.lower()
    if "year" in lowered or "annual" in lowered:
        return "year"
    if "month" in lowered:
        return "month"
    if "week" in lowered:
        return "week"
    if "day" in lowered or "daily" in lowered:
        return "day"
    return None


def _resolve_price_value(fields: dict[str, Any]) -> Any:
    """Return the raw value of the first field holding a valid price."""
    for name in PRICE_FIELDS:
        value = fields.get(name)
        if parse_price(value) is not None:
            return value
    return None


def _resolve_price(fields: dict[str, Any]) -> Decimal:
    for name in PRICE_FIELDS:
        amount = parse_price(fields.get(name))
        if amount is not None:
            return amount
    for name in MINOR_UNIT_FIELDS:
        amount = parse_price(fields.get(name))
        if amount is not None:
            return amount / 100
    return Decimal(0)


def _resolve_currency(fields: dict[str, Any], price_value: Any) -> str:
    code = _text(fields.get("currency"))
    if code and _CURRENCY_CODE.match(code):
        return code.lower()
    if isinstance(price_value, str):
        for symbol, currency in _CURRENCY_SYMBOLS.items():
            if symbol in price_value:
                return currency
    return "usd"


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
