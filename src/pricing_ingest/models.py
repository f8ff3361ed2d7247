"""Domain and extraction models for billing-item ingestion."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

# An unnormalized row or line: field name -> best-effort value.
RawRecord = dict[str, Any]

Interval = Literal["day", "week", "month", "year"]


class BillingType(StrEnum):
    """How a billing item is charged."""

    METERED = "metered"
    RECURRING = "recurring"
    ONE_TIME = "one_time"


class BillingModelType(StrEnum):
    """Overall billing model recommended for a batch of items."""

    PAY_AS_YOU_GO = "pay-as-you-go"
    FLAT_RECURRING = "flat-recurring"
    FIXED_OVERAGE = "fixed-overage"
    PER_SEAT = "per-seat"


def to_minor_units(price: Decimal) -> int:
    """Convert a major-currency amount to integer minor units, rounding half up."""
    return int((price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class _BillingItemBase(_CamelModel):
    """Fields shared by every billing item variant."""

    id: str = Field(min_length=1)
    product: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    unit_amount: int = Field(ge=0)
    currency: str = Field(default="usd", pattern=r"^[a-z]{3}$")
    description: str | None = None
    source: str | None = None
    line_number: int | None = None
    original_line: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_unit_amount(self) -> Self:
        expected = to_minor_units(self.price)
        if self.unit_amount != expected:
            msg = f"unit_amount {self.unit_amount} does not match price (expected {expected})"
            raise ValueError(msg)
        return self


class MeteredItem(_BillingItemBase):
    """Usage-based item, reported against an event name."""

    type: Literal["metered"] = "metered"
    event_name: str = Field(min_length=1, pattern=r"^[a-z0-9_]+$")
    unit_label: str | None = None


class RecurringItem(_BillingItemBase):
    """Subscription item charged every interval."""

    type: Literal["recurring"] = "recurring"
    interval: Interval = "month"


class OneTimeItem(_BillingItemBase):
    """Item charged once."""

    type: Literal["one_time"] = "one_time"


BillingItem = Annotated[
    MeteredItem | RecurringItem | OneTimeItem, Field(discriminator="type")
]

billing_item_adapter: TypeAdapter[BillingItem] = TypeAdapter(BillingItem)


class ExtractionResult(_CamelModel):
    """Normalized output of one processed file or capture."""

    items: list[BillingItem]
    confidence: int = Field(ge=0, le=100)
    method: str
    extracted_text: str | None = None
    preview: str | None = None


class BillingModelRecommendation(_CamelModel):
    """Advisory billing model suggestion derived from a batch of items."""

    model_config = ConfigDict(protected_namespaces=())

    model_type: BillingModelType
    confidence_score: int = Field(ge=0, le=100)
    rationale: str
    structure_summary: str
    estimated_revenue_range: str
    item_count: int = 0
    metered_count: int = 0
    recurring_count: int = 0
    average_price: Decimal = Decimal(0)


class RecordProfile(_CamelModel):
    """Structure detected in raw records before normalization."""

    structure: Literal["metered_services", "subscription_plans", "mixed", "unknown"]
    confidence: float = Field(ge=0, le=100)
    detected_columns: list[str] = Field(default_factory=list)
    suggested_model: BillingModelType = BillingModelType.PAY_AS_YOU_GO
    patterns: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class UploadedFile:
    """A file handed to the pipeline."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.name)[1].lower()


class FileStatus(StrEnum):
    """Per-file processing state."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class FileState:
    """Tracked state of one file in a batch."""

    file_id: str
    name: str
    status: FileStatus = FileStatus.QUEUED
    progress: int = 0
    result: ExtractionResult | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (FileStatus.COMPLETED, FileStatus.FAILED)
