"""Billing model recommendation from a batch of items."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from pricing_ingest.models import (
    BillingModelRecommendation,
    BillingModelType,
    BillingType,
    RecordProfile,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from pricing_ingest.models import BillingItem, RawRecord


@dataclass(frozen=True)
class TypeMix:
    """Counts and prices of a batch, by billing type."""

    total: int
    metered: int
    recurring: int
    average_price: Decimal
    lowest_price: Decimal

    @classmethod
    def from_items(cls, items: Sequence[BillingItem]) -> TypeMix:
        prices = [item.price for item in items]
        return cls(
            total=len(items),
            metered=sum(1 for item in items if item.type == BillingType.METERED),
            recurring=sum(1 for item in items if item.type == BillingType.RECURRING),
            average_price=sum(prices, Decimal(0)) / len(prices),
            lowest_price=min(prices),
        )

    @property
    def metered_share(self) -> float:
        return self.metered / self.total

    @property
    def recurring_share(self) -> float:
        return self.recurring / self.total


@dataclass(frozen=True)
class ModelRule:
    """One row of the recommendation decision table."""

    applies: Callable[[TypeMix], bool]
    model_type: BillingModelType
    confidence: int
    rationale: str
    summarize: Callable[[TypeMix], str]
    revenue_multipliers: tuple[int, int]

    def recommend(self, mix: TypeMix) -> BillingModelRecommendation:
        low, high = self.revenue_multipliers
        revenue = (
            f"${mix.average_price * low:.0f} - ${mix.average_price * high:.0f}/month"
        )
        return BillingModelRecommendation(
            model_type=self.model_type,
            confidence_score=self.confidence,
            rationale=self.rationale,
            structure_summary=self.summarize(mix),
            estimated_revenue_range=revenue,
            item_count=mix.total,
            metered_count=mix.metered,
            recurring_count=mix.recurring,
            average_price=mix.average_price,
        )


# First matching rule wins; the last rule always applies.
MODEL_RULES: tuple[ModelRule, ...] = (
    ModelRule(
        applies=lambda mix: mix.metered_share > 0.7,
        model_type=BillingModelType.PAY_AS_YOU_GO,
        confidence=95,
        rationale=(
            "Your data shows primarily usage-based pricing items, "
            "a good fit for pay-as-you-go billing"
        ),
        summarize=lambda mix: (
            f"{mix.metered} metered services with average "
            f"${mix.average_price:.3f} per unit"
        ),
        revenue_multipliers=(1000, 10000),
    ),
    ModelRule(
        applies=lambda mix: mix.recurring_share > 0.8,
        model_type=BillingModelType.FLAT_RECURRING,
        confidence=90,
        rationale=(
            "Your data contains mostly subscription pricing, "
            "a good fit for recurring billing"
        ),
        summarize=lambda mix: (
            f"{mix.recurring} subscription tiers starting at "
            f"${mix.lowest_price:.2f}/month"
        ),
        revenue_multipliers=(100, 500),
    ),
    ModelRule(
        applies=lambda mix: mix.metered > 0 and mix.recurring > 0,
        model_type=BillingModelType.FIXED_OVERAGE,
        confidence=85,
        rationale=(
            "Mixed pricing structure detected; combine a base subscription "
            "with usage overages"
        ),
        summarize=lambda mix: f"Base plan + {mix.metered} metered overages",
        revenue_multipliers=(200, 1500),
    ),
    ModelRule(
        applies=lambda mix: True,
        model_type=BillingModelType.PER_SEAT,
        confidence=75,
        rationale="Consider per-seat pricing for team-based products",
        summarize=lambda mix: (
            f"Per-user pricing at ${mix.average_price:.2f}/seat/month"
        ),
        revenue_multipliers=(50, 500),
    ),
)


def recommend_billing_model(
    items: Sequence[BillingItem],
) -> BillingModelRecommendation:
    """Recommend an overall billing model from the mix of item types."""
    if not items:
        msg = "Cannot recommend a billing model for an empty item set"
        raise ValueError(msg)

    mix = TypeMix.from_items(items)
    for rule in MODEL_RULES[:-1]:
        if rule.applies(mix):
            return rule.recommend(mix)
    return MODEL_RULES[-1].recommend(mix)


METERED_INDICATORS = (
    "meter",
    "metric",
    "unit",
    "rate",
    "usage",
    "consumption",
    "per unit",
    "flat fee",
    "event",
    "api",
    "storage",
    "bandwidth",
    "cpu",
    "memory",
    "network",
    "backup",
    "processing",
    "compute",
)

SUBSCRIPTION_INDICATORS = (
    "plan",
    "subscription",
    "monthly",
    "yearly",
    "tier",
    "package",
    "recurring",
    "interval",
)

_AMOUNT = re.compile(r"\$?(\d+(?:\.\d+)?)")


def _indicator_score(text: str, indicators: Sequence[str]) -> float:
    matches = sum(1 for indicator in indicators if indicator in text)
    return matches / len(indicators)


def _content_scores(records: Sequence[RawRecord]) -> tuple[int, int]:
    """Score row values: small prices and unit words suggest metering."""
    metered = subscription = 0
    for record in records:
        values = " ".join(
            str(value) for key, value in record.items() if key != "id"
        ).lower()

        amounts = [Decimal(match) for match in _AMOUNT.findall(values)]
        if amounts:
            average = sum(amounts, Decimal(0)) / len(amounts)
            if average < 1:
                metered += 10
            if average > 10:
                subscription += 10

        if any(word in values for word in ("hour", "gb", "request")):
            metered += 5
        if any(word in values for word in ("month", "year", "plan")):
            subscription += 5
    return metered, subscription


def _column_patterns(columns: Sequence[str]) -> list[str]:
    lowered = [column.lower() for column in columns]
    patterns = []
    if any("meter" in column or "event" in column for column in lowered):
        patterns.append("Meter names detected")
    if any(
        word in column for column in lowered for word in ("rate", "price", "cost", "fee")
    ):
        patterns.append("Pricing information found")
    if any(
        word in column for column in lowered for word in ("unit", "gb", "hour", "request")
    ):
        patterns.append("Usage units identified")
    return patterns


def profile_records(records: Sequence[RawRecord]) -> RecordProfile:
    """Describe the billing structure of raw records from their columns and values."""
    if not records:
        return RecordProfile(
            structure="unknown", confidence=0, patterns=["No data provided"]
        )

    columns = [str(key) for key in records[0] if key != "id"]
    column_text = " ".join(columns).lower()
    metered_score = _indicator_score(column_text, METERED_INDICATORS)
    subscription_score = _indicator_score(column_text, SUBSCRIPTION_INDICATORS)
    metered_content, subscription_content = _content_scores(records)

    patterns: list[str] = []
    if metered_score > subscription_score and metered_score > 0.3:
        structure = "metered_services"
        confidence = min(90.0, metered_score * 100 + metered_content)
        suggested = BillingModelType.PAY_AS_YOU_GO
        patterns.append("Metered billing structure detected")
    elif subscription_score > 0.3:
        structure = "subscription_plans"
        confidence = min(85.0, subscription_score * 100 + subscription_content)
        suggested = BillingModelType.FLAT_RECURRING
        patterns.append("Subscription billing structure detected")
    elif metered_score > 0.1 and subscription_score > 0.1:
        structure = "mixed"
        confidence = 75.0
        suggested = BillingModelType.FIXED_OVERAGE
        patterns.append("Mixed billing model detected")
    else:
        structure = "unknown"
        confidence = 0.0
        suggested = BillingModelType.PAY_AS_YOU_GO

    patterns.extend(_column_patterns(columns))

    return RecordProfile(
        structure=structure,
        confidence=confidence,
        detected_columns=columns,
        suggested_model=suggested,
        patterns=patterns,
    )
