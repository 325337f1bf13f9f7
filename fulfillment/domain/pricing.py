"""
Pricing stage configuration.

Stages are time-boxed. The active stage drives the workshop voucher bonus:
vouchers bought during blind bird get 25% extra credit, early bird 15%.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional


@dataclass(frozen=True)
class PricingStage:
    """A single pricing window."""

    stage: str
    display_name: str
    start_date: datetime
    end_date: datetime  # exclusive
    voucher_bonus_percent: int


PRICING_STAGES: List[PricingStage] = [
    PricingStage(
        stage="blind_bird",
        display_name="Blind Bird",
        start_date=datetime(2025, 11, 14, tzinfo=timezone.utc),
        end_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
        voucher_bonus_percent=25,
    ),
    PricingStage(
        stage="early_bird",
        display_name="Early Bird",
        start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
        end_date=datetime(2026, 5, 15, tzinfo=timezone.utc),
        voucher_bonus_percent=15,
    ),
    PricingStage(
        stage="standard",
        display_name="General Admission",
        start_date=datetime(2026, 5, 15, tzinfo=timezone.utc),
        end_date=datetime(2026, 8, 1, tzinfo=timezone.utc),
        voucher_bonus_percent=0,
    ),
    PricingStage(
        stage="late_bird",
        display_name="Late Bird",
        start_date=datetime(2026, 8, 1, tzinfo=timezone.utc),
        end_date=datetime(2026, 9, 11, tzinfo=timezone.utc),
        voucher_bonus_percent=0,
    ),
]


def get_stage(stage: str) -> Optional[PricingStage]:
    """Get stage configuration by name."""
    for config in PRICING_STAGES:
        if config.stage == stage:
            return config
    return None


def get_current_stage(now: Optional[datetime] = None) -> PricingStage:
    """Return the stage whose window contains ``now``; standard if none does."""
    now = now or datetime.now(timezone.utc)
    for config in PRICING_STAGES:
        if config.start_date <= now < config.end_date:
            return config
    return get_stage("standard")  # type: ignore[return-value]
