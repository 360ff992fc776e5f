"""
Weekly budget cycle alerts.

Thresholds (percent of the weekly limit, highest first; only the highest
one fires per segment):
  >= 100%  → critical  "HARD FREEZE"    segment status → killed
  >=  95%  → warning   "SOFT THROTTLE"  segment status approved → throttled
  >=  80%  → caution   "WARNING"

A GLOBAL alert is computed the same way from total spend against the
cycle's global limit (no status change at the global level).
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from models.schemas import BudgetAlert, BudgetSegment

logger = logging.getLogger(__name__)

# (min_pct_inclusive, level, label)
BUDGET_THRESHOLDS = [
    (100, "critical", "HARD FREEZE"),
    (95,  "warning",  "SOFT THROTTLE"),
    (80,  "caution",  "WARNING"),
]
KILL_PCT = 100
THROTTLE_PCT = 95


def spent_pct(spent_cents: int, limit_cents: int) -> int:
    """
    Raises:
        ValueError: If the limit is not positive.
    """
    if limit_cents <= 0:
        raise ValueError(f"budget limit must be > 0, got {limit_cents}")
    # Half-up, so 94.5% already counts as 95%
    pct = Decimal(spent_cents * 100) / Decimal(limit_cents)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify(segment: str, pct: int) -> Optional[BudgetAlert]:
    for min_pct, level, label in BUDGET_THRESHOLDS:
        if pct >= min_pct:
            return BudgetAlert(segment=segment, pct=pct, level=level, label=label)
    return None


def next_segment_status(segment: BudgetSegment, pct: int) -> str:
    if pct >= KILL_PCT and segment.status != "killed":
        return "killed"
    if pct >= THROTTLE_PCT and segment.status == "approved":
        return "throttled"
    return segment.status


def evaluate_budget(
    segments: list[BudgetSegment],
    global_limit_cents: int,
) -> tuple[list[BudgetAlert], list[BudgetSegment]]:
    """
    Classify every segment plus the global total.

    Returns:
        (alerts, segments with updated status)
    """
    alerts: list[BudgetAlert] = []
    updated: list[BudgetSegment] = []

    for segment in segments:
        pct = spent_pct(segment.spent_cents, segment.weekly_limit_cents)
        alert = classify(segment.name, pct)
        if alert:
            alerts.append(alert)

        status = next_segment_status(segment, pct)
        if status != segment.status:
            logger.warning(f"Segment '{segment.name}' at {pct}%: {segment.status} → {status}")
        updated.append(segment.model_copy(update={"status": status}))

    total_spent = sum(s.spent_cents for s in segments)
    global_alert = classify("GLOBAL", spent_pct(total_spent, global_limit_cents))
    if global_alert:
        alerts.append(global_alert)

    logger.info(f"Budget check: {len(alerts)} alert(s) across {len(segments)} segments")
    return alerts, updated
