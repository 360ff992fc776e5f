"""
Economy metrics derived from payout history.

  realized_rpm      = total_cents / total_net_views * 10    ($ per 1,000 views)
  avg per clip      = round(total_cents / total_clips)
  avg views / clip  = round(total_net_views / total_clips)
  worst case        = (mean + 2σ) / mean    of per-payout totals (1.5 with no data)
  risk adjusted     = max(0.3, (mean − σ) / mean)                (0.8 with no data)

σ is the sample standard deviation (0 for a single row). The effective RPM
(real_rpm) is the throttle override when protection mode has one, otherwise
the realized RPM.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import pandas as pd

from models.schemas import EconomyMetrics, PayoutHistoryRow, RiskThrottleState

logger = logging.getLogger(__name__)

DEFAULT_WORST_CASE_MULTIPLIER = 1.5
DEFAULT_RISK_ADJ_MULTIPLIER = 0.8
MIN_RISK_ADJ_MULTIPLIER = 0.3


def _round_half_up(numerator: int, denominator: int) -> int:
    quotient = Decimal(numerator) / Decimal(denominator)
    return int(quotient.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_economy_metrics(
    payouts: list[PayoutHistoryRow],
    throttle: Optional[RiskThrottleState] = None,
) -> EconomyMetrics:
    df = pd.DataFrame(
        [p.model_dump() for p in payouts],
        columns=["total_cents", "total_net_views", "clips_count"],
    )

    total_cents = int(df["total_cents"].sum())
    total_views = int(df["total_net_views"].sum())
    total_clips = int(df["clips_count"].sum())

    realized_rpm = total_cents / total_views * 10 if total_views > 0 else 0.0
    avg_per_clip = _round_half_up(total_cents, total_clips) if total_clips > 0 else 0
    avg_views = _round_half_up(total_views, total_clips) if total_clips > 0 else 0

    mean = float(df["total_cents"].mean()) if len(df) else 0.0
    std = float(df["total_cents"].std(ddof=1)) if len(df) > 1 else 0.0

    if mean > 0:
        worst = (mean + 2 * std) / mean
        risk_adj = max(MIN_RISK_ADJ_MULTIPLIER, (mean - std) / mean)
    else:
        worst = DEFAULT_WORST_CASE_MULTIPLIER
        risk_adj = DEFAULT_RISK_ADJ_MULTIPLIER

    if throttle is not None and throttle.is_active and throttle.rpm_override:
        effective_rpm = throttle.rpm_override
    else:
        effective_rpm = realized_rpm

    logger.info(
        f"Economy metrics over {len(df)} payouts: realized RPM=${realized_rpm:.4f}, "
        f"effective RPM=${effective_rpm:.4f}, worst={worst:.2f}x, risk-adj={risk_adj:.2f}x"
    )

    return EconomyMetrics(
        real_rpm=effective_rpm,
        realized_rpm=realized_rpm,
        avg_earnings_per_clip_cents=avg_per_clip,
        avg_views_per_clip=avg_views,
        worst_case_multiplier=worst,
        risk_adj_multiplier=risk_adj,
    )
