"""
Monthly bonus tier resolution.

Tier table (applied to a creator's monthly net views, highest first):
  >= 1,000,000  → super     $1,111.00
  >=   500,000  → proven      $444.00
  >=   100,000  → verified    $111.00
  <    100,000  → none          $0

Lower bounds are inclusive. Nothing above super: 5M views still pays the
super bonus.
"""

import logging
from datetime import datetime
from typing import Iterable

from models.schemas import ClipSubmission, MonthlyBonus, BonusProgress
from services.earnings import net_views

logger = logging.getLogger(__name__)

# (min_views_inclusive, tier, bonus_cents): must stay sorted highest first
MONTHLY_BONUS_TIERS = [
    (1_000_000, "super",    111_100),
    (500_000,   "proven",   44_400),
    (100_000,   "verified", 11_100),
]


def monthly_bonus(
    monthly_net_views: int,
    tiers: list[tuple[int, str, int]] = MONTHLY_BONUS_TIERS,
) -> MonthlyBonus:
    """
    Resolve the bonus tier for a creator's monthly net views.

    Raises:
        ValueError: If monthly_net_views is negative.
    """
    if monthly_net_views < 0:
        raise ValueError(f"monthly_net_views must be >= 0, got {monthly_net_views}")

    for min_views, tier, bonus_cents in tiers:
        if monthly_net_views >= min_views:
            return MonthlyBonus(
                tier=tier,
                bonus_cents=bonus_cents,
                monthly_net_views=monthly_net_views,
            )

    return MonthlyBonus(tier="none", bonus_cents=0, monthly_net_views=monthly_net_views)


def bonus_progress(
    monthly_net_views: int,
    tiers: list[tuple[int, str, int]] = MONTHLY_BONUS_TIERS,
) -> BonusProgress:
    """
    Progress towards the next locked tier (lowest threshold not yet reached).
    Once the top tier is unlocked, next_tier is None and percent is 100.
    """
    current = monthly_bonus(monthly_net_views, tiers)

    for min_views, tier, _ in sorted(tiers):
        if monthly_net_views < min_views:
            return BonusProgress(
                current_tier=current.tier,
                next_tier=tier,
                next_threshold=min_views,
                views_remaining=min_views - monthly_net_views,
                percent=min(100.0, monthly_net_views / min_views * 100),
            )

    return BonusProgress(current_tier=current.tier)


def month_start(now: datetime) -> datetime:
    """First instant of the calendar month containing `now` (tz preserved)."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def month_key(now: datetime) -> str:
    return f"{now.year}-{now.month:02d}"


def monthly_net_views(clips: Iterable[ClipSubmission], since: datetime) -> int:
    """
    Sum net views of a creator's clips submitted on or after `since`.

    Clips with no submitted_at are not counted — they can't be placed in
    the window.
    """
    total = 0
    for clip in clips:
        if clip.submitted_at is None or clip.submitted_at < since:
            continue
        total += net_views(clip.raw_view_count, clip.baseline_view_count)
    return total
