"""
Clip submission lifecycle.

Status transitions:
  pending → verified   (campaign hashtag + ownership tag found on the platform)
  pending → rejected   (admin or moderation decision)
  verified is terminal for status, but earnings are recomputed on every poll.

Baseline rule:
  The first poll of a pending clip whose baseline is still 0 captures the
  live view count as the baseline. After that the baseline never moves.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from models.schemas import ClipSubmission, RiskThrottleState
from services.earnings import compute_clip_earnings

logger = logging.getLogger(__name__)


def verify_submission(clip: ClipSubmission, now: Optional[datetime] = None) -> ClipSubmission:
    """
    Raises:
        ValueError: If the clip is not pending.
    """
    if clip.status != "pending":
        raise ValueError(f"Clip {clip.id} is {clip.status}, only pending clips can be verified")
    return clip.model_copy(update={
        "status": "verified",
        "verified_at": now or datetime.now(timezone.utc),
    })


def reject_submission(clip: ClipSubmission, reason: str = "") -> ClipSubmission:
    """
    Raises:
        ValueError: If the clip is not pending.
    """
    if clip.status != "pending":
        raise ValueError(f"Clip {clip.id} is {clip.status}, only pending clips can be rejected")
    logger.info(f"Rejecting clip {clip.id}: {reason or 'no reason given'}")
    return clip.model_copy(update={
        "status": "rejected",
        "earnings_cents": 0,
        "is_activated": False,
    })


def recompute_earnings(
    clip: ClipSubmission,
    throttle: Optional[RiskThrottleState] = None,
) -> ClipSubmission:
    """Refresh net_views / earnings_cents / is_activated from current counts."""
    result = compute_clip_earnings(clip, throttle)
    return clip.model_copy(update={
        "net_views": result.net_views,
        "earnings_cents": result.earnings_cents,
        "is_activated": result.is_activated,
    })


def apply_poll_result(
    clip: ClipSubmission,
    live_view_count: int,
    tags_verified: bool,
    throttle: Optional[RiskThrottleState] = None,
    now: Optional[datetime] = None,
) -> ClipSubmission:
    """
    Fold one platform statistics poll into a clip.

    Args:
        clip:             Current stored clip
        live_view_count:  Lifetime view count reported by the platform
        tags_verified:    True when both campaign and ownership tags are present
        throttle:         Current throttle state (selects the RPM)
        now:              Poll timestamp

    Returns:
        Updated copy of the clip. Rejected clips only get the new view count.

    Raises:
        ValueError: If live_view_count is negative.
    """
    if live_view_count < 0:
        raise ValueError(f"live_view_count must be >= 0, got {live_view_count}")
    if now is None:
        now = datetime.now(timezone.utc)

    updated = clip.model_copy(update={"raw_view_count": live_view_count})

    if updated.status == "pending" and updated.baseline_view_count == 0:
        updated = updated.model_copy(update={"baseline_view_count": live_view_count})
        logger.debug(f"  [{clip.id}] baseline captured at {live_view_count:,} views")

    if updated.status == "pending" and tags_verified:
        updated = verify_submission(updated, now)
        logger.info(f"  [{clip.id}] verified (campaign + ownership tags present)")

    if updated.status == "verified":
        updated = recompute_earnings(updated, throttle)

    return updated
