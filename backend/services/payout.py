"""
Weekly clipper payout pipeline (freeze → review → approve).

CRITICAL: Base earnings are calculated PER CREATOR on the aggregate net views
of that creator's activated clips, NOT per clip. The $2.22 floor therefore
applies at most once per creator per week.

Pipeline:
  1. freeze_weekly_payouts(clips, week) → last week's clips only, activation gate per clip,
                                          one frozen WeeklyPayout per creator
  2. review_weekly_payout(payout, clips) → re-run the gate on fresh counts, status "reviewing"
  3. finalize_weekly_payouts(payouts)   → attach monthly bonus, status "approved"
  4. run_payout_pipeline(...)           → 1 + 3 in one call

Payout window:
  The week key names the week the payout runs in. Its payouts cover clips
  submitted during the previous ISO week, [Monday - 7 days, Monday) UTC.
  A clip already filed under another week is never frozen again.

Activation gate (all must hold for a clip to count):
  net_views       >= 1,000
  ctr             >= 0.01
  reg_rate        >= 0.15
  day1_post_rate  >= 0.25
Missing conversion metrics count as 0 and fail the gate.

Protection mode:
  - base earnings use the throttle's RPM (select_rpm)
  - monthly bonuses are suppressed while protection mode is active
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from models.schemas import ClipSubmission, MonthlyBonusRecord, RiskThrottleState, WeeklyPayout
from services.bonus import monthly_bonus, monthly_net_views, month_key, month_start
from services.earnings import ACTIVATION_THRESHOLD_VIEWS, base_payout_cents, net_views, select_rpm

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Activation gate: (clip field, minimum inclusive, label for exceptions)
# ---------------------------------------------------------------------------
QUALITY_GATES = [
    ("ctr",            0.01, "CTR"),
    ("reg_rate",       0.15, "registration rate"),
    ("day1_post_rate", 0.25, "day-1 post rate"),
]


# ===========================================================================
# Week keys
# ===========================================================================

def week_key(d: date) -> str:
    """ISO week identifier, e.g. '2026-W07'."""
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def week_window(week: str) -> tuple[datetime, datetime]:
    """
    Submission window paid out under `week`: [start, end) in UTC, where end
    is that week's Monday and start the Monday before.

    Raises:
        ValueError: If `week` is not a key like '2026-W09'.
    """
    try:
        year, number = week.split("-W")
        monday = date.fromisocalendar(int(year), int(number), 1)
    except ValueError:
        raise ValueError(f"Invalid week key {week!r} (expected e.g. '2026-W09')") from None

    end = datetime(monday.year, monday.month, monday.day, tzinfo=timezone.utc)
    return end - timedelta(days=7), end


def _in_payout_window(clip: ClipSubmission, week: str, start: datetime, end: datetime) -> bool:
    if clip.payout_week is not None and clip.payout_week != week:
        return False
    return clip.submitted_at is not None and start <= clip.submitted_at < end


# ===========================================================================
# Step 1 helpers: activation gate
# ===========================================================================

def activation_failure_reason(
    clip: ClipSubmission,
    activation_threshold: int = ACTIVATION_THRESHOLD_VIEWS,
) -> Optional[str]:
    """
    Return why a clip does not count towards this week's payout,
    or None if it passes every gate.
    """
    if clip.status != "verified":
        return f"clip not verified (status: {clip.status})"

    views = net_views(clip.raw_view_count, clip.baseline_view_count)
    if views < activation_threshold:
        return f"net views below {activation_threshold:,} ({views:,})"

    for field, minimum, label in QUALITY_GATES:
        value = getattr(clip, field)
        if value is None:
            return f"missing {label}"
        if value < minimum:
            return f"{label} below {minimum:.0%} ({value:.2%})"

    return None


def is_clip_activated(clip: ClipSubmission) -> bool:
    return activation_failure_reason(clip) is None


def _aggregate_creator(
    clips: list[ClipSubmission],
) -> tuple[int, int]:
    """Return (total activated net views, activated clip count)."""
    total_views = 0
    activated = 0
    for clip in clips:
        if is_clip_activated(clip):
            total_views += net_views(clip.raw_view_count, clip.baseline_view_count)
            activated += 1
    return total_views, activated


def _group_by_creator(clips: list[ClipSubmission]) -> dict[str, list[ClipSubmission]]:
    grouped: dict[str, list[ClipSubmission]] = {}
    for clip in clips:
        grouped.setdefault(clip.user_id, []).append(clip)
    return grouped


def _freeze_clip(clip: ClipSubmission, week: str, rpm: float) -> ClipSubmission:
    activated = is_clip_activated(clip)
    views = net_views(clip.raw_view_count, clip.baseline_view_count)
    return clip.model_copy(update={
        "is_activated": activated,
        "net_views": views,
        "earnings_cents": base_payout_cents(views, rpm) if activated else 0,
        "payout_week": week,
    })


# ===========================================================================
# Step 1: Freeze
# ===========================================================================

def freeze_weekly_payouts(
    clips: list[ClipSubmission],
    week: str,
    throttle: Optional[RiskThrottleState] = None,
) -> tuple[list[WeeklyPayout], list[ClipSubmission]]:
    """
    Snapshot last week's clips into one frozen payout per creator.

    Only clips submitted inside week_window(week) are frozen; clips outside
    it, or already filed under a different week, are left out entirely.

    Args:
        clips:    Candidate clips (any submission date)
        week:     Week key the payouts are filed under
        throttle: Current throttle state (selects the RPM)

    Returns:
        payouts: One WeeklyPayout per creator with a clip in the window, sorted by user_id
        clips:   Copies of the frozen clips with is_activated / net_views /
                 earnings_cents / payout_week recomputed

    Raises:
        ValueError: If `week` is not a valid week key.
    """
    start, end = week_window(week)
    rpm = select_rpm(throttle)

    window_clips = [c for c in clips if _in_payout_window(c, week, start, end)]
    logger.info(
        f"Freezing week {week}: {len(window_clips)} clips submitted "
        f"{start:%Y-%m-%d} to {end:%Y-%m-%d} @ ${rpm} RPM "
        f"({len(clips) - len(window_clips)} outside the window or already filed)"
    )

    updated_clips = [_freeze_clip(clip, week, rpm) for clip in window_clips]

    payouts: list[WeeklyPayout] = []
    for user_id, user_clips in sorted(_group_by_creator(window_clips).items()):
        total_views, activated = _aggregate_creator(user_clips)
        base_cents = base_payout_cents(total_views, rpm)

        payouts.append(WeeklyPayout(
            user_id=user_id,
            week_key=week,
            clips_count=activated,
            total_net_views=total_views,
            base_earnings_cents=base_cents,
            bonus_cents=0,
            total_cents=base_cents,
            status="frozen",
        ))

        logger.debug(
            f"  [{user_id}] {activated}/{len(user_clips)} clips activated, "
            f"net={total_views:,} → {base_cents}¢"
        )

    logger.info(
        f"Freeze complete: {len(payouts)} creators, "
        f"total base=${sum(p.base_earnings_cents for p in payouts) / 100:,.2f}"
    )
    return payouts, updated_clips


# ===========================================================================
# Step 2: Review
# ===========================================================================

def review_weekly_payout(
    payout: WeeklyPayout,
    clips: list[ClipSubmission],
    throttle: Optional[RiskThrottleState] = None,
    now: Optional[datetime] = None,
) -> WeeklyPayout:
    """
    Re-check a frozen payout against the current counts of the clips filed
    under its week.

    Raises:
        ValueError: If the payout is not frozen.
    """
    if payout.status != "frozen":
        raise ValueError(f"Only frozen payouts can be reviewed (got {payout.status})")

    user_clips = [
        c for c in clips
        if c.user_id == payout.user_id and c.payout_week == payout.week_key
    ]
    total_views, activated = _aggregate_creator(user_clips)
    base_cents = base_payout_cents(total_views, select_rpm(throttle))

    if base_cents != payout.base_earnings_cents:
        logger.info(
            f"  [{payout.user_id}] review changed base "
            f"{payout.base_earnings_cents}¢ → {base_cents}¢"
        )

    return payout.model_copy(update={
        "clips_count": activated,
        "total_net_views": total_views,
        "base_earnings_cents": base_cents,
        "total_cents": base_cents,
        "status": "reviewing",
        "reviewed_at": now or datetime.now(timezone.utc),
    })


# ===========================================================================
# Step 3: Approve with monthly bonus
# ===========================================================================

def finalize_weekly_payouts(
    payouts: list[WeeklyPayout],
    monthly_views: dict[str, int],
    month: str,
    throttle: Optional[RiskThrottleState] = None,
    now: Optional[datetime] = None,
) -> tuple[list[WeeklyPayout], list[MonthlyBonusRecord]]:
    """
    Attach the monthly bonus and approve frozen/reviewing payouts.

    Args:
        payouts:       Payouts to approve (already-approved ones are skipped)
        monthly_views: {user_id: net views this month}
        month:         Month key for the bonus records, e.g. '2026-02'
        throttle:      Bonuses are withheld while protection mode is active

    Returns:
        (approved payouts, one MonthlyBonusRecord per approved payout)
    """
    if now is None:
        now = datetime.now(timezone.utc)
    protection = throttle is not None and throttle.is_active
    if protection:
        logger.warning("Protection mode active: monthly bonuses withheld this cycle")

    approved: list[WeeklyPayout] = []
    records: list[MonthlyBonusRecord] = []

    for payout in payouts:
        if payout.status not in ("frozen", "reviewing"):
            logger.debug(f"  [{payout.user_id}] already {payout.status}, skipping")
            continue

        views = monthly_views.get(payout.user_id, 0)
        bonus = monthly_bonus(views)
        bonus_cents = 0 if protection else bonus.bonus_cents
        bonus_tier = "none" if protection else bonus.tier

        approved.append(payout.model_copy(update={
            "bonus_cents": bonus_cents,
            "bonus_tier": bonus_tier,
            "total_cents": payout.base_earnings_cents + bonus_cents,
            "status": "approved",
            "paid_at": now,
        }))
        records.append(MonthlyBonusRecord(
            user_id=payout.user_id,
            month_key=month,
            monthly_views=views,
            bonus_tier=bonus_tier,
            bonus_cents=bonus_cents,
        ))

    logger.info(
        f"Approved {len(approved)} payouts, "
        f"total=${sum(p.total_cents for p in approved) / 100:,.2f} "
        f"(bonuses=${sum(p.bonus_cents for p in approved) / 100:,.2f})"
    )
    return approved, records


# ===========================================================================
# Convenience: full payout pipeline
# ===========================================================================

def run_payout_pipeline(
    clips: list[ClipSubmission],
    throttle: Optional[RiskThrottleState] = None,
    week: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[list[WeeklyPayout], list[ClipSubmission], list[MonthlyBonusRecord]]:
    """
    Freeze + approve in one pass.

    `clips` may hold the whole month: base earnings only use last week's
    window (see freeze_weekly_payouts), while monthly views are summed over
    every clip submitted since the start of the calendar month containing `now`.

    Returns:
        (approved payouts, frozen clips, monthly bonus records)
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if week is None:
        week = week_key(now.date())

    logger.info(f"Running payout pipeline on {len(clips)} clips for {week}")

    frozen, updated_clips = freeze_weekly_payouts(clips, week, throttle)

    since = month_start(now)
    views_by_user = {
        user_id: monthly_net_views(user_clips, since)
        for user_id, user_clips in _group_by_creator(clips).items()
    }

    approved, records = finalize_weekly_payouts(
        frozen, views_by_user, month_key(now), throttle, now
    )
    return approved, updated_clips, records
