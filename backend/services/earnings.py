"""
Per-clip earnings calculation (view normalizer + earnings calculator).

CRITICAL: Earnings are integer cents end to end. No fractional cents are
ever stored; the only rounding happens once, at the cent boundary.

Pipeline:
  1. net_views(raw, baseline)          → max(0, raw - baseline)
  2. select_rpm(throttle)              → DEFAULT_RPM, or the override while protection is active
  3. base_payout_cents(net_views, rpm) → round(net_views / 1000 * rpm * 100), floored to $2.22
  4. compute_clip_earnings(clip, ...)  → activation gate (≥ 1,000 net views) + steps 1–3

Floor rule:
  0 < raw cents < 222  → 222
  raw cents == 0       → 0 (a clip with zero net views earns nothing, not the floor)
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import config
from models.schemas import ClipSubmission, ClipEarnings, RiskThrottleState

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants (env-overridable through config.py)
# ---------------------------------------------------------------------------
DEFAULT_RPM = config.DEFAULT_RPM                                # $ per 1,000 views
PROTECTION_RPM = config.PROTECTION_RPM                          # $ per 1,000 views while throttled
MIN_PAYOUT_CENTS = config.MIN_PAYOUT_CENTS                      # $2.22
ACTIVATION_THRESHOLD_VIEWS = config.ACTIVATION_THRESHOLD_VIEWS  # net views before earnings count

_CENT = Decimal("1")


# ===========================================================================
# Step 1: View normalizer
# ===========================================================================

def net_views(raw_view_count: int, baseline_view_count: int) -> int:
    """
    Views attributable to a submission window.

    Platform counts can appear to go backwards (API caching, fraud sweeps),
    so a negative delta is clamped to 0. Negative inputs themselves are
    upstream data corruption and are rejected.

    Raises:
        ValueError: If either count is negative.
    """
    if raw_view_count < 0:
        raise ValueError(f"raw_view_count must be >= 0, got {raw_view_count}")
    if baseline_view_count < 0:
        raise ValueError(f"baseline_view_count must be >= 0, got {baseline_view_count}")
    return max(0, raw_view_count - baseline_view_count)


# ===========================================================================
# Step 2: RPM selection
# ===========================================================================

def select_rpm(
    throttle: Optional[RiskThrottleState] = None,
    default_rpm: float = DEFAULT_RPM,
    protection_rpm: float = PROTECTION_RPM,
) -> float:
    """
    Pick the RPM for the next computation.

    The throttle state is passed in explicitly by the caller; this module
    never reads it from anywhere on its own.
    """
    if throttle is None or not throttle.is_active:
        return default_rpm
    if throttle.rpm_override is not None:
        return throttle.rpm_override
    return protection_rpm


# ===========================================================================
# Step 3: Base payout in cents
# ===========================================================================

def base_payout_cents(
    views: int,
    rpm: float,
    min_payout_cents: int = MIN_PAYOUT_CENTS,
) -> int:
    """
    Convert net views into a payout in cents.

    raw = round(views / 1000 * rpm * 100), rounded half-up in Decimal so
    that float artefacts (e.g. 0.22 * 1000) can't shift a cent.

    Args:
        views: Net views (>= 0)
        rpm:   Dollars per 1,000 views (> 0)

    Returns:
        Payout in cents: 0, the floor, or the rounded raw value.

    Raises:
        ValueError: If views is negative or rpm is not positive.
    """
    if views < 0:
        raise ValueError(f"net views must be >= 0, got {views}")
    if rpm <= 0:
        raise ValueError(f"rpm must be > 0, got {rpm}")

    # views / 1000 * rpm * 100 == views * rpm / 10
    raw = (Decimal(views) * Decimal(str(rpm)) / Decimal(10)).quantize(_CENT, rounding=ROUND_HALF_UP)
    cents = int(raw)

    if 0 < cents < min_payout_cents:
        return min_payout_cents
    return cents


# ===========================================================================
# Step 4: Full per-clip computation (activation gate)
# ===========================================================================

def compute_clip_earnings(
    clip: ClipSubmission,
    throttle: Optional[RiskThrottleState] = None,
    activation_threshold: int = ACTIVATION_THRESHOLD_VIEWS,
) -> ClipEarnings:
    """
    Compute net views, earnings and activation for one clip.

    Below the activation threshold the clip earns 0 and stays inactive,
    even though base_payout_cents alone would return the floor.
    """
    views = net_views(clip.raw_view_count, clip.baseline_view_count)
    rpm = select_rpm(throttle)

    if views >= activation_threshold:
        earnings = base_payout_cents(views, rpm)
        activated = True
    else:
        earnings = 0
        activated = False

    logger.debug(
        f"  [{clip.id}] raw={clip.raw_view_count:,} baseline={clip.baseline_view_count:,} "
        f"→ net={views:,} @ ${rpm} RPM → {earnings}¢ (activated={activated})"
    )

    return ClipEarnings(
        clip_id=clip.id,
        net_views=views,
        earnings_cents=earnings,
        is_activated=activated,
        rpm=rpm,
    )


# ===========================================================================
# Standalone check (run with: cd backend && python -m services.earnings)
# ===========================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG, format="%(levelname)s: %(message)s")

    print("=" * 60)
    print("EARNINGS SANITY CHECK")
    print("=" * 60)

    test_cases = [
        (0, DEFAULT_RPM, 0),
        (100, DEFAULT_RPM, 222),
        (1_000, DEFAULT_RPM, 222),
        (100_000, DEFAULT_RPM, 2_200),
        (1_000_000, DEFAULT_RPM, 22_000),
        (1_000_000, PROTECTION_RPM, 18_000),
    ]

    all_pass = True
    for views, rpm, expected in test_cases:
        actual = base_payout_cents(views, rpm)
        status = "PASS" if actual == expected else "FAIL"
        if status == "FAIL":
            all_pass = False
        print(f"  {status}: {views:>10,} views @ ${rpm} → {actual:>6}¢ (expected {expected}¢)")

    print(f"\n{'All checks passed!' if all_pass else 'SOME CHECKS FAILED!'}")
