"""
Protection-mode (risk throttle) state machine.

Runs once per day from the scheduled risk job:
  1. compute_conversion_averages(clips) → mean CTR / reg rate / day-1 rate over
     clips verified in the last 24h (needs at least 5 clips)
  2. advance_throttle_state(state, averages) → next RiskThrottleState

Transition rules:
  - A day is "low" when ALL three averages sit below the protection thresholds
    (ctr < 0.008, reg_rate < 0.12, day1 < 0.20).
  - Low day: consecutive_low_days += 1, otherwise reset to 0.
  - Not-low day while active: consecutive_recovery_days += 1, otherwise reset to 0.
  - 3 consecutive low days while inactive      → activate (rpm_override = PROTECTION_RPM)
  - 3 consecutive recovery days while active   → deactivate (override cleared)
  - Optional policy: activate immediately once the advisory risk score reaches
    ThrottlePolicy.auto_activate_risk_score (disabled by default).

ThrottleStore keeps the singleton row in memory. Writers are serialized by a
lock; an update carrying an older updated_at than the stored row is dropped.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from pydantic import BaseModel

from models.schemas import ClipSubmission, ConversionAverages, RiskThrottleState
from services.earnings import PROTECTION_RPM
from services.risk import assess_risk

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
AVERAGING_WINDOW = timedelta(hours=24)
MIN_SAMPLE_SIZE = 5


class ThrottlePolicy(BaseModel):
    ctr_threshold: float = 0.008
    reg_rate_threshold: float = 0.12
    day1_rate_threshold: float = 0.20
    activation_days: int = 3
    recovery_days: int = 3
    protection_rpm: float = PROTECTION_RPM
    # None disables risk-score driven activation
    auto_activate_risk_score: Optional[int] = None


DEFAULT_POLICY = ThrottlePolicy()


# ===========================================================================
# Step 1: Rolling conversion averages
# ===========================================================================

def compute_conversion_averages(
    clips: Iterable[ClipSubmission],
    now: Optional[datetime] = None,
    window: timedelta = AVERAGING_WINDOW,
    min_sample: int = MIN_SAMPLE_SIZE,
) -> Optional[ConversionAverages]:
    """
    Average the conversion metrics of recently verified clips.

    Missing metrics count as 0. Clips without submitted_at are skipped.

    Returns:
        ConversionAverages, or None when fewer than `min_sample` clips qualify.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    cutoff = now - window

    recent = [
        c for c in clips
        if c.status == "verified" and c.submitted_at is not None and c.submitted_at >= cutoff
    ]

    if len(recent) < min_sample:
        logger.info(
            f"Not enough data for throttle check: {len(recent)} verified clips "
            f"in window (need {min_sample})"
        )
        return None

    n = len(recent)
    return ConversionAverages(
        avg_ctr=sum(c.ctr or 0 for c in recent) / n,
        avg_reg_rate=sum(c.reg_rate or 0 for c in recent) / n,
        avg_day1_rate=sum(c.day1_post_rate or 0 for c in recent) / n,
        sample_size=n,
    )


# ===========================================================================
# Step 2: State transition
# ===========================================================================

def metrics_are_low(averages: ConversionAverages, policy: ThrottlePolicy = DEFAULT_POLICY) -> bool:
    return (
        averages.avg_ctr < policy.ctr_threshold
        and averages.avg_reg_rate < policy.reg_rate_threshold
        and averages.avg_day1_rate < policy.day1_rate_threshold
    )


def advance_throttle_state(
    state: RiskThrottleState,
    averages: ConversionAverages,
    now: Optional[datetime] = None,
    policy: ThrottlePolicy = DEFAULT_POLICY,
) -> RiskThrottleState:
    """
    Apply one day of rolling averages to the throttle state.

    Returns a new RiskThrottleState; the input is not modified.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    was_active = state.is_active
    low = metrics_are_low(averages, policy)

    low_days = state.consecutive_low_days + 1 if low else 0
    recovery_days = state.consecutive_recovery_days + 1 if (not low and was_active) else 0
    is_active = was_active

    if not was_active and low_days >= policy.activation_days:
        is_active = True

    if not was_active and policy.auto_activate_risk_score is not None:
        assessment = assess_risk(
            averages.avg_ctr, averages.avg_reg_rate, averages.avg_day1_rate, was_active
        )
        if assessment.risk_score >= policy.auto_activate_risk_score:
            logger.warning(
                f"Risk score {assessment.risk_score} reached auto-activation "
                f"threshold {policy.auto_activate_risk_score}"
            )
            is_active = True

    if was_active and recovery_days >= policy.recovery_days:
        is_active = False
        recovery_days = 0

    activated_at = state.activated_at
    deactivated_at = state.deactivated_at
    if is_active and not was_active:
        activated_at = now
        logger.warning(
            f"Protection mode ACTIVATED after {low_days} low day(s): "
            f"RPM → ${policy.protection_rpm}"
        )
    elif was_active and not is_active:
        deactivated_at = now
        logger.warning("Protection mode DEACTIVATED after recovery")

    if is_active:
        # Keep a manually set override; fall back to the policy's RPM
        rpm_override = state.rpm_override if was_active and state.rpm_override else policy.protection_rpm
    else:
        rpm_override = None

    return RiskThrottleState(
        is_active=is_active,
        rpm_override=rpm_override,
        current_avg_ctr=averages.avg_ctr,
        current_avg_reg_rate=averages.avg_reg_rate,
        current_avg_day1_rate=averages.avg_day1_rate,
        consecutive_low_days=low_days,
        consecutive_recovery_days=recovery_days,
        activated_at=activated_at,
        deactivated_at=deactivated_at,
        updated_at=now,
    )


# ===========================================================================
# Shared state holder
# ===========================================================================

class ThrottleStore:
    """In-process holder for the singleton RiskThrottleState."""

    def __init__(self, state: Optional[RiskThrottleState] = None):
        self._lock = threading.Lock()
        self._state = state or RiskThrottleState()

    def get(self) -> RiskThrottleState:
        with self._lock:
            return self._state.model_copy()

    def update(self, new_state: RiskThrottleState) -> bool:
        """
        Store `new_state` unless the current row is newer.

        Returns:
            True if the write was applied, False if it was stale.
        """
        with self._lock:
            current_ts = self._state.updated_at
            incoming_ts = new_state.updated_at
            if current_ts is not None and incoming_ts is not None and incoming_ts < current_ts:
                logger.warning(
                    f"Dropping stale throttle update ({incoming_ts.isoformat()} < "
                    f"{current_ts.isoformat()})"
                )
                return False
            self._state = new_state.model_copy()
            return True

    def reset(self) -> None:
        with self._lock:
            self._state = RiskThrottleState()
