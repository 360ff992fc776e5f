"""
Delegation score and advisory risk score.

Delegation score (0–100, one decimal):
  raw   = vs*0.3 + cc*0.25 + (5 - hu)*0.3 + r*0.15 + ad*0.3
  score = round(raw * 100 / MAX_WEIGHT, 1)      MAX_WEIGHT = 5 * sum(weights) = 6.5

  hu is inverted: hu=5 zeroes its term, hu=0 contributes the full 1.5.
  All-zero inputs therefore score 23.1, not 0.

Risk score (additive points, not clamped):
  avg_ctr        < 0.008 → +30   (else < 0.01 → +15)
  avg_reg_rate   < 0.10  → +30   (else < 0.15 → +15)
  avg_day1_rate  < 0.20  → +25   (else < 0.25 → +10)
  throttle already active → +15

The risk score is advisory only: assess_risk never flips the throttle.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from models.schemas import DelegationScoreInputs, RiskAssessment

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Delegation score weights
# ---------------------------------------------------------------------------
DELEGATION_WEIGHTS = {
    "vs": 0.3,
    "cc": 0.25,
    "hu": 0.3,   # applied to (5 - hu)
    "r": 0.15,
    "ad": 0.3,
}
SUB_SCORE_MAX = 5

# ---------------------------------------------------------------------------
# Risk score bands: (strict_upper_bound, points), most severe first.
# Only the first matching band per metric counts.
# ---------------------------------------------------------------------------
CTR_BANDS = [(0.008, 30), (0.01, 15)]
REG_RATE_BANDS = [(0.10, 30), (0.15, 15)]
DAY1_RATE_BANDS = [(0.20, 25), (0.25, 10)]
THROTTLE_ACTIVE_POINTS = 15

# Display bands (admin dashboard colour coding)
CRITICAL_LEVEL_ABOVE = 60
WARNING_LEVEL_ABOVE = 40
ELEVATED_ABOVE = 50


def delegation_score(
    inputs: DelegationScoreInputs,
    weights: dict[str, float] = DELEGATION_WEIGHTS,
) -> float:
    """
    Compute the 0–100 delegation score from five 0–5 sub-scores.

    Rounds half-up to one decimal in Decimal arithmetic, so the same
    inputs always give the same bits back.

    Raises:
        ValueError: If the weights sum to zero.
    """
    w = {key: Decimal(str(value)) for key, value in weights.items()}
    max_weight = SUB_SCORE_MAX * sum(w.values())
    if max_weight == 0:
        raise ValueError("delegation weights must not sum to zero")

    raw = (
        Decimal(str(inputs.vs_score)) * w["vs"]
        + Decimal(str(inputs.cc_score)) * w["cc"]
        + (SUB_SCORE_MAX - Decimal(str(inputs.hu_score))) * w["hu"]
        + Decimal(str(inputs.r_score)) * w["r"]
        + Decimal(str(inputs.ad_score)) * w["ad"]
    )
    score = (raw * 100 / max_weight).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(score)


def _band_points(value: float, bands: list[tuple[float, int]]) -> int:
    for upper, points in bands:
        if value < upper:
            return points
    return 0


def risk_level(score: int) -> str:
    if score > CRITICAL_LEVEL_ABOVE:
        return "critical"
    if score > WARNING_LEVEL_ABOVE:
        return "warning"
    return "normal"


def assess_risk(
    avg_ctr: float,
    avg_reg_rate: float,
    avg_day1_rate: float,
    is_throttle_active: bool,
) -> RiskAssessment:
    """
    Score rolling conversion averages against the fixed bands.

    Raises:
        ValueError: If any average lies outside [0, 1].
    """
    for name, value in (
        ("avg_ctr", avg_ctr),
        ("avg_reg_rate", avg_reg_rate),
        ("avg_day1_rate", avg_day1_rate),
    ):
        if not 0 <= value <= 1:
            raise ValueError(f"{name} must be within [0, 1], got {value}")

    score = (
        _band_points(avg_ctr, CTR_BANDS)
        + _band_points(avg_reg_rate, REG_RATE_BANDS)
        + _band_points(avg_day1_rate, DAY1_RATE_BANDS)
    )
    if is_throttle_active:
        score += THROTTLE_ACTIVE_POINTS

    logger.debug(
        f"Risk score: ctr={avg_ctr:.4f} reg={avg_reg_rate:.4f} "
        f"day1={avg_day1_rate:.4f} active={is_throttle_active} → {score}"
    )

    return RiskAssessment(
        risk_score=score,
        is_throttle_active=is_throttle_active,
        level=risk_level(score),
        elevated=score > ELEVATED_ABOVE,
    )
