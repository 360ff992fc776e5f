"""
Pydantic models for the Clipper Payout & Risk Engine.

Models:
  - ClipSubmission: One content submission by a creator (raw + baseline views, status, earnings)
  - RiskThrottleState: The singleton protection-mode row (active flag, RPM override, rolling averages)
  - DelegationScoreInputs: Five 0–5 sub-scores feeding the delegation score
  - ClipEarnings: Result of one earnings computation for a clip
  - MonthlyBonus / BonusProgress: Monthly bonus tier resolution and progress to the next tier
  - ConversionAverages / RiskAssessment: Rolling conversion averages and the advisory risk score
  - WeeklyPayout / MonthlyBonusRecord: Per-creator weekly payout rows
  - BudgetSegment / BudgetAlert: Budget cycle spend and triggered alerts
  - PayoutHistoryRow / EconomyMetrics: Realized economy metrics from payout history
  - *Request / *Response: API request/response models
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, timezone
from typing import Literal, Optional


Platform = Literal["tiktok", "youtube", "instagram", "x"]
ClipStatus = Literal["pending", "verified", "rejected"]
BonusTier = Literal["none", "verified", "proven", "super"]
PayoutStatus = Literal["frozen", "reviewing", "approved"]
RiskLevel = Literal["normal", "warning", "critical"]
SegmentStatus = Literal["approved", "throttled", "killed"]


# ---------------------------------------------------------------------------
# ClipSubmission: one clip submitted by a creator
#
# net_views = max(0, raw_view_count - baseline_view_count)
# earnings_cents / is_activated / net_views are derived by the engine,
# never set independently by callers: net_views is recomputed on entry,
# earnings_cents / is_activated by every poll and by the weekly freeze.
# ---------------------------------------------------------------------------
class ClipSubmission(BaseModel):
    id: str
    user_id: str
    platform: Platform
    clip_url: str = ""
    raw_view_count: int = Field(0, ge=0)        # last polled lifetime views
    baseline_view_count: int = Field(0, ge=0)   # fixed at first verification poll
    status: ClipStatus = "pending"
    net_views: int = Field(0, ge=0)
    earnings_cents: int = Field(0, ge=0)
    is_activated: bool = False
    # Per-clip conversion metrics, filled in by the analytics job (may be missing)
    ctr: Optional[float] = Field(None, ge=0, le=1)
    reg_rate: Optional[float] = Field(None, ge=0, le=1)
    day1_post_rate: Optional[float] = Field(None, ge=0, le=1)
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    payout_week: Optional[str] = None

    @field_validator("submitted_at", "verified_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps from the DB are UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _derive_net_views(self):
        # Always follows the counts; a caller-supplied value is discarded
        self.net_views = max(0, self.raw_view_count - self.baseline_view_count)
        return self


# ---------------------------------------------------------------------------
# CreatorProfile: one row from the published creator profiles sheet
# ---------------------------------------------------------------------------
class CreatorProfile(BaseModel):
    user_id: str
    referral_code: Optional[str] = None
    email: Optional[str] = None


# ---------------------------------------------------------------------------
# RiskThrottleState: singleton protection-mode configuration
# ---------------------------------------------------------------------------
class RiskThrottleState(BaseModel):
    is_active: bool = False
    rpm_override: Optional[float] = Field(None, gt=0)  # dollars per 1,000 views
    current_avg_ctr: float = Field(0.0, ge=0, le=1)
    current_avg_reg_rate: float = Field(0.0, ge=0, le=1)
    current_avg_day1_rate: float = Field(0.0, ge=0, le=1)
    consecutive_low_days: int = Field(0, ge=0)
    consecutive_recovery_days: int = Field(0, ge=0)
    activated_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _override_requires_active(self):
        if self.rpm_override is not None and not self.is_active:
            raise ValueError("rpm_override is only allowed while the throttle is active")
        return self


# ---------------------------------------------------------------------------
# DelegationScoreInputs: five weighted sub-scores, each in [0, 5]
#   hu_score is inverted: higher means more risk, lower final score
# ---------------------------------------------------------------------------
class DelegationScoreInputs(BaseModel):
    vs_score: float = Field(0.0, ge=0, le=5)  # view-source quality
    cc_score: float = Field(0.0, ge=0, le=5)  # content compliance
    hu_score: float = Field(0.0, ge=0, le=5)  # human-unverified risk
    r_score: float = Field(0.0, ge=0, le=5)   # retention
    ad_score: float = Field(0.0, ge=0, le=5)  # ad-safety / brand


class ClipEarnings(BaseModel):
    clip_id: str
    net_views: int
    earnings_cents: int
    is_activated: bool
    rpm: float


# ---------------------------------------------------------------------------
# Monthly bonus
# ---------------------------------------------------------------------------
class MonthlyBonus(BaseModel):
    tier: BonusTier
    bonus_cents: int
    monthly_net_views: int = 0


class BonusProgress(BaseModel):
    current_tier: BonusTier
    next_tier: Optional[BonusTier] = None   # None once the top tier is reached
    next_threshold: Optional[int] = None
    views_remaining: int = 0
    percent: float = 100.0


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------
class ConversionAverages(BaseModel):
    avg_ctr: float = Field(ge=0, le=1)
    avg_reg_rate: float = Field(ge=0, le=1)
    avg_day1_rate: float = Field(ge=0, le=1)
    sample_size: int = 0


class RiskAssessment(BaseModel):
    risk_score: int
    is_throttle_active: bool
    level: RiskLevel
    elevated: bool


# ---------------------------------------------------------------------------
# WeeklyPayout: one creator's payout row for one week
#
# base_earnings_cents is computed on the creator's aggregate activated
# net views; total_cents = base_earnings_cents + bonus_cents
# ---------------------------------------------------------------------------
class WeeklyPayout(BaseModel):
    user_id: str
    week_key: str
    clips_count: int = 0
    total_net_views: int = 0
    base_earnings_cents: int = 0
    bonus_cents: int = 0
    bonus_tier: BonusTier = "none"
    total_cents: int = 0
    status: PayoutStatus = "frozen"
    reviewed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class MonthlyBonusRecord(BaseModel):
    user_id: str
    month_key: str
    monthly_views: int
    bonus_tier: BonusTier
    bonus_cents: int


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------
class BudgetSegment(BaseModel):
    name: str
    weekly_limit_cents: int = Field(gt=0)
    spent_cents: int = Field(0, ge=0)
    status: SegmentStatus = "approved"


class BudgetAlert(BaseModel):
    segment: str
    pct: int
    level: str   # "critical", "warning" or "caution"
    label: str


# ---------------------------------------------------------------------------
# Economy metrics
# ---------------------------------------------------------------------------
class PayoutHistoryRow(BaseModel):
    total_cents: int = Field(0, ge=0)
    total_net_views: int = Field(0, ge=0)
    clips_count: int = Field(0, ge=0)


class EconomyMetrics(BaseModel):
    real_rpm: float
    realized_rpm: float
    avg_earnings_per_clip_cents: int
    avg_views_per_clip: int
    worst_case_multiplier: float
    risk_adj_multiplier: float


# ---------------------------------------------------------------------------
# API request / response models
# ---------------------------------------------------------------------------
class ClipEarningsRequest(BaseModel):
    clip: ClipSubmission


class MonthlyBonusRequest(BaseModel):
    monthly_net_views: int = Field(ge=0)


class MonthlyBonusResponse(BaseModel):
    bonus: MonthlyBonus
    progress: BonusProgress


class DelegationScoreResponse(BaseModel):
    delegation_score: float


class ThrottleCheckRequest(BaseModel):
    clips: list[ClipSubmission]


class ThrottleCheckResponse(BaseModel):
    status: str
    message: Optional[str] = None
    averages: Optional[ConversionAverages] = None
    throttle: RiskThrottleState


class YouTubeVerifyRequest(BaseModel):
    clips: list[ClipSubmission]


class YouTubeVerifyResponse(BaseModel):
    status: str
    updated: int
    total: int
    clips: list[ClipSubmission]


class WeeklyPayoutRequest(BaseModel):
    clips: list[ClipSubmission]
    week_key: Optional[str] = None


class WeeklyPayoutResponse(BaseModel):
    status: str
    filename: str
    summary: dict
    payouts: list[WeeklyPayout]


class BudgetAlertsRequest(BaseModel):
    segments: list[BudgetSegment]
    global_weekly_limit_cents: int = Field(gt=0)


class BudgetAlertsResponse(BaseModel):
    alerts: list[BudgetAlert]
    segments: list[BudgetSegment]


class EconomyMetricsRequest(BaseModel):
    payouts: list[PayoutHistoryRow]
