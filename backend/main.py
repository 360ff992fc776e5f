"""
Clipper Payout & Risk Engine — FastAPI application.

Wires the payout engine into a JSON API:

  POST /api/clips/earnings          net views + earnings + activation for one clip
  POST /api/bonus/monthly           monthly bonus tier + progress to the next tier
  POST /api/risk/delegation-score   0–100 delegation score from five sub-scores
  GET  /api/risk/assessment         advisory risk score from the stored throttle row
  GET  /api/throttle                current protection-mode state
  PUT  /api/throttle                manual admin override of the protection-mode state
  POST /api/throttle/check          daily rolling-average check → next throttle state
  POST /api/youtube/verify          poll YouTube statistics → updated clips
  POST /api/payouts/weekly          freeze + approve a payout week, generate .xlsx report
  POST /api/budget/alerts           budget cycle threshold alerts
  POST /api/economy/metrics         realized RPM + forecast multipliers
  GET  /api/download/{filename}     serve a generated .xlsx report

Error handling:
  - Contract violations (ValueError) → 400
  - YouTube API / creator sheet failures → 502
  - Stale throttle write → 409
  - Missing report → 404
"""

import os
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

import config
from models.schemas import (
    BudgetAlertsRequest,
    BudgetAlertsResponse,
    ClipEarnings,
    ClipEarningsRequest,
    DelegationScoreInputs,
    DelegationScoreResponse,
    EconomyMetrics,
    EconomyMetricsRequest,
    MonthlyBonusRequest,
    MonthlyBonusResponse,
    RiskAssessment,
    RiskThrottleState,
    ThrottleCheckRequest,
    ThrottleCheckResponse,
    WeeklyPayoutRequest,
    WeeklyPayoutResponse,
    YouTubeVerifyRequest,
    YouTubeVerifyResponse,
)
from services.bonus import bonus_progress, monthly_bonus
from services.budget import evaluate_budget
from services.creator_profiles import fetch_creator_profiles
from services.earnings import compute_clip_earnings
from services.economy import compute_economy_metrics
from services.excel_export import generate_report
from services.payout import run_payout_pipeline, week_key
from services.risk import assess_risk, delegation_score
from services.throttle import ThrottleStore, advance_throttle_state, compute_conversion_averages
from services.youtube import poll_youtube_clips

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Clipper Payout & Risk Engine",
    description="Clip earnings, monthly bonuses, delegation scoring and risk throttling",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Singleton protection-mode row, shared by every request
throttle_store = ThrottleStore()

os.makedirs(config.OUTPUT_DIR, exist_ok=True)


def _bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail={"status": "error", "message": str(e)})


# ===========================================================================
# Earnings / bonus / scoring
# ===========================================================================

@app.post("/api/clips/earnings", response_model=ClipEarnings)
async def clip_earnings(request: ClipEarningsRequest):
    try:
        return compute_clip_earnings(request.clip, throttle_store.get())
    except ValueError as e:
        raise _bad_request(e)


@app.post("/api/bonus/monthly", response_model=MonthlyBonusResponse)
async def monthly_bonus_tier(request: MonthlyBonusRequest):
    return MonthlyBonusResponse(
        bonus=monthly_bonus(request.monthly_net_views),
        progress=bonus_progress(request.monthly_net_views),
    )


@app.post("/api/risk/delegation-score", response_model=DelegationScoreResponse)
async def delegation(inputs: DelegationScoreInputs):
    return DelegationScoreResponse(delegation_score=delegation_score(inputs))


@app.get("/api/risk/assessment", response_model=RiskAssessment)
async def risk_assessment():
    state = throttle_store.get()
    return assess_risk(
        state.current_avg_ctr,
        state.current_avg_reg_rate,
        state.current_avg_day1_rate,
        state.is_active,
    )


# ===========================================================================
# Throttle
# ===========================================================================

@app.get("/api/throttle", response_model=RiskThrottleState)
async def get_throttle():
    return throttle_store.get()


@app.put("/api/throttle", response_model=RiskThrottleState)
async def set_throttle(state: RiskThrottleState):
    """Manual admin toggle. Stamped with the current time when updated_at is omitted."""
    if state.updated_at is None:
        state = state.model_copy(update={"updated_at": datetime.now(timezone.utc)})
    current = throttle_store.get()
    if state.is_active and not current.is_active and state.activated_at is None:
        state = state.model_copy(update={"activated_at": state.updated_at})
    if not state.is_active and current.is_active and state.deactivated_at is None:
        state = state.model_copy(update={"deactivated_at": state.updated_at})

    if not throttle_store.update(state):
        raise HTTPException(
            status_code=409,
            detail={"status": "error", "message": "A newer throttle state is already stored"},
        )
    logger.info(f"Throttle set manually: active={state.is_active}, rpm_override={state.rpm_override}")
    return throttle_store.get()


@app.post("/api/throttle/check", response_model=ThrottleCheckResponse)
async def check_throttle(request: ThrottleCheckRequest):
    current = throttle_store.get()
    averages = compute_conversion_averages(request.clips)

    if averages is None:
        return ThrottleCheckResponse(status="skipped", message="Not enough data", throttle=current)

    new_state = advance_throttle_state(current, averages)
    if not throttle_store.update(new_state):
        raise HTTPException(
            status_code=409,
            detail={"status": "error", "message": "A newer throttle state is already stored"},
        )

    return ThrottleCheckResponse(status="success", averages=averages, throttle=new_state)


# ===========================================================================
# YouTube poll
# ===========================================================================

@app.post("/api/youtube/verify", response_model=YouTubeVerifyResponse)
async def verify_youtube(request: YouTubeVerifyRequest):
    try:
        _, referral_map = fetch_creator_profiles()
    except RuntimeError as e:
        logger.error(f"Failed to fetch creator profiles: {e}")
        raise HTTPException(
            status_code=502,
            detail={"status": "error", "message": "Failed to fetch creator profiles"},
        )

    try:
        clips, updated = poll_youtube_clips(request.clips, referral_map, throttle_store.get())
    except RuntimeError as e:
        logger.error(f"YouTube poll failed: {e}")
        raise HTTPException(
            status_code=502,
            detail={"status": "error", "message": "Failed to fetch YouTube statistics"},
        )

    return YouTubeVerifyResponse(status="success", updated=updated, total=len(request.clips), clips=clips)


# ===========================================================================
# Weekly payouts
# ===========================================================================

@app.post("/api/payouts/weekly", response_model=WeeklyPayoutResponse)
async def weekly_payouts(request: WeeklyPayoutRequest):
    """
    Freeze and approve one payout week, then write the .xlsx report.
    """
    throttle = throttle_store.get()

    logger.info("=" * 60)
    logger.info(f"WEEKLY PAYOUT: {len(request.clips)} clips, protection={throttle.is_active}")
    logger.info("=" * 60)

    week = request.week_key or week_key(datetime.now(timezone.utc).date())

    try:
        payouts, clips, _ = run_payout_pipeline(request.clips, throttle, week)
    except ValueError as e:
        raise _bad_request(e)

    filepath = generate_report(payouts, clips, week)
    filename = os.path.basename(filepath)

    summary = {
        "week_key": week,
        "total_creators": len(payouts),
        "total_clips": len(clips),
        "activated_clips": sum(1 for c in clips if c.is_activated),
        "total_base_cents": sum(p.base_earnings_cents for p in payouts),
        "total_bonus_cents": sum(p.bonus_cents for p in payouts),
        "total_cents": sum(p.total_cents for p in payouts),
        "protection_mode": throttle.is_active,
    }
    logger.info(f"Payout complete: {summary}")

    return WeeklyPayoutResponse(status="success", filename=filename, summary=summary, payouts=payouts)


# ===========================================================================
# Budget / economy
# ===========================================================================

@app.post("/api/budget/alerts", response_model=BudgetAlertsResponse)
async def budget_alerts(request: BudgetAlertsRequest):
    alerts, segments = evaluate_budget(request.segments, request.global_weekly_limit_cents)
    return BudgetAlertsResponse(alerts=alerts, segments=segments)


@app.post("/api/economy/metrics", response_model=EconomyMetrics)
async def economy_metrics(request: EconomyMetricsRequest):
    return compute_economy_metrics(request.payouts, throttle_store.get())


# ===========================================================================
# GET /api/download/{filename}: Serve generated .xlsx files
# ===========================================================================

@app.get("/api/download/{filename}")
async def download_report(filename: str):
    file_path = os.path.join(config.OUTPUT_DIR, os.path.basename(filename))

    if not os.path.exists(file_path):
        raise HTTPException(
            status_code=404,
            detail={
                "status": "error",
                "message": f"Report not found: {filename}",
            },
        )

    return FileResponse(
        file_path,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
