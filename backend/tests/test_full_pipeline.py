"""
End-to-end test for the Clipper Payout & Risk Engine.

Runs a full payout week with 6 fake creators:
  two YouTube polls → daily throttle check → weekly payout → .xlsx report.

Creators and their scenarios:
  1. user_alpha  -- 3 tagged clips, healthy metrics, 80K net views total
  2. user_beta   -- campaign hashtag but no ownership tag → stays pending
  3. user_gamma  -- tagged, 40K net views, CTR below the activation gate
  4. user_delta  -- tagged, view count goes backwards → 0 net views
  5. user_eps    -- tagged, 1.2M net views → super monthly bonus
  6. user_zeta   -- TikTok clip, already verified upstream, not polled

Pipeline flow:
  ClipSubmissions
    -> poll_youtube_clips()  (poll 1 captures baselines + verifies tags)
    -> poll_youtube_clips()  (poll 2 brings the week's growth)
    -> compute_conversion_averages() + advance_throttle_state()
    -> run_payout_pipeline() -> (payouts, clips, bonus records)
    -> generate_report()
"""

import sys
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from openpyxl import load_workbook

from models.schemas import ClipSubmission, RiskThrottleState
from services.excel_export import generate_report
from services.payout import run_payout_pipeline
from services.throttle import advance_throttle_state, compute_conversion_averages
from services.youtube import poll_youtube_clips

NOW = datetime(2026, 2, 23, 6, 0, tzinfo=timezone.utc)
WEEK = "2026-W09"
# Sunday 23:00: inside both last week's payout window and the 24h throttle window
SUBMITTED = NOW - timedelta(hours=7)

REFERRAL_CODES = {
    "user_alpha": "IAMBLESSEDalpha",
    "user_beta": "IAMBLESSEDbeta",
    "user_gamma": "IAMBLESSEDgamma",
    "user_delta": "IAMBLESSEDdelta",
    "user_eps": "IAMBLESSEDeps",
}


def video_id(name: str) -> str:
    return (name + "x" * 11)[:11]


def tagged(suffix: str) -> str:
    return f"Day 3 done! #3dayneurohackerchallenge #iamblessed_{suffix}"


def make_clip(clip_id, user_id, ctr=0.02, platform="youtube", status="pending", raw=0):
    url = (
        f"https://youtube.com/shorts/{video_id(clip_id)}"
        if platform == "youtube"
        else f"https://www.tiktok.com/@{user_id}/video/1"
    )
    return ClipSubmission(
        id=clip_id,
        user_id=user_id,
        platform=platform,
        clip_url=url,
        raw_view_count=raw,
        status=status,
        ctr=ctr,
        reg_rate=0.20,
        day1_post_rate=0.30,
        submitted_at=SUBMITTED,
    )


# ## =======================================================================
# ## Shared pipeline setup: run once and store results
# ## =======================================================================

class _PipelineResults:
    """
    Container for shared pipeline results, built once for all test classes.
    """

    _initialized = False

    polled_clips: list[ClipSubmission] = []
    poll_updates: list[int] = []
    throttle: RiskThrottleState = RiskThrottleState()
    sample_size: int = 0
    payouts_by_user: dict = {}
    final_clips: list[ClipSubmission] = []
    records_by_user: dict = {}
    report_path: str = ""
    output_dir: str = ""

    @classmethod
    def setup(cls):
        if cls._initialized:
            return
        cls._initialized = True

        clips = [
            make_clip("alpha1", "user_alpha"),
            make_clip("alpha2", "user_alpha"),
            make_clip("alpha3", "user_alpha"),
            make_clip("beta1", "user_beta"),
            make_clip("gamma1", "user_gamma", ctr=0.005),
            make_clip("delta1", "user_delta"),
            make_clip("eps1", "user_eps"),
            make_clip("zeta1", "user_zeta", platform="tiktok", status="verified", raw=5_000),
        ]

        # (view_count, description) per poll
        first_poll = {
            video_id("alpha1"): (100, tagged("alpha")),
            video_id("alpha2"): (200, tagged("alpha")),
            video_id("alpha3"): (300, tagged("alpha")),
            video_id("beta1"): (500, "#3dayneurohackerchallenge"),
            video_id("gamma1"): (0, tagged("gamma")),
            video_id("delta1"): (5_000, tagged("delta")),
            video_id("eps1"): (1_000, tagged("eps")),
        }
        second_poll = {
            video_id("alpha1"): (50_100, tagged("alpha")),
            video_id("alpha2"): (20_200, tagged("alpha")),
            video_id("alpha3"): (10_300, tagged("alpha")),
            video_id("beta1"): (90_500, "#3dayneurohackerchallenge"),
            video_id("gamma1"): (40_000, tagged("gamma")),
            video_id("delta1"): (4_000, tagged("delta")),
            video_id("eps1"): (1_201_000, tagged("eps")),
        }

        with patch("services.youtube.config.YOUTUBE_API_KEY", "test-key"), \
             patch("services.youtube.fetch_video_statistics", side_effect=[first_poll, second_poll]):
            clips, first_updated = poll_youtube_clips(clips, REFERRAL_CODES)
            clips, second_updated = poll_youtube_clips(clips, REFERRAL_CODES)
        cls.polled_clips = clips
        cls.poll_updates = [first_updated, second_updated]

        averages = compute_conversion_averages(clips, NOW)
        cls.sample_size = averages.sample_size
        cls.throttle = advance_throttle_state(RiskThrottleState(), averages, NOW)

        payouts, final_clips, records = run_payout_pipeline(clips, cls.throttle, WEEK, NOW)
        cls.payouts_by_user = {p.user_id: p for p in payouts}
        cls.final_clips = final_clips
        cls.records_by_user = {r.user_id: r for r in records}

        cls.output_dir = tempfile.mkdtemp(prefix="payout_e2e_")
        cls.report_path = generate_report(payouts, final_clips, WEEK, cls.output_dir)

    @classmethod
    def teardown(cls):
        if cls.output_dir:
            shutil.rmtree(cls.output_dir, ignore_errors=True)


class PipelineTestBase:

    def setup_method(self):
        _PipelineResults.setup()
        self.results = _PipelineResults

    def clip(self, clip_id) -> ClipSubmission:
        return next(c for c in self.results.polled_clips if c.id == clip_id)


def teardown_module(module):
    _PipelineResults.teardown()


# ## =======================================================================
# ## Polling
# ## =======================================================================

class TestPolling(PipelineTestBase):

    def test_every_youtube_clip_polled_twice(self):
        assert self.results.poll_updates == [7, 7]

    def test_baselines_captured_on_first_poll(self):
        assert self.clip("alpha1").baseline_view_count == 100
        assert self.clip("delta1").baseline_view_count == 5_000
        assert self.clip("eps1").baseline_view_count == 1_000

    def test_zero_first_poll_keeps_zero_baseline(self):
        assert self.clip("gamma1").baseline_view_count == 0
        assert self.clip("gamma1").net_views == 40_000

    def test_tagged_clips_verified(self):
        for clip_id in ("alpha1", "alpha2", "alpha3", "gamma1", "delta1", "eps1"):
            assert self.clip(clip_id).status == "verified", clip_id

    def test_missing_ownership_tag_stays_pending(self):
        beta = self.clip("beta1")
        assert beta.status == "pending"
        assert beta.earnings_cents == 0

    def test_tiktok_clip_untouched(self):
        zeta = self.clip("zeta1")
        assert zeta.raw_view_count == 5_000
        assert zeta.baseline_view_count == 0

    def test_per_clip_earnings_after_second_poll(self):
        assert self.clip("alpha1").earnings_cents == 1_100
        assert self.clip("eps1").earnings_cents == 26_400
        assert self.clip("delta1").earnings_cents == 0


# ## =======================================================================
# ## Throttle check
# ## =======================================================================

class TestThrottleCheck(PipelineTestBase):

    def test_sample_counts_verified_clips_only(self):
        assert self.results.sample_size == 7

    def test_healthy_week_stays_inactive(self):
        throttle = self.results.throttle
        assert throttle.is_active is False
        assert throttle.consecutive_low_days == 0
        assert throttle.updated_at == NOW


# ## =======================================================================
# ## Weekly payouts
# ## =======================================================================

class TestWeeklyPayouts(PipelineTestBase):

    def test_every_creator_has_a_row(self):
        assert sorted(self.results.payouts_by_user) == [
            "user_alpha", "user_beta", "user_delta", "user_eps", "user_gamma", "user_zeta",
        ]

    def test_alpha_aggregated(self):
        alpha = self.results.payouts_by_user["user_alpha"]
        assert alpha.clips_count == 3
        assert alpha.total_net_views == 80_000
        assert alpha.base_earnings_cents == 1_760
        assert alpha.bonus_cents == 0
        assert alpha.total_cents == 1_760

    def test_eps_super_bonus(self):
        eps = self.results.payouts_by_user["user_eps"]
        assert eps.base_earnings_cents == 26_400
        assert eps.bonus_tier == "super"
        assert eps.bonus_cents == 111_100
        assert eps.total_cents == 137_500
        assert self.results.records_by_user["user_eps"].month_key == "2026-02"

    def test_zeta_floor(self):
        assert self.results.payouts_by_user["user_zeta"].total_cents == 222

    def test_unactivated_creators_paid_nothing(self):
        for user_id in ("user_beta", "user_gamma", "user_delta"):
            payout = self.results.payouts_by_user[user_id]
            assert payout.clips_count == 0, user_id
            assert payout.total_cents == 0, user_id

    def test_all_approved_for_week(self):
        for payout in self.results.payouts_by_user.values():
            assert payout.status == "approved"
            assert payout.week_key == WEEK

    def test_following_week_pays_nothing_again(self):
        payouts, clips, _ = run_payout_pipeline(
            self.results.final_clips, self.results.throttle, "2026-W10", NOW + timedelta(days=7),
        )
        assert payouts == []
        assert clips == []

    def test_clip_activation_flags(self):
        flags = {c.id: c.is_activated for c in self.results.final_clips}
        assert flags == {
            "alpha1": True, "alpha2": True, "alpha3": True,
            "beta1": False, "gamma1": False, "delta1": False,
            "eps1": True, "zeta1": True,
        }


# ## =======================================================================
# ## Report
# ## =======================================================================

class TestReport(PipelineTestBase):

    def test_report_tabs(self):
        wb = load_workbook(self.results.report_path)
        assert wb["Weekly Payouts"].max_row == 1 + 6
        assert wb["Clip Audit"].max_row == 1 + 8

    def test_exceptions(self):
        wb = load_workbook(self.results.report_path)
        reasons = {row[0].value: row[5].value for row in wb["Exceptions"].iter_rows(min_row=2)}
        assert reasons == {
            "beta1": "clip not verified (status: pending)",
            "gamma1": "CTR below 1% (0.50%)",
            "delta1": "net views below 1,000 (0)",
        }

    def test_top_earner_first(self):
        wb = load_workbook(self.results.report_path)
        assert wb["Weekly Payouts"].cell(row=2, column=1).value == "user_eps"
