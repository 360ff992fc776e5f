"""
Shared test fixtures for the Clipper Payout & Risk Engine test suite.

The autouse fixture `no_backoff_sleep` patches time.sleep inside the
YouTube client so retry tests don't actually wait out the backoff.
"""

import os
import sys
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.schemas import ClipSubmission


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    with patch("services.youtube.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def clip_factory():
    """
    Build ClipSubmission objects with sensible defaults: a verified
    YouTube clip that passes every quality gate.
    """
    counter = {"n": 0}

    def _make(
        user_id="user_alice",
        raw=5_000,
        baseline=0,
        status="verified",
        ctr=0.02,
        reg_rate=0.20,
        day1_post_rate=0.30,
        submitted_at=None,
        platform="youtube",
        clip_url=None,
        clip_id=None,
    ) -> ClipSubmission:
        counter["n"] += 1
        n = counter["n"]
        return ClipSubmission(
            id=clip_id or f"clip_{n}",
            user_id=user_id,
            platform=platform,
            clip_url=clip_url or f"https://youtube.com/shorts/abcdefghi{n:02d}",
            raw_view_count=raw,
            baseline_view_count=baseline,
            status=status,
            ctr=ctr,
            reg_rate=reg_rate,
            day1_post_rate=day1_post_rate,
            submitted_at=submitted_at or datetime(2026, 2, 17, 12, 0, tzinfo=timezone.utc),
        )

    return _make
