"""
Tests for services/excel_export.py.

Tests verify:
  1. FILE GENERATION: file created, correct name, correct path
  2. TAB STRUCTURE: 3 tabs with correct names
  3. TAB 1 — Weekly Payouts: headers, sort order (total desc), cents → dollars
  4. TAB 2 — Clip Audit: headers, sort order (user then submitted_at), activation flag
  5. TAB 3 — Exceptions: only clips that failed a gate, with the reason
  6. FORMATTING: bold headers, frozen top row, currency / number / percent formats
"""

import sys
import os
import pytest
from datetime import datetime, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from openpyxl import load_workbook

from models.schemas import WeeklyPayout
from services.excel_export import (
    generate_report,
    _format_datetime,
    CURRENCY_FORMAT,
    NUMBER_FORMAT,
    PERCENT_FORMAT,
)

WEEK = "2026-W08"


def make_payout(user_id="user_alice", base=2_200, bonus=0, tier="none", clips=1, views=100_000):
    return WeeklyPayout(
        user_id=user_id,
        week_key=WEEK,
        clips_count=clips,
        total_net_views=views,
        base_earnings_cents=base,
        bonus_cents=bonus,
        bonus_tier=tier,
        total_cents=base + bonus,
        status="approved",
    )


@pytest.fixture
def report(tmp_path, clip_factory):
    """Generate a small report and return (path, workbook)."""
    payouts = [
        make_payout("user_alice", base=2_200),
        make_payout("user_bob", base=1_100, bonus=11_100, tier="verified"),
    ]
    clips = [
        clip_factory(user_id="user_bob", raw=50_000, submitted_at=datetime(2026, 2, 18, tzinfo=timezone.utc)),
        clip_factory(user_id="user_alice", raw=100_000, submitted_at=datetime(2026, 2, 17, tzinfo=timezone.utc)),
        clip_factory(user_id="user_alice", raw=500, submitted_at=datetime(2026, 2, 16, tzinfo=timezone.utc)),
        clip_factory(user_id="user_bob", raw=9_000, ctr=0.001, clip_id="clip_lowctr"),
    ]
    path = generate_report(payouts, clips, WEEK, output_dir=str(tmp_path))
    return path, load_workbook(path)


# ===========================================================================
# 1-2. File + tabs
# ===========================================================================

class TestFileGeneration:

    def test_file_created_with_week_in_name(self, report, tmp_path):
        path, _ = report
        assert os.path.exists(path)
        assert os.path.basename(path) == f"Clipper Payout Summary {WEEK}.xlsx"
        assert os.path.dirname(path) == str(tmp_path)

    def test_three_tabs(self, report):
        _, wb = report
        assert wb.sheetnames == ["Weekly Payouts", "Clip Audit", "Exceptions"]

    def test_creates_output_dir(self, tmp_path):
        target = tmp_path / "nested" / "reports"
        path = generate_report([], [], WEEK, output_dir=str(target))
        assert os.path.exists(path)

    def test_empty_inputs_header_only(self, tmp_path):
        wb = load_workbook(generate_report([], [], WEEK, output_dir=str(tmp_path)))
        for ws in wb.worksheets:
            assert ws.max_row == 1


# ===========================================================================
# 3. Tab 1
# ===========================================================================

class TestWeeklyPayoutsTab:

    def test_headers(self, report):
        _, wb = report
        ws = wb["Weekly Payouts"]
        headers = [c.value for c in ws[1]]
        assert headers == [
            "User ID", "Activated Clips", "Net Views", "Base Earnings",
            "Bonus Tier", "Bonus", "Total Payout", "Status",
        ]

    def test_sorted_by_total_desc_in_dollars(self, report):
        _, wb = report
        ws = wb["Weekly Payouts"]
        rows = [[c.value for c in row] for row in ws.iter_rows(min_row=2)]
        assert [r[0] for r in rows] == ["user_bob", "user_alice"]
        bob = rows[0]
        assert bob[3] == pytest.approx(11.0)
        assert bob[4] == "verified"
        assert bob[5] == pytest.approx(111.0)
        assert bob[6] == pytest.approx(122.0)
        assert bob[7] == "approved"


# ===========================================================================
# 4. Tab 2
# ===========================================================================

class TestClipAuditTab:

    def test_row_per_clip(self, report):
        _, wb = report
        assert wb["Clip Audit"].max_row == 1 + 4

    def test_sorted_by_user_then_date(self, report):
        _, wb = report
        ws = wb["Clip Audit"]
        rows = [[c.value for c in row] for row in ws.iter_rows(min_row=2)]
        assert [r[1] for r in rows] == ["user_alice", "user_alice", "user_bob", "user_bob"]
        assert rows[0][11] == "2026-02-16 00:00:00"
        assert rows[1][11] == "2026-02-17 00:00:00"

    def test_activation_flag(self, report):
        _, wb = report
        ws = wb["Clip Audit"]
        flags = {row[0].value: row[10].value for row in ws.iter_rows(min_row=2)}
        assert flags["clip_lowctr"] == "no"
        assert sorted(flags.values()) == ["no", "no", "yes", "yes"]


# ===========================================================================
# 5. Tab 3
# ===========================================================================

class TestExceptionsTab:

    def test_only_failed_clips(self, report):
        _, wb = report
        ws = wb["Exceptions"]
        rows = [[c.value for c in row] for row in ws.iter_rows(min_row=2)]
        reasons = {r[0]: r[5] for r in rows}
        assert len(rows) == 2
        assert reasons["clip_lowctr"] == "CTR below 1% (0.10%)"
        assert any(reason == "net views below 1,000 (500)" for reason in reasons.values())

    def test_headers(self, report):
        _, wb = report
        headers = [c.value for c in wb["Exceptions"][1]]
        assert headers == ["Clip ID", "User ID", "Platform", "Clip URL", "Net Views", "Reason"]


# ===========================================================================
# 6. Formatting
# ===========================================================================

class TestFormatting:

    def test_bold_headers_and_frozen_row(self, report):
        _, wb = report
        for ws in wb.worksheets:
            assert all(cell.font.bold for cell in ws[1])
            assert ws.freeze_panes == "A2"

    def test_number_formats(self, report):
        _, wb = report
        tab1 = wb["Weekly Payouts"]
        assert tab1.cell(row=2, column=3).number_format == NUMBER_FORMAT
        assert tab1.cell(row=2, column=7).number_format == CURRENCY_FORMAT
        tab2 = wb["Clip Audit"]
        assert tab2.cell(row=2, column=7).number_format == NUMBER_FORMAT
        assert tab2.cell(row=2, column=8).number_format == PERCENT_FORMAT

    def test_column_widths_bounded(self, report):
        _, wb = report
        for ws in wb.worksheets:
            for dim in ws.column_dimensions.values():
                assert 10 <= dim.width <= 50


class TestHelpers:

    def test_format_datetime(self):
        assert _format_datetime(datetime(2026, 2, 17, 9, 5, 3)) == "2026-02-17 09:05:03"
        assert _format_datetime(None) is None
