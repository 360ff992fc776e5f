"""
Weekly payout report generation.

Creates a 3-tab .xlsx file:
  Tab 1: "Weekly Payouts" — one row per creator (from WeeklyPayout)
  Tab 2: "Clip Audit"     — one row per clip in the payout week (from ClipSubmission)
  Tab 3: "Exceptions"     — clips that did not count, with the failing gate

File naming: "Clipper Payout Summary {week_key}.xlsx"

Formatting:
  - Bold header rows on all tabs
  - Auto-fit column widths (with min/max constraints)
  - Freeze top row (header) on all tabs
  - Currency format for money columns ($#,##0.00); cents are written as dollars
  - Comma-separated number format for view counts (#,##0)
  - Percent format for conversion rates (0.00%)
"""

import os
import logging
from datetime import datetime
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

import config
from models.schemas import ClipSubmission, WeeklyPayout
from services.earnings import net_views
from services.payout import activation_failure_reason

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MIN_COL_WIDTH = 10      # Minimum column width (characters)
MAX_COL_WIDTH = 50      # Maximum column width (avoid super-wide columns)
HEADER_FONT = Font(bold=True)
CURRENCY_FORMAT = '$#,##0.00'
NUMBER_FORMAT = '#,##0'
PERCENT_FORMAT = '0.00%'


# ===========================================================================
# Public API
# ===========================================================================

def generate_report(
    payouts: list[WeeklyPayout],
    clips: list[ClipSubmission],
    week: str,
    output_dir: Optional[str] = None,
) -> str:
    """
    Generate the .xlsx payout report with 3 tabs.

    Args:
        payouts:    Per-creator payout rows for Tab 1
        clips:      Clips of the payout week for Tabs 2 and 3
        week:       Week key (for filename)
        output_dir: Directory to save the file (defaults to config.OUTPUT_DIR)

    Returns:
        Absolute file path of the generated .xlsx report.
    """
    if output_dir is None:
        output_dir = config.OUTPUT_DIR
    os.makedirs(output_dir, exist_ok=True)

    filename = f"Clipper Payout Summary {week}.xlsx"
    filepath = os.path.join(output_dir, filename)
    logger.info(f"Generating report: {filepath}")

    wb = Workbook()

    ws1 = wb.active
    ws1.title = "Weekly Payouts"
    _build_tab1_weekly_payouts(ws1, payouts)

    ws2 = wb.create_sheet("Clip Audit")
    _build_tab2_clip_audit(ws2, clips)

    exceptions: list[tuple[ClipSubmission, str]] = []
    for c in clips:
        reason = activation_failure_reason(c)
        if reason:
            exceptions.append((c, reason))
    ws3 = wb.create_sheet("Exceptions")
    _build_tab3_exceptions(ws3, exceptions)

    wb.save(filepath)
    logger.info(
        f"Report saved: {filepath} "
        f"({len(payouts)} creators, {len(clips)} clips, {len(exceptions)} exceptions)"
    )

    return filepath


# ===========================================================================
# Tab 1: Weekly Payouts
# ===========================================================================

def _build_tab1_weekly_payouts(ws: Worksheet, payouts: list[WeeklyPayout]) -> None:
    """
    Columns:
      User ID | Activated Clips | Net Views | Base Earnings |
      Bonus Tier | Bonus | Total Payout | Status

    Sorted by Total Payout descending.
    """
    ws.append([
        "User ID",
        "Activated Clips",
        "Net Views",
        "Base Earnings",
        "Bonus Tier",
        "Bonus",
        "Total Payout",
        "Status",
    ])

    for p in sorted(payouts, key=lambda p: p.total_cents, reverse=True):
        ws.append([
            p.user_id,
            p.clips_count,
            p.total_net_views,
            p.base_earnings_cents / 100,
            p.bonus_tier,
            p.bonus_cents / 100,
            p.total_cents / 100,
            p.status,
        ])

    _format_header_row(ws)
    _freeze_top_row(ws)
    for col_idx in [2, 3]:
        _apply_column_format(ws, col_idx=col_idx, fmt=NUMBER_FORMAT)
    for col_idx in [4, 6, 7]:
        _apply_column_format(ws, col_idx=col_idx, fmt=CURRENCY_FORMAT)
    _auto_fit_columns(ws)


# ===========================================================================
# Tab 2: Clip Audit
# ===========================================================================

def _build_tab2_clip_audit(ws: Worksheet, clips: list[ClipSubmission]) -> None:
    """
    Columns:
      Clip ID | User ID | Platform | Clip URL | Raw Views | Baseline Views |
      Net Views | CTR | Reg Rate | Day-1 Rate | Activated | Submitted At

    Sorted by User ID, then Submitted At (missing dates last).
    """
    ws.append([
        "Clip ID",
        "User ID",
        "Platform",
        "Clip URL",
        "Raw Views",
        "Baseline Views",
        "Net Views",
        "CTR",
        "Reg Rate",
        "Day-1 Rate",
        "Activated",
        "Submitted At",
    ])

    for c in sorted(clips, key=_clip_sort_key):
        ws.append([
            c.id,
            c.user_id,
            c.platform,
            c.clip_url,
            c.raw_view_count,
            c.baseline_view_count,
            net_views(c.raw_view_count, c.baseline_view_count),
            c.ctr,
            c.reg_rate,
            c.day1_post_rate,
            "yes" if activation_failure_reason(c) is None else "no",
            _format_datetime(c.submitted_at),
        ])

    _format_header_row(ws)
    _freeze_top_row(ws)
    for col_idx in [5, 6, 7]:
        _apply_column_format(ws, col_idx=col_idx, fmt=NUMBER_FORMAT)
    for col_idx in [8, 9, 10]:
        _apply_column_format(ws, col_idx=col_idx, fmt=PERCENT_FORMAT)
    _auto_fit_columns(ws)


# ===========================================================================
# Tab 3: Exceptions
# ===========================================================================

def _build_tab3_exceptions(
    ws: Worksheet,
    exceptions: list[tuple[ClipSubmission, str]],
) -> None:
    """
    Columns:
      Clip ID | User ID | Platform | Clip URL | Net Views | Reason
    """
    ws.append(["Clip ID", "User ID", "Platform", "Clip URL", "Net Views", "Reason"])

    for c, reason in exceptions:
        ws.append([
            c.id,
            c.user_id,
            c.platform,
            c.clip_url,
            net_views(c.raw_view_count, c.baseline_view_count),
            reason,
        ])

    _format_header_row(ws)
    _freeze_top_row(ws)
    _apply_column_format(ws, col_idx=5, fmt=NUMBER_FORMAT)
    _auto_fit_columns(ws)


# ===========================================================================
# Formatting helpers
# ===========================================================================

def _format_header_row(ws: Worksheet) -> None:
    """Bold the entire header row (row 1)."""
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _freeze_top_row(ws: Worksheet) -> None:
    ws.freeze_panes = "A2"


def _apply_column_format(ws: Worksheet, col_idx: int, fmt: str, start_row: int = 2) -> None:
    """Apply a number format to every non-empty data cell in a 1-based column."""
    for row in range(start_row, ws.max_row + 1):
        cell = ws.cell(row=row, column=col_idx)
        if cell.value is not None:
            cell.number_format = fmt


def _auto_fit_columns(ws: Worksheet) -> None:
    """
    Auto-fit column widths based on cell content, with 2 chars of padding
    and MIN/MAX constraints.
    """
    for col_idx in range(1, ws.max_column + 1):
        max_length = 0
        for row in range(1, ws.max_row + 1):
            value = ws.cell(row=row, column=col_idx).value
            if value is not None:
                max_length = max(max_length, len(str(value)))

        width = min(max(max_length + 2, MIN_COL_WIDTH), MAX_COL_WIDTH)
        ws.column_dimensions[get_column_letter(col_idx)].width = width


def _clip_sort_key(c: ClipSubmission) -> tuple:
    submitted = c.submitted_at.timestamp() if c.submitted_at else float("inf")
    return (c.user_id, submitted)


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as YYYY-MM-DD HH:MM:SS, or None if missing."""
    if dt is None:
        return None
    return dt.strftime("%Y-%m-%d %H:%M:%S")
