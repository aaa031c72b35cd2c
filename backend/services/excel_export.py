"""
Excel payout report generation.

Creates a 3-tab .xlsx file from a batch payout run:
  Tab 1: "Member Payout Summary" — one row per paid member (from MemberPayout)
  Tab 2: "Step Breakdown"        — one row per member per step (from PayoutStep)
  Tab 3: "Exceptions"            — members whose payout could not be computed

File naming: "Referral Payout Report {report_label}.xlsx"

This is the reporting boundary: currency amounts are rounded to two decimals
(half-up) here, and TDS is deducted here. The payout calculator itself never
rounds and knows nothing about tax.

Formatting:
  - Bold header rows on all tabs
  - Auto-fit column widths (with min/max constraints)
  - Freeze top row (header) on all tabs
  - Currency format for amount columns (#,##0.00)
  - Comma-separated number format for member counts (#,##0)
"""

import os
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

import config
from models.schemas import BatchFailure, MemberPayout

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MIN_COL_WIDTH = 10      # Minimum column width (characters)
MAX_COL_WIDTH = 50      # Maximum column width (avoid super-wide columns)
HEADER_FONT = Font(bold=True)
CURRENCY_FORMAT = '#,##0.00'
NUMBER_FORMAT = '#,##0'
CENT = Decimal("0.01")


# ===========================================================================
# Public API
# ===========================================================================

def generate_report(
    rows: list[MemberPayout],
    failures: list[BatchFailure],
    report_label: str,
    output_dir: Optional[str] = None,
    tds_rate: Optional[float] = None,
) -> str:
    """
    Generate the .xlsx payout report with 3 tabs.

    Args:
        rows:         Paid members for Tabs 1 and 2
        failures:     Members that failed, for Tab 3
        report_label: Free text used in the filename (e.g. "2026-10")
        output_dir:   Directory to save the file (defaults to config.OUTPUT_DIR)
        tds_rate:     Fraction withheld as TDS (defaults to config.TDS_RATE)

    Returns:
        Absolute file path of the generated .xlsx report.
    """
    if output_dir is None:
        output_dir = config.OUTPUT_DIR
    if tds_rate is None:
        tds_rate = config.TDS_RATE

    os.makedirs(output_dir, exist_ok=True)

    filename = f"Referral Payout Report {_safe_label(report_label)}.xlsx"
    filepath = os.path.join(output_dir, filename)

    logger.info(f"Generating report: {filepath}")

    wb = Workbook()

    ws1 = wb.active
    ws1.title = "Member Payout Summary"
    _build_tab1_member_summary(ws1, rows, tds_rate)

    ws2 = wb.create_sheet("Step Breakdown")
    _build_tab2_step_breakdown(ws2, rows)

    ws3 = wb.create_sheet("Exceptions")
    _build_tab3_exceptions(ws3, failures)

    wb.save(filepath)
    logger.info(
        f"Report saved: {filepath} "
        f"({len(rows)} members, {len(failures)} exceptions)"
    )

    return filepath


def round_currency(amount: float) -> float:
    """Round to two decimals, half-up, the way amounts are printed."""
    return float(Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP))


def split_tds(total_incentive: float, tds_rate: float) -> tuple[float, float, float]:
    """(incentive, tds, net), each rounded to two decimals."""
    incentive = round_currency(total_incentive)
    tds = round_currency(incentive * tds_rate)
    net = round_currency(incentive - tds)
    return incentive, tds, net


# ===========================================================================
# Tab 1: Member Payout Summary
# ===========================================================================

def _build_tab1_member_summary(
    ws: Worksheet,
    rows: list[MemberPayout],
    tds_rate: float,
) -> None:
    """
    Tab 1: One row per member.

    Columns:
      User ID | Club Tier | Base Rate | Subscription Amount |
      Downline Count | Total Incentive | TDS | Net Amount

    Sorted by Total Incentive descending, then User ID.
    """
    headers = [
        "User ID",
        "Club Tier",
        "Base Rate",
        "Subscription Amount",
        "Downline Count",
        "Total Incentive",
        f"TDS ({tds_rate:.0%})",
        "Net Amount",
    ]
    ws.append(headers)

    sorted_rows = sorted(rows, key=lambda r: (-r.payout.total_payout, r.user_id))

    for r in sorted_rows:
        incentive, tds, net = split_tds(r.payout.total_payout, tds_rate)
        ws.append([
            r.user_id,
            r.tier_name,
            r.base_rate,
            round_currency(r.subscription_amount),
            r.downline_count,
            incentive,
            tds,
            net,
        ])

    _format_header_row(ws)
    _freeze_top_row(ws)

    for col_idx in [3, 4, 6, 7, 8]:
        _apply_column_format(ws, col_idx=col_idx, fmt=CURRENCY_FORMAT, start_row=2)
    _apply_column_format(ws, col_idx=5, fmt=NUMBER_FORMAT, start_row=2)

    _auto_fit_columns(ws)


# ===========================================================================
# Tab 2: Step Breakdown
# ===========================================================================

def _build_tab2_step_breakdown(ws: Worksheet, rows: list[MemberPayout]) -> None:
    """
    Tab 2: One row per member per calculated step.

    Columns:
      User ID | Step | Count Used | Rate Per Head | Step Payout

    Sorted by User ID, then Step.
    """
    headers = [
        "User ID",
        "Step",
        "Count Used",
        "Rate Per Head",
        "Step Payout",
    ]
    ws.append(headers)

    for r in sorted(rows, key=lambda r: r.user_id):
        for step in r.payout.steps:
            ws.append([
                r.user_id,
                step.step,
                step.count_used,
                round_currency(step.rate_per_head),
                round_currency(step.step_payout),
            ])

    _format_header_row(ws)
    _freeze_top_row(ws)

    _apply_column_format(ws, col_idx=3, fmt=NUMBER_FORMAT, start_row=2)
    for col_idx in [4, 5]:
        _apply_column_format(ws, col_idx=col_idx, fmt=CURRENCY_FORMAT, start_row=2)

    _auto_fit_columns(ws)


# ===========================================================================
# Tab 3: Exceptions
# ===========================================================================

def _build_tab3_exceptions(ws: Worksheet, failures: list[BatchFailure]) -> None:
    """Tab 3: User ID | Reason, in batch order."""
    ws.append(["User ID", "Reason"])

    for f in failures:
        ws.append([f.user_id, f.reason])

    _format_header_row(ws)
    _freeze_top_row(ws)
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


def _apply_column_format(
    ws: Worksheet,
    col_idx: int,
    fmt: str,
    start_row: int = 2,
) -> None:
    """Apply a number format to all non-empty data cells in a 1-based column."""
    for row in range(start_row, ws.max_row + 1):
        cell = ws.cell(row=row, column=col_idx)
        if cell.value is not None:
            cell.number_format = fmt


def _auto_fit_columns(ws: Worksheet) -> None:
    """
    Auto-fit column widths based on cell content.

    Uses the widest value in each column plus 2 chars of padding, clamped to
    MIN_COL_WIDTH..MAX_COL_WIDTH.
    """
    for col_idx in range(1, ws.max_column + 1):
        max_length = 0
        col_letter = get_column_letter(col_idx)

        for row in range(1, ws.max_row + 1):
            cell = ws.cell(row=row, column=col_idx)
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))

        adjusted_width = max(max_length + 2, MIN_COL_WIDTH)
        adjusted_width = min(adjusted_width, MAX_COL_WIDTH)
        ws.column_dimensions[col_letter].width = adjusted_width


def _safe_label(label: str) -> str:
    """Strip path separators so the label can't escape output_dir."""
    cleaned = label.replace("/", "-").replace("\\", "-").strip()
    return cleaned or "report"
