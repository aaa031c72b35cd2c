"""
Tests for services/excel_export.py.

Tests verify:
  1. FILE GENERATION: file created, correct name, correct path
  2. TAB 1 — Member Payout Summary: headers, sort order, TDS + net amounts
  3. TAB 2 — Step Breakdown: one row per member per step
  4. TAB 3 — Exceptions
  5. ROUNDING: two-decimal half-up at the reporting boundary only
  6. FORMATTING: bold headers, frozen top row, number formats
"""

import sys
import os
import shutil
import tempfile

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from openpyxl import load_workbook

from models.schemas import BatchFailure, MemberPayout
from services.excel_export import (
    CURRENCY_FORMAT,
    NUMBER_FORMAT,
    generate_report,
    round_currency,
    split_tds,
)
from services.payout import calculate_payout_with_actual_counts


# ===========================================================================
# Test fixtures
# ===========================================================================

@pytest.fixture
def output_dir():
    """Create a temp directory for output, clean up after test."""
    d = tempfile.mkdtemp(prefix="referral_payout_test_")
    yield d
    shutil.rmtree(d, ignore_errors=True)


def make_row(user_id="U1", base_rate=100, counts=None, amount=100_000, tier="DEVELOPMENT"):
    counts = counts or [3, 4]
    return MemberPayout(
        user_id=user_id,
        subscription_amount=amount,
        tier_name=tier,
        base_rate=base_rate,
        downline_count=sum(counts),
        actual_counts=counts,
        payout=calculate_payout_with_actual_counts(base_rate, counts),
    )


def sheet_rows(ws):
    return [list(row) for row in ws.iter_rows(values_only=True)]


# ===========================================================================
# 1. FILE GENERATION
# ===========================================================================

class TestFileGeneration:

    def test_file_created(self, output_dir):
        path = generate_report([make_row()], [], "2026-10", output_dir=output_dir)
        assert os.path.exists(path)
        assert os.path.basename(path) == "Referral Payout Report 2026-10.xlsx"
        assert os.path.dirname(path) == output_dir

    def test_tabs(self, output_dir):
        path = generate_report([], [], "empty", output_dir=output_dir)
        wb = load_workbook(path)
        assert wb.sheetnames == ["Member Payout Summary", "Step Breakdown", "Exceptions"]

    def test_label_cannot_escape_output_dir(self, output_dir):
        path = generate_report([], [], "../../etc/x", output_dir=output_dir)
        assert os.path.dirname(path) == output_dir

    def test_creates_missing_output_dir(self, output_dir):
        nested = os.path.join(output_dir, "nested", "dir")
        path = generate_report([], [], "x", output_dir=nested)
        assert os.path.exists(path)

    def test_default_output_dir_from_config(self, output_dir):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("services.excel_export.config.OUTPUT_DIR", output_dir)
            path = generate_report([], [], "cfg")
        assert os.path.dirname(path) == output_dir


# ===========================================================================
# 2. TAB 1 — Member Payout Summary
# ===========================================================================

class TestTab1Summary:

    def test_headers(self, output_dir):
        path = generate_report([], [], "h", output_dir=output_dir, tds_rate=0.05)
        ws = load_workbook(path)["Member Payout Summary"]
        assert sheet_rows(ws)[0] == [
            "User ID", "Club Tier", "Base Rate", "Subscription Amount",
            "Downline Count", "Total Incentive", "TDS (5%)", "Net Amount",
        ]

    def test_row_values(self, output_dir):
        path = generate_report([make_row()], [], "v", output_dir=output_dir, tds_rate=0.05)
        ws = load_workbook(path)["Member Payout Summary"]
        assert sheet_rows(ws)[1] == ["U1", "DEVELOPMENT", 100, 100000, 7, 900, 45, 855]

    def test_sorted_by_incentive_desc(self, output_dir):
        rows = [
            make_row("small", counts=[1]),
            make_row("big", base_rate=1000, counts=[3, 9], tier="DIAMOND"),
            make_row("mid", counts=[3, 3]),
        ]
        path = generate_report(rows, [], "s", output_dir=output_dir)
        ws = load_workbook(path)["Member Payout Summary"]
        assert [r[0] for r in sheet_rows(ws)[1:]] == ["big", "mid", "small"]

    def test_zero_payout_row(self, output_dir):
        path = generate_report([make_row(counts=[0])], [], "z", output_dir=output_dir)
        ws = load_workbook(path)["Member Payout Summary"]
        assert sheet_rows(ws)[1][5:] == [0, 0, 0]


# ===========================================================================
# 3. TAB 2 — Step Breakdown
# ===========================================================================

class TestTab2StepBreakdown:

    def test_one_row_per_step(self, output_dir):
        rows = [make_row("B", counts=[3, 9, 1]), make_row("A", counts=[2])]
        path = generate_report(rows, [], "b", output_dir=output_dir)
        ws = load_workbook(path)["Step Breakdown"]
        data = sheet_rows(ws)
        assert data[0] == ["User ID", "Step", "Count Used", "Rate Per Head", "Step Payout"]
        assert data[1:] == [
            ["A", 1, 2, 100, 200],
            ["B", 1, 3, 100, 300],
            ["B", 2, 9, 150, 1350],
            ["B", 3, 1, 200, 200],
        ]


# ===========================================================================
# 4. TAB 3 — Exceptions
# ===========================================================================

class TestTab3Exceptions:

    def test_failures_listed_in_order(self, output_dir):
        failures = [
            BatchFailure(user_id="G", reason="No subscription amount for member G"),
            BatchFailure(user_id="Z", reason="member API down"),
        ]
        path = generate_report([], failures, "e", output_dir=output_dir)
        ws = load_workbook(path)["Exceptions"]
        assert sheet_rows(ws) == [
            ["User ID", "Reason"],
            ["G", "No subscription amount for member G"],
            ["Z", "member API down"],
        ]


# ===========================================================================
# 5. ROUNDING
# ===========================================================================

class TestRounding:

    @pytest.mark.parametrize("amount,expected", [
        (10.005, 10.01),     # half-up, not banker's / binary artefact
        (2.675, 2.68),
        (1.004, 1.0),
        (999.995, 1000.0),
        (0, 0.0),
    ])
    def test_round_currency(self, amount, expected):
        assert round_currency(amount) == expected

    def test_split_tds(self):
        assert split_tds(1234.56, 0.05) == (1234.56, 61.73, 1172.83)

    def test_split_tds_rounds_incentive_first(self):
        assert split_tds(1000.004, 0.05) == (1000.0, 50.0, 950.0)

    def test_split_tds_zero_rate(self):
        assert split_tds(500, 0.0) == (500.0, 0.0, 500.0)

    def test_report_rounds_fractional_rates(self, output_dir):
        row = make_row(base_rate=33.335, counts=[1, 1])
        path = generate_report([row], [], "r", output_dir=output_dir, tds_rate=0.05)
        ws = load_workbook(path)["Step Breakdown"]
        # rate step 2 = 33.335 * 1.5 = 50.0025 → 50.0
        assert sheet_rows(ws)[2][3] == 50.0
        # calculator value itself stays unrounded
        assert row.payout.steps[1].rate_per_head != 50.0


# ===========================================================================
# 6. FORMATTING
# ===========================================================================

class TestFormatting:

    def test_bold_frozen_headers(self, output_dir):
        path = generate_report([make_row()], [BatchFailure(user_id="x", reason="y")],
                               "f", output_dir=output_dir)
        wb = load_workbook(path)
        for ws in wb.worksheets:
            assert all(cell.font.bold for cell in ws[1])
            assert ws.freeze_panes == "A2"

    def test_number_formats(self, output_dir):
        path = generate_report([make_row()], [], "n", output_dir=output_dir)
        ws = load_workbook(path)["Member Payout Summary"]
        assert ws.cell(row=2, column=6).number_format == CURRENCY_FORMAT
        assert ws.cell(row=2, column=5).number_format == NUMBER_FORMAT

    def test_column_widths_clamped(self, output_dir):
        failures = [BatchFailure(user_id="u", reason="x" * 200)]
        path = generate_report([], failures, "w", output_dir=output_dir)
        ws = load_workbook(path)["Exceptions"]
        assert ws.column_dimensions["B"].width == 50
        assert ws.column_dimensions["A"].width == 10
