"""
Stepwise payout calculation.

Formula, for a club base rate B:
  N_s = downline count at step s
          ideal mode:        N_s = 3^s (full saturation)
          actual-count mode: N_s = actual_counts[s - 1]
  R_s = rate per head
          1 <= s <= 5:  R_s = B * (s + 1) / 2   (1.0x, 1.5x, 2.0x, 2.5x, 3.0x)
          6 <= s <= 9:  R_s = B
  P_s = R_s * N_s
  P_total = sum of P_s

Plain float arithmetic throughout. Nothing here rounds: two-decimal currency
rounding happens when a report is written (see excel_export), and so does TDS.

Pipeline:
  1. rate_per_head(step, base_rate)
  2. calculate_payout(base_rate, max_steps)                    → PayoutResult
  3. calculate_payout_with_actual_counts(base_rate, counts)    → PayoutResult
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from models.schemas import PayoutMetadata, PayoutResult, PayoutStep
from services.club_tier import CLUB_TIERS
from services.errors import InvalidInputError
from services.steps import MAX_STEP, MIN_STEP

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
RAMP_LAST_STEP = 5               # Steps 1-5 use the (s + 1) / 2 ramp
BASE_RATE_SANITY_LIMIT = 10_000  # validate_base_rate flags anything above this
ACTUAL_COUNTS_FORMULA = "Actual referral counts based calculation"


# ===========================================================================
# Rate per head
# ===========================================================================

def calculate_downline_count(step: int) -> int:
    """Idealized downline count for a step: 3^step."""
    return 3 ** step


def rate_per_head(step: int, base_rate: float) -> float:
    """
    Rate paid per downline member at a given step.

      steps 1-5: base_rate * (step + 1) / 2
      steps 6-9: base_rate

    Raises:
        InvalidInputError: step outside 1-9
    """
    if MIN_STEP <= step <= RAMP_LAST_STEP:
        return base_rate * (step + 1) / 2
    if RAMP_LAST_STEP < step <= MAX_STEP:
        return base_rate
    raise InvalidInputError(
        f"Invalid step: {step}. Steps must be between {MIN_STEP} and {MAX_STEP}."
    )


def calculate_step_payout(step: int, base_rate: float) -> float:
    """Ideal payout for one step: rate_per_head * 3^step."""
    return rate_per_head(step, base_rate) * calculate_downline_count(step)


# ===========================================================================
# Ideal mode
# ===========================================================================

def calculate_payout(base_rate: float, max_steps: int = MAX_STEP) -> PayoutResult:
    """
    Payout assuming every step up to max_steps is fully saturated (3^s members).

    Args:
        base_rate: Club base rate B, must be positive
        max_steps: Number of steps to include, 1-9

    Returns:
        PayoutResult with one PayoutStep per step

    Raises:
        InvalidInputError: non-positive base_rate or max_steps outside 1-9
    """
    _check_base_rate(base_rate)
    if not MIN_STEP <= max_steps <= MAX_STEP:
        raise InvalidInputError(
            f"Max steps must be between {MIN_STEP} and {MAX_STEP}, got {max_steps}"
        )

    steps = _ideal_steps(base_rate, MIN_STEP, max_steps)
    total_payout = _sum_payouts(steps)

    logger.debug(
        f"Ideal payout: base_rate={base_rate}, steps={max_steps}, "
        f"total={total_payout:,.2f}"
    )

    return PayoutResult(
        base_rate=base_rate,
        total_payout=total_payout,
        steps=steps,
        metadata=_metadata(get_formula_description(), max_steps),
    )


# ===========================================================================
# Actual-count mode
# ===========================================================================

def calculate_payout_with_actual_counts(
    base_rate: float,
    actual_counts: list[int],
) -> PayoutResult:
    """
    Payout using real per-step member counts instead of 3^s.

    actual_counts[i] is the number of downline members at step i + 1, as
    produced by steps.actual_counts_for_payout. Zero counts are valid and
    contribute nothing.

    Raises:
        InvalidInputError: non-positive base_rate, empty counts, more than
                           9 counts, or a negative count
    """
    _check_base_rate(base_rate)
    if len(actual_counts) == 0:
        raise InvalidInputError("Actual referral counts array cannot be empty")
    if len(actual_counts) > MAX_STEP:
        raise InvalidInputError(
            f"Actual referral counts cover {len(actual_counts)} steps; "
            f"no rate is defined beyond step {MAX_STEP}"
        )

    steps: list[PayoutStep] = []
    for step, count in enumerate(actual_counts, start=1):
        if count < 0:
            raise InvalidInputError(f"Negative referral count at step {step}: {count}")
        rate = rate_per_head(step, base_rate)
        steps.append(PayoutStep(
            step=step,
            count_used=count,
            rate_per_head=rate,
            step_payout=rate * count,
        ))

    total_payout = _sum_payouts(steps)

    logger.debug(
        f"Actual-count payout: base_rate={base_rate}, counts={actual_counts}, "
        f"total={total_payout:,.2f}"
    )

    return PayoutResult(
        base_rate=base_rate,
        total_payout=total_payout,
        steps=steps,
        metadata=_metadata(ACTUAL_COUNTS_FORMULA, len(actual_counts)),
    )


# ===========================================================================
# Analysis helpers
# ===========================================================================

def calculate_step_range(base_rate: float, start_step: int, end_step: int) -> list[PayoutStep]:
    """Ideal PayoutSteps for start_step..end_step inclusive."""
    if start_step < MIN_STEP or end_step > MAX_STEP or start_step > end_step:
        raise InvalidInputError(
            f"Invalid step range {start_step}-{end_step}. "
            f"Steps must be between {MIN_STEP}-{MAX_STEP} and start <= end."
        )
    return _ideal_steps(base_rate, start_step, end_step)


def calculate_cumulative_payout(base_rate: float, up_to_step: int) -> list[tuple[int, float]]:
    """Running ideal total after each step: [(step, cumulative_payout), ...]."""
    result: list[tuple[int, float]] = []
    cumulative = 0.0
    for step in range(MIN_STEP, up_to_step + 1):
        cumulative += calculate_step_payout(step, base_rate)
        result.append((step, cumulative))
    return result


def calculate_payout_efficiency(base_rate: float) -> dict[str, float]:
    """Full 9-step ideal payout expressed per unit of base rate."""
    result = calculate_payout(base_rate)
    efficiency = result.total_payout / base_rate
    return {
        "total_payout": result.total_payout,
        "efficiency": efficiency,
        "efficiency_ratio": efficiency,
    }


def validate_base_rate(base_rate: float) -> tuple[bool, Optional[str]]:
    """Soft validation, for UI hints. Returns (is_valid, message)."""
    if not base_rate > 0:
        return False, "Club base rate must be positive"
    if base_rate > BASE_RATE_SANITY_LIMIT:
        return False, "Club base rate seems unusually high"
    return True, None


def compare_club_tiers(base_rates: Optional[list[float]] = None) -> dict[float, PayoutResult]:
    """
    Ideal 9-step payout for each base rate that passes validate_base_rate.

    Defaults to the base rates of every club tier.
    """
    if base_rates is None:
        base_rates = [tier.base_rate for tier in CLUB_TIERS]

    comparison: dict[float, PayoutResult] = {}
    for base_rate in base_rates:
        is_valid, message = validate_base_rate(base_rate)
        if not is_valid:
            logger.debug(f"Skipping base rate {base_rate} in comparison: {message}")
            continue
        comparison[base_rate] = calculate_payout(base_rate)
    return comparison


def get_formula_description() -> str:
    return (
        "Stepwise Payout Formula:\n"
        "- N_s = 3^s (downline count at step s)\n"
        "- R_s = B * (s + 1) / 2 for steps 1-5, R_s = B for steps 6-9\n"
        "- P_s = R_s * N_s (step payout)\n"
        "- P_total = sum of all P_s"
    )


# ===========================================================================
# Private helpers
# ===========================================================================

def _check_base_rate(base_rate: float) -> None:
    # "not > 0" also rejects NaN
    if not base_rate > 0:
        raise InvalidInputError(f"Club base rate must be positive, got {base_rate}")


def _ideal_steps(base_rate: float, start_step: int, end_step: int) -> list[PayoutStep]:
    steps: list[PayoutStep] = []
    for step in range(start_step, end_step + 1):
        count = calculate_downline_count(step)
        rate = rate_per_head(step, base_rate)
        steps.append(PayoutStep(
            step=step,
            count_used=count,
            rate_per_head=rate,
            step_payout=rate * count,
        ))
    return steps


def _sum_payouts(steps: list[PayoutStep]) -> float:
    total = 0.0
    for step in steps:
        total += step.step_payout
    return total


def _metadata(formula: str, total_steps: int) -> PayoutMetadata:
    return PayoutMetadata(
        formula=formula,
        total_steps=total_steps,
        calculated_at=datetime.now(timezone.utc),
    )


# ===========================================================================
# Standalone check — run with: cd backend && python -m services.payout
# ===========================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG, format="%(levelname)s: %(message)s")

    expected = [300, 1350, 5400, 20250, 72900, 72900, 218700, 656100, 1968300]
    result = calculate_payout(100, 9)
    actual = [s.step_payout for s in result.steps]

    for step, (got, want) in enumerate(zip(actual, expected), start=1):
        status = "PASS" if got == want else "FAIL"
        print(f"  {status}: step {step} → {got:,.2f} (expected {want:,.2f})")

    print(f"\nTotal: {result.total_payout:,.2f} (expected {sum(expected):,.2f})")
