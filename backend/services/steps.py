"""
Step assignment under the ternary capacity model.

Step s (1..9) has a fixed capacity of 3^s slots, independent of how the
referral graph actually branches. Members of a root's downline are placed
into steps by JOIN ORDER: the first 3 joiners fill step 1, the next 9 fill
step 2, the next 27 fill step 3, and so on.

Cumulative capacity through step s:
  step:        1   2   3    4    5     6     7     8      9
  cumulative:  3  12  39  120  363  1092  3279  9840  29523

The member at 1-indexed join position p gets the smallest s with
p <= cumulative(s). Positions beyond 29,523 all clamp to step 9.
"""

import logging
from typing import Iterable

from models.schemas import DownlineEntry, StepAssignment
from services.errors import InvalidInputError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MIN_STEP = 1
MAX_STEP = 9
BRANCHING_FACTOR = 3

STEP_CAPACITY = tuple(BRANCHING_FACTOR ** s for s in range(MIN_STEP, MAX_STEP + 1))
CUMULATIVE_CAPACITY = tuple(sum(STEP_CAPACITY[:i + 1]) for i in range(len(STEP_CAPACITY)))


# ===========================================================================
# Capacity lookups
# ===========================================================================

def step_capacity(step: int) -> int:
    """Capacity of a single step: 3^step."""
    _check_step(step)
    return STEP_CAPACITY[step - 1]


def cumulative_capacity(step: int) -> int:
    """Total capacity of steps 1 through step."""
    _check_step(step)
    return CUMULATIVE_CAPACITY[step - 1]


def step_for_position(position: int) -> int:
    """
    Map a 1-indexed join position to its step.

    Positions past the last cumulative capacity stay in step 9.
    """
    if position < 1:
        raise InvalidInputError(f"Join position must be >= 1, got {position}")

    for index, capacity in enumerate(CUMULATIVE_CAPACITY):
        if position <= capacity:
            return index + MIN_STEP
    return MAX_STEP


# ===========================================================================
# Public API
# ===========================================================================

def assign_steps(sorted_downline: Iterable[DownlineEntry]) -> dict[str, StepAssignment]:
    """
    Assign a step and join order to every member of a sorted downline.

    Args:
        sorted_downline: Downline sorted by (join_timestamp, id) ascending —
                         see downline.sort_by_join_order

    Returns:
        {member_id: StepAssignment}, one entry per input member, in join order
    """
    assignments: dict[str, StepAssignment] = {}
    overflow = 0

    for join_order, entry in enumerate(sorted_downline, start=1):
        step = step_for_position(join_order)
        if join_order > CUMULATIVE_CAPACITY[-1]:
            overflow += 1
        assignments[entry.id] = StepAssignment(
            id=entry.id,
            step_number=step,
            join_order=join_order,
        )

    if overflow:
        logger.warning(
            f"{overflow} members beyond step {MAX_STEP} capacity "
            f"({CUMULATIVE_CAPACITY[-1]:,}) clamped to step {MAX_STEP}"
        )

    return assignments


def count_by_step(assignments: dict[str, StepAssignment]) -> list[int]:
    """Number of assigned members in each step; always 9 entries."""
    counts = [0] * MAX_STEP
    for assignment in assignments.values():
        counts[assignment.step_number - 1] += 1
    return counts


def actual_counts_for_payout(assignments: dict[str, StepAssignment]) -> list[int]:
    """
    Per-step counts in the shape the actual-count payout calculation expects.

    Trailing empty steps are dropped. An empty downline yields [0] so the
    payout calculation still has one step to report.
    """
    counts = count_by_step(assignments)
    while len(counts) > 1 and counts[-1] == 0:
        counts.pop()
    return counts


def _check_step(step: int) -> None:
    if not MIN_STEP <= step <= MAX_STEP:
        raise InvalidInputError(
            f"Invalid step: {step}. Steps must be between {MIN_STEP} and {MAX_STEP}."
        )
