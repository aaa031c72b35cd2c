"""
Per-member payout orchestration and batch runs across many members.

Pipeline for one member (compute_member_payout):
  1. compute_downline(user_id)            → BFS-ordered downline
  2. sort_by_join_order                   → (join_timestamp, id) ascending
  3. assign_steps                         → step 1-9 per downline member
  4. actual_counts_for_payout             → per-step counts
  5. resolve_tier(subscription amount)    → base rate
  6. calculate_payout_with_actual_counts  → PayoutResult

run_batch_report runs that pipeline for many members on a bounded thread
pool. Each member's computation only reads the shared snapshot/source, so
they are independent; the pool size caps how many batched children queries
hit the data source at once. A member that fails with a PayoutEngineError is
recorded as a BatchFailure and the rest of the batch carries on.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import config
from models.schemas import BatchFailure, DownlineEntry, MemberPayout
from services.cache import ResultCache, downline_cache_key
from services.club_tier import resolve_tier
from services.downline import compute_downline, sort_by_join_order
from services.errors import PayoutEngineError
from services.payout import calculate_payout_with_actual_counts
from services.steps import actual_counts_for_payout, assign_steps

logger = logging.getLogger(__name__)


# ===========================================================================
# Single member
# ===========================================================================

def compute_member_payout(
    user_id: str,
    source,
    cache: Optional[ResultCache] = None,
) -> MemberPayout:
    """
    Run the full payout pipeline for one member.

    Args:
        user_id: Member to pay
        source:  Object with list_children(parent_ids) and
                 get_subscription_amount(user_id)
        cache:   Optional caller-owned cache for downlines

    Raises:
        PayoutEngineError subclasses from the source or the calculator
    """
    downline = _get_downline(user_id, source, cache)
    assignments = assign_steps(sort_by_join_order(downline))
    actual_counts = actual_counts_for_payout(assignments)

    amount = source.get_subscription_amount(user_id)
    tier = resolve_tier(amount)
    payout = calculate_payout_with_actual_counts(tier.base_rate, actual_counts)

    logger.debug(
        f"  [{user_id}] downline={len(downline)}, counts={actual_counts}, "
        f"tier={tier.tier_name}, total={payout.total_payout:,.2f}"
    )

    return MemberPayout(
        user_id=user_id,
        subscription_amount=amount,
        tier_name=tier.tier_name,
        base_rate=tier.base_rate,
        downline_count=len(downline),
        actual_counts=actual_counts,
        payout=payout,
    )


def _get_downline(user_id: str, source, cache: Optional[ResultCache]) -> list[DownlineEntry]:
    if cache is None:
        return compute_downline(user_id, source.list_children)

    key = downline_cache_key(user_id)
    downline = cache.get(key)
    if downline is None:
        downline = compute_downline(user_id, source.list_children)
        cache.set(key, downline)
    return downline


# ===========================================================================
# Batch
# ===========================================================================

def run_batch_report(
    user_ids: Iterable[str],
    source,
    max_workers: Optional[int] = None,
    cache: Optional[ResultCache] = None,
) -> tuple[list[MemberPayout], list[BatchFailure]]:
    """
    Compute payouts for many members in parallel.

    Duplicate ids are computed once. Results keep the order of user_ids.

    Args:
        user_ids:    Members to include
        source:      Shared member source (read-only during the batch)
        max_workers: Thread pool size (defaults to config.REPORT_MAX_WORKERS)
        cache:       Optional caller-owned cache shared by all workers

    Returns:
        (rows, failures)
    """
    if max_workers is None:
        max_workers = config.REPORT_MAX_WORKERS

    unique_ids = list(dict.fromkeys(user_ids))
    rows: list[MemberPayout] = []
    failures: list[BatchFailure] = []

    if not unique_ids:
        logger.info("Batch report: no members requested")
        return rows, failures

    logger.info(f"Batch report: {len(unique_ids)} members, {max_workers} workers")

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="payout") as executor:
        futures = [
            (user_id, executor.submit(compute_member_payout, user_id, source, cache))
            for user_id in unique_ids
        ]

        for user_id, future in futures:
            try:
                rows.append(future.result())
            except PayoutEngineError as e:
                logger.error(f"Payout failed for member {user_id}: {e}")
                failures.append(BatchFailure(user_id=user_id, reason=str(e)))

    total = sum(row.payout.total_payout for row in rows)
    logger.info(
        f"Batch report complete: {len(rows)} members paid, "
        f"{len(failures)} failed, total={total:,.2f}"
    )

    return rows, failures
