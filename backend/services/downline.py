"""
Downline enumeration over the referral graph.

Breadth-first traversal from a root member, issuing ONE batched children
query per BFS frontier (never one per node), so the number of round trips to
the backing data source is bounded by the depth of the tree, not its size.

Algorithm:
  visited  = {root_id}
  frontier = [root_id]
  loop:
    children = list_children(set(frontier))
    new      = children whose id is not yet visited (first occurrence wins)
    stop if new is empty
    append new to the output and to visited
    frontier = new ids, minus root_id

Cycles, self-referrals (referrer_id == id) and diamond reachability are
absorbed by the visited set: traversal always terminates and every id is
emitted at most once. An unknown root simply has no children, so the result
is an empty list.
"""

import logging
from typing import Callable, Iterable, Union

from models.schemas import DownlineEntry, Member

logger = logging.getLogger(__name__)

ChildLookup = Callable[[set[str]], Iterable[Union[Member, DownlineEntry]]]


# ===========================================================================
# Public API
# ===========================================================================

def compute_downline(root_id: str, list_children: ChildLookup) -> list[DownlineEntry]:
    """
    Enumerate every member reachable from root_id, excluding the root itself.

    Args:
        root_id:       Member whose downline is wanted
        list_children: Batched lookup — given a set of parent ids, returns all
                       members whose referrer is in that set

    Returns:
        DownlineEntry list in BFS-discovery order, no duplicates
    """
    downline: list[DownlineEntry] = []
    for level in _walk_levels(root_id, list_children):
        downline.extend(level)

    logger.debug(f"Downline for {root_id}: {len(downline)} members")
    return downline


def compute_downline_levels(
    root_id: str,
    list_children: ChildLookup,
) -> list[list[DownlineEntry]]:
    """
    Same traversal as compute_downline, grouped by referral depth.

    levels[0] holds the root's direct referrals, levels[1] their referrals,
    and so on. Concatenating the levels gives compute_downline's output.
    """
    return list(_walk_levels(root_id, list_children))


def sort_by_join_order(downline: Iterable[DownlineEntry]) -> list[DownlineEntry]:
    """Sort ascending by join_timestamp, ties broken by id ascending."""
    return sorted(downline, key=lambda entry: (entry.join_timestamp, entry.id))


# ===========================================================================
# BFS core
# ===========================================================================

def _walk_levels(root_id: str, list_children: ChildLookup):
    """Yield one list of newly discovered DownlineEntry objects per frontier."""
    visited: set[str] = {root_id}
    frontier: list[str] = [root_id]
    depth = 0

    while frontier:
        depth += 1
        children = list_children(set(frontier))

        new_entries: list[DownlineEntry] = []
        skipped = 0
        for child in children:
            if child.id in visited:
                skipped += 1
                continue
            visited.add(child.id)
            new_entries.append(
                DownlineEntry(id=child.id, join_timestamp=child.join_timestamp)
            )

        if skipped:
            # Self-referrals, cycles back into the tree, or duplicate edges
            logger.debug(
                f"  [{root_id}] depth {depth}: ignored {skipped} already-visited ids"
            )

        if not new_entries:
            break

        yield new_entries

        # Keep the root out of the next frontier
        frontier = [entry.id for entry in new_entries if entry.id != root_id]
