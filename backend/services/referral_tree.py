"""
Typed referral tree views of a root's downline.

  build_referral_tree   batched BFS that hangs each member under its referrer
  iter_tree             recursive walk with an explicit depth guard
  count_tree_members    number of nodes below the root
  tree_depth            deepest level below the root
  build_step_groups     steps 1-9 with expected (3^s) and actual members
  summarize_downline    direct vs indirect member counts

The tree follows the same visited-set rules as downline.compute_downline:
a member appears exactly once, under the referrer through which it was first
reached, and cycles or self-referrals never add nodes.
"""

import logging
from typing import Callable, Iterable, Iterator, Optional

import config
from models.schemas import (
    DownlineEntry, DownlineSummary, Member, StepAssignment, StepGroup, TreeNode,
)
from services.errors import InvalidInputError, TreeDepthExceededError
from services.steps import MAX_STEP, MIN_STEP, step_capacity

logger = logging.getLogger(__name__)

MemberLookup = Callable[[set[str]], Iterable[Member]]


# ===========================================================================
# Tree construction
# ===========================================================================

def build_referral_tree(
    root_id: str,
    list_children: MemberLookup,
    max_depth: Optional[int] = None,
) -> TreeNode:
    """
    Build the referral tree below root_id.

    One list_children call per level. Levels deeper than max_depth
    (default config.MAX_TREE_DEPTH) are not expanded.

    Args:
        root_id:       Root member id
        list_children: Batched lookup returning Member objects (referrer_id
                       is needed to place each child)
        max_depth:     Maximum number of levels below the root

    Returns:
        TreeNode for the root (join_timestamp unknown, so None)

    Raises:
        InvalidInputError: max_depth < 1
    """
    if max_depth is None:
        max_depth = config.MAX_TREE_DEPTH
    if max_depth < 1:
        raise InvalidInputError(f"max_depth must be >= 1, got {max_depth}")

    root = TreeNode(id=root_id)
    nodes: dict[str, TreeNode] = {root_id: root}
    frontier: list[str] = [root_id]
    depth = 0

    while frontier:
        if depth >= max_depth:
            logger.warning(
                f"Referral tree for {root_id} truncated at depth {max_depth}"
            )
            break
        depth += 1

        next_frontier: list[str] = []
        for child in list_children(set(frontier)):
            if child.id in nodes:
                continue

            parent = nodes.get(child.referrer_id) if child.referrer_id else None
            if parent is None:
                logger.warning(
                    f"Member {child.id} returned for unknown referrer "
                    f"{child.referrer_id!r}; attaching under root {root_id}"
                )
                parent = root

            node = TreeNode(id=child.id, join_timestamp=child.join_timestamp)
            parent.children.append(node)
            nodes[child.id] = node
            next_frontier.append(child.id)

        frontier = next_frontier

    logger.debug(f"Referral tree for {root_id}: {len(nodes) - 1} members, depth {depth}")
    return root


# ===========================================================================
# Recursive walkers
# ===========================================================================

def iter_tree(
    node: TreeNode,
    max_depth: Optional[int] = None,
    _depth: int = 0,
) -> Iterator[tuple[TreeNode, int]]:
    """
    Pre-order walk yielding (node, depth); the starting node is depth 0.

    Raises:
        TreeDepthExceededError: the tree is deeper than max_depth
    """
    if max_depth is None:
        max_depth = config.MAX_TREE_DEPTH
    if _depth > max_depth:
        raise TreeDepthExceededError(
            f"Referral tree deeper than {max_depth} levels at node {node.id}"
        )

    yield node, _depth
    for child in node.children:
        yield from iter_tree(child, max_depth, _depth + 1)


def count_tree_members(node: TreeNode, max_depth: Optional[int] = None) -> int:
    """Number of nodes below node (node itself excluded)."""
    return sum(1 for _ in iter_tree(node, max_depth)) - 1


def tree_depth(node: TreeNode, max_depth: Optional[int] = None) -> int:
    """Deepest level below node; 0 for a leaf."""
    return max(depth for _, depth in iter_tree(node, max_depth))


# ===========================================================================
# Step groups and summary
# ===========================================================================

def build_step_groups(assignments: dict[str, StepAssignment]) -> list[StepGroup]:
    """
    Group step assignments into steps 1-9.

    Every step is present, even when empty. Members within a step are in
    join order.
    """
    groups = {
        step: StepGroup(step_number=step, expected_count=step_capacity(step))
        for step in range(MIN_STEP, MAX_STEP + 1)
    }

    for assignment in sorted(assignments.values(), key=lambda a: a.join_order):
        group = groups[assignment.step_number]
        group.members.append(assignment)
        group.member_count += 1

    return [groups[step] for step in range(MIN_STEP, MAX_STEP + 1)]


def summarize_downline(levels: list[list[DownlineEntry]]) -> DownlineSummary:
    """
    Direct vs indirect counts from downline.compute_downline_levels output.

    Direct members are the root's own referrals (the first level).
    """
    total = sum(len(level) for level in levels)
    direct = len(levels[0]) if levels else 0
    return DownlineSummary(
        total_members=total,
        direct_members=direct,
        indirect_members=total - direct,
    )
