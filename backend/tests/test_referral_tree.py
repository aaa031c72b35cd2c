"""
Tests for services/referral_tree.py.

Test categories:
  1. TREE CONSTRUCTION (shape, cycles, depth limit)
  2. RECURSIVE WALKERS + DEPTH GUARD
  3. STEP GROUPS
  4. DOWNLINE SUMMARY
"""

import sys
import os
from datetime import datetime, timedelta

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.schemas import DownlineEntry, Member, TreeNode
from services.downline import compute_downline, compute_downline_levels, sort_by_join_order
from services.errors import InvalidInputError, TreeDepthExceededError
from services.member_source import SnapshotMemberSource
from services.referral_tree import (
    build_referral_tree,
    build_step_groups,
    count_tree_members,
    iter_tree,
    summarize_downline,
    tree_depth,
)
from services.steps import assign_steps

T0 = datetime(2026, 3, 1, 12, 0, 0)


def make_chain(length):
    """R → n0 → n1 → ... as a nested TreeNode."""
    root = TreeNode(id="R")
    node = root
    for i in range(length):
        child = TreeNode(id=f"n{i}")
        node.children.append(child)
        node = child
    return root


def child_ids(node):
    return [c.id for c in node.children]


# ===========================================================================
# 1. TREE CONSTRUCTION
# ===========================================================================

class TestBuildReferralTree:

    def test_shape(self, sample_source):
        root = build_referral_tree("R", sample_source.list_children)
        assert child_ids(root) == ["A", "B", "C"]
        a, b, c = root.children
        assert child_ids(a) == ["D", "F"]
        assert child_ids(b) == ["E"]
        assert child_ids(c) == []
        assert child_ids(a.children[0]) == ["G"]

    def test_member_count_matches_downline(self, sample_source):
        root = build_referral_tree("R", sample_source.list_children)
        downline = compute_downline("R", sample_source.list_children)
        assert count_tree_members(root) == len(downline)

    def test_join_timestamps_on_nodes(self, sample_source):
        root = build_referral_tree("R", sample_source.list_children)
        assert root.join_timestamp is None
        assert root.children[0].join_timestamp is not None

    def test_cycle_back_to_root(self):
        members = [
            Member(id="R", join_timestamp=T0, referrer_id="B"),
            Member(id="A", join_timestamp=T0 + timedelta(minutes=1), referrer_id="R"),
            Member(id="B", join_timestamp=T0 + timedelta(minutes=2), referrer_id="A"),
        ]
        source = SnapshotMemberSource(members)
        root = build_referral_tree("R", source.list_children)
        assert count_tree_members(root) == 2
        assert tree_depth(root) == 2

    def test_unknown_root(self, sample_source):
        root = build_referral_tree("nobody", sample_source.list_children)
        assert root == TreeNode(id="nobody")

    def test_max_depth_truncates(self, sample_source):
        root = build_referral_tree("R", sample_source.list_children, max_depth=1)
        assert child_ids(root) == ["A", "B", "C"]
        assert all(not c.children for c in root.children)

    @pytest.mark.parametrize("max_depth", [0, -1])
    def test_max_depth_must_be_positive(self, sample_source, max_depth):
        with pytest.raises(InvalidInputError):
            build_referral_tree("R", sample_source.list_children, max_depth=max_depth)

    def test_child_without_known_referrer_goes_under_root(self):
        orphan = Member(id="X", join_timestamp=T0, referrer_id=None)

        def list_children(parent_ids):
            return [orphan] if parent_ids == {"R"} else []

        root = build_referral_tree("R", list_children)
        assert child_ids(root) == ["X"]


# ===========================================================================
# 2. RECURSIVE WALKERS + DEPTH GUARD
# ===========================================================================

class TestWalkers:

    def test_iter_tree_preorder(self, sample_source):
        root = build_referral_tree("R", sample_source.list_children)
        walked = [(n.id, d) for n, d in iter_tree(root)]
        assert walked == [
            ("R", 0), ("A", 1), ("D", 2), ("G", 3), ("F", 2),
            ("B", 1), ("E", 2), ("C", 1),
        ]

    def test_tree_depth(self, sample_source):
        root = build_referral_tree("R", sample_source.list_children)
        assert tree_depth(root) == 3

    def test_leaf_depth_zero(self):
        assert tree_depth(TreeNode(id="solo")) == 0
        assert count_tree_members(TreeNode(id="solo")) == 0

    def test_depth_guard_trips(self):
        with pytest.raises(TreeDepthExceededError):
            count_tree_members(make_chain(10), max_depth=5)

    def test_depth_guard_exact_limit_ok(self):
        assert tree_depth(make_chain(5), max_depth=5) == 5

    def test_depth_guard_default_from_config(self):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("services.referral_tree.config.MAX_TREE_DEPTH", 3)
            with pytest.raises(TreeDepthExceededError):
                tree_depth(make_chain(4))


# ===========================================================================
# 3. STEP GROUPS
# ===========================================================================

class TestStepGroups:

    def test_all_nine_steps_present(self):
        groups = build_step_groups({})
        assert [g.step_number for g in groups] == list(range(1, 10))
        assert [g.expected_count for g in groups] == [3 ** s for s in range(1, 10)]
        assert all(g.member_count == 0 for g in groups)

    def test_sample_groups(self, sample_source):
        downline = compute_downline("R", sample_source.list_children)
        groups = build_step_groups(assign_steps(sort_by_join_order(downline)))
        assert [m.id for m in groups[0].members] == ["A", "B", "C"]
        assert [m.id for m in groups[1].members] == ["D", "E", "F", "G"]
        assert groups[1].member_count == 4
        assert groups[2].member_count == 0

    def test_members_in_join_order(self):
        downline = [
            DownlineEntry(id=f"m{i}", join_timestamp=T0 + timedelta(minutes=i))
            for i in range(6)
        ]
        assignments = assign_steps(downline)
        shuffled = dict(reversed(list(assignments.items())))
        groups = build_step_groups(shuffled)
        assert [m.join_order for m in groups[1].members] == [4, 5, 6]


# ===========================================================================
# 4. DOWNLINE SUMMARY
# ===========================================================================

class TestSummary:

    def test_sample_summary(self, sample_source):
        levels = compute_downline_levels("R", sample_source.list_children)
        summary = summarize_downline(levels)
        assert summary.total_members == 7
        assert summary.direct_members == 3
        assert summary.indirect_members == 4

    def test_empty_summary(self):
        summary = summarize_downline([])
        assert (summary.total_members, summary.direct_members, summary.indirect_members) == (0, 0, 0)

    def test_self_referral_not_counted_as_direct(self):
        members = [
            Member(id="R", join_timestamp=T0, referrer_id="R"),
            Member(id="A", join_timestamp=T0 + timedelta(minutes=1), referrer_id="R"),
        ]
        source = SnapshotMemberSource(members)
        summary = summarize_downline(compute_downline_levels("R", source.list_children))
        assert summary.direct_members == 1
