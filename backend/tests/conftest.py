"""
Shared test fixtures for the referral payout engine test suite.

sample_members is a small referral graph rooted at "R":

  R (self-referred, joins first)
  ├── A ── D ── G
  │    └── F
  ├── B ── E
  └── C

Join order: R, A, B, C, D, E, F, G (one minute apart).
So R's downline in BFS order is A B C D E F G, join positions 1-3 land in
step 1 and 4-7 in step 2.
"""

import sys
import os
from datetime import datetime, timedelta

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.schemas import Member
from services.member_source import SnapshotMemberSource

BASE_TIME = datetime(2026, 1, 1, 9, 0, 0)


def _member(member_id, referrer_id, minute):
    return Member(
        id=member_id,
        join_timestamp=BASE_TIME + timedelta(minutes=minute),
        referrer_id=referrer_id,
    )


@pytest.fixture
def sample_members():
    return [
        _member("R", "R", 0),
        _member("A", "R", 1),
        _member("B", "R", 2),
        _member("C", "R", 3),
        _member("D", "A", 4),
        _member("E", "B", 5),
        _member("F", "A", 6),
        _member("G", "D", 7),
    ]


@pytest.fixture
def sample_source(sample_members):
    return SnapshotMemberSource(
        sample_members,
        subscription_amounts={
            "R": 100_000,    # DEVELOPMENT / 100
            "A": 1_000_000,  # DIAMOND / 1000
            "B": 20_000,     # below floor → EXECUTIVE / 50
        },
    )
