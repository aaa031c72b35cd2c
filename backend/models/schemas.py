"""
Pydantic models for the referral payout engine.

Models:
  - Member: One member of the referral graph (id, join time, referrer)
  - DownlineEntry: One downline member as emitted by the traversal
  - StepAssignment: Step number + join order for one downline member
  - ClubTier: Tier name and base rate resolved from a subscription amount
  - PayoutStep / PayoutMetadata / PayoutResult: Payout calculator output
  - TreeNode / StepGroup / DownlineSummary: Referral tree views
  - MemberPayout / BatchFailure: One row of a batch payout report
  - *Request / *Response: API request/response models
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def to_utc(value: datetime) -> datetime:
    """Naive timestamps are taken as UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Member — one node of the referral graph snapshot
# referrer_id may be None (top of a chain) or equal to id (self-referral).
# join_timestamp is always stored in UTC so join order comparisons never mix
# naive and aware datetimes.
# ---------------------------------------------------------------------------
class Member(BaseModel):
    id: str
    join_timestamp: datetime
    referrer_id: Optional[str] = None

    @field_validator("join_timestamp")
    @classmethod
    def _join_timestamp_utc(cls, value: datetime) -> datetime:
        return to_utc(value)


# ---------------------------------------------------------------------------
# DownlineEntry — traversal output, in BFS-discovery order, root excluded
# ---------------------------------------------------------------------------
class DownlineEntry(BaseModel):
    id: str
    join_timestamp: datetime

    @field_validator("join_timestamp")
    @classmethod
    def _join_timestamp_utc(cls, value: datetime) -> datetime:
        return to_utc(value)


# ---------------------------------------------------------------------------
# StepAssignment — step_number in [1, 9], join_order in [1, N]
# ---------------------------------------------------------------------------
class StepAssignment(BaseModel):
    id: str
    step_number: int
    join_order: int


# ---------------------------------------------------------------------------
# ClubTier — subscription amount bracket
# ---------------------------------------------------------------------------
class ClubTier(BaseModel):
    tier_name: str
    base_rate: float
    min_amount: float = 0.0
    description: str = ""


# ---------------------------------------------------------------------------
# Payout calculator output
#
# rate_per_head = B * (s + 1) / 2 for steps 1-5, B for steps 6-9
# step_payout   = rate_per_head * count_used
# ---------------------------------------------------------------------------
class PayoutStep(BaseModel):
    step: int
    count_used: int
    rate_per_head: float
    step_payout: float


class PayoutMetadata(BaseModel):
    formula: str
    total_steps: int
    calculated_at: datetime


class PayoutResult(BaseModel):
    base_rate: float
    total_payout: float
    steps: list[PayoutStep]
    metadata: PayoutMetadata


# ---------------------------------------------------------------------------
# Referral tree views
# ---------------------------------------------------------------------------
class TreeNode(BaseModel):
    id: str
    join_timestamp: Optional[datetime] = None
    children: list["TreeNode"] = Field(default_factory=list)


TreeNode.model_rebuild()


class StepGroup(BaseModel):
    step_number: int
    member_count: int = 0
    expected_count: int = 0  # ternary capacity 3^s
    members: list[StepAssignment] = Field(default_factory=list)


class DownlineSummary(BaseModel):
    total_members: int = 0
    direct_members: int = 0    # referrer is the root
    indirect_members: int = 0


# ---------------------------------------------------------------------------
# Batch report rows
# ---------------------------------------------------------------------------
class MemberPayout(BaseModel):
    user_id: str
    subscription_amount: float
    tier_name: str
    base_rate: float
    downline_count: int = 0
    actual_counts: list[int] = Field(default_factory=list)
    payout: PayoutResult


class BatchFailure(BaseModel):
    user_id: str
    reason: str


# ---------------------------------------------------------------------------
# API request / response models
# ---------------------------------------------------------------------------
class DownlineRequest(BaseModel):
    root_id: str
    members: list[Member]


class DownlineResponse(BaseModel):
    root_id: str
    downline: list[DownlineEntry]
    summary: DownlineSummary


class StepsRequest(BaseModel):
    root_id: str
    members: list[Member]


class StepsResponse(BaseModel):
    root_id: str
    assignments: dict[str, StepAssignment]
    steps: list[StepGroup]
    actual_counts: list[int]


class ReferralTreeRequest(BaseModel):
    root_id: str
    members: list[Member]
    # Levels below the root to expand; defaults to config.MAX_TREE_DEPTH
    max_depth: Optional[int] = None


class ReferralTreeResponse(BaseModel):
    root_id: str
    tree: TreeNode
    total_members: int
    depth: int
    summary: DownlineSummary


class PayoutRequest(BaseModel):
    base_rate: float
    max_steps: int = 9


class ActualPayoutRequest(BaseModel):
    base_rate: float
    actual_counts: list[int]


class ReportRequest(BaseModel):
    user_ids: list[str]
    report_label: str
    # When members is omitted the configured member API is used instead.
    members: Optional[list[Member]] = None
    subscription_amounts: dict[str, float] = Field(default_factory=dict)


class ReportResponse(BaseModel):
    status: str
    filename: str
    summary: dict
