"""
Club tier resolution from a chit subscription amount.

Tier table (first match wins, lower bound inclusive):
  >= 10,00,000  → DIAMOND      base rate 1000
  >=  5,00,000  → CHAIRMAN     base rate 500
  >=  3,00,000  → REGIONAL     base rate 300
  >=  2,00,000  → MANAGER      base rate 200
  >=  1,00,000  → DEVELOPMENT  base rate 100
  >=    50,000  → EXECUTIVE    base rate 50
  anything lower also resolves to EXECUTIVE / 50
"""

from typing import Optional

from models.schemas import ClubTier

# ---------------------------------------------------------------------------
# Tier table — descending by min_amount
# ---------------------------------------------------------------------------
CLUB_TIERS = [
    ClubTier(tier_name="DIAMOND", base_rate=1000, min_amount=1_000_000,
             description="₹10,00,000 chit for 20, 25 & 40 months"),
    ClubTier(tier_name="CHAIRMAN", base_rate=500, min_amount=500_000,
             description="₹5,00,000 chit for 20, 25 & 40 months"),
    ClubTier(tier_name="REGIONAL", base_rate=300, min_amount=300_000,
             description="₹3,00,000 chit for 20, 25 & 30 months"),
    ClubTier(tier_name="MANAGER", base_rate=200, min_amount=200_000,
             description="₹2,00,000 chit for 20 & 25 months"),
    ClubTier(tier_name="DEVELOPMENT", base_rate=100, min_amount=100_000,
             description="₹1,00,000 chit for 20 & 25 months"),
    ClubTier(tier_name="EXECUTIVE", base_rate=50, min_amount=50_000,
             description="₹50,000 chit for 20 & 25 months"),
]

FLOOR_TIER = CLUB_TIERS[-1]


def resolve_tier(amount: float) -> ClubTier:
    """Return the club tier for a subscription amount. Never raises."""
    for tier in CLUB_TIERS:
        if amount >= tier.min_amount:
            return tier.model_copy()
    return FLOOR_TIER.model_copy()


def find_tier_by_base_rate(base_rate: float) -> Optional[ClubTier]:
    """Reverse lookup: the tier carrying this base rate, or None."""
    for tier in CLUB_TIERS:
        if tier.base_rate == base_rate:
            return tier.model_copy()
    return None


def get_club_tiers() -> list[ClubTier]:
    """All tiers, ascending by base rate."""
    return [tier.model_copy() for tier in reversed(CLUB_TIERS)]
