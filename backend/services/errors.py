"""
Error types raised by the referral payout engine.

  PayoutEngineError        base class; batch callers catch this per member
  InvalidInputError        bad arguments (base rate, step bounds, counts)
  MemberNotFoundError      a member lookup that must succeed did not
  MemberSourceError        the backing member data source failed
  TreeDepthExceededError   a recursive tree walk went past its depth guard

Unknown downline roots are not errors: traversal returns an empty list.
Cycles and self-referrals are not errors either.
"""


class PayoutEngineError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidInputError(PayoutEngineError, ValueError):
    pass


class MemberNotFoundError(PayoutEngineError, LookupError):
    pass


class MemberSourceError(PayoutEngineError, RuntimeError):
    pass


class TreeDepthExceededError(PayoutEngineError):
    pass
