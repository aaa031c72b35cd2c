"""
Member data sources: where the engine gets the referral graph from.

Both sources expose the two lookups the engine consumes:
  list_children(parent_ids)         → members whose referrer is in parent_ids
  get_subscription_amount(user_id)  → chit subscription amount for a member

SnapshotMemberSource
  An immutable in-memory graph snapshot supplied by the caller. Counts its
  list_children round trips (query_count) so callers can check that
  traversals stay O(depth).

HttpMemberSource
  Client for the member directory API:
    POST {base}/members/children       body {"parent_ids": [...]}
                                       → {"data": [{id, join_timestamp, referrer_id}]}
    GET  {base}/members/{id}/subscription
                                       → {"amount": <number>}
  Auth:  Authorization: Bearer <MEMBER_API_KEY>
  Retries 429 / 5xx / network errors with linear backoff; anything else
  raises MemberSourceError (404 on a subscription → MemberNotFoundError).
"""

import logging
import threading
import time
from typing import Iterable, Optional

import httpx
from pydantic import ValidationError

import config
from models.schemas import Member
from services.errors import MemberNotFoundError, MemberSourceError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MAX_RETRIES = 3            # Retry count for network/rate-limit errors
RETRY_BACKOFF_BASE = 2.0   # Linear backoff base (2s, 4s, 6s)
REQUEST_TIMEOUT = 30.0     # HTTP timeout per request in seconds


def _join_order_key(member: Member) -> tuple:
    return (member.join_timestamp, member.id)


# ===========================================================================
# In-memory snapshot
# ===========================================================================

class SnapshotMemberSource:
    """Read-only member graph built from a list of Member records."""

    def __init__(
        self,
        members: Iterable[Member],
        subscription_amounts: Optional[dict[str, float]] = None,
    ):
        by_referrer: dict[str, list[Member]] = {}
        ids: set[str] = set()
        for member in members:
            ids.add(member.id)
            if member.referrer_id is not None:
                by_referrer.setdefault(member.referrer_id, []).append(member)

        self._children = {
            referrer: tuple(sorted(children, key=_join_order_key))
            for referrer, children in by_referrer.items()
        }
        self._member_ids = frozenset(ids)
        self._subscription_amounts = dict(subscription_amounts or {})
        self._lock = threading.Lock()
        self.query_count = 0

    def __contains__(self, member_id: str) -> bool:
        return member_id in self._member_ids

    def list_children(self, parent_ids: set[str]) -> list[Member]:
        """All members referred by anyone in parent_ids, ordered by (join time, id)."""
        with self._lock:
            self.query_count += 1

        children: list[Member] = []
        for parent_id in parent_ids:
            children.extend(self._children.get(parent_id, ()))
        return sorted(children, key=_join_order_key)

    def get_subscription_amount(self, user_id: str) -> float:
        if user_id not in self._subscription_amounts:
            raise MemberNotFoundError(f"No subscription amount for member {user_id}")
        return self._subscription_amounts[user_id]


# ===========================================================================
# HTTP member directory
# ===========================================================================

class HttpMemberSource:
    """Member directory API client. Safe to share across worker threads."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or config.MEMBER_API_BASE_URL).rstrip("/")
        api_key = api_key if api_key is not None else config.MEMBER_API_KEY
        self._client = httpx.Client(
            timeout=REQUEST_TIMEOUT,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._client.close()

    def list_children(self, parent_ids: set[str]) -> list[Member]:
        if not parent_ids:
            return []

        path = "/members/children"
        response = self._request("POST", path, json={"parent_ids": sorted(parent_ids)})
        payload = self._json_object(response, path)

        items = payload.get("data", [])
        if not isinstance(items, list):
            raise MemberSourceError(f"Member API: {path} 'data' is not a list")
        try:
            children = [Member.model_validate(item) for item in items]
        except ValidationError as e:
            raise MemberSourceError(
                f"Member API: malformed member record from {path}: "
                f"{e.error_count()} validation error(s)"
            ) from e

        logger.debug(f"list_children({len(parent_ids)} parents) → {len(children)} members")
        return children

    def get_subscription_amount(self, user_id: str) -> float:
        path = f"/members/{user_id}/subscription"
        payload = self._json_object(self._request("GET", path), path)

        amount = payload.get("amount")
        if amount is None:
            raise MemberNotFoundError(f"No subscription amount for member {user_id}")
        try:
            return float(amount)
        except (TypeError, ValueError) as e:
            raise MemberSourceError(
                f"Member API: non-numeric subscription amount {amount!r} for member {user_id}"
            ) from e

    @staticmethod
    def _json_object(response: httpx.Response, path: str) -> dict:
        """Decode a 200 body that must be a JSON object."""
        try:
            payload = response.json()
        except ValueError as e:
            raise MemberSourceError(f"Member API: {path} returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise MemberSourceError(
                f"Member API: {path} returned {type(payload).__name__}, expected an object"
            )
        return payload

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send one request with retry logic.

        Retries on:
          - 429 (rate limit) and 5xx: waits RETRY_BACKOFF_BASE * attempt seconds
          - Network errors: same backoff, up to MAX_RETRIES attempts

        Raises:
            MemberNotFoundError: 404
            MemberSourceError:   other 4xx, or retries exhausted
        """
        url = f"{self.base_url}{path}"

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                wait_time = RETRY_BACKOFF_BASE * attempt
                logger.warning(
                    f"Network error on {method} {path}, "
                    f"attempt {attempt}/{MAX_RETRIES}: {e}"
                )
                if attempt < MAX_RETRIES:
                    time.sleep(wait_time)
                    continue
                raise MemberSourceError(
                    f"{method} {path} failed after {MAX_RETRIES} retries: {e}"
                ) from e

            if response.status_code == 200:
                return response

            if response.status_code == 429 or response.status_code >= 500:
                wait_time = RETRY_BACKOFF_BASE * attempt
                logger.warning(
                    f"Member API returned {response.status_code} on {method} {path}, "
                    f"attempt {attempt}/{MAX_RETRIES}, waiting {wait_time}s..."
                )
                if attempt < MAX_RETRIES:
                    time.sleep(wait_time)
                continue

            if response.status_code == 404:
                raise MemberNotFoundError(f"Member API: {path} not found")

            logger.error(
                f"Member API error {response.status_code} on {method} {path}: "
                f"{response.text[:300]}"
            )
            raise MemberSourceError(
                f"Member API returned {response.status_code}: {response.text[:200]}"
            )

        logger.error(f"All {MAX_RETRIES} retries exhausted for {method} {path}")
        raise MemberSourceError(f"{method} {path} failed after {MAX_RETRIES} retries")
