import threading
from datetime import datetime, timedelta, timezone

from schemas import SubscriptionState, Tier


class EntitlementCache:
    """Last known subscription tier per owner.

    Written only by the billing poller through ``update``; the core reads it
    with ``get``. Missing or stale entries read as ``None`` so quota checks
    fail closed.
    """

    def __init__(self, max_age_seconds=15 * 60, clock=None):
        self.max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._states = {}
        self._lock = threading.Lock()

    def update(self, owner_id, tier, refreshed_at=None):
        refreshed_at = refreshed_at or self._clock()
        if refreshed_at.tzinfo is None:
            refreshed_at = refreshed_at.replace(tzinfo=timezone.utc)
        state = SubscriptionState(tier=Tier(tier), refreshed_at=refreshed_at)
        with self._lock:
            self._states[owner_id] = state
        return state

    def forget(self, owner_id):
        with self._lock:
            self._states.pop(owner_id, None)

    def get(self, owner_id):
        with self._lock:
            state = self._states.get(owner_id)
        if state is None:
            return None
        if self._clock() - state.refreshed_at > self.max_age:
            return None
        return state
