"""
Behavior profile store.

In-memory, bounded store of per-session behavior profiles: search, click
and purchase history plus decayed preference counters for categories and
health benefits.

- Capacity is bounded; the least-recently-updated profile is evicted
  first.
- Updates to one session are serialized by a per-session lock; the store
  lock only guards the key map, LRU order and lock table, so different
  sessions update in parallel.
- A session lock lives exactly as long as some caller references it.
  Eviction removes profiles, never locks.
- Readers get detached snapshots (eventual consistency with in-flight
  updates).
- The clock is injected so tests can drive time.

In production, this should be backed by Redis for horizontal scaling.
"""

import threading
import time
from collections import OrderedDict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, Iterator, List, Optional, Tuple

from core.logging import LoggerMixin


Clock = Callable[[], float]

# Counters below this are dropped after decay
_MIN_COUNTER = 1e-4


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class QueryEvent:
    query: str
    search_type: str
    result_product_ids: Tuple[int, ...]
    timestamp: float


@dataclass(frozen=True)
class ClickEvent:
    product_id: int
    query: str
    position: int
    timestamp: float


@dataclass(frozen=True)
class PurchaseEvent:
    product_id: int
    context: str
    amount: float
    timestamp: float


@dataclass(frozen=True)
class EventWeights:
    """Preference increment per event type (purchase > click > search)."""
    search: float = 1.0
    click: float = 2.0
    purchase: float = 3.0


# =============================================================================
# Profile
# =============================================================================

@dataclass
class BehaviorProfile:
    """Accumulated behavior for one session. Histories are newest-last."""

    session_id: str
    history_limit: int = 50
    search_history: Deque[QueryEvent] = field(default_factory=deque)
    click_history: Deque[ClickEvent] = field(default_factory=deque)
    purchase_history: Deque[PurchaseEvent] = field(default_factory=deque)
    category_preferences: Dict[str, float] = field(default_factory=dict)
    benefit_preferences: Dict[str, float] = field(default_factory=dict)
    created_at: float = 0.0
    updated_at: float = 0.0

    def __post_init__(self):
        self.search_history = deque(self.search_history, maxlen=self.history_limit)
        self.click_history = deque(self.click_history, maxlen=self.history_limit)
        self.purchase_history = deque(self.purchase_history, maxlen=self.history_limit)

    @property
    def is_empty(self) -> bool:
        """True when no preference would influence ranking."""
        return not any(v > 0 for v in self.category_preferences.values()) and not any(
            v > 0 for v in self.benefit_preferences.values()
        )

    @property
    def search_count(self) -> int:
        return len(self.search_history)

    @property
    def click_count(self) -> int:
        return len(self.click_history)

    @property
    def purchase_count(self) -> int:
        return len(self.purchase_history)

    def top_categories(self, n: int = 3) -> List[str]:
        return _top(self.category_preferences, n)

    def top_benefits(self, n: int = 3) -> List[str]:
        return _top(self.benefit_preferences, n)

    def snapshot(self) -> "BehaviorProfile":
        """Detached copy safe to read without the session lock."""
        return BehaviorProfile(
            session_id=self.session_id,
            history_limit=self.history_limit,
            search_history=deque(self.search_history),
            click_history=deque(self.click_history),
            purchase_history=deque(self.purchase_history),
            category_preferences=dict(self.category_preferences),
            benefit_preferences=dict(self.benefit_preferences),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


def _top(counters: Dict[str, float], n: int) -> List[str]:
    ranked = sorted(counters.items(), key=lambda kv: (-kv[1], kv[0]))
    return [k for k, v in ranked[:n] if v > 0]


class _SessionLock:
    """Per-session mutex with a count of callers waiting on or holding it."""

    __slots__ = ("lock", "refs")

    def __init__(self):
        self.lock = threading.Lock()
        self.refs = 0


# =============================================================================
# Store
# =============================================================================

class ProfileStore(LoggerMixin):
    """
    Thread-safe bounded profile store.

    Usage:
        store = ProfileStore(max_profiles=10_000)

        store.record_search("s-1", "turmeric", result_product_ids=[1, 2],
                            categories=["turmeric"])
        store.record_click("s-1", product_id=1, query="turmeric", position=0,
                           categories=["turmeric"])

        profile = store.get_profile("s-1")   # snapshot, created if missing
        removed = store.evict_expired(7 * 24 * 3600)
    """

    def __init__(
        self,
        max_profiles: int = 10000,
        history_limit: int = 50,
        decay: float = 0.98,
        weights: Optional[EventWeights] = None,
        clock: Clock = time.time,
    ):
        if max_profiles < 1:
            raise ValueError("max_profiles must be >= 1")
        if not 0 < decay <= 1:
            raise ValueError("decay must be in (0, 1]")
        self.max_profiles = max_profiles
        self.history_limit = history_limit
        self.decay = decay
        self.weights = weights or EventWeights()
        self._clock = clock

        # Least-recently-updated first
        self._profiles: "OrderedDict[str, BehaviorProfile]" = OrderedDict()
        # Only sessions with a caller in flight have an entry
        self._session_locks: Dict[str, _SessionLock] = {}
        self._lock = threading.Lock()
        self._evictions = 0

    def now(self) -> float:
        return self._clock()

    # =========================================================================
    # Internal
    # =========================================================================

    @contextmanager
    def _session(self, session_id: str) -> Iterator[_SessionLock]:
        """
        Hold the session's lock for the duration of the block.

        The entry is referenced before it is acquired and dropped from the
        table only when the last reference is released, so every caller
        for one session contends on the same mutex.
        """
        with self._lock:
            entry = self._session_locks.get(session_id)
            if entry is None:
                entry = _SessionLock()
                self._session_locks[session_id] = entry
            entry.refs += 1
        try:
            with entry.lock:
                yield entry
        finally:
            with self._lock:
                entry.refs -= 1
                if entry.refs == 0:
                    del self._session_locks[session_id]

    def _new_profile(self, session_id: str, now: float) -> BehaviorProfile:
        return BehaviorProfile(
            session_id=session_id,
            history_limit=self.history_limit,
            created_at=now,
            updated_at=now,
        )

    def _enforce_capacity(self) -> None:
        """Evict least-recently-updated profiles. Caller holds self._lock."""
        while len(self._profiles) > self.max_profiles:
            self._profiles.popitem(last=False)
            self._evictions += 1

    def _update(self, session_id: str, mutate: Callable[[BehaviorProfile, float], None]) -> None:
        with self._session(session_id):
            now = self._clock()
            with self._lock:
                profile = self._profiles.get(session_id)
            if profile is None:
                profile = self._new_profile(session_id, now)

            mutate(profile, now)
            profile.updated_at = now

            with self._lock:
                # Re-insert if a sweep removed it while we were mutating
                self._profiles[session_id] = profile
                self._profiles.move_to_end(session_id)
                self._enforce_capacity()

    def _apply_preferences(
        self,
        profile: BehaviorProfile,
        weight: float,
        categories: Iterable[str],
        health_benefits: Iterable[str],
    ) -> None:
        for category in {c.lower().strip() for c in categories if c}:
            profile.category_preferences[category] = (
                profile.category_preferences.get(category, 0.0) + weight
            )
        for benefit in {b.lower().strip() for b in health_benefits if b}:
            profile.benefit_preferences[benefit] = (
                profile.benefit_preferences.get(benefit, 0.0) + weight
            )
        for counters in (profile.category_preferences, profile.benefit_preferences):
            for key in list(counters):
                counters[key] *= self.decay
                if counters[key] < _MIN_COUNTER:
                    del counters[key]

    # =========================================================================
    # Recording
    # =========================================================================

    def record_search(
        self,
        session_id: str,
        query: str,
        search_type: str = "hybrid",
        result_product_ids: Iterable[int] = (),
        categories: Iterable[str] = (),
        health_benefits: Iterable[str] = (),
    ) -> None:
        """Append a search and credit the categories/benefits it surfaced."""
        ids = tuple(result_product_ids)
        categories = list(categories)
        health_benefits = list(health_benefits)

        def mutate(profile: BehaviorProfile, now: float) -> None:
            profile.search_history.append(QueryEvent(
                query=query,
                search_type=search_type,
                result_product_ids=ids,
                timestamp=now,
            ))
            self._apply_preferences(profile, self.weights.search, categories, health_benefits)

        self._update(session_id, mutate)

    def record_click(
        self,
        session_id: str,
        product_id: int,
        query: str = "",
        position: int = 0,
        categories: Iterable[str] = (),
        health_benefits: Iterable[str] = (),
    ) -> None:
        categories = list(categories)
        health_benefits = list(health_benefits)

        def mutate(profile: BehaviorProfile, now: float) -> None:
            profile.click_history.append(ClickEvent(
                product_id=product_id,
                query=query,
                position=position,
                timestamp=now,
            ))
            self._apply_preferences(profile, self.weights.click, categories, health_benefits)

        self._update(session_id, mutate)

    def record_purchase(
        self,
        session_id: str,
        product_id: int,
        context: str = "",
        amount: float = 0.0,
        categories: Iterable[str] = (),
        health_benefits: Iterable[str] = (),
    ) -> None:
        categories = list(categories)
        health_benefits = list(health_benefits)

        def mutate(profile: BehaviorProfile, now: float) -> None:
            profile.purchase_history.append(PurchaseEvent(
                product_id=product_id,
                context=context,
                amount=amount,
                timestamp=now,
            ))
            self._apply_preferences(profile, self.weights.purchase, categories, health_benefits)

        self._update(session_id, mutate)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_profile(self, session_id: str) -> BehaviorProfile:
        """
        Snapshot of a session's profile, creating an empty one on first
        access. Never fails.
        """
        with self._session(session_id):
            with self._lock:
                profile = self._profiles.get(session_id)
                if profile is None:
                    profile = self._new_profile(session_id, self._clock())
                    self._profiles[session_id] = profile
                    self._enforce_capacity()
            return profile.snapshot()

    def peek_profile(self, session_id: str) -> Optional[BehaviorProfile]:
        """Snapshot without creating; None for unknown sessions."""
        if session_id not in self:
            return None
        with self._session(session_id):
            with self._lock:
                profile = self._profiles.get(session_id)
            return profile.snapshot() if profile is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiles)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._profiles

    def session_ids(self) -> List[str]:
        """Keys, least-recently-updated first."""
        with self._lock:
            return list(self._profiles)

    # =========================================================================
    # Eviction
    # =========================================================================

    def evict_expired(self, max_age_seconds: float) -> int:
        """
        Remove profiles idle for longer than max_age_seconds and trim older
        history entries from the survivors.

        Iterates a snapshot of keys and takes the store lock per key, so
        live traffic for other sessions continues during the sweep.

        Returns:
            Number of profiles removed
        """
        cutoff = self._clock() - max_age_seconds
        removed = 0

        for session_id in self.session_ids():
            with self._lock:
                profile = self._profiles.get(session_id)
                if profile is None:
                    continue
                busy = session_id in self._session_locks
                if profile.updated_at < cutoff and not busy:
                    del self._profiles[session_id]
                    removed += 1
                    continue
            with self._session(session_id):
                _trim_history(profile, cutoff)

        if removed:
            self.logger.info("Evicted expired profiles", removed=removed, remaining=len(self))
        return removed

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "profiles": len(self._profiles),
                "max_profiles": self.max_profiles,
                "evictions": self._evictions,
            }


def _trim_history(profile: BehaviorProfile, cutoff: float) -> None:
    for history in (profile.search_history, profile.click_history, profile.purchase_history):
        while history and history[0].timestamp < cutoff:
            history.popleft()


# =============================================================================
# Background sweeper
# =============================================================================

class ProfileSweeper(LoggerMixin):
    """
    Daemon thread that calls evict_expired every interval_seconds.

    Usage:
        sweeper = ProfileSweeper(store, max_age_seconds=604800, interval_seconds=300)
        sweeper.start()
        ...
        sweeper.stop()
    """

    def __init__(self, store: ProfileStore, max_age_seconds: float, interval_seconds: float = 300.0):
        self.store = store
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="profile-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.store.evict_expired(self.max_age_seconds)
            except Exception as e:
                self.logger.error("Profile sweep failed", error=str(e))
