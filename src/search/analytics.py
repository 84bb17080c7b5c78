"""
Search Analytics Tracking.

Records search, click and purchase events:

1. into the behavior profile store (synchronously; in-memory and fast)
2. into a bounded in-memory event log used for summaries
3. into Supabase tables, best-effort, on the tracking dispatcher

Persistence failures are TrackingErrors: logged, never raised to the
caller. The orchestrator submits whole track_search calls to the
dispatcher so tracking never adds to search latency.
"""

import threading
import time
from collections import Counter, OrderedDict, defaultdict
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from supabase import Client

from config.constants import CATEGORY_KEYWORDS, SEASONAL_RULES
from core.logging import LoggerMixin
from search.catalog import CatalogStore
from search.errors import CatalogError, TrackingError
from search.query_expander import QueryExpander
from services.profile_store import BehaviorProfile, ProfileStore


# Clicks mark searches for the same query made within this window
CLICK_ATTRIBUTION_SECONDS = 3600

# Results whose attributes feed profile preferences on a search
PREFERENCE_RESULTS = 5


def infer_categories(title: Optional[str]) -> Tuple[str, ...]:
    """Categories whose keywords occur in a product title."""
    if not title:
        return ()
    lowered = title.lower()
    return tuple(
        category for category, keywords in CATEGORY_KEYWORDS.items()
        if any(kw in lowered for kw in keywords)
    )


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


# =============================================================================
# Dispatcher
# =============================================================================

class TrackingDispatcher(LoggerMixin):
    """
    Fire-and-forget task runner with a bounded backlog.

    submit() never blocks: when max_pending tasks are queued the task is
    dropped with a warning. Task exceptions are logged. Tasks running
    longer than task_timeout are reported; Python threads cannot be
    interrupted, so the task itself must bound its I/O.
    """

    def __init__(self, max_workers: int = 2, max_pending: int = 1000, task_timeout: float = 2.0):
        self.task_timeout = task_timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tracking")
        self._slots = threading.BoundedSemaphore(max_pending)
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self._dropped = 0

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """Queue fn(*args, **kwargs). Returns False if it was dropped."""
        if not self._slots.acquire(blocking=False):
            self._dropped += 1
            self.logger.warning("Tracking backlog full, dropping task", task=getattr(fn, "__name__", str(fn)))
            return False
        try:
            future = self._executor.submit(self._run, fn, args, kwargs)
        except RuntimeError as e:
            # Executor already shut down
            self._slots.release()
            self._dropped += 1
            self.logger.warning("Tracking dispatcher closed, dropping task", error=str(e))
            return False

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._done)
        return True

    def _done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        self._slots.release()

    def _run(self, fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        name = getattr(fn, "__name__", str(fn))
        start = time.perf_counter()
        try:
            fn(*args, **kwargs)
        except Exception as e:
            self.logger.warning("Tracking task failed", task=name, error=str(e), error_type=type(e).__name__)
        elapsed = time.perf_counter() - start
        if elapsed > self.task_timeout:
            self.logger.warning("Tracking task exceeded timeout", task=name, elapsed_s=round(elapsed, 3))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued tasks. True if all finished within timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)


# =============================================================================
# Event log types
# =============================================================================

@dataclass(frozen=True)
class ResultRef:
    """A result as reported with a tracked search."""
    product_id: int
    title: str = ""
    position: int = 0
    score: float = 0.0
    categories: Tuple[str, ...] = ()
    health_benefits: Tuple[str, ...] = ()


@dataclass
class TrackedResult:
    product_id: int
    title: str
    position: int
    score: float
    clicked: bool = False
    click_timestamp: Optional[float] = None
    purchased: bool = False
    purchase_timestamp: Optional[float] = None


@dataclass
class SearchEvent:
    session_id: str
    query: str
    search_type: str
    timestamp: float
    results: List[TrackedResult] = field(default_factory=list)
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class AnalyticsTables:
    searches: str = "search_events"
    clicks: str = "search_clicks"
    purchases: str = "search_purchases"


# =============================================================================
# Tracker
# =============================================================================

class AnalyticsTracker(LoggerMixin):
    """
    Track search events for personalization and analysis.

    Usage:
        tracker = AnalyticsTracker(store, expander, catalog=catalog, supabase=client)
        tracker.track_search("s-1", "turmeric", results=[ResultRef(12, "Turmeric Powder")])
        tracker.track_click("s-1", product_id=12, query="turmeric", position=0)
        tracker.summary(time_range_seconds=86400)
    """

    def __init__(
        self,
        profiles: ProfileStore,
        expander: Optional[QueryExpander] = None,
        catalog: Optional[CatalogStore] = None,
        supabase: Optional[Client] = None,
        dispatcher: Optional[TrackingDispatcher] = None,
        tables: Optional[AnalyticsTables] = None,
        event_log_limit: int = 10000,
        attribute_cache_size: int = 5000,
        clock: Callable[[], float] = time.time,
    ):
        self.profiles = profiles
        self.expander = expander or QueryExpander()
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.tables = tables or AnalyticsTables()
        self.event_log_limit = max(2, event_log_limit)
        self._supabase = supabase
        self._clock = clock

        self._events: List[SearchEvent] = []
        self._events_lock = threading.Lock()

        # product_id -> (categories, health_benefits, title)
        self._attributes: "OrderedDict[int, Tuple[Tuple[str, ...], Tuple[str, ...], str]]" = OrderedDict()
        self._attribute_cache_size = attribute_cache_size
        self._attributes_lock = threading.Lock()

    @property
    def persists(self) -> bool:
        return self._supabase is not None

    # =========================================================================
    # Persistence
    # =========================================================================

    def _write(self, table: str, row: Dict[str, Any]) -> None:
        try:
            self._supabase.table(table).insert(row).execute()
        except Exception as e:
            raise TrackingError(f"insert into {table} failed: {e}") from e

    def _persist_now(self, table: str, row: Dict[str, Any]) -> None:
        try:
            self._write(table, row)
        except TrackingError as e:
            # Don't let analytics failures break search
            self.logger.warning("Failed to persist analytics event", table=table, error=str(e))

    def _persist(self, table: str, row: Dict[str, Any]) -> None:
        if self._supabase is None:
            return
        if self.dispatcher is not None:
            self.dispatcher.submit(self._persist_now, table, row)
        else:
            self._persist_now(table, row)

    # =========================================================================
    # Product attributes
    # =========================================================================

    def remember(self, product_id: int, categories: Iterable[str], health_benefits: Iterable[str], title: str = "") -> None:
        with self._attributes_lock:
            self._attributes[product_id] = (tuple(categories), tuple(health_benefits), title)
            self._attributes.move_to_end(product_id)
            while len(self._attributes) > self._attribute_cache_size:
                self._attributes.popitem(last=False)

    def _product_attributes(self, product_id: int, title: Optional[str] = None) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        """Categories/benefits from cache, then catalog, then the title."""
        with self._attributes_lock:
            cached = self._attributes.get(product_id)
        if cached is not None and (cached[0] or cached[1]):
            return cached[0], cached[1]

        if self.catalog is not None:
            try:
                record = self.catalog.get_product(product_id)
            except CatalogError as e:
                self.logger.warning("Catalog unavailable for tracking", product_id=product_id, error=str(e))
                record = None
            if record is not None:
                self.remember(product_id, record.categories, record.health_benefits, record.name)
                return record.categories, record.health_benefits

        title = title or (cached[2] if cached else "")
        return infer_categories(title), ()

    # =========================================================================
    # Search Events
    # =========================================================================

    def track_search(
        self,
        session_id: str,
        query: str,
        search_type: str = "hybrid",
        results: Sequence[ResultRef] = (),
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        location: Optional[Dict[str, str]] = None,
    ) -> None:
        """Log a search, update the session profile, persist best-effort."""
        now = self._clock()
        categories: List[str] = []
        benefits: List[str] = list(self.expander.health_benefits(query))

        for ref in results:
            ref_categories = ref.categories or infer_categories(ref.title)
            self.remember(ref.product_id, ref_categories, ref.health_benefits, ref.title)
            if ref.position < PREFERENCE_RESULTS:
                categories.extend(ref_categories)
                benefits.extend(ref.health_benefits)

        self.profiles.record_search(
            session_id,
            query,
            search_type=search_type,
            result_product_ids=[ref.product_id for ref in results],
            categories=categories,
            health_benefits=benefits,
        )

        event = SearchEvent(
            session_id=session_id,
            query=query,
            search_type=search_type,
            timestamp=now,
            results=[
                TrackedResult(product_id=r.product_id, title=r.title, position=r.position, score=r.score)
                for r in results
            ],
            user_id=user_id,
            user_agent=user_agent,
            location=location,
        )
        with self._events_lock:
            self._events.append(event)
            if len(self._events) >= self.event_log_limit:
                # Keep the newest half
                self._events = self._events[-(self.event_log_limit // 2):]

        self._persist(self.tables.searches, {
            "session_id": session_id,
            "user_id": user_id,
            "query": query,
            "query_normalized": query.lower().strip(),
            "search_type": search_type,
            "result_count": len(results),
            "result_ids": [r.product_id for r in results],
            "user_agent": user_agent,
            "location": location or {},
        })

    # =========================================================================
    # Click Events
    # =========================================================================

    def track_click(
        self,
        session_id: str,
        product_id: int,
        query: str = "",
        position: int = 0,
        title: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Log when a user clicks a search result."""
        now = self._clock()
        categories, benefits = self._product_attributes(product_id, title)
        self.profiles.record_click(
            session_id,
            product_id,
            query=query,
            position=position,
            categories=categories,
            health_benefits=benefits,
        )

        normalized = query.lower().strip()
        with self._events_lock:
            for event in self._events:
                if event.session_id != session_id or now - event.timestamp > CLICK_ATTRIBUTION_SECONDS:
                    continue
                if normalized and event.query.lower().strip() != normalized:
                    continue
                for result in event.results:
                    if result.product_id == product_id:
                        result.clicked = True
                        result.click_timestamp = now

        self._persist(self.tables.clicks, {
            "session_id": session_id,
            "user_id": user_id,
            "query": query,
            "product_id": product_id,
            "position": position,
        })

    # =========================================================================
    # Purchase Events
    # =========================================================================

    def track_purchase(
        self,
        session_id: str,
        product_id: int,
        context: str = "",
        amount: float = 0.0,
        title: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Log when a user purchases a product found through search."""
        now = self._clock()
        categories, benefits = self._product_attributes(product_id, title)
        self.profiles.record_purchase(
            session_id,
            product_id,
            context=context,
            amount=amount,
            categories=categories,
            health_benefits=benefits,
        )

        with self._events_lock:
            for event in self._events:
                if event.session_id != session_id:
                    continue
                for result in event.results:
                    if result.product_id == product_id:
                        result.purchased = True
                        result.purchase_timestamp = now

        self._persist(self.tables.purchases, {
            "session_id": session_id,
            "user_id": user_id,
            "product_id": product_id,
            "context": context,
            "amount": amount,
        })

    # =========================================================================
    # Reporting
    # =========================================================================

    def events(self) -> List[SearchEvent]:
        with self._events_lock:
            return list(self._events)

    def summary(self, time_range_seconds: float = 24 * 3600) -> Dict[str, Any]:
        """Aggregate stats over the trailing time range."""
        cutoff = self._clock() - time_range_seconds
        events = [e for e in self.events() if e.timestamp >= cutoff]

        query_counts: Counter = Counter()
        query_clicks: Counter = Counter()
        impressions: Counter = Counter()
        clicks: Counter = Counter()
        titles: Dict[int, str] = {}
        zero_results = 0

        for event in events:
            q = event.query.lower().strip()
            query_counts[q] += 1
            if any(r.clicked for r in event.results):
                query_clicks[q] += 1
            if not event.results:
                zero_results += 1
            for r in event.results:
                impressions[r.product_id] += 1
                if r.clicked:
                    clicks[r.product_id] += 1
                if r.title:
                    titles[r.product_id] = r.title

        top_queries = [
            {"query": q, "count": n, "ctr": round(query_clicks[q] / n, 4)}
            for q, n in sorted(query_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
        ]
        top_results = [
            {
                "product_id": pid,
                "title": titles.get(pid, ""),
                "clicks": n,
                "impressions": impressions[pid],
                "ctr": round(n / impressions[pid], 4) if impressions[pid] else 0.0,
            }
            for pid, n in sorted(clicks.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
        ]

        seasonal_trends: Dict[str, int] = defaultdict(int)
        for rule in SEASONAL_RULES:
            for term in rule.terms:
                count = sum(n for q, n in query_counts.items() if term in q)
                if count:
                    seasonal_trends[term] = count

        return {
            "total_searches": len(events),
            "unique_sessions": len({e.session_id for e in events}),
            "top_queries": top_queries,
            "top_results": top_results,
            "zero_result_rate": round(zero_results / len(events), 4) if events else 0.0,
            "seasonal_trends": dict(seasonal_trends),
            "active_profiles": len(self.profiles),
            "time_range_seconds": time_range_seconds,
        }

    def cleanup(self, max_age_seconds: float) -> Dict[str, int]:
        """Drop old events and expired profiles."""
        cutoff = self._clock() - max_age_seconds
        with self._events_lock:
            before = len(self._events)
            self._events = [e for e in self._events if e.timestamp >= cutoff]
            events_removed = before - len(self._events)
        profiles_removed = self.profiles.evict_expired(max_age_seconds)
        self.logger.info("Analytics cleanup", events_removed=events_removed, profiles_removed=profiles_removed)
        return {"events_removed": events_removed, "profiles_removed": profiles_removed}

    def public_profile(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Sanitized profile view (no query or product history)."""
        profile: Optional[BehaviorProfile] = self.profiles.peek_profile(session_id)
        if profile is None:
            return None
        return {
            "session_id": profile.session_id,
            "preferences": {
                "categories": {k: round(v, 4) for k, v in profile.category_preferences.items()},
                "health_benefits": {k: round(v, 4) for k, v in profile.benefit_preferences.items()},
            },
            "search_count": profile.search_count,
            "click_count": profile.click_count,
            "purchase_count": profile.purchase_count,
            "created_at": _iso(profile.created_at),
            "updated_at": _iso(profile.updated_at),
        }
