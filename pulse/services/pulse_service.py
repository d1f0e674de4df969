"""
Snapshot and signal orchestration.

Reads briefs through the document store, runs the deterministic
comparators, attaches the optional narrative and persists the result in a
single overwrite. Nothing is written unless the whole computation succeeded.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from pulse.core.cache_keys import (
    SIGNALS_COLLECTION,
    SNAPSHOTS_COLLECTION,
    signals_doc_id,
    snapshot_doc_id,
)
from pulse.core.config import MAX_WINDOW_DAYS, MIN_WINDOW_DAYS, PulseConfig, get_config
from pulse.core.errors import InternalError, InvalidArgumentError, PulseError
from pulse.core.metrics import compute_seconds, signals_requests_total, snapshot_requests_total
from pulse.core.metrics_store import log_json, timeit
from pulse.schemas.pulse import PulseSnapshot, SignalInsights, SignalsResult
from pulse.services.narrative import (
    NarrativeAdapter,
    get_narrative_adapter,
    load_brief_context,
    safe_pulse_narrative,
    safe_signal_insights,
    signals_request,
    snapshot_request,
)
from pulse.signals.canonical import TopicCanonicalizer, canonicalize
from pulse.signals.comparator import SignalComparator
from pulse.signals.freshness import FreshnessGuard
from pulse.signals.snapshot import SnapshotComparator
from pulse.signals.window import WindowAggregator, date_range

DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_date_key(value: Any) -> str:
    """yyyy-mm-dd that is also a real calendar date"""
    if not isinstance(value, str) or not DATE_KEY_RE.match(value):
        raise InvalidArgumentError(f"dateKey must be yyyy-mm-dd, got {value!r}")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise InvalidArgumentError(f"dateKey is not a calendar date: {value!r}")
    return value


def parse_window_days(value: Any, default: Optional[int] = None) -> int:
    """
    Absent -> default (7), numeric -> clamped to [1, 30], anything else is
    rejected. Numeric strings are accepted since query strings carry them.
    """
    if value is None or value == "":
        value = default if default is not None else get_config().default_window_days
    if isinstance(value, bool):
        raise InvalidArgumentError("windowDays must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise InvalidArgumentError(f"windowDays must be a number, got {value!r}")
    if not isinstance(value, (int, float)) or (isinstance(value, float) and not math.isfinite(value)):
        raise InvalidArgumentError(f"windowDays must be a number, got {value!r}")
    return max(MIN_WINDOW_DAYS, min(int(value), MAX_WINDOW_DAYS))


def normalize_topic_key(raw: Any, canonicalizer: TopicCanonicalizer) -> str:
    if not isinstance(raw, str) or not canonicalize(raw):
        raise InvalidArgumentError("topicKey is required")
    return canonicalizer.key(raw)


def today_key(tz_name: str) -> str:
    return datetime.now(ZoneInfo(tz_name)).date().isoformat()


def load_snapshot(store, window_days: int) -> Optional[PulseSnapshot]:
    """Stored snapshot for W, or None when absent or unreadable"""
    doc = store.get(SNAPSHOTS_COLLECTION, snapshot_doc_id(window_days))
    if not doc:
        return None
    try:
        return PulseSnapshot.model_validate(doc)
    except ValidationError as ve:
        log_json(
            stage="pulse.snapshot.unreadable",
            window_days=window_days,
            error=str(ve)[:200],
            level="warning",
        )
        return None


class PulseService:
    def __init__(
        self,
        store,
        cfg: Optional[PulseConfig] = None,
        canonicalizer: Optional[TopicCanonicalizer] = None,
        narrative: Optional[NarrativeAdapter] = None,
    ):
        self.store = store
        self.cfg = cfg or get_config()
        self.canonicalizer = canonicalizer or TopicCanonicalizer.from_config(self.cfg)
        self.narrative = narrative or get_narrative_adapter(self.cfg)
        self.aggregator = WindowAggregator(self.canonicalizer)
        self.guard = FreshnessGuard(self.cfg.snapshot_max_age_hours)

    def today(self) -> str:
        return today_key(self.cfg.timezone)

    def _context(self, date_key: str, window_days: int):
        try:
            return load_brief_context(self.store, date_key, window_days)
        except Exception as e:
            log_json(
                stage="pulse.narrative.context_error",
                date_key=date_key,
                error=f"{type(e).__name__}: {str(e)[:200]}",
                level="warning",
            )
            return []

    def _build_index(self, date_key: str, window_days: int):
        try:
            return self.aggregator.build(self.store, date_range(date_key, 2 * window_days))
        except PulseError:
            raise
        except (ValueError, KeyError, TypeError) as e:
            raise InternalError(f"aggregation failed: {e}") from e

    @timeit("pulse.snapshot.compute")
    def _compute_snapshot(self, window_days: int, date_key: str) -> PulseSnapshot:
        with compute_seconds.labels(kind="snapshot").time():
            index = self._build_index(date_key, window_days)
            snapshot = SnapshotComparator().compare(index, date_key, window_days)

        if snapshot.total_topics:
            request = snapshot_request(snapshot, self._context(date_key, window_days))
            snapshot.narrative = safe_pulse_narrative(self.narrative, request)
        return snapshot

    def compute_and_cache_snapshot(self, window_days: Any, date_key: Any, force_regen: bool = False) -> PulseSnapshot:
        window_days = parse_window_days(window_days)
        date_key = validate_date_key(date_key)

        if not force_regen:
            stored = load_snapshot(self.store, window_days)
            if self.guard.is_fresh(stored, date_key):
                snapshot_requests_total.labels(window_days=str(window_days), result="hit").inc()
                log_json(
                    stage="pulse.snapshot.cache_hit",
                    window_days=window_days,
                    date_key=date_key,
                    age_minutes=int(self.guard.age(stored).total_seconds() // 60),
                )
                return stored

        result = "forced" if force_regen else "miss"
        snapshot_requests_total.labels(window_days=str(window_days), result=result).inc()

        snapshot = self._compute_snapshot(window_days, date_key)
        self.store.set(SNAPSHOTS_COLLECTION, snapshot_doc_id(window_days), snapshot.to_doc())
        log_json(
            stage="pulse.snapshot.saved",
            window_days=window_days,
            date_key=date_key,
            total_topics=snapshot.total_topics,
            rising=len(snapshot.rising),
            falling=len(snapshot.falling),
            stable=len(snapshot.stable),
            narrative=snapshot.narrative is not None,
            forced=force_regen,
        )
        return snapshot

    def get_or_compute_snapshot(self, window_days: Any = None) -> PulseSnapshot:
        return self.compute_and_cache_snapshot(window_days, self.today())

    @staticmethod
    def _apply_insights(result: SignalsResult, insights: SignalInsights) -> None:
        result.narrative = insights.narrative
        by_key: Dict[str, Any] = {}
        for insight in insights.insights:
            by_key.setdefault(canonicalize(insight.topic), insight)
        for item in [*result.rising, *result.falling, *result.persistent]:
            insight = by_key.get(item.canonical) or by_key.get(canonicalize(item.topic))
            if insight is None:
                continue
            item.why = insight.why
            item.implication = insight.implication
            item.severity = insight.severity

    @timeit("pulse.signals.compute")
    def _compute_signals(self, window_days: int, date_key: str) -> SignalsResult:
        with compute_seconds.labels(kind="signals").time():
            index = self._build_index(date_key, window_days)
            result = SignalComparator(self.cfg.persistent_min_presence).compare(index, date_key, window_days)

        if result.meta.total_topics:
            request = signals_request(result, self._context(date_key, window_days))
            insights = safe_signal_insights(self.narrative, request)
            if insights is not None:
                self._apply_insights(result, insights)
        return result

    def get_signals(self, window_days: Any = None, date_key: Any = None) -> SignalsResult:
        window_days = parse_window_days(window_days)
        date_key = validate_date_key(date_key) if date_key is not None else self.today()
        doc_id = signals_doc_id(date_key, window_days)

        doc = self.store.get(SIGNALS_COLLECTION, doc_id)
        if doc:
            try:
                cached = SignalsResult.model_validate(doc)
            except ValidationError as ve:
                log_json(stage="pulse.signals.unreadable", doc_id=doc_id, error=str(ve)[:200], level="warning")
            else:
                cached.cached = True
                signals_requests_total.labels(window_days=str(window_days), result="hit").inc()
                log_json(stage="pulse.signals.cache_hit", doc_id=doc_id)
                return cached

        signals_requests_total.labels(window_days=str(window_days), result="miss").inc()
        result = self._compute_signals(window_days, date_key)
        self.store.set(SIGNALS_COLLECTION, doc_id, result.to_doc(exclude={"cached"}))
        log_json(
            stage="pulse.signals.saved",
            doc_id=doc_id,
            rising=len(result.rising),
            falling=len(result.falling),
            persistent=len(result.persistent),
            total_topics=result.meta.total_topics,
        )
        return result


_service: Optional[PulseService] = None


def get_pulse_service() -> PulseService:
    global _service
    if _service is None:
        from pulse.db.repositories.document_repo import DocumentStore

        _service = PulseService(DocumentStore.from_env())
    return _service


def compute_and_cache_snapshot(window_days: Any, date_key: Any, force_regen: bool = False) -> PulseSnapshot:
    return get_pulse_service().compute_and_cache_snapshot(window_days, date_key, force_regen=force_regen)


def get_or_compute_snapshot(window_days: Any = None) -> PulseSnapshot:
    return get_pulse_service().get_or_compute_snapshot(window_days)


def get_signals(window_days: Any = None, date_key: Any = None) -> SignalsResult:
    return get_pulse_service().get_signals(window_days, date_key)
