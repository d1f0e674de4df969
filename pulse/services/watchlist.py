"""Per-user watchlist, enriched with metrics from the current snapshot"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import ValidationError

from pulse.core.cache_keys import watchlist_collection
from pulse.core.config import PulseConfig, get_config
from pulse.core.errors import UnauthenticatedError
from pulse.core.metrics_store import log_json
from pulse.schemas.pulse import (
    ToggleResult,
    WatchlistEntry,
    WatchlistResponse,
    WatchlistTopic,
)
from pulse.services.pulse_service import load_snapshot, normalize_topic_key, parse_window_days
from pulse.signals.canonical import TopicCanonicalizer

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _require_uid(uid: Optional[str]) -> str:
    uid = (uid or "").strip()
    if not uid:
        raise UnauthenticatedError("Sign-in required")
    return uid


class WatchlistEnricher:
    def __init__(
        self,
        store,
        cfg: Optional[PulseConfig] = None,
        canonicalizer: Optional[TopicCanonicalizer] = None,
    ):
        self.store = store
        self.cfg = cfg or get_config()
        self.canonicalizer = canonicalizer or TopicCanonicalizer.from_config(self.cfg)

    def toggle_watchlist(self, uid: Optional[str], topic_key: Any, window_days: Any = None) -> ToggleResult:
        uid = _require_uid(uid)
        window_days = parse_window_days(window_days)
        key = normalize_topic_key(topic_key, self.canonicalizer)
        collection = watchlist_collection(uid)

        if self.store.delete(collection, key):
            log_json(stage="pulse.watchlist.removed", key=key)
            return ToggleResult(action="removed", key=key)

        snapshot = load_snapshot(self.store, window_days)
        topic = snapshot.find_topic(key) if snapshot else None
        entry = WatchlistEntry(
            key=key,
            display_name=topic.display_name if topic else key,
            type=topic.type if topic else "other",
            created_at=datetime.now(timezone.utc),
        )
        self.store.set(collection, key, entry.to_doc())
        log_json(stage="pulse.watchlist.added", key=key, in_snapshot=topic is not None)
        return ToggleResult(action="added", key=key)

    def _entries(self, uid: str) -> List[WatchlistEntry]:
        entries: List[WatchlistEntry] = []
        for doc_id, doc in self.store.list(watchlist_collection(uid)):
            try:
                entries.append(WatchlistEntry.model_validate({"key": doc_id, **doc}))
            except ValidationError as ve:
                # keep the entry; only its metadata is unusable
                log_json(stage="pulse.watchlist.unreadable", key=doc_id, error=str(ve)[:200], level="warning")
                entries.append(WatchlistEntry(key=doc_id, display_name=doc_id, created_at=EPOCH))
        entries.sort(key=lambda e: (e.created_at, e.key))
        return entries

    def get_watchlist(self, uid: Optional[str], window_days: Any = None) -> WatchlistResponse:
        uid = _require_uid(uid)
        window_days = parse_window_days(window_days)
        snapshot = load_snapshot(self.store, window_days)

        topics: List[WatchlistTopic] = []
        for entry in self._entries(uid):
            topic = snapshot.find_topic(entry.key) if snapshot else None
            if topic is None:
                topics.append(WatchlistTopic(**entry.model_dump(), has_metrics=False))
                continue
            topics.append(
                WatchlistTopic(
                    key=entry.key,
                    display_name=topic.display_name,
                    type=topic.type,
                    created_at=entry.created_at,
                    has_metrics=True,
                    mentions=topic.mentions,
                    baseline_mentions=topic.baseline_mentions,
                    momentum=topic.momentum,
                    days_present=topic.days_present,
                    unique_sources=topic.unique_sources,
                    trend_series=list(topic.trend_series),
                )
            )
        return WatchlistResponse(topics=topics, window_days=window_days, snapshot_available=snapshot is not None)
