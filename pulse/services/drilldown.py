"""Topic drill-down: snapshot metrics plus the articles behind them"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from pulse.core.cache_keys import (
    ARTICLE_DRIVER_FIELDS,
    ARTICLES_COLLECTION,
    BRIEF_DRILLDOWN_FIELDS,
    BRIEFS_COLLECTION,
)
from pulse.core.config import PulseConfig, get_config
from pulse.core.errors import NotFoundError
from pulse.core.metrics_store import log_json, timeit
from pulse.schemas.pulse import BriefTopicRecord, TopicDetail, TopicDriver
from pulse.services.pulse_service import load_snapshot, normalize_topic_key, parse_window_days
from pulse.signals.canonical import TopicCanonicalizer
from pulse.signals.freshness import FreshnessGuard
from pulse.signals.window import date_range

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# larger numeric timestamps are epoch milliseconds
MILLIS_THRESHOLD = 1e11


def parse_published_at(value: Any) -> datetime:
    """ISO string, datetime, epoch seconds or milliseconds; anything else sorts as the epoch"""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        if abs(value) >= MILLIS_THRESHOLD:
            value = value / 1000
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return EPOCH
    else:
        return EPOCH
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class TopicDrilldownResolver:
    def __init__(
        self,
        store,
        cfg: Optional[PulseConfig] = None,
        canonicalizer: Optional[TopicCanonicalizer] = None,
    ):
        self.store = store
        self.cfg = cfg or get_config()
        self.canonicalizer = canonicalizer or TopicCanonicalizer.from_config(self.cfg)
        self.guard = FreshnessGuard(self.cfg.snapshot_max_age_hours)

    def _article_ids(self, key: str, dates: List[str]) -> List[str]:
        docs = self.store.get_many(BRIEFS_COLLECTION, dates, fields=BRIEF_DRILLDOWN_FIELDS)
        ids: List[str] = []
        for day in dates:
            if day not in docs:
                continue
            record = BriefTopicRecord.from_document(day, docs[day])
            if key in {self.canonicalizer.key(t) for t in record.raw_topics}:
                ids.extend(record.source_article_ids)
        return list(dict.fromkeys(ids))

    def _drivers(self, article_ids: List[str]) -> List[TopicDriver]:
        articles = self.store.get_many(ARTICLES_COLLECTION, article_ids, fields=ARTICLE_DRIVER_FIELDS)
        drivers: List[TopicDriver] = []
        for article_id in article_ids:
            art = articles.get(article_id)
            if not art or not art.get("title"):
                continue
            drivers.append(
                TopicDriver(
                    article_id=article_id,
                    source=str(art.get("sourceName") or ""),
                    title=str(art["title"]),
                    url=str(art.get("url") or ""),
                    published_at=parse_published_at(art.get("publishedAt")),
                )
            )
        drivers.sort(key=lambda d: d.article_id)
        drivers.sort(key=lambda d: d.published_at, reverse=True)
        return drivers[: self.cfg.max_drivers]

    @timeit("pulse.drilldown")
    def get_topic_detail(self, window_days: Any, topic_key: Any) -> TopicDetail:
        window_days = parse_window_days(window_days)
        key = normalize_topic_key(topic_key, self.canonicalizer)

        snapshot = load_snapshot(self.store, window_days)
        if snapshot is None:
            raise NotFoundError(f"No pulse snapshot for windowDays={window_days}")
        if self.guard.is_stale(snapshot):
            log_json(
                stage="pulse.drilldown.stale_snapshot",
                window_days=window_days,
                date_key=snapshot.date_key,
                generated_at=snapshot.generated_at.isoformat(),
                level="warning",
            )

        topic = snapshot.find_topic(key)
        if topic is None:
            raise NotFoundError(f"Topic {key!r} not in snapshot for windowDays={window_days}")

        article_ids = self._article_ids(key, date_range(snapshot.date_key, window_days))
        drivers = self._drivers(article_ids) if article_ids else []
        log_json(
            stage="pulse.drilldown.resolved",
            key=key,
            window_days=window_days,
            articles=len(article_ids),
            drivers=len(drivers),
        )
        return TopicDetail(**topic.model_dump(), drivers=drivers)
