"""Window aggregation over daily briefs.

Builds a per-topic index (day counts, day sources, display name, type) from
one brief per date. The index is read-only once built and is shared by the
signal and snapshot comparators.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from pulse.core.cache_keys import BRIEF_TOPIC_FIELDS, BRIEFS_COLLECTION
from pulse.core.metrics_store import log_json
from pulse.schemas.pulse import BriefTopicRecord, CanonicalTopic
from pulse.signals.canonical import DisplayNameTracker, TopicCanonicalizer


def date_range(end_date_key: str, count: int) -> List[str]:
    """`count` consecutive yyyy-mm-dd keys ending at end_date_key, oldest first"""
    end = date.fromisoformat(end_date_key)
    return [(end - timedelta(days=offset)).isoformat() for offset in range(count - 1, -1, -1)]


def window_dates(date_key: str, window_days: int):
    """(previous W dates, recent W dates), both oldest first"""
    span = date_range(date_key, 2 * window_days)
    return span[:window_days], span[window_days:]


@dataclass
class TopicStats:
    key: str
    display_name: str = ""
    type: str = "other"
    day_counts: Dict[str, int] = field(default_factory=dict)
    day_sources: Dict[str, Set[str]] = field(default_factory=dict)
    source_ids: Set[str] = field(default_factory=set)

    def as_canonical(self) -> CanonicalTopic:
        return CanonicalTopic(key=self.key, display_name=self.display_name, type=self.type)

    def count_in(self, dates: Iterable[str]) -> int:
        return sum(self.day_counts.get(d, 0) for d in dates)

    def days_present_in(self, dates: Iterable[str]) -> int:
        return sum(1 for d in dates if self.day_counts.get(d, 0) > 0)

    def sources_in(self, dates: Iterable[str]) -> Set[str]:
        out: Set[str] = set()
        for d in dates:
            out.update(self.day_sources.get(d, ()))
        return out

    def series(self, dates: Sequence[str]) -> List[int]:
        return [self.day_counts.get(d, 0) for d in dates]


@dataclass
class TopicIndex:
    dates: List[str]
    topics: Dict[str, TopicStats]
    briefs_available: int = 0

    def __len__(self) -> int:
        return len(self.topics)


class WindowAggregator:
    """Aggregates brief topic records into a TopicIndex"""

    def __init__(self, canonicalizer: Optional[TopicCanonicalizer] = None):
        self.canonicalizer = canonicalizer or TopicCanonicalizer()

    def aggregate(self, dates: Sequence[str], records: Mapping[str, BriefTopicRecord]) -> TopicIndex:
        """
        Pure aggregation. `dates` is oldest first; records are keyed by date
        and dates without a record contribute nothing.
        """
        topics: Dict[str, TopicStats] = {}
        names = DisplayNameTracker()
        available = 0

        # Newest first so display-name ties favour the most recent spelling
        for day in reversed(list(dates)):
            record = records.get(day)
            if record is None:
                continue
            available += 1
            sources = set(record.contributing_source_ids)
            seen: Set[str] = set()
            for raw in record.raw_topics:
                key = self.canonicalizer.key(raw)
                if not key:
                    continue
                names.observe(key, raw)
                if key in seen:
                    continue
                seen.add(key)

                stats = topics.get(key)
                if stats is None:
                    stats = topics[key] = TopicStats(key=key)
                stats.day_counts[day] = 1
                stats.day_sources.setdefault(day, set()).update(sources)
                stats.source_ids.update(sources)

        for key, stats in topics.items():
            stats.display_name = names.display_name(key)
            stats.type = self.canonicalizer.topic_type(key)

        return TopicIndex(dates=list(dates), topics=topics, briefs_available=available)

    def fetch_records(self, store, dates: Sequence[str]) -> Dict[str, BriefTopicRecord]:
        """Batched brief reads with topic-field projection; missing days are skipped"""
        docs = store.get_many(BRIEFS_COLLECTION, list(dates), fields=BRIEF_TOPIC_FIELDS)
        return {day: BriefTopicRecord.from_document(day, docs[day]) for day in dates if day in docs}

    def build(self, store, dates: Sequence[str]) -> TopicIndex:
        records = self.fetch_records(store, dates)
        index = self.aggregate(dates, records)
        log_json(
            stage="pulse.window.aggregated",
            dates=len(dates),
            first=dates[0] if dates else None,
            last=dates[-1] if dates else None,
            briefs=index.briefs_available,
            topics=len(index),
        )
        return index
