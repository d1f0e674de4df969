"""Rising / falling / persistent classification over two adjacent windows"""

from typing import List

from pulse.schemas.pulse import SignalItem, SignalsMeta, SignalsResult
from pulse.signals.window import TopicIndex, TopicStats, window_dates


def intensity(recent_count: int, window_days: int, recent_sources: int) -> float:
    """Ranking-only score in [0, 100]; coverage weighted by source breadth"""
    coverage = min(1.0, recent_count / float(window_days))
    breadth = 0.8 + 0.2 * min(recent_sources, 10) / 10.0
    return round(100.0 * coverage * breadth, 1)


def _name_key(item: SignalItem):
    return (item.topic, item.canonical)


class SignalComparator:
    """
    Compares the recent W days ending at dateKey with the W days before.

    Every topic mentioned anywhere in the 2W span lands in exactly one
    bucket: delta > 0 rising, delta < 0 falling, delta == 0 persistent.
    Persistent items report `sustained` when present on more than
    `min_presence` of the 2W days.
    """

    def __init__(self, min_presence: float = 0.5):
        self.min_presence = min_presence

    def _item(self, stats: TopicStats, prev: List[str], recent: List[str], window_days: int) -> SignalItem:
        recent_count = stats.count_in(recent)
        prev_count = stats.count_in(prev)
        days_present = stats.days_present_in(prev) + stats.days_present_in(recent)
        delta = recent_count - prev_count
        return SignalItem(
            topic=stats.display_name,
            canonical=stats.key,
            recent_count=recent_count,
            prev_count=prev_count,
            delta=delta,
            intensity=intensity(recent_count, window_days, len(stats.sources_in(recent))),
            sparkline=[1 if c > 0 else 0 for c in stats.series(recent)],
            sustained=delta == 0 and days_present / float(2 * window_days) > self.min_presence,
        )

    def compare(self, index: TopicIndex, date_key: str, window_days: int) -> SignalsResult:
        prev, recent = window_dates(date_key, window_days)

        rising: List[SignalItem] = []
        falling: List[SignalItem] = []
        persistent: List[SignalItem] = []

        for stats in index.topics.values():
            item = self._item(stats, prev, recent, window_days)
            if item.recent_count == 0 and item.prev_count == 0:
                continue
            if item.delta > 0:
                rising.append(item)
            elif item.delta < 0:
                falling.append(item)
            else:
                persistent.append(item)

        rising.sort(key=lambda i: (-i.delta, *_name_key(i)))
        falling.sort(key=lambda i: (i.delta, *_name_key(i)))
        persistent.sort(key=lambda i: (-i.recent_count, *_name_key(i)))

        return SignalsResult(
            rising=rising,
            falling=falling,
            persistent=persistent,
            meta=SignalsMeta(
                date_key=date_key,
                window_days=window_days,
                recent_dates=recent,
                prev_dates=prev,
                total_topics=len(rising) + len(falling) + len(persistent),
                briefs_available=index.briefs_available,
            ),
        )
