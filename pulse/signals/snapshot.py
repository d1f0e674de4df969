"""Momentum classification into rising / falling / stable buckets"""

from datetime import datetime, timezone
from typing import List, Optional

from pulse.schemas.pulse import PulseSnapshot, PulseTopic
from pulse.signals.window import TopicIndex, window_dates


def _bucket_order(topic: PulseTopic):
    return (-abs(topic.momentum), -topic.mentions, topic.display_name, topic.key)


class SnapshotComparator:
    """
    Builds a PulseSnapshot from a TopicIndex spanning 2W days.

    mentions / daysPresent / uniqueSources / trendSeries describe the current
    W days; baselineMentions the W days before. Topics mentioned in neither
    window are omitted.
    """

    def compare(
        self,
        index: TopicIndex,
        date_key: str,
        window_days: int,
        generated_at: Optional[datetime] = None,
    ) -> PulseSnapshot:
        prev, recent = window_dates(date_key, window_days)

        rising: List[PulseTopic] = []
        falling: List[PulseTopic] = []
        stable: List[PulseTopic] = []

        for stats in index.topics.values():
            mentions = stats.count_in(recent)
            baseline = stats.count_in(prev)
            if mentions == 0 and baseline == 0:
                continue
            ident = stats.as_canonical()
            topic = PulseTopic(
                key=ident.key,
                display_name=ident.display_name,
                type=ident.type,
                mentions=mentions,
                baseline_mentions=baseline,
                momentum=mentions - baseline,
                days_present=stats.days_present_in(recent),
                unique_sources=len(stats.sources_in(recent)),
                trend_series=stats.series(recent),
            )
            if topic.momentum > 0:
                rising.append(topic)
            elif topic.momentum < 0:
                falling.append(topic)
            else:
                stable.append(topic)

        for bucket in (rising, falling, stable):
            bucket.sort(key=_bucket_order)

        return PulseSnapshot(
            window_days=window_days,
            date_key=date_key,
            generated_at=generated_at or datetime.now(timezone.utc),
            total_topics=len(rising) + len(falling) + len(stable),
            rising=rising,
            falling=falling,
            stable=stable,
        )
