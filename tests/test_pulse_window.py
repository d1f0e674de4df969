"""Window aggregation and brief loading"""

import pytest

from pulse.core.cache_keys import BRIEFS_COLLECTION
from pulse.core.errors import MalformedBriefError
from pulse.core.metrics import PROM_REGISTRY
from pulse.db.repositories.document_repo import chunked
from pulse.schemas.pulse import BriefTopicRecord
from pulse.signals.canonical import TopicCanonicalizer
from pulse.signals.window import WindowAggregator, date_range, window_dates


def rec(day, topics, sources=()):
    return BriefTopicRecord(date=day, raw_topics=list(topics), contributing_source_ids=list(sources))


class TestDateRange:
    def test_oldest_first_inclusive(self):
        assert date_range("2025-03-02", 3) == ["2025-02-28", "2025-03-01", "2025-03-02"]

    def test_single_day(self):
        assert date_range("2024-02-29", 1) == ["2024-02-29"]

    def test_window_dates_are_adjacent(self):
        prev, recent = window_dates("2025-03-14", 7)
        assert prev == date_range("2025-03-07", 7)
        assert recent == date_range("2025-03-14", 7)


class TestAggregate:
    def test_topic_counts_once_per_record(self):
        days = ["2025-03-01"]
        index = WindowAggregator().aggregate(days, {"2025-03-01": rec("2025-03-01", ["Cyber", "cyber", " CYBER "])})
        assert index.topics["cyber"].day_counts == {"2025-03-01": 1}

    def test_empty_topics_skipped(self):
        index = WindowAggregator().aggregate(["2025-03-01"], {"2025-03-01": rec("2025-03-01", ["", "  "])})
        assert len(index) == 0
        assert index.briefs_available == 1

    def test_missing_days_contribute_nothing(self):
        days = date_range("2025-03-03", 3)
        index = WindowAggregator().aggregate(days, {"2025-03-02": rec("2025-03-02", ["cyber"])})
        assert index.briefs_available == 1
        assert index.topics["cyber"].series(days) == [0, 1, 0]

    def test_display_name_tie_prefers_newest_day(self):
        days = ["2025-03-01", "2025-03-02"]
        records = {
            "2025-03-01": rec("2025-03-01", ["Cat Losses"]),
            "2025-03-02": rec("2025-03-02", ["cat losses"]),
        }
        index = WindowAggregator().aggregate(days, records)
        assert index.topics["cat losses"].display_name == "cat losses"

    def test_sources_tracked_per_day(self):
        days = ["2025-03-01", "2025-03-02"]
        records = {
            "2025-03-01": rec("2025-03-01", ["cyber"], ["s1", "s2"]),
            "2025-03-02": rec("2025-03-02", ["cyber", "auto"], ["s3"]),
        }
        stats = WindowAggregator().aggregate(days, records).topics["cyber"]
        assert stats.source_ids == {"s1", "s2", "s3"}
        assert stats.sources_in(["2025-03-02"]) == {"s3"}

    def test_aliases_merge_keys(self):
        agg = WindowAggregator(TopicCanonicalizer(aliases={"cat loss": "cat losses"}))
        days = ["2025-03-01", "2025-03-02"]
        records = {
            "2025-03-01": rec("2025-03-01", ["Cat Loss"]),
            "2025-03-02": rec("2025-03-02", ["Cat Losses"]),
        }
        index = agg.aggregate(days, records)
        assert list(index.topics) == ["cat losses"]
        assert index.topics["cat losses"].count_in(days) == 2

    def test_type_assigned(self):
        index = WindowAggregator().aggregate(["2025-03-01"], {"2025-03-01": rec("2025-03-01", ["Hurricane Losses"])})
        assert index.topics["hurricane losses"].type == "peril"

    def test_canonical_identity(self):
        index = WindowAggregator().aggregate(["2025-03-01"], {"2025-03-01": rec("2025-03-01", ["Hurricane Losses"])})
        ident = index.topics["hurricane losses"].as_canonical()
        assert ident.to_doc() == {"key": "hurricane losses", "displayName": "Hurricane Losses", "type": "peril"}


class TestBriefRecord:
    def test_missing_lists_become_empty(self):
        r = BriefTopicRecord.from_document("2025-03-01", {"topics": None})
        assert r.raw_topics == []
        assert r.source_article_ids == []
        assert r.contributing_source_ids == []

    def test_sources_without_id_skipped(self):
        r = BriefTopicRecord.from_document(
            "2025-03-01",
            {"topics": ["cyber"], "sourcesUsed": [{"sourceId": "s1", "name": "A"}, {"name": "B"}, "junk"]},
        )
        assert r.contributing_source_ids == ["s1"]

    @pytest.mark.parametrize(
        "doc",
        [
            {"topics": "cyber"},
            {"topics": ["cyber", 3]},
            {"topics": [], "sourceArticleIds": "a1"},
            {"topics": [], "sourcesUsed": {"sourceId": "s1"}},
        ],
    )
    def test_malformed_brief_raises(self, doc):
        with pytest.raises(MalformedBriefError) as exc:
            BriefTopicRecord.from_document("2025-03-01", doc)
        assert exc.value.date_key == "2025-03-01"


class TestBatchedReads:
    def test_chunked_respects_limit(self):
        batches = list(chunked([str(i) for i in range(65)]))
        assert [len(b) for b in batches] == [30, 30, 5]

    def test_get_many_batches_and_dedupes(self, store, put_brief):
        days = date_range("2025-03-14", 45)
        for day in days:
            put_brief(day, ["cyber"])

        before = PROM_REGISTRY.get_sample_value("pulse_store_batch_reads_total", {"collection": "briefs"}) or 0.0
        docs = store.get_many(BRIEFS_COLLECTION, days + days[:5], fields=("topics",))
        after = PROM_REGISTRY.get_sample_value("pulse_store_batch_reads_total", {"collection": "briefs"})

        assert len(docs) == 45
        assert after - before == 2
        assert docs[days[0]] == {"topics": ["cyber"]}

    def test_build_reads_only_existing_days(self, store, put_brief):
        put_brief("2025-03-13", ["Cyber"], sources=[("s1", "Insurance Journal")])
        put_brief("2025-03-14", ["cyber", "Auto"])
        index = WindowAggregator().build(store, date_range("2025-03-14", 4))
        assert index.briefs_available == 2
        assert index.topics["cyber"].count_in(index.dates) == 2
        assert index.topics["cyber"].source_ids == {"s1"}
