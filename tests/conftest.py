"""Shared fixtures: SQLite in-memory document store and brief builders"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import pulse.db.models.documents  # noqa: F401 register tables
from pulse.core.cache_keys import ARTICLES_COLLECTION, BRIEFS_COLLECTION
from pulse.core.config import PulseConfig
from pulse.database import get_sessionmaker
from pulse.db.repositories.document_repo import DocumentStore
from pulse.models import Base
from pulse.schemas.pulse import Narrative, SignalInsights
from pulse.services.narrative import NarrativeAdapter


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(sqlite_engine):
    return DocumentStore(get_sessionmaker(sqlite_engine))


@pytest.fixture
def cfg():
    return PulseConfig(narrative_backend="off", topic_types_path=None, topic_aliases_path=None)


@pytest.fixture
def put_brief(store):
    """Write briefs/{day}; sources are (sourceId, name) pairs"""

    def _put(day, topics, article_ids=(), sources=(), summary=""):
        store.set(
            BRIEFS_COLLECTION,
            day,
            {
                "topics": list(topics),
                "sourceArticleIds": list(article_ids),
                "sourcesUsed": [{"sourceId": sid, "name": name} for sid, name in sources],
                "executiveSummary": summary,
            },
        )

    return _put


@pytest.fixture
def put_article(store):
    def _put(article_id, title, published_at, source="Insurance Journal", url=None):
        store.set(
            ARTICLES_COLLECTION,
            article_id,
            {
                "title": title,
                "sourceName": source,
                "url": url or f"https://example.com/{article_id}",
                "publishedAt": published_at,
            },
        )

    return _put


def sample_narrative() -> Narrative:
    return Narrative(
        headline="Cyber liability pricing firms as ransomware claims climb",
        bullets=["Ransomware frequency up", "Carriers tighten wording", "Capacity stays selective"],
        themes=["cyber", "pricing"],
        drivers=[
            {"source": "Insurance Journal", "title": "Cyber claims rise", "url": "https://example.com/a"},
            {"source": "Carrier Management", "title": "Rate firming", "url": "https://example.com/b"},
            {"source": "Artemis", "title": "Cat bond issuance", "url": ""},
        ],
        sources_used=2,
    )


class StaticNarrative(NarrativeAdapter):
    def __init__(self):
        self.pulse_calls = 0
        self.signal_calls = 0

    def generate_pulse_narrative(self, request):
        self.pulse_calls += 1
        return sample_narrative()

    def generate_signal_insights(self, request):
        self.signal_calls += 1
        return SignalInsights(
            narrative="Cyber is heating up while auto cools.",
            insights=[
                {
                    "topic": "Cyber Liability",
                    "why": "Ransomware losses reported by three carriers",
                    "implication": "Expect tighter sublimits at renewal",
                    "severity": "high",
                }
            ],
        )


class FailingNarrative(NarrativeAdapter):
    def generate_pulse_narrative(self, request):
        raise RuntimeError("model unavailable")

    def generate_signal_insights(self, request):
        raise RuntimeError("model unavailable")


@pytest.fixture
def static_narrative():
    return StaticNarrative()


@pytest.fixture
def failing_narrative():
    return FailingNarrative()
