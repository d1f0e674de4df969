"""Wire and persisted shapes for the pulse engine.

Field names are snake_case in Python and camelCase on the wire and in the
document store (`by_alias=True`).
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from pulse.core.errors import MalformedBriefError

TopicType = Literal["lob", "peril", "regulatory", "company", "other"]
TOPIC_TYPES = ("lob", "peril", "regulatory", "company", "other")

Severity = Literal["low", "medium", "high", "critical"]


class PulseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_doc(self, **kwargs) -> dict:
        """JSON-safe camelCase dict for persistence and responses"""
        return self.model_dump(mode="json", by_alias=True, **kwargs)


def _coerce_topic_type(v):
    return v if v in TOPIC_TYPES else "other"


def _as_utc(v: datetime) -> datetime:
    return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v


class BriefTopicRecord(PulseModel):
    """Topic-level view of one daily brief"""

    date: str
    raw_topics: List[str] = Field(default_factory=list)
    source_article_ids: List[str] = Field(default_factory=list)
    contributing_source_ids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @classmethod
    def from_document(cls, date_key: str, data: Optional[dict]) -> "BriefTopicRecord":
        """
        Normalize a `briefs/{dateKey}` document.

        Missing or null list fields become empty lists; `sourcesUsed` entries
        without a sourceId are skipped. Anything else that does not fit the
        expected shape raises MalformedBriefError.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise MalformedBriefError(date_key, "document is not an object")
        sources_used = data.get("sourcesUsed") or []
        if not isinstance(sources_used, list):
            raise MalformedBriefError(date_key, "sourcesUsed is not a list")

        contributing: List[str] = []
        for entry in sources_used:
            if isinstance(entry, dict) and entry.get("sourceId"):
                contributing.append(str(entry["sourceId"]))

        try:
            return cls(
                date=date_key,
                raw_topics=data.get("topics") or [],
                source_article_ids=data.get("sourceArticleIds") or [],
                contributing_source_ids=contributing,
            )
        except ValidationError as e:
            err = e.errors()[0]
            field = ".".join(str(p) for p in err.get("loc", ()))
            raise MalformedBriefError(date_key, f"{field}: {err.get('msg')}") from e

    @field_validator("raw_topics", "source_article_ids", mode="before")
    @classmethod
    def _strict_string_list(cls, v):
        if not isinstance(v, list):
            raise ValueError("expected a list")
        for item in v:
            if not isinstance(item, str):
                raise ValueError("expected a list of strings")
        return v


class CanonicalTopic(PulseModel):
    key: str
    display_name: str
    type: TopicType = "other"

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return _coerce_topic_type(v)


class SignalItem(PulseModel):
    topic: str
    canonical: str
    recent_count: int
    prev_count: int
    delta: int
    intensity: float
    sparkline: List[int]
    sustained: bool = False
    why: Optional[str] = None
    implication: Optional[str] = None
    severity: Optional[Severity] = None


class SignalsMeta(PulseModel):
    date_key: str
    window_days: int
    recent_dates: List[str]
    prev_dates: List[str]
    total_topics: int
    briefs_available: int


class SignalsResult(PulseModel):
    narrative: str = ""
    rising: List[SignalItem] = Field(default_factory=list)
    falling: List[SignalItem] = Field(default_factory=list)
    persistent: List[SignalItem] = Field(default_factory=list)
    meta: SignalsMeta
    cached: bool = False


class PulseTopic(PulseModel):
    key: str
    display_name: str
    type: TopicType = "other"
    mentions: int
    baseline_mentions: int
    momentum: int
    days_present: int
    unique_sources: int
    trend_series: List[int]

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return _coerce_topic_type(v)


class NarrativeDriver(PulseModel):
    source: str
    title: str
    url: str = ""

    @field_validator("url", mode="before")
    @classmethod
    def _empty_url(cls, v):
        return v or ""


class Narrative(PulseModel):
    """Structured market narrative; list sizes are bounded"""

    headline: str = Field(..., min_length=1, max_length=240)
    bullets: List[str] = Field(..., min_length=3, max_length=5)
    themes: List[str] = Field(..., min_length=2, max_length=4)
    drivers: List[NarrativeDriver] = Field(..., min_length=3, max_length=6)
    sources_used: int = 0

    @field_validator("bullets", mode="before")
    @classmethod
    def _cap_bullets(cls, v):
        return v[:5] if isinstance(v, list) else v

    @field_validator("themes", mode="before")
    @classmethod
    def _cap_themes(cls, v):
        return v[:4] if isinstance(v, list) else v

    @field_validator("drivers", mode="before")
    @classmethod
    def _cap_drivers(cls, v):
        return v[:6] if isinstance(v, list) else v


class SignalInsight(PulseModel):
    topic: str
    why: str
    implication: str
    severity: Severity


class SignalInsights(PulseModel):
    narrative: str = ""
    insights: List[SignalInsight] = Field(default_factory=list)


class PulseSnapshot(PulseModel):
    window_days: int
    date_key: str
    generated_at: datetime
    total_topics: int
    rising: List[PulseTopic] = Field(default_factory=list)
    falling: List[PulseTopic] = Field(default_factory=list)
    stable: List[PulseTopic] = Field(default_factory=list)
    narrative: Optional[Narrative] = None

    @field_validator("generated_at")
    @classmethod
    def _generated_utc(cls, v):
        return _as_utc(v)

    def all_topics(self) -> List[PulseTopic]:
        return [*self.rising, *self.falling, *self.stable]

    def find_topic(self, key: str) -> Optional[PulseTopic]:
        for topic in self.all_topics():
            if topic.key == key:
                return topic
        return None


class TopicDriver(PulseModel):
    article_id: str
    source: str
    title: str
    url: str
    published_at: datetime


class TopicDetail(PulseTopic):
    drivers: List[TopicDriver] = Field(default_factory=list)


class WatchlistEntry(PulseModel):
    key: str
    display_name: str
    type: TopicType = "other"
    created_at: datetime

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return _coerce_topic_type(v)

    @field_validator("created_at")
    @classmethod
    def _created_utc(cls, v):
        return _as_utc(v)


class WatchlistTopic(WatchlistEntry):
    has_metrics: bool = False
    mentions: Optional[int] = None
    baseline_mentions: Optional[int] = None
    momentum: Optional[int] = None
    days_present: Optional[int] = None
    unique_sources: Optional[int] = None
    trend_series: Optional[List[int]] = None


class WatchlistResponse(PulseModel):
    topics: List[WatchlistTopic] = Field(default_factory=list)
    window_days: int
    snapshot_available: bool = False


class ToggleResult(PulseModel):
    action: Literal["added", "removed"]
    key: str
