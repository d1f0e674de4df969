"""
AI narrative for snapshots and signals.

The LLM backend asks an OpenAI chat model for strict JSON, walks a primary
model plus fallbacks with bounded retries, and validates the reply with
pydantic. Narrative is optional output: callers go through
`safe_pulse_narrative` / `safe_signal_insights`, which log failures and
return None.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI
from pydantic import ValidationError

from pulse.core.cache_keys import BRIEF_CONTEXT_FIELDS, BRIEFS_COLLECTION
from pulse.core.config import PulseConfig, get_config
from pulse.core.metrics import narrative_total
from pulse.core.metrics_store import log_json, timeit
from pulse.schemas.pulse import Narrative, PulseSnapshot, SignalInsights, SignalsResult
from pulse.signals.window import date_range

HEADLINE_MAXLEN = 120
CONTEXT_MAX_DAYS = 7
SUMMARY_MAXLEN = 600

SNAPSHOT_TOP = {"rising": 8, "falling": 5, "stable": 5}
SIGNALS_TOP = {"rising": 10, "falling": 5, "persistent": 5}


class NarrativeError(Exception):
    """The model reply could not be turned into a valid narrative"""


@dataclass
class BriefContext:
    date: str
    executive_summary: str = ""
    topics: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)


@dataclass
class NarrativeRequest:
    date_key: str
    window_days: int
    buckets: Dict[str, List[Dict[str, Any]]]
    context: List[BriefContext] = field(default_factory=list)

    @property
    def sources_used(self) -> int:
        names = set()
        for brief in self.context:
            names.update(brief.sources)
        return len(names)

    def is_empty(self) -> bool:
        return not any(self.buckets.values())


def load_brief_context(store, date_key: str, window_days: int) -> List[BriefContext]:
    """Briefs for the last min(W, 7) days ending at date_key, newest first"""
    dates = date_range(date_key, min(window_days, CONTEXT_MAX_DAYS))
    docs = store.get_many(BRIEFS_COLLECTION, dates, fields=BRIEF_CONTEXT_FIELDS)
    out: List[BriefContext] = []
    for day in reversed(dates):
        doc = docs.get(day)
        if not doc:
            continue
        sources = []
        for entry in doc.get("sourcesUsed") or []:
            if isinstance(entry, dict):
                name = entry.get("name") or entry.get("sourceId")
                if name:
                    sources.append(str(name))
        topics = doc.get("topics") or []
        out.append(
            BriefContext(
                date=day,
                executive_summary=str(doc.get("executiveSummary") or "")[:SUMMARY_MAXLEN],
                topics=[t for t in topics if isinstance(t, str)] if isinstance(topics, list) else [],
                sources=sources,
            )
        )
    return out


def snapshot_request(snapshot: PulseSnapshot, context: List[BriefContext]) -> NarrativeRequest:
    buckets = {}
    for name, limit in SNAPSHOT_TOP.items():
        buckets[name] = [
            {
                "topic": t.display_name,
                "type": t.type,
                "mentions": t.mentions,
                "baseline": t.baseline_mentions,
                "momentum": t.momentum,
            }
            for t in getattr(snapshot, name)[:limit]
        ]
    return NarrativeRequest(snapshot.date_key, snapshot.window_days, buckets, context)


def signals_request(result: SignalsResult, context: List[BriefContext]) -> NarrativeRequest:
    buckets = {}
    for name, limit in SIGNALS_TOP.items():
        buckets[name] = [
            {
                "topic": s.topic,
                "canonical": s.canonical,
                "recent": s.recent_count,
                "previous": s.prev_count,
                "delta": s.delta,
            }
            for s in getattr(result, name)[:limit]
        ]
    return NarrativeRequest(result.meta.date_key, result.meta.window_days, buckets, context)


def _render_user_prompt(request: NarrativeRequest) -> str:
    lines = [f"DATE: {request.date_key}", f"WINDOW_DAYS: {request.window_days}", "TOPICS:"]
    lines.append(json.dumps(request.buckets, ensure_ascii=False))
    lines.append("RECENT BRIEFS:")
    for brief in request.context:
        lines.append(
            json.dumps(
                {
                    "date": brief.date,
                    "summary": brief.executive_summary,
                    "topics": brief.topics,
                    "sources": sorted(set(brief.sources)),
                },
                ensure_ascii=False,
            )
        )
    return "\n".join(lines)


class NarrativeAdapter:
    def generate_pulse_narrative(self, request: NarrativeRequest) -> Optional[Narrative]:
        raise NotImplementedError

    def generate_signal_insights(self, request: NarrativeRequest) -> Optional[SignalInsights]:
        raise NotImplementedError


class DisabledNarrativeAdapter(NarrativeAdapter):
    """PULSE_NARRATIVE_BACKEND=off: never calls out"""

    def generate_pulse_narrative(self, request: NarrativeRequest) -> Optional[Narrative]:
        return None

    def generate_signal_insights(self, request: NarrativeRequest) -> Optional[SignalInsights]:
        return None


PULSE_SYSTEM_PROMPT = (
    "You are an insurance market analyst. "
    "Return STRICT JSON with keys: headline, bullets, themes, drivers. "
    f"headline <= {HEADLINE_MAXLEN} chars; bullets 3-5 items; themes 2-4 items; "
    "drivers 3-6 items, each {source, title, url} taken from the briefs. "
    "No extra keys, no explanations."
)

SIGNALS_SYSTEM_PROMPT = (
    "You are an insurance market analyst. "
    "Return STRICT JSON with keys: narrative, insights. "
    "narrative is 2-4 sentences on what is rising and fading. "
    "insights is a list of {topic, why, implication, severity} for the listed topics; "
    "severity is one of low, medium, high, critical. "
    "No extra keys, no explanations."
)


class LLMNarrativeAdapter(NarrativeAdapter):
    def __init__(self, cfg: Optional[PulseConfig] = None, client: Optional[OpenAI] = None):
        self.cfg = cfg or get_config()
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            # Reads OPENAI_API_KEY
            self._client = OpenAI(timeout=self.cfg.narrative_timeout_ms / 1000.0, max_retries=0)
        return self._client

    def _candidates(self) -> List[str]:
        models: Sequence[str] = [self.cfg.narrative_model, *self.cfg.narrative_fallback_models]
        return list(dict.fromkeys(m for m in models if m))

    def _build_kwargs(self, model: str, messages) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        # gpt-5* only accepts the default temperature
        if not model.startswith("gpt-5"):
            kwargs["temperature"] = 0.3
        return kwargs

    def _complete(self, kind: str, system: str, user: str) -> Dict[str, Any]:
        """First parseable JSON object across candidate models; raises when every attempt fails"""
        messages = [{"role": "system", "content": system}, {"role": "user", "content": user}]
        max_retries = max(0, self.cfg.narrative_max_retries)
        last_exc: Optional[Exception] = None
        t0 = time.time()

        for model in self._candidates():
            for attempt in range(max_retries + 1):
                try:
                    resp = self.client.chat.completions.create(**self._build_kwargs(model, messages))
                    data = json.loads(resp.choices[0].message.content or "")
                    if not isinstance(data, dict):
                        raise NarrativeError("reply is not a JSON object")
                    log_json(
                        stage="pulse.narrative.success",
                        kind=kind,
                        model=model,
                        attempt=attempt,
                        latency_ms=int((time.time() - t0) * 1000),
                    )
                    return data
                except Exception as e:
                    last_exc = e
                    if attempt < max_retries:
                        time.sleep(0.05 * (2 ** attempt))
                    else:
                        log_json(
                            stage="pulse.narrative.model_failed",
                            kind=kind,
                            model=model,
                            error=f"{type(e).__name__}: {str(e)[:200]}",
                            level="warning",
                        )
        raise NarrativeError(f"all models failed: {last_exc}")

    @timeit("pulse.narrative.snapshot", backend="llm")
    def generate_pulse_narrative(self, request: NarrativeRequest) -> Optional[Narrative]:
        data = self._complete("snapshot", PULSE_SYSTEM_PROMPT, _render_user_prompt(request))
        if isinstance(data.get("headline"), str):
            data["headline"] = data["headline"][:HEADLINE_MAXLEN].rstrip()
        data["sourcesUsed"] = request.sources_used
        try:
            return Narrative.model_validate(data)
        except ValidationError as ve:
            log_json(stage="pulse.narrative.reject", kind="snapshot", reason="schema", error=str(ve)[:200])
            raise NarrativeError("narrative failed validation") from ve

    @timeit("pulse.narrative.signals", backend="llm")
    def generate_signal_insights(self, request: NarrativeRequest) -> Optional[SignalInsights]:
        data = self._complete("signals", SIGNALS_SYSTEM_PROMPT, _render_user_prompt(request))
        try:
            return SignalInsights.model_validate(data)
        except ValidationError as ve:
            log_json(stage="pulse.narrative.reject", kind="signals", reason="schema", error=str(ve)[:200])
            raise NarrativeError("insights failed validation") from ve


def get_narrative_adapter(cfg: Optional[PulseConfig] = None) -> NarrativeAdapter:
    cfg = cfg or get_config()
    if cfg.narrative_backend == "off":
        return DisabledNarrativeAdapter()
    return LLMNarrativeAdapter(cfg)


def safe_pulse_narrative(adapter: NarrativeAdapter, request: NarrativeRequest) -> Optional[Narrative]:
    """Narrative or None; never raises"""
    if request.is_empty():
        narrative_total.labels(kind="snapshot", result="skipped").inc()
        return None
    try:
        out = adapter.generate_pulse_narrative(request)
    except Exception as e:
        narrative_total.labels(kind="snapshot", result="error").inc()
        log_json(
            stage="pulse.narrative.error",
            kind="snapshot",
            date_key=request.date_key,
            window_days=request.window_days,
            error=f"{type(e).__name__}: {str(e)[:200]}",
            level="error",
        )
        return None
    narrative_total.labels(kind="snapshot", result="ok" if out is not None else "skipped").inc()
    return out


def safe_signal_insights(adapter: NarrativeAdapter, request: NarrativeRequest) -> Optional[SignalInsights]:
    if request.is_empty():
        narrative_total.labels(kind="signals", result="skipped").inc()
        return None
    try:
        out = adapter.generate_signal_insights(request)
    except Exception as e:
        narrative_total.labels(kind="signals", result="error").inc()
        log_json(
            stage="pulse.narrative.error",
            kind="signals",
            date_key=request.date_key,
            window_days=request.window_days,
            error=f"{type(e).__name__}: {str(e)[:200]}",
            level="error",
        )
        return None
    narrative_total.labels(kind="signals", result="ok" if out is not None else "skipped").inc()
    return out
