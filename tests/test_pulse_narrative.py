"""Narrative adapter: OpenAI JSON mode, fallbacks, validation and degrade-to-None"""

import json
from unittest.mock import MagicMock

import pytest

from pulse.core.config import PulseConfig
from pulse.services.narrative import (
    BriefContext,
    DisabledNarrativeAdapter,
    LLMNarrativeAdapter,
    NarrativeError,
    NarrativeRequest,
    get_narrative_adapter,
    load_brief_context,
    safe_pulse_narrative,
    safe_signal_insights,
)


def _reply(payload):
    resp = MagicMock()
    resp.choices = [MagicMock()]
    resp.choices[0].message.content = json.dumps(payload) if not isinstance(payload, str) else payload
    return resp


def _client(*replies):
    client = MagicMock()
    client.chat.completions.create.side_effect = list(replies)
    return client


def _cfg(**kw):
    base = dict(narrative_model="gpt-4o-mini", narrative_fallback_models=("gpt-4o",), narrative_max_retries=0)
    base.update(kw)
    return PulseConfig(**base)


def _request(**kw):
    buckets = kw.pop("buckets", {"rising": [{"topic": "Cyber", "momentum": 3}], "falling": [], "stable": []})
    context = kw.pop(
        "context",
        [
            BriefContext(date="2025-03-14", executive_summary="Cyber up", topics=["Cyber"], sources=["IJ", "AM Best"]),
            BriefContext(date="2025-03-13", executive_summary="", topics=[], sources=["IJ"]),
        ],
    )
    return NarrativeRequest(date_key="2025-03-14", window_days=7, buckets=buckets, context=context)


GOOD = {
    "headline": "H" * 200,
    "bullets": ["b1", "b2", "b3", "b4", "b5", "b6"],
    "themes": ["t1", "t2"],
    "drivers": [
        {"source": "IJ", "title": "one", "url": "https://x/1"},
        {"source": "IJ", "title": "two", "url": None},
        {"source": "AM Best", "title": "three", "url": "https://x/3"},
    ],
}


class TestLLMNarrativeAdapter:
    def test_valid_reply_is_normalized(self):
        client = _client(_reply(GOOD))
        narrative = LLMNarrativeAdapter(_cfg(), client=client).generate_pulse_narrative(_request())

        assert len(narrative.headline) == 120
        assert narrative.bullets == ["b1", "b2", "b3", "b4", "b5"]
        assert narrative.drivers[1].url == ""
        assert narrative.sources_used == 2

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_falls_back_to_next_model(self):
        client = _client(RuntimeError("rate limited"), _reply(GOOD))
        narrative = LLMNarrativeAdapter(_cfg(), client=client).generate_pulse_narrative(_request())
        assert narrative is not None
        models = [c.kwargs["model"] for c in client.chat.completions.create.call_args_list]
        assert models == ["gpt-4o-mini", "gpt-4o"]

    def test_retries_within_model(self, monkeypatch):
        monkeypatch.setattr("pulse.services.narrative.time.sleep", lambda s: None)
        client = _client(_reply("not json"), _reply(GOOD))
        adapter = LLMNarrativeAdapter(_cfg(narrative_max_retries=1, narrative_fallback_models=()), client=client)
        assert adapter.generate_pulse_narrative(_request()) is not None
        assert client.chat.completions.create.call_count == 2

    def test_all_models_fail(self):
        client = _client(RuntimeError("down"), RuntimeError("down"))
        with pytest.raises(NarrativeError):
            LLMNarrativeAdapter(_cfg(), client=client).generate_pulse_narrative(_request())

    def test_too_few_bullets_is_malformed(self):
        bad = dict(GOOD, bullets=["only one"])
        with pytest.raises(NarrativeError):
            LLMNarrativeAdapter(_cfg(), client=_client(_reply(bad))).generate_pulse_narrative(_request())

    def test_signal_insights(self):
        payload = {
            "narrative": "Cyber rising.",
            "insights": [{"topic": "Cyber", "why": "w", "implication": "i", "severity": "medium"}],
        }
        insights = LLMNarrativeAdapter(_cfg(), client=_client(_reply(payload))).generate_signal_insights(_request())
        assert insights.narrative == "Cyber rising."
        assert insights.insights[0].severity == "medium"

    def test_gpt5_models_skip_temperature(self):
        client = _client(_reply(GOOD))
        LLMNarrativeAdapter(_cfg(narrative_model="gpt-5-mini"), client=client).generate_pulse_narrative(_request())
        assert "temperature" not in client.chat.completions.create.call_args.kwargs


class TestSafeCalls:
    def test_failure_collapses_to_none(self):
        adapter = LLMNarrativeAdapter(_cfg(), client=_client(RuntimeError("x"), RuntimeError("y")))
        assert safe_pulse_narrative(adapter, _request()) is None

    def test_empty_request_skips_adapter(self):
        adapter = MagicMock()
        empty = _request(buckets={"rising": [], "falling": [], "stable": []})
        assert safe_pulse_narrative(adapter, empty) is None
        assert safe_signal_insights(adapter, empty) is None
        adapter.generate_pulse_narrative.assert_not_called()
        adapter.generate_signal_insights.assert_not_called()

    def test_disabled_backend(self):
        adapter = get_narrative_adapter(PulseConfig(narrative_backend="off"))
        assert isinstance(adapter, DisabledNarrativeAdapter)
        assert safe_pulse_narrative(adapter, _request()) is None


class TestBriefContext:
    def test_context_covers_at_most_seven_days(self, store, put_brief):
        for day in ["2025-03-01", "2025-03-07", "2025-03-08", "2025-03-14"]:
            put_brief(day, ["cyber"], sources=[("s1", "Insurance Journal")], summary=f"summary {day}")
        context = load_brief_context(store, "2025-03-14", 30)
        assert [c.date for c in context] == ["2025-03-14", "2025-03-08"]
        assert context[0].sources == ["Insurance Journal"]
        assert context[0].executive_summary == "summary 2025-03-14"

    def test_short_window_limits_context(self, store, put_brief):
        put_brief("2025-03-13", ["cyber"])
        put_brief("2025-03-14", ["cyber"])
        assert [c.date for c in load_brief_context(store, "2025-03-14", 1)] == ["2025-03-14"]

    def test_sources_used_counts_distinct_names(self):
        assert _request().sources_used == 2
