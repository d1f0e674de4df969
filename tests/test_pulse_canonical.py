"""Unit tests for topic canonicalization, aliasing, type tagging and display names"""

from pathlib import Path

import pytest

from pulse.signals.canonical import DisplayNameTracker, TopicCanonicalizer, canonicalize

CONFIGS = Path(__file__).resolve().parent.parent / "configs"


class TestCanonicalize:
    def test_lowercase_trim_collapse(self):
        assert canonicalize("  Cat   Losses \t") == "cat losses"
        assert canonicalize("CYBER\nLiability") == "cyber liability"

    @pytest.mark.parametrize("raw", [None, "", "   ", "\t\n"])
    def test_empty_means_no_topic(self, raw):
        assert canonicalize(raw) == ""

    def test_no_fuzzy_matching(self):
        assert canonicalize("Cat Loss") != canonicalize("Cat Losses")


class TestAliases:
    def test_alias_is_whole_key_single_hop(self):
        c = TopicCanonicalizer(aliases={"a": "b", "b": "c"})
        assert c.key("A") == "b"
        assert c.key("b") == "c"
        assert c.key("a b") == "a b"

    def test_alias_keys_and_targets_are_normalized(self):
        c = TopicCanonicalizer(aliases={" Cyber  Claims": "Cyber Liability "})
        assert c.key("cyber claims") == "cyber liability"

    def test_self_alias_ignored(self):
        c = TopicCanonicalizer(aliases={"cyber": "Cyber"})
        assert c.aliases == {}

    def test_shipped_alias_table(self):
        c = TopicCanonicalizer.from_files(aliases_path=str(CONFIGS / "topic_aliases.yml"))
        assert c.key("Catastrophe Losses") == "cat losses"
        assert c.key("cat bond") == "cat bonds"
        assert c.key("cat losses") == "cat losses"


class TestTopicType:
    @pytest.mark.parametrize(
        "key,expected",
        [
            ("hurricane losses", "peril"),
            ("commercial auto", "lob"),
            ("naic model law", "regulatory"),
            ("chubb earnings", "company"),
            ("inflation outlook", "other"),
        ],
    )
    def test_builtin_rules(self, key, expected):
        assert TopicCanonicalizer().topic_type(key) == expected

    def test_first_match_wins(self):
        c = TopicCanonicalizer(type_rules=[("flood", "peril"), ("flood insurance", "lob")])
        assert c.topic_type("flood insurance") == "peril"

    def test_yaml_rules_replace_builtin(self, tmp_path):
        path = tmp_path / "types.yml"
        path.write_text("rules:\n  - {match: inflation, type: regulatory}\n")
        c = TopicCanonicalizer.from_files(types_path=str(path))
        assert c.topic_type("inflation outlook") == "regulatory"
        assert c.topic_type("hurricane losses") == "other"

    def test_missing_yaml_uses_builtin(self, tmp_path):
        c = TopicCanonicalizer.from_files(types_path=str(tmp_path / "absent.yml"))
        assert c.topic_type("hurricane losses") == "peril"

    def test_shipped_type_table(self):
        c = TopicCanonicalizer.from_files(types_path=str(CONFIGS / "topic_types.yml"))
        assert c.topic_type("cyber liability") == "lob"
        assert c.topic_type("wildfire losses") == "peril"
        assert c.topic_type("swiss re renewals") == "company"


class TestDisplayName:
    def test_most_frequent_variant(self):
        t = DisplayNameTracker()
        for raw in ["cat losses", "Cat Losses", "Cat Losses"]:
            t.observe("cat losses", raw)
        assert t.display_name("cat losses") == "Cat Losses"

    def test_tie_goes_to_first_seen(self):
        t = DisplayNameTracker()
        t.observe("cyber", "CYBER")
        t.observe("cyber", "Cyber")
        assert t.display_name("cyber") == "CYBER"

    def test_unknown_key_falls_back_to_key(self):
        assert DisplayNameTracker().display_name("cyber") == "cyber"

    def test_spacing_variants_share_votes(self):
        t = DisplayNameTracker()
        t.observe("cyber liability", "CYBER LIABILITY")
        t.observe("cyber liability", "CYBER LIABILITY")
        for raw in ["Cyber  Liability", "Cyber Liability", "Cyber\tLiability"]:
            t.observe("cyber liability", raw)
        assert t.display_name("cyber liability") == "Cyber Liability"
