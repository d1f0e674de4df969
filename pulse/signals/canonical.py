"""Topic key normalization, alias resolution, type tagging and display names"""

import os
import re
from typing import Dict, List, Optional, Tuple

import yaml

from pulse.core.metrics_store import log_json

_WS = re.compile(r"\s+")

# Ordered (substring, type) rules; first hit on the key wins
DEFAULT_TYPE_RULES: List[Tuple[str, str]] = [
    ("regulat", "regulatory"),
    ("legislat", "regulatory"),
    ("naic", "regulatory"),
    ("commissioner", "regulatory"),
    ("compliance", "regulatory"),
    ("nuclear verdict", "regulatory"),
    ("litigation", "regulatory"),
    ("solvency", "regulatory"),
    ("rate filing", "regulatory"),
    ("hurricane", "peril"),
    ("wildfire", "peril"),
    ("flood", "peril"),
    ("tornado", "peril"),
    ("hail", "peril"),
    ("earthquake", "peril"),
    ("winter storm", "peril"),
    ("catastrophe", "peril"),
    ("cat losses", "peril"),
    ("ransomware", "peril"),
    ("state farm", "company"),
    ("allstate", "company"),
    ("progressive", "company"),
    ("travelers", "company"),
    ("chubb", "company"),
    ("swiss re", "company"),
    ("munich re", "company"),
    ("lloyd", "company"),
    ("commercial auto", "lob"),
    ("homeowners", "lob"),
    ("cyber", "lob"),
    ("workers comp", "lob"),
    ("reinsurance", "lob"),
    ("e&s", "lob"),
    ("auto", "lob"),
    ("property", "lob"),
    ("liability", "lob"),
    ("casualty", "lob"),
    ("specialty", "lob"),
]


def canonicalize(raw: Optional[str]) -> str:
    """Lowercase, trim, collapse runs of whitespace. Empty string means no topic."""
    if not raw:
        return ""
    return _WS.sub(" ", raw.strip().lower())


def _load_yaml(path: Optional[str]) -> Optional[dict]:
    if not path or not os.path.exists(path):
        return None
    with open(path) as f:
        return yaml.safe_load(f) or {}


class TopicCanonicalizer:
    """
    Maps raw topic strings to canonical keys.

    Aliases are a whole-key, single-hop table (`aliases:` mapping in YAML);
    an alias target is itself normalized but never looked up again.
    Type rules come from `rules:` in YAML (list of {match, type}) or the
    built-in table when the file is missing.
    """

    def __init__(
        self,
        aliases: Optional[Dict[str, str]] = None,
        type_rules: Optional[List[Tuple[str, str]]] = None,
    ):
        self.aliases: Dict[str, str] = {}
        for src, dst in (aliases or {}).items():
            k, v = canonicalize(src), canonicalize(dst)
            if k and v and k != v:
                self.aliases[k] = v
        self.type_rules: List[Tuple[str, str]] = [
            (canonicalize(m), t) for m, t in (type_rules if type_rules is not None else DEFAULT_TYPE_RULES)
        ]

    @classmethod
    def from_files(
        cls, aliases_path: Optional[str] = None, types_path: Optional[str] = None
    ) -> "TopicCanonicalizer":
        aliases = None
        rules = None

        data = _load_yaml(aliases_path)
        if data is not None:
            aliases = {str(k): str(v) for k, v in (data.get("aliases") or {}).items()}

        data = _load_yaml(types_path)
        if data is not None:
            rules = []
            for entry in data.get("rules") or []:
                if isinstance(entry, dict) and entry.get("match") and entry.get("type"):
                    rules.append((str(entry["match"]), str(entry["type"])))

        log_json(
            stage="pulse.canonical.loaded",
            aliases=len(aliases or {}),
            type_rules=len(rules) if rules is not None else "builtin",
        )
        return cls(aliases=aliases, type_rules=rules)

    @classmethod
    def from_config(cls, cfg) -> "TopicCanonicalizer":
        return cls.from_files(cfg.topic_aliases_path, cfg.topic_types_path)

    def key(self, raw: Optional[str]) -> str:
        k = canonicalize(raw)
        return self.aliases.get(k, k)

    def topic_type(self, key: str) -> str:
        for match, topic_type in self.type_rules:
            if match and match in key:
                return topic_type
        return "other"


class DisplayNameTracker:
    """
    Picks the most frequent raw spelling per key.

    Ties go to the variant seen first; callers feed records newest date first
    and topics in list order, so `seq` captures that scan position.
    """

    def __init__(self):
        self._variants: Dict[str, Dict[str, List[int]]] = {}
        self._seq = 0

    def observe(self, key: str, raw: str) -> None:
        variant = _WS.sub(" ", raw.strip())
        if not variant:
            return
        stats = self._variants.setdefault(key, {})
        if variant in stats:
            stats[variant][0] += 1
        else:
            stats[variant] = [1, self._seq]
        self._seq += 1

    def display_name(self, key: str) -> str:
        stats = self._variants.get(key)
        if not stats:
            return key
        best = min(stats.items(), key=lambda kv: (-kv[1][0], kv[1][1]))
        return best[0]
