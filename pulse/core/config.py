"""Pulse engine configuration"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import find_dotenv, load_dotenv

from pulse.core.metrics_store import log_json

# Load the project .env only when running locally; never override injected env
load_dotenv(find_dotenv(usecwd=True), override=False)

MIN_WINDOW_DAYS = 1
MAX_WINDOW_DAYS = 30


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_windows(name: str, default: str) -> Tuple[int, ...]:
    raw = os.getenv(name, default)
    out = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            w = int(part)
        except ValueError:
            continue
        w = max(MIN_WINDOW_DAYS, min(w, MAX_WINDOW_DAYS))
        if w not in out:
            out.append(w)
    return tuple(out) or (7, 30)


@dataclass
class PulseConfig:
    """Runtime settings for snapshot computation, caching and narrative"""

    timezone: str = "America/New_York"
    window_sizes: Tuple[int, ...] = (7, 30)
    default_window_days: int = 7
    snapshot_max_age_hours: int = 24
    persistent_min_presence: float = 0.5
    max_drivers: int = 10
    topic_types_path: Optional[str] = "configs/topic_types.yml"
    topic_aliases_path: Optional[str] = None
    narrative_backend: str = "llm"
    narrative_model: str = "gpt-4o-mini"
    narrative_fallback_models: Tuple[str, ...] = field(default_factory=lambda: ("gpt-4o",))
    narrative_max_retries: int = 2
    narrative_timeout_ms: int = 30000
    snapshot_cron_hour_utc: int = 6
    snapshot_cron_minute: int = 30

    @classmethod
    def from_env(cls) -> "PulseConfig":
        """Load configuration from environment variables"""
        fallbacks = tuple(
            m.strip()
            for m in os.getenv("PULSE_NARRATIVE_FALLBACK_MODELS", "gpt-4o").split(",")
            if m.strip()
        )
        default_window = _env_int("PULSE_DEFAULT_WINDOW_DAYS", 7)
        cfg = cls(
            timezone=os.getenv("PULSE_TIMEZONE", "America/New_York"),
            window_sizes=_env_windows("PULSE_WINDOW_SIZES", "7,30"),
            default_window_days=max(MIN_WINDOW_DAYS, min(default_window, MAX_WINDOW_DAYS)),
            snapshot_max_age_hours=_env_int("PULSE_SNAPSHOT_MAX_AGE_HOURS", 24),
            persistent_min_presence=_env_float("PULSE_PERSISTENT_MIN_PRESENCE", 0.5),
            max_drivers=_env_int("PULSE_MAX_DRIVERS", 10),
            topic_types_path=os.getenv("PULSE_TOPIC_TYPES_PATH", "configs/topic_types.yml") or None,
            topic_aliases_path=os.getenv("PULSE_TOPIC_ALIASES_PATH", "") or None,
            narrative_backend=os.getenv("PULSE_NARRATIVE_BACKEND", "llm").lower().strip(),
            narrative_model=os.getenv("PULSE_NARRATIVE_MODEL", "gpt-4o-mini"),
            narrative_fallback_models=fallbacks,
            narrative_max_retries=_env_int("PULSE_NARRATIVE_MAX_RETRIES", 2),
            narrative_timeout_ms=_env_int("PULSE_NARRATIVE_TIMEOUT_MS", 30000),
            snapshot_cron_hour_utc=_env_int("PULSE_SNAPSHOT_CRON_HOUR_UTC", 6),
            snapshot_cron_minute=_env_int("PULSE_SNAPSHOT_CRON_MINUTE", 30),
        )
        log_json(
            stage="pulse.config.loaded",
            timezone=cfg.timezone,
            window_sizes=list(cfg.window_sizes),
            max_age_hours=cfg.snapshot_max_age_hours,
            narrative_backend=cfg.narrative_backend,
            narrative_model=cfg.narrative_model,
            aliases=bool(cfg.topic_aliases_path),
        )
        return cfg


_config: Optional[PulseConfig] = None


def get_config() -> PulseConfig:
    """Process-wide configuration, loaded once from the environment"""
    global _config
    if _config is None:
        _config = PulseConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (tests change env between cases)"""
    global _config
    _config = None
