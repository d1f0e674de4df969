"""Reuse rule for stored snapshots"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pulse.schemas.pulse import PulseSnapshot


class FreshnessGuard:
    """A stored snapshot is reusable iff it is for the same dateKey and younger than max_age"""

    def __init__(self, max_age_hours: int = 24):
        self.max_age = timedelta(hours=max_age_hours)

    def age(self, snapshot: PulseSnapshot, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        generated = snapshot.generated_at
        if generated.tzinfo is None:
            generated = generated.replace(tzinfo=timezone.utc)
        return now - generated

    def is_fresh(
        self, snapshot: Optional[PulseSnapshot], date_key: str, now: Optional[datetime] = None
    ) -> bool:
        if snapshot is None or snapshot.date_key != date_key:
            return False
        return self.age(snapshot, now) < self.max_age

    def is_stale(self, snapshot: PulseSnapshot, now: Optional[datetime] = None) -> bool:
        """Age-only check, used where the dateKey is taken from the snapshot itself"""
        return self.age(snapshot, now) >= self.max_age
