"""Roll up ad-network requests into per-(host, slot) impression counters."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from .models import AdvertiserImpression
from .urls import ad_slot_from_url

UTC = getattr(datetime, "UTC", timezone.utc)


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


class AdvertiserAggregator:
    def __init__(self, clock: Callable[[], str] = _utcnow_iso) -> None:
        self._entries: dict[tuple[str, str], AdvertiserImpression] = {}
        self._clock = clock

    def record(self, url: str) -> AdvertiserImpression | None:
        """Count one impression for the request's advertiser/slot; malformed URLs are ignored."""

        key = ad_slot_from_url(url)
        if key is None:
            return None
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            entry = AdvertiserImpression(advertiser=key[0], ad_id=key[1], first_seen=now, last_seen=now)
            self._entries[key] = entry
        entry.impressions += 1
        entry.last_seen = now
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def ranked(self) -> list[AdvertiserImpression]:
        return sorted(self._entries.values(), key=lambda e: e.impressions, reverse=True)

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.ranked()]


__all__ = ["AdvertiserAggregator"]
