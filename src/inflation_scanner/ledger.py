"""Per-identifier hit ledger ("Hits Sent" view) with inflation detection."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .models import DedupLog, FraudWarning, Severity, TelemetryHit

MAX_SAMPLES_PER_ID = 10
PAGE_VIEW_EVENTS = ("page_view", "pageview")
LEDGER_WARNING_URL = "google-analytics.com"


def derive_event_name(hit: TelemetryHit) -> str | None:
    """Explicit GA4 event name, else the UA hit type, else an automatic ``page_view``."""

    if hit.en:
        return hit.en
    if hit.t:
        return hit.t
    if hit.is_auto_page_view:
        return "page_view"
    return None


@dataclass
class HitLedgerEntry:
    total: int = 0
    events: Counter = field(default_factory=Counter)
    samples: list[dict[str, Any]] = field(default_factory=list)

    def page_views(self) -> int:
        return sum(self.events.get(name, 0) for name in PAGE_VIEW_EVENTS)

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "events": dict(self.events), "samples": list(self.samples)}


class HitLedger:
    """Counts hits per tag id and per navigation epoch.

    Counters only grow. Warnings go to the shared, de-duplicated warning log
    so re-processing the same condition never produces a second entry.
    """

    def __init__(self, warnings: DedupLog[FraudWarning]) -> None:
        self.entries: dict[str, HitLedgerEntry] = {}
        self.navigation_epoch = 0
        self.page_views_per_epoch: dict[int, Counter] = {}
        self._warnings = warnings

    def start_navigation(self, url: str = "") -> int:
        """Open a new navigation epoch; navigations after the first are flagged as auto-refresh."""

        self.navigation_epoch += 1
        self.page_views_per_epoch[self.navigation_epoch] = Counter()
        if self.navigation_epoch > 1:
            self._warnings.push(
                FraudWarning(
                    type="Auto-Refresh / Inflation",
                    details="Page reloaded itself without user interaction.",
                    url=url,
                )
            )
        return self.navigation_epoch

    def record(self, hit: TelemetryHit) -> str | None:
        """Account for one hit; return the event name it was counted under."""

        tid = hit.tid
        if not tid:
            return None
        entry = self.entries.setdefault(tid, HitLedgerEntry())
        entry.total += 1

        event_name = derive_event_name(hit)
        if event_name:
            entry.events[event_name] += 1

        if len(entry.samples) < MAX_SAMPLES_PER_ID:
            entry.samples.append(
                {
                    "timestamp": hit.timestamp,
                    "eventName": event_name,
                    "en": hit.en,
                    "t": hit.t,
                    "__uaPageView": hit.ua_page_view,
                    "dl": hit.dl,
                }
            )

        if event_name in PAGE_VIEW_EVENTS or hit.is_auto_page_view:
            epoch = self.page_views_per_epoch.setdefault(self.navigation_epoch, Counter())
            epoch[tid] += 1
            if epoch[tid] > 1:
                ga4_style = hit.en == "page_view" or hit.is_auto_page_view
                label = "page_view" if ga4_style else "pageview"
                self._warnings.push(
                    FraudWarning(
                        type=f"Duplicate {label}",
                        details=f"Measurement ID {tid} sent {epoch[tid]} {label} hits during one navigation.",
                        url=LEDGER_WARNING_URL,
                        risk=Severity.HIGH,
                    )
                )

        if hit.en == "ad_impression" and entry.events["ad_impression"] > 1:
            self._warnings.push(
                FraudWarning(
                    type="Duplicate ad_impression",
                    details=f"Measurement ID {tid} sent ad_impression hits more than once.",
                    url=LEDGER_WARNING_URL,
                    risk=Severity.HIGH,
                )
            )
        return event_name

    def max_page_views_per_navigation(self) -> int:
        totals = [sum(counts.values()) for counts in self.page_views_per_epoch.values()]
        return max(totals, default=0)

    def total_page_views(self) -> int:
        return sum(entry.page_views() for entry in self.entries.values())

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {tid: entry.to_dict() for tid, entry in self.entries.items()}


__all__ = ["HitLedger", "HitLedgerEntry", "MAX_SAMPLES_PER_ID", "PAGE_VIEW_EVENTS", "derive_event_name"]
