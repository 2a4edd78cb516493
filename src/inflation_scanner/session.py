"""Per-scan mutable state.

Everything a scan accumulates lives on one :class:`ScanContext` owned by the
scanning coroutine, so repeated or back-to-back scans never share counters.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .advertisers import AdvertiserAggregator
from .config import ScanConfig
from .ids import Classification, DiscoveryContext, IdType, TagInventory, classify_measurement_id
from .ledger import HitLedger
from .models import DedupLog, FraudWarning, Metrics, Stage, TelemetryHit

MAX_TAG_ENDPOINT_SAMPLES = 50
MAX_GA_HIT_SAMPLES = 50
MAX_TELEMETRY_REQUESTS = 100
TOP_HOSTNAMES = 25

_STAGE_ORDER = (Stage.A, Stage.B, Stage.C)


@dataclass
class ScanSession:
    url: str
    config: ScanConfig = field(default_factory=ScanConfig)
    stage: Stage = Stage.A
    started_at: float = field(default_factory=time.time)

    def advance(self, stage: Stage) -> None:
        """Move to a later stage; stages are never re-entered."""

        if _STAGE_ORDER.index(stage) <= _STAGE_ORDER.index(self.stage):
            raise ValueError(f"cannot move from stage {self.stage.value} to {stage.value}")
        self.stage = stage


@dataclass
class Diagnostics:
    tag_endpoint_samples: list[dict[str, Any]] = field(default_factory=list)
    ga_hit_samples: list[dict[str, Any]] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def to_dict(self, top_hostnames: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "topHostnames": top_hostnames,
            "tagEndpointSamples": list(self.tag_endpoint_samples),
            "gaHitSamples": list(self.ga_hit_samples),
            "notes": list(self.notes),
        }


class ScanContext:
    def __init__(self, session: ScanSession) -> None:
        self.session = session
        self.metrics = Metrics()
        self.inventory = TagInventory()
        self.warnings: DedupLog[FraudWarning] = DedupLog()
        self.ledger = HitLedger(self.warnings)
        self.advertisers = AdvertiserAggregator()
        self.diagnostics = Diagnostics()
        self.host_counts: Counter = Counter()
        self.measurement_ids: dict[str, None] = {}
        self.query_ids: set[str] = set()
        self.ad_impression_query_ids: dict[str, None] = {}
        self.ga_events: list[dict[str, Any]] = []
        self.context_event_counts: Counter = Counter()
        self.telemetry_requests: list[str] = []
        self.scanner_scrolling = False

    @property
    def url(self) -> str:
        return self.session.url

    def on_navigation(self, url: str) -> None:
        """Main-frame navigation: count the load and open a new navigation epoch."""

        self.metrics.page_load_count += 1
        self.ledger.start_navigation(url)

    def add_measurement_id(self, id_: str) -> None:
        self.measurement_ids.setdefault(id_, None)

    def process_hit(self, hit: TelemetryHit) -> None:
        if hit.tid:
            info = classify_measurement_id(hit.tid)
            if info:
                normalized, id_type = info
                self.inventory.add(id_type, normalized, DiscoveryContext.NETWORK_COLLECT)
                if id_type is IdType.UA or self.inventory.status(id_type, normalized) is Classification.VERIFIED:
                    self.add_measurement_id(normalized)
            self.ledger.record(hit)

        sample = hit.to_dict()
        if len(self.diagnostics.ga_hit_samples) < MAX_GA_HIT_SAMPLES:
            self.diagnostics.ga_hit_samples.append(sample)
        if len(self.ga_events) < MAX_GA_HIT_SAMPLES:
            self.ga_events.append({"timestamp": sample.pop("t"), **sample})

        metrics = self.metrics
        if hit.en == "ad_impression":
            metrics.ad_impression_count += 1
            query_id = hit.ep.get("query_id")
            if query_id:
                self.query_ids.add(query_id)
                self.ad_impression_query_ids.setdefault(query_id, None)

        if hit.en == "page_view" or hit.t == "pageview" or hit.ua_page_view:
            metrics.page_view_count += 1
        if hit.is_auto_page_view:
            metrics.page_view_count += 1

        if hit.en and hit.en not in ("ad_impression", "page_view"):
            self.context_event_counts[hit.en] += 1

        if hit.dl and hit.dr and hit.dl == hit.dr:
            metrics.self_referrer = True
        if hit.has_viewability:
            metrics.has_viewability_params = True

    def top_hostnames(self, limit: int = TOP_HOSTNAMES) -> list[dict[str, Any]]:
        return [{"host": host, "count": count} for host, count in self.host_counts.most_common(limit)]


__all__ = [
    "Diagnostics",
    "MAX_GA_HIT_SAMPLES",
    "MAX_TAG_ENDPOINT_SAMPLES",
    "MAX_TELEMETRY_REQUESTS",
    "ScanContext",
    "ScanSession",
]
