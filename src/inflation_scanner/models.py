"""Typed records flowing through a scan, plus their wire (camelCase) shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Iterator, Protocol, TypeVar


class Stage(str, Enum):
    A = "A"
    B = "B"
    C = "C"

    @property
    def error_label(self) -> str:
        return {"A": "observe", "B": "parse", "C": "evidence"}[self.value]


class Verdict(str, Enum):
    PASS = "PASS"
    SUSPICIOUS = "SUSPICIOUS"
    HIGH_RISK = "HIGH_RISK"


class Severity(str, Enum):
    LOW = "low"
    MED = "med"
    HIGH = "high"

    @property
    def risk_label(self) -> str:
        return {"low": "Low", "med": "Medium", "high": "High"}[self.value]


@dataclass(frozen=True, slots=True)
class NetworkEvent:
    url: str
    host: str
    method: str = "GET"
    resource_type: str = "other"
    post_data: str | None = None
    timestamp: float = 0.0


@dataclass(frozen=True, slots=True)
class TelemetryHit:
    timestamp: float
    tid: str | None = None
    en: str | None = None
    t: str | None = None
    dl: str | None = None
    dr: str | None = None
    dt: str | None = None
    sid: str | None = None
    p: str | None = None
    ep: dict[str, str] = field(default_factory=dict)
    has_viewability: bool = False
    ua_page_view: bool = False

    @property
    def is_auto_page_view(self) -> bool:
        """A GA4 hit carrying a document location but no explicit event name or hit type."""

        return bool(self.tid and self.dl and not self.en and not self.t)

    def to_dict(self) -> dict[str, Any]:
        return {
            "t": self.timestamp,
            "tid": self.tid,
            "en": self.en,
            "dl": self.dl,
            "dr": self.dr,
            "dt": self.dt,
            "sid": self.sid,
            "_p": self.p,
            "ep": dict(self.ep),
        }


@dataclass(frozen=True, slots=True)
class Signal:
    id: str
    severity: Severity
    detail: str

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.id, self.detail, "")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "severity": self.severity.value, "detail": self.detail}


@dataclass(frozen=True, slots=True)
class FraudWarning:
    type: str
    details: str
    url: str = ""
    risk: Severity | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.type, self.details, self.url or "")

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "details": self.details, "url": self.url}
        if self.risk is not None:
            out["risk"] = self.risk.risk_label
        return out


class _Keyed(Protocol):
    @property
    def key(self) -> tuple[str, str, str]: ...


K = TypeVar("K", bound=_Keyed)


class DedupLog(Generic[K]):
    """Insertion-ordered list that records each ``(type, detail, url)`` key at most once."""

    def __init__(self, items: list[K] | None = None) -> None:
        self._items: list[K] = []
        self._seen: set[tuple[str, str, str]] = set()
        for item in items or []:
            self.push(item)

    def push(self, item: K) -> bool:
        if item.key in self._seen:
            return False
        self._seen.add(item.key)
        self._items.append(item)
        return True

    def __iter__(self) -> Iterator[K]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: object) -> bool:
        return getattr(item, "key", None) in self._seen

    def to_list(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._items]  # type: ignore[attr-defined]


@dataclass
class Metrics:
    page_load_count: int = 0
    page_view_count: int = 0
    ad_request_count: int = 0
    ad_impression_count: int = 0
    unique_query_ids: int = 0
    query_id_uniqueness_ratio: float = 0.0
    ad_impressions_per_second: float = 0.0
    unique_measurement_ids: list[str] = field(default_factory=list)
    self_referrer: bool = False
    has_viewability_params: bool = False
    repeated_context_events: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pageLoadCount": self.page_load_count,
            "pageViewCount": self.page_view_count,
            "adRequestCount": self.ad_request_count,
            "adImpressionCount": self.ad_impression_count,
            "uniqueQueryIds": self.unique_query_ids,
            "queryIdUniquenessRatio": self.query_id_uniqueness_ratio,
            "adImpressionsPerSecond": self.ad_impressions_per_second,
            "uniqueMeasurementIds": list(self.unique_measurement_ids),
            "selfReferrer": self.self_referrer,
            "hasViewabilityParams": self.has_viewability_params,
            "repeatedContextEvents": dict(self.repeated_context_events),
        }


@dataclass(frozen=True, slots=True)
class ScoreResult:
    score: int
    signals: list[Signal]
    verdict: Verdict


@dataclass
class AdvertiserImpression:
    advertiser: str
    ad_id: str
    impressions: int = 0
    first_seen: str = ""
    last_seen: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "advertiser": self.advertiser,
            "adId": self.ad_id,
            "impressions": self.impressions,
            "firstSeen": self.first_seen,
            "lastSeen": self.last_seen,
        }


@dataclass(frozen=True, slots=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True, slots=True)
class FrameRecord:
    url: str
    box: BoundingBox
    width: int
    height: int
    display: str = ""
    visibility: str = ""
    opacity: str = "1"
    is_tiny: bool = False
    is_hidden: bool = False
    is_pixel_stuffed: bool = False
    is_safe_sync: bool = False

    @property
    def is_suspicious(self) -> bool:
        return (self.is_tiny or self.is_hidden) and not self.is_safe_sync


__all__ = [
    "AdvertiserImpression",
    "BoundingBox",
    "DedupLog",
    "FraudWarning",
    "FrameRecord",
    "Metrics",
    "NetworkEvent",
    "ScoreResult",
    "Severity",
    "Signal",
    "Stage",
    "TelemetryHit",
    "Verdict",
]
