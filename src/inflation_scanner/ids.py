"""Measurement/tag identifier classification.

Every identifier the scanner sees (GA4 measurement ids, Universal Analytics
properties, tag-manager containers, Google Ads accounts and Facebook pixels)
passes through :class:`TagInventory`. An identifier is normalized against a
strict per-type format and then classified by the context it was discovered in:

* execution contexts (a collect hit, a bootstrap script load, a high-confidence
  parity detection) classify as ``VERIFIED``;
* passive contexts (script text, HTML, runtime data layers) classify as
  ``UNVERIFIED``;
* forced tokens (stray GA4-shaped strings) classify as ``NON_GA``.

Classification only ever moves up ``NON_GA < UNVERIFIED < VERIFIED`` within a
session, and the contexts an id was seen in accumulate regardless of the order
in which network and DOM discovery happen.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from .logging import jlog
from .patterns import (
    AW_TOKEN_RE,
    AW_VALID_RE,
    FB_VALID_RE,
    FBQ_INIT_RE,
    GA4_TOKEN_RE,
    GA4_VALID_RE,
    GTAG_CONFIG_RE,
    GTAG_JS_URL_RE,
    GTM_TOKEN_RE,
    GTM_VALID_RE,
    MEASUREMENT_ID_KEY_RE,
    UA_TOKEN_RE,
    UA_VALID_RE,
)


class IdType(str, Enum):
    GA4 = "ga4"
    UA = "ua"
    GTM = "gtm"
    AW = "aw"
    FB = "fb"


class Classification(IntEnum):
    NON_GA = 1
    UNVERIFIED = 2
    VERIFIED = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class Confidence(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class DiscoveryContext(str, Enum):
    NETWORK_COLLECT = "network_collect"
    NETWORK_SCRIPT_SRC = "network_script_src"
    GTAG_JS = "gtag_js"
    GTAG_CONFIG = "gtag_config"
    GTM_CONFIG = "gtm_config"
    TAG_PARITY_NETWORK = "tag_parity_network"
    TAG_PARITY_RUNTIME = "tag_parity_runtime"
    DOM_INLINE_SCRIPT = "dom_inline_script"
    DOM_SCRIPT_SRC = "dom_script_src"
    DOM_HTML = "dom_html"
    RUNTIME_DATALAYER = "runtime_datalayer"
    STRAY_TOKEN = "stray_token"


VERIFIED_CONTEXTS = frozenset(
    {
        DiscoveryContext.NETWORK_COLLECT,
        DiscoveryContext.NETWORK_SCRIPT_SRC,
        DiscoveryContext.GTAG_JS,
        DiscoveryContext.GTAG_CONFIG,
        DiscoveryContext.GTM_CONFIG,
        DiscoveryContext.TAG_PARITY_NETWORK,
    }
)

_VALIDATORS: dict[IdType, re.Pattern[str]] = {
    IdType.GA4: GA4_VALID_RE,
    IdType.UA: UA_VALID_RE,
    IdType.GTM: GTM_VALID_RE,
    IdType.AW: AW_VALID_RE,
    IdType.FB: FB_VALID_RE,
}

ANALYTICS_TYPES = (IdType.GA4, IdType.UA)


def upgrade(current: Classification | None, new: Classification) -> Classification:
    """Return the classification an id holds after observing ``new``; never lower than ``current``."""

    if current is None:
        return new
    return max(current, new)


def normalize_id(id_type: IdType, raw: str | None) -> str | None:
    """Return the canonical form of ``raw`` for ``id_type``, or None if it is not well formed."""

    if not raw or not isinstance(raw, str):
        return None
    candidate = raw.strip()
    if id_type is not IdType.FB:
        candidate = candidate.upper()
    return candidate if _VALIDATORS[id_type].match(candidate) else None


def classify_measurement_id(raw: str | None) -> tuple[str, IdType] | None:
    """Classify a hit ``tid`` as a GA4 or UA property id."""

    for id_type in ANALYTICS_TYPES:
        normalized = normalize_id(id_type, raw)
        if normalized:
            return normalized, id_type
    return None


def determine_classification(
    context: DiscoveryContext,
    *,
    force: Classification | None = None,
    confidence: Confidence | None = None,
) -> tuple[Classification, str]:
    if force is Classification.NON_GA:
        return Classification.NON_GA, "Non-analytics token"
    if context in VERIFIED_CONTEXTS or confidence is Confidence.HIGH:
        return Classification.VERIFIED, "Valid execution context observed"
    return Classification.UNVERIFIED, "Script context missing"


@dataclass
class MeasurementIdRecord:
    id: str
    type: IdType
    classification: Classification
    source: DiscoveryContext
    reason: str
    contexts: list[DiscoveryContext] = field(default_factory=list)
    confidence: Confidence | None = None
    near_miss: bool = False

    def observe(
        self,
        classification: Classification,
        context: DiscoveryContext,
        *,
        confidence: Confidence | None = None,
        reason: str | None = None,
    ) -> None:
        """Merge one more sighting: upgrade-only status, accumulate contexts."""

        new_status = upgrade(self.classification, classification)
        if new_status != self.classification:
            self.classification = new_status
            self.reason = reason or self.reason
        if confidence is not None and (self.confidence is None or confidence > self.confidence):
            self.confidence = confidence
        if context not in self.contexts:
            self.contexts.append(context)

    @property
    def type_label(self) -> str:
        return "NON_GA" if self.near_miss else self.type.name

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "type": self.type_label,
            "source": self.source.value,
            "classification": self.classification.label,
            "contexts": [c.value for c in self.contexts],
            "reason": self.reason,
        }
        if self.confidence is not None:
            out["confidence"] = self.confidence.name
        return out


class TagInventory:
    """Per-session registry of every identifier discovered during a scan."""

    def __init__(self) -> None:
        self._records: dict[tuple[IdType, str], MeasurementIdRecord] = {}

    def add(
        self,
        id_type: IdType,
        raw: str | None,
        context: DiscoveryContext,
        *,
        force: Classification | None = None,
        confidence: Confidence | None = None,
        reason: str | None = None,
    ) -> str | None:
        """Record a candidate identifier; return its canonical id, or None when rejected."""

        normalized = normalize_id(id_type, raw)
        if normalized is None:
            if id_type is IdType.GA4 and isinstance(raw, str) and raw.strip().upper().startswith("G-"):
                self._record_near_miss(raw.strip().upper(), context)
            return None

        status, default_reason = determine_classification(context, force=force, confidence=confidence)
        key = (id_type, normalized)
        record = self._records.get(key)
        if record is None:
            record = MeasurementIdRecord(
                id=normalized,
                type=id_type,
                classification=status,
                source=context,
                reason=reason or default_reason,
                contexts=[context],
                confidence=confidence,
            )
            self._records[key] = record
        else:
            record.observe(status, context, confidence=confidence, reason=reason or default_reason)
        jlog(
            "debug",
            event="id_classified",
            id=normalized,
            id_type=id_type.value,
            context=context.value,
            classification=record.classification.label,
        )
        return normalized

    def _record_near_miss(self, upper: str, context: DiscoveryContext) -> None:
        key = (IdType.GA4, upper)
        record = self._records.get(key)
        if record is None:
            self._records[key] = MeasurementIdRecord(
                id=upper,
                type=IdType.GA4,
                classification=Classification.NON_GA,
                source=context,
                reason="Invalid GA4 format",
                contexts=[context],
                near_miss=True,
            )
        elif context not in record.contexts:
            record.contexts.append(context)

    def get(self, id_type: IdType, id_: str) -> MeasurementIdRecord | None:
        return self._records.get((id_type, id_))

    def status(self, id_type: IdType, id_: str) -> Classification | None:
        record = self.get(id_type, id_)
        return record.classification if record else None

    def records(self, id_type: IdType | None = None) -> list[MeasurementIdRecord]:
        return [r for (t, _), r in self._records.items() if id_type is None or t is id_type]

    def ids(self, id_type: IdType, *, minimum: Classification = Classification.UNVERIFIED) -> list[str]:
        return [r.id for r in self.records(id_type) if r.classification >= minimum]

    def analytics_ids(self) -> list[str]:
        """Verified GA4/UA ids; the only ids the scoring inventory consumes."""

        out: list[str] = []
        for id_type in ANALYTICS_TYPES:
            out.extend(self.ids(id_type, minimum=Classification.VERIFIED))
        return out

    def summary(self) -> dict[str, list[str]]:
        return {
            "analyticsIds": self.analytics_ids(),
            "gtmContainers": self.ids(IdType.GTM),
            "facebookPixels": self.ids(IdType.FB),
            "googleAdsIds": self.ids(IdType.AW),
        }

    def detailed(self) -> dict[str, list[dict[str, Any]]]:
        ga4 = self.records(IdType.GA4)
        by_status = {
            status: [r.to_dict() for r in ga4 if r.classification is status]
            for status in Classification
        }
        return {
            "ga4": by_status[Classification.VERIFIED],
            "ga4_unverified": by_status[Classification.UNVERIFIED],
            "ga4_false": by_status[Classification.NON_GA],
            "ua": [r.to_dict() for r in self.records(IdType.UA)],
            "gtm": [r.to_dict() for r in self.records(IdType.GTM)],
            "aw": [r.to_dict() for r in self.records(IdType.AW)],
            "fb": [r.to_dict() for r in self.records(IdType.FB)],
        }


def extract_tags_from_text(
    text: str | None,
    inventory: TagInventory,
    source: DiscoveryContext = DiscoveryContext.DOM_HTML,
) -> set[str]:
    """Harvest identifiers from script/HTML text; return the GA4 ids seen in a GA4 context."""

    if not text:
        return set()
    seen_ga4: set[str] = set()

    def _register(raw: str, context: DiscoveryContext) -> None:
        normalized = inventory.add(IdType.GA4, raw, context)
        if normalized:
            seen_ga4.add(normalized)

    for match in GTAG_JS_URL_RE.finditer(text):
        _register(match.group(1), DiscoveryContext.GTAG_JS)
    for match in GTAG_CONFIG_RE.finditer(text):
        _register(match.group(1), DiscoveryContext.GTAG_CONFIG)
    for match in MEASUREMENT_ID_KEY_RE.finditer(text):
        _register(match.group(1), DiscoveryContext.GTM_CONFIG)

    for raw in UA_TOKEN_RE.findall(text):
        inventory.add(IdType.UA, raw, source)
    for raw in GTM_TOKEN_RE.findall(text):
        inventory.add(IdType.GTM, raw, source)
    for raw in AW_TOKEN_RE.findall(text):
        inventory.add(IdType.AW, raw, source)
    for match in FBQ_INIT_RE.finditer(text):
        inventory.add(IdType.FB, match.group(1), source)

    # GA4-shaped tokens outside any GA4 script context are evidence only.
    for raw in GA4_TOKEN_RE.findall(text):
        normalized = normalize_id(IdType.GA4, raw)
        if not normalized or normalized in seen_ga4:
            continue
        if inventory.status(IdType.GA4, normalized) is Classification.VERIFIED:
            continue
        inventory.add(
            IdType.GA4,
            normalized,
            DiscoveryContext.STRAY_TOKEN,
            force=Classification.NON_GA,
            reason="Found outside GA4 script context",
        )
    return seen_ga4


__all__ = [
    "ANALYTICS_TYPES",
    "Classification",
    "Confidence",
    "DiscoveryContext",
    "IdType",
    "MeasurementIdRecord",
    "TagInventory",
    "VERIFIED_CONTEXTS",
    "classify_measurement_id",
    "determine_classification",
    "extract_tags_from_text",
    "normalize_id",
    "upgrade",
]
