"""Tag-parity detection: a second, Tag Assistant style pass over the loaded page.

The pass watches requests for tag bootstraps and beacons, accepts a consent
banner if one is showing, and reads runtime containers (``dataLayer``,
``google_tag_manager``, script sources) from every frame. Its findings are fed
back through the ID classifier as additional discovery contexts.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Page

from .config import ScanConfig
from .ids import Confidence, DiscoveryContext, IdType
from .logging import jlog
from .models import FraudWarning, Severity
from .patterns import (
    AW_WORD_RE,
    CONSENT_KEYWORDS,
    FBQ_INIT_RE,
    GA4_WORD_RE,
    GTAG_CONFIG_RE,
    GTM_KEY_PREFIX_RE,
    GTM_WORD_RE,
    MEASUREMENT_ID_KEY_RE,
    URL_FB_TR_ID_RE,
    URL_GA4_ID_RE,
    URL_GTM_ID_RE,
)

MAX_EVIDENCE = 50
MAX_POST_BODY_CHARS = 10_000
PARITY_WARNING_URL = "tag-parity-detection"

_RUNTIME_JS = """
() => {
  const result = { dataLayer: null, googleTagManager: null, scripts: [], inline: '' };
  if (window.dataLayer && Array.isArray(window.dataLayer)) {
    try { result.dataLayer = JSON.stringify(window.dataLayer).substring(0, 50000); }
    catch (e) { result.dataLayer = '[unable to stringify]'; }
  }
  if (window.google_tag_manager) {
    try { result.googleTagManager = Object.keys(window.google_tag_manager); }
    catch (e) { result.googleTagManager = []; }
  }
  result.scripts = Array.from(document.querySelectorAll('script[src]')).map(s => s.src).filter(Boolean);
  result.inline = Array.from(document.querySelectorAll('script:not([src])')).map(s => s.textContent || '').join('\\n');
  return result;
}
"""


class EvidenceCollector:
    def __init__(self, max_size: int = MAX_EVIDENCE) -> None:
        self.entries: list[dict[str, Any]] = []
        self.max_size = max_size

    def add(self, type_: str, source: str, value: str, url: str = "", frame: str = "") -> None:
        if len(self.entries) >= self.max_size:
            return
        self.entries.append(
            {
                "type": type_,
                "source": source,
                "value": value,
                "url": (url or "")[:200],
                "frame": (frame or "")[:200],
                "ts": time.time(),
            }
        )


@dataclass
class _Tracked:
    confidence: Confidence
    sources: list[str] = field(default_factory=list)


class IdTracker:
    """Deduplicated ids with the highest confidence they were seen at."""

    def __init__(self) -> None:
        self._ids: dict[str, _Tracked] = {}

    def add(self, id_: str, confidence: Confidence, source: str) -> None:
        if not id_:
            return
        tracked = self._ids.get(id_)
        if tracked is None:
            self._ids[id_] = _Tracked(confidence, [source])
            return
        if confidence > tracked.confidence:
            tracked.confidence = confidence
        if source not in tracked.sources:
            tracked.sources.append(source)

    def ids(self) -> list[str]:
        return list(self._ids)

    def confidence(self, id_: str) -> Confidence:
        tracked = self._ids.get(id_)
        return tracked.confidence if tracked else Confidence.LOW


@dataclass
class ParityResult:
    ids: dict[IdType, list[tuple[str, Confidence]]]
    flags: list[str]
    evidence: list[dict[str, Any]]

    def id_list(self, id_type: IdType) -> list[str]:
        return [id_ for id_, _ in self.ids.get(id_type, [])]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ga4_ids": self.id_list(IdType.GA4),
            "gtm_containers": self.id_list(IdType.GTM),
            "gads_aw_ids": self.id_list(IdType.AW),
            "fb_pixel_ids": self.id_list(IdType.FB),
            "flags": list(self.flags),
            "evidence": list(self.evidence),
        }


def generate_flags(ga4: list[str], gtm: list[str], aw: list[str], fb: list[str], has_beacons: bool) -> list[str]:
    flags = []
    if len(ga4) >= 2:
        flags.append("MULTIPLE_GA4")
    if len(gtm) >= 2:
        flags.append("MULTIPLE_GTM")
    if ga4 and gtm:
        flags.append("GA4_AND_GTM")
    if (ga4 or gtm or aw or fb) and not has_beacons:
        flags.append("TAGS_PRESENT_NO_BEACONS")
    return flags


def extract_ga4_configs(text: str | None) -> list[str]:
    if not text:
        return []
    found: dict[str, None] = {}
    for regex in (GTAG_CONFIG_RE, MEASUREMENT_ID_KEY_RE):
        for match in regex.finditer(text):
            found.setdefault(match.group(1).upper(), None)
    return list(found)


class TagParityDetector:
    def __init__(self) -> None:
        self.trackers = {id_type: IdTracker() for id_type in (IdType.GA4, IdType.GTM, IdType.AW, IdType.FB)}
        self.evidence = EvidenceCollector()
        self.has_beacons = False

    def _add(self, id_type: IdType, id_: str, confidence: Confidence, source: str, url: str = "", frame: str = "") -> None:
        self.trackers[id_type].add(id_, confidence, source)
        self.evidence.add(id_type.value, source, id_, url, frame)

    def observe_request(self, url: str, method: str = "GET", post_data: str | None = None) -> None:
        lower = url.lower()
        if "google-analytics.com/g/collect" in lower or "google-analytics.com/collect" in lower or "facebook.com/tr" in lower:
            self.has_beacons = True

        if "googletagmanager.com/gtm.js" in lower:
            match = URL_GTM_ID_RE.search(url)
            if match:
                self._add(IdType.GTM, match.group(1).upper(), Confidence.HIGH, "network_gtm_js", url)

        if "googletagmanager.com/gtag/js" in lower or "google-analytics.com/gtag/js" in lower:
            match = URL_GA4_ID_RE.search(url)
            if match:
                self._add(IdType.GA4, match.group(1).upper(), Confidence.HIGH, "network_gtag_js", url)

        if "aw-" in lower or "googleads" in lower:
            match = AW_WORD_RE.search(url.upper())
            if match:
                self._add(IdType.AW, match.group(0), Confidence.HIGH, "network_aw", url)

        if "facebook.com/tr" in lower:
            match = URL_FB_TR_ID_RE.search(url)
            if match:
                self._add(IdType.FB, match.group(1), Confidence.HIGH, "network_fb_tr", url)

        if "connect.facebook.net" in lower and "fbevents.js" in lower and post_data:
            match = FBQ_INIT_RE.search(post_data)
            if match:
                self._add(IdType.FB, match.group(1), Confidence.MEDIUM, "network_fbevents_init", url)

        ga_endpoint = "google-analytics.com" in lower or "doubleclick.net" in lower
        if method == "POST" and ga_endpoint and post_data and len(post_data) < MAX_POST_BODY_CHARS:
            for regex, id_type in ((GA4_WORD_RE, IdType.GA4), (GTM_WORD_RE, IdType.GTM), (AW_WORD_RE, IdType.AW)):
                for raw in regex.findall(post_data):
                    self._add(id_type, raw.upper(), Confidence.MEDIUM, "network_post_body", url)

    def observe_runtime(self, data: dict[str, Any] | None, frame_url: str) -> None:
        if not data:
            return
        data_layer = data.get("dataLayer")
        if data_layer:
            for id_ in extract_ga4_configs(data_layer):
                self._add(IdType.GA4, id_, Confidence.MEDIUM, "runtime_datalayer_config", frame_url, frame_url)
            for raw in GTM_WORD_RE.findall(data_layer):
                self._add(IdType.GTM, raw.upper(), Confidence.MEDIUM, "runtime_datalayer", frame_url, frame_url)
            for raw in AW_WORD_RE.findall(data_layer):
                self._add(IdType.AW, raw.upper(), Confidence.MEDIUM, "runtime_datalayer", frame_url, frame_url)

        for key in data.get("googleTagManager") or []:
            match = GTM_KEY_PREFIX_RE.match(str(key))
            if match:
                self._add(IdType.GTM, match.group(1).upper(), Confidence.MEDIUM, "runtime_google_tag_manager", frame_url, frame_url)

        for src in data.get("scripts") or []:
            if "googletagmanager.com/gtag/js" in src.lower():
                match = URL_GA4_ID_RE.search(src)
                if match:
                    self._add(IdType.GA4, match.group(1).upper(), Confidence.MEDIUM, "dom_script_src", src, frame_url)
            match = URL_GTM_ID_RE.search(src)
            if match:
                self._add(IdType.GTM, match.group(1).upper(), Confidence.MEDIUM, "dom_script_src", src, frame_url)
            match = AW_WORD_RE.search(src.upper())
            if match:
                self._add(IdType.AW, match.group(0), Confidence.MEDIUM, "dom_script_src", src, frame_url)

        for match in FBQ_INIT_RE.finditer(data.get("inline") or ""):
            self._add(IdType.FB, match.group(1), Confidence.MEDIUM, "dom_inline_script", frame_url, frame_url)

    def result(self) -> ParityResult:
        ids = {
            id_type: [(id_, tracker.confidence(id_)) for id_ in tracker.ids()]
            for id_type, tracker in self.trackers.items()
        }
        flags = generate_flags(
            [i for i, _ in ids[IdType.GA4]],
            [i for i, _ in ids[IdType.GTM]],
            [i for i, _ in ids[IdType.AW]],
            [i for i, _ in ids[IdType.FB]],
            self.has_beacons,
        )
        return ParityResult(ids=ids, flags=flags, evidence=list(self.evidence.entries))


async def handle_consent_banner(page: Page) -> bool:
    """Click the first visible consent button; return True if one was clicked."""

    try:
        buttons = await page.query_selector_all('button, a, [role="button"]')
    except Exception:
        return False
    for button in buttons:
        try:
            text = await button.text_content()
            if not text:
                continue
            lowered = text.lower().strip()
            if not any(keyword in lowered for keyword in CONSENT_KEYWORDS):
                continue
            if await button.is_visible():
                await button.click()
                jlog("info", event="consent_clicked", text=text.strip()[:50])
                await page.wait_for_timeout(1000)
                return True
        except Exception:
            continue
    return False


async def _read_runtime(frame) -> dict[str, Any] | None:
    try:
        return await frame.evaluate(_RUNTIME_JS)
    except Exception as exc:
        jlog("debug", event="parity_runtime_unavailable", frame_url=getattr(frame, "url", ""), error=str(exc))
        return None


async def run_tag_parity_detection(page: Page, config: ScanConfig | None = None) -> ParityResult:
    config = config or ScanConfig()
    detector = TagParityDetector()

    def _on_request(request) -> None:
        try:
            post_data = request.post_data
        except Exception:
            post_data = None
        try:
            detector.observe_request(request.url, request.method, post_data)
        except Exception as exc:
            jlog("debug", event="parity_request_failed", error=str(exc))

    page.on("request", _on_request)
    try:
        try:
            await page.wait_for_load_state("networkidle", timeout=config.parity_idle_timeout_ms)
        except Exception:
            pass

        if await handle_consent_banner(page):
            await page.wait_for_timeout(2000)

        detector.observe_runtime(await _read_runtime(page), page.url)
        for frame in page.frames:
            if frame.parent_frame is None or not frame.url or frame.url == "about:blank":
                continue
            detector.observe_runtime(await _read_runtime(frame), frame.url)

        await page.wait_for_timeout(config.parity_observe_ms)
        detector.observe_runtime(await _read_runtime(page), page.url)
    finally:
        page.remove_listener("request", _on_request)

    return detector.result()


def apply_parity_result(ctx, result: ParityResult) -> None:
    """Merge parity findings into the session's inventory and warnings."""

    for id_type, entries in result.ids.items():
        for id_, confidence in entries:
            context = (
                DiscoveryContext.TAG_PARITY_NETWORK if confidence is Confidence.HIGH else DiscoveryContext.TAG_PARITY_RUNTIME
            )
            normalized = ctx.inventory.add(id_type, id_, context, confidence=confidence)
            if normalized and id_type is IdType.GA4 and normalized in ctx.inventory.analytics_ids():
                ctx.add_measurement_id(normalized)

    ga4 = result.id_list(IdType.GA4)
    gtm = result.id_list(IdType.GTM)
    if "MULTIPLE_GA4" in result.flags:
        ctx.warnings.push(
            FraudWarning(
                type="Multiple GA4 IDs Detected",
                details=f"Found {len(ga4)} GA4 measurement IDs: {', '.join(ga4)}",
                url=PARITY_WARNING_URL,
                risk=Severity.MED,
            )
        )
    if "MULTIPLE_GTM" in result.flags:
        ctx.warnings.push(
            FraudWarning(
                type="Multiple GTM Containers Detected",
                details=f"Found {len(gtm)} GTM containers: {', '.join(gtm)}",
                url=PARITY_WARNING_URL,
                risk=Severity.MED,
            )
        )
    if "TAGS_PRESENT_NO_BEACONS" in result.flags:
        ctx.warnings.push(
            FraudWarning(
                type="Tags Present But No Beacons",
                details=(
                    "Analytics tags detected but no collect/tr hits observed. "
                    "Possible consent blocking or tag misconfiguration."
                ),
                url=PARITY_WARNING_URL,
                risk=Severity.LOW,
            )
        )


__all__ = [
    "EvidenceCollector",
    "IdTracker",
    "ParityResult",
    "TagParityDetector",
    "apply_parity_result",
    "extract_ga4_configs",
    "generate_flags",
    "handle_consent_banner",
    "run_tag_parity_detection",
]
