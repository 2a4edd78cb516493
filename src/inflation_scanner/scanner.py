"""Staged scan controller.

A scan always observes the page for Stage A. If the score reaches the
suspicious tier it scrolls halfway and observes again (Stage B); if it then
reaches the high-risk tier it auto-scrolls, measures frames and captures
evidence (Stage C). Any failure yields a degraded ``PASS`` result rather than
an exception.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from playwright.async_api import Page, async_playwright

from .config import ScanConfig
from .debug import ensure_debug_html
from .dom import collect_dom_tag_inventory, harvest_static_tags
from .errors import NavigationError, ScanError
from .evidence import capture_evidence_screenshot
from .frames import analyze_frames
from .ids import IdType, TagInventory, classify_measurement_id
from .logging import jlog, logging_context, scanlog, timed
from .models import FraudWarning, Metrics, ScoreResult, Severity, Signal, Stage, Verdict
from .network import classify_request, event_from_request
from .parity import ParityResult, apply_parity_result, run_tag_parity_detection
from .playwright import CHROMIUM_LAUNCH_ARGS, auto_scroll, cleanup_playwright, perform_half_scroll
from .scoring import (
    HIGH_RISK_THRESHOLD,
    SUSPICIOUS_THRESHOLD,
    apply_post_scroll_burst,
    clamp_score,
    score_signals,
    update_derived_metrics,
    verdict_from_score,
)
from .session import ScanContext, ScanSession
from .versioning import get_scanner_version

UTC = getattr(datetime, "UTC", timezone.utc)

HEALTH_CHECK_URL = "https://example.com"
HEALTH_CHECK_TIMEOUT_MS = 10_000
SAMPLE_GA_HITS = 10

ProgressCallback = Callable[[dict[str, Any]], Any]


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


class ProgressEmitter:
    """Rate-limited progress callback; forced emissions bypass the interval."""

    def __init__(
        self,
        callback: ProgressCallback | None,
        *,
        interval_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._interval = interval_s
        self._clock = clock
        self._last: float | None = None
        self.emitted = 0

    def emit(self, build: Callable[[], dict[str, Any]], *, force: bool = False) -> bool:
        if self._callback is None:
            return False
        now = self._clock()
        if not force and self._last is not None and now - self._last < self._interval:
            return False
        self._last = now
        try:
            self._callback(build())
        except Exception as exc:
            jlog("warning", event="progress_callback_failed", error=str(exc))
        self.emitted += 1
        return True


def _empty_inventory() -> dict[str, list[str]]:
    return TagInventory().summary()


def _empty_detailed() -> dict[str, list[dict[str, Any]]]:
    return TagInventory().detailed()


@dataclass
class ScanResult:
    url: str
    verdict: Verdict = Verdict.PASS
    risk_score: int = 0
    metrics: Metrics = field(default_factory=Metrics)
    signals: list[Signal] = field(default_factory=list)
    observed: dict[str, float] = field(default_factory=dict)
    tag_inventory: dict[str, list[str]] = field(default_factory=_empty_inventory)
    tag_parity: dict[str, Any] | None = None
    tag_inventory_detailed: dict[str, list[dict[str, Any]]] = field(default_factory=_empty_detailed)
    advertisers: list[dict[str, Any]] = field(default_factory=list)
    evidence: dict[str, Any] = field(
        default_factory=lambda: {"sampleGaHits": [], "adImpressionQueryIds": [], "screenshot": None}
    )
    fraud_warnings: list[dict[str, Any]] = field(default_factory=list)
    diagnostics: dict[str, Any] = field(
        default_factory=lambda: {"topHostnames": [], "tagEndpointSamples": [], "gaHitSamples": [], "notes": []}
    )
    hits_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    pageviews_per_navigation: int = 0
    error: dict[str, str] | None = None
    scan_timestamp: str = field(default_factory=_utcnow_iso)
    scanner_version: str = field(default_factory=get_scanner_version)

    @classmethod
    def degraded(cls, url: str, message: str, stage: str) -> "ScanResult":
        return cls(url=url, error={"message": message, "stage": stage})

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "url": self.url,
            "scanTimestamp": self.scan_timestamp,
            "scannerVersion": self.scanner_version,
            "observed": dict(self.observed),
            "verdict": self.verdict.value,
            "riskScore": self.risk_score,
            "metrics": self.metrics.to_dict(),
            "signals": [s.to_dict() for s in self.signals],
            "tagInventory": self.tag_inventory,
            "tagParity": self.tag_parity,
            "tagInventoryDetailed": self.tag_inventory_detailed,
            "advertisers": self.advertisers,
            "evidence": self.evidence,
            "fraudWarnings": self.fraud_warnings,
            "diagnostics": self.diagnostics,
            "hitsById": self.hits_by_id,
            "pageviewsPerNavigation": self.pageviews_per_navigation,
        }
        if self.error is not None:
            out["error"] = dict(self.error)
        return out


class WebsiteScan:
    """One scan of one URL: event handlers, stage sequencing and result assembly."""

    def __init__(
        self,
        url: str,
        config: ScanConfig | None = None,
        on_progress: ProgressCallback | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ScanConfig()
        self.session = ScanSession(url, self.config)
        self.ctx = ScanContext(self.session)
        self.progress = ProgressEmitter(on_progress, interval_s=self.config.progress_interval_s, clock=clock)
        self.score = ScoreResult(score=0, signals=[], verdict=Verdict.PASS)
        self.observed: dict[str, float] = {}
        self.parity: ParityResult | None = None
        self.screenshot: dict[str, Any] | None = None
        self._burst_delta = 0

    @property
    def url(self) -> str:
        return self.session.url

    # Event handlers run synchronously inside Playwright's dispatch.

    def on_frame_navigated(self, frame) -> None:
        try:
            if frame.parent_frame is None:
                self.ctx.on_navigation(frame.url)
        except Exception as exc:
            jlog("debug", event="navigation_handler_failed", error=str(exc))

    def on_request(self, request) -> None:
        try:
            hit = classify_request(self.ctx, event_from_request(request))
        except Exception as exc:
            jlog("debug", event="request_handler_failed", error=str(exc))
            return
        if hit is None:
            return
        # Scores only move at stage boundaries; progress carries the last stage's score.
        self.progress.emit(lambda: self.snapshot(f"{self.session.stage.value}_PROGRESS"))

    @property
    def observed_seconds(self) -> float:
        return sum(self.observed.values())

    def rescore(self) -> ScoreResult:
        ctx = self.ctx
        update_derived_metrics(
            ctx.metrics,
            ctx.measurement_ids,
            ctx.query_ids,
            self.observed_seconds,
            ctx.context_event_counts,
        )
        result = score_signals(ctx.metrics, self.score.signals, ctx.ledger.entries)
        if self._burst_delta:
            result = apply_post_scroll_burst(result, self._burst_delta, ctx.metrics)
        self.score = result
        return result

    def snapshot(self, stage: str) -> dict[str, Any]:
        return {
            "stage": stage,
            "url": self.url,
            "metrics": self.ctx.metrics.to_dict(),
            "riskScore": self.score.score,
            "verdict": self.score.verdict.value,
            "signals": [s.to_dict() for s in self.score.signals],
            "advertisers": self.ctx.advertisers.to_list(),
        }

    def finish_stage(self, stage: Stage, seconds: float | None = None) -> None:
        if seconds is not None:
            self.observed[f"stage{stage.value}Seconds"] = seconds
        self.rescore()
        scanlog("stage_done", url=self.url, stage=stage.value, score=self.score.score, verdict=self.score.verdict.value)
        self.progress.emit(lambda: self.snapshot(f"{stage.value}_DONE"), force=True)

    async def run_parity(self, page: Page) -> None:
        try:
            with timed("tag_parity", url=self.url) as fields:
                self.parity = await run_tag_parity_detection(page, self.config)
                apply_parity_result(self.ctx, self.parity)
                fields["flags"] = self.parity.flags
        except Exception:
            # tag_parity_failed already logged; the scan goes on without parity data.
            return

    async def run(self, page: Page) -> ScanResult:
        """Drive all stages against an already-open ``page``; raise on fatal errors."""

        config = self.config
        ctx = self.ctx
        page.on("framenavigated", self.on_frame_navigated)
        page.on("request", self.on_request)

        try:
            await page.goto(self.url, wait_until="domcontentloaded", timeout=config.navigation_timeout_ms)
        except Exception as exc:
            raise NavigationError(f"navigation failed: {exc}", stage=Stage.A.error_label) from exc
        await page.wait_for_timeout(config.settle_ms)
        await collect_dom_tag_inventory(page, ctx.inventory)
        await self.run_parity(page)
        if config.debug_html:
            await ensure_debug_html(page, self.url, Stage.A.value)
        await page.wait_for_timeout(config.stage_a_ms)
        self.finish_stage(Stage.A, config.stage_a_seconds)

        if self.score.score >= SUSPICIOUS_THRESHOLD:
            self.session.advance(Stage.B)
            impressions_before = ctx.metrics.ad_impression_count
            ctx.scanner_scrolling = True
            await perform_half_scroll(page)
            ctx.scanner_scrolling = False
            await page.wait_for_timeout(config.stage_b_ms)
            self._burst_delta = ctx.metrics.ad_impression_count - impressions_before
            self.finish_stage(Stage.B, config.stage_b_seconds)

        if self.session.stage is Stage.B and self.score.score >= HIGH_RISK_THRESHOLD:
            self.session.advance(Stage.C)
            with timed("stage_c_evidence", url=self.url) as fields:
                ctx.scanner_scrolling = True
                await auto_scroll(page)
                ctx.scanner_scrolling = False
                await analyze_frames(page, ctx.warnings)
                if config.capture_screenshot:
                    self.screenshot = await capture_evidence_screenshot(
                        page, self.url, stage=Stage.C.value, evidence_dir=config.evidence_dir
                    )
                await harvest_static_tags(page, ctx.inventory)
                fields["screenshot"] = bool(self.screenshot)
            self.finish_stage(Stage.C)

        return self.build_result()

    def build_result(self) -> ScanResult:
        ctx = self.ctx
        metrics = ctx.metrics
        ledger = ctx.ledger

        ga4_with_page_view = [
            tid
            for tid, entry in ledger.entries.items()
            if entry.events.get("page_view", 0) > 0
            and (info := classify_measurement_id(tid)) is not None
            and info[1] is IdType.GA4
        ]
        if len(ga4_with_page_view) > 1:
            ctx.warnings.push(
                FraudWarning(
                    type="Multiple GA4 properties firing page_view",
                    details=(
                        f"{len(ga4_with_page_view)} GA4 measurement IDs each sent at least one page_view: "
                        f"{', '.join(ga4_with_page_view)}"
                    ),
                    url="google-analytics.com",
                    risk=Severity.MED,
                )
            )

        per_navigation = ledger.max_page_views_per_navigation() or ledger.total_page_views()
        if per_navigation > metrics.page_view_count:
            metrics.page_view_count = per_navigation

        analytics_ids = list(dict.fromkeys([*ctx.inventory.analytics_ids(), *ctx.measurement_ids]))
        if metrics.page_view_count == 0 and analytics_ids:
            metrics.page_view_count = 1

        score = self.score.score
        if self.parity and any(flag.startswith("MULTIPLE_") for flag in self.parity.flags):
            score = clamp_score(max(score, SUSPICIOUS_THRESHOLD))

        inventory = ctx.inventory.summary()
        inventory["analyticsIds"] = analytics_ids

        return ScanResult(
            url=self.url,
            verdict=verdict_from_score(score),
            risk_score=score,
            metrics=metrics,
            signals=list(self.score.signals),
            observed=dict(self.observed),
            tag_inventory=inventory,
            tag_parity=self.parity.to_dict() if self.parity else None,
            tag_inventory_detailed=ctx.inventory.detailed(),
            advertisers=ctx.advertisers.to_list(),
            evidence={
                "sampleGaHits": ctx.ga_events[:SAMPLE_GA_HITS],
                "adImpressionQueryIds": list(ctx.ad_impression_query_ids),
                "screenshot": self.screenshot,
            },
            fraud_warnings=ctx.warnings.to_list(),
            diagnostics=ctx.diagnostics.to_dict(ctx.top_hostnames()),
            hits_by_id=ledger.to_dict(),
            pageviews_per_navigation=per_navigation,
        )

    def degraded(self, exc: Exception) -> ScanResult:
        stage = exc.stage if isinstance(exc, ScanError) and exc.stage else self.session.stage.error_label
        jlog("error", event="scan_failed", url=self.url, stage=stage, error=str(exc))
        return ScanResult.degraded(self.url, str(exc), stage)


async def run_scan(
    page: Page,
    url: str,
    on_progress: ProgressCallback | None = None,
    *,
    config: ScanConfig | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ScanResult:
    """Scan ``url`` on an existing page; never raises."""

    scan = WebsiteScan(url, config, on_progress, clock=clock)
    scanlog("scan_start", url=url, stage=Stage.A.value)
    try:
        result = await scan.run(page)
    except Exception as exc:  # outermost safety net per scan
        return scan.degraded(exc)
    scanlog("scan_done", url=url, stage=scan.session.stage.value, score=result.risk_score, verdict=result.verdict.value)
    return result


async def scan_website(
    url: str,
    on_progress: ProgressCallback | None = None,
    *,
    config: ScanConfig | None = None,
) -> ScanResult:
    """Launch a browser, scan one URL and always close the browser."""

    try:
        config = config or ScanConfig.from_env()
        async with async_playwright() as pw:
            browser = None
            context = None
            try:
                browser = await pw.chromium.launch(headless=config.headless, args=CHROMIUM_LAUNCH_ARGS)
                if config.user_agent:
                    context = await browser.new_context(user_agent=config.user_agent)
                else:
                    context = await browser.new_context()
                page = await context.new_page()
                return await run_scan(page, url, on_progress, config=config)
            finally:
                await cleanup_playwright(context, browser)
    except Exception as exc:  # config, browser launch or teardown
        jlog("error", event="scan_failed", url=url, stage=Stage.A.error_label, error=str(exc))
        return ScanResult.degraded(url, str(exc), Stage.A.error_label)


async def scan_batch(
    urls: Iterable[str],
    on_progress: ProgressCallback | None = None,
    *,
    config: ScanConfig | None = None,
    scan: Callable[..., Any] | None = None,
) -> list[ScanResult]:
    """Scan URLs one after another; a failed URL yields a degraded result and the batch continues."""

    scan = scan or scan_website
    results: list[ScanResult] = []
    for url in urls:
        with logging_context(url=url):
            try:
                results.append(await scan(url, on_progress, config=config))
            except Exception as exc:
                jlog("error", event="scan_failed", url=url, stage=Stage.A.error_label, error=str(exc))
                results.append(ScanResult.degraded(url, str(exc), Stage.A.error_label))
    jlog("info", event="batch_done", scanned=len(results))
    return results


async def health_check() -> dict[str, Any]:
    """Launch a browser and load a known page; report whether that worked."""

    try:
        async with async_playwright() as pw:
            browser = None
            try:
                browser = await pw.chromium.launch(headless=True, args=CHROMIUM_LAUNCH_ARGS)
                page = await browser.new_page()
                await page.goto(HEALTH_CHECK_URL, timeout=HEALTH_CHECK_TIMEOUT_MS)
                return {"browser_ok": True}
            finally:
                await cleanup_playwright(None, browser)
    except Exception as exc:
        jlog("error", event="health_check_failed", error=str(exc))
        return {"browser_ok": False, "error": str(exc)}


__all__ = [
    "ProgressEmitter",
    "ScanResult",
    "WebsiteScan",
    "health_check",
    "run_scan",
    "scan_batch",
    "scan_website",
]
