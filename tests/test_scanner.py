import asyncio

from inflation_scanner.config import ScanConfig
from inflation_scanner.hits import parse_hit
from inflation_scanner.ids import Confidence, IdType
from inflation_scanner.models import Stage, Verdict
from inflation_scanner.parity import ParityResult
from inflation_scanner.scanner import ProgressEmitter, ScanResult, WebsiteScan, run_scan, scan_batch, scan_website

GA4 = "G-ABCDEF1234"
COLLECT = "https://www.google-analytics.com/g/collect?v=2"
CONFIG = ScanConfig(
    stage_a_ms=10,
    stage_b_ms=20,
    settle_ms=1,
    parity_observe_ms=2,
    capture_screenshot=False,
    progress_interval_s=1.0,
)


def _impression(query_id: str) -> "FakeRequest":
    return FakeRequest(f"{COLLECT}&tid={GA4}&en=ad_impression&ep.query_id={query_id}")


class FakeRequest:
    def __init__(self, url, method="GET", post_data=None):
        self.url = url
        self.method = method
        self.post_data = post_data
        self.resource_type = "xhr"


class FakeFrame:
    parent_frame = None

    def __init__(self, url):
        self.url = url


class FakePage:
    """Just enough of a Playwright page for the stage controller."""

    def __init__(self, requests=(), stage_b_requests=(), goto_error=None):
        self.url = "about:blank"
        self.handlers = {}
        self.waits = []
        self.main_frame = FakeFrame(self.url)
        self._requests = list(requests)
        self._stage_b_requests = list(stage_b_requests)
        self._goto_error = goto_error

    @property
    def frames(self):
        return [self.main_frame]

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.handlers[event].remove(handler)

    def _fire(self, event, payload):
        for handler in list(self.handlers.get(event, [])):
            handler(payload)

    async def goto(self, url, wait_until=None, timeout=None):
        if self._goto_error:
            raise self._goto_error
        self.url = url
        self.main_frame.url = url
        self._fire("framenavigated", self.main_frame)
        for request in self._requests:
            self._fire("request", request)

    async def wait_for_timeout(self, ms):
        self.waits.append(ms)
        if ms == CONFIG.stage_b_ms:
            for request in self._stage_b_requests:
                self._fire("request", request)

    async def wait_for_load_state(self, state, timeout=None):
        return None

    async def query_selector_all(self, selector):
        return []

    async def evaluate(self, script, *args):
        return None

    async def content(self):
        return "<html><head></head><body></body></html>"


def _scan(page, progress=None):
    return asyncio.run(run_scan(page, "https://site.example/", progress, config=CONFIG, clock=lambda: 0.0))


def test_clean_page_stops_after_stage_a():
    stages = []
    result = _scan(FakePage(), lambda snap: stages.append(snap["stage"]))
    assert result.verdict is Verdict.PASS
    assert result.risk_score == 0
    assert result.observed == {"stageASeconds": 0.01}
    assert result.metrics.page_load_count == 1
    assert result.error is None
    assert stages == ["A_DONE"]


def test_inflated_page_escalates_through_all_stages():
    stages = []
    page = FakePage(requests=[_impression(f"q{i}") for i in range(5)])
    result = _scan(page, lambda snap: stages.append(snap["stage"]))

    assert result.risk_score == 80
    assert result.verdict is Verdict.HIGH_RISK
    assert result.observed == {"stageASeconds": 0.01, "stageBSeconds": 0.02}
    assert stages == ["A_PROGRESS", "A_DONE", "B_DONE", "C_DONE"]
    assert result.metrics.ad_impression_count == 5
    assert result.metrics.unique_query_ids == 5
    assert result.metrics.page_view_count == 1
    assert result.tag_inventory["analyticsIds"] == [GA4]
    assert [w["type"] for w in result.fraud_warnings] == ["Duplicate ad_impression"]
    assert result.evidence["adImpressionQueryIds"] == ["q0", "q1", "q2", "q3", "q4"]
    assert result.evidence["screenshot"] is None
    assert result.hits_by_id[GA4]["events"] == {"ad_impression": 5}


def test_post_scroll_burst_during_stage_b():
    page = FakePage(
        requests=[_impression(f"a{i}") for i in range(3)],
        stage_b_requests=[_impression(f"b{i}") for i in range(3)],
    )
    result = _scan(page)
    ids = [s.id for s in result.signals]
    assert "post_scroll_burst" in ids
    assert "rapid_ad_impressions" in ids
    assert result.risk_score == 90
    assert result.observed["stageBSeconds"] == 0.02


def test_navigation_failure_yields_degraded_result():
    result = _scan(FakePage(goto_error=RuntimeError("net::ERR_NAME_NOT_RESOLVED")))
    assert result.verdict is Verdict.PASS
    assert result.risk_score == 0
    assert result.metrics.page_load_count == 0
    assert result.error["stage"] == "observe"
    assert "net::ERR_NAME_NOT_RESOLVED" in result.error["message"]
    payload = result.to_dict()
    assert payload["error"] == result.error
    assert payload["tagInventory"] == {"analyticsIds": [], "gtmContainers": [], "facebookPixels": [], "googleAdsIds": []}


def test_progress_emitter_rate_limits_and_forces():
    ticks = iter([0.0, 0.5, 1.0, 1.2, 1.3])
    seen = []
    emitter = ProgressEmitter(seen.append, interval_s=1.0, clock=lambda: next(ticks))
    assert emitter.emit(lambda: {"n": 1}) is True
    assert emitter.emit(lambda: {"n": 2}) is False
    assert emitter.emit(lambda: {"n": 3}) is True
    assert emitter.emit(lambda: {"n": 4}, force=True) is True
    assert emitter.emit(lambda: {"n": 5}) is False
    assert seen == [{"n": 1}, {"n": 3}, {"n": 4}]


def test_progress_emitter_absorbs_callback_errors():
    def boom(_):
        raise RuntimeError("consumer went away")

    emitter = ProgressEmitter(boom, clock=lambda: 0.0)
    assert emitter.emit(lambda: {}) is True
    assert ProgressEmitter(None).emit(lambda: {}) is False


def test_multiple_ga4_properties_firing_page_view():
    scan = WebsiteScan("https://site.example/", CONFIG, clock=lambda: 0.0)
    scan.ctx.on_navigation("https://site.example/")
    for tid in ("G-AAAAAAAAAA", "G-BBBBBBBBBB"):
        scan.ctx.process_hit(parse_hit(f"{COLLECT}&tid={tid}&en=page_view"))
    scan.rescore()
    result = scan.build_result()
    warning = next(w for w in result.fraud_warnings if w["type"] == "Multiple GA4 properties firing page_view")
    assert warning["risk"] == "Medium"
    assert result.pageviews_per_navigation == 2
    assert result.metrics.page_view_count == 2


def test_parity_multiple_flags_raise_score_floor():
    scan = WebsiteScan("https://site.example/", CONFIG, clock=lambda: 0.0)
    scan.parity = ParityResult(
        ids={IdType.GA4: [("G-AAAAAAAAAA", Confidence.HIGH), ("G-BBBBBBBBBB", Confidence.HIGH)]},
        flags=["MULTIPLE_GA4"],
        evidence=[],
    )
    result = scan.build_result()
    assert result.risk_score == 30
    assert result.verdict is Verdict.SUSPICIOUS
    assert result.tag_parity["ga4_ids"] == ["G-AAAAAAAAAA", "G-BBBBBBBBBB"]


def test_stages_are_never_reentered():
    scan = WebsiteScan("https://site.example/", CONFIG)
    scan.session.advance(Stage.B)
    try:
        scan.session.advance(Stage.A)
    except ValueError:
        pass
    else:
        raise AssertionError("moving back to stage A should fail")
    assert scan.session.stage is Stage.B


def test_scan_batch_continues_after_failure():
    calls = []

    async def fake_scan(url, on_progress=None, *, config=None):
        calls.append(url)
        if "broken" in url:
            raise RuntimeError("browser crashed")
        return ScanResult(url=url)

    urls = ["https://a.example/", "https://broken.example/", "https://c.example/"]
    results = asyncio.run(scan_batch(urls, config=CONFIG, scan=fake_scan))
    assert calls == urls
    assert [r.url for r in results] == urls
    assert results[1].error == {"message": "browser crashed", "stage": "observe"}
    assert results[0].error is None and results[2].error is None


def test_scan_result_wire_shape():
    payload = ScanResult(url="https://site.example/").to_dict()
    assert list(payload) == [
        "url",
        "scanTimestamp",
        "scannerVersion",
        "observed",
        "verdict",
        "riskScore",
        "metrics",
        "signals",
        "tagInventory",
        "tagParity",
        "tagInventoryDetailed",
        "advertisers",
        "evidence",
        "fraudWarnings",
        "diagnostics",
        "hitsById",
        "pageviewsPerNavigation",
    ]
    assert payload["verdict"] == "PASS"


def test_mid_stage_conditions_do_not_leave_signals():
    snapshots = []
    page = FakePage(
        requests=[
            FakeRequest(f"{COLLECT}&tid={GA4}&en=ad_impression&ep.query_id=q1"),
            FakeRequest(f"{COLLECT}&tid={GA4}&en=ad_impression&ep.query_id=q1&ep.viewable=1"),
        ]
    )
    result = _scan(page, snapshots.append)

    assert result.metrics.query_id_uniqueness_ratio == 0.5
    assert result.metrics.has_viewability_params is True
    assert result.signals == []
    assert result.risk_score == 0
    assert [s["stage"] for s in snapshots] == ["A_PROGRESS", "A_DONE"]
    assert snapshots[0]["riskScore"] == 0


def test_repeated_page_views_yield_one_signal_with_final_count():
    page = FakePage(requests=[FakeRequest(f"{COLLECT}&tid={GA4}&en=page_view&_p={i}") for i in range(3)])
    result = _scan(page)

    pageview_signals = [s for s in result.signals if s.id == "duplicate_pageview"]
    assert [s.detail for s in pageview_signals] == [f"Measurement ID {GA4} sent 3 page_view hits."]
    assert result.risk_score == 20


def test_impression_rate_uses_observation_windows():
    page = FakePage(requests=[_impression(f"q{i}") for i in range(5)])
    result = _scan(page)

    assert result.observed == {"stageASeconds": 0.01, "stageBSeconds": 0.02}
    assert result.metrics.ad_impressions_per_second == 166.667


def test_stage_a_rate_uses_stage_a_window_only():
    scan = WebsiteScan("https://site.example/", CONFIG, clock=lambda: 0.0)
    scan.ctx.on_navigation("https://site.example/")
    scan.ctx.process_hit(parse_hit(f"{COLLECT}&tid={GA4}&en=ad_impression&ep.query_id=q1"))
    scan.finish_stage(Stage.A, CONFIG.stage_a_seconds)
    assert scan.ctx.metrics.ad_impressions_per_second == 100


def test_scan_website_degrades_on_bad_environment(monkeypatch):
    monkeypatch.setenv("SCANNER_STAGE_A_MS", "twelve seconds")
    result = asyncio.run(scan_website("https://site.example/"))
    assert result.error["stage"] == "observe"
    assert "SCANNER_STAGE_A_MS" in result.error["message"]
    assert result.verdict is Verdict.PASS
