from inflation_scanner.hits import parse_hit
from inflation_scanner.ledger import MAX_SAMPLES_PER_ID, HitLedger, derive_event_name
from inflation_scanner.models import DedupLog, Severity

COLLECT = "https://www.google-analytics.com/g/collect?tid=G-ABCDEF1234"


def _hit(query: str = ""):
    return parse_hit(COLLECT + query)


def _types(warnings):
    return [w.type for w in warnings]


def test_derive_event_name():
    assert derive_event_name(_hit("&en=scroll")) == "scroll"
    assert derive_event_name(parse_hit("https://www.google-analytics.com/collect?tid=UA-12345678-1&t=event")) == "event"
    assert derive_event_name(_hit("&dl=https%3A%2F%2Fa.example%2F")) == "page_view"
    assert derive_event_name(_hit()) is None


def test_repeated_ad_impression_warns_exactly_once():
    warnings = DedupLog()
    ledger = HitLedger(warnings)
    ledger.start_navigation("https://site.example/")
    for query_id in ("q1", "q2", "q3"):
        ledger.record(_hit(f"&en=ad_impression&ep.query_id={query_id}"))
    assert _types(warnings) == ["Duplicate ad_impression"]
    warning = next(iter(warnings))
    assert warning.risk is Severity.HIGH
    assert warning.details == "Measurement ID G-ABCDEF1234 sent ad_impression hits more than once."
    assert ledger.entries["G-ABCDEF1234"].events["ad_impression"] == 3


def test_duplicate_page_view_within_one_navigation():
    warnings = DedupLog()
    ledger = HitLedger(warnings)
    ledger.start_navigation()
    ledger.record(_hit("&en=page_view"))
    ledger.record(_hit("&en=page_view"))
    assert _types(warnings) == ["Duplicate page_view"]
    assert "2 page_view hits" in next(iter(warnings)).details
    assert ledger.max_page_views_per_navigation() == 2


def test_page_views_in_separate_navigations_are_not_duplicates():
    warnings = DedupLog()
    ledger = HitLedger(warnings)
    ledger.start_navigation("https://site.example/")
    ledger.record(_hit("&en=page_view"))
    ledger.start_navigation("https://site.example/")
    ledger.record(_hit("&en=page_view"))
    assert _types(warnings) == ["Auto-Refresh / Inflation"]
    assert ledger.navigation_epoch == 2
    assert ledger.max_page_views_per_navigation() == 1
    assert ledger.total_page_views() == 2


def test_duplicate_ua_pageview_uses_ua_label():
    warnings = DedupLog()
    ledger = HitLedger(warnings)
    ledger.start_navigation()
    ua_hit = parse_hit("https://www.google-analytics.com/collect?v=1&t=pageview&tid=UA-12345678-1")
    ledger.record(ua_hit)
    ledger.record(ua_hit)
    assert _types(warnings) == ["Duplicate pageview"]


def test_samples_are_capped_and_counts_keep_growing():
    ledger = HitLedger(DedupLog())
    for _ in range(MAX_SAMPLES_PER_ID + 5):
        ledger.record(_hit("&en=scroll"))
    entry = ledger.entries["G-ABCDEF1234"]
    assert entry.total == MAX_SAMPLES_PER_ID + 5
    assert len(entry.samples) == MAX_SAMPLES_PER_ID
    assert entry.to_dict()["events"] == {"scroll": MAX_SAMPLES_PER_ID + 5}


def test_hits_without_tid_are_ignored():
    ledger = HitLedger(DedupLog())
    assert ledger.record(parse_hit("https://www.google-analytics.com/g/collect?en=page_view")) is None
    assert ledger.to_dict() == {}
