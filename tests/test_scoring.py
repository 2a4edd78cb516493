from collections import Counter

import pytest
from inflation_scanner.ledger import HitLedgerEntry
from inflation_scanner.models import Metrics, ScoreResult, Verdict
from inflation_scanner.scoring import (
    apply_post_scroll_burst,
    clamp_score,
    score_signals,
    update_derived_metrics,
    verdict_from_score,
)


def _inflated_metrics() -> Metrics:
    return Metrics(ad_impression_count=5, unique_query_ids=5, query_id_uniqueness_ratio=1.0)


def test_clamp_score_bounds():
    assert clamp_score(-5) == 0
    assert clamp_score(42) == 42
    assert clamp_score(150) == 100


@pytest.mark.parametrize(
    "score,verdict",
    [(0, Verdict.PASS), (29, Verdict.PASS), (30, Verdict.SUSPICIOUS), (59, Verdict.SUSPICIOUS), (60, Verdict.HIGH_RISK), (100, Verdict.HIGH_RISK)],
)
def test_verdict_boundaries(score, verdict):
    assert verdict_from_score(score) is verdict


def test_clean_metrics_pass():
    result = score_signals(Metrics())
    assert result.score == 0
    assert result.signals == []
    assert result.verdict is Verdict.PASS


def test_inflated_impressions_score_high_risk():
    result = score_signals(_inflated_metrics())
    assert result.score == 80
    assert result.verdict is Verdict.HIGH_RISK
    assert [s.id for s in result.signals] == [
        "rapid_ad_impressions",
        "query_id_churn",
        "query_id_ratio",
        "missing_viewability",
    ]


def test_every_contribution_together_stays_clamped():
    metrics = _inflated_metrics()
    metrics.unique_measurement_ids = ["G-AAAAAAAAAA", "G-BBBBBBBBBB"]
    metrics.self_referrer = True
    ledger = {"G-AAAAAAAAAA": HitLedgerEntry(total=3, events=Counter(page_view=3))}
    result = score_signals(metrics, hits_by_id=ledger)
    assert result.score == 100
    assert "duplicate_pageview" in [s.id for s in result.signals]


def test_signals_are_carried_forward_but_score_reflects_current_metrics():
    first = score_signals(_inflated_metrics())
    again = score_signals(Metrics(), existing=first.signals)
    assert again.score == 0
    assert again.verdict is Verdict.PASS
    assert again.signals == first.signals


def test_rescoring_does_not_duplicate_signals():
    first = score_signals(_inflated_metrics())
    second = score_signals(_inflated_metrics(), existing=first.signals)
    assert len(second.signals) == len(first.signals)


def test_update_derived_metrics():
    metrics = Metrics(ad_impression_count=3)
    update_derived_metrics(metrics, ["G-AAAAAAAAAA"], {"a", "b"}, 12.0, Counter(scroll=2, click=1))
    assert metrics.unique_query_ids == 2
    assert metrics.query_id_uniqueness_ratio == 0.667
    assert metrics.ad_impressions_per_second == 0.25
    assert metrics.unique_measurement_ids == ["G-AAAAAAAAAA"]
    assert metrics.repeated_context_events == {"scroll": 2}


def test_update_derived_metrics_without_impressions_or_time():
    metrics = update_derived_metrics(Metrics(), [], set(), 0, {})
    assert metrics.query_id_uniqueness_ratio == 0
    assert metrics.ad_impressions_per_second == 0


def test_post_scroll_burst():
    base = ScoreResult(score=50, signals=[], verdict=Verdict.SUSPICIOUS)
    bumped = apply_post_scroll_burst(base, 3, Metrics())
    assert bumped.score == 60
    assert bumped.verdict is Verdict.HIGH_RISK
    assert [s.id for s in bumped.signals] == ["post_scroll_burst"]

    assert apply_post_scroll_burst(base, 2, Metrics()) is base
    assert apply_post_scroll_burst(base, 5, Metrics(has_viewability_params=True)) is base


def test_post_scroll_burst_is_clamped():
    base = ScoreResult(score=95, signals=[], verdict=Verdict.HIGH_RISK)
    assert apply_post_scroll_burst(base, 4, Metrics()).score == 100
