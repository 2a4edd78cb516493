"""Risk scoring: derived metrics, point contributions and verdict tiers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .ledger import HitLedgerEntry
from .models import DedupLog, Metrics, ScoreResult, Severity, Signal, Verdict

SUSPICIOUS_THRESHOLD = 30
HIGH_RISK_THRESHOLD = 60
MAX_SCORE = 100

RAPID_IMPRESSIONS_MIN = 5
QUERY_ID_CHURN_MIN = 3
QUERY_ID_RATIO_MIN = 0.8
POST_SCROLL_BURST_MIN = 3


def clamp_score(score: float) -> int:
    return max(0, min(MAX_SCORE, int(score)))


def verdict_from_score(score: int) -> Verdict:
    if score >= HIGH_RISK_THRESHOLD:
        return Verdict.HIGH_RISK
    if score >= SUSPICIOUS_THRESHOLD:
        return Verdict.SUSPICIOUS
    return Verdict.PASS


def update_derived_metrics(
    metrics: Metrics,
    measurement_ids: Iterable[str],
    query_ids: set[str],
    observed_seconds: float,
    context_event_counts: Mapping[str, int],
) -> Metrics:
    """Refresh the ratio/rate/set-derived fields of ``metrics`` in place."""

    metrics.unique_query_ids = len(query_ids)
    metrics.query_id_uniqueness_ratio = (
        round(metrics.unique_query_ids / metrics.ad_impression_count, 3) if metrics.ad_impression_count else 0
    )
    metrics.ad_impressions_per_second = (
        round(metrics.ad_impression_count / observed_seconds, 3) if observed_seconds else 0
    )
    metrics.unique_measurement_ids = list(measurement_ids)
    metrics.repeated_context_events = {name: count for name, count in context_event_counts.items() if count > 1}
    return metrics


def score_signals(
    metrics: Metrics,
    existing: Iterable[Signal] | None = None,
    hits_by_id: Mapping[str, HitLedgerEntry] | None = None,
) -> ScoreResult:
    """Score the current metrics.

    Signals from earlier calls are carried forward and never removed; an
    identical signal is not appended twice. The score itself reflects only the
    conditions that hold now, so a condition that has since cleared keeps its
    signal but no longer contributes points.
    """

    score = 0
    signals: DedupLog[Signal] = DedupLog(list(existing or []))

    if metrics.ad_impression_count >= RAPID_IMPRESSIONS_MIN:
        score += 30
        signals.push(Signal("rapid_ad_impressions", Severity.HIGH, "5+ ad_impression events within 12 seconds."))

    if metrics.unique_query_ids >= QUERY_ID_CHURN_MIN:
        score += 20
        signals.push(Signal("query_id_churn", Severity.MED, "Multiple unique query_id values detected."))

    if metrics.ad_impression_count > 0 and metrics.query_id_uniqueness_ratio >= QUERY_ID_RATIO_MIN:
        score += 15
        signals.push(Signal("query_id_ratio", Severity.MED, "High ratio of unique ad_impression query IDs."))

    if metrics.ad_impression_count > 0 and not metrics.has_viewability_params:
        score += 15
        signals.push(Signal("missing_viewability", Severity.MED, "No viewability parameters found in GA telemetry."))

    if len(metrics.unique_measurement_ids) > 1:
        score += 10
        signals.push(
            Signal("multiple_measurement_ids", Severity.LOW, "Multiple GA measurement IDs observed simultaneously.")
        )

    if metrics.self_referrer:
        score += 5
        signals.push(Signal("self_referrer", Severity.LOW, "GA hits reference same domain as referrer."))

    for tid, entry in (hits_by_id or {}).items():
        page_views = entry.page_views()
        if page_views > 1:
            score += 20
            signals.push(
                Signal("duplicate_pageview", Severity.HIGH, f"Measurement ID {tid} sent {page_views} page_view hits.")
            )

    score = clamp_score(score)
    return ScoreResult(score=score, signals=list(signals), verdict=verdict_from_score(score))


def apply_post_scroll_burst(result: ScoreResult, impression_delta: int, metrics: Metrics) -> ScoreResult:
    """Add the post-scroll burst contribution when impressions kept firing without viewability checks."""

    if impression_delta < POST_SCROLL_BURST_MIN or metrics.has_viewability_params:
        return result
    signals = DedupLog(result.signals)
    signals.push(
        Signal(
            "post_scroll_burst",
            Severity.MED,
            "Ad impressions continued at high rate after scroll without viewability checks.",
        )
    )
    score = clamp_score(result.score + 10)
    return ScoreResult(score=score, signals=list(signals), verdict=verdict_from_score(score))


__all__ = [
    "HIGH_RISK_THRESHOLD",
    "MAX_SCORE",
    "SUSPICIOUS_THRESHOLD",
    "apply_post_scroll_burst",
    "clamp_score",
    "score_signals",
    "update_derived_metrics",
    "verdict_from_score",
]
