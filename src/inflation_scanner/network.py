"""Classify outgoing requests: ad hosts, tag endpoints, collect hits and embedded ids."""

from __future__ import annotations

import time

from .hits import parse_hit
from .ids import DiscoveryContext, IdType
from .logging import jlog
from .models import FraudWarning, NetworkEvent, TelemetryHit
from .patterns import (
    AD_HOST_PATTERNS,
    AW_TOKEN_RE,
    GA_COLLECT_PATHS,
    GA_ENDPOINT_HOSTS,
    URL_FB_PIXEL_ID_RE,
    URL_GTAG_GA4_ID_RE,
    URL_GTM_ID_RE,
)
from .session import MAX_TAG_ENDPOINT_SAMPLES, MAX_TELEMETRY_REQUESTS, ScanContext
from .urls import resolve_host


def is_ga_endpoint(url: str) -> bool:
    lowered = (url or "").lower()
    return any(host in lowered for host in GA_ENDPOINT_HOSTS) and any(path in lowered for path in GA_COLLECT_PATHS)


def is_tag_endpoint(host: str, lower_url: str) -> bool:
    if not host:
        return False
    lh = host.lower()
    if ("google-analytics.com" in lh or "stats.g.doubleclick.net" in lh) and "/collect" in lower_url:
        return True
    if "googletagmanager.com" in lh and ("gtm.js" in lower_url or "gtag/js" in lower_url):
        return True
    if "facebook.com" in lh and "/tr" in lower_url:
        return True
    if "connect.facebook.net" in lh and "fbevents.js" in lower_url:
        return True
    return False


def is_ad_host(host: str) -> bool:
    lowered = (host or "").lower()
    return bool(lowered) and any(lowered.endswith(p) or p in lowered for p in AD_HOST_PATTERNS)


def event_from_request(request) -> NetworkEvent:
    """Snapshot a Playwright request into a :class:`NetworkEvent`."""

    url = request.url
    try:
        post_data = request.post_data
    except Exception:  # binary bodies cannot be decoded as text
        post_data = None
    return NetworkEvent(
        url=url,
        host=resolve_host(url),
        method=request.method,
        resource_type=request.resource_type,
        post_data=post_data,
        timestamp=time.time(),
    )


def extract_url_ids(ctx: ScanContext, event: NetworkEvent) -> None:
    """Forward container/pixel/account ids embedded in the request URL to the ID classifier."""

    url = event.url
    lower_url = url.lower()
    host = event.host

    if "facebook.com" in host and "/tr" in url:
        match = URL_FB_PIXEL_ID_RE.search(url)
        if match:
            ctx.inventory.add(IdType.FB, match.group(1), DiscoveryContext.NETWORK_COLLECT)

    if "googletagmanager.com" in host:
        match = URL_GTM_ID_RE.search(url)
        if match:
            ctx.inventory.add(IdType.GTM, match.group(1), DiscoveryContext.NETWORK_SCRIPT_SRC)
        if "gtag/js" in lower_url:
            match = URL_GTAG_GA4_ID_RE.search(url)
            if match:
                ctx.inventory.add(IdType.GA4, match.group(1), DiscoveryContext.NETWORK_SCRIPT_SRC)

    if "aw-" in lower_url:
        match = AW_TOKEN_RE.search(url)
        if match:
            ctx.inventory.add(IdType.AW, match.group(0), DiscoveryContext.NETWORK_COLLECT)


def classify_request(ctx: ScanContext, event: NetworkEvent) -> TelemetryHit | None:
    """Apply every request-level detector; return the parsed hit for GA collect requests."""

    url = event.url
    host = event.host
    lower_url = url.lower()

    tag_endpoint = is_tag_endpoint(host, lower_url)
    ga_endpoint = is_ga_endpoint(url)

    if tag_endpoint or ga_endpoint or "facebook.com" in host or "googletagmanager.com" in host:
        if len(ctx.telemetry_requests) < MAX_TELEMETRY_REQUESTS:
            ctx.telemetry_requests.append(url)

    if host:
        ctx.host_counts[host] += 1
        if is_ad_host(host):
            ctx.metrics.ad_request_count += 1
            ctx.advertisers.record(url)

    extract_url_ids(ctx, event)

    if "scroll" in lower_url and not ctx.scanner_scrolling:
        ctx.warnings.push(
            FraudWarning(
                type="Phantom Scroll (Telemetry Fraud)",
                details="Scroll telemetry fired while scanner was idle.",
                url=url[:120],
            )
        )

    if tag_endpoint and len(ctx.diagnostics.tag_endpoint_samples) < MAX_TAG_ENDPOINT_SAMPLES:
        ctx.diagnostics.tag_endpoint_samples.append({"t": event.timestamp, "url": url[:200], "method": event.method})

    if not ga_endpoint:
        return None
    hit = parse_hit(url, event.post_data, timestamp=event.timestamp)
    if hit is None:
        jlog("debug", event="ga_hit_dropped", url=url[:200])
        return None
    ctx.process_hit(hit)
    return hit


__all__ = [
    "classify_request",
    "event_from_request",
    "extract_url_ids",
    "is_ad_host",
    "is_ga_endpoint",
    "is_tag_endpoint",
]
