"""URL helpers for observed requests."""

from __future__ import annotations

import urllib.parse

from .patterns import AD_SLOT_PARAMS

MAX_SLOT_ID_CHARS = 120


def resolve_host(url: str) -> str:
    """Return the lower-cased hostname without a leading ``www.``; empty when unparsable."""

    try:
        if not url:
            return ""
        host = urllib.parse.urlsplit(url).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def ad_slot_from_url(url: str) -> tuple[str, str] | None:
    """Return ``(advertiser_host, ad_slot_id)`` for an ad request, or None if unparsable."""

    try:
        parsed = urllib.parse.urlsplit(url)
        hostname = parsed.hostname
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    advertiser = (hostname or "").lower()
    if advertiser.startswith("www."):
        advertiser = advertiser[4:]
    advertiser = advertiser or "unknown-advertiser"

    qs = urllib.parse.parse_qs(parsed.query, keep_blank_values=False)
    candidate = None
    for key in AD_SLOT_PARAMS:
        values = qs.get(key)
        if values and values[0]:
            candidate = values[0]
            break
    if candidate is None:
        candidate = parsed.path
    slot = candidate[:MAX_SLOT_ID_CHARS] if candidate else "unknown-slot"
    return advertiser, slot


__all__ = ["MAX_SLOT_ID_CHARS", "ad_slot_from_url", "resolve_host"]
