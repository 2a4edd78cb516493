"""Parse GA/UA collect requests into :class:`TelemetryHit` records."""

from __future__ import annotations

import time
import urllib.parse
from typing import Iterable

from .models import TelemetryHit
from .patterns import VIEWABILITY_KEYWORDS

MAX_BODY_CHARS = 5000

_DIRECT_FIELDS = {"tid": "tid", "en": "en", "dl": "dl", "dr": "dr", "dt": "dt", "sid": "sid", "_p": "p"}


def _mentions_viewability(*values: str) -> bool:
    lowered = [v.lower() for v in values]
    return any(term in v for term in VIEWABILITY_KEYWORDS for v in lowered)


def _absorb(pairs: Iterable[tuple[str, str]], fields: dict, ep: dict[str, str]) -> None:
    for key, value in pairs:
        if not isinstance(value, str) or value == "":
            continue
        if key in _DIRECT_FIELDS:
            fields[_DIRECT_FIELDS[key]] = value
        elif key == "t":
            fields["t"] = value
            if value == "pageview":
                fields["ua_page_view"] = True
        elif key.startswith("ep."):
            ep_key = key[3:]
            ep[ep_key] = value
            if _mentions_viewability(ep_key, value):
                fields["has_viewability"] = True
        elif _mentions_viewability(key):
            fields["has_viewability"] = True


def parse_hit(url: str, post_data: str | None = None, *, timestamp: float | None = None) -> TelemetryHit | None:
    """Return the telemetry carried by an analytics request, or None if it cannot be parsed.

    Query-string parameters are read first; a URL-encoded body under
    ``MAX_BODY_CHARS`` is layered on top so batched GA4 payloads contribute
    their event parameters too.
    """

    try:
        parsed = urllib.parse.urlsplit(url)
        if not parsed.scheme or not parsed.netloc:
            return None
        fields: dict = {}
        ep: dict[str, str] = {}
        _absorb(urllib.parse.parse_qsl(parsed.query, keep_blank_values=True), fields, ep)
        if post_data and len(post_data) < MAX_BODY_CHARS:
            _absorb(urllib.parse.parse_qsl(post_data, keep_blank_values=True), fields, ep)
        return TelemetryHit(
            timestamp=time.time() if timestamp is None else timestamp,
            ep=ep,
            **fields,
        )
    except (TypeError, ValueError):
        return None


__all__ = ["MAX_BODY_CHARS", "parse_hit"]
