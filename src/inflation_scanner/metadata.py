"""Metadata for saved scan evidence."""

from __future__ import annotations

from collections import OrderedDict
from typing import OrderedDict as OrderedDictType


def build_evidence_metadata(
    *,
    url: str,
    stage: str,
    path: str,
    width: int,
    height: int,
    sha256: str,
    phash: str,
    scanner_version: str,
    captured_at: str | None = None,
) -> OrderedDictType[str, str]:
    """Return metadata with deterministic ordering for auditability."""

    md: OrderedDictType[str, str] = OrderedDict()
    md["url"] = url
    md["stage"] = stage
    md["path"] = path
    md["width"] = str(width)
    md["height"] = str(height)
    md["sha256"] = sha256
    md["phash"] = phash
    md["scanner_version"] = scanner_version
    if captured_at:
        md["captured_at"] = captured_at
    return md


__all__ = ["build_evidence_metadata"]
