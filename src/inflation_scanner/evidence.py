"""Stage C evidence: a hashed full-page screenshot with a metadata sidecar."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any

from playwright.async_api import Page

from .hashing import hash_screenshot, stable_int_hash
from .logging import jlog
from .metadata import build_evidence_metadata
from .playwright import wait_assets_ready
from .versioning import get_scanner_version

UTC = getattr(datetime, "UTC", timezone.utc)


def evidence_basename(url: str, captured_at: datetime) -> str:
    return f"evidence_{stable_int_hash(url):08x}_{captured_at.strftime('%Y%m%dT%H%M%S')}"


def write_evidence(png_bytes: bytes, *, url: str, stage: str, evidence_dir: str) -> dict[str, Any]:
    """Normalize and hash ``png_bytes``, write the PNG plus JSON metadata, and return the metadata."""

    norm_png, sha, phash, width, height = hash_screenshot(png_bytes)
    captured_at = datetime.now(UTC)
    os.makedirs(evidence_dir, exist_ok=True)
    base = os.path.join(evidence_dir, evidence_basename(url, captured_at))
    png_path = f"{base}.png"
    with open(png_path, "wb") as fh:
        fh.write(norm_png)
    md = build_evidence_metadata(
        url=url,
        stage=stage,
        path=png_path,
        width=width,
        height=height,
        sha256=sha,
        phash=phash,
        scanner_version=get_scanner_version(),
        captured_at=captured_at.isoformat(),
    )
    with open(f"{base}.json", "w", encoding="utf-8") as fh:
        json.dump(md, fh, indent=2)
    return dict(md)


async def capture_evidence_screenshot(page: Page, url: str, *, stage: str, evidence_dir: str) -> dict[str, Any] | None:
    """Best-effort full-page screenshot; returns its metadata or ``None`` on failure."""

    try:
        await wait_assets_ready(page)
        png_bytes = await page.screenshot(full_page=True, type="png")
        md = write_evidence(png_bytes, url=url, stage=stage, evidence_dir=evidence_dir)
        jlog("info", event="evidence_screenshot_saved", url=url, path=md["path"], sha256=md["sha256"])
        return md
    except Exception as exc:
        jlog("warning", event="evidence_screenshot_failed", url=url, error=str(exc))
        return None


__all__ = ["capture_evidence_screenshot", "evidence_basename", "write_evidence"]
