"""Frame geometry analysis: pixel stuffing, hidden frames and ad stacking."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

from .errors import FrameAccessError
from .logging import jlog
from .models import BoundingBox, DedupLog, FraudWarning, FrameRecord, Severity
from .patterns import SAFE_SYNC_KEYWORDS

TINY_MAX_PX = 5
PIXEL_STUFFED_MAX_AREA = 4
STACKING_MIN_PX = 40
STACKING_MIN_RATIO = 0.60

_STYLE_JS = """
(el) => {
  const styles = window.getComputedStyle(el);
  return { opacity: styles.opacity, display: styles.display, visibility: styles.visibility };
}
"""


def _round_px(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_safe_sync_pixel(url: str, width: int, height: int) -> bool:
    """Identity-sync beacons: tiny frames whose URL names a known sync endpoint."""

    if width > TINY_MAX_PX or height > TINY_MAX_PX:
        return False
    lowered = (url or "").lower()
    return any(keyword in lowered for keyword in SAFE_SYNC_KEYWORDS)


def _opacity_is_zero(opacity: Any) -> bool:
    try:
        return float(opacity) == 0
    except (TypeError, ValueError):
        return False


def classify_frame(url: str, box: BoundingBox, style: dict[str, Any] | None = None) -> FrameRecord:
    style = style or {}
    width = _round_px(box.width or 0)
    height = _round_px(box.height or 0)
    display = str(style.get("display") or "")
    visibility = str(style.get("visibility") or "")
    opacity = style.get("opacity", "1")
    return FrameRecord(
        url=url or "about:blank",
        box=box,
        width=width,
        height=height,
        display=display,
        visibility=visibility,
        opacity=str(opacity),
        is_tiny=width <= TINY_MAX_PX and height <= TINY_MAX_PX,
        is_pixel_stuffed=width <= 1 or height <= 1 or width * height <= PIXEL_STUFFED_MAX_AREA,
        is_hidden=display == "none" or visibility == "hidden" or _opacity_is_zero(opacity),
        is_safe_sync=is_safe_sync_pixel(url, width, height),
    )


def compute_overlap(first: BoundingBox, second: BoundingBox) -> float:
    """Intersection area over the smaller box's area; 0 when either box is under 40x40."""

    for box in (first, second):
        if _round_px(box.width) < STACKING_MIN_PX or _round_px(box.height) < STACKING_MIN_PX:
            return 0.0
    x_overlap = max(0.0, min(first.x + first.width, second.x + second.width) - max(first.x, second.x))
    y_overlap = max(0.0, min(first.y + first.height, second.y + second.height) - max(first.y, second.y))
    smaller = min(first.area, second.area)
    if smaller == 0:
        return 0.0
    return (x_overlap * y_overlap) / smaller


def frame_warnings(records: Sequence[FrameRecord]) -> list[FraudWarning]:
    """Warnings for suspicious individual frames followed by pairwise stacking warnings."""

    out: list[FraudWarning] = []
    for rec in records:
        if not rec.is_suspicious:
            continue
        out.append(
            FraudWarning(
                type="Pixel Stuffing (1x1)" if rec.is_pixel_stuffed else "Hidden/Tiny Frame",
                details=f"Frame size {rec.width}x{rec.height}px{' hidden' if rec.is_hidden else ''}",
                url=rec.url[:120],
                risk=Severity.HIGH if rec.is_pixel_stuffed else Severity.MED,
            )
        )
    for i, first in enumerate(records):
        for second in records[i + 1 :]:
            ratio = compute_overlap(first.box, second.box)
            if ratio >= STACKING_MIN_RATIO:
                out.append(
                    FraudWarning(
                        type="Ad Stacking Detected",
                        details=f"Overlap {round(ratio * 100)}% between ad frames.",
                        url=f"{first.url[:60]} | {second.url[:60]}",
                        risk=Severity.HIGH,
                    )
                )
    return out


async def measure_frame(frame) -> FrameRecord:
    """Read a child frame's element box and computed style; raise FrameAccessError when unavailable."""

    try:
        element = await frame.frame_element()
        raw_box = await element.bounding_box() if element else None
        if not raw_box:
            raise FrameAccessError("frame has no layout box")
        style = await element.evaluate(_STYLE_JS)
        url = frame.url or "about:blank"
    except FrameAccessError:
        raise
    except Exception as exc:
        raise FrameAccessError(f"frame not accessible: {exc}") from exc
    box = BoundingBox(
        x=float(raw_box.get("x", 0)),
        y=float(raw_box.get("y", 0)),
        width=float(raw_box.get("width", 0)),
        height=float(raw_box.get("height", 0)),
    )
    return classify_frame(url, box, style if isinstance(style, dict) else None)


async def analyze_frames(page, warnings: DedupLog[FraudWarning]) -> list[FrameRecord]:
    """Measure every child frame once and push the resulting warnings."""

    records: list[FrameRecord] = []
    for frame in page.frames:
        if frame.parent_frame is None:
            continue
        try:
            records.append(await measure_frame(frame))
        except FrameAccessError as exc:
            jlog("debug", event="frame_skipped", frame_url=getattr(frame, "url", ""), error=str(exc))
    for warning in frame_warnings(records):
        warnings.push(warning)
    jlog("info", event="frames_analyzed", frames=len(records))
    return records


__all__ = [
    "STACKING_MIN_PX",
    "STACKING_MIN_RATIO",
    "analyze_frames",
    "classify_frame",
    "compute_overlap",
    "frame_warnings",
    "is_safe_sync_pixel",
    "measure_frame",
]
