import asyncio

import pytest
from inflation_scanner.errors import FrameAccessError
from inflation_scanner.frames import (
    analyze_frames,
    classify_frame,
    compute_overlap,
    frame_warnings,
    is_safe_sync_pixel,
    measure_frame,
)
from inflation_scanner.models import BoundingBox, DedupLog, Severity

AD_URL = "https://ads.example.com/creative"
VISIBLE = {"display": "block", "visibility": "visible", "opacity": "1"}


class FakeElement:
    def __init__(self, box, style=None):
        self._box = box
        self._style = style or VISIBLE

    async def bounding_box(self):
        return self._box

    async def evaluate(self, script, *args):
        return self._style


class FakeFrame:
    def __init__(self, url, element=None, *, parent=None, error=None):
        self.url = url
        self.parent_frame = parent
        self._element = element
        self._error = error

    async def frame_element(self):
        if self._error:
            raise self._error
        return self._element


class FakePage:
    def __init__(self, frames):
        self.frames = frames


def _box(x, y, w, h):
    return BoundingBox(x=x, y=y, width=w, height=h)


def test_usersync_pixel_is_exempt():
    assert is_safe_sync_pixel("https://match.example.com/usersync?uid=1", 1, 1)
    record = classify_frame("https://match.example.com/usersync?uid=1", _box(0, 0, 1, 1), VISIBLE)
    assert record.is_tiny and record.is_safe_sync
    assert not record.is_suspicious
    assert frame_warnings([record]) == []


def test_sync_keyword_does_not_exempt_large_frames():
    assert not is_safe_sync_pixel("https://match.example.com/usersync", 300, 250)


def test_pixel_stuffing_on_1x1_frame():
    warnings = frame_warnings([classify_frame(AD_URL, _box(0, 0, 1, 1), VISIBLE)])
    assert len(warnings) == 1
    assert warnings[0].type == "Pixel Stuffing (1x1)"
    assert warnings[0].details == "Frame size 1x1px"
    assert warnings[0].risk is Severity.HIGH


def test_same_frame_at_50px_is_clean():
    assert frame_warnings([classify_frame(AD_URL, _box(0, 0, 50, 50), VISIBLE)]) == []


def test_hidden_frame_is_flagged_with_medium_risk():
    record = classify_frame(AD_URL, _box(0, 0, 300, 250), {"display": "none", "visibility": "visible", "opacity": "1"})
    (warning,) = frame_warnings([record])
    assert warning.type == "Hidden/Tiny Frame"
    assert warning.details == "Frame size 300x250px hidden"
    assert warning.risk is Severity.MED


def test_zero_opacity_counts_as_hidden():
    record = classify_frame(AD_URL, _box(0, 0, 300, 250), {"display": "block", "visibility": "visible", "opacity": "0"})
    assert record.is_hidden


def test_overlap_ratios():
    assert compute_overlap(_box(0, 0, 100, 100), _box(0, 0, 100, 100)) == pytest.approx(1.0)
    assert compute_overlap(_box(0, 0, 100, 100), _box(200, 200, 100, 100)) == 0.0
    assert compute_overlap(_box(0, 0, 100, 100), _box(50, 0, 100, 100)) == pytest.approx(0.5)


def test_small_boxes_never_stack():
    assert compute_overlap(_box(0, 0, 30, 30), _box(0, 0, 30, 30)) == 0.0


def test_stacked_frames_warning():
    first = classify_frame("https://a.example/ad1", _box(10, 10, 300, 250), VISIBLE)
    second = classify_frame("https://b.example/ad2", _box(10, 10, 300, 250), VISIBLE)
    (warning,) = frame_warnings([first, second])
    assert warning.type == "Ad Stacking Detected"
    assert warning.details == "Overlap 100% between ad frames."
    assert warning.url == "https://a.example/ad1 | https://b.example/ad2"


def test_measure_frame_wraps_access_errors():
    frame = FakeFrame(AD_URL, error=RuntimeError("detached"), parent=object())
    with pytest.raises(FrameAccessError):
        asyncio.run(measure_frame(frame))


def test_analyze_frames_skips_main_and_inaccessible_frames():
    main = FakeFrame("https://site.example/")
    child = FakeFrame(AD_URL, FakeElement({"x": 0, "y": 0, "width": 1, "height": 1}), parent=main)
    broken = FakeFrame("https://gone.example/", error=RuntimeError("detached"), parent=main)
    no_box = FakeFrame("https://nobox.example/", FakeElement(None), parent=main)
    warnings = DedupLog()

    records = asyncio.run(analyze_frames(FakePage([main, child, broken, no_box]), warnings))

    assert [r.url for r in records] == [AD_URL]
    assert [w.type for w in warnings] == ["Pixel Stuffing (1x1)"]


def test_analyze_frames_dedups_repeat_runs():
    main = FakeFrame("https://site.example/")
    child = FakeFrame(AD_URL, FakeElement({"x": 0, "y": 0, "width": 1, "height": 1}), parent=main)
    warnings = DedupLog()
    asyncio.run(analyze_frames(FakePage([main, child]), warnings))
    asyncio.run(analyze_frames(FakePage([main, child]), warnings))
    assert len(warnings) == 1
