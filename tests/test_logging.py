import json
import logging

import pytest

from inflation_scanner.logging import logging_context, timed


def _records(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "scanner"]


def test_timed_logs_duration_and_attached_fields(caplog):
    caplog.set_level(logging.INFO, logger="scanner")
    with logging_context(url="https://site.example/"):
        with timed("tag_parity", stage="A") as fields:
            fields["flags"] = ["MULTIPLE_GA4"]

    (record,) = _records(caplog)
    assert record["event"] == "tag_parity_done"
    assert record["url"] == "https://site.example/"
    assert record["stage"] == "A"
    assert record["flags"] == ["MULTIPLE_GA4"]
    assert record["duration_ms"] >= 0


def test_timed_logs_failure_and_reraises(caplog):
    caplog.set_level(logging.INFO, logger="scanner")
    with pytest.raises(RuntimeError):
        with timed("stage_c_evidence", url="https://site.example/"):
            raise RuntimeError("page crashed")

    (record,) = _records(caplog)
    assert record["event"] == "stage_c_evidence_failed"
    assert record["error"] == "page crashed"
    assert caplog.records[-1].levelno == logging.WARNING


def test_debug_records_are_skipped_below_level(caplog):
    caplog.set_level(logging.INFO, logger="scanner")
    with timed("frame_scan", level="debug"):
        pass
    assert _records(caplog) == []
