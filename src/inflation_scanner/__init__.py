"""High-level entrypoints for the telemetry inflation scanner."""

from .config import ScanConfig
from .errors import FrameAccessError, NavigationError, ScanError
from .ids import Classification, DiscoveryContext, IdType, TagInventory, extract_tags_from_text
from .logging import configure_logging, jlog, logging_context, scanlog, set_global_context, timed
from .models import FraudWarning, Metrics, Severity, Signal, Stage, Verdict
from .scanner import ProgressEmitter, ScanResult, WebsiteScan, health_check, run_scan, scan_batch, scan_website
from .scoring import score_signals, verdict_from_score
from .versioning import get_scanner_version

__all__ = [
    "Classification",
    "configure_logging",
    "DiscoveryContext",
    "extract_tags_from_text",
    "FrameAccessError",
    "FraudWarning",
    "get_scanner_version",
    "health_check",
    "IdType",
    "jlog",
    "logging_context",
    "Metrics",
    "NavigationError",
    "ProgressEmitter",
    "run_scan",
    "scan_batch",
    "scan_website",
    "ScanConfig",
    "ScanError",
    "scanlog",
    "ScanResult",
    "score_signals",
    "set_global_context",
    "Severity",
    "Signal",
    "Stage",
    "TagInventory",
    "timed",
    "Verdict",
    "verdict_from_score",
    "WebsiteScan",
]
