"""Scan configuration: observation windows, timeouts and evidence options."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_STAGE_A_MS = 12_000
DEFAULT_STAGE_B_MS = 6_000
DEFAULT_SETTLE_MS = 2_000
DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000
DEFAULT_PROGRESS_INTERVAL_S = 1.0
DEFAULT_PARITY_IDLE_TIMEOUT_MS = 8_000
DEFAULT_PARITY_OBSERVE_MS = 2_000
DEFAULT_EVIDENCE_DIR = "media/evidence"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ScanConfig:
    stage_a_ms: int = DEFAULT_STAGE_A_MS
    stage_b_ms: int = DEFAULT_STAGE_B_MS
    settle_ms: int = DEFAULT_SETTLE_MS
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    progress_interval_s: float = DEFAULT_PROGRESS_INTERVAL_S
    parity_idle_timeout_ms: int = DEFAULT_PARITY_IDLE_TIMEOUT_MS
    parity_observe_ms: int = DEFAULT_PARITY_OBSERVE_MS
    headless: bool = True
    user_agent: str | None = None
    capture_screenshot: bool = True
    evidence_dir: str = DEFAULT_EVIDENCE_DIR
    debug_html: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "ScanConfig":
        """Build a config from ``SCANNER_*`` environment variables, then apply overrides."""

        cfg = cls(
            stage_a_ms=_env_int("SCANNER_STAGE_A_MS", DEFAULT_STAGE_A_MS),
            stage_b_ms=_env_int("SCANNER_STAGE_B_MS", DEFAULT_STAGE_B_MS),
            settle_ms=_env_int("SCANNER_SETTLE_MS", DEFAULT_SETTLE_MS),
            navigation_timeout_ms=_env_int("SCANNER_NAVIGATION_TIMEOUT_MS", DEFAULT_NAVIGATION_TIMEOUT_MS),
            parity_idle_timeout_ms=_env_int("SCANNER_PARITY_IDLE_TIMEOUT_MS", DEFAULT_PARITY_IDLE_TIMEOUT_MS),
            parity_observe_ms=_env_int("SCANNER_PARITY_OBSERVE_MS", DEFAULT_PARITY_OBSERVE_MS),
            headless=_env_bool("SCANNER_HEADLESS", True),
            user_agent=os.getenv("SCANNER_USER_AGENT") or None,
            capture_screenshot=_env_bool("SCANNER_CAPTURE_SCREENSHOT", True),
            evidence_dir=os.getenv("SCANNER_EVIDENCE_DIR", DEFAULT_EVIDENCE_DIR),
            debug_html=_env_bool("SCANNER_DEBUG_HTML", False),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(cfg, **overrides) if overrides else cfg

    @property
    def stage_a_seconds(self) -> float:
        return self.stage_a_ms / 1000

    @property
    def stage_b_seconds(self) -> float:
        return self.stage_b_ms / 1000


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


__all__ = [
    "DEFAULT_EVIDENCE_DIR",
    "DEFAULT_NAVIGATION_TIMEOUT_MS",
    "DEFAULT_STAGE_A_MS",
    "DEFAULT_STAGE_B_MS",
    "ScanConfig",
]
