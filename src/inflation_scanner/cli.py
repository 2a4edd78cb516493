"""Command-line runner: scan one or more URLs and write JSON results."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from typing import Any, Sequence

from .config import ScanConfig
from .logging import jlog
from .scanner import health_check, scan_batch

# ============================
# Argument parsing & validation
# ============================


@dataclass(frozen=True)
class CliArgs:
    urls: list[str]
    url_file: str | None
    output: str | None
    stage_a_ms: int | None
    stage_b_ms: int | None
    navigation_timeout_ms: int | None
    user_agent: str | None
    headed: bool
    no_screenshot: bool
    evidence_dir: str | None
    debug_html: bool
    progress: bool
    health_check: bool


def _read_url_file(path: str) -> list[str]:
    with open(path, encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.lstrip().startswith("#")]


def validate_args(args: argparse.Namespace) -> None:
    if args.health_check:
        return
    if not args.urls and not args.url_file:
        raise ValueError("supply at least one URL or --url-file")
    for name in ("stage_a_ms", "stage_b_ms", "navigation_timeout_ms"):
        value = getattr(args, name)
        if value is not None and value <= 0:
            raise ValueError(f"--{name.replace('_', '-')} must be positive")


def parse_args(argv: Sequence[str] | None = None) -> CliArgs:
    p = argparse.ArgumentParser(description="Scan websites for analytics and ad-telemetry inflation")
    p.add_argument("urls", nargs="*", help="URLs to scan, in order")
    p.add_argument("--url-file", help="Text file with one URL per line ('#' comments allowed)")
    p.add_argument("--output", "-o", help="Write results JSON here instead of stdout")
    p.add_argument("--stage-a-ms", type=int, help="Stage A observation window (default: 12000)")
    p.add_argument("--stage-b-ms", type=int, help="Stage B observation window (default: 6000)")
    p.add_argument("--navigation-timeout-ms", type=int, help="Navigation timeout (default: 30000)")
    p.add_argument("--user-agent")
    p.add_argument("--headed", action="store_true", help="Run the browser with a visible window")
    p.add_argument("--no-screenshot", action="store_true", help="Skip the Stage C evidence screenshot")
    p.add_argument("--evidence-dir", help="Directory for evidence screenshots (default: media/evidence)")
    p.add_argument("--debug-html", action="store_true", help="Save page HTML after Stage A to media/debug")
    p.add_argument("--progress", action="store_true", help="Log progress snapshots while scanning")
    p.add_argument("--health-check", action="store_true", help="Only check that a browser can be launched")
    a = p.parse_args(argv)
    validate_args(a)
    return CliArgs(
        urls=list(a.urls),
        url_file=a.url_file,
        output=a.output,
        stage_a_ms=a.stage_a_ms,
        stage_b_ms=a.stage_b_ms,
        navigation_timeout_ms=a.navigation_timeout_ms,
        user_agent=a.user_agent,
        headed=a.headed,
        no_screenshot=a.no_screenshot,
        evidence_dir=a.evidence_dir,
        debug_html=a.debug_html,
        progress=a.progress,
        health_check=a.health_check,
    )


def build_config(args: CliArgs) -> ScanConfig:
    return ScanConfig.from_env(
        stage_a_ms=args.stage_a_ms,
        stage_b_ms=args.stage_b_ms,
        navigation_timeout_ms=args.navigation_timeout_ms,
        user_agent=args.user_agent,
        headless=False if args.headed else None,
        capture_screenshot=False if args.no_screenshot else None,
        evidence_dir=args.evidence_dir,
        debug_html=True if args.debug_html else None,
    )


def _log_progress(snapshot: dict[str, Any]) -> None:
    jlog(
        "info",
        event="scan_progress",
        stage=snapshot.get("stage"),
        url=snapshot.get("url"),
        risk_score=snapshot.get("riskScore"),
        verdict=snapshot.get("verdict"),
    )


def _write_output(payload: Any, output: str | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(text + "\n")
        jlog("info", event="results_written", path=output)
    else:
        sys.stdout.write(text + "\n")


async def run(args: CliArgs) -> int:
    """Execute a scan run for the supplied CLI arguments; return a process exit code."""

    if args.health_check:
        status = await health_check()
        _write_output(status, args.output)
        return 0 if status.get("browser_ok") else 1

    urls = list(args.urls)
    if args.url_file:
        urls.extend(_read_url_file(args.url_file))
    config = build_config(args)
    jlog("info", event="batch_start", urls=len(urls), stage_a_ms=config.stage_a_ms, stage_b_ms=config.stage_b_ms)
    results = await scan_batch(urls, _log_progress if args.progress else None, config=config)
    payload = [r.to_dict() for r in results]
    _write_output(payload[0] if len(payload) == 1 else payload, args.output)
    return 0


__all__ = ["CliArgs", "build_config", "parse_args", "run", "validate_args"]
