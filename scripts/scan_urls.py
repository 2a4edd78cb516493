#!/usr/bin/env python3
"""CLI shim for the website inflation scanner."""
from __future__ import annotations

import asyncio
import sys

from inflation_scanner.cli import CliArgs, parse_args, run
from inflation_scanner.logging import configure_logging, logging_context, set_global_context
from inflation_scanner.versioning import get_scanner_version

SCRIPT_NAME = "scan_urls"


def main() -> None:
    configure_logging()
    set_global_context(app="inflation_scanner", pipeline=SCRIPT_NAME)
    version = get_scanner_version()
    with logging_context(script=SCRIPT_NAME, scanner_version=version):
        args: CliArgs = parse_args()
        sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
