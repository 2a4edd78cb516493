"""Debug artifacts written when ``SCANNER_DEBUG_HTML`` is enabled."""

from __future__ import annotations

import os

from playwright.async_api import Page

from .hashing import stable_int_hash
from .logging import jlog

DEBUG_DIR = "media/debug"


def ensure_debug_dir(path: str = DEBUG_DIR) -> str:
    """Create the debug directory if it does not exist and return the path."""

    try:
        os.makedirs(path, exist_ok=True)
    except Exception:
        pass
    return path


def debug_label(url: str) -> str:
    return f"{stable_int_hash(url):08x}"


async def ensure_debug_html(page: Page, url: str, stage: str) -> str | None:
    """Persist the current page HTML for later debugging (best effort); return the file path."""

    try:
        ensure_debug_dir()
        html = await page.content()
        path = os.path.join(DEBUG_DIR, f"page_{debug_label(url)}_{stage}.html")
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(html)
        return path
    except Exception as exc:  # pragma: no cover - logging only
        jlog("error", event="debug_save_html_error", url=url, stage=stage, error=str(exc))
        return None


__all__ = ["DEBUG_DIR", "debug_label", "ensure_debug_dir", "ensure_debug_html"]
