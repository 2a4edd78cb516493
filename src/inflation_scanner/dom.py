"""Harvest tag identifiers from the rendered DOM."""

from __future__ import annotations

from playwright.async_api import Page

from .ids import DiscoveryContext, TagInventory, extract_tags_from_text
from .logging import jlog

INLINE_SCRIPT_BUDGET = 200_000

_SCRIPTS_JS = """
(budget) => {
  const scripts = Array.from(document.scripts).map(script => ({
    src: script.src || '',
    text: script.src ? '' : script.textContent || ''
  }));
  const inlineChunks = [];
  for (const script of scripts) {
    if (script.src) continue;
    if (budget <= 0) break;
    const chunk = script.text.slice(0, budget);
    inlineChunks.push(chunk);
    budget -= chunk.length;
  }
  return { srcs: scripts.map(s => s.src).filter(Boolean), inline: inlineChunks.join('\\n') };
}
"""


async def collect_dom_tag_inventory(page: Page, inventory: TagInventory) -> int:
    """Classify ids found in script ``src`` attributes and inline script text; return scripts read."""

    try:
        data = await page.evaluate(_SCRIPTS_JS, INLINE_SCRIPT_BUDGET)
        srcs = list(data.get("srcs") or [])
        for src in srcs:
            extract_tags_from_text(src, inventory, DiscoveryContext.NETWORK_SCRIPT_SRC)
        extract_tags_from_text(data.get("inline") or "", inventory, DiscoveryContext.DOM_INLINE_SCRIPT)
        return len(srcs)
    except Exception as exc:
        jlog("warning", event="dom_inventory_failed", error=str(exc))
        return 0


async def harvest_static_tags(page: Page, inventory: TagInventory) -> None:
    """Classify ids found anywhere in the serialized page HTML."""

    try:
        html = await page.content()
        extract_tags_from_text(html, inventory, DiscoveryContext.DOM_HTML)
    except Exception as exc:
        jlog("warning", event="static_tag_harvest_failed", error=str(exc))


__all__ = ["INLINE_SCRIPT_BUDGET", "collect_dom_tag_inventory", "harvest_static_tags"]
