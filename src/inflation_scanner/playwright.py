"""Playwright helpers shared by the scan stages."""

from __future__ import annotations

from playwright.async_api import Page

from .logging import jlog

AUTO_SCROLL_STEP_PX = 150
AUTO_SCROLL_MAX_STEPS = 120
AUTO_SCROLL_INTERVAL_MS = 150

_AUTO_SCROLL_JS = """
async ([step, maxSteps, interval]) => {
  await new Promise((resolve) => {
    let scrolled = 0;
    let steps = 0;
    const timer = setInterval(() => {
      window.scrollBy(0, step);
      scrolled += step;
      steps += 1;
      const height = document.body ? document.body.scrollHeight : 0;
      if (scrolled >= height - window.innerHeight || steps >= maxSteps) {
        clearInterval(timer);
        resolve();
      }
    }, interval);
  });
}
"""

_HALF_SCROLL_JS = """
() => window.scrollTo({
  top: (document.body ? document.body.scrollHeight : 0) / 2,
  behavior: 'smooth',
})
"""


async def wait_assets_ready(page: Page) -> None:
    """Wait for fonts and images to settle before taking screenshots."""

    try:
        await page.evaluate(
            """
            () => Promise.all([
                (document.fonts && document.fonts.ready) ? document.fonts.ready : Promise.resolve(),
                Promise.all(
                    Array.from(document.images || []).map(img => {
                        if (img.complete) return Promise.resolve();
                        return new Promise(res => {
                            img.addEventListener('load', () => res(), { once: true });
                            img.addEventListener('error', () => res(), { once: true });
                        });
                    })
                )
            ])
            """
        )
    except Exception:
        pass


async def perform_half_scroll(page: Page) -> None:
    try:
        await page.evaluate(_HALF_SCROLL_JS)
    except Exception as exc:
        jlog("debug", event="half_scroll_failed", error=str(exc))


async def auto_scroll(
    page: Page,
    *,
    step: int = AUTO_SCROLL_STEP_PX,
    max_steps: int = AUTO_SCROLL_MAX_STEPS,
    interval_ms: int = AUTO_SCROLL_INTERVAL_MS,
) -> None:
    """Scroll to the bottom of the page in fixed steps so lazy ad slots load."""

    try:
        await page.evaluate(_AUTO_SCROLL_JS, [step, max_steps, interval_ms])
    except Exception as exc:
        jlog("debug", event="auto_scroll_failed", error=str(exc))


async def cleanup_playwright(context, browser) -> None:
    """Close the browser resources; errors during teardown are ignored."""

    try:
        if context:
            await context.close()
    except Exception:
        pass
    try:
        if browser:
            await browser.close()
    except Exception:
        pass


CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--disable-gpu",
]


__all__ = [
    "AUTO_SCROLL_INTERVAL_MS",
    "AUTO_SCROLL_MAX_STEPS",
    "AUTO_SCROLL_STEP_PX",
    "CHROMIUM_LAUNCH_ARGS",
    "auto_scroll",
    "cleanup_playwright",
    "perform_half_scroll",
    "wait_assets_ready",
]
