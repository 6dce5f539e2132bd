"""
Live document access: render a URL in headless Chromium and read the page back.
"""
from __future__ import annotations

import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from pagelite.config import Settings, settings as default_settings
from pagelite.errors import CaptureEmpty, CaptureUnavailable
from pagelite.models import Doctype, LiveDocument

logger = logging.getLogger(__name__)

# Runs inside the page; only reads, never touches the live DOM
READ_DOCUMENT_JS = """
() => {
  const d = document.doctype;
  return {
    html: document.documentElement ? document.documentElement.outerHTML : "",
    title: document.title || "",
    url: document.URL,
    baseURI: document.baseURI,
    doctype: d ? { name: d.name, publicId: d.publicId, systemId: d.systemId } : null,
  };
}
"""


async def read_live_document(page: Page) -> LiveDocument:
    try:
        data = await page.evaluate(READ_DOCUMENT_JS)
        cookies = await page.context.cookies()
    except PlaywrightError as exc:
        raise CaptureUnavailable(f"Could not read the page: {exc}") from exc

    if not data or not data.get("html"):
        raise CaptureEmpty()

    doctype = None
    if data.get("doctype"):
        dt = data["doctype"]
        doctype = Doctype(name=dt.get("name") or "html", public_id=dt.get("publicId") or "", system_id=dt.get("systemId") or "")

    return LiveDocument(
        html=data["html"],
        url=data.get("url") or page.url,
        title=data.get("title") or "",
        base_uri=data.get("baseURI") or "",
        doctype=doctype,
        cookies=tuple(cookies),
    )


async def open_live_document(url: str, settings: Settings | None = None) -> LiveDocument:
    settings = settings or default_settings
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(
                args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-extensions"]
            )
            try:
                context = await browser.new_context(
                    viewport={"width": 1440, "height": 900},
                    user_agent=settings.user_agent,
                    locale="en-US",
                )
                page = await context.new_page()

                try:
                    await page.goto(url, wait_until="networkidle", timeout=settings.navigation_timeout_ms)
                except PlaywrightTimeoutError:
                    # networkidle never settles on chatty pages
                    logger.info("networkidle timed out for %s, retrying with domcontentloaded", url)
                    await page.goto(url, wait_until="domcontentloaded", timeout=settings.navigation_timeout_ms)

                if settings.settle_delay_ms:
                    await page.wait_for_timeout(settings.settle_delay_ms)

                return await read_live_document(page)
            finally:
                await browser.close()
    except PlaywrightError as exc:
        logger.error("Playwright failed for %s: %s", url, exc)
        raise CaptureUnavailable(f"Could not open {url}: {exc}") from exc
