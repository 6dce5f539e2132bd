"""
Snapshot builder: turns a live page into one self-contained, script-free HTML file.

  1. clone the markup into a private tree
  2. drop <script> / <noscript>
  3. inline <link rel="stylesheet"> as <style data-pagelite-source=...>
  4. rewrite src / poster / srcset to absolute URLs
  5. make sure a UTF-8 charset is declared
  6. add the generator comment and the source/time banner
  7. serialize with the original doctype
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Comment, Doctype as SoupDoctype, Tag
from jinja2 import Environment, FileSystemLoader, select_autoescape

from pagelite.config import Settings, settings as default_settings
from pagelite.errors import CaptureEmpty, ResourceInlineFailure
from pagelite.models import PLACEHOLDER_TITLE, CaptureResult, LiveDocument, doctype_string

logger = logging.getLogger(__name__)

GENERATOR_COMMENT = " Saved by PageLite - lightweight web page archiver "
SOURCE_ATTR = "data-pagelite-source"
BANNER_TIME_FORMAT = "%Y/%m/%d %H:%M:%S"

STRIPPED_TAGS = ["script", "noscript"]
SRC_TAGS = ["img", "video", "audio", "source", "iframe"]
INLINE_SCHEMES = ("data:", "blob:")

_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).resolve().parent.parent / "templates")),
    autoescape=select_autoescape(["html"]),
)


def absolutize(value: str, base: str) -> str:
    """Resolve a resource reference against the document base.

    data:/blob: URIs and anything that fails to resolve come back unchanged.
    """
    stripped = value.strip()
    if not stripped or stripped.lower().startswith(INLINE_SCHEMES):
        return value
    try:
        return urljoin(base, stripped)
    except ValueError:
        return value


def parse_srcset(value: str) -> list[tuple[str, str]]:
    """Split a srcset into (url, descriptor) candidates.

    A URL runs until whitespace, so commas inside data: URIs survive.
    """
    candidates: list[tuple[str, str]] = []
    pos, end = 0, len(value)
    while pos < end:
        while pos < end and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= end:
            break

        start = pos
        while pos < end and not value[pos].isspace():
            pos += 1
        url = value[start:pos]

        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            start, depth = pos, 0
            while pos < end:
                ch = value[pos]
                if ch == "(":
                    depth += 1
                elif ch == ")" and depth:
                    depth -= 1
                elif ch == "," and not depth:
                    break
                pos += 1
            descriptor = " ".join(value[start:pos].split())

        if url:
            candidates.append((url, descriptor))
    return candidates


def absolutize_srcset(value: str, base: str) -> str:
    parts = []
    for url, descriptor in parse_srcset(value):
        url = absolutize(url, base)
        parts.append(f"{url} {descriptor}" if descriptor else url)
    return ", ".join(parts)


def _is_stylesheet(link: Tag) -> bool:
    rel = link.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return any(token.lower() == "stylesheet" for token in rel)


def _cookie_jar(cookies: tuple[dict, ...]) -> httpx.Cookies:
    jar = httpx.Cookies()
    for c in cookies:
        if not c.get("name"):
            continue
        jar.set(c["name"], c.get("value", ""), domain=c.get("domain", ""), path=c.get("path", "/"))
    return jar


class SnapshotBuilder:
    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or default_settings
        self._transport = transport
        self._now = now or datetime.now

    async def build(self, document: LiveDocument) -> CaptureResult:
        if not document.html or not document.html.strip():
            raise CaptureEmpty()

        soup = BeautifulSoup(document.html, "html.parser")
        base = document.base

        self._strip_executable(soup)
        await self._inline_stylesheets(soup, document)
        self._absolutize_resources(soup, base)
        self._ensure_charset(soup)
        self._add_provenance(soup, document.url)

        html = doctype_string(document.doctype) + "\n" + self._serialize(soup)
        title = (document.title or "").strip() or PLACEHOLDER_TITLE
        return CaptureResult(html=html, title=title, source_url=document.url)

    # ── 2. scripts ──────────────────────────────────────────────────────────
    def _strip_executable(self, soup: BeautifulSoup) -> None:
        for node in soup.find_all(STRIPPED_TAGS):
            # a <script> nested in an already removed <noscript>
            if not node.decomposed:
                node.decompose()

    # ── 3. stylesheets ──────────────────────────────────────────────────────
    async def _inline_stylesheets(self, soup: BeautifulSoup, document: LiveDocument) -> None:
        links = [link for link in soup.find_all("link") if _is_stylesheet(link)]
        if not links:
            return

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.stylesheet_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": self.settings.user_agent, "Accept": "text/css,*/*;q=0.1"},
            cookies=_cookie_jar(document.cookies),
        ) as client:
            for link in links:
                href = (link.get("href") or "").strip()
                if not href:
                    link.decompose()
                    continue
                try:
                    url, css = await self._fetch_stylesheet(client, href, document.base)
                except ResourceInlineFailure as exc:
                    logger.warning("%s", exc)
                    link.decompose()
                    continue

                style = soup.new_tag("style")
                style[SOURCE_ATTR] = url
                style.string = css
                link.replace_with(style)

    async def _fetch_stylesheet(self, client: httpx.AsyncClient, href: str, base: str) -> tuple[str, str]:
        try:
            url = urljoin(base, href)
        except ValueError as exc:
            raise ResourceInlineFailure(href, f"unresolvable URL ({exc})") from exc

        try:
            r = await client.get(url)
        except httpx.HTTPError as exc:
            raise ResourceInlineFailure(url, f"{type(exc).__name__}: {exc}") from exc

        if not r.is_success:
            raise ResourceInlineFailure(url, f"HTTP {r.status_code}", status_code=r.status_code)
        return url, r.text

    # ── 4. resource URLs ────────────────────────────────────────────────────
    def _absolutize_resources(self, soup: BeautifulSoup, base: str) -> None:
        for tag in soup.find_all(SRC_TAGS, src=True):
            tag["src"] = absolutize(tag["src"], base)
        for tag in soup.find_all("video", poster=True):
            tag["poster"] = absolutize(tag["poster"], base)
        for tag in soup.find_all(srcset=True):
            tag["srcset"] = absolutize_srcset(tag["srcset"], base)

    # ── 5. charset ──────────────────────────────────────────────────────────
    def _ensure_charset(self, soup: BeautifulSoup) -> None:
        head = soup.head
        if head is None or head.find("meta", charset=True):
            return
        head.insert(0, soup.new_tag("meta", attrs={"charset": "UTF-8"}))

    # ── 6. provenance ───────────────────────────────────────────────────────
    def _add_provenance(self, soup: BeautifulSoup, source_url: str) -> None:
        if soup.head is not None:
            soup.head.insert(0, Comment(GENERATOR_COMMENT))

        if not self.settings.banner_enabled or soup.body is None:
            return
        markup = _templates.get_template("url_bar.html").render(
            url=source_url,
            saved_at=self._now().strftime(BANNER_TIME_FORMAT),
        )
        banner = BeautifulSoup(markup, "html.parser").find("div")
        soup.body.insert(0, banner.extract())

    # ── 7. serialize ────────────────────────────────────────────────────────
    @staticmethod
    def _serialize(soup: BeautifulSoup) -> str:
        if soup.html is not None:
            return str(soup.html)
        for node in list(soup.contents):
            if isinstance(node, SoupDoctype):
                node.extract()
        return soup.decode().strip()
