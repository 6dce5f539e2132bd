from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Doctype as SoupDoctype

DEFAULT_DOCTYPE = "<!DOCTYPE html>"
PLACEHOLDER_TITLE = "page"

_DOCTYPE_RE = re.compile(
    r"""^\s*(?P<name>[^\s>]+)
        (?:\s+PUBLIC\s+(?P<q1>["'])(?P<public>.*?)(?P=q1)(?:\s+(?P<q2>["'])(?P<system1>.*?)(?P=q2))?
          |\s+SYSTEM\s+(?P<q3>["'])(?P<system2>.*?)(?P=q3))?""",
    re.IGNORECASE | re.VERBOSE | re.DOTALL,
)


@dataclass(frozen=True)
class Doctype:
    name: str
    public_id: str = ""
    system_id: str = ""

    def to_string(self) -> str:
        out = f"<!DOCTYPE {self.name}"
        if self.public_id:
            out += f' PUBLIC "{self.public_id}"'
        if self.system_id:
            out += ("" if self.public_id else " SYSTEM") + f' "{self.system_id}"'
        return out + ">"

    @classmethod
    def parse(cls, text: str) -> Doctype | None:
        """Read the body of a doctype declaration, e.g. ``html PUBLIC "..." "..."``.

        A leading ``<!DOCTYPE`` (or bare ``DOCTYPE``) and trailing ``>`` are tolerated.
        """
        body = re.sub(r"^\s*(?:<!)?DOCTYPE\s+", "", text, flags=re.IGNORECASE).rstrip().rstrip(">")
        m = _DOCTYPE_RE.match(body)
        if not m:
            return None
        return cls(
            name=m.group("name"),
            public_id=m.group("public") or "",
            system_id=m.group("system1") or m.group("system2") or "",
        )


def doctype_string(doctype: Doctype | None) -> str:
    return doctype.to_string() if doctype else DEFAULT_DOCTYPE


@dataclass(frozen=True)
class LiveDocument:
    """Read-only view of a page as it is rendered right now."""

    html: str
    url: str
    title: str = ""
    base_uri: str = ""
    doctype: Doctype | None = None
    # Playwright-style cookie dicts: name, value, domain, path
    cookies: tuple[dict, ...] = ()

    @property
    def base(self) -> str:
        return self.base_uri or self.url

    @classmethod
    def from_html(cls, html: str, url: str, cookies: list[dict] | None = None) -> LiveDocument:
        soup = BeautifulSoup(html, "html.parser")

        doctype = None
        for node in soup.contents:
            if isinstance(node, SoupDoctype):
                doctype = Doctype.parse(str(node))
                break

        title = soup.title.get_text() if soup.title else ""

        base_uri = url
        base_tag = soup.find("base", href=True)
        if base_tag and base_tag["href"].strip():
            try:
                base_uri = urljoin(url, base_tag["href"].strip())
            except ValueError:
                pass

        return cls(
            html=html,
            url=url,
            title=title,
            base_uri=base_uri,
            doctype=doctype,
            cookies=tuple(cookies or ()),
        )


@dataclass(frozen=True)
class CaptureResult:
    html: str
    title: str
    source_url: str


class Destination(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class RemoteConfig:
    server_url: str = ""
    username: str = ""
    password: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.server_url)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True)
class ArchiveRequest:
    file_name: str
    payload: bytes
    destination: Destination
    title: str
    source_url: str
    timestamp: datetime
    remote: RemoteConfig | None = None


@dataclass(frozen=True)
class DispatchOutcome:
    destination: Destination
    file_name: str
    location: str
    message: str
