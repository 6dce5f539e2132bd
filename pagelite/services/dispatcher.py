"""
Archive dispatcher: turns a capture into a file, saved locally or uploaded.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Awaitable, Callable

from pagelite.config import Settings, settings as default_settings
from pagelite.errors import CaptureEmpty, ConfigurationMissing
from pagelite.models import (
    PLACEHOLDER_TITLE,
    ArchiveRequest,
    CaptureResult,
    Destination,
    DispatchOutcome,
    LiveDocument,
    RemoteConfig,
)
from pagelite.services.snapshot import SnapshotBuilder
from pagelite.settings_store import SettingsStore
from pagelite.storage.base import StorageProvider
from pagelite.storage.local import LocalStorageProvider
from pagelite.storage.remote import RemoteStorageProvider

logger = logging.getLogger(__name__)

ILLEGAL_CHARS_RE = re.compile(r'[\\/:*?"<>|]')
WHITESPACE_RE = re.compile(r"\s+")
UNDERSCORES_RE = re.compile(r"_+")
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M"


def sanitize_filename(name: str, max_length: int = 120) -> str:
    name = ILLEGAL_CHARS_RE.sub("_", name)
    name = WHITESPACE_RE.sub("_", name)
    name = UNDERSCORES_RE.sub("_", name)
    name = name.strip("_")[:max_length].rstrip("_")
    return name or PLACEHOLDER_TITLE


def derive_file_name(title: str, when: datetime, max_length: int = 120) -> str:
    return f"{sanitize_filename((title or '').strip(), max_length)}_{when.strftime(TIMESTAMP_FORMAT)}.html"


class ArchiveDispatcher:
    def __init__(
        self,
        settings: Settings | None = None,
        config_store: SettingsStore | None = None,
        local: StorageProvider | None = None,
        remote: StorageProvider | None = None,
        builder: SnapshotBuilder | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or default_settings
        self.config_store = config_store or SettingsStore()
        self.local = local or LocalStorageProvider()
        self.remote = remote or RemoteStorageProvider(self.settings)
        self._now = now or datetime.now
        self.builder = builder or SnapshotBuilder(self.settings, now=self._now)

    def _remote_config(self) -> RemoteConfig:
        config = self.config_store.load()
        if not config.is_configured:
            raise ConfigurationMissing()
        return config

    def build_request(
        self,
        result: CaptureResult | None,
        destination: Destination,
        remote: RemoteConfig | None = None,
    ) -> ArchiveRequest:
        if result is None or not result.html or not result.html.strip():
            raise CaptureEmpty()

        if destination is Destination.REMOTE and remote is None:
            remote = self._remote_config()

        when = self._now()
        title = (result.title or "").strip() or PLACEHOLDER_TITLE
        return ArchiveRequest(
            file_name=derive_file_name(title, when, self.settings.max_filename_length),
            payload=result.html.encode("utf-8"),
            destination=destination,
            title=title,
            source_url=result.source_url,
            timestamp=when,
            remote=remote if destination is Destination.REMOTE else None,
        )

    async def dispatch(
        self,
        result: CaptureResult | None,
        destination: Destination,
        remote: RemoteConfig | None = None,
    ) -> DispatchOutcome:
        request = self.build_request(result, destination, remote)

        if destination is Destination.REMOTE:
            location = await self.remote.save(request)
            message = "Uploaded to the archive server"
        else:
            location = await self.local.save(request)
            message = "Saved locally"

        logger.info("%s: %s -> %s", message, request.source_url, location)
        return DispatchOutcome(destination=destination, file_name=request.file_name, location=location, message=message)

    async def capture_and_dispatch(
        self,
        source: Callable[[], Awaitable[LiveDocument]],
        destination: Destination,
    ) -> DispatchOutcome:
        """Capture the page ``source`` yields and persist it to ``destination``.

        A remote destination without a configured server aborts before the
        page is even opened.
        """
        remote = self._remote_config() if destination is Destination.REMOTE else None

        document = await source()
        result = await self.builder.build(document)
        return await self.dispatch(result, destination, remote)
