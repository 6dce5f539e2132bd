"""
Remote archive endpoint: multipart upload to ``{server_url}/upload``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from pagelite.config import Settings, settings as default_settings
from pagelite.errors import ConfigurationMissing, PersistenceFailure
from pagelite.models import ArchiveRequest, RemoteConfig
from pagelite.storage.base import StorageProvider

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPE = "text/html; charset=utf-8"


def _auth(config: RemoteConfig) -> httpx.BasicAuth | None:
    # Only send credentials when both halves are configured
    if config.has_credentials:
        return httpx.BasicAuth(config.username, config.password)
    return None


class RemoteStorageProvider(StorageProvider):
    name = "remote"

    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or default_settings
        self._transport = transport

    async def save(self, request: ArchiveRequest) -> str:
        config = request.remote
        if config is None or not config.is_configured:
            raise ConfigurationMissing()

        url = f"{config.server_url}/upload"
        files = {"file": (request.file_name, request.payload, HTML_CONTENT_TYPE)}
        data = {
            "title": request.title,
            "url": request.source_url,
            "timestamp": request.timestamp.isoformat(),
        }

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.upload_timeout_seconds,
                auth=_auth(config),
            ) as client:
                res = await client.post(url, data=data, files=files)
        except httpx.HTTPError as exc:
            raise PersistenceFailure(f"Upload failed: {type(exc).__name__}: {exc}") from exc

        if not res.is_success:
            raise PersistenceFailure(
                f"Upload failed ({res.status_code}): {res.text}",
                status_code=res.status_code,
                body=res.text,
            )

        try:
            payload = res.json()
        except ValueError:
            payload = {}
        logger.info("Uploaded %s to %s: %s", request.file_name, url, payload)
        stored = payload.get("filename") if isinstance(payload, dict) else None
        return f"{config.server_url}/{stored or request.file_name}"


@dataclass(frozen=True)
class ConnectionCheck:
    ok: bool
    message: str
    status_code: int | None = None


async def check_connection(
    config: RemoteConfig,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConnectionCheck:
    """``GET {server_url}/`` with the same optional Basic auth as uploads."""
    if not config.is_configured:
        raise ConfigurationMissing()

    settings = settings or default_settings
    try:
        async with httpx.AsyncClient(
            transport=transport,
            timeout=settings.upload_timeout_seconds,
            auth=_auth(config),
        ) as client:
            res = await client.get(f"{config.server_url}/")
    except httpx.HTTPError as exc:
        logger.warning("Connection check failed: %s", exc)
        return ConnectionCheck(ok=False, message=f"Connection failed: {exc}")

    if res.is_success:
        return ConnectionCheck(ok=True, message="Connected, the server responded normally", status_code=res.status_code)
    if res.status_code == 401:
        return ConnectionCheck(
            ok=False, message="Authentication failed, check username and password", status_code=401
        )
    return ConnectionCheck(ok=False, message=f"Server returned an error: {res.status_code}", status_code=res.status_code)
