"""Persisted remote-upload settings (serverUrl / username / password).

The dispatcher only ever reads from here; writes come from the settings form.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

from pagelite.config import settings
from pagelite.errors import InvalidSettings
from pagelite.models import RemoteConfig
from pagelite.utils import is_valid_url, normalize_server_url

logger = logging.getLogger(__name__)


def get_user_config_dir() -> Path:
    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "pagelite"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "pagelite"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "pagelite"
    return Path.home() / ".config" / "pagelite"


class SettingsStore:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.config_file or get_user_config_dir() / "settings.json")

    def load(self) -> RemoteConfig:
        if not self.path.exists():
            return RemoteConfig()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Could not read settings from %s: %s", self.path, exc)
            return RemoteConfig()
        if not isinstance(data, dict):
            logger.warning("Ignoring settings in %s: expected a JSON object", self.path)
            return RemoteConfig()
        return RemoteConfig(
            server_url=str(data.get("serverUrl") or ""),
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
        )

    def save(self, server_url: str, username: str = "", password: str = "") -> RemoteConfig:
        server_url = server_url.strip()
        if not server_url:
            raise InvalidSettings("Enter the server URL")
        if not is_valid_url(server_url):
            raise InvalidSettings("The server URL is not a valid http(s) address")

        config = RemoteConfig(
            server_url=normalize_server_url(server_url),
            username=username.strip(),
            password=password,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(
                {"serverUrl": config.server_url, "username": config.username, "password": config.password},
                indent=2,
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )
        logger.info("Settings saved to %s", self.path)
        return config
