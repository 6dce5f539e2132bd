from __future__ import annotations

import logging
from pathlib import Path

from pagelite.config import settings
from pagelite.errors import PersistenceFailure
from pagelite.models import ArchiveRequest
from pagelite.storage.base import StorageProvider

logger = logging.getLogger(__name__)

MAX_SUFFIX = 10000


def candidate_names(file_name: str):
    """``name.html``, ``name (1).html``, ``name (2).html``, ..."""
    path = Path(file_name)
    yield path.name
    for n in range(1, MAX_SUFFIX):
        yield f"{path.stem} ({n}){path.suffix}"


class LocalStorageProvider(StorageProvider):
    name = "local"

    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory or settings.downloads_dir).expanduser()

    async def save(self, request: ArchiveRequest) -> str:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceFailure(f"Cannot create {self.directory}: {exc}") from exc

        for name in candidate_names(request.file_name):
            target = self.directory / name
            try:
                f = target.open("xb")
            except FileExistsError:
                continue
            except OSError as exc:
                raise PersistenceFailure(f"Cannot write {target}: {exc}") from exc

            try:
                with f:
                    f.write(request.payload)
            except OSError as exc:
                target.unlink(missing_ok=True)
                raise PersistenceFailure(f"Cannot write {target}: {exc}") from exc

            logger.info("Saved %s (%.2f KB)", target, len(request.payload) / 1024)
            return str(target.resolve())

        raise PersistenceFailure(f"No free file name for {request.file_name} in {self.directory}")
