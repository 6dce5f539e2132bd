from __future__ import annotations

from abc import ABC, abstractmethod

from pagelite.models import ArchiveRequest


class StorageProvider(ABC):
    name: str

    @abstractmethod
    async def save(self, request: ArchiveRequest) -> str:
        """Persist the payload; return where it ended up."""
        raise NotImplementedError
