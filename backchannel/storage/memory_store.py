"""
In-memory persistence engine.

Stores live in a plain dict shared with the owning InMemoryCatalog, so
reopening a store by id sees what earlier instances wrote.
"""

from __future__ import annotations

import asyncio
import copy
from typing import TYPE_CHECKING, Any, Dict, Optional

from backchannel.domain.errors import StoreError
from backchannel.domain.models import Package
from backchannel.storage.feedback_store import FeedbackStore, empty_document

if TYPE_CHECKING:
    from backchannel.services.cache import ResolutionCache


class MemoryFeedbackStore(FeedbackStore):
    def __init__(
        self,
        title: Optional[str] = None,
        seed_package: Optional[Package] = None,
        *,
        databases: Optional[Dict[str, Dict[str, Any]]] = None,
        cache: Optional["ResolutionCache"] = None,
        supported: bool = True,
        lock: Optional[asyncio.Lock] = None,
    ):
        super().__init__(title, seed_package, cache=cache, lock=lock)
        self._databases = databases if databases is not None else {}
        self._supported = supported

    def is_supported(self) -> bool:
        return self._supported

    async def _open_document(self) -> None:
        if self.name not in self._databases:
            self._databases[self.name] = empty_document(self.name)

    async def _read_document(self) -> Dict[str, Any]:
        try:
            return copy.deepcopy(self._databases[self.name])
        except KeyError:
            raise StoreError(f"Store {self.name} does not exist")

    async def _write_document(self, document: Dict[str, Any]) -> None:
        self._databases[self.name] = copy.deepcopy(document)

    async def _drop_document(self) -> bool:
        return self._databases.pop(self.name, None) is not None
