"""
Catalog: enumerates every store that belongs to this system.

Stores are discovered by naming convention: a store's physical name is
"bc-storage-<store id>". The Catalog is also the factory the Resolver and
the API use to open stores, so that every store it hands out shares the
same resolution cache and the same write lock per store name.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

import aiofiles.os

from backchannel.domain.errors import PersistenceUnsupportedError, StoreError
from backchannel.domain.models import Comment, Package
from backchannel.domain.urls import generate_store_id, is_store_name, sanitize_store_id, store_name_for
from backchannel.storage.feedback_store import COMMENTS, PACKAGES, FeedbackStore, empty_document
from backchannel.storage.json_store import STORE_FILE_SUFFIX, JsonFeedbackStore, data_dir_supported
from backchannel.storage.memory_store import MemoryFeedbackStore

if TYPE_CHECKING:
    from backchannel.services.cache import ResolutionCache

__all__ = ["Catalog", "DirectoryCatalog", "InMemoryCatalog"]

logger = logging.getLogger(__name__)


class Catalog(ABC):
    """
    Abstract base class for store discovery.
    """

    def __init__(self, cache: Optional["ResolutionCache"] = None):
        self.cache = cache
        self._locks: Dict[str, asyncio.Lock] = {}

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether a persistence engine is available at all."""

    @abstractmethod
    async def list_all(self) -> List[str]:
        """
        Names of every persisted store carrying the namespace prefix.

        Raises:
            PersistenceUnsupportedError: no persistence engine is available.
            StoreError: the engine could not be enumerated.
        """

    @abstractmethod
    def open_store(
        self, store_id: Optional[str] = None, seed_package: Optional[Package] = None
    ) -> FeedbackStore:
        """
        Build (but do not open) the store for *store_id*. A new id is
        generated when *store_id* is None.
        """

    async def exists(self, store_id: str) -> bool:
        """True iff a store named "bc-storage-<store_id>" is present."""
        names = await self.list_all()
        return store_name_for(store_id) in names

    async def delete(self, store_id: str) -> bool:
        """Permanently remove a store. Returns False if it did not exist."""
        store = self.open_store(store_id)
        return await store.delete_database()

    def _resolve_store_id(self, store_id: Optional[str]) -> str:
        return sanitize_store_id(store_id or generate_store_id())

    def _lock_for(self, store_id: str) -> asyncio.Lock:
        """One lock per store name, shared by every Store this catalog builds."""
        name = store_name_for(store_id)
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    def _require_supported(self) -> None:
        if not self.is_supported():
            raise PersistenceUnsupportedError("No persistence engine available")


class DirectoryCatalog(Catalog):
    """
    Production catalog: one JSON store file per store in *data_dir*.

    list_all() returns names in lexicographic order so that resolution is
    deterministic across processes.
    """

    def __init__(self, data_dir: Path, cache: Optional["ResolutionCache"] = None):
        super().__init__(cache)
        self.data_dir = Path(data_dir)

    def is_supported(self) -> bool:
        return data_dir_supported(self.data_dir)

    async def list_all(self) -> List[str]:
        self._require_supported()
        try:
            entries = await aiofiles.os.listdir(self.data_dir)
        except OSError as e:
            logger.error(f"Error listing stores in {self.data_dir}: {e}")
            raise StoreError("Failed to list databases") from e

        names = [
            entry[: -len(STORE_FILE_SUFFIX)]
            for entry in entries
            if entry.endswith(STORE_FILE_SUFFIX) and is_store_name(entry)
        ]
        return sorted(names)

    async def exists(self, store_id: str) -> bool:
        self._require_supported()
        path = self.data_dir / f"{store_name_for(store_id)}{STORE_FILE_SUFFIX}"
        return await aiofiles.os.path.isfile(path)

    def open_store(
        self, store_id: Optional[str] = None, seed_package: Optional[Package] = None
    ) -> JsonFeedbackStore:
        store_id = self._resolve_store_id(store_id)
        return JsonFeedbackStore(
            store_id,
            seed_package,
            data_dir=self.data_dir,
            cache=self.cache,
            lock=self._lock_for(store_id),
        )


class InMemoryCatalog(Catalog):
    """
    Catalog over an insertion-ordered dict of store documents.

    Used for tests and for embedding without a data directory.
    """

    def __init__(self, cache: Optional["ResolutionCache"] = None, supported: bool = True):
        super().__init__(cache)
        self.databases: Dict[str, Dict[str, Any]] = {}
        self.supported = supported

    def is_supported(self) -> bool:
        return self.supported

    async def list_all(self) -> List[str]:
        self._require_supported()
        return [name for name in self.databases if is_store_name(name)]

    def open_store(
        self, store_id: Optional[str] = None, seed_package: Optional[Package] = None
    ) -> MemoryFeedbackStore:
        store_id = self._resolve_store_id(store_id)
        return MemoryFeedbackStore(
            store_id,
            seed_package,
            databases=self.databases,
            cache=self.cache,
            supported=self.supported,
            lock=self._lock_for(store_id),
        )

    def load_raw(
        self,
        store_id: str,
        packages: Iterable[Package] = (),
        comments: Iterable[Comment] = (),
    ) -> str:
        """
        Write a store document directly, bypassing every store invariant.

        Lets fixtures describe states the store API refuses to create, such
        as a store holding two packages. Returns the store name.
        """
        name = store_name_for(store_id)
        document = empty_document(name)
        for index, package in enumerate(packages):
            document[PACKAGES][package.id or f"pkg-{index}"] = package.to_record()
        for comment in comments:
            document[COMMENTS][str(comment.timestamp)] = comment.to_record()
        self.databases[name] = document
        return name
