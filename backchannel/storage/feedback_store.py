"""
FeedbackStore: one isolated persistent database holding a single Package
record and a collection of Comment records keyed by timestamp.

Usage::

    store = JsonFeedbackStore("My Review", seed_package=Package(rootURL="https://example.com"),
                              data_dir=data_dir, cache=cache)
    if await store.open():
        try:
            await store.add_comment(comment)
            comments = await store.get_all_comments()
        finally:
            store.close()

CRUD calls never raise for ordinary failures (I/O errors, missing records,
unopened store); they log and return None/False, and a None/False result
means no side effect occurred. Two conditions do raise:

* PersistenceUnsupportedError from open() when the host has no engine.
* PackageIntegrityError when more than one Package is found in the store.

Concrete engines implement the four document primitives at the bottom of
the class; every operation reads the whole document, mutates it and writes
it back under the store lock. Stores handed out by one Catalog share a
single lock per store name, so writes through different Store objects for
the same store are serialized.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from backchannel.domain.errors import PackageIntegrityError, PersistenceUnsupportedError
from backchannel.domain.models import Comment, Package
from backchannel.domain.urls import (
    generate_package_id,
    generate_store_id,
    sanitize_store_id,
    store_name_for,
)

if TYPE_CHECKING:
    from backchannel.services.cache import ResolutionCache

__all__ = ["FeedbackStore", "SCHEMA_VERSION", "empty_document"]

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

PACKAGES = "packages"
COMMENTS = "comments"


def empty_document(name: str) -> Dict[str, Any]:
    return {"name": name, "version": SCHEMA_VERSION, PACKAGES: {}, COMMENTS: {}}


class FeedbackStore(ABC):
    """
    Abstract base class for a single feedback store.

    The store id is the sanitized title (or a generated id when no title is
    given); the physical name is "bc-storage-<store id>". A seed package,
    when given, is written on open() if the store holds no package yet.
    """

    def __init__(
        self,
        title: Optional[str] = None,
        seed_package: Optional[Package] = None,
        *,
        cache: Optional["ResolutionCache"] = None,
        lock: Optional[asyncio.Lock] = None,
    ):
        self.store_id = sanitize_store_id(title or generate_store_id())
        self.name = store_name_for(self.store_id)
        self.version = SCHEMA_VERSION
        self._cache = cache
        self._opened = False
        self._lock = lock if lock is not None else asyncio.Lock()

        if seed_package is not None:
            seed_package = seed_package.model_copy()
            if not seed_package.id:
                seed_package.id = generate_package_id()
        self.initial_package = seed_package

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._opened

    async def open(self) -> bool:
        """
        Open the store, creating it and its collections if absent, and write
        the seed package if the package collection is empty.

        Returns:
            True on success, False if the engine failed to open the store.

        Raises:
            PersistenceUnsupportedError: no persistence engine is available.
        """
        if not self.is_supported():
            logger.error(f"Persistence engine is not available, cannot open {self.name}")
            raise PersistenceUnsupportedError(f"No persistence engine available for {self.name}")

        try:
            async with self._lock:
                await self._open_document()
        except Exception as e:
            logger.error(f"Error opening store {self.name}: {e}")
            return False

        self._opened = True

        if self.initial_package is not None and not await self._has_package():
            added = await self._add_package(self.initial_package)
            if added is not None:
                logger.info(f"Added initial package {added.id} to {self.name}")
        return True

    def close(self) -> None:
        """Release the store; further operations require open() again."""
        self._opened = False

    async def delete_database(self) -> bool:
        """
        Close and permanently remove this store.

        Returns:
            True if the store existed and was removed.
        """
        if not self.is_supported():
            raise PersistenceUnsupportedError(f"No persistence engine available for {self.name}")
        self.close()
        try:
            async with self._lock:
                removed = await self._drop_document()
        except Exception as e:
            logger.error(f"Error deleting store {self.name}: {e}")
            return False
        if removed:
            logger.info(f"Store {self.name} deleted")
            self._invalidate_cache()
        return removed

    # ── Package ───────────────────────────────────────────────────────────

    async def _has_package(self) -> bool:
        try:
            document = await self._read_document()
        except Exception as e:
            logger.error(f"Error counting packages in {self.name}: {e}")
            return False
        return len(document[PACKAGES]) > 0

    async def _add_package(self, package: Package) -> Optional[Package]:
        """
        Add *package* if, and only if, the store holds no package yet.

        Returns:
            The stored package (with its id assigned), or None when the store
            already has a package or the write failed. The store is left
            untouched in both cases.
        """
        if not self._require_open("add package"):
            return None

        package = package.model_copy()
        if not package.id:
            package.id = generate_package_id()

        try:
            async with self._lock:
                document = await self._read_document()
                packages = document[PACKAGES]
                if packages:
                    logger.warning(
                        f"Store {self.name} already holds a package, refusing to add {package.id}"
                    )
                    return None
                packages[package.id] = package.to_record()
                await self._write_document(document)
        except Exception as e:
            logger.error(f"Error adding package to {self.name}: {e}")
            return None

        self._invalidate_cache()
        return package

    async def get_package(self) -> Optional[Package]:
        """
        Return the store's package, or None if there is none (or on I/O error).

        Raises:
            PackageIntegrityError: more than one package record was found.
        """
        if not self._require_open("get package"):
            return None

        try:
            document = await self._read_document()
        except Exception as e:
            logger.error(f"Error getting package from {self.name}: {e}")
            return None

        records = list(document[PACKAGES].values())
        if len(records) > 1:
            logger.error(f"Store {self.name} holds {len(records)} packages")
            raise PackageIntegrityError(self.name, len(records))
        if not records:
            return None

        try:
            return Package.model_validate(records[0])
        except ValueError as e:
            logger.error(f"Malformed package record in {self.name}: {e}")
            return None

    async def update_package(self, package: Package) -> Optional[Package]:
        """
        Replace the store's package, keeping the existing package id.

        If the store has no package yet, *package* is added instead.

        Returns:
            The stored package, or None on failure.

        Raises:
            PackageIntegrityError: more than one package record was found.
        """
        if not self._require_open("update package"):
            return None

        package = package.model_copy()
        try:
            async with self._lock:
                document = await self._read_document()
                packages = document[PACKAGES]
                if len(packages) > 1:
                    raise PackageIntegrityError(self.name, len(packages))
                if packages:
                    package.id = next(iter(packages))
                elif not package.id:
                    package.id = generate_package_id()
                packages[package.id] = package.to_record()
                await self._write_document(document)
        except PackageIntegrityError:
            raise
        except Exception as e:
            logger.error(f"Error updating package in {self.name}: {e}")
            return None

        self._invalidate_cache()
        return package

    async def delete_package(self, package_id: str) -> bool:
        """Remove the package with *package_id*. Returns False if it was not found."""
        if not self._require_open("delete package"):
            return False

        try:
            async with self._lock:
                document = await self._read_document()
                if package_id not in document[PACKAGES]:
                    return False
                del document[PACKAGES][package_id]
                await self._write_document(document)
        except Exception as e:
            logger.error(f"Error deleting package {package_id} from {self.name}: {e}")
            return False

        self._invalidate_cache()
        return True

    # ── Comments ──────────────────────────────────────────────────────────

    async def add_comment(self, comment: Comment) -> Optional[Comment]:
        """
        Add *comment*. Fails (returns None) if its timestamp is already taken.
        """
        if not self._require_open("add comment"):
            return None

        key = str(comment.timestamp)
        try:
            async with self._lock:
                document = await self._read_document()
                if key in document[COMMENTS]:
                    logger.warning(f"Comment {key} already exists in {self.name}")
                    return None
                document[COMMENTS][key] = comment.to_record()
                await self._write_document(document)
        except Exception as e:
            logger.error(f"Error adding comment to {self.name}: {e}")
            return None
        return comment

    async def get_comment(self, timestamp: int) -> Optional[Comment]:
        if not self._require_open("get comment"):
            return None

        try:
            document = await self._read_document()
            record = document[COMMENTS].get(str(timestamp))
            return Comment.model_validate(record) if record is not None else None
        except Exception as e:
            logger.error(f"Error getting comment {timestamp} from {self.name}: {e}")
            return None

    async def update_comment(self, comment: Comment) -> Optional[Comment]:
        """Write *comment* under its timestamp, replacing any existing record."""
        if not self._require_open("update comment"):
            return None

        try:
            async with self._lock:
                document = await self._read_document()
                document[COMMENTS][str(comment.timestamp)] = comment.to_record()
                await self._write_document(document)
        except Exception as e:
            logger.error(f"Error updating comment {comment.timestamp} in {self.name}: {e}")
            return None
        return comment

    async def delete_comment(self, timestamp: int) -> bool:
        """Returns True if a comment was deleted, False if not found or on error."""
        if not self._require_open("delete comment"):
            return False

        key = str(timestamp)
        try:
            async with self._lock:
                document = await self._read_document()
                if key not in document[COMMENTS]:
                    return False
                del document[COMMENTS][key]
                await self._write_document(document)
        except Exception as e:
            logger.error(f"Error deleting comment {timestamp} from {self.name}: {e}")
            return False
        return True

    async def get_all_comments(self) -> Optional[List[Comment]]:
        """All comments in ascending timestamp order, or None on error."""
        if not self._require_open("get comments"):
            return None

        try:
            document = await self._read_document()
            comments = [Comment.model_validate(r) for r in document[COMMENTS].values()]
        except Exception as e:
            logger.error(f"Error getting comments from {self.name}: {e}")
            return None
        return sorted(comments, key=lambda c: c.timestamp)

    async def get_comments_for_page(self, page_url: str) -> Optional[List[Comment]]:
        comments = await self.get_all_comments()
        if comments is None:
            return None
        return [c for c in comments if c.page_url == page_url]

    # ── Internal helpers ──────────────────────────────────────────────────

    def _require_open(self, action: str) -> bool:
        if not self._opened:
            logger.error(f"Store {self.name} not initialized, cannot {action}")
            return False
        return True

    def _invalidate_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    # ── Engine primitives ─────────────────────────────────────────────────

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether the persistence engine behind this store is available."""

    @abstractmethod
    async def _open_document(self) -> None:
        """Create the store document if absent and verify it is readable."""

    @abstractmethod
    async def _read_document(self) -> Dict[str, Any]:
        """Return a private, mutable copy of the whole store document."""

    @abstractmethod
    async def _write_document(self, document: Dict[str, Any]) -> None:
        """Atomically replace the store document."""

    @abstractmethod
    async def _drop_document(self) -> bool:
        """Remove the store document. Returns False if it did not exist."""
