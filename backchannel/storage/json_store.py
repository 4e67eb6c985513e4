"""
JSON-file persistence engine: one document per store in the data directory.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import aiofiles
import aiofiles.os

from backchannel.domain.errors import StoreError
from backchannel.domain.models import Package
from backchannel.storage.feedback_store import (
    COMMENTS,
    PACKAGES,
    SCHEMA_VERSION,
    FeedbackStore,
    empty_document,
)

if TYPE_CHECKING:
    from backchannel.services.cache import ResolutionCache

logger = logging.getLogger(__name__)

STORE_FILE_SUFFIX = ".json"


def data_dir_supported(data_dir: Path) -> bool:
    """
    The engine is available when the data directory exists (or can be
    created) and is writable.
    """
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Data directory {data_dir} is unavailable: {e}")
        return False
    return os.access(data_dir, os.W_OK)


class JsonFeedbackStore(FeedbackStore):
    def __init__(
        self,
        title: Optional[str] = None,
        seed_package: Optional[Package] = None,
        *,
        data_dir: Path,
        cache: Optional["ResolutionCache"] = None,
        lock: Optional[asyncio.Lock] = None,
    ):
        super().__init__(title, seed_package, cache=cache, lock=lock)
        self._data_dir = Path(data_dir)
        self.path = self._data_dir / f"{self.name}{STORE_FILE_SUFFIX}"

    def is_supported(self) -> bool:
        return data_dir_supported(self._data_dir)

    async def _open_document(self) -> None:
        if not await aiofiles.os.path.exists(self.path):
            await self._write_document(empty_document(self.name))
            logger.info(f"Created store {self.name} at {self.path}")
            return

        document = await self._read_document()
        version = document.get("version", SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise StoreError(f"Store {self.name} has unsupported schema version {version}")

    async def _read_document(self) -> Dict[str, Any]:
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            raw = await f.read()
        document = json.loads(raw)
        if not isinstance(document, dict):
            raise StoreError(f"Store file {self.path} does not contain an object")
        document.setdefault(PACKAGES, {})
        document.setdefault(COMMENTS, {})
        return document

    async def _write_document(self, document: Dict[str, Any]) -> None:
        # Unique per write so concurrent writers never share a temp file.
        tmp_path = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(document, indent=2))
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise

    async def _drop_document(self) -> bool:
        if not await aiofiles.os.path.exists(self.path):
            return False
        await aiofiles.os.remove(self.path)
        return True
