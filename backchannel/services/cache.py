"""
Single-slot resolution cache.

Remembers the most recent successful resolution as two flat strings:

* ``bc_root``    - the raw root URL of the resolved package
* ``bc_package`` - the package serialized as JSON, with its owning store id
                   under ``dbId``

A lookup hits when the queried URL lives under the cached root URL (raw or
protocol-normalized). There is no versioning or expiry: any operation that
creates or changes a package anywhere must call clear().
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple

from backchannel.domain.models import ActiveFeedbackPackage, Package
from backchannel.domain.urls import url_matches_root

__all__ = [
    "ResolutionCache",
    "MemoryResolutionCache",
    "FileResolutionCache",
    "CACHE_ROOT_KEY",
    "CACHE_PACKAGE_KEY",
]

logger = logging.getLogger(__name__)

CACHE_ROOT_KEY = "bc_root"
CACHE_PACKAGE_KEY = "bc_package"
CACHE_STORE_ID_KEY = "dbId"


class ResolutionCache(ABC):
    """
    Abstract base class for the cache slot. Subclasses only decide where the
    two strings live.
    """

    def get(self, url: str) -> Optional[ActiveFeedbackPackage]:
        """
        Return the cached resolution if *url* lives under the cached root URL.

        Unparseable entries are logged and reported as a miss.
        """
        root_url, raw_package = self._read_slot()
        if not root_url or not raw_package:
            return None
        if not url_matches_root(url, root_url):
            return None

        try:
            data = json.loads(raw_package)
            store_id = data.pop(CACHE_STORE_ID_KEY)
            return ActiveFeedbackPackage(
                store_id=store_id,
                package=Package.model_validate(data),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Error parsing cached package: {e}")
            return None

    def set(self, root_url: str, package: Package, store_id: str) -> None:
        """Overwrite the slot unconditionally."""
        record = package.to_record()
        record[CACHE_STORE_ID_KEY] = store_id
        self._write_slot(root_url or "", json.dumps(record))

    def clear(self) -> None:
        self._clear_slot()

    @abstractmethod
    def _read_slot(self) -> Tuple[Optional[str], Optional[str]]:
        """Return (root url, serialized package); (None, None) when empty."""

    @abstractmethod
    def _write_slot(self, root_url: str, raw_package: str) -> None:
        pass

    @abstractmethod
    def _clear_slot(self) -> None:
        pass


class MemoryResolutionCache(ResolutionCache):
    """Process-local slot."""

    def __init__(self) -> None:
        self._slot: Dict[str, str] = {}

    def _read_slot(self) -> Tuple[Optional[str], Optional[str]]:
        return self._slot.get(CACHE_ROOT_KEY), self._slot.get(CACHE_PACKAGE_KEY)

    def _write_slot(self, root_url: str, raw_package: str) -> None:
        self._slot = {CACHE_ROOT_KEY: root_url, CACHE_PACKAGE_KEY: raw_package}

    def _clear_slot(self) -> None:
        self._slot = {}


class FileResolutionCache(ResolutionCache):
    """
    Slot persisted in a small JSON key-value file, so the last resolution
    survives process restarts.

    Write failures are logged and otherwise ignored; the cache only ever
    saves a scan.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {self.path}: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed cache file {self.path}")
            return {}
        return raw

    def _read_slot(self) -> Tuple[Optional[str], Optional[str]]:
        slot = self._load()
        root_url = slot.get(CACHE_ROOT_KEY)
        raw_package = slot.get(CACHE_PACKAGE_KEY)
        if not isinstance(root_url, str) or not isinstance(raw_package, str):
            return None, None
        return root_url, raw_package

    def _write_slot(self, root_url: str, raw_package: str) -> None:
        slot = {CACHE_ROOT_KEY: root_url, CACHE_PACKAGE_KEY: raw_package}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(slot, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write cache file {self.path}: {e}")

    def _clear_slot(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to clear cache file {self.path}: {e}")
