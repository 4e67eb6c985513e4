"""
Resolves which feedback package, if any, is active for a page URL.

Resolution order:

1. The single-slot ResolutionCache is consulted; a hit opens no store.
2. On a miss every cataloged store is opened in turn, its package read and
   its root URL prefix-tested against the URL.
3. The first match in Catalog order is written into the cache and returned.
   A miss is never cached.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from backchannel.domain.errors import PackageIntegrityError, PersistenceUnsupportedError
from backchannel.domain.models import ActiveFeedbackPackage, StoreMatch
from backchannel.domain.urls import store_id_from_name, url_matches_root
from backchannel.services.cache import ResolutionCache
from backchannel.storage.catalog import Catalog

__all__ = ["PackageResolver"]

logger = logging.getLogger(__name__)


class PackageResolver:
    """
    Finds the store whose package root URL prefixes a given URL.

    Stores are scanned sequentially and each one is closed again before the
    next is opened, so no store connection outlives a single package read.

    The resolver reads the same cache the catalog's stores clear on package
    writes. *cache* defaults to ``catalog.cache``; passing any other cache
    object raises ValueError, since it would never be invalidated.
    """

    def __init__(self, catalog: Catalog, cache: Optional[ResolutionCache] = None):
        if cache is None:
            cache = catalog.cache
        elif catalog.cache is not cache:
            raise ValueError("Resolver cache must be the catalog's cache")
        self.catalog = catalog
        self.cache = cache

    def is_supported(self) -> bool:
        return self.catalog.is_supported()

    async def search_by_url(self, url: str) -> List[StoreMatch]:
        """
        Return every store whose package is active for *url*, in Catalog order.

        A store that cannot be opened or read is logged and skipped.

        Raises:
            ValueError: *url* is empty.
            PersistenceUnsupportedError: no persistence engine is available.
        """
        if not url:
            raise ValueError("URL pattern is required")
        if not self.catalog.is_supported():
            raise PersistenceUnsupportedError("No persistence engine available")

        matches: List[StoreMatch] = []
        for store_name in await self.catalog.list_all():
            store_id = store_id_from_name(store_name)
            store = self.catalog.open_store(store_id)
            try:
                if not await store.open():
                    logger.warning(f"Skipping store {store_name}: could not be opened")
                    continue
                package = await store.get_package()
            except PackageIntegrityError as e:
                logger.warning(f"Skipping store {store_name}: {e}")
                continue
            except Exception as e:
                logger.warning(f"Error getting package from store {store_name}: {e}")
                continue
            finally:
                store.close()

            if package is not None and package.root_url and url_matches_root(url, package.root_url):
                matches.append(StoreMatch(store_id=store_id, store_name=store_name, package=package))

        logger.debug(f"{len(matches)} store(s) match {url}")
        return matches

    async def get_active_feedback_package_for_url(self, url: str) -> Optional[ActiveFeedbackPackage]:
        """
        Return the package active for *url* together with its store id, or
        None when no package is active. Never raises.
        """
        if not url:
            logger.error("Current URL is required")
            return None
        if not self.catalog.is_supported():
            logger.error("Persistence engine is not available")
            return None

        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                logger.debug(f"Cache hit for {url}: store {cached.store_id}")
                return cached

        try:
            matches = await self.search_by_url(url)
        except Exception as e:
            logger.error(f"Error resolving active package for {url}: {e}")
            return None

        if not matches:
            return None

        match = matches[0]
        if len(matches) > 1:
            logger.info(
                f"{len(matches)} packages are active for {url}, using store {match.store_id}"
            )
        if self.cache is not None:
            self.cache.set(match.package.root_url or "", match.package, match.store_id)

        return ActiveFeedbackPackage(store_id=match.store_id, package=match.package)
