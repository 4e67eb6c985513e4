"""
Shared fixtures: in-memory and directory-backed catalogs, caches, resolvers.
"""

import pytest

from backchannel.services.cache import MemoryResolutionCache
from backchannel.services.resolver import PackageResolver
from backchannel.storage.catalog import DirectoryCatalog, InMemoryCatalog


@pytest.fixture
def cache() -> MemoryResolutionCache:
    return MemoryResolutionCache()


@pytest.fixture
def memory_catalog(cache) -> InMemoryCatalog:
    return InMemoryCatalog(cache=cache)


@pytest.fixture
def directory_catalog(tmp_path, cache) -> DirectoryCatalog:
    return DirectoryCatalog(tmp_path / "stores", cache=cache)


@pytest.fixture
def resolver(memory_catalog, cache) -> PackageResolver:
    return PackageResolver(memory_catalog, cache)

