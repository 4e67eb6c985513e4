from pathlib import Path
from typing import Optional

from backchannel.core.config import BackChannelConfig, get_data_dir, load_config
from backchannel.services.cache import FileResolutionCache, MemoryResolutionCache, ResolutionCache
from backchannel.services.resolver import PackageResolver
from backchannel.storage.catalog import Catalog, DirectoryCatalog

_config: Optional[BackChannelConfig] = None
_cache: Optional[ResolutionCache] = None
_catalog: Optional[Catalog] = None
_resolver: Optional[PackageResolver] = None


def get_config() -> BackChannelConfig:
    global _config
    if _config is None:
        _config = load_config(get_data_dir())
    return _config


def get_cache() -> ResolutionCache:
    global _cache
    if _cache is None:
        config = get_config()
        if config.cache_backend == "memory":
            _cache = MemoryResolutionCache()
        else:
            _cache = FileResolutionCache(get_data_dir() / config.cache_file_name)
    return _cache


def get_catalog() -> Catalog:
    global _catalog
    if _catalog is None:
        _catalog = DirectoryCatalog(get_data_dir(), cache=get_cache())
    return _catalog


def get_resolver() -> PackageResolver:
    global _resolver
    if _resolver is None:
        _resolver = PackageResolver(get_catalog(), get_cache())
    return _resolver


def seed_file_path() -> Optional[Path]:
    config = get_config()
    if not config.seed_file:
        return None
    path = Path(config.seed_file).expanduser()
    if not path.is_absolute():
        path = get_data_dir() / path
    return path
