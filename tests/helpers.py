from typing import Optional

from backchannel.domain.models import Package
from backchannel.storage.catalog import Catalog


async def create_store(
    catalog: Catalog,
    store_id: str,
    root_url: Optional[str],
    name: str = "Review",
) -> str:
    """Create a store seeded with a package rooted at *root_url*; return its id."""
    store = catalog.open_store(store_id, Package(name=name, version="1.0", root_url=root_url))
    assert await store.open()
    store.close()
    return store.store_id
