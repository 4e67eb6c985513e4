"""
Materialize stores from declarative definition files.

A definition file is YAML (JSON is accepted too, being a subset of YAML)
holding either a list of store definitions or a mapping with a ``stores``
list::

    stores:
      - name: site1
        package:
          name: Site one review
          rootURL: https://example.com/app1
        comments:
          - timestamp: 1700000000000
            pageUrl: https://example.com/app1/page
            feedback: Typo in heading
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Sequence, Union

import yaml

from backchannel.domain.models import StoreDefinition
from backchannel.storage.catalog import Catalog

__all__ = ["parse_definitions", "load_stores_from_definitions"]

logger = logging.getLogger(__name__)

DefinitionSource = Union[Path, str, Sequence[Any]]


def parse_definitions(source: DefinitionSource) -> List[StoreDefinition]:
    """
    Parse store definitions from a file path, a YAML string or an already
    loaded list of dicts.
    """
    if isinstance(source, Path):
        raw = yaml.safe_load(source.read_text(encoding="utf-8"))
    elif isinstance(source, str):
        raw = yaml.safe_load(source)
    else:
        raw = list(source)

    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = raw.get("stores") or []
    if not isinstance(raw, list):
        raise ValueError("Store definitions must be a list or a mapping with a 'stores' list")

    return [StoreDefinition.model_validate(item) for item in raw]


async def load_stores_from_definitions(catalog: Catalog, source: DefinitionSource) -> List[str]:
    """
    Create (or top up) one store per definition through *catalog*.

    The definition's package seeds an empty store; comments whose timestamp
    is already present are skipped. Returns the ids of the stores touched.
    """
    definitions = parse_definitions(source)
    if not definitions:
        logger.warning("No store definitions provided")
        return []

    store_ids: List[str] = []
    for definition in definitions:
        store = catalog.open_store(definition.name, seed_package=definition.package)
        if not await store.open():
            logger.error(f"Error creating store {definition.name}")
            continue

        try:
            added = 0
            for comment in definition.comments:
                if await store.add_comment(comment) is not None:
                    added += 1
        finally:
            store.close()

        logger.info(f"Seeded store {store.name} with {added} comment(s)")
        store_ids.append(store.store_id)

    return store_ids
