from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from backchannel.core.dependencies import get_catalog, get_resolver
from backchannel.domain.errors import PackageIntegrityError, PersistenceUnsupportedError, StoreError
from backchannel.domain.models import (
    ActiveFeedbackPackage,
    Comment,
    Package,
    StoreCreateRequest,
    StoreSummary,
)
from backchannel.domain.urls import sanitize_store_id, store_id_from_name
from backchannel.services.resolver import PackageResolver
from backchannel.storage.catalog import Catalog
from backchannel.storage.feedback_store import FeedbackStore

logger = logging.getLogger(__name__)
router = APIRouter()


@asynccontextmanager
async def opened_store(catalog: Catalog, store_id: str) -> AsyncIterator[FeedbackStore]:
    """
    Open an existing store for the duration of one request.

    *store_id* is sanitized the same way store titles are, so "Site-One"
    addresses the store "site-one".
    """
    store_id = sanitize_store_id(store_id)
    try:
        if not await catalog.exists(store_id):
            raise HTTPException(status_code=404, detail="Store not found")
        store = catalog.open_store(store_id)
        opened = await store.open()
    except PersistenceUnsupportedError:
        raise HTTPException(status_code=503, detail="Persistence engine not available")
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if not opened:
        raise HTTPException(status_code=500, detail="Store could not be opened")
    try:
        yield store
    except PackageIntegrityError as e:
        raise HTTPException(status_code=409, detail=str(e))
    finally:
        store.close()


# ---------------------------------------------------------------------------
# 1. Resolution
# ---------------------------------------------------------------------------

@router.get("/supported")
async def is_supported(resolver: PackageResolver = Depends(get_resolver)) -> dict:
    return {"supported": resolver.is_supported()}


@router.get("/active", response_model=ActiveFeedbackPackage)
async def get_active_package(
    url: str = Query(..., min_length=1),
    resolver: PackageResolver = Depends(get_resolver),
) -> ActiveFeedbackPackage:
    """
    The feedback package active for *url*. 404 when there is none; an
    unavailable engine is reported the same way.
    """
    active = await resolver.get_active_feedback_package_for_url(url)
    if active is None:
        raise HTTPException(status_code=404, detail="No active feedback package")
    return active


# ---------------------------------------------------------------------------
# 2. Stores
# ---------------------------------------------------------------------------

@router.get("/stores", response_model=List[StoreSummary])
async def list_stores(catalog: Catalog = Depends(get_catalog)) -> List[StoreSummary]:
    try:
        names = await catalog.list_all()
    except PersistenceUnsupportedError:
        raise HTTPException(status_code=503, detail="Persistence engine not available")
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return [StoreSummary(store_id=store_id_from_name(n), store_name=n) for n in names]


@router.post("/stores", status_code=status.HTTP_201_CREATED)
async def create_store(body: StoreCreateRequest, catalog: Catalog = Depends(get_catalog)) -> dict:
    """
    Create a store, seeding it with the given package.
    """
    store = catalog.open_store(body.title, seed_package=body.package)
    try:
        if await catalog.exists(store.store_id):
            raise HTTPException(status_code=409, detail="Store already exists")
        if not await store.open():
            raise HTTPException(status_code=500, detail="Store could not be created")
    except PersistenceUnsupportedError:
        raise HTTPException(status_code=503, detail="Persistence engine not available")

    try:
        package = await store.get_package()
    finally:
        store.close()

    logger.info(f"Created store {store.name}")
    return {
        "storeId": store.store_id,
        "storeName": store.name,
        "package": package.to_record() if package else None,
    }


@router.delete("/stores/{store_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_store(store_id: str, catalog: Catalog = Depends(get_catalog)) -> Response:
    store_id = sanitize_store_id(store_id)
    try:
        if not await catalog.exists(store_id):
            raise HTTPException(status_code=404, detail="Store not found")
        deleted = await catalog.delete(store_id)
    except PersistenceUnsupportedError:
        raise HTTPException(status_code=503, detail="Persistence engine not available")
    if not deleted:
        raise HTTPException(status_code=500, detail="Store could not be deleted")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# 3. Package
# ---------------------------------------------------------------------------

@router.get("/stores/{store_id}/package")
async def get_package(store_id: str, catalog: Catalog = Depends(get_catalog)) -> dict:
    async with opened_store(catalog, store_id) as store:
        package = await store.get_package()
    if package is None:
        raise HTTPException(status_code=404, detail="Package not found")
    return package.to_record()


@router.put("/stores/{store_id}/package")
async def update_package(
    store_id: str, body: Package, catalog: Catalog = Depends(get_catalog)
) -> dict:
    async with opened_store(catalog, store_id) as store:
        package = await store.update_package(body)
    if package is None:
        raise HTTPException(status_code=500, detail="Package could not be updated")
    return package.to_record()


# ---------------------------------------------------------------------------
# 4. Comments
# ---------------------------------------------------------------------------

@router.get("/stores/{store_id}/comments")
async def list_comments(
    store_id: str,
    page_url: Optional[str] = Query(default=None, alias="pageUrl"),
    catalog: Catalog = Depends(get_catalog),
) -> List[dict]:
    async with opened_store(catalog, store_id) as store:
        if page_url is not None:
            comments = await store.get_comments_for_page(page_url)
        else:
            comments = await store.get_all_comments()
    if comments is None:
        raise HTTPException(status_code=500, detail="Comments could not be read")
    return [c.to_record() for c in comments]


@router.post("/stores/{store_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    store_id: str, body: Comment, catalog: Catalog = Depends(get_catalog)
) -> dict:
    async with opened_store(catalog, store_id) as store:
        comment = await store.add_comment(body)
    if comment is None:
        raise HTTPException(status_code=409, detail="Comment could not be added")
    return comment.to_record()


@router.get("/stores/{store_id}/comments/{timestamp}")
async def get_comment(
    store_id: str, timestamp: int, catalog: Catalog = Depends(get_catalog)
) -> dict:
    async with opened_store(catalog, store_id) as store:
        comment = await store.get_comment(timestamp)
    if comment is None:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment.to_record()


@router.put("/stores/{store_id}/comments/{timestamp}")
async def update_comment(
    store_id: str, timestamp: int, body: Comment, catalog: Catalog = Depends(get_catalog)
) -> dict:
    if body.timestamp != timestamp:
        raise HTTPException(status_code=400, detail="Timestamp does not match the comment")
    async with opened_store(catalog, store_id) as store:
        comment = await store.update_comment(body)
    if comment is None:
        raise HTTPException(status_code=500, detail="Comment could not be updated")
    return comment.to_record()


@router.delete("/stores/{store_id}/comments/{timestamp}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    store_id: str, timestamp: int, catalog: Catalog = Depends(get_catalog)
) -> Response:
    async with opened_store(catalog, store_id) as store:
        deleted = await store.delete_comment(timestamp)
    if not deleted:
        raise HTTPException(status_code=404, detail="Comment not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
