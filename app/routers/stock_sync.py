"""
API router for the Stock catalog sync.

Pagination is driven by the caller: POST /sync-page once per page until
hasMore is false, polling GET /progress meanwhile, then POST /progress/reset.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from app.dependencies import (
    get_movement_reconciler,
    get_progress_tracker,
    get_store,
    get_sync_driver,
)
from app.models.stock import ConnectionResult, SyncMode
from app.models.sync import (
    CamelModel,
    FinishedItem,
    IssueMaterialsResult,
    MaterialToIssue,
    PageSyncResult,
    ReceiveFinishedResult,
    StockSyncResult,
    SyncProgress,
)
from app.services.catalog_store import CatalogStore
from app.services.credentials import StockNotConfiguredError, require_stock_client
from app.services.movements import MovementReconciler, MovementReconciliationError
from app.services.progress import ProgressTracker
from app.services.stock_api_client import StockAPIClient, StockAPIError
from app.services.stock_sync import (
    RemoteProductNotFoundError,
    StockSyncDriver,
    SyncInProgressError,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/stock-sync", tags=["stock-sync"])


# Request/Response Models
class TestConnectionRequest(CamelModel):
    """Explicit credentials from the setup screen; omit to use saved settings."""

    api_url: Optional[str] = None
    api_key: Optional[str] = None


class SyncPageRequest(CamelModel):
    page: int = Field(1, ge=1)
    mode: SyncMode = "full"
    updated_after: Optional[datetime] = None


class SyncStatusResponse(CamelModel):
    last_sync_at: Optional[datetime] = None
    total_stock_products: int = 0
    total_local_products: int = 0
    total_products: int = 0


class IssueMaterialsRequest(CamelModel):
    production_id: str = Field(..., min_length=1)
    order_number: str = Field(..., min_length=1)
    materials: List[MaterialToIssue] = Field(..., min_length=1)
    from_location: Optional[str] = None
    idempotency_key: Optional[str] = None


class ReceiveFinishedRequest(CamelModel):
    order_number: str = Field(..., min_length=1)
    items: List[FinishedItem] = Field(..., min_length=1)
    to_location: Optional[str] = None
    note: Optional[str] = None


def _client_or_400(store: CatalogStore) -> StockAPIClient:
    try:
        return require_stock_client(store)
    except StockNotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


def _remote_error(e: StockAPIError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)


@router.post("/test-connection", response_model=ConnectionResult)
async def test_connection(
    request: Optional[TestConnectionRequest] = None,
    store: CatalogStore = Depends(get_store),
):
    """
    Check that the Stock API answers with the given or saved credentials.

    Always 200: an unconfigured or unreachable API is reported as connected=false.
    """
    try:
        if request and request.api_url and request.api_key:
            client = StockAPIClient(base_url=request.api_url, api_key=request.api_key)
        else:
            client = require_stock_client(store)
    except StockNotConfiguredError as e:
        return ConnectionResult(connected=False, error=e.message)

    async with client:
        result = await client.test_connection()

    logger.info("Stock connection tested", connected=result.connected, error=result.error)
    return result


@router.post("/sync-page", response_model=PageSyncResult)
async def sync_page(
    request: SyncPageRequest,
    store: CatalogStore = Depends(get_store),
    driver: StockSyncDriver = Depends(get_sync_driver),
):
    """Sync exactly one page of Stock products into the local catalog."""
    try:
        client = _client_or_400(store)
        async with client:
            return await driver.sync_page(
                client,
                page=request.page,
                mode=request.mode,
                updated_after=request.updated_after,
            )

    except HTTPException:
        raise
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StockAPIError as e:
        raise _remote_error(e)
    except Exception as e:
        logger.error("Failed to sync Stock page", page=request.page, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to sync page: {str(e)}",
        )


@router.post("/sync-product/{sku}", response_model=PageSyncResult)
async def sync_product(
    sku: str,
    store: CatalogStore = Depends(get_store),
    driver: StockSyncDriver = Depends(get_sync_driver),
):
    """Refresh one product and its variants from Stock by SKU."""
    try:
        client = _client_or_400(store)
        async with client:
            return await driver.sync_product(client, sku)

    except HTTPException:
        raise
    except RemoteProductNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StockAPIError as e:
        raise _remote_error(e)
    except Exception as e:
        logger.error("Failed to sync Stock product", sku=sku, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to sync product: {str(e)}",
        )


@router.post("/sync-stock", response_model=StockSyncResult)
async def sync_stock(
    store: CatalogStore = Depends(get_store),
    driver: StockSyncDriver = Depends(get_sync_driver),
):
    """Refresh stock quantities only (no prices or descriptions)."""
    try:
        client = _client_or_400(store)
        async with client:
            return await driver.sync_stock_levels(client)

    except HTTPException:
        raise
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StockAPIError as e:
        raise _remote_error(e)
    except Exception as e:
        logger.error("Failed to sync stock levels", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to sync stock levels: {str(e)}",
        )


@router.get("/status", response_model=SyncStatusResponse)
async def get_status(driver: StockSyncDriver = Depends(get_sync_driver)):
    try:
        sync_status = driver.get_status()
        return SyncStatusResponse(
            last_sync_at=sync_status.last_sync_at,
            total_stock_products=sync_status.total_stock_products,
            total_local_products=sync_status.total_local_products,
            total_products=sync_status.total_products,
        )
    except Exception as e:
        logger.error("Failed to get sync status", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get sync status: {str(e)}",
        )


@router.get("/progress", response_model=SyncProgress)
async def get_progress(tracker: ProgressTracker = Depends(get_progress_tracker)):
    """Live progress snapshot; poll this while a page loop is running."""
    return tracker.read()


@router.post("/progress/reset", response_model=SyncProgress)
async def reset_progress(tracker: ProgressTracker = Depends(get_progress_tracker)):
    """Called by the page loop when it is finished (or abandoned)."""
    tracker.reset()
    return tracker.read()


@router.post("/issue-materials", response_model=IssueMaterialsResult)
async def issue_materials(
    request: IssueMaterialsRequest,
    store: CatalogStore = Depends(get_store),
    reconciler: MovementReconciler = Depends(get_movement_reconciler),
):
    """Post an ISSUE movement for production materials and mirror it locally."""
    try:
        client = _client_or_400(store)
        async with client:
            return await reconciler.issue_materials(
                client,
                production_id=request.production_id,
                order_number=request.order_number,
                materials=request.materials,
                from_location=request.from_location,
                idempotency_key=request.idempotency_key,
            )

    except HTTPException:
        raise
    except StockAPIError as e:
        raise _remote_error(e)
    except MovementReconciliationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": e.message, "movementDocNumber": e.doc_number},
        )
    except Exception as e:
        logger.error(
            "Failed to issue materials",
            production_id=request.production_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to issue materials: {str(e)}",
        )


@router.post("/receive-finished", response_model=ReceiveFinishedResult)
async def receive_finished(
    request: ReceiveFinishedRequest,
    store: CatalogStore = Depends(get_store),
    reconciler: MovementReconciler = Depends(get_movement_reconciler),
):
    """Post a RECEIVE movement for finished goods."""
    try:
        client = _client_or_400(store)
        async with client:
            return await reconciler.receive_finished(
                client,
                order_number=request.order_number,
                items=request.items,
                to_location=request.to_location,
                note=request.note,
            )

    except HTTPException:
        raise
    except StockAPIError as e:
        raise _remote_error(e)
    except Exception as e:
        logger.error(
            "Failed to receive finished goods",
            order_number=request.order_number,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to receive finished goods: {str(e)}",
        )
