"""
API router for persisted Stock connection settings (system_settings table).
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from app.dependencies import get_store
from app.models.database import SETTING_STOCK_API_KEY, SETTING_STOCK_API_URL
from app.models.sync import CamelModel
from app.services.catalog_store import CatalogStore

logger = structlog.get_logger()

router = APIRouter(prefix="/api/settings", tags=["settings"])


class StockSettingsResponse(CamelModel):
    api_url: str = ""
    api_key_set: bool = False
    api_key_preview: Optional[str] = None


class UpdateStockSettingsRequest(CamelModel):
    api_url: str = Field(..., min_length=1)
    api_key: Optional[str] = Field(
        None, description="Omit to keep the saved key"
    )


def _mask(key: str) -> str:
    if len(key) <= 4:
        return "****"
    return f"****{key[-4:]}"


def _read_stock_settings(store: CatalogStore) -> StockSettingsResponse:
    api_url = store.get_setting(SETTING_STOCK_API_URL) or ""
    api_key = store.get_setting(SETTING_STOCK_API_KEY) or ""
    return StockSettingsResponse(
        api_url=api_url,
        api_key_set=bool(api_key),
        api_key_preview=_mask(api_key) if api_key else None,
    )


@router.get("/stock", response_model=StockSettingsResponse)
async def get_stock_settings(store: CatalogStore = Depends(get_store)):
    """Saved Stock connection; the API key is never returned in full."""
    try:
        return _read_stock_settings(store)
    except Exception as e:
        logger.error("Failed to read Stock settings", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to read Stock settings: {str(e)}",
        )


@router.put("/stock", response_model=StockSettingsResponse)
async def update_stock_settings(
    request: UpdateStockSettingsRequest,
    store: CatalogStore = Depends(get_store),
):
    try:
        store.set_setting(SETTING_STOCK_API_URL, request.api_url.strip())
        if request.api_key:
            store.set_setting(SETTING_STOCK_API_KEY, request.api_key.strip())

        logger.info(
            "Stock settings updated",
            api_url=request.api_url,
            api_key_changed=bool(request.api_key),
        )
        return _read_stock_settings(store)
    except Exception as e:
        logger.error("Failed to update Stock settings", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update Stock settings: {str(e)}",
        )
