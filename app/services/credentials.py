"""
Resolve Stock API credentials from the system_settings table.

The URL may fall back to ANAJAK_STOCK_API_URL for legacy deployments; the API
key must always come from settings.
"""

from typing import Optional

import structlog

from app.config import Settings, settings as app_settings
from app.models.database import SETTING_STOCK_API_KEY, SETTING_STOCK_API_URL
from app.services.catalog_store import CatalogStore
from app.services.stock_api_client import StockAPIClient

logger = structlog.get_logger()

# Value shipped in example env files; treated as "not configured"
PLACEHOLDER_API_KEY = "your-api-key"

NOT_CONFIGURED_MESSAGE = (
    "Stock API is not configured. Set the API URL and API key under "
    "Settings > Stock connection (settings keys "
    f"'{SETTING_STOCK_API_URL}' and '{SETTING_STOCK_API_KEY}')."
)


class StockNotConfiguredError(Exception):
    """Raised when Stock API credentials are missing."""

    def __init__(self, message: str = NOT_CONFIGURED_MESSAGE):
        self.message = message
        super().__init__(message)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def resolve_stock_credentials(
    store: CatalogStore, config: Optional[Settings] = None
) -> Optional[tuple[str, str]]:
    """
    Read (api_url, api_key) from persisted settings.

    Returns:
        The credential pair, or None when either part is blank.
    """
    config = config or app_settings
    api_url = _clean(store.get_setting(SETTING_STOCK_API_URL)) or _clean(
        config.anajak_stock_api_url
    )
    api_key = _clean(store.get_setting(SETTING_STOCK_API_KEY))

    if not api_url or not api_key or api_key == PLACEHOLDER_API_KEY:
        return None
    return api_url, api_key


def resolve_stock_client(
    store: CatalogStore, config: Optional[Settings] = None
) -> Optional[StockAPIClient]:
    """Build a StockAPIClient from persisted settings, or None if unconfigured."""
    credentials = resolve_stock_credentials(store, config)
    if credentials is None:
        return None

    api_url, api_key = credentials
    return StockAPIClient(
        base_url=api_url,
        api_key=api_key,
        timeout=(config or app_settings).stock_api_timeout_seconds,
    )


def require_stock_client(
    store: CatalogStore, config: Optional[Settings] = None
) -> StockAPIClient:
    """Like resolve_stock_client, but raise StockNotConfiguredError when unset."""
    client = resolve_stock_client(store, config)
    if client is None:
        logger.warning("Stock API requested but not configured")
        raise StockNotConfiguredError()
    return client
