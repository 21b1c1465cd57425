"""
tests/test_credentials.py — Stock API credential resolution

Covers: settings-first lookup, the legacy env URL fallback, placeholder keys,
and the actionable not-configured error.
"""

import pytest

from app.config import Settings
from app.models.database import SETTING_STOCK_API_KEY, SETTING_STOCK_API_URL
from app.services.credentials import (
    PLACEHOLDER_API_KEY,
    StockNotConfiguredError,
    require_stock_client,
    resolve_stock_client,
    resolve_stock_credentials,
)


@pytest.fixture
def config():
    return Settings(anajak_stock_api_url="", stock_api_timeout_seconds=5)


def test_resolves_from_settings(store, config):
    store.set_setting(SETTING_STOCK_API_URL, " https://stock.test/api ")
    store.set_setting(SETTING_STOCK_API_KEY, "secret")

    assert resolve_stock_credentials(store, config) == ("https://stock.test/api", "secret")


def test_url_falls_back_to_env(store):
    store.set_setting(SETTING_STOCK_API_KEY, "secret")
    config = Settings(anajak_stock_api_url="https://legacy.test/api")

    assert resolve_stock_credentials(store, config) == ("https://legacy.test/api", "secret")


def test_key_has_no_env_fallback(store):
    store.set_setting(SETTING_STOCK_API_URL, "https://stock.test/api")
    config = Settings(anajak_stock_api_url="https://legacy.test/api")

    assert resolve_stock_credentials(store, config) is None


@pytest.mark.parametrize("key", ["", "   ", PLACEHOLDER_API_KEY])
def test_blank_or_placeholder_key_is_unconfigured(store, config, key):
    store.set_setting(SETTING_STOCK_API_URL, "https://stock.test/api")
    store.set_setting(SETTING_STOCK_API_KEY, key)

    assert resolve_stock_client(store, config) is None


def test_client_built_with_configured_timeout(store, config):
    store.set_setting(SETTING_STOCK_API_URL, "https://stock.test/api/")
    store.set_setting(SETTING_STOCK_API_KEY, "secret")

    client = resolve_stock_client(store, config)

    assert client.base_url == "https://stock.test/api"
    assert client.api_key == "secret"
    assert client.timeout == 5


def test_require_raises_actionable_error(store, config):
    with pytest.raises(StockNotConfiguredError) as exc:
        require_stock_client(store, config)

    assert SETTING_STOCK_API_URL in exc.value.message
    assert SETTING_STOCK_API_KEY in exc.value.message
    assert "Settings" in exc.value.message
