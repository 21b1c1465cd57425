"""
tests/test_stock_api_client.py — Stock ERP API client

Covers: envelope unwrapping, error normalisation into StockAPIError,
full vs incremental product paging, stock level aggregation and movements.
"""

from datetime import datetime, timezone

import httpx
import pytest

from app.models.stock import CreateMovementInput, MovementLine
from app.services.stock_api_client import StockAPIClient, StockAPIError
from conftest import STOCK_KEY, FakeStockAPI, stock_product


def _client(handler) -> StockAPIClient:
    return StockAPIClient(
        base_url="https://stock.test/api/",
        api_key=STOCK_KEY,
        transport=httpx.MockTransport(handler),
    )


# ── Connection ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_connection_ok_sends_api_key(stock_api):
    async with stock_api.client() as client:
        result = await client.test_connection()

    assert result.connected is True
    assert result.name == "Anajak Stock"
    request = stock_api.requests[0]
    assert request.headers["X-API-Key"] == STOCK_KEY
    assert request.url.path == "/api/erp"


@pytest.mark.asyncio
async def test_connection_rejected_returns_not_connected(stock_api):
    stock_api.fail("/erp", status_code=401, body={"success": False, "error": "bad key"})

    async with stock_api.client() as client:
        result = await client.test_connection()

    assert result.connected is False
    assert "401" in result.error


@pytest.mark.asyncio
async def test_connection_unreachable_returns_not_connected():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        result = await client.test_connection()

    assert result.connected is False
    assert "connection refused" in result.error


def test_base_url_trailing_slash_stripped():
    assert StockAPIClient("https://stock.test/api///", "k").base_url == "https://stock.test/api"


# ── Error normalisation ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_non_2xx_raises_with_status(stock_api):
    stock_api.fail("/erp/products", status_code=503)

    async with stock_api.client() as client:
        with pytest.raises(StockAPIError) as exc:
            await client.list_products_page()

    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_success_false_envelope_raises():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": {"message": "quota"}})

    async with _client(handler) as client:
        with pytest.raises(StockAPIError, match="quota"):
            await client.list_products_page()


@pytest.mark.asyncio
async def test_invalid_json_raises():
    def handler(request):
        return httpx.Response(200, text="<html>gateway</html>")

    async with _client(handler) as client:
        with pytest.raises(StockAPIError, match="invalid JSON"):
            await client.list_products_page()


@pytest.mark.asyncio
async def test_missing_pagination_raises():
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"items": []}})

    async with _client(handler) as client:
        with pytest.raises(StockAPIError, match="pagination"):
            await client.list_products_page()


# ── Products ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_products_page_full_mode_ignores_updated_after():
    api = FakeStockAPI([stock_product(f"P{i}") for i in range(5)])
    cutoff = datetime(2026, 1, 1, tzinfo=timezone.utc)

    async with api.client() as client:
        page = await client.list_products_page(page=2, page_size=2, mode="full", updated_after=cutoff)

    params = api.requests[0].url.params
    assert "updated_after" not in params
    assert params["page"] == "2"
    assert params["limit"] == "2"
    assert [item["sku"] for item in page.items] == ["P2", "P3"]
    assert page.total_pages == 3
    assert page.total_count == 5
    assert page.has_more is True


@pytest.mark.asyncio
async def test_products_page_incremental_sends_cutoff():
    api = FakeStockAPI([stock_product("P1")])
    cutoff = datetime(2026, 1, 1, 6, 30, tzinfo=timezone.utc)

    async with api.client() as client:
        page = await client.list_products_page(mode="incremental", updated_after=cutoff)

    assert api.requests[0].url.params["updated_after"] == "2026-01-01T06:30:00+00:00"
    assert page.has_more is False


@pytest.mark.asyncio
async def test_get_product_by_sku_exact_match():
    api = FakeStockAPI([stock_product("SHIRT-01", name="Polo")])

    async with api.client() as client:
        found = await client.get_product_by_sku("SHIRT-01")
        missing = await client.get_product_by_sku("NOPE")

    assert found.name == "Polo"
    assert missing is None


# ── Stock levels ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stock_levels_summed_across_locations_and_pages():
    api = FakeStockAPI()
    api.balances = [
        {"productSku": "P1", "variantSku": "P1-M", "locationCode": "WH-MAIN", "qty": 4},
        {"productSku": "P1", "variantSku": "P1-M", "locationCode": "WH-SHIP", "qty": 6},
        {"productSku": "P2", "variantSku": None, "locationCode": "WH-MAIN", "qty": 3.7},
        {"variantSku": "orphan", "qty": 1},
    ]

    async with api.client() as client:
        levels = await client.list_stock_levels(page_size=2)

    by_sku = {level.sku: level.stock for level in levels}
    assert by_sku == {"P1-M": 10, "P2": 3}
    assert len(api.paths("/erp/stock")) == 2


# ── Movements ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_movement_posts_camel_case_payload(stock_api):
    movement = CreateMovementInput(
        type="ISSUE",
        ref_no="ORD-1",
        lines=[MovementLine(sku="FAB-1", qty=2.5, from_location="WH-MAIN", unit_cost=40)],
    )

    async with stock_api.client() as client:
        result = await client.create_movement(movement, idempotency_key="prod-1")

    assert result.doc_number == "ISS-0001"
    body = stock_api.movements[0]
    assert body == {
        "type": "ISSUE",
        "refNo": "ORD-1",
        "lines": [{"sku": "FAB-1", "qty": 2.5, "fromLocation": "WH-MAIN", "unitCost": 40.0}],
    }
    assert stock_api.requests[0].headers["Idempotency-Key"] == "prod-1"


@pytest.mark.asyncio
async def test_create_movement_without_doc_number_raises():
    def handler(request):
        return httpx.Response(201, json={"success": True, "data": {"id": "x"}})

    movement = CreateMovementInput(type="RECEIVE", lines=[MovementLine(sku="A", qty=1)])
    async with _client(handler) as client:
        with pytest.raises(StockAPIError, match="Malformed movement"):
            await client.create_movement(movement)
