"""
Anajak Stock ERP API client.
Wraps the Stock system's ERP endpoints at /erp/* (products, stock balances,
inventory movements). Auth is a static X-API-Key header.

Every failure (network, non-2xx, rejected or malformed payload) is raised as
StockAPIError. The client never retries: movements are not idempotent on the
Stock side, so retry policy belongs to the caller.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
import structlog
from pydantic import ValidationError

from app.config import settings
from app.models.stock import (
    ConnectionResult,
    CreateMovementInput,
    MovementResult,
    ProductPage,
    StockBalanceRow,
    StockLevel,
    StockProduct,
    SyncMode,
)

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 100
# Error bodies can be whole HTML pages; keep logs and messages readable
MAX_ERROR_BODY_CHARS = 500


class StockAPIError(Exception):
    """Raised when the Stock API cannot be reached or returns an error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class StockAPIClient:
    """Async client for the Anajak Stock ERP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Stock API client.

        Args:
            base_url: Stock API root, e.g. "https://stock.example.com/api".
            api_key: Value sent in the X-API-Key header.
            timeout: Request timeout in seconds. Defaults to settings.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = (
            timeout if timeout is not None else settings.stock_api_timeout_seconds
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self._headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StockAPIClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and unwrap the {"success", "data"} envelope.

        Returns:
            The "data" member of the response body.

        Raises:
            StockAPIError: On any transport, HTTP or payload problem.
        """
        client = await self._get_client()
        url = f"{self.base_url}{path}"

        try:
            response = await client.request(
                method, url, params=params, json=json, headers=headers
            )
        except (httpx.RequestError, httpx.InvalidURL) as e:
            message = str(e) or type(e).__name__
            logger.error(
                "Stock API request failed",
                method=method,
                path=path,
                error=message,
            )
            raise StockAPIError(f"Stock API request failed: {message}") from e

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY_CHARS]
            logger.error(
                "Stock API error",
                method=method,
                path=path,
                status_code=response.status_code,
                body=body,
            )
            raise StockAPIError(
                f"Stock API error {response.status_code}: {response.reason_phrase}. {body}".strip(),
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise StockAPIError(
                f"Stock API returned invalid JSON for {path}",
                status_code=response.status_code,
                body=response.text[:MAX_ERROR_BODY_CHARS],
            ) from e

        if not isinstance(payload, dict):
            raise StockAPIError(
                f"Unexpected Stock API response shape for {path}",
                status_code=response.status_code,
            )

        if payload.get("success") is False:
            reason = payload.get("error") or payload.get("message") or "request rejected"
            if isinstance(reason, dict):
                reason = reason.get("message") or str(reason)
            raise StockAPIError(
                f"Stock API error: {reason}", status_code=response.status_code
            )

        return payload.get("data")

    # Health check

    async def test_connection(self) -> ConnectionResult:
        """
        Check credentials and reachability with GET /erp.

        Never raises: failures are returned as connected=False with the message.
        """
        try:
            data = await self._request("GET", "/erp")
        except StockAPIError as e:
            return ConnectionResult(connected=False, error=e.message)

        name = data.get("name") if isinstance(data, dict) else None
        return ConnectionResult(connected=True, name=name)

    # Products

    async def list_products_page(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        mode: SyncMode = "full",
        updated_after: Optional[Union[datetime, str]] = None,
    ) -> ProductPage:
        """
        Fetch one page of products.

        GET /erp/products?page=&limit=[&updated_after=]

        Args:
            page: 1-based page number.
            page_size: Items per page.
            mode: "incremental" filters by updated_after server-side;
                "full" ignores updated_after.
            updated_after: Lower bound on the remote updatedAt.

        Returns:
            ProductPage with raw items; total_pages is authoritative.
        """
        params: Dict[str, Any] = {"page": page, "limit": page_size}
        if mode == "incremental" and updated_after:
            params["updated_after"] = (
                updated_after.isoformat()
                if isinstance(updated_after, datetime)
                else updated_after
            )

        data = await self._request("GET", "/erp/products", params=params)
        items, pagination = self._unpack_paginated(data, "/erp/products")

        try:
            return ProductPage(
                items=items,
                page=int(pagination.get("page") or page),
                total_pages=int(pagination.get("totalPages") or 0),
                total_count=int(pagination.get("total") or 0),
            )
        except (TypeError, ValueError) as e:
            raise StockAPIError(f"Malformed pagination in /erp/products: {e}") from e

    async def get_product_by_sku(self, sku: str) -> Optional[StockProduct]:
        """Search for a product and return the exact SKU match, if any."""
        data = await self._request(
            "GET", "/erp/products", params={"search": sku, "limit": 1}
        )
        items, _ = self._unpack_paginated(data, "/erp/products")
        for item in items:
            if isinstance(item, dict) and item.get("sku") == sku:
                try:
                    return StockProduct.model_validate(item)
                except ValidationError as e:
                    raise StockAPIError(f"Malformed product {sku}: {e}") from e
        return None

    # Stock balances

    async def list_stock_levels(
        self, page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[StockLevel]:
        """
        Fetch stock on hand for every SKU.

        Pages through GET /erp/stock and sums the per-location quantities so
        each SKU appears once.
        """
        totals: Dict[Tuple[str, Optional[str]], float] = defaultdict(float)
        page = 1
        total_pages = 1

        while page <= total_pages:
            data = await self._request(
                "GET", "/erp/stock", params={"page": page, "limit": page_size}
            )
            items, pagination = self._unpack_paginated(data, "/erp/stock")
            total_pages = int(pagination.get("totalPages") or 0)

            for raw in items:
                try:
                    row = StockBalanceRow.model_validate(raw)
                except ValidationError as e:
                    logger.warning(
                        "Skipping malformed stock balance row",
                        page=page,
                        error=str(e),
                    )
                    continue
                totals[(row.product_sku, row.variant_sku or None)] += row.qty

            page += 1

        return [
            StockLevel(product_sku=product_sku, variant_sku=variant_sku, stock=int(qty))
            for (product_sku, variant_sku), qty in totals.items()
        ]

    # Movements

    async def create_movement(
        self,
        movement: CreateMovementInput,
        idempotency_key: Optional[str] = None,
    ) -> MovementResult:
        """
        Post an inventory movement.

        POST /erp/movements

        Not idempotent on the Stock side. A caller-supplied idempotency_key is
        forwarded as the Idempotency-Key header for servers that honour it.

        Returns:
            MovementResult carrying the Stock document number.
        """
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = await self._request(
            "POST", "/erp/movements", json=movement.to_payload(), headers=headers
        )

        try:
            result = MovementResult.model_validate(data)
        except ValidationError as e:
            raise StockAPIError(f"Malformed movement response: {e}") from e

        logger.info(
            "Stock movement created",
            movement_type=movement.type,
            ref_no=movement.ref_no,
            doc_number=result.doc_number,
            lines=len(movement.lines),
        )
        return result

    @staticmethod
    def _unpack_paginated(data: Any, path: str) -> Tuple[List[Any], Dict[str, Any]]:
        if not isinstance(data, dict):
            raise StockAPIError(f"Unexpected Stock API response shape for {path}")
        items = data.get("items")
        pagination = data.get("pagination")
        if not isinstance(items, list) or not isinstance(pagination, dict):
            raise StockAPIError(f"Missing items or pagination in {path} response")
        return items, pagination
