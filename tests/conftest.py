"""
Shared fixtures: an in-memory catalog store, a scripted fake of the Stock ERP
API served through httpx.MockTransport, and a fresh progress tracker.

Nothing here touches Supabase or the network.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from app.models.database import (
    MaterialUsage,
    Product,
    ProductSource,
    ProductVariant,
    SyncStatus,
)
from app.services.catalog_store import CatalogStore
from app.services.movements import MovementReconciler
from app.services.progress import InMemoryProgressStore, ProgressTracker
from app.services.stock_api_client import StockAPIClient
from app.services.stock_sync import StockSyncDriver

STOCK_URL = "https://stock.test/api"
STOCK_KEY = "test-key"


class InMemoryCatalogStore(CatalogStore):
    """Dict-backed CatalogStore; fail_on lets a test break one operation."""

    def __init__(self):
        self.settings: Dict[str, str] = {}
        self.products: Dict[str, Product] = {}
        self.variants: Dict[Tuple[str, str], ProductVariant] = {}
        self.usages: Dict[Tuple[str, str, Optional[str]], MaterialUsage] = {}
        self.status: Optional[SyncStatus] = None
        self.fail_on: Dict[str, Callable[[Any], bool]] = {}
        self._next_id = 1

    def _check(self, operation: str, arg: Any) -> None:
        predicate = self.fail_on.get(operation)
        if predicate and predicate(arg):
            raise RuntimeError(f"{operation} failed")

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def get_setting(self, key):
        return self.settings.get(key)

    def set_setting(self, key, value):
        self.settings[key] = value

    def get_product_by_sku(self, sku):
        return self.products.get(sku)

    def create_product(self, product):
        self._check("create_product", product)
        if product.sku in self.products:
            raise RuntimeError(f"duplicate sku {product.sku}")
        stored = product.model_copy(update={"id": self._id()})
        self.products[product.sku] = stored
        return stored

    def update_product(self, product):
        self._check("update_product", product)
        if product.sku not in self.products:
            raise RuntimeError(f"Product not found: {product.sku}")
        self.products[product.sku] = product
        return product

    def count_products(self, source: Optional[ProductSource] = None):
        return sum(1 for p in self.products.values() if source is None or p.source == source)

    def get_variant(self, product_sku, sku):
        return self.variants.get((product_sku, sku))

    def list_variants(self, product_sku):
        return [v for (p, _), v in self.variants.items() if p == product_sku]

    def create_variant(self, variant):
        self._check("create_variant", variant)
        key = (variant.product_sku, variant.sku)
        if key in self.variants:
            raise RuntimeError(f"duplicate variant {key}")
        stored = variant.model_copy(update={"id": self._id()})
        self.variants[key] = stored
        return stored

    def update_variant(self, variant):
        self._check("update_variant", variant)
        self.variants[(variant.product_sku, variant.sku)] = variant
        return variant

    def get_material_usage(self, production_id, product_sku, variant_sku=None):
        return self.usages.get((production_id, product_sku, variant_sku))

    def upsert_material_usage(self, usage):
        self._check("upsert_material_usage", usage)
        key = (usage.production_id, usage.product_sku, usage.variant_sku)
        stored = usage.model_copy(update={"id": usage.id or self._id()})
        self.usages[key] = stored
        return stored

    def get_sync_status(self):
        return self.status

    def save_sync_status(self, status):
        self._check("save_sync_status", status)
        self.status = status
        return status

    # Test helpers

    def add_product(self, sku: str, **fields) -> Product:
        fields.setdefault("name", sku)
        product = Product(sku=sku, id=self._id(), **fields)
        self.products[sku] = product
        return product

    def add_variant(self, product_sku: str, sku: str, **fields) -> ProductVariant:
        variant = ProductVariant(product_sku=product_sku, sku=sku, id=self._id(), **fields)
        self.variants[(product_sku, sku)] = variant
        return variant


class FakeStockAPI:
    """
    Scripted Stock ERP API. Products are paged like the real /erp/products;
    failures can be injected per path.
    """

    def __init__(self, products: Optional[List[Dict[str, Any]]] = None, page_size: int = 100):
        self.products = products or []
        self.page_size = page_size
        self.balances: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.movements: List[Dict[str, Any]] = []
        self.failures: Dict[str, List[httpx.Response]] = {}
        self.name = "Anajak Stock"
        self._doc_seq = 0

    def fail(self, path: str, status_code: int = 500, times: int = 1, body: Any = None) -> None:
        payload = body if body is not None else {"success": False, "error": "boom"}
        self.failures.setdefault(path, []).extend(
            httpx.Response(status_code, json=payload) for _ in range(times)
        )

    def paths(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path)]

    @staticmethod
    def _paged(items: List[Any], page: int, limit: int) -> Dict[str, Any]:
        total_pages = (len(items) + limit - 1) // limit
        start = (page - 1) * limit
        return {
            "items": items[start:start + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": len(items),
                "totalPages": total_pages,
            },
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")

        queued = self.failures.get(path)
        if queued:
            return queued.pop(0)

        if path == "/erp":
            return httpx.Response(200, json={"success": True, "data": {"name": self.name}})

        if path == "/erp/products":
            params = request.url.params
            if "search" in params:
                matches = [p for p in self.products if p.get("sku") == params["search"]]
                return httpx.Response(
                    200, json={"success": True, "data": self._paged(matches, 1, 1)}
                )
            page = int(params.get("page", 1))
            limit = int(params.get("limit", self.page_size))
            return httpx.Response(
                200, json={"success": True, "data": self._paged(self.products, page, limit)}
            )

        if path == "/erp/stock":
            params = request.url.params
            page = int(params.get("page", 1))
            limit = int(params.get("limit", 100))
            return httpx.Response(
                200, json={"success": True, "data": self._paged(self.balances, page, limit)}
            )

        if path == "/erp/movements" and request.method == "POST":
            body = json.loads(request.content)
            self.movements.append(body)
            self._doc_seq += 1
            prefix = "ISS" if body["type"] == "ISSUE" else "REC"
            return httpx.Response(
                201,
                json={
                    "success": True,
                    "data": {
                        "id": f"mv-{self._doc_seq}",
                        "docNumber": f"{prefix}-{self._doc_seq:04d}",
                        "type": body["type"],
                        "status": "POSTED",
                        "linesCount": len(body["lines"]),
                    },
                },
            )

        return httpx.Response(404, json={"success": False, "error": "not found"})

    def client(self) -> StockAPIClient:
        return StockAPIClient(
            base_url=STOCK_URL,
            api_key=STOCK_KEY,
            transport=httpx.MockTransport(self.handler),
        )


def stock_product(sku: str, name: Optional[str] = None, variants=None, **fields) -> Dict[str, Any]:
    """Raw /erp/products item the way the Stock API sends it."""
    product = {
        "id": f"id-{sku}",
        "sku": sku,
        "name": name or f"Product {sku}",
        "category": None,
        "unit": "PCS",
        "standardCost": 100,
        "lastCost": 120,
        "updatedAt": "2026-01-10T08:00:00Z",
        "variants": variants or [],
        "hasVariants": bool(variants),
    }
    product.update(fields)
    return product


def stock_variant(sku: str, stock: float = 0, **fields) -> Dict[str, Any]:
    variant = {"id": f"id-{sku}", "sku": sku, "name": fields.pop("name", None), "stock": stock}
    variant.update(fields)
    return variant


@pytest.fixture
def store():
    return InMemoryCatalogStore()


@pytest.fixture
def tracker():
    return ProgressTracker(InMemoryProgressStore(), recent_limit=5)


@pytest.fixture
def stock_api():
    return FakeStockAPI()


@pytest.fixture
def driver(store, tracker):
    return StockSyncDriver(store, tracker=tracker, page_size=100)


@pytest.fixture
def reconciler(store):
    return MovementReconciler(store)
