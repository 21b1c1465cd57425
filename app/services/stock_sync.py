"""
Stock catalog sync.

Pulls products, variants and stock levels from the Stock ERP API into the local
products / product_variants tables, keyed by SKU.

The primitive is sync_page(): exactly one remote page per call, so a caller on
a bounded execution budget drives pagination itself and can stop after any
page. sync_all_pages() is a caller-side loop over that primitive for the CLI.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog
from pydantic import ValidationError

from app.config import settings
from app.models.database import (
    SOURCE_LOCAL,
    SOURCE_STOCK,
    Product,
    ProductVariant,
    SyncStatus,
)
from app.models.stock import StockProduct, StockVariant, SyncMode
from app.models.sync import FullSyncResult, PageSyncResult, StockSyncResult
from app.services.catalog_store import CatalogStore
from app.services.progress import ProgressTracker, progress_tracker
from app.services.stock_api_client import StockAPIClient, StockAPIError
from app.utils.retry import retry_with_backoff

logger = structlog.get_logger()


class SyncInProgressError(Exception):
    """Raised when a sync operation starts while another one is running."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"A stock sync is already running ({operation})")


class LocalProductConflictError(Exception):
    """Raised when a Stock SKU matches a product created locally."""

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(
            "SKU belongs to a locally created product; not overwritten by sync"
        )


class RemoteProductNotFoundError(Exception):
    """Raised when Stock has no product with the requested SKU."""

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Product {sku} not found in Stock")


def _validation_summary(error: ValidationError) -> str:
    parts = []
    for item in error.errors()[:3]:
        location = ".".join(str(part) for part in item.get("loc", ())) or "item"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def _active_stock(variants: Iterable[ProductVariant]) -> int:
    return sum(variant.stock for variant in variants if variant.is_active)


class StockSyncDriver:
    """Reconciles Stock API data into the local catalog store."""

    def __init__(
        self,
        store: CatalogStore,
        tracker: Optional[ProgressTracker] = None,
        page_size: Optional[int] = None,
    ):
        self.store = store
        self.tracker = tracker or progress_tracker
        self.page_size = page_size or settings.stock_sync_page_size
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _single_flight(self, operation: str):
        if self._lock.locked():
            logger.warning("Rejected concurrent stock sync", operation=operation)
            raise SyncInProgressError(operation)
        async with self._lock:
            yield

    # Products

    async def sync_page(
        self,
        client: StockAPIClient,
        page: int = 1,
        mode: SyncMode = "full",
        updated_after: Optional[datetime] = None,
    ) -> PageSyncResult:
        """
        Sync exactly one page of Stock products into the local catalog.

        Args:
            client: Stock API client.
            page: 1-based page number.
            mode: "full" ignores timestamps; "incremental" only fetches products
                updated after updated_after (default: the last successful sync).
            updated_after: Incremental cutoff. Pass back result.updated_after
                for the following pages of the same run.

        Returns:
            PageSyncResult with per-page counts, per-item errors and paging info.

        Raises:
            StockAPIError: The page could not be fetched.
            SyncInProgressError: Another sync call is running in this process.
        """
        if page < 1:
            raise ValueError("page must be >= 1")

        async with self._single_flight("sync_page"):
            return await self._sync_page(client, page, mode, updated_after)

    async def _sync_page(
        self,
        client: StockAPIClient,
        page: int,
        mode: SyncMode,
        updated_after: Optional[datetime],
    ) -> PageSyncResult:
        previous = self.tracker.read()
        if page == 1 or previous.phase in ("idle", "done", "error"):
            self.tracker.begin()
        else:
            self.tracker.set_phase("connecting")

        if mode == "incremental" and updated_after is None:
            updated_after = self.resolve_updated_after()
        if mode == "full":
            updated_after = None

        self.tracker.set_phase("fetching", current_product=f"Fetching page {page}...")
        self.tracker.set_page_info(page, max(previous.total_pages, page))

        log = logger.bind(page=page, mode=mode)
        try:
            product_page = await client.list_products_page(
                page=page,
                page_size=self.page_size,
                mode=mode,
                updated_after=updated_after,
            )
        except StockAPIError as e:
            self.tracker.set_phase("error", error=e.message)
            log.error("Failed to fetch Stock products page", error=e.message)
            raise

        result = PageSyncResult(
            page=product_page.page,
            total_pages=product_page.total_pages,
            total_count=product_page.total_count,
            has_more=product_page.has_more,
            updated_after=updated_after,
        )

        self.tracker.set_page_info(product_page.page, product_page.total_pages)
        self.tracker.set_phase("syncing")

        synced_at = datetime.now(timezone.utc)
        offset = (product_page.page - 1) * self.page_size
        for index, raw in enumerate(product_page.items):
            self._sync_item(raw, result, synced_at)
            processed = offset + index + 1
            self.tracker.set_counts(processed, max(product_page.total_count, processed))

        self._save_status(synced_at, result.errors)

        if not result.has_more:
            self.tracker.set_phase("done")

        log.info(
            "Stock products page synced",
            total_pages=result.total_pages,
            items=len(product_page.items),
            products_created=result.products_created,
            products_updated=result.products_updated,
            variants_created=result.variants_created,
            variants_updated=result.variants_updated,
            errors=len(result.errors),
        )
        return result

    def resolve_updated_after(self) -> Optional[datetime]:
        """Incremental cutoff when the caller gives none: the last sync time."""
        status = self.store.get_sync_status()
        return status.last_sync_at if status else None

    def _sync_item(self, raw: Any, result: PageSyncResult, synced_at: datetime) -> None:
        """Upsert one remote product; failures land in result.errors."""
        sku_hint = raw.get("sku") if isinstance(raw, dict) else None

        try:
            remote = StockProduct.model_validate(raw)
        except ValidationError as e:
            message = f"Product {sku_hint or '(no sku)'}: invalid data ({_validation_summary(e)})"
            result.errors.append(message)
            logger.warning("Skipping malformed Stock product", sku=sku_hint, error=str(e))
            return

        try:
            counts = self._upsert_product(remote, synced_at)
        except LocalProductConflictError as e:
            result.errors.append(f"Product {remote.sku}: {e}")
            logger.warning("Stock SKU collides with local product", sku=remote.sku)
            return
        except Exception as e:
            result.errors.append(f"Product {remote.sku}: {e}")
            logger.exception("Error syncing Stock product", sku=remote.sku, error=str(e))
            return

        result.products_created += counts["products_created"]
        result.products_updated += counts["products_updated"]
        result.variants_created += counts["variants_created"]
        result.variants_updated += counts["variants_updated"]
        result.synced_products.append(remote.display_name)
        self.tracker.push_recent(remote.display_name)

    def _upsert_product(self, remote: StockProduct, synced_at: datetime) -> Dict[str, int]:
        """
        Create or update one product and its variants.

        Variants missing from the remote payload are left as they are; Stock is
        authoritative for the SKUs it sends, not a deletion signal.
        """
        counts = {
            "products_created": 0,
            "products_updated": 0,
            "variants_created": 0,
            "variants_updated": 0,
        }
        existing = self.store.get_product_by_sku(remote.sku)
        if existing is not None and existing.source == SOURCE_LOCAL:
            raise LocalProductConflictError(remote.sku)

        product = self._product_from_remote(remote, existing, synced_at)
        remote_variants = self._dedupe(remote.variants)

        if existing is None:
            product.total_stock = (
                sum(v.stock for v in remote_variants)
                if remote_variants
                else remote.total_stock
            )
            self.store.create_product(product)
            counts["products_created"] = 1
            local_variants: Dict[str, ProductVariant] = {}
        else:
            local_variants = {v.sku: v for v in self.store.list_variants(remote.sku)}

        for remote_variant in remote_variants:
            local = local_variants.get(remote_variant.sku)
            if local is None:
                saved = self.store.create_variant(
                    self._variant_from_remote(remote_variant, remote.sku)
                )
                counts["variants_created"] += 1
            else:
                saved = self.store.update_variant(
                    local.model_copy(update=self._variant_fields(remote_variant))
                )
                counts["variants_updated"] += 1
            local_variants[remote_variant.sku] = saved

        if existing is not None:
            product.total_stock = (
                _active_stock(local_variants.values())
                if local_variants
                else remote.total_stock
            )
            self.store.update_product(product)
            counts["products_updated"] = 1

        return counts

    @staticmethod
    def _dedupe(variants: Iterable[StockVariant]) -> List[StockVariant]:
        """Last occurrence wins when a payload repeats a variant SKU."""
        return list({variant.sku: variant for variant in variants}.values())

    @staticmethod
    def _product_from_remote(
        remote: StockProduct, existing: Optional[Product], synced_at: datetime
    ) -> Product:
        fields = {
            "name": remote.name,
            "product_type": remote.product_type,
            "item_type": remote.item_type,
            "description": remote.description,
            "category": remote.category,
            "unit": remote.unit or remote.unit_name,
            "unit_name": remote.unit_name,
            "reorder_point": remote.reorder_point,
            "barcode": remote.barcode,
            "base_price": remote.base_price or 0.0,
            "cost_price": remote.cost_price or 0.0,
            "source": SOURCE_STOCK,
            "is_active": True,
            "remote_updated_at": remote.updated_at,
            "last_sync_at": synced_at,
        }
        if existing is not None:
            return existing.model_copy(update=fields)
        return Product(sku=remote.sku, **fields)

    @staticmethod
    def _variant_fields(remote: StockVariant) -> Dict[str, Any]:
        return {
            "size": remote.size,
            "color": remote.color,
            "stock": remote.stock,
            "price_adj": remote.price_adj,
            "cost_price": remote.cost_price,
            "selling_price": remote.selling_price,
            "barcode": remote.barcode,
        }

    def _variant_from_remote(self, remote: StockVariant, product_sku: str) -> ProductVariant:
        return ProductVariant(
            product_sku=product_sku,
            sku=remote.sku,
            is_active=True,
            **self._variant_fields(remote),
        )

    async def sync_product(self, client: StockAPIClient, sku: str) -> PageSyncResult:
        """
        Refresh a single product by SKU, outside any page run.

        Progress is left alone so a paged run in between pages keeps its state.

        Raises:
            RemoteProductNotFoundError: Stock has no product with this SKU.
            StockAPIError: The lookup failed.
        """
        async with self._single_flight("sync_product"):
            remote = await client.get_product_by_sku(sku)
            if remote is None:
                logger.warning("Stock product not found", sku=sku)
                raise RemoteProductNotFoundError(sku)

            result = PageSyncResult(page=1, total_pages=1, total_count=1)
            synced_at = datetime.now(timezone.utc)
            try:
                counts = self._upsert_product(remote, synced_at)
            except LocalProductConflictError as e:
                result.errors.append(f"Product {remote.sku}: {e}")
                logger.warning("Stock SKU collides with local product", sku=remote.sku)
                return result
            except Exception as e:
                result.errors.append(f"Product {remote.sku}: {e}")
                logger.exception("Error syncing Stock product", sku=remote.sku, error=str(e))
                return result

            result.products_created = counts["products_created"]
            result.products_updated = counts["products_updated"]
            result.variants_created = counts["variants_created"]
            result.variants_updated = counts["variants_updated"]
            result.synced_products.append(remote.display_name)
            self._save_status(synced_at, result.errors)

            logger.info("Stock product refreshed", sku=remote.sku, **counts)
            return result

    # Stock levels

    async def sync_stock_levels(self, client: StockAPIClient) -> StockSyncResult:
        """
        Update only stock quantities from the Stock balance listing.

        Prices, descriptions and categories are never touched. SKUs unknown to
        the local catalog are reported, not created.
        """
        async with self._single_flight("sync_stock_levels"):
            levels = await client.list_stock_levels(page_size=self.page_size)

            result = StockSyncResult()
            recount_skus: Dict[str, Product] = {}
            synced_at = datetime.now(timezone.utc)

            for level in levels:
                try:
                    product = self.store.get_product_by_sku(level.product_sku)
                    if product is None:
                        result.errors.append(f"Stock {level.sku}: not found in local catalog")
                        continue
                    if product.source == SOURCE_LOCAL:
                        result.errors.append(
                            f"Stock {level.sku}: SKU belongs to a locally created product"
                        )
                        continue

                    if level.variant_sku:
                        variant = self.store.get_variant(level.product_sku, level.variant_sku)
                        if variant is None:
                            result.errors.append(
                                f"Stock {level.sku}: variant not found in local catalog"
                            )
                            continue
                        if variant.stock != level.stock:
                            self.store.update_variant(
                                variant.model_copy(update={"stock": level.stock})
                            )
                        recount_skus[product.sku] = product
                        result.updated += 1
                    elif not self.store.list_variants(product.sku):
                        self.store.update_product(
                            product.model_copy(
                                update={"total_stock": level.stock, "last_sync_at": synced_at}
                            )
                        )
                        result.updated += 1
                except Exception as e:
                    result.errors.append(f"Stock {level.sku}: {e}")
                    logger.exception("Error syncing stock level", sku=level.sku, error=str(e))

            for product in recount_skus.values():
                try:
                    variants = self.store.list_variants(product.sku)
                    self.store.update_product(
                        product.model_copy(
                            update={
                                "total_stock": _active_stock(variants),
                                "last_sync_at": synced_at,
                            }
                        )
                    )
                except Exception as e:
                    result.errors.append(f"Stock {product.sku}: total stock not updated ({e})")
                    logger.exception("Error recomputing total stock", sku=product.sku, error=str(e))

            self._save_status(synced_at, result.errors)

            logger.info(
                "Stock levels synced",
                levels=len(levels),
                updated=result.updated,
                errors=len(result.errors),
            )
            return result

    # Status

    def get_status(self) -> SyncStatus:
        return self.store.get_sync_status() or SyncStatus()

    def _save_status(self, synced_at: datetime, errors: list) -> None:
        """Write the status row once, after the page's items are done."""
        try:
            stock_count = self.store.count_products(SOURCE_STOCK)
            local_count = self.store.count_products(SOURCE_LOCAL)
            total_count = self.store.count_products()
            self.store.save_sync_status(
                SyncStatus(
                    last_sync_at=synced_at,
                    total_stock_products=stock_count,
                    total_local_products=local_count,
                    total_products=total_count,
                )
            )
        except Exception as e:
            errors.append(f"Sync status not saved: {e}")
            logger.exception("Failed to save stock sync status", error=str(e))


async def sync_all_pages(
    driver: StockSyncDriver,
    client: StockAPIClient,
    mode: SyncMode = "full",
    updated_after: Optional[datetime] = None,
    max_pages: Optional[int] = None,
    on_page: Optional[Callable[[PageSyncResult], None]] = None,
) -> FullSyncResult:
    """
    Caller-side loop: sync page 1, 2, ... until the Stock API reports no more.

    Each page is retried on transient errors (pages are idempotent). Progress is
    reset to idle once the loop ends, successfully or not.
    """
    totals = FullSyncResult()
    sync_one_page = retry_with_backoff(
        max_attempts=settings.stock_sync_max_retry_attempts,
        initial_delay=settings.retry_initial_delay_seconds,
        multiplier=settings.retry_backoff_multiplier,
    )(driver.sync_page)

    if mode == "incremental" and updated_after is None:
        updated_after = driver.resolve_updated_after()

    page = 1
    try:
        while True:
            result = await sync_one_page(
                client, page=page, mode=mode, updated_after=updated_after
            )
            totals.add_page(result)
            if on_page:
                on_page(result)

            if not result.has_more:
                break
            if max_pages and totals.pages >= max_pages:
                logger.warning(
                    "Stopped stock sync at page limit",
                    max_pages=max_pages,
                    total_pages=result.total_pages,
                )
                break
            page += 1
    finally:
        driver.tracker.reset()

    logger.info(
        "Stock catalog sync finished",
        mode=mode,
        pages=totals.pages,
        products_created=totals.products_created,
        products_updated=totals.products_updated,
        errors=len(totals.errors),
    )
    return totals
