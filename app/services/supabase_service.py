"""
Supabase service layer for database operations.
Handles the local catalog (products, product_variants), the material usage
ledger, the stock sync status row and system_settings.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from supabase import Client, create_client

from app.config import settings
from app.models.database import (
    MaterialUsage,
    Product,
    ProductSource,
    ProductVariant,
    SyncStatus,
    SystemSetting,
)
from app.services.catalog_store import CatalogStore

logger = structlog.get_logger()

SYNC_STATUS_ROW_ID = 1


class SupabaseService(CatalogStore):
    """Catalog store backed by Supabase tables."""

    def __init__(self, client: Optional[Client] = None):
        """Initialize Supabase client."""
        self.client: Client = client or create_client(
            settings.supabase_url, settings.supabase_service_key
        )

    @staticmethod
    def _row_data(model: Any, exclude: set) -> Dict[str, Any]:
        """Dump a model to JSON-safe column values."""
        return model.model_dump(mode="json", exclude=exclude)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # Settings

    def get_setting(self, key: str) -> Optional[str]:
        try:
            result = (
                self.client.table("system_settings")
                .select("*")
                .eq("key", key)
                .limit(1)
                .execute()
            )
            if result.data:
                return SystemSetting(**result.data[0]).value
            return None
        except Exception as e:
            logger.error("Failed to get setting", key=key, error=str(e))
            raise

    def set_setting(self, key: str, value: str) -> None:
        try:
            self.client.table("system_settings").upsert(
                {"key": key, "value": value, "updated_at": self._now()},
                on_conflict="key",
            ).execute()
        except Exception as e:
            logger.error("Failed to save setting", key=key, error=str(e))
            raise

    # Products

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        try:
            # Don't use .single() - it throws exception on 0 rows
            result = (
                self.client.table("products")
                .select("*")
                .eq("sku", sku)
                .limit(1)
                .execute()
            )
            if result.data:
                return Product(**result.data[0])
            return None
        except Exception as e:
            logger.error("Failed to get product by SKU", sku=sku, error=str(e))
            raise

    def create_product(self, product: Product) -> Product:
        try:
            insert_data = self._row_data(
                product, exclude={"id", "created_at", "updated_at"}
            )
            result = self.client.table("products").insert(insert_data).execute()
            if result.data:
                return Product(**result.data[0])
            raise Exception("No data returned from insert")
        except Exception as e:
            logger.error("Failed to create product", sku=product.sku, error=str(e))
            raise

    def update_product(self, product: Product) -> Product:
        try:
            update_data = self._row_data(
                product, exclude={"id", "sku", "created_at"}
            )
            update_data["updated_at"] = self._now()
            result = (
                self.client.table("products")
                .update(update_data)
                .eq("sku", product.sku)
                .execute()
            )
            if result.data:
                return Product(**result.data[0])
            raise Exception(f"Product not found: {product.sku}")
        except Exception as e:
            logger.error("Failed to update product", sku=product.sku, error=str(e))
            raise

    def count_products(self, source: Optional[ProductSource] = None) -> int:
        try:
            query = self.client.table("products").select("sku", count="exact")
            if source:
                query = query.eq("source", source)
            result = query.limit(1).execute()
            return result.count or 0
        except Exception as e:
            logger.error("Failed to count products", source=source, error=str(e))
            raise

    # Variants

    def get_variant(self, product_sku: str, sku: str) -> Optional[ProductVariant]:
        try:
            result = (
                self.client.table("product_variants")
                .select("*")
                .eq("product_sku", product_sku)
                .eq("sku", sku)
                .limit(1)
                .execute()
            )
            if result.data:
                return ProductVariant(**result.data[0])
            return None
        except Exception as e:
            logger.error(
                "Failed to get variant",
                product_sku=product_sku,
                sku=sku,
                error=str(e),
            )
            raise

    def list_variants(self, product_sku: str) -> List[ProductVariant]:
        try:
            result = (
                self.client.table("product_variants")
                .select("*")
                .eq("product_sku", product_sku)
                .execute()
            )
            return [ProductVariant(**row) for row in result.data] if result.data else []
        except Exception as e:
            logger.error(
                "Failed to list variants", product_sku=product_sku, error=str(e)
            )
            raise

    def create_variant(self, variant: ProductVariant) -> ProductVariant:
        try:
            insert_data = self._row_data(
                variant, exclude={"id", "created_at", "updated_at"}
            )
            result = (
                self.client.table("product_variants").insert(insert_data).execute()
            )
            if result.data:
                return ProductVariant(**result.data[0])
            raise Exception("No data returned from insert")
        except Exception as e:
            logger.error(
                "Failed to create variant",
                product_sku=variant.product_sku,
                sku=variant.sku,
                error=str(e),
            )
            raise

    def update_variant(self, variant: ProductVariant) -> ProductVariant:
        try:
            update_data = self._row_data(
                variant, exclude={"id", "product_sku", "sku", "created_at"}
            )
            update_data["updated_at"] = self._now()
            result = (
                self.client.table("product_variants")
                .update(update_data)
                .eq("product_sku", variant.product_sku)
                .eq("sku", variant.sku)
                .execute()
            )
            if result.data:
                return ProductVariant(**result.data[0])
            raise Exception(f"Variant not found: {variant.product_sku}/{variant.sku}")
        except Exception as e:
            logger.error(
                "Failed to update variant",
                product_sku=variant.product_sku,
                sku=variant.sku,
                error=str(e),
            )
            raise

    # Material usage ledger

    def get_material_usage(
        self, production_id: str, product_sku: str, variant_sku: Optional[str] = None
    ) -> Optional[MaterialUsage]:
        try:
            query = (
                self.client.table("material_usages")
                .select("*")
                .eq("production_id", production_id)
                .eq("product_sku", product_sku)
            )
            if variant_sku:
                query = query.eq("variant_sku", variant_sku)
            else:
                query = query.is_("variant_sku", "null")
            result = query.limit(1).execute()
            if result.data:
                return MaterialUsage(**result.data[0])
            return None
        except Exception as e:
            logger.error(
                "Failed to get material usage",
                production_id=production_id,
                product_sku=product_sku,
                error=str(e),
            )
            raise

    def upsert_material_usage(self, usage: MaterialUsage) -> MaterialUsage:
        try:
            existing = self.get_material_usage(
                usage.production_id, usage.product_sku, usage.variant_sku
            )
            data = self._row_data(usage, exclude={"id"})

            if existing:
                result = (
                    self.client.table("material_usages")
                    .update(data)
                    .eq("id", existing.id)
                    .execute()
                )
            else:
                result = self.client.table("material_usages").insert(data).execute()

            if result.data:
                return MaterialUsage(**result.data[0])
            raise Exception("No data returned from upsert")
        except Exception as e:
            logger.error(
                "Failed to upsert material usage",
                production_id=usage.production_id,
                product_sku=usage.product_sku,
                stock_movement_ref=usage.stock_movement_ref,
                error=str(e),
            )
            raise

    # Sync status

    def get_sync_status(self) -> Optional[SyncStatus]:
        try:
            result = (
                self.client.table("stock_sync_status")
                .select("*")
                .eq("id", SYNC_STATUS_ROW_ID)
                .limit(1)
                .execute()
            )
            if result.data:
                return SyncStatus(**result.data[0])
            return None
        except Exception as e:
            logger.error("Failed to get sync status", error=str(e))
            raise

    def save_sync_status(self, status: SyncStatus) -> SyncStatus:
        try:
            data = self._row_data(status, exclude=set())
            data["id"] = SYNC_STATUS_ROW_ID
            data["updated_at"] = self._now()
            result = (
                self.client.table("stock_sync_status")
                .upsert(data, on_conflict="id")
                .execute()
            )
            if result.data:
                return SyncStatus(**result.data[0])
            return status
        except Exception as e:
            logger.error("Failed to save sync status", error=str(e))
            raise
