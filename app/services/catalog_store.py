"""
Storage contract used by the sync engine.

The engine only needs a catalog keyed by SKU, a material usage ledger, the sync
status row and a key-value settings table. SupabaseService implements this for
production; tests plug in an in-memory store.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from app.models.database import (
    MaterialUsage,
    Product,
    ProductSource,
    ProductVariant,
    SyncStatus,
)


class CatalogStore(ABC):
    """Per-row atomic reads and writes over the local catalog."""

    # Settings

    @abstractmethod
    def get_setting(self, key: str) -> Optional[str]:
        """Return the stored value for key, or None."""

    @abstractmethod
    def set_setting(self, key: str, value: str) -> None:
        """Insert or replace a setting."""

    # Products

    @abstractmethod
    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        """Return the product with this SKU, or None."""

    @abstractmethod
    def create_product(self, product: Product) -> Product:
        """Insert a new product. Fails if the SKU already exists."""

    @abstractmethod
    def update_product(self, product: Product) -> Product:
        """Replace the stored fields of the product with product.sku."""

    @abstractmethod
    def count_products(self, source: Optional[ProductSource] = None) -> int:
        """Count products, optionally filtered by provenance."""

    # Variants

    @abstractmethod
    def get_variant(self, product_sku: str, sku: str) -> Optional[ProductVariant]:
        """Return the variant for (product_sku, sku), or None."""

    @abstractmethod
    def list_variants(self, product_sku: str) -> List[ProductVariant]:
        """Return every variant of a product, active or not."""

    @abstractmethod
    def create_variant(self, variant: ProductVariant) -> ProductVariant:
        """Insert a new variant."""

    @abstractmethod
    def update_variant(self, variant: ProductVariant) -> ProductVariant:
        """Replace the stored fields of (variant.product_sku, variant.sku)."""

    # Material usage ledger

    @abstractmethod
    def get_material_usage(
        self, production_id: str, product_sku: str, variant_sku: Optional[str] = None
    ) -> Optional[MaterialUsage]:
        """Return the usage row for a production and material SKU, or None."""

    @abstractmethod
    def upsert_material_usage(self, usage: MaterialUsage) -> MaterialUsage:
        """Insert or replace the row keyed by (production_id, product_sku, variant_sku)."""

    # Sync status

    @abstractmethod
    def get_sync_status(self) -> Optional[SyncStatus]:
        """Return the singleton sync status row, or None if never written."""

    @abstractmethod
    def save_sync_status(self, status: SyncStatus) -> SyncStatus:
        """Write the singleton sync status row."""
