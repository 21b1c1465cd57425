"""
Result and progress models returned to sync callers.
Serialized with camelCase keys for the dashboard client.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SyncPhase = Literal["idle", "connecting", "fetching", "syncing", "done", "error"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncProgress(CamelModel):
    """Snapshot of the in-flight sync, read by the polling status endpoint."""

    phase: SyncPhase = "idle"
    current_page: int = 0
    total_pages: int = 0
    processed_count: int = 0
    total_count: int = 0
    current_product: Optional[str] = None
    recent_products: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    updated_at: Optional[datetime] = None


class PageSyncResult(CamelModel):
    products_created: int = 0
    products_updated: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    errors: List[str] = Field(default_factory=list)
    page: int = 1
    total_pages: int = 0
    total_count: int = 0
    has_more: bool = False
    synced_products: List[str] = Field(default_factory=list)
    # Effective incremental cutoff; echo it back when requesting the next page
    updated_after: Optional[datetime] = None


class StockSyncResult(CamelModel):
    updated: int = 0
    errors: List[str] = Field(default_factory=list)


class FullSyncResult(CamelModel):
    """Totals accumulated by a caller looping over single-page syncs."""

    products_created: int = 0
    products_updated: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    errors: List[str] = Field(default_factory=list)
    pages: int = 0
    total_pages: int = 0
    total_count: int = 0

    def add_page(self, result: PageSyncResult) -> None:
        self.products_created += result.products_created
        self.products_updated += result.products_updated
        self.variants_created += result.variants_created
        self.variants_updated += result.variants_updated
        self.errors.extend(result.errors)
        self.pages += 1
        self.total_pages = result.total_pages
        self.total_count = result.total_count


class IssueMaterialsResult(CamelModel):
    movement_doc_number: str
    materials_issued: int


class ReceiveFinishedResult(CamelModel):
    movement_doc_number: str
    items_received: int


class MaterialToIssue(CamelModel):
    """One raw material consumed by a production order."""

    product_sku: str = Field(min_length=1)
    variant_sku: Optional[str] = None
    quantity: float = Field(gt=0)
    unit: Optional[str] = None
    unit_cost: float = Field(0.0, ge=0)

    @property
    def line_sku(self) -> str:
        return self.variant_sku or self.product_sku


class FinishedItem(CamelModel):
    """One finished good received into the shipping warehouse."""

    sku: str = Field(min_length=1)
    quantity: float = Field(ge=1)
    unit_cost: float = Field(0.0, ge=0)
