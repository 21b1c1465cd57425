"""
Pydantic models for Supabase database tables.
These models represent the structure of data stored in Supabase.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

ProductSource = Literal["STOCK", "LOCAL"]

SOURCE_STOCK: ProductSource = "STOCK"
SOURCE_LOCAL: ProductSource = "LOCAL"

SETTING_STOCK_API_URL = "stock_api_url"
SETTING_STOCK_API_KEY = "stock_api_key"


class Product(BaseModel):
    """Model for products table. sku is the identity key across sync runs."""
    id: Optional[int] = None
    sku: str
    name: str = ""
    product_type: str = "OTHER"
    item_type: str = "FINISHED_GOOD"
    description: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    unit_name: Optional[str] = None
    barcode: Optional[str] = None
    base_price: float = 0.0
    cost_price: float = 0.0
    reorder_point: float = 0.0
    source: ProductSource = SOURCE_LOCAL
    total_stock: int = 0
    is_active: bool = True
    remote_updated_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductVariant(BaseModel):
    """Model for product_variants table, keyed by (product_sku, sku)."""
    id: Optional[int] = None
    product_sku: str
    sku: str
    size: str = "FREE"
    color: str = "-"
    stock: int = 0
    price_adj: float = 0.0
    cost_price: float = 0.0
    selling_price: float = 0.0
    barcode: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MaterialUsage(BaseModel):
    """
    Model for material_usages table.
    One row per (production_id, sku); stock_movement_ref is the Stock document
    number of the ISSUE movement that consumed the material.
    """
    id: Optional[int] = None
    production_id: str
    product_sku: str
    variant_sku: Optional[str] = None
    quantity: float
    unit: Optional[str] = None
    unit_cost: float = 0.0
    total_cost: float = 0.0
    stock_movement_ref: str
    deducted_at: datetime

    @property
    def line_sku(self) -> str:
        return self.variant_sku or self.product_sku


class SyncStatus(BaseModel):
    """Model for stock_sync_status table (single row, id=1)."""
    id: int = 1
    last_sync_at: Optional[datetime] = None
    total_stock_products: int = 0
    total_local_products: int = 0
    total_products: int = 0
    updated_at: Optional[datetime] = None


class SystemSetting(BaseModel):
    """Model for system_settings table (generic key-value store)."""
    key: str
    value: str
    updated_at: Optional[datetime] = None
