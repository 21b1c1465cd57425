"""
Pydantic models for the Anajak Stock ERP API (/erp/*).
Every response is wrapped as {"success": bool, "data": ...}; these models
describe what sits inside "data".
"""
import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.utils.variant_options import resolve_variant_options

# Fallback product type derived from the Stock category name
CATEGORY_TO_PRODUCT_TYPE: Dict[str, str] = {
    "เสื้อ": "T_SHIRT",
    "กางเกง": "PANTS",
    "เสื้อแจ็คเก็ต": "JACKET",
}
DEFAULT_PRODUCT_TYPE = "OTHER"

# Fallback item type for Stock instances that do not send itemType
CATEGORY_TO_ITEM_TYPE: Dict[str, str] = {
    "วัตถุดิบ": "RAW_MATERIAL",
    "อุปกรณ์": "CONSUMABLE",
}
DEFAULT_ITEM_TYPE = "FINISHED_GOOD"

SyncMode = Literal["full", "incremental"]
MovementType = Literal["ISSUE", "RECEIVE"]


class StockModel(BaseModel):
    """Base for Stock API payloads: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


def _floor_quantity(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return math.floor(value)
    return value


def _required_sku(value: Any) -> str:
    if value is None or not str(value).strip():
        raise ValueError("sku is required")
    return str(value).strip()


class StockVariant(StockModel):
    """A sellable variant of a Stock product (unique SKU within its product)."""

    sku: str
    id: Optional[str] = None
    name: Optional[str] = None
    barcode: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    stock: int = Field(
        0, ge=0, validation_alias=AliasChoices("stock", "totalStock", "total_stock")
    )
    price_adj: float = 0.0
    cost_price: float = 0.0
    selling_price: float = 0.0
    options: Optional[List[Dict[str, Any]]] = None

    @field_validator("sku", mode="before")
    @classmethod
    def _sku_not_blank(cls, value: Any) -> str:
        return _required_sku(value)

    @field_validator("stock", mode="before")
    @classmethod
    def _floor_stock(cls, value: Any) -> Any:
        return _floor_quantity(value)

    @field_validator("price_adj", "cost_price", "selling_price", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @model_validator(mode="after")
    def _fill_size_and_color(self) -> "StockVariant":
        if not self.size or not self.color:
            size, color = resolve_variant_options(self.options, self.name)
            self.size = self.size or size
            self.color = self.color or color
        return self


class StockProduct(StockModel):
    """A catalog product as returned by GET /erp/products."""

    sku: str
    name: str = ""
    id: Optional[str] = None
    description: Optional[str] = None
    barcode: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    unit_name: Optional[str] = None
    product_type: Optional[str] = None
    item_type: Optional[str] = None
    base_price: Optional[float] = None
    cost_price: Optional[float] = None
    standard_cost: float = 0.0
    last_cost: float = 0.0
    reorder_point: float = 0.0
    total_stock: int = Field(
        0, ge=0, validation_alias=AliasChoices("totalStock", "total_stock", "stock")
    )
    has_variants: Optional[bool] = None
    updated_at: Optional[datetime] = None
    variants: List[StockVariant] = Field(default_factory=list)

    @field_validator("sku", mode="before")
    @classmethod
    def _sku_not_blank(cls, value: Any) -> str:
        return _required_sku(value)

    @field_validator("name", mode="before")
    @classmethod
    def _name_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("standard_cost", "last_cost", "reorder_point", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("total_stock", mode="before")
    @classmethod
    def _floor_stock(cls, value: Any) -> Any:
        return _floor_quantity(value)

    @field_validator("variants", mode="before")
    @classmethod
    def _variants_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _derive_fields(self) -> "StockProduct":
        fallback_cost = self.last_cost or self.standard_cost or 0.0
        if self.cost_price is None:
            self.cost_price = fallback_cost
        if self.base_price is None:
            self.base_price = fallback_cost
        if not self.product_type:
            self.product_type = CATEGORY_TO_PRODUCT_TYPE.get(
                self.category or "", DEFAULT_PRODUCT_TYPE
            )
        if not self.item_type:
            self.item_type = CATEGORY_TO_ITEM_TYPE.get(
                self.category or "", DEFAULT_ITEM_TYPE
            )
        if self.has_variants is False:
            self.variants = []
        return self

    @property
    def display_name(self) -> str:
        return f"{self.sku} - {self.name}" if self.name else self.sku


class ProductPage(BaseModel):
    """
    One page of GET /erp/products.

    Items are kept as raw dicts; the sync driver validates them one by one so a
    single malformed product cannot fail the whole page.
    """

    items: List[Any] = Field(default_factory=list)
    page: int
    total_pages: int
    total_count: int

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


class StockBalanceRow(StockModel):
    """Per-location balance row from GET /erp/stock."""

    product_sku: str
    variant_sku: Optional[str] = None
    location_code: Optional[str] = None
    qty: float = 0.0

    @field_validator("qty", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value


class StockLevel(BaseModel):
    """Stock on hand for one SKU, summed over all locations."""

    product_sku: str
    variant_sku: Optional[str] = None
    stock: int = 0

    @property
    def sku(self) -> str:
        return self.variant_sku or self.product_sku


class MovementLine(StockModel):
    sku: str
    qty: float = Field(gt=0)
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    unit_cost: Optional[float] = None
    note: Optional[str] = None


class CreateMovementInput(StockModel):
    """Body of POST /erp/movements."""

    type: MovementType
    ref_no: Optional[str] = None
    note: Optional[str] = None
    lines: List[MovementLine] = Field(min_length=1)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MovementResult(StockModel):
    """Created movement; doc_number is the durable correlation id."""

    doc_number: str
    id: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    lines_count: Optional[int] = None


class ConnectionResult(StockModel):
    connected: bool
    name: Optional[str] = None
    error: Optional[str] = None
