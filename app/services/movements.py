"""
Inventory movements posted to the Stock ERP API.

Production issues raw materials (ISSUE) and receives finished goods (RECEIVE).
Stock is the system of record; for issues the local material ledger and stock
caches are mirrored after the remote document exists.
"""

import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import structlog

from app.config import settings
from app.models.database import MaterialUsage
from app.models.stock import CreateMovementInput, MovementLine
from app.models.sync import (
    FinishedItem,
    IssueMaterialsResult,
    MaterialToIssue,
    ReceiveFinishedResult,
)
from app.services.catalog_store import CatalogStore
from app.services.stock_api_client import StockAPIClient

logger = structlog.get_logger()


class MovementReconciliationError(Exception):
    """
    The remote movement was posted but the local mirror failed.

    doc_number identifies the remote document to reconcile by hand.
    """

    def __init__(self, doc_number: str, message: str):
        self.doc_number = doc_number
        self.message = message
        super().__init__(f"{message} (Stock document {doc_number})")


def _whole_units(quantity: float) -> int:
    """Local stock caches count whole units; partial units round up."""
    return math.ceil(quantity)


def _merge_duplicate_lines(materials: List[MaterialToIssue]) -> List[MaterialToIssue]:
    """
    One line per (product_sku, variant_sku), in first-seen order.

    Quantities are summed and unit_cost becomes the quantity-weighted average,
    so total cost is preserved.
    """
    merged: Dict[Tuple[str, Optional[str]], MaterialToIssue] = {}
    for material in materials:
        key = (material.product_sku, material.variant_sku or None)
        current = merged.get(key)
        if current is None:
            merged[key] = material
            continue

        quantity = current.quantity + material.quantity
        total_cost = (
            current.quantity * current.unit_cost
            + material.quantity * material.unit_cost
        )
        merged[key] = current.model_copy(
            update={
                "quantity": quantity,
                "unit_cost": total_cost / quantity,
                "unit": current.unit or material.unit,
            }
        )
    return list(merged.values())


class MovementReconciler:
    """Posts movements to Stock and mirrors material issues locally."""

    def __init__(self, store: CatalogStore):
        self.store = store

    async def issue_materials(
        self,
        client: StockAPIClient,
        production_id: str,
        order_number: str,
        materials: List[MaterialToIssue],
        from_location: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> IssueMaterialsResult:
        """
        Issue raw materials for a production order.

        Lines naming the same SKU are merged first (quantities summed), so the
        movement, the ledger and the stock caches all see one line per SKU.
        Posts one ISSUE movement, then records a MaterialUsage row per SKU and
        deducts the issued quantity from the local stock caches. Ledger rows
        are keyed by (production_id, SKU): repeating the call for the same
        production updates the rows and deducts only the difference.

        Raises:
            ValueError: No materials given.
            StockAPIError: The movement was not posted; nothing local changed.
            MovementReconciliationError: Posted remotely, local mirror failed.
        """
        if not materials:
            raise ValueError("At least one material is required")
        materials = _merge_duplicate_lines(materials)

        from_location = from_location or settings.default_issue_location
        movement = CreateMovementInput(
            type="ISSUE",
            ref_no=order_number,
            note=f"Issue materials for order {order_number}",
            lines=[
                MovementLine(
                    sku=material.line_sku,
                    from_location=from_location,
                    qty=material.quantity,
                    unit_cost=material.unit_cost,
                    note=f"Production: {production_id}",
                )
                for material in materials
            ],
        )

        result = await client.create_movement(movement, idempotency_key=idempotency_key)
        doc_number = result.doc_number
        log = logger.bind(
            production_id=production_id,
            order_number=order_number,
            doc_number=doc_number,
        )

        try:
            for material in materials:
                self._record_usage(production_id, material, doc_number)
        except Exception as e:
            log.error(
                "Stock movement posted but local mirror failed; reconcile manually",
                error=str(e),
            )
            raise MovementReconciliationError(
                doc_number, f"Local material records not updated: {e}"
            ) from e

        log.info("Materials issued", materials=len(materials))
        return IssueMaterialsResult(
            movement_doc_number=doc_number,
            materials_issued=len(materials),
        )

    def _record_usage(
        self, production_id: str, material: MaterialToIssue, doc_number: str
    ) -> None:
        previous = self.store.get_material_usage(
            production_id, material.product_sku, material.variant_sku
        )
        self.store.upsert_material_usage(
            MaterialUsage(
                id=previous.id if previous else None,
                production_id=production_id,
                product_sku=material.product_sku,
                variant_sku=material.variant_sku,
                quantity=material.quantity,
                unit=material.unit,
                unit_cost=material.unit_cost,
                total_cost=material.quantity * material.unit_cost,
                stock_movement_ref=doc_number,
                deducted_at=datetime.now(timezone.utc),
            )
        )

        already_deducted = _whole_units(previous.quantity) if previous else 0
        delta = _whole_units(material.quantity) - already_deducted
        if delta:
            self._deduct_stock(material, delta)

    def _deduct_stock(self, material: MaterialToIssue, units: int) -> None:
        """Subtract units from the variant and product caches (negative adds back)."""
        product = self.store.get_product_by_sku(material.product_sku)
        if product is None:
            logger.warning(
                "Issued material not in local catalog; stock cache not updated",
                sku=material.line_sku,
            )
            return

        if material.variant_sku:
            variant = self.store.get_variant(material.product_sku, material.variant_sku)
            if variant is None:
                logger.warning(
                    "Issued variant not in local catalog; variant stock not updated",
                    sku=material.line_sku,
                )
            else:
                self.store.update_variant(
                    variant.model_copy(update={"stock": variant.stock - units})
                )

        self.store.update_product(
            product.model_copy(update={"total_stock": product.total_stock - units})
        )

    async def receive_finished(
        self,
        client: StockAPIClient,
        order_number: str,
        items: List[FinishedItem],
        to_location: Optional[str] = None,
        note: Optional[str] = None,
    ) -> ReceiveFinishedResult:
        """Post a RECEIVE movement for finished goods. Local stock is left alone."""
        if not items:
            raise ValueError("At least one item is required")

        to_location = to_location or settings.default_receive_location
        movement = CreateMovementInput(
            type="RECEIVE",
            ref_no=order_number,
            note=note or f"Finished goods from order {order_number}",
            lines=[
                MovementLine(
                    sku=item.sku,
                    to_location=to_location,
                    qty=item.quantity,
                    unit_cost=item.unit_cost,
                )
                for item in items
            ],
        )

        result = await client.create_movement(movement)
        logger.info(
            "Finished goods received",
            order_number=order_number,
            doc_number=result.doc_number,
            items=len(items),
        )
        return ReceiveFinishedResult(
            movement_doc_number=result.doc_number,
            items_received=len(items),
        )
