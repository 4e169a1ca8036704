"""
Batch-level stock movement.

Deduction walks a product's batches in FEFO order (earliest expiry first, batches
without an expiry last) when the product tracks expiry, otherwise FIFO by
creation time. Every touched batch is saved on its own; there is no lock across
the read and the write, so two concurrent orders can both see the same stock.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from ..logs import json_log
from .common import to_decimal, to_number
from .entities import PRODUCT_BATCHES, PRODUCTS

FEFO = [("expiry", 1), ("created_at", 1)]
FIFO = [("created_at", 1)]

RESTOCK_POLICIES = {
    "refund": [("created_at", -1)],
    "cancellation": [("expiry", -1), ("created_at", -1)],
}


@dataclass
class LineAllocation:
    product_id: str
    requested: Decimal
    deducted: Decimal = Decimal("0")
    batches: list[dict] = field(default_factory=list)

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.deducted


@dataclass
class AllocationReport:
    lines: list[LineAllocation] = field(default_factory=list)

    def shortfalls(self) -> list[dict]:
        return [
            {
                "product_id": a.product_id,
                "requested": to_number(a.requested),
                "deducted": to_number(a.deducted),
                "shortfall": to_number(a.shortfall),
            }
            for a in self.lines
            if a.shortfall > 0
        ]


def batch_order(product: dict) -> list[tuple[str, int]]:
    return FEFO if product.get("track_expiry") else FIFO


def deduct_for_order(store, company_id: str, lines: list[dict]) -> AllocationReport:
    report = AllocationReport()
    for line in lines or []:
        product_id = line.get("product_id")
        qty = to_decimal(line.get("quantity"))
        if not product_id or qty <= 0:
            continue
        product = store.find_one(PRODUCTS, company_id, {"id": product_id})
        if product is None:
            continue

        alloc = LineAllocation(product_id=product_id, requested=qty)
        batches = store.find(
            PRODUCT_BATCHES,
            company_id,
            {"product_id": product_id, "is_deleted": False},
            sort=batch_order(product),
        )
        remaining = qty
        for b in batches:
            if remaining <= 0:
                break
            available = to_decimal(b.get("quantity"))
            if available <= 0:
                continue
            take = min(available, remaining)
            b["quantity"] = to_number(available - take)
            store.save(PRODUCT_BATCHES, company_id, b)
            alloc.batches.append({"batch_id": b["id"], "qty": to_number(take)})
            alloc.deducted += take
            remaining -= take

        if alloc.shortfall > 0:
            json_log(
                "warning",
                "sync.allocation.shortfall",
                company_id=company_id,
                product_id=product_id,
                requested=str(alloc.requested),
                deducted=str(alloc.deducted),
            )
        report.lines.append(alloc)
    return report


def restock(store, company_id: str, product_id: Optional[str], quantity, policy: str) -> Optional[dict]:
    """
    Put `quantity` back on a single batch chosen by `policy`. Returns the batch, or None
    when the product has no batch to receive the stock.
    """
    qty = to_decimal(quantity)
    if not product_id or qty <= 0:
        return None
    batches = store.find(
        PRODUCT_BATCHES,
        company_id,
        {"product_id": product_id, "is_deleted": False},
        sort=RESTOCK_POLICIES[policy],
    )
    if not batches:
        json_log("warning", "sync.restock.no_batch", company_id=company_id, product_id=product_id, qty=str(qty))
        return None
    target = batches[0]
    target["quantity"] = to_number(to_decimal(target.get("quantity")) + qty)
    return store.save(PRODUCT_BATCHES, company_id, target)


def restock_lines(store, company_id: str, lines: list[dict], policy: str, qty_field: str = "quantity") -> list[dict]:
    """Restock every line; returns the lines that found no batch."""
    missed = []
    for line in lines or []:
        if not line.get("product_id") or to_decimal(line.get(qty_field)) <= 0:
            continue
        if restock(store, company_id, line["product_id"], line.get(qty_field), policy) is None:
            missed.append(line)
    return missed
