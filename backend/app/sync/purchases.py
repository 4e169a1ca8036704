import json
from decimal import Decimal
from typing import Optional

from ..store import utcnow_iso
from .common import (
    SyncContext,
    create_entity,
    delete_item,
    parse_datetime,
    parse_identity,
    parse_item,
    present_fields,
    resolve_existing,
    skipped,
    to_decimal,
    to_number,
    update_entity,
)
from .entities import PRODUCTS, SUPPLIERS, VENDOR_ORDERS
from .resolver import resolve_reference
from .results import ItemResult
from .schemas import VendorOrderIn


def _lines(ctx: SyncContext, data: VendorOrderIn) -> list[dict]:
    out = []
    for l in data.items:
        product = resolve_reference(ctx.store, ctx.company_id, PRODUCTS, l.product_ref)
        out.append(
            {
                "product_id": product["id"] if product else None,
                "product_name": l.product_name,
                "quantity": l.quantity,
                "price": l.price,
                "unit": l.unit,
                "subtotal": to_number(to_decimal(l.price) * to_decimal(l.quantity)),
                "is_custom_product": bool(l.is_custom_product) if l.is_custom_product is not None else product is None,
            }
        )
    return out


def _fingerprint(lines: list[dict]) -> str:
    rows = sorted(
        (str(l.get("product_name") or ""), to_number(to_decimal(l.get("quantity"))), to_number(to_decimal(l.get("price"))))
        for l in lines
    )
    return json.dumps(rows)


def find_duplicate_vendor_order(ctx: SyncContext, supplier_name: str, lines: list[dict], created_at) -> Optional[dict]:
    client_time = parse_datetime(created_at)
    if client_time is None:
        return None
    fingerprint = _fingerprint(lines)
    for cand in ctx.store.find(VENDOR_ORDERS, ctx.company_id, {"supplier_name": supplier_name, "is_deleted": False}):
        if _fingerprint(cand.get("items") or []) != fingerprint:
            continue
        cand_time = parse_datetime(cand.get("client_created_at")) or parse_datetime(cand.get("created_at"))
        if cand_time and abs((cand_time - client_time).total_seconds()) <= ctx.duplicate_window_seconds:
            return cand
    return None


def settle_payment(doc: dict) -> dict:
    """Derive balance and payment status when the device did not send them."""
    total = to_decimal(doc.get("total"))
    paid = to_decimal(doc.get("amount_paid"))
    if doc.get("balance_due") is None:
        doc["balance_due"] = to_number(max(total - paid, Decimal("0")))
    if not doc.get("payment_status"):
        if to_decimal(doc["balance_due"]) <= 0:
            doc["payment_status"] = "paid"
        elif paid > 0:
            doc["payment_status"] = "partial"
        else:
            doc["payment_status"] = "unpaid"
    return doc


def _stamp_status(previous: Optional[str], doc: dict) -> dict:
    status = doc.get("status")
    if status == previous:
        return doc
    if status == "completed" and not doc.get("actual_delivery_date"):
        doc["actual_delivery_date"] = utcnow_iso()
    if status == "cancelled" and not doc.get("cancelled_at"):
        doc["cancelled_at"] = utcnow_iso()
    return doc


def reconcile_vendor_order(ctx: SyncContext, item: dict) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, VENDOR_ORDERS, ident)

    data = parse_item(VendorOrderIn, item)
    lines = _lines(ctx, data)
    supplier = resolve_reference(ctx.store, ctx.company_id, SUPPLIERS, data.supplier_ref)

    values = present_fields(data, exclude={"supplier_ref", "items"})
    values["items"] = lines
    values["total"] = to_number(sum((to_decimal(l["subtotal"]) for l in lines), Decimal("0")))
    if supplier is not None:
        values["supplier_id"] = supplier["id"]

    existing = resolve_existing(ctx, VENDOR_ORDERS, ident)
    if existing is None:
        existing = find_duplicate_vendor_order(ctx, data.supplier_name, lines, data.client_created_at)

    if existing is not None:
        if existing.get("is_deleted"):
            return skipped(ident, existing)
        merged = {**existing, **values}
        if "balance_due" not in values and ("amount_paid" in values or existing.get("total") != values["total"]):
            merged["balance_due"] = None
        if "payment_status" not in values and merged.get("balance_due") is None:
            merged["payment_status"] = None
        merged = _stamp_status(existing.get("status"), settle_payment(merged))
        doc = update_entity(ctx, VENDOR_ORDERS, existing, merged, ident.local_id)
        return ItemResult(ident.local_id, doc["id"], "updated")

    values.setdefault("supplier_id", None)
    values.setdefault("status", "pending")
    values.setdefault("payment_method", "cash")
    values.setdefault("amount_paid", 0)
    values.setdefault("notes", "")
    doc = settle_payment(_stamp_status(None, values))
    doc = create_entity(ctx, VENDOR_ORDERS, doc, ident.local_id)
    return ItemResult(ident.local_id, doc["id"], "created")
