"""
Sales orders and refunds.

Stock moves exactly once per order: the server deducts on creation unless the
device already deducted locally (`stockDeducted`), and never again on re-sync.
The due part of an unpaid order is posted as a `due` ledger entry linked to the
order, unless the device recorded it itself (`dueAdded`).
"""

import json
from decimal import Decimal
from typing import Optional

from ..logs import json_log
from ..validation import SPLIT_TYPES
from .common import (
    SyncContext,
    create_entity,
    delete_item,
    money,
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
from .entities import CUSTOMER_TRANSACTIONS, CUSTOMERS, D_PRODUCTS, ORDERS, PRODUCTS, REFUNDS
from .errors import ReferenceNotFound, ValidationFailed
from .inventory import deduct_for_order, restock, restock_lines
from .ledger import recalculate_balance
from .resolver import resolve_reference
from .results import ItemResult
from .schemas import OrderIn, RefundIn

SPLIT_TOLERANCE = Decimal("0.1")
TOTAL_TOLERANCE = Decimal("0.01")


def infer_split_type(cash: Decimal, online: Decimal, due: Decimal) -> str:
    if cash > 0 and online > 0 and due > 0:
        return "cash_online_due"
    if cash > 0 and due > 0:
        return "cash_due"
    if online > 0 and due > 0:
        return "online_due"
    return "cash_online"


def check_payment(data: OrderIn) -> Optional[dict]:
    """Validate the payment block; returns normalized split details for split orders."""
    if data.payment_method != "split":
        return None
    split = data.split_payment_details
    if split is None:
        raise ValidationFailed("Split payment details are required for split payment method")

    cash = to_decimal(split.cash_amount)
    online = to_decimal(split.online_amount)
    due = to_decimal(split.due_amount)
    split_type = split.type if split.type in SPLIT_TYPES else infer_split_type(cash, online, due)

    total = to_decimal(data.total_amount)
    if abs((cash + online + due) - total) > SPLIT_TOLERANCE:
        raise ValidationFailed(
            f"Split payment amounts ({cash + online + due}) must equal total amount ({total})"
        )
    return {
        "type": split_type,
        "cash_amount": to_number(cash),
        "online_amount": to_number(online),
        "due_amount": to_number(due),
    }


def order_due_amount(order: dict) -> Decimal:
    if order.get("all_payment_clear"):
        return Decimal("0")
    method = order.get("payment_method")
    if method in ("due", "credit"):
        return money(order.get("total_amount"))
    if method == "split":
        return money((order.get("split_payment_details") or {}).get("due_amount"))
    return Decimal("0")


def _norm(v):
    return to_number(to_decimal(v))


def line_fingerprint(lines: list[dict]) -> str:
    rows = sorted(
        (
            str(l.get("name") or ""),
            _norm(l.get("quantity")),
            _norm(l.get("selling_price")),
            _norm(l.get("cost_price")),
        )
        for l in lines
    )
    return json.dumps(rows)


def find_duplicate_order(ctx: SyncContext, customer_id, total, lines: list[dict], created_at) -> Optional[dict]:
    """
    Best-effort retry detection for devices that lost the server's reply: same
    customer, same total, same lines, created within the duplicate window.
    """
    client_time = parse_datetime(created_at)
    if client_time is None:
        return None
    fingerprint = line_fingerprint(lines)
    for cand in ctx.store.find(ORDERS, ctx.company_id, {"customer_id": customer_id, "is_deleted": False}):
        if abs(to_decimal(cand.get("total_amount")) - to_decimal(total)) > TOTAL_TOLERANCE:
            continue
        if line_fingerprint(cand.get("items") or []) != fingerprint:
            continue
        cand_time = parse_datetime(cand.get("client_created_at")) or parse_datetime(cand.get("created_at"))
        if cand_time is None:
            continue
        if abs((cand_time - client_time).total_seconds()) <= ctx.duplicate_window_seconds:
            return cand
    return None


def _resolve_lines(ctx: SyncContext, data: OrderIn) -> list[dict]:
    out = []
    for line in data.items:
        product = resolve_reference(ctx.store, ctx.company_id, PRODUCTS, line.product_ref)
        d_product = resolve_reference(ctx.store, ctx.company_id, D_PRODUCTS, line.d_product_ref)
        out.append(
            {
                "product_id": product["id"] if product else None,
                "d_product_id": d_product["id"] if d_product else None,
                "name": line.name,
                "quantity": line.quantity,
                "unit": line.unit,
                "selling_price": line.selling_price,
                "cost_price": line.cost_price,
            }
        )
    return out


def _order_values(data: OrderIn, lines: list[dict], split: Optional[dict]) -> dict:
    values = present_fields(data, exclude={"customer_ref", "items", "split_payment_details"})
    values["items"] = lines
    values["split_payment_details"] = split
    if data.all_payment_clear is None:
        values["all_payment_clear"] = data.payment_method in ("cash", "card", "upi") or (
            split is not None and not split["due_amount"]
        )
    return values


def sync_order_due(ctx: SyncContext, order: dict) -> None:
    """
    Keep the server-posted due entry for `order` in line with the order. Removes it
    when the order is deleted, paid, or the device posted the due itself.
    """
    linked = ctx.store.find(
        CUSTOMER_TRANSACTIONS,
        ctx.company_id,
        {"order_id": order["id"], "origin": "order", "is_deleted": False},
    )
    affected = {e.get("customer_id") for e in linked}

    customer_id = order.get("customer_id")
    due = Decimal("0")
    if customer_id and not order.get("is_deleted") and not order.get("due_added"):
        due = order_due_amount(order)

    if due > 0:
        entry = linked[0] if linked else {
            "order_id": order["id"],
            "origin": "order",
            "type": "due",
            "local_id": None,
            "is_deleted": False,
        }
        entry.update(
            {
                "customer_id": customer_id,
                "amount": float(due),
                "date": str(order.get("created_at") or "")[:10],
                "description": f"Order {order.get('invoice_number') or order['id']}",
            }
        )
        ctx.store.save(CUSTOMER_TRANSACTIONS, ctx.company_id, entry)
        affected.add(customer_id)
        stale = linked[1:]
    else:
        stale = linked

    for e in stale:
        ctx.store.save(CUSTOMER_TRANSACTIONS, ctx.company_id, {**e, "is_deleted": True})
    for cid in affected:
        recalculate_balance(ctx.store, ctx.company_id, "customer", cid)


def deducted_lines(order: dict) -> list[dict]:
    """Order lines reduced by whatever the allocator could not find on the shelf."""
    gaps = {s["product_id"]: to_decimal(s.get("shortfall")) for s in order.get("allocation_shortfall") or []}
    out = []
    for l in order.get("items") or []:
        qty = to_decimal(l.get("quantity"))
        gap = min(gaps.get(l.get("product_id"), Decimal("0")), qty)
        if gap > 0:
            gaps[l["product_id"]] -= gap
        out.append({**l, "quantity": to_number(qty - gap)})
    return out


def cancel_order(ctx: SyncContext, order: dict) -> None:
    if order.get("server_stock_deducted"):
        missed = restock_lines(ctx.store, ctx.company_id, deducted_lines(order), "cancellation")
        if missed:
            json_log(
                "warning",
                "sync.order.restock_incomplete",
                company_id=ctx.company_id,
                order_id=order["id"],
                products=[l.get("product_id") for l in missed],
            )
    sync_order_due(ctx, order)


def reconcile_order(ctx: SyncContext, item: dict) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, ORDERS, ident, on_deleted=lambda doc: cancel_order(ctx, doc))

    data = parse_item(OrderIn, item)
    split = check_payment(data)
    lines = _resolve_lines(ctx, data)

    customer = resolve_reference(ctx.store, ctx.company_id, CUSTOMERS, data.customer_ref)
    if data.customer_ref and customer is None:
        json_log(
            "info",
            "sync.reference.unresolved",
            company_id=ctx.company_id,
            collection=ORDERS,
            ref=data.customer_ref,
        )
    customer_id = customer["id"] if customer else None

    values = _order_values(data, lines, split)
    existing = resolve_existing(ctx, ORDERS, ident)
    if existing is None:
        existing = find_duplicate_order(ctx, customer_id, data.total_amount, lines, data.client_created_at)

    if existing is not None:
        if existing.get("is_deleted"):
            return skipped(ident, existing)
        if customer_id:
            values["customer_id"] = customer_id
        # Stock already moved (or not) at creation.
        values.pop("stock_deducted", None)
        doc = update_entity(ctx, ORDERS, existing, values, ident.local_id)
        sync_order_due(ctx, doc)
        return ItemResult(ident.local_id, doc["id"], "updated", extra={"invoiceNumber": doc.get("invoice_number")})

    values.update(
        {
            "customer_id": customer_id,
            "stock_deducted": bool(data.stock_deducted),
            "due_added": bool(data.due_added),
            "server_stock_deducted": False,
            "allocation_shortfall": [],
        }
    )
    values.setdefault("payment_method", data.payment_method)
    doc = create_entity(ctx, ORDERS, values, ident.local_id)

    extra = {"invoiceNumber": doc.get("invoice_number")}
    if not doc["stock_deducted"]:
        report = deduct_for_order(ctx.store, ctx.company_id, doc["items"])
        doc["server_stock_deducted"] = True
        doc["stock_deducted"] = True
        doc["allocation_shortfall"] = report.shortfalls()
        doc = ctx.store.save(ORDERS, ctx.company_id, doc)
        if doc["allocation_shortfall"]:
            extra["shortfall"] = doc["allocation_shortfall"]

    sync_order_due(ctx, doc)
    return ItemResult(ident.local_id, doc["id"], "created", extra=extra)


def refundable_quantity(ctx: SyncContext, order: dict, product_id: str, exclude_refund_id=None) -> Decimal:
    ordered = sum(
        (to_decimal(l.get("quantity")) for l in order.get("items") or [] if l.get("product_id") == product_id),
        Decimal("0"),
    )
    refunded = Decimal("0")
    for r in ctx.store.find(REFUNDS, ctx.company_id, {"order_id": order["id"], "is_deleted": False}):
        if exclude_refund_id and r["id"] == exclude_refund_id:
            continue
        for l in r.get("items") or []:
            if l.get("product_id") == product_id:
                refunded += to_decimal(l.get("qty"))
    return ordered - refunded


def reconcile_refund(ctx: SyncContext, item: dict) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        # Restocked quantities stay on the shelf; a deleted refund is only a tombstone.
        return delete_item(ctx, REFUNDS, ident)

    data = parse_item(RefundIn, item)
    if not data.order_ref:
        raise ValidationFailed("Order ID is required")
    order = resolve_reference(ctx.store, ctx.company_id, ORDERS, data.order_ref)
    if order is None:
        raise ReferenceNotFound(f"Order {data.order_ref} not found")

    lines = []
    for l in data.items:
        product = resolve_reference(ctx.store, ctx.company_id, PRODUCTS, l.product_ref)
        product_id = product["id"] if product else l.product_ref
        line_total = l.line_total if l.line_total is not None else to_number(money(to_decimal(l.qty) * to_decimal(l.rate)))
        lines.append(
            {
                "product_id": product_id,
                "name": l.name or "",
                "qty": l.qty,
                "rate": l.rate,
                "line_total": line_total,
                "unit": l.unit,
            }
        )

    existing = resolve_existing(ctx, REFUNDS, ident)
    if existing is not None and existing.get("is_deleted"):
        return skipped(ident, existing)

    requested: dict[str, Decimal] = {}
    for l in lines:
        requested[l["product_id"]] = requested.get(l["product_id"], Decimal("0")) + to_decimal(l["qty"])
    for product_id, qty in requested.items():
        if not any(ol.get("product_id") == product_id for ol in order.get("items") or []):
            raise ValidationFailed(f"Product {product_id} not found in order")
        remaining = refundable_quantity(ctx, order, product_id, exclude_refund_id=existing["id"] if existing else None)
        if qty > remaining:
            raise ValidationFailed(
                f"Cannot refund {to_number(qty)} units. Only {to_number(max(remaining, Decimal('0')))} "
                f"units available for refund for product {product_id}"
            )

    values = present_fields(data, exclude={"order_ref", "customer_ref", "items"})
    values["items"] = lines
    values["order_id"] = order["id"]
    if values.get("total_refund_amount") is None:
        values["total_refund_amount"] = to_number(sum((to_decimal(l["line_total"]) for l in lines), Decimal("0")))

    if existing is not None:
        # Stock was adjusted when the refund was first recorded.
        values.pop("stock_adjusted", None)
        doc = update_entity(ctx, REFUNDS, existing, values, ident.local_id)
        return ItemResult(ident.local_id, doc["id"], "updated")

    customer = resolve_reference(ctx.store, ctx.company_id, CUSTOMERS, data.customer_ref)
    values["customer_id"] = customer["id"] if customer else order.get("customer_id")
    values.setdefault("reason", "")
    values["stock_adjusted"] = bool(data.stock_adjusted)
    doc = create_entity(ctx, REFUNDS, values, ident.local_id)

    if not doc["stock_adjusted"]:
        for l in lines:
            restock(ctx.store, ctx.company_id, l["product_id"], l["qty"], "refund")
        doc["stock_adjusted"] = True
        doc = ctx.store.save(REFUNDS, ctx.company_id, doc)
    return ItemResult(ident.local_id, doc["id"], "created")
