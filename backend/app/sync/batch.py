"""
One sync request = one batch of items for one entity channel.

Items are applied one at a time; a failing item is reported and the batch goes on.
Nothing here is atomic across items: partial success is the normal outcome.
"""

from typing import Any, Callable

from pydantic import ValidationError

from ..logs import json_log
from . import cashbook, catalog, orders, parties, purchases
from .common import SyncContext, format_validation_error
from .cursors import record_watermark
from .entities import (
    CATEGORIES,
    CUSTOMER_TRANSACTIONS,
    CUSTOMERS,
    D_PRODUCTS,
    EXPENSES,
    KIND_LABELS,
    MIXED_CHANNELS,
    ORDERS,
    PRODUCT_BATCHES,
    PRODUCTS,
    REFUNDS,
    SUPPLIER_TRANSACTIONS,
    SUPPLIERS,
    TRANSACTIONS,
    VENDOR_ORDERS,
)
from .errors import SyncItemError, ValidationFailed
from .results import ItemResult, SyncResults

Reconciler = Callable[[SyncContext, dict], ItemResult]

RECONCILERS: dict[str, Reconciler] = {
    CUSTOMERS: parties.reconcile_customer,
    SUPPLIERS: parties.reconcile_supplier,
    CUSTOMER_TRANSACTIONS: parties.reconcile_customer_entry,
    SUPPLIER_TRANSACTIONS: parties.reconcile_supplier_entry,
    CATEGORIES: catalog.reconcile_category,
    PRODUCTS: catalog.reconcile_product,
    PRODUCT_BATCHES: catalog.reconcile_batch,
    D_PRODUCTS: catalog.reconcile_d_product,
    ORDERS: orders.reconcile_order,
    REFUNDS: orders.reconcile_refund,
    VENDOR_ORDERS: purchases.reconcile_vendor_order,
    TRANSACTIONS: cashbook.reconcile_transaction,
    EXPENSES: cashbook.reconcile_expense,
}

# Accepted spellings of the `kind` discriminator on mixed channels.
KIND_ALIASES = {
    "customer": CUSTOMERS,
    "customers": CUSTOMERS,
    "customertransaction": CUSTOMER_TRANSACTIONS,
    "customer_transaction": CUSTOMER_TRANSACTIONS,
    "customer-transaction": CUSTOMER_TRANSACTIONS,
    "supplier": SUPPLIERS,
    "suppliers": SUPPLIERS,
    "suppliertransaction": SUPPLIER_TRANSACTIONS,
    "supplier_transaction": SUPPLIER_TRANSACTIONS,
    "supplier-transaction": SUPPLIER_TRANSACTIONS,
}

PARTY_REF_FIELDS = {
    CUSTOMERS: ("customerId", "customer_id"),
    SUPPLIERS: ("supplierId", "supplier_id"),
}


def detect_kind(entity_type: str, item: Any) -> str:
    child = MIXED_CHANNELS.get(entity_type)
    if child is None or not isinstance(item, dict):
        return entity_type

    explicit = item.get("kind")
    if explicit:
        kind = KIND_ALIASES.get(str(explicit).strip().lower())
        if kind not in (entity_type, child):
            raise ValidationFailed(f"unknown kind '{explicit}' for {entity_type}")
        return kind

    # Older apps send ledger entries on the parent channel without a discriminator.
    has_ref = any(item.get(k) for k in PARTY_REF_FIELDS[entity_type])
    if item.get("type") and has_ref and item.get("amount") is not None:
        return child
    return entity_type


def plan_batch(entity_type: str, items: list) -> list[tuple[Any, str, str]]:
    """
    Returns (item, kind, error) triples: parents first, children after, input order
    otherwise. Deletions keep their position so create-then-delete in one batch works.
    """
    parents, children = [], []
    for item in items:
        try:
            kind, error = detect_kind(entity_type, item), ""
        except SyncItemError as exc:
            kind, error = entity_type, str(exc)
        (children if kind != entity_type else parents).append((item, kind, error))
    return parents + children


def _local_id(item: Any):
    if isinstance(item, dict):
        v = item.get("id")
        return str(v) if v is not None else None
    return None


def apply_item(ctx: SyncContext, kind: str, item: Any) -> ItemResult:
    try:
        if not isinstance(item, dict):
            raise ValidationFailed("item must be an object")
        return RECONCILERS[kind](ctx, item)
    except SyncItemError as exc:
        result = ItemResult.failure(_local_id(item), str(exc), action=exc.action)
    except ValidationError as exc:
        result = ItemResult.failure(_local_id(item), format_validation_error(exc))
    except Exception as exc:
        result = ItemResult.failure(_local_id(item), str(exc) or type(exc).__name__)
    json_log(
        "warning",
        "sync.item.failed",
        company_id=ctx.company_id,
        kind=kind,
        local_id=result.local_id,
        error=result.error,
    )
    return result


def sync_batch(ctx: SyncContext, entity_type: str, items: list) -> SyncResults:
    if entity_type not in RECONCILERS:
        raise ValueError(f"unknown entity type: {entity_type}")

    results = SyncResults()
    mixed = entity_type in MIXED_CHANNELS
    touched: set[str] = set()

    for item, kind, error in plan_batch(entity_type, items or []):
        if error:
            result = ItemResult.failure(_local_id(item), error)
            json_log("warning", "sync.item.failed", company_id=ctx.company_id, kind=kind, error=error)
        else:
            result = apply_item(ctx, kind, item)
        if result.ok:
            touched.add(kind)
        results.add(result, KIND_LABELS.get(kind) if mixed else None)

    for kind in sorted(touched):
        try:
            count = ctx.store.count_documents(kind, ctx.company_id, {"is_deleted": False})
        except Exception as exc:
            json_log("warning", "sync.watermark.failed", company_id=ctx.company_id, entity_type=kind, error=str(exc))
            continue
        record_watermark(ctx.store, ctx.company_id, kind, count)

    json_log(
        "info",
        "sync.batch",
        company_id=ctx.company_id,
        entity_type=entity_type,
        total=len(items or []),
        successful=len(results.success),
        failed=len(results.failed),
    )
    return results
