from ..store import utcnow_iso
from .common import (
    SyncContext,
    create_entity,
    create_values,
    delete_item,
    parse_identity,
    parse_item,
    present_fields,
    resolve_existing,
    skipped,
    update_entity,
)
from .entities import EXPENSES, TRANSACTIONS
from .results import ItemResult
from .schemas import ExpenseIn, TransactionIn

# collection -> payload model
MODELS = {
    TRANSACTIONS: TransactionIn,
    EXPENSES: ExpenseIn,
}


def _reconcile_cash(ctx: SyncContext, item: dict, collection: str) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, collection, ident)

    data = parse_item(MODELS[collection], item)
    existing = resolve_existing(ctx, collection, ident)
    if existing is not None:
        if existing.get("is_deleted"):
            return skipped(ident, existing)
        doc = update_entity(ctx, collection, existing, present_fields(data), ident.local_id)
        return ItemResult(ident.local_id, doc["id"], "updated")

    values = create_values(data, {"description": ""})
    if not values.get("date"):
        values["date"] = utcnow_iso()[:10]
    doc = create_entity(ctx, collection, values, ident.local_id)
    return ItemResult(ident.local_id, doc["id"], "created")


def reconcile_transaction(ctx: SyncContext, item: dict) -> ItemResult:
    return _reconcile_cash(ctx, item, TRANSACTIONS)


def reconcile_expense(ctx: SyncContext, item: dict) -> ItemResult:
    return _reconcile_cash(ctx, item, EXPENSES)
