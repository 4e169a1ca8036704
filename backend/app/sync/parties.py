from ..logs import json_log
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
from .entities import ORDERS, VENDOR_ORDERS
from .errors import ReferenceNotFound, ValidationFailed
from .ledger import PARTIES, recalculate_balance
from .resolver import resolve_reference
from .results import ItemResult
from .schemas import CustomerEntryIn, CustomerIn, SupplierEntryIn, SupplierIn

PARTY_DEFAULTS = {"mobile_number": "", "email": "", "address": "", "due_amount": 0}

# party -> (payload model, the order collection entries may point at)
ENTRY_SOURCES = {
    "customer": (CustomerEntryIn, ORDERS),
    "supplier": (SupplierEntryIn, VENDOR_ORDERS),
}


def _reconcile_party(ctx: SyncContext, item: dict, party: str, schema) -> ItemResult:
    collection = PARTIES[party][0]
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, collection, ident)

    data = parse_item(schema, item)
    existing = resolve_existing(ctx, collection, ident)
    if existing is None and data.mobile_number:
        existing = ctx.store.find_one(
            collection,
            ctx.company_id,
            {"name": data.name, "mobile_number": data.mobile_number, "is_deleted": False},
        )

    if existing is not None:
        if existing.get("is_deleted"):
            return skipped(ident, existing)
        doc = update_entity(ctx, collection, existing, present_fields(data, exclude={"due_amount"}), ident.local_id)
        recalculate_balance(ctx.store, ctx.company_id, party, doc["id"])
        return ItemResult(ident.local_id, doc["id"], "updated")

    doc = create_entity(
        ctx,
        collection,
        create_values(data, PARTY_DEFAULTS, exclude={"due_amount"}),
        ident.local_id,
    )
    recalculate_balance(ctx.store, ctx.company_id, party, doc["id"])
    return ItemResult(ident.local_id, doc["id"], "created")


def reconcile_customer(ctx: SyncContext, item: dict) -> ItemResult:
    return _reconcile_party(ctx, item, "customer", CustomerIn)


def reconcile_supplier(ctx: SyncContext, item: dict) -> ItemResult:
    return _reconcile_party(ctx, item, "supplier", SupplierIn)


def _reconcile_entry(ctx: SyncContext, item: dict, party: str) -> ItemResult:
    party_collection, collection, key = PARTIES[party]
    schema, order_collection = ENTRY_SOURCES[party]

    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(
            ctx,
            collection,
            ident,
            on_deleted=lambda doc: recalculate_balance(ctx.store, ctx.company_id, party, doc.get(key)),
        )

    data = parse_item(schema, item)
    if not data.party_ref:
        raise ValidationFailed(f"{party} reference is required")
    owner = resolve_reference(ctx.store, ctx.company_id, party_collection, data.party_ref)
    if owner is None:
        raise ReferenceNotFound(f"{party.capitalize()} not found for ID: {data.party_ref}")

    values = present_fields(data, exclude={"party_ref", "order_ref"})
    values[key] = owner["id"]
    if "order_ref" in data.model_fields_set:
        order = resolve_reference(ctx.store, ctx.company_id, order_collection, data.order_ref, include_deleted=True)
        if data.order_ref and order is None:
            json_log(
                "info",
                "sync.reference.unresolved",
                company_id=ctx.company_id,
                collection=collection,
                ref=data.order_ref,
            )
        values["order_id"] = order["id"] if order else None

    existing = resolve_existing(ctx, collection, ident)
    if existing is not None:
        if existing.get("is_deleted"):
            return skipped(ident, existing)
        previous_owner = existing.get(key)
        doc = update_entity(ctx, collection, existing, values, ident.local_id)
        if previous_owner and previous_owner != owner["id"]:
            recalculate_balance(ctx.store, ctx.company_id, party, previous_owner)
        recalculate_balance(ctx.store, ctx.company_id, party, owner["id"])
        return ItemResult(ident.local_id, doc["id"], "updated")

    values.setdefault("order_id", None)
    values.setdefault("description", "")
    if not values.get("date"):
        values["date"] = utcnow_iso()[:10]
    doc = create_entity(ctx, collection, values, ident.local_id)
    recalculate_balance(ctx.store, ctx.company_id, party, owner["id"])
    return ItemResult(ident.local_id, doc["id"], "created")


def reconcile_customer_entry(ctx: SyncContext, item: dict) -> ItemResult:
    return _reconcile_entry(ctx, item, "customer")


def reconcile_supplier_entry(ctx: SyncContext, item: dict) -> ItemResult:
    return _reconcile_entry(ctx, item, "supplier")
