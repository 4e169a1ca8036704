from typing import Optional

from ..logs import json_log
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
from .entities import CATEGORIES, D_PRODUCTS, PRODUCT_BATCHES, PRODUCTS
from .errors import ReferenceNotFound
from .resolver import is_server_id, resolve, resolve_reference
from .results import ItemResult
from .schemas import PRODUCT_CATEGORY_FIELDS, CategoryIn, DProductIn, ProductBatchIn, ProductIn

PRODUCT_DEFAULTS = {
    "description": "",
    "barcode": "",
    "category_id": None,
    "unit": "pcs",
    "low_stock_level": 10,
    "track_expiry": False,
    "is_active": True,
    "cost_price": 0,
    "selling_unit_price": 0,
    "wholesale_price": 0,
    "wholesale_moq": 1,
    "hsn_code": "",
    "gst_percent": 0,
    "is_gst_inclusive": True,
}

BATCH_DEFAULTS = {
    "batch_number": "",
    "mfg": None,
    "expiry": None,
    "quantity": 0,
    "cost_price": 0,
    "selling_unit_price": 0,
    "wholesale_price": 0,
    "wholesale_moq": 1,
}


def normalize_category_name(name: str) -> str:
    return " ".join(str(name or "").split()).lower()


def find_or_create_category(
    ctx: SyncContext,
    name: str,
    *,
    is_active: Optional[bool] = None,
    description: Optional[str] = None,
) -> Optional[dict]:
    key = normalize_category_name(name)
    if not key:
        return None
    found = ctx.store.find_one(CATEGORIES, ctx.company_id, {"name": key, "is_deleted": False})
    if found is not None:
        return found
    return create_entity(
        ctx,
        CATEGORIES,
        {
            "name": key,
            "description": description or "",
            "image": "",
            "is_active": True if is_active is None else bool(is_active),
        },
        None,
    )


def resolve_product_category(ctx: SyncContext, data: ProductIn) -> Optional[str]:
    """
    A product names its category either by name or by a reference that may be a
    server id, a device-local id, or (older apps) the category name itself.
    """
    extra = {"is_active": data.category_is_active, "description": data.category_description}
    if data.category:
        cat = find_or_create_category(ctx, data.category, **extra)
        return cat["id"] if cat else None

    ref = data.category_ref
    if not ref:
        return None
    if is_server_id(ref):
        cat = resolve(ctx.store, ctx.company_id, CATEGORIES, server_id=ref)
        if cat is None or cat.get("is_deleted"):
            json_log("info", "sync.reference.unresolved", company_id=ctx.company_id, collection=CATEGORIES, ref=ref)
            return None
        return cat["id"]
    cat = resolve(ctx.store, ctx.company_id, CATEGORIES, local_id=ref)
    if cat is not None:
        return cat["id"]
    cat = find_or_create_category(ctx, ref, **extra)
    return cat["id"] if cat else None


def reconcile_category(ctx: SyncContext, item: dict) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, CATEGORIES, ident)

    data = parse_item(CategoryIn, item)
    values = present_fields(data)
    values["name"] = normalize_category_name(data.name)

    existing = resolve_existing(ctx, CATEGORIES, ident)
    if existing is None:
        existing = ctx.store.find_one(CATEGORIES, ctx.company_id, {"name": values["name"], "is_deleted": False})

    if existing is not None:
        if existing.get("is_deleted"):
            return skipped(ident, existing)
        doc = update_entity(ctx, CATEGORIES, existing, values, ident.local_id)
        return ItemResult(ident.local_id, doc["id"], "updated")

    doc = create_entity(
        ctx,
        CATEGORIES,
        {**create_values(data, {"description": "", "image": "", "is_active": True}), "name": values["name"]},
        ident.local_id,
    )
    return ItemResult(ident.local_id, doc["id"], "created")


def reconcile_product(ctx: SyncContext, item: dict) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, PRODUCTS, ident)

    data = parse_item(ProductIn, item)
    values = present_fields(data, exclude=PRODUCT_CATEGORY_FIELDS)
    has_category = bool(data.category or data.category_ref)

    existing = resolve(ctx.store, ctx.company_id, PRODUCTS, ident.local_id, ident.server_id)
    if existing is None:
        existing = ctx.store.find_one(
            PRODUCTS,
            ctx.company_id,
            {"name": data.name, "description": data.description or "", "is_deleted": False},
        )

    if existing is not None:
        if has_category:
            values["category_id"] = resolve_product_category(ctx, data)
        doc = update_entity(ctx, PRODUCTS, existing, values, ident.local_id)
        return ItemResult(ident.local_id, doc["id"], "updated")

    doc = create_entity(
        ctx,
        PRODUCTS,
        {**create_values(data, PRODUCT_DEFAULTS, exclude=PRODUCT_CATEGORY_FIELDS), **values},
        ident.local_id,
    )
    # Only once the product is past the plan limit, so a rejected product creates no category.
    if has_category:
        doc["category_id"] = resolve_product_category(ctx, data)
        doc = ctx.store.save(PRODUCTS, ctx.company_id, doc)
    return ItemResult(ident.local_id, doc["id"], "created")


def reconcile_d_product(ctx: SyncContext, item: dict) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, D_PRODUCTS, ident)

    data = parse_item(DProductIn, item)
    existing = resolve_existing(ctx, D_PRODUCTS, ident)
    if existing is None:
        existing = ctx.store.find_one(D_PRODUCTS, ctx.company_id, {"p_code": data.p_code, "is_deleted": False})

    if existing is not None:
        if existing.get("is_deleted"):
            return skipped(ident, existing)
        doc = update_entity(ctx, D_PRODUCTS, existing, present_fields(data), ident.local_id)
        return ItemResult(ident.local_id, doc["id"], "updated")

    doc = create_entity(
        ctx,
        D_PRODUCTS,
        create_values(data, {"unit": "pcs", "tax_percentage": 0, "is_active": True}),
        ident.local_id,
    )
    return ItemResult(ident.local_id, doc["id"], "created")


def reconcile_batch(ctx: SyncContext, item: dict) -> ItemResult:
    ident = parse_identity(item)
    if ident.is_deleted:
        return delete_item(ctx, PRODUCT_BATCHES, ident)

    data = parse_item(ProductBatchIn, item)
    product = resolve_reference(ctx.store, ctx.company_id, PRODUCTS, data.product_ref)
    if product is None:
        raise ReferenceNotFound(f"Product {data.product_ref} not found")

    values = present_fields(data, exclude={"product_ref"})
    values["product_id"] = product["id"]

    existing = resolve(ctx.store, ctx.company_id, PRODUCT_BATCHES, ident.local_id, ident.server_id)
    if existing is None:
        existing = ctx.store.find_one(
            PRODUCT_BATCHES,
            ctx.company_id,
            {
                "product_id": product["id"],
                "batch_number": data.batch_number or "",
                "mfg": data.mfg,
                "is_deleted": False,
            },
        )

    if existing is not None:
        doc = update_entity(ctx, PRODUCT_BATCHES, existing, values, ident.local_id)
        return ItemResult(ident.local_id, doc["id"], "updated")

    doc = create_entity(
        ctx,
        PRODUCT_BATCHES,
        {**create_values(data, BATCH_DEFAULTS, exclude={"product_ref"}), "product_id": product["id"]},
        ident.local_id,
    )
    return ItemResult(ident.local_id, doc["id"], "created")
