from backend.app.sync.batch import sync_batch
from backend.app.sync.entities import CATEGORIES, D_PRODUCTS, PRODUCT_BATCHES, PRODUCTS


def test_product_category_by_name_is_created_once(ctx):
    res = sync_batch(
        ctx,
        PRODUCTS,
        [
            {"id": "p-1", "name": "Milk", "category": " Dairy "},
            {"id": "p-2", "name": "Curd", "categoryId": "dairy"},
        ],
    )
    assert res.failed == []
    cats = ctx.store.find(CATEGORIES, ctx.company_id, {})
    assert [c["name"] for c in cats] == ["dairy"]
    for row in res.success:
        p = ctx.store.find_one(PRODUCTS, ctx.company_id, {"id": row["_id"]})
        assert p["category_id"] == cats[0]["id"]


def test_product_category_by_local_or_server_id(ctx):
    cat = sync_batch(ctx, CATEGORIES, [{"id": "cat-1", "name": "Snacks"}]).success[0]["_id"]
    res = sync_batch(
        ctx,
        PRODUCTS,
        [
            {"id": "p-1", "name": "Chips", "categoryId": "cat-1"},
            {"id": "p-2", "name": "Nuts", "categoryId": cat},
        ],
    )
    ids = [ctx.store.find_one(PRODUCTS, ctx.company_id, {"id": r["_id"]})["category_id"] for r in res.success]
    assert ids == [cat, cat]


def test_product_defaults_and_partial_update(ctx):
    res = sync_batch(ctx, PRODUCTS, [{"id": "p-1", "name": "Milk", "sellingPrice": 30, "unitPrice": 20}])
    pid = res.success[0]["_id"]
    p = ctx.store.find_one(PRODUCTS, ctx.company_id, {"id": pid})
    assert (p["unit"], p["low_stock_level"], p["selling_unit_price"], p["cost_price"]) == ("pcs", 10, 30, 20)

    res = sync_batch(ctx, PRODUCTS, [{"_id": pid, "name": "Milk", "sellingUnitPrice": 32}])
    assert res.success[0]["action"] == "updated"
    p = ctx.store.find_one(PRODUCTS, ctx.company_id, {"id": pid})
    assert (p["selling_unit_price"], p["cost_price"], p["local_id"]) == (32, 20, "p-1")


def test_product_content_duplicate_is_merged(ctx):
    res = sync_batch(
        ctx,
        PRODUCTS,
        [
            {"id": "p-1", "name": "Milk", "description": "1L"},
            {"id": "p-other-device", "name": "Milk", "description": "1L", "barcode": "890"},
            {"id": "p-3", "name": "Milk", "description": "500ml"},
        ],
    )
    assert [s["action"] for s in res.success] == ["created", "updated", "created"]
    assert ctx.store.count_documents(PRODUCTS, ctx.company_id, {}) == 2


def test_product_delete_is_hard_and_idempotent(ctx):
    pid = sync_batch(ctx, PRODUCTS, [{"id": "p-1", "name": "Milk"}]).success[0]["_id"]
    for _ in range(2):
        res = sync_batch(ctx, PRODUCTS, [{"id": "p-1", "_id": pid, "isDeleted": True}])
        assert res.success[0] == {"id": "p-1", "_id": pid, "action": "deleted"}
    assert ctx.store.find_one(PRODUCTS, ctx.company_id, {"id": pid}) is None


def test_product_quota_rollback_keeps_count(ctx, quota):
    quota.set_limits(ctx.company_id, {"products": 1})
    res = sync_batch(ctx, PRODUCTS, [{"id": "p-1", "name": "Milk"}, {"id": "p-2", "name": "Bread"}])
    assert res.failed == [
        {
            "id": "p-2",
            "error": "Plan limit reached for products (1). Upgrade your plan to increase the limit.",
            "action": "limit-exceeded",
        }
    ]
    assert ctx.store.count_documents(PRODUCTS, ctx.company_id, {}) == 1
    assert quota.usage(ctx.company_id)["used"]["products"] == 1

    # Deleting frees capacity again.
    sync_batch(ctx, PRODUCTS, [{"id": "p-1", "isDeleted": True}])
    res = sync_batch(ctx, PRODUCTS, [{"id": "p-2", "name": "Bread"}])
    assert res.success[0]["action"] == "created"


def test_batch_requires_product(ctx):
    res = sync_batch(ctx, PRODUCT_BATCHES, [{"id": "b-1", "productId": "p-missing", "quantity": 3}])
    assert res.failed[0]["error"] == "Product p-missing not found"


def test_batch_content_duplicate_by_number_and_mfg(ctx):
    sync_batch(ctx, PRODUCTS, [{"id": "p-1", "name": "Milk"}])
    res = sync_batch(
        ctx,
        PRODUCT_BATCHES,
        [
            {"id": "b-1", "productId": "p-1", "batchNumber": "L1", "mfg": "2026-01-01", "quantity": 5},
            {"id": "b-x", "productId": "p-1", "batchNumber": "L1", "mfgDate": "2026-01-01T00:00:00Z", "quantity": 7},
        ],
    )
    assert [s["action"] for s in res.success] == ["created", "updated"]
    (batch,) = ctx.store.find(PRODUCT_BATCHES, ctx.company_id, {})
    assert batch["quantity"] == 7


def test_category_names_are_normalized(ctx):
    res = sync_batch(ctx, CATEGORIES, [{"id": "c-1", "name": "Snacks"}, {"id": "c-2", "name": "  SNACKS "}])
    assert [s["action"] for s in res.success] == ["created", "updated"]
    assert ctx.store.count_documents(CATEGORIES, ctx.company_id, {}) == 1


def test_category_delete_is_soft(ctx):
    cid = sync_batch(ctx, CATEGORIES, [{"id": "c-1", "name": "Snacks"}]).success[0]["_id"]
    sync_batch(ctx, CATEGORIES, [{"id": "c-1", "isDeleted": True}])
    assert ctx.store.find_one(CATEGORIES, ctx.company_id, {"id": cid})["is_deleted"] is True

    res = sync_batch(ctx, CATEGORIES, [{"_id": cid, "name": "Snacks"}])
    assert res.success[0]["action"] == "skipped"


def test_d_products(ctx):
    res = sync_batch(
        ctx,
        D_PRODUCTS,
        [
            {"id": "d-1", "pCode": "P001", "productName": "Loose rice", "unit": "kg"},
            {"id": "d-2", "pCode": "P001", "productName": "Loose rice (new)"},
            {"id": "d-3", "productName": "No code"},
        ],
    )
    assert [s["action"] for s in res.success] == ["created", "updated"]
    assert res.failed[0]["id"] == "d-3"
    (doc,) = ctx.store.find(D_PRODUCTS, ctx.company_id, {})
    assert (doc["product_name"], doc["unit"]) == ("Loose rice (new)", "kg")


def test_rejected_product_leaves_no_category(ctx, quota):
    quota.set_limits(ctx.company_id, {"products": 1})
    res = sync_batch(
        ctx,
        PRODUCTS,
        [{"id": "p-1", "name": "Milk", "category": "Dairy"}, {"id": "p-2", "name": "Chips", "category": "Snacks"}],
    )
    assert res.failed[0]["action"] == "limit-exceeded"
    assert [c["name"] for c in ctx.store.find(CATEGORIES, ctx.company_id, {})] == ["dairy"]
    milk = ctx.store.find_one(PRODUCTS, ctx.company_id, {"id": res.success[0]["_id"]})
    assert milk["category_id"] is not None
