from backend.app.store import MemoryStore
from backend.app.sync.batch import detect_kind, plan_batch, sync_batch
from backend.app.sync.common import SyncContext
from backend.app.sync.cursors import get_watermarks
from backend.app.sync.entities import CUSTOMER_TRANSACTIONS, CUSTOMERS, EXPENSES, SUPPLIERS


def test_detect_kind_prefers_explicit_discriminator():
    assert detect_kind(CUSTOMERS, {"kind": "customerTransaction", "name": "x"}) == CUSTOMER_TRANSACTIONS
    assert detect_kind(CUSTOMERS, {"kind": "customer", "customerId": "c", "type": "due", "amount": 1}) == CUSTOMERS
    assert detect_kind(EXPENSES, {"kind": "anything"}) == EXPENSES


def test_detect_kind_legacy_shape_fallback():
    assert detect_kind(CUSTOMERS, {"customerId": "c-1", "type": "payment", "amount": 0}) == CUSTOMER_TRANSACTIONS
    assert detect_kind(CUSTOMERS, {"name": "Asha", "type": "retail"}) == CUSTOMERS
    assert detect_kind(SUPPLIERS, {"customerId": "c-1", "type": "payment", "amount": 5}) == SUPPLIERS


def test_plan_batch_puts_parents_first_and_keeps_order():
    items = [
        {"id": "t-1", "kind": "customerTransaction"},
        {"id": "c-1"},
        {"id": "t-2", "kind": "customerTransaction"},
        {"id": "c-2", "isDeleted": True},
    ]
    assert [i["id"] for i, _kind, _err in plan_batch(CUSTOMERS, items)] == ["c-1", "c-2", "t-1", "t-2"]


def test_unknown_kind_fails_only_that_item(ctx):
    res = sync_batch(ctx, CUSTOMERS, [{"id": "x", "kind": "order"}, {"id": "c-1", "name": "Asha"}])
    assert res.failed[0]["id"] == "x"
    assert "unknown kind" in res.failed[0]["error"]
    assert res.success[0]["id"] == "c-1"


def test_non_object_items_fail_per_item(ctx):
    out = sync_batch(ctx, EXPENSES, ["oops", 3, {"id": "e-1", "amount": 10, "category": "Rent"}]).to_response(3)
    assert out["summary"] == {"total": 3, "successful": 1, "failed": 2}
    assert out["results"]["failed"][0] == {"id": None, "error": "item must be an object"}


def test_create_then_delete_in_same_batch(ctx):
    res = sync_batch(ctx, CUSTOMERS, [{"id": "c-1", "name": "Asha"}, {"id": "c-1", "isDeleted": True}])
    assert [s["action"] for s in res.success] == ["created", "deleted"]
    assert res.success[0]["_id"] == res.success[1]["_id"]
    assert ctx.store.count_documents(CUSTOMERS, ctx.company_id, {"is_deleted": False}) == 0


def test_delete_of_unknown_record_succeeds(ctx):
    res = sync_batch(ctx, CUSTOMERS, [{"id": "never-seen", "isDeleted": True}])
    assert res.success == [{"id": "never-seen", "_id": None, "action": "deleted", "type": "customer"}]


def test_watermark_tracks_non_deleted_count(ctx):
    sync_batch(ctx, CUSTOMERS, [{"id": "c-1", "name": "A"}, {"id": "c-2", "name": "B"}])
    sync_batch(ctx, CUSTOMERS, [{"id": "c-2", "isDeleted": True}])
    marks = get_watermarks(ctx.store, ctx.company_id)
    assert marks[CUSTOMERS]["record_count"] == 1
    assert marks[CUSTOMERS]["latest_update_time"]


def test_watermark_not_touched_when_everything_failed(ctx):
    sync_batch(ctx, EXPENSES, [{"id": "e-1"}])
    assert get_watermarks(ctx.store, ctx.company_id) == {}


class _FlakyTrackingStore(MemoryStore):
    def save(self, collection, company_id, doc):
        if collection == "sync_tracking":
            raise RuntimeError("tracking down")
        return super().save(collection, company_id, doc)


def test_watermark_failure_never_fails_the_batch():
    store = _FlakyTrackingStore()
    ctx = SyncContext(store=store, company_id="11111111-1111-1111-1111-111111111111")
    res = sync_batch(ctx, CUSTOMERS, [{"id": "c-1", "name": "Asha"}])
    assert res.failed == []
    assert res.success[0]["action"] == "created"


class _BrokenStore(MemoryStore):
    def find_one(self, collection, company_id, filters):
        if collection == CUSTOMERS:
            raise RuntimeError("connection reset")
        return super().find_one(collection, company_id, filters)


def test_storage_errors_are_reported_per_item():
    ctx = SyncContext(store=_BrokenStore(), company_id="11111111-1111-1111-1111-111111111111")
    res = sync_batch(ctx, CUSTOMERS, [{"id": "c-1", "name": "Asha"}])
    assert res.failed == [{"id": "c-1", "error": "connection reset", "type": "customer"}]


def test_tenant_isolation(ctx, other_ctx):
    mine = sync_batch(ctx, CUSTOMERS, [{"id": "c-1", "name": "Asha"}]).success[0]["_id"]
    theirs = sync_batch(other_ctx, CUSTOMERS, [{"id": "c-1", "_id": mine, "name": "Mallory"}]).success[0]
    assert theirs["action"] == "created"
    assert theirs["_id"] != mine
    assert ctx.store.find_one(CUSTOMERS, ctx.company_id, {"id": mine})["name"] == "Asha"

    sync_batch(other_ctx, CUSTOMERS, [{"_id": mine, "isDeleted": True}])
    assert ctx.store.find_one(CUSTOMERS, ctx.company_id, {"id": mine})["is_deleted"] is False
