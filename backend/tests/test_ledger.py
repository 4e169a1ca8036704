import itertools
from decimal import Decimal

from backend.app.sync.batch import sync_batch
from backend.app.sync.entities import CUSTOMERS, SUPPLIERS
from backend.app.sync.ledger import compute_balance, recalculate_balance
from backend.scripts.rebuild_party_balances import rebuild_for_company


def _customer(ctx, local_id="c-1"):
    res = sync_batch(ctx, CUSTOMERS, [{"id": local_id, "name": "Asha", "mobileNumber": "9000000001"}])
    return res.success[0]["_id"]


def _balance(ctx, customer_id):
    return ctx.store.find_one(CUSTOMERS, ctx.company_id, {"id": customer_id})["due_amount"]


def test_compute_balance_signs_and_rounding():
    entries = [
        {"type": "opening_balance", "amount": 100},
        {"type": "due", "amount": 50.125},
        {"type": "payment", "amount": 30},
        {"type": "settlement", "amount": 20},
        {"type": "add_due", "amount": 0.005},
        {"type": "refund", "amount": 10, "is_deleted": True},
        {"type": "unknown", "amount": 999},
    ]
    assert compute_balance(entries) == Decimal("100.13")


def test_compute_balance_empty_is_zero():
    assert compute_balance([]) == Decimal("0.00")


def test_ledger_converges_regardless_of_arrival_order(ctx, store):
    entries = [
        {"kind": "customerTransaction", "id": "t-1", "customerId": "c-1", "type": "due", "amount": 120},
        {"kind": "customerTransaction", "id": "t-2", "customerId": "c-1", "type": "payment", "amount": 45.5},
        {"kind": "customerTransaction", "id": "t-3", "customerId": "c-1", "type": "add_due", "amount": 10},
        {"kind": "customerTransaction", "id": "t-4", "customerId": "c-1", "type": "remove_due", "amount": 4.5},
    ]
    seen = set()
    for perm in itertools.permutations(entries):
        store._data.clear()
        cid = _customer(ctx)
        for e in perm:
            sync_batch(ctx, CUSTOMERS, [e])
        seen.add(_balance(ctx, cid))
    assert seen == {80.0}


def test_entry_update_and_delete_recalculate(ctx):
    cid = _customer(ctx)
    sync_batch(ctx, CUSTOMERS, [{"kind": "customerTransaction", "id": "t-1", "customerId": cid, "type": "due", "amount": 100}])
    assert _balance(ctx, cid) == 100.0

    sync_batch(ctx, CUSTOMERS, [{"kind": "customerTransaction", "id": "t-1", "customerId": cid, "type": "due", "amount": 60}])
    assert _balance(ctx, cid) == 60.0

    sync_batch(ctx, CUSTOMERS, [{"kind": "customerTransaction", "id": "t-1", "isDeleted": True}])
    assert _balance(ctx, cid) == 0.0


def test_client_due_amount_is_never_trusted(ctx):
    res = sync_batch(ctx, CUSTOMERS, [{"id": "c-1", "name": "Asha", "dueAmount": 500}])
    cid = res.success[0]["_id"]
    assert _balance(ctx, cid) == 0

    sync_batch(ctx, CUSTOMERS, [{"id": "c-1", "name": "Asha", "dueAmount": 900}])
    assert _balance(ctx, cid) == 0.0


def test_supplier_purchase_entries(ctx):
    res = sync_batch(
        ctx,
        SUPPLIERS,
        [
            {"kind": "supplierTransaction", "id": "s-t1", "supplierId": "s-1", "type": "purchase_order", "amount": 300},
            {"id": "s-1", "name": "Metro Wholesale"},
            {"kind": "supplierTransaction", "id": "s-t2", "supplierId": "s-1", "type": "payment", "amount": 100},
        ],
    )
    assert len(res.failed) == 0
    sid = res.success[0]["_id"]
    assert res.success[0]["type"] == "supplier"
    assert ctx.store.find_one(SUPPLIERS, ctx.company_id, {"id": sid})["due_amount"] == 200.0


def test_recalculate_balance_for_unknown_party_returns_balance(ctx):
    assert recalculate_balance(ctx.store, ctx.company_id, "customer", "missing") == Decimal("0.00")
    assert recalculate_balance(ctx.store, ctx.company_id, "customer", None) is None


def test_rebuild_script_repairs_drifted_cache(ctx):
    cid = _customer(ctx)
    sync_batch(ctx, CUSTOMERS, [{"kind": "customerTransaction", "id": "t-1", "customerId": cid, "type": "due", "amount": 75}])
    doc = ctx.store.find_one(CUSTOMERS, ctx.company_id, {"id": cid})
    ctx.store.save(CUSTOMERS, ctx.company_id, {**doc, "due_amount": 12345})

    changed = rebuild_for_company(ctx.store, ctx.company_id)
    assert changed["customer"] == 1
    assert _balance(ctx, cid) == 75.0
