from datetime import date

from backend.app.sync.entities import PRODUCT_BATCHES, PRODUCTS
from backend.workers.inventory_alerts import INVENTORY_ALERTS, collect_alerts, run_inventory_alerts

TODAY = date(2026, 5, 1)


def _seed(ctx):
    milk = ctx.store.save(PRODUCTS, ctx.company_id, {"name": "Milk", "track_expiry": True, "low_stock_level": 5})
    salt = ctx.store.save(PRODUCTS, ctx.company_id, {"name": "Salt", "track_expiry": False})
    ctx.store.save(PRODUCTS, ctx.company_id, {"name": "Old", "is_active": False})
    ctx.store.save(PRODUCT_BATCHES, ctx.company_id, {"product_id": milk["id"], "quantity": 3, "expiry": "2026-05-04"})
    ctx.store.save(PRODUCT_BATCHES, ctx.company_id, {"product_id": milk["id"], "quantity": 1, "expiry": "2026-09-01"})
    return milk, salt


def test_collect_alerts(ctx):
    milk, salt = _seed(ctx)
    alerts = collect_alerts(ctx.store, ctx.company_id, low_stock=10, expiry_days=7, today=TODAY)
    kinds = sorted((a["kind"], a["product_name"]) for a in alerts)
    assert kinds == [("expiring", "Milk"), ("low_stock", "Milk"), ("out_of_stock", "Salt")]
    expiring = next(a for a in alerts if a["kind"] == "expiring")
    assert expiring["days_left"] == 3


def test_run_is_deduplicated_and_resolves_cleared_alerts(ctx):
    milk, salt = _seed(ctx)
    first = run_inventory_alerts(ctx.store, ctx.company_id, low_stock=10, expiry_days=7, today=TODAY)
    assert (first["created"], first["resolved"]) == (3, 0)

    second = run_inventory_alerts(ctx.store, ctx.company_id, low_stock=10, expiry_days=7, today=TODAY)
    assert (second["created"], second["resolved"]) == (0, 0)

    ctx.store.save(PRODUCT_BATCHES, ctx.company_id, {"product_id": salt["id"], "quantity": 50})
    third = run_inventory_alerts(ctx.store, ctx.company_id, low_stock=10, expiry_days=7, today=TODAY)
    assert third["resolved"] == 1
    resolved = ctx.store.find(INVENTORY_ALERTS, ctx.company_id, {"status": "resolved"})
    assert [a["key"] for a in resolved] == [f"out_of_stock:{salt['id']}"]
