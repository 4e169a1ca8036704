import pytest
from fastapi import BackgroundTasks, HTTPException

from backend.app.routers import sync as sync_router
from backend.app.store import MemoryStore

DEVICE = {"device_id": "dev-1", "company_id": "11111111-1111-1111-1111-111111111111"}


@pytest.fixture
def router_store(monkeypatch):
    s = MemoryStore()
    monkeypatch.setattr(sync_router, "get_store", lambda: s)
    return s


def test_post_batch_response_contract(router_store):
    tasks = BackgroundTasks()
    out = sync_router.sync_entity(
        "customers",
        sync_router.SyncBatchIn(items=[{"id": "c-1", "name": "Asha"}, {"id": "c-2"}]),
        tasks,
        device=DEVICE,
    )
    assert out["success"] is True
    assert out["summary"] == {"total": 2, "successful": 1, "failed": 1}
    assert out["results"]["success"][0]["action"] == "created"
    assert out["results"]["failed"][0]["id"] == "c-2"
    assert len(tasks.tasks) == 0


def test_stock_channels_schedule_alert_scan(router_store):
    tasks = BackgroundTasks()
    sync_router.sync_entity(
        "products", sync_router.SyncBatchIn(items=[{"id": "p-1", "name": "Milk"}]), tasks, device=DEVICE
    )
    assert len(tasks.tasks) == 1


def test_unknown_entity_is_404(router_store):
    with pytest.raises(HTTPException) as exc_info:
        sync_router.sync_entity("widgets", sync_router.SyncBatchIn(items=[]), BackgroundTasks(), device=DEVICE)
    assert exc_info.value.status_code == 404


def test_pull_returns_camel_case_and_tombstones(router_store):
    tasks = BackgroundTasks()
    sync_router.sync_entity(
        "customers",
        sync_router.SyncBatchIn(
            items=[
                {"id": "c-1", "name": "Asha", "mobileNumber": "9000000001"},
                {"id": "c-2", "name": "Ravi"},
            ]
        ),
        tasks,
        device=DEVICE,
    )
    sync_router.sync_entity(
        "customers", sync_router.SyncBatchIn(items=[{"id": "c-2", "isDeleted": True}]), tasks, device=DEVICE
    )

    out = sync_router.pull_changes("customers", since="2000-01-01T00:00:00Z", device=DEVICE)
    assert out["count"] == {"updated": 1, "deleted": 1, "total": 2}
    row = out["updated"][0]
    assert row["mobileNumber"] == "9000000001"
    assert row["localId"] == "c-1"
    assert row["_id"] == row["id"]
    assert "companyId" not in row
    assert out["deleted"][0]["localId"] == "c-2"

    later = sync_router.pull_changes("customers", since="2999-01-01T00:00:00Z", device=DEVICE)
    assert later["count"]["total"] == 0


def test_pull_validates_input(router_store):
    with pytest.raises(HTTPException) as exc_info:
        sync_router.pull_changes("widgets", device=DEVICE)
    assert exc_info.value.status_code == 400
    with pytest.raises(HTTPException) as exc_info:
        sync_router.pull_changes("customers", since="yesterday", device=DEVICE)
    assert exc_info.value.status_code == 400


def test_pull_accepts_underscore_collection_names(router_store):
    out = sync_router.pull_changes("product_batches", device=DEVICE)
    assert out["count"]["total"] == 0


def test_status_counts(router_store):
    sync_router.sync_entity(
        "expenses",
        sync_router.SyncBatchIn(items=[{"id": "e-1", "amount": 10, "category": "rent"}]),
        BackgroundTasks(),
        device=DEVICE,
    )
    out = sync_router.sync_status(device=DEVICE)
    assert out["counts"]["expenses"] == 1
    assert out["counts"]["orders"] == 0
    assert out["watermarks"]["expenses"]["record_count"] == 1


def test_alert_task_failures_are_logged_not_raised(router_store, monkeypatch):
    def boom(*_args, **_kwargs):
        raise RuntimeError("scan failed")

    monkeypatch.setattr(sync_router.inventory_alerts, "run_inventory_alerts", boom)
    sync_router._run_alerts(DEVICE["company_id"])


def test_to_wire_is_recursive():
    out = sync_router.to_wire({"split_payment_details": {"due_amount": 1}, "items": [{"selling_price": 2}]})
    assert out == {"splitPaymentDetails": {"dueAmount": 1}, "items": [{"sellingPrice": 2}]}
