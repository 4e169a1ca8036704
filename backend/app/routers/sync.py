from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from ..config import settings
from ..deps import require_device
from ..logs import json_log
from ..store import DocumentStore
from ..sync.batch import sync_batch
from ..sync.common import SyncContext, parse_datetime
from ..sync.cursors import get_watermarks
from ..sync.entities import ENDPOINTS, STOCK_COLLECTIONS
from ..sync.quota import PlanQuota
from backend.workers import inventory_alerts

router = APIRouter(prefix="/sync", tags=["sync"])

_store = DocumentStore()


def get_store():
    return _store


class SyncBatchIn(BaseModel):
    items: list[Any]


def _context(company_id: str) -> SyncContext:
    store = get_store()
    return SyncContext(
        store=store,
        company_id=company_id,
        quota=PlanQuota(store, settings.default_limits, enforced=settings.quota_enforced),
        duplicate_window_seconds=settings.duplicate_window_seconds,
    )


def _collection(name: str) -> str:
    key = (name or "").strip().lower()
    collection = ENDPOINTS.get(key) or ENDPOINTS.get(key.replace("_", "-"))
    if not collection:
        raise HTTPException(status_code=400, detail=f"invalid collection: {name}")
    return collection


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def to_wire(value):
    """Stored snake_case documents go back to devices in camelCase."""
    if isinstance(value, dict):
        return {_camel(k): to_wire(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_wire(v) for v in value]
    return value


def _wire_doc(doc: dict) -> dict:
    out = to_wire({k: v for k, v in doc.items() if k not in {"id", "company_id"}})
    out["_id"] = doc["id"]
    out["id"] = doc["id"]
    return out


def _run_alerts(company_id: str) -> None:
    try:
        inventory_alerts.run_inventory_alerts(get_store(), company_id)
    except Exception as exc:
        json_log("warning", "inventory.alerts.failed", company_id=company_id, error=str(exc))


@router.get("/status")
def sync_status(device=Depends(require_device)):
    company_id = device["company_id"]
    store = get_store()
    counts = {
        name: store.count_documents(collection, company_id, {"is_deleted": False})
        for name, collection in ENDPOINTS.items()
    }
    return {
        "success": True,
        "company_id": company_id,
        "counts": counts,
        "watermarks": get_watermarks(store, company_id),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/{entity}")
def sync_entity(entity: str, data: SyncBatchIn, background_tasks: BackgroundTasks, device=Depends(require_device)):
    collection = ENDPOINTS.get((entity or "").strip().lower())
    if not collection:
        raise HTTPException(status_code=404, detail=f"unknown sync entity: {entity}")
    company_id = device["company_id"]

    results = sync_batch(_context(company_id), collection, data.items)
    if collection in STOCK_COLLECTIONS and results.success:
        background_tasks.add_task(_run_alerts, company_id)
    return results.to_response(len(data.items))


@router.get("/{collection}")
def pull_changes(collection: str, since: Optional[str] = None, device=Depends(require_device)):
    name = _collection(collection)
    since_dt = None
    if since:
        since_dt = parse_datetime(since)
        if since_dt is None:
            raise HTTPException(status_code=400, detail="invalid since timestamp")

    docs = get_store().changed_since(name, device["company_id"], since_dt)
    updated = [_wire_doc(d) for d in docs if not d.get("is_deleted")]
    deleted = [{"_id": d["id"], "id": d["id"], "localId": d.get("local_id")} for d in docs if d.get("is_deleted")]
    return {
        "success": True,
        "collection": collection,
        "updated": updated,
        "deleted": deleted,
        "count": {"updated": len(updated), "deleted": len(deleted), "total": len(docs)},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
