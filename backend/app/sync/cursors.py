from typing import Optional

from ..logs import json_log
from ..store import utcnow_iso

SYNC_TRACKING = "sync_tracking"


def record_watermark(store, company_id: str, entity_type: str, count: int) -> None:
    # A failed watermark write never fails the batch that produced it.
    try:
        doc = store.find_one(SYNC_TRACKING, company_id, {}) or {"collections": {}}
        doc.setdefault("collections", {})[entity_type] = {
            "latest_update_time": utcnow_iso(),
            "record_count": int(count),
        }
        store.save(SYNC_TRACKING, company_id, doc)
    except Exception as exc:
        json_log(
            "warning",
            "sync.watermark.failed",
            company_id=company_id,
            entity_type=entity_type,
            error=str(exc),
        )


def get_watermarks(store, company_id: str) -> dict:
    doc: Optional[dict] = store.find_one(SYNC_TRACKING, company_id, {})
    return dict((doc or {}).get("collections") or {})
