#!/usr/bin/env python3
"""
Inventory alerts (no delivery): low stock, out of stock and batches expiring soon.

Alerts land in the tenant's `inventory_alerts` collection as pending records, one
per condition key. A pending alert whose condition cleared is marked resolved.

    python -m backend.workers.inventory_alerts --company-id <uuid>
"""
import argparse
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from backend.app.config import settings
from backend.app.logs import json_log
from backend.app.store import DocumentStore, utcnow_iso
from backend.app.sync.common import to_decimal, to_number
from backend.app.sync.entities import PRODUCT_BATCHES, PRODUCTS

INVENTORY_ALERTS = "inventory_alerts"


def _parse_date(raw) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw)[:10])
    except Exception:
        return None


def collect_alerts(store, company_id: str, low_stock: int, expiry_days: int, today: Optional[date] = None) -> list[dict]:
    today = today or date.today()
    horizon = today + timedelta(days=max(0, int(expiry_days)))
    out = []

    products = store.find(PRODUCTS, company_id, {"is_deleted": False})
    for p in products:
        if p.get("is_active") is False:
            continue
        batches = store.find(PRODUCT_BATCHES, company_id, {"product_id": p["id"], "is_deleted": False})
        on_hand = sum((to_decimal(b.get("quantity")) for b in batches), Decimal("0"))
        threshold = to_decimal(p.get("low_stock_level") if p.get("low_stock_level") is not None else low_stock)

        base = {"product_id": p["id"], "product_name": p.get("name"), "qty_on_hand": to_number(on_hand)}
        if on_hand <= 0:
            out.append({**base, "kind": "out_of_stock", "key": f"out_of_stock:{p['id']}"})
        elif on_hand <= threshold:
            out.append({**base, "kind": "low_stock", "key": f"low_stock:{p['id']}", "threshold": to_number(threshold)})

        if not p.get("track_expiry"):
            continue
        for b in batches:
            expiry = _parse_date(b.get("expiry"))
            if expiry is None or to_decimal(b.get("quantity")) <= 0:
                continue
            if expiry <= horizon:
                out.append(
                    {
                        "product_id": p["id"],
                        "product_name": p.get("name"),
                        "kind": "expiring",
                        "key": f"expiring:{b['id']}",
                        "batch_id": b["id"],
                        "batch_number": b.get("batch_number"),
                        "expiry": expiry.isoformat(),
                        "qty_on_hand": b.get("quantity"),
                        "days_left": (expiry - today).days,
                    }
                )
    return out


def run_inventory_alerts(
    store,
    company_id: str,
    low_stock: Optional[int] = None,
    expiry_days: Optional[int] = None,
    today: Optional[date] = None,
) -> dict:
    low_stock = settings.alert_low_stock if low_stock is None else low_stock
    expiry_days = settings.alert_expiry_days if expiry_days is None else expiry_days

    current = {a["key"]: a for a in collect_alerts(store, company_id, low_stock, expiry_days, today=today)}
    pending = {a["key"]: a for a in store.find(INVENTORY_ALERTS, company_id, {"status": "pending"})}

    created = 0
    for key, alert in current.items():
        if key in pending:
            continue
        store.save(INVENTORY_ALERTS, company_id, {**alert, "status": "pending", "raised_at": utcnow_iso()})
        created += 1

    resolved = 0
    for key, alert in pending.items():
        if key in current:
            continue
        store.save(INVENTORY_ALERTS, company_id, {**alert, "status": "resolved", "resolved_at": utcnow_iso()})
        resolved += 1

    summary = {"company_id": company_id, "open": len(current), "created": created, "resolved": resolved}
    json_log("info", "inventory.alerts", **summary)
    return summary


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--company-id", required=True)
    parser.add_argument("--low-stock", type=int, default=settings.alert_low_stock)
    parser.add_argument("--days", type=int, default=settings.alert_expiry_days)
    args = parser.parse_args()
    run_inventory_alerts(DocumentStore(), args.company_id, low_stock=args.low_stock, expiry_days=args.days)


if __name__ == "__main__":
    main()
