#!/usr/bin/env python3
"""
Recompute every customer and supplier `due_amount` by replaying their ledger.

    python -m backend.scripts.rebuild_party_balances --all
"""
import argparse

from backend.app.db import get_conn
from backend.app.logs import json_log
from backend.app.store import DocumentStore
from backend.app.sync.ledger import PARTIES, recalculate_balance


def list_company_ids():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT DISTINCT company_id FROM sync_devices ORDER BY company_id")
            return [str(r["company_id"]) for r in cur.fetchall()]


def rebuild_for_company(store, company_id: str) -> dict:
    changed = {}
    for party, (collection, _entries, _key) in PARTIES.items():
        n = 0
        for doc in store.find(collection, company_id, {"is_deleted": False}):
            before = doc.get("due_amount")
            after = recalculate_balance(store, company_id, party, doc["id"])
            if before is None or float(before) != float(after):
                n += 1
        changed[party] = n
    json_log("info", "balances.rebuilt", company_id=company_id, changed=changed)
    return changed


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--company-id", help="Rebuild for a single company")
    parser.add_argument("--all", action="store_true", help="Rebuild for all companies")
    args = parser.parse_args()

    if not args.company_id and not args.all:
        raise SystemExit("Pass --company-id or --all")

    store = DocumentStore()
    company_ids = [args.company_id] if args.company_id else list_company_ids()
    for cid in company_ids:
        rebuild_for_company(store, cid)


if __name__ == "__main__":
    main()
