"""
Party balances are derived, never accumulated: every recalculation replays the
non-deleted ledger entries from scratch.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from .entities import CUSTOMER_TRANSACTIONS, CUSTOMERS, SUPPLIER_TRANSACTIONS, SUPPLIERS

INCREASING = frozenset({"purchase", "purchase_order", "due", "add_due", "opening_balance", "credit_usage"})
REDUCING = frozenset({"payment", "remove_due", "settlement", "refund", "return", "cancellation", "cancel_purchase"})

# party -> (party collection, entry collection, entry field holding the party id)
PARTIES = {
    "customer": (CUSTOMERS, CUSTOMER_TRANSACTIONS, "customer_id"),
    "supplier": (SUPPLIERS, SUPPLIER_TRANSACTIONS, "supplier_id"),
}


def compute_balance(entries: Iterable[dict]) -> Decimal:
    total = Decimal("0")
    for e in entries:
        if e.get("is_deleted"):
            continue
        kind = str(e.get("type") or "").lower()
        try:
            amount = Decimal(str(e.get("amount") or 0))
        except Exception:
            continue
        if kind in INCREASING:
            total += amount
        elif kind in REDUCING:
            total -= amount
    return total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def recalculate_balance(store, company_id: str, party: str, party_id: Optional[str]) -> Optional[Decimal]:
    if not party_id:
        return None
    party_collection, entry_collection, key = PARTIES[party]
    entries = store.find(entry_collection, company_id, {key: party_id, "is_deleted": False})
    balance = compute_balance(entries)

    doc = store.find_one(party_collection, company_id, {"id": party_id})
    if doc is not None:
        doc["due_amount"] = float(balance)
        store.save(party_collection, company_id, doc)
    return balance
