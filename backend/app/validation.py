from __future__ import annotations

from datetime import date
from typing import Annotated, Literal, Optional

from pydantic import BeforeValidator, StringConstraints


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _to_client_id(v):
    # Devices send UUID strings, but legacy builds used numeric timestamps as local ids.
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValueError("invalid identifier")
    s = str(v).strip()
    return s or None


def _to_iso_date(v):
    # Devices send dates as ISO strings, sometimes full timestamps, sometimes the literal "null".
    if v is None:
        return None
    s = str(v).strip()
    if not s or s.lower() in {"null", "undefined", "none"}:
        return None
    try:
        return date.fromisoformat(s[:10]).isoformat()
    except Exception:
        raise ValueError("invalid date")


ClientId = Annotated[Optional[str], BeforeValidator(_to_client_id)]
IsoDate = Annotated[Optional[str], BeforeValidator(_to_iso_date)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

CustomerLedgerType = Annotated[
    Literal["payment", "due", "refund", "opening_balance", "settlement", "add_due", "remove_due", "credit_usage"],
    BeforeValidator(_to_lower_str),
]
SupplierLedgerType = Annotated[
    Literal[
        "payment",
        "due",
        "refund",
        "opening_balance",
        "settlement",
        "add_due",
        "remove_due",
        "credit_usage",
        "purchase_order",
        "cancel_purchase",
    ],
    BeforeValidator(_to_lower_str),
]

OrderPaymentMethod = Annotated[
    Literal["cash", "card", "upi", "due", "credit", "split"], BeforeValidator(_to_lower_str)
]
SPLIT_TYPES = ("cash_online", "online_due", "cash_due", "cash_online_due")

VendorOrderStatus = Annotated[Literal["pending", "completed", "cancelled"], BeforeValidator(_to_lower_str)]
VendorPaymentMethod = Annotated[Literal["cash", "online", "upi", "due"], BeforeValidator(_to_lower_str)]
VendorPaymentStatus = Annotated[Literal["paid", "partial", "unpaid"], BeforeValidator(_to_lower_str)]

TransactionType = Annotated[
    Literal["sale", "purchase", "refund", "recharge", "plan_purchase"], BeforeValidator(_to_lower_str)
]
TransactionPaymentMethod = Annotated[
    Literal["cash", "card", "upi", "bank", "credit", "razorpay"], BeforeValidator(_to_lower_str)
]

# Expense categories are tenant-defined; keep them stable identifiers.
ExpenseCategory = Annotated[
    str,
    BeforeValidator(_to_lower_str),
    StringConstraints(min_length=1, max_length=64),
]
