"""
Plan limits per tenant, kept in one `plan_usage` document:

    {"limits": {"customers": 100, "products": null, ...}, "used": {"customers": 12, ...}}

A null limit is unlimited. Tenants without a document get the configured defaults.
"""

from dataclasses import dataclass
from typing import Optional

PLAN_USAGE = "plan_usage"


@dataclass
class QuotaResult:
    success: bool
    message: Optional[str] = None


class PlanQuota:
    def __init__(self, store, default_limits: Optional[dict] = None, enforced: bool = True):
        self.store = store
        self.default_limits = dict(default_limits or {})
        self.enforced = enforced

    def _load(self, company_id: str) -> dict:
        doc = self.store.find_one(PLAN_USAGE, company_id, {})
        if doc is None:
            doc = {"limits": dict(self.default_limits), "used": {}}
        doc.setdefault("limits", {})
        doc.setdefault("used", {})
        return doc

    def set_limits(self, company_id: str, limits: dict) -> dict:
        doc = self._load(company_id)
        doc["limits"].update(limits)
        return self.store.save(PLAN_USAGE, company_id, doc)

    def usage(self, company_id: str) -> dict:
        doc = self._load(company_id)
        return {"limits": doc["limits"], "used": doc["used"]}

    def check_and_adjust(self, company_id: str, kind: str, delta: int) -> QuotaResult:
        doc = self._load(company_id)
        used = int(doc["used"].get(kind) or 0)

        if delta > 0 and self.enforced:
            limit = doc["limits"].get(kind)
            if limit is not None and used + delta > int(limit):
                return QuotaResult(
                    False,
                    f"Plan limit reached for {kind} ({limit}). Upgrade your plan to increase the limit.",
                )

        doc["used"][kind] = max(0, used + delta)
        self.store.save(PLAN_USAGE, company_id, doc)
        return QuotaResult(True)
