from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ItemResult:
    local_id: Optional[str]
    server_id: Optional[str] = None
    action: Optional[str] = None
    error: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, local_id, error: str, action: Optional[str] = None) -> "ItemResult":
        return cls(local_id=local_id, action=action, error=error)

    def to_success(self) -> dict:
        out = {"id": self.local_id, "_id": self.server_id, "action": self.action}
        out.update(self.extra)
        return out

    def to_failure(self) -> dict:
        out = {"id": self.local_id, "error": self.error}
        if self.action:
            out["action"] = self.action
        return out


class SyncResults:
    def __init__(self):
        self.success: list[dict] = []
        self.failed: list[dict] = []

    def add(self, result: ItemResult, label: Optional[str] = None) -> None:
        row = result.to_success() if result.ok else result.to_failure()
        if label:
            row["type"] = label
        (self.success if result.ok else self.failed).append(row)

    def to_response(self, total: int) -> dict:
        return {
            "success": True,
            "results": {"success": self.success, "failed": self.failed},
            "summary": {
                "total": total,
                "successful": len(self.success),
                "failed": len(self.failed),
            },
        }
