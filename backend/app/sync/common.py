"""
Shared reconciliation steps: parse, delete-by-policy, create with quota gating, update.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ValidationError

from ..logs import json_log
from .entities import HARD_DELETE, QUOTA_KINDS
from .errors import QuotaExceeded, ValidationFailed
from .resolver import resolve
from .results import ItemResult
from .schemas import IDENTITY_FIELDS, SyncItem

CENT = Decimal("0.01")


@dataclass
class SyncContext:
    store: Any
    company_id: str
    quota: Any = None
    duplicate_window_seconds: int = 5


def to_decimal(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0")
    try:
        return Decimal(str(v))
    except Exception:
        return Decimal("0")


def money(v) -> Decimal:
    return to_decimal(v).quantize(CENT, rounding=ROUND_HALF_UP)


def to_number(d: Decimal):
    # Stored documents keep plain JSON numbers.
    if d == d.to_integral_value():
        return int(d)
    return float(d)


def parse_datetime(raw) -> Optional[datetime]:
    """
    Client timestamps arrive as ISO strings or epoch milliseconds.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(float(raw) / 1000.0, tz=timezone.utc)
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc") or ())
        msg = err.get("msg") or "invalid value"
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "invalid item"


def parse_item(schema: type[BaseModel], item: dict):
    try:
        return schema.model_validate(item)
    except ValidationError as exc:
        raise ValidationFailed(format_validation_error(exc))


def parse_identity(item) -> SyncItem:
    if not isinstance(item, dict):
        raise ValidationFailed("item must be an object")
    return parse_item(SyncItem, item)


def present_fields(model: BaseModel, exclude: Iterable[str] = ()) -> dict:
    skip = set(IDENTITY_FIELDS) | set(exclude)
    return {k: v for k, v in model.model_dump(exclude_unset=True).items() if k not in skip}


def create_values(model: BaseModel, defaults: dict, exclude: Iterable[str] = ()) -> dict:
    skip = set(IDENTITY_FIELDS) | set(exclude)
    values = dict(defaults)
    for k, v in model.model_dump().items():
        if k in skip or v is None:
            continue
        values[k] = v
    return values


def remove_entity(ctx: SyncContext, collection: str, doc: dict) -> dict:
    if collection in HARD_DELETE:
        ctx.store.delete(collection, ctx.company_id, doc["id"])
        return {**doc, "is_deleted": True}
    return ctx.store.save(collection, ctx.company_id, {**doc, "is_deleted": True})


def release_quota(ctx: SyncContext, collection: str) -> None:
    kind = QUOTA_KINDS.get(collection)
    if kind and ctx.quota is not None:
        ctx.quota.check_and_adjust(ctx.company_id, kind, -1)


def delete_item(
    ctx: SyncContext,
    collection: str,
    ident: SyncItem,
    on_deleted: Optional[Callable[[dict], None]] = None,
) -> ItemResult:
    existing = resolve(ctx.store, ctx.company_id, collection, ident.local_id, ident.server_id)
    if existing is None or existing.get("is_deleted"):
        # Never existed or already gone: deleting is a no-op that still succeeds.
        server_id = existing["id"] if existing else ident.server_id
        return ItemResult(ident.local_id, server_id, "deleted")

    removed = remove_entity(ctx, collection, existing)
    release_quota(ctx, collection)
    if on_deleted is not None:
        on_deleted(removed)
    return ItemResult(ident.local_id, existing["id"], "deleted")


def create_entity(ctx: SyncContext, collection: str, values: dict, local_id: Optional[str]) -> dict:
    doc = ctx.store.save(collection, ctx.company_id, {**values, "local_id": local_id, "is_deleted": False})

    kind = QUOTA_KINDS.get(collection)
    if kind and ctx.quota is not None:
        verdict = ctx.quota.check_and_adjust(ctx.company_id, kind, 1)
        if not verdict.success:
            ctx.store.delete(collection, ctx.company_id, doc["id"])
            json_log(
                "warning",
                "sync.quota.rejected",
                company_id=ctx.company_id,
                collection=collection,
                local_id=local_id,
                message=verdict.message,
            )
            raise QuotaExceeded(verdict.message or f"Plan limit reached for {kind}")
    return doc


def update_entity(ctx: SyncContext, collection: str, existing: dict, values: dict, local_id: Optional[str]) -> dict:
    doc = {**existing, **values}
    if local_id and not existing.get("local_id"):
        doc["local_id"] = local_id
    return ctx.store.save(collection, ctx.company_id, doc)


def resolve_existing(ctx: SyncContext, collection: str, ident: SyncItem) -> Optional[dict]:
    """
    The record an upsert applies to: the live match, or else the tombstone a delete of
    the same local id left behind. Stale retries of a deleted record land on the
    tombstone and are skipped instead of creating a second record.
    """
    existing = resolve(ctx.store, ctx.company_id, collection, ident.local_id, ident.server_id)
    if existing is None and ident.local_id:
        existing = ctx.store.find_one(
            collection,
            ctx.company_id,
            {"local_id": str(ident.local_id), "is_deleted": True},
        )
    return existing


def skipped(ident: SyncItem, existing: dict) -> ItemResult:
    # Tombstoned server-side; an upsert does not bring it back.
    return ItemResult(ident.local_id, existing["id"], "skipped")
