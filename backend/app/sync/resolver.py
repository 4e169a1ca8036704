"""
Identity resolution across the two id spaces.

Devices name records by their own `local_id` until the server hands back an `id`.
Every lookup of a client-named record goes through `resolve`.
"""

import uuid
from typing import Optional


def is_server_id(value) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        uuid.UUID(str(value).strip())
        return True
    except Exception:
        return False


def _normalize_server_id(value) -> str:
    return str(uuid.UUID(str(value).strip()))


def resolve(store, company_id: str, collection: str, local_id=None, server_id=None) -> Optional[dict]:
    if server_id is not None and is_server_id(server_id):
        doc = store.find_one(collection, company_id, {"id": _normalize_server_id(server_id)})
        if doc is not None and str(doc.get("company_id")) == str(company_id):
            return doc
    if local_id not in (None, ""):
        doc = store.find_one(collection, company_id, {"local_id": str(local_id), "is_deleted": False})
        if doc is not None and str(doc.get("company_id")) == str(company_id):
            return doc
    return None


def resolve_reference(store, company_id: str, collection: str, ref, include_deleted: bool = False) -> Optional[dict]:
    """
    Resolve a cross-entity reference that may hold either a server id or a local id.
    """
    if ref in (None, ""):
        return None
    doc = resolve(store, company_id, collection, local_id=str(ref), server_id=str(ref))
    if doc is not None and doc.get("is_deleted") and not include_deleted:
        return None
    return doc
