"""
Tenant-scoped document store.

Every sync collection lives in one JSONB table partitioned by `company_id`.
Each call is a single statement on its own pooled connection: single-document
writes are atomic, there are no multi-document transactions.

`MemoryStore` implements the same interface in-process (tests, local tooling).
"""

import copy
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .db import get_conn, set_company_context

Doc = dict[str, Any]
# [(field, 1 | -1), ...] like a Mongo sort spec.
SortSpec = Optional[Iterable[tuple[str, int]]]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sort_documents(docs: list[Doc], sort: SortSpec) -> list[Doc]:
    """
    Stable multi-key sort. Missing/None values always sort last, in both directions.
    """
    out = list(docs)
    for field, direction in reversed(list(sort or [])):
        if direction < 0:
            out.sort(key=lambda d: (d.get(field) is not None, _sortable(d.get(field))), reverse=True)
        else:
            out.sort(key=lambda d: (d.get(field) is None, _sortable(d.get(field))))
    return out


def _sortable(v):
    if v is None:
        return ""
    if isinstance(v, bool):
        return int(v)
    return v


def _stamp(company_id: str, doc: Doc) -> Doc:
    now = utcnow_iso()
    out = dict(doc)
    if not out.get("id"):
        out["id"] = str(uuid.uuid4())
    out.setdefault("created_at", now)
    out.setdefault("is_deleted", False)
    out["updated_at"] = now
    out["company_id"] = company_id
    return out


class DocumentStore:
    """PostgreSQL-backed store over `sync_documents` (see db/migrations)."""

    def __init__(self, conn_factory=None):
        self._conn_factory = conn_factory or get_conn

    def _run(self, company_id: str, sql: str, params: tuple, fetch: Optional[str] = None):
        with self._conn_factory() as conn:
            set_company_context(conn, company_id)
            with conn.cursor() as cur:
                cur.execute(sql, params)
                if fetch == "one":
                    return cur.fetchone()
                if fetch == "all":
                    return cur.fetchall()
                return None

    def find_one(self, collection: str, company_id: str, filters: Doc) -> Optional[Doc]:
        row = self._run(
            company_id,
            """
            SELECT doc
            FROM sync_documents
            WHERE collection = %s
              AND company_id = %s
              AND doc @> %s::jsonb
            ORDER BY created_at ASC
            LIMIT 1
            """,
            (collection, company_id, json.dumps(filters or {}, default=str)),
            fetch="one",
        )
        return dict(row["doc"]) if row else None

    def find(self, collection: str, company_id: str, filters: Doc, sort: SortSpec = None) -> list[Doc]:
        rows = self._run(
            company_id,
            """
            SELECT doc
            FROM sync_documents
            WHERE collection = %s
              AND company_id = %s
              AND doc @> %s::jsonb
            ORDER BY created_at ASC
            """,
            (collection, company_id, json.dumps(filters or {}, default=str)),
            fetch="all",
        )
        return sort_documents([dict(r["doc"]) for r in rows or []], sort)

    def save(self, collection: str, company_id: str, doc: Doc) -> Doc:
        out = _stamp(company_id, doc)
        # The conflict branch never crosses tenants: a foreign row with the same id is left untouched.
        self._run(
            company_id,
            """
            INSERT INTO sync_documents (collection, company_id, id, doc, created_at, updated_at)
            VALUES (%s, %s, %s, %s::jsonb, %s, %s)
            ON CONFLICT (collection, id) DO UPDATE
            SET doc = EXCLUDED.doc,
                updated_at = EXCLUDED.updated_at
            WHERE sync_documents.company_id = EXCLUDED.company_id
            """,
            (
                collection,
                company_id,
                out["id"],
                json.dumps(out, default=str),
                out["created_at"],
                out["updated_at"],
            ),
        )
        return out

    def delete(self, collection: str, company_id: str, doc_id: str) -> None:
        self._run(
            company_id,
            "DELETE FROM sync_documents WHERE collection = %s AND company_id = %s AND id = %s",
            (collection, company_id, doc_id),
        )

    def count_documents(self, collection: str, company_id: str, filters: Doc) -> int:
        row = self._run(
            company_id,
            """
            SELECT COUNT(*)::int AS n
            FROM sync_documents
            WHERE collection = %s
              AND company_id = %s
              AND doc @> %s::jsonb
            """,
            (collection, company_id, json.dumps(filters or {}, default=str)),
            fetch="one",
        )
        return int((row or {}).get("n") or 0)

    def changed_since(self, collection: str, company_id: str, since: Optional[datetime]) -> list[Doc]:
        """Documents touched after `since` (all of them when `since` is None), tombstones included."""
        rows = self._run(
            company_id,
            """
            SELECT doc
            FROM sync_documents
            WHERE collection = %s
              AND company_id = %s
              AND (%s::timestamptz IS NULL OR updated_at > %s::timestamptz)
            ORDER BY updated_at ASC
            """,
            (collection, company_id, since, since),
            fetch="all",
        )
        return [dict(r["doc"]) for r in rows or []]


class MemoryStore:
    def __init__(self):
        self._data: dict[tuple[str, str], dict[str, Doc]] = {}

    def _bucket(self, collection: str, company_id: str) -> dict[str, Doc]:
        return self._data.setdefault((collection, str(company_id)), {})

    @staticmethod
    def _matches(doc: Doc, filters: Doc) -> bool:
        return all(doc.get(k) == v for k, v in (filters or {}).items())

    def find_one(self, collection: str, company_id: str, filters: Doc) -> Optional[Doc]:
        docs = self.find(collection, company_id, filters)
        return docs[0] if docs else None

    def find(self, collection: str, company_id: str, filters: Doc, sort: SortSpec = None) -> list[Doc]:
        matched = [
            copy.deepcopy(d)
            for d in self._bucket(collection, company_id).values()
            if self._matches(d, filters)
        ]
        return sort_documents(sort_documents(matched, [("created_at", 1)]), sort)

    def save(self, collection: str, company_id: str, doc: Doc) -> Doc:
        out = _stamp(company_id, doc)
        for (coll, cid), bucket in self._data.items():
            if coll == collection and cid != str(company_id) and out["id"] in bucket:
                # Same as the SQL conflict guard: never overwrite another tenant's row.
                return out
        self._bucket(collection, company_id)[out["id"]] = copy.deepcopy(out)
        return out

    def delete(self, collection: str, company_id: str, doc_id: str) -> None:
        self._bucket(collection, company_id).pop(doc_id, None)

    def count_documents(self, collection: str, company_id: str, filters: Doc) -> int:
        return len(self.find(collection, company_id, filters))

    def changed_since(self, collection: str, company_id: str, since: Optional[datetime]) -> list[Doc]:
        docs = self.find(collection, company_id, {})
        if since is not None:
            docs = [d for d in docs if datetime.fromisoformat(d["updated_at"]) > since]
        return sort_documents(docs, [("updated_at", 1)])
