from __future__ import annotations

import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

import requests

from config import log
from utils.errors import StorageError


SUPABASE_URL = os.environ.get("ESTAIT_URL_SUPABASE", "").rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("ESTAIT_SERVICE_ROLE_KEY_SUPABASE", "")
SUPABASE_TIMEOUT_SECS = float(os.environ.get("ESTAIT_SUPABASE_TIMEOUT_SECS", "5"))

# (column, operator, value); operators follow PostgREST: eq, neq, lt, lte, gt, gte, in, is
Filter = Tuple[str, str, Any]


def supabase_enabled() -> bool:
    return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)


def supabase_headers() -> Dict[str, str]:
    return {
        "apikey": SUPABASE_SERVICE_ROLE_KEY,
        "Authorization": f"Bearer {SUPABASE_SERVICE_ROLE_KEY}",
        "Content-Type": "application/json",
    }


def supabase_table_url(table_name: str) -> str:
    return f"{SUPABASE_URL}/rest/v1/{table_name}"


def supabase_get(url: str, headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None):
    return requests.get(
        url,
        headers=headers or supabase_headers(),
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


def supabase_post(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    json: Optional[Any] = None,
    timeout: Optional[float] = None,
):
    return requests.post(
        url,
        headers=headers or supabase_headers(),
        json=json,
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


def supabase_patch(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    json: Optional[Any] = None,
    timeout: Optional[float] = None,
):
    return requests.patch(
        url,
        headers=headers or supabase_headers(),
        json=json,
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


def supabase_delete(url: str, headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None):
    return requests.delete(
        url,
        headers=headers or supabase_headers(),
        timeout=timeout or SUPABASE_TIMEOUT_SECS,
    )


# =========================
# Query string helpers
# =========================
def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return quote(str(value), safe="")


def filter_params(filters: Iterable[Filter]) -> List[str]:
    parts = []
    for column, op, value in filters:
        if op == "in":
            joined = ",".join(_literal(v) for v in value)
            parts.append(f"{column}=in.({joined})")
        else:
            parts.append(f"{column}={op}.{_literal(value)}")
    return parts


def build_query(
    filters: Iterable[Filter] = (),
    *,
    order: Optional[str] = None,
    desc: bool = False,
    limit: Optional[int] = None,
    select: Optional[str] = None,
) -> str:
    parts = filter_params(filters)
    if select:
        parts.append(f"select={select}")
    if order:
        parts.append(f"order={order}.{'desc' if desc else 'asc'}")
    if limit is not None:
        parts.append(f"limit={int(limit)}")
    return "&".join(parts)


# =========================
# Table access
# =========================
class SupabaseTable:
    """One PostgREST table. Rows are plain dicts; errors raise StorageError."""

    def __init__(self, name: str, key_columns: Sequence[str]):
        self.name = name
        self.key_columns = tuple(key_columns)

    def _url(self, query: str = "") -> str:
        base = supabase_table_url(self.name)
        return f"{base}?{query}" if query else base

    def _check(self, resp, action: str) -> None:
        if resp.status_code >= 400:
            log.warning("Supabase %s on %s failed: %s", action, self.name, resp.text)
            raise StorageError(f"{action} on {self.name} failed")

    def select(
        self,
        filters: Iterable[Filter] = (),
        *,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        url = self._url(build_query(filters, order=order, desc=desc, limit=limit, select="*"))
        resp = supabase_get(url, headers=supabase_headers(), timeout=SUPABASE_TIMEOUT_SECS)
        self._check(resp, "select")
        return resp.json() or []

    def get(self, **keys: Any) -> Optional[Dict[str, Any]]:
        rows = self.select([(k, "eq", v) for k, v in keys.items()], limit=1)
        return rows[0] if rows else None

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        headers = supabase_headers()
        headers["Prefer"] = "return=representation"
        resp = supabase_post(self._url(), headers=headers, json=row, timeout=SUPABASE_TIMEOUT_SECS)
        self._check(resp, "insert")
        rows = resp.json() or []
        return rows[0] if rows else row

    def upsert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        headers = supabase_headers()
        headers["Prefer"] = "resolution=merge-duplicates,return=representation"
        url = self._url(f"on_conflict={','.join(self.key_columns)}")
        resp = supabase_post(url, headers=headers, json=row, timeout=SUPABASE_TIMEOUT_SECS)
        self._check(resp, "upsert")
        rows = resp.json() or []
        return rows[0] if rows else row

    def update(self, filters: Iterable[Filter], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        headers = supabase_headers()
        headers["Prefer"] = "return=representation"
        url = self._url(build_query(filters))
        resp = supabase_patch(url, headers=headers, json=values, timeout=SUPABASE_TIMEOUT_SECS)
        self._check(resp, "update")
        return resp.json() or []

    def delete(self, filters: Iterable[Filter]) -> int:
        headers = supabase_headers()
        headers["Prefer"] = "return=representation"
        url = self._url(build_query(filters))
        resp = supabase_delete(url, headers=headers, timeout=SUPABASE_TIMEOUT_SECS)
        self._check(resp, "delete")
        return len(resp.json() or [])
