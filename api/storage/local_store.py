from __future__ import annotations

import copy
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from storage.supabase_store import Filter, SupabaseTable, supabase_enabled


# In-process tables (dev / tests). Same interface as SupabaseTable.
_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda a, b: a == b,
    "neq": lambda a, b: a != b,
    "lt": lambda a, b: a is not None and a < b,
    "lte": lambda a, b: a is not None and a <= b,
    "gt": lambda a, b: a is not None and a > b,
    "gte": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "is": lambda a, b: a is b,
}


def _matches(row: Dict[str, Any], filters: Iterable[Filter]) -> bool:
    for column, op, value in filters:
        if op not in _OPS:
            raise ValueError(f"Unsupported filter operator: {op}")
        if not _OPS[op](row.get(column), value):
            return False
    return True


class LocalTable:
    def __init__(self, name: str, key_columns: Sequence[str]):
        self.name = name
        self.key_columns = tuple(key_columns)
        self._rows: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
        self._lock = Lock()

    def _key(self, row: Dict[str, Any]) -> Tuple[Any, ...]:
        missing = [c for c in self.key_columns if row.get(c) is None]
        if missing:
            raise ValueError(f"{self.name}: missing key column(s) {', '.join(missing)}")
        return tuple(row[c] for c in self.key_columns)

    def select(
        self,
        filters: Iterable[Filter] = (),
        *,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = list(filters)
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._rows.values() if _matches(r, filters)]
        if order:
            # nulls last, like PostgREST's default for ascending order
            rows.sort(key=lambda r: (r.get(order) is None, r.get(order)), reverse=desc)
        if limit is not None:
            rows = rows[: int(limit)]
        return rows

    def get(self, **keys: Any) -> Optional[Dict[str, Any]]:
        rows = self.select([(k, "eq", v) for k, v in keys.items()], limit=1)
        return rows[0] if rows else None

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        key = self._key(row)
        with self._lock:
            if key in self._rows:
                raise ValueError(f"{self.name}: duplicate key {key}")
            self._rows[key] = copy.deepcopy(row)
        return copy.deepcopy(row)

    def upsert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        key = self._key(row)
        with self._lock:
            merged = dict(self._rows.get(key) or {})
            merged.update(copy.deepcopy(row))
            self._rows[key] = merged
            return copy.deepcopy(merged)

    def update(self, filters: Iterable[Filter], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        filters = list(filters)
        out = []
        with self._lock:
            for row in self._rows.values():
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    out.append(copy.deepcopy(row))
        return out

    def delete(self, filters: Iterable[Filter]) -> int:
        filters = list(filters)
        with self._lock:
            doomed = [k for k, r in self._rows.items() if _matches(r, filters)]
            for k in doomed:
                del self._rows[k]
        return len(doomed)


class LocalTableFactory:
    """Hands out one LocalTable per name so stores sharing a table see the same rows."""

    def __init__(self) -> None:
        self._tables: Dict[str, LocalTable] = {}
        self._lock = Lock()

    def __call__(self, name: str, key_columns: Sequence[str]) -> LocalTable:
        with self._lock:
            table = self._tables.get(name)
            if table is None:
                table = LocalTable(name, key_columns)
                self._tables[name] = table
            return table


def default_table_factory():
    if supabase_enabled():
        return SupabaseTable
    return LocalTableFactory()
