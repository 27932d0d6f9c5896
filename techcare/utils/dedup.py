"""
Duplicate-record detection for technician rows.

Pure functions over plain row mappings (``id``, ``user_id``, ``name``,
``email``), so the same logic serves the read-only report and the fix.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Iterable, Mapping, NamedTuple, Optional

Row = Mapping[str, Any]


class DedupPlan(NamedTuple):
    """Rows to keep and delete when collapsing duplicates by ``user_id``."""

    total: int
    keep: list[Any]
    delete: list[Any]

    @property
    def unique(self) -> int:
        return len(self.keep)


def identity_key(row: Row) -> Optional[str]:
    """First non-empty of ``user_id``, ``email``, ``name``."""
    for field in ("user_id", "email", "name"):
        value = row.get(field)
        if value:
            return str(value)
    return None


def find_duplicate_keys(rows: Iterable[Row]) -> "OrderedDict[str, list[Row]]":
    """Group rows sharing an identity key, keeping only groups of two or more.

    Groups appear in the order their second member was seen.
    """
    groups: dict[str, list[Row]] = {}
    duplicates: "OrderedDict[str, list[Row]]" = OrderedDict()
    for row in rows:
        key = identity_key(row)
        if key is None:
            continue
        members = groups.setdefault(key, [])
        members.append(row)
        if len(members) == 2:
            duplicates[key] = members
    return duplicates


def plan_user_id_dedup(rows: Iterable[Row]) -> DedupPlan:
    """Keep the lowest ``id`` per ``user_id``; everything else is deleted.

    Rows without a ``user_id`` are left alone.
    """
    materialised = list(rows)
    ordered = sorted(
        (row for row in materialised if row.get("user_id")),
        key=lambda row: row["id"],
    )
    seen: set[str] = set()
    keep: list[Any] = []
    delete: list[Any] = []
    for row in ordered:
        user_id = str(row["user_id"])
        if user_id in seen:
            delete.append(row["id"])
        else:
            seen.add(user_id)
            keep.append(row["id"])
    return DedupPlan(total=len(materialised), keep=keep, delete=delete)


def batched(items: list[Any], size: int) -> Iterable[list[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
