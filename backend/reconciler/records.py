"""
Read-only record views and matched pairs handed between the matcher and the comparator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from shared.models.enums import EntityKind


@dataclass(frozen=True)
class Record:
    """One entity from one side, tagged with its kind. Never mutated."""
    kind: EntityKind
    fields: Mapping[str, Any]

    @classmethod
    def wrap(cls, kind: EntityKind, raw: Mapping[str, Any]) -> "Record":
        """Unwrap a scraper envelope (``{"data": {...}, "_id": ...}``) if present."""
        data = raw.get("data") if isinstance(raw, Mapping) else None
        if isinstance(data, Mapping):
            merged = dict(data)
            if "_id" in raw:
                merged["_id"] = raw["_id"]
        else:
            merged = dict(raw)
        return cls(kind=kind, fields=MappingProxyType(merged))

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def first(self, keys: Iterable[str], default: Any = None) -> Any:
        """First value among ``keys`` that is neither None nor blank."""
        for key in keys:
            value = self.fields.get(key)
            if value is not None and value != "":
                return value
        return default

    def group(self, key: str) -> Mapping[str, Any]:
        value = self.fields.get(key)
        return value if isinstance(value, Mapping) else {}

    def as_dict(self) -> dict[str, Any]:
        return dict(self.fields)


def wrap_all(kind: EntityKind, raw_records: Optional[Iterable[Mapping[str, Any]]], side: str) -> list[Record]:
    if raw_records is None:
        raise TypeError(f"{side} records are required")
    return [Record.wrap(kind, r) for r in raw_records if isinstance(r, Mapping)]


@dataclass(frozen=True)
class MatchedPair:
    """A reference record paired 1:1 with a scraped record."""
    reference: Record
    scraped: Record
    match_key: str
    strategy: str
    name_rule_id: Optional[str] = None
    mapped_fields: Mapping[str, Any] = field(default_factory=dict)
