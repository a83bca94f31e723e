from __future__ import annotations

from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .contracts import URGENCY_RANK, Case

SortKey = Tuple[str, int]

_UPDATABLE_FIELDS = frozenset(
    {
        "transcript",
        "analysis",
        "validation",
        "status",
        "processing_errors",
        "processed_at",
        "assigned_at",
        "resolved_at",
        "assigned_to",
        "resolution_notes",
    }
)


def _lookup(record: Mapping[str, Any], dotted: str) -> Any:
    current: Any = record
    for part in dotted.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _sort_value(field: str, value: Any) -> Any:
    if field == "analysis.urgency":
        return URGENCY_RANK.get(str(value), -1)
    return value


class InMemoryCaseStore:
    """Document store for cases; records are copied in and out under one lock."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._cases: Dict[str, Dict[str, Any]] = {}

    def create(self, case: Case) -> Case:
        with self._lock:
            if case.case_id in self._cases:
                raise ValueError(f"Duplicate case_id: {case.case_id}")
            self._cases[case.case_id] = case.model_dump()
        return case.model_copy(deep=True)

    def find_by_id(self, case_id: str) -> Optional[Case]:
        with self._lock:
            record = self._cases.get(case_id)
            if record is None:
                return None
            return Case.model_validate(record)

    def update_partial(self, case_id: str, fields: Mapping[str, Any]) -> Optional[Case]:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        with self._lock:
            record = self._cases.get(case_id)
            if record is None:
                return None
            merged = dict(record)
            for name, value in fields.items():
                merged[name] = value.model_dump() if hasattr(value, "model_dump") else value
            # Validate before committing so a bad write never corrupts the stored record.
            updated = Case.model_validate(merged)
            self._cases[case_id] = updated.model_dump()
            return updated

    def update_if(
        self,
        case_id: str,
        predicate: Callable[[Case], bool],
        fields: Mapping[str, Any],
    ) -> Tuple[Optional[Case], bool]:
        """Apply `fields` only when `predicate(current)` holds; returns (case, applied)."""
        with self._lock:
            current = self.find_by_id(case_id)
            if current is None:
                return None, False
            if not predicate(current):
                return current, False
            return self.update_partial(case_id, fields), True

    def _matching(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return [
            record
            for record in self._cases.values()
            if all(_lookup(record, key) == value for key, value in filters.items())
        ]

    def query(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Sequence[SortKey] = (),
        limit: int = 100,
        skip: int = 0,
    ) -> List[Case]:
        with self._lock:
            records = self._matching(filters or {})
            # Stable multi-key sort: apply keys last-to-first.
            for field, direction in reversed(list(sort)):
                records = sorted(
                    records,
                    key=lambda r, f=field: (
                        _lookup(r, f) is not None,
                        _sort_value(f, _lookup(r, f)),
                    ),
                    reverse=direction < 0,
                )
            window = records[max(0, skip) : max(0, skip) + max(0, limit)]
            return [Case.model_validate(record) for record in window]

    def count(self, filters: Optional[Mapping[str, Any]] = None) -> int:
        with self._lock:
            return len(self._matching(filters or {}))

    def count_by(self, field: str, value: Any) -> int:
        return self.count({field: value})
