# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Call schedule data access.
One normalized schedule per care recipient, superseded in place.
NO business rules here, pure CRUD.
"""

from typing import Optional

from carecall.models.domain import CallSchedule


class ScheduleRepository:
    """In-memory schedule storage keyed by recipient id."""

    def __init__(self) -> None:
        self._store: dict[str, CallSchedule] = {}

    # ── Read ──

    def get_all(self) -> dict[str, CallSchedule]:
        return dict(self._store)

    def get(self, recipient_id: str) -> Optional[CallSchedule]:
        return self._store.get(recipient_id)

    def exists(self, recipient_id: str) -> bool:
        return recipient_id in self._store

    def count(self) -> int:
        return len(self._store)

    # ── Write ──

    def save(self, recipient_id: str, schedule: CallSchedule) -> None:
        self._store[recipient_id] = schedule

    def delete(self, recipient_id: str) -> Optional[CallSchedule]:
        return self._store.pop(recipient_id, None)

    # ── Bulk / internal ──

    def clear(self) -> None:
        self._store.clear()
