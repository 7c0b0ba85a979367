# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Call log data access.
Bounded log with configurable max size; records are updated when a call ends.
"""

from datetime import datetime
from typing import Any, Optional

from carecall.core.config import settings


class CallLogRepository:
    """In-memory call log (bounded ring buffer)."""

    def __init__(self) -> None:
        self._log: list[dict[str, Any]] = []

    # ── Read ──

    def get_all(
        self,
        recipient_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        effective_limit = limit or settings.DEFAULT_CALL_LOG_LIMIT
        result = (
            [c for c in self._log if c["recipient_id"] == recipient_id]
            if recipient_id
            else list(self._log)
        )
        return result[-effective_limit:]

    def has_call_since(self, recipient_id: str, since: datetime) -> bool:
        return any(
            c["recipient_id"] == recipient_id
            and datetime.fromisoformat(c["started_at"]) > since
            for c in self._log
        )

    def count(self) -> int:
        return len(self._log)

    # ── Write ──

    def append(self, record: dict[str, Any]) -> None:
        self._log.append(record)
        if len(self._log) > settings.MAX_CALL_LOG_SIZE:
            del self._log[: len(self._log) - settings.MAX_CALL_LOG_SIZE]

    def update(self, record_id: str, **changes: Any) -> Optional[dict[str, Any]]:
        """Apply ``changes`` to a logged call in place. None if it was trimmed."""
        for record in reversed(self._log):
            if record["id"] == record_id:
                record.update(changes)
                return record
        return None

    # ── Bulk / internal ──

    def clear(self) -> None:
        self._log.clear()
