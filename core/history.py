"""
Append-only analysis history used for trend display.
The whole list is stored as one JSON document per user and rewritten on
every append or clear.
"""
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from core.db import Database, get_db
from core.exceptions import DataNotFoundError
from core.logger import setup_logger
from core.schema import AnalysisResult, HistoryRecord

logger = setup_logger(__name__)

STORAGE_KEY = "quantoda_history"

_records_adapter = TypeAdapter(List[HistoryRecord])


def history_key(owner: str) -> str:
    """Namespaced storage key for one user's history."""
    return f"{STORAGE_KEY}:{owner}"


class HistoryStore:
    """Ordered list of history records, newest first."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()
        self._lock = threading.Lock()

    def load(self, owner: str) -> List[HistoryRecord]:
        """
        Load the stored history for owner.

        Args:
            owner: User identifier (email)

        Returns:
            Records, newest first; empty when nothing is stored
        """
        raw = self.db.get_value(history_key(owner))
        if raw is None:
            return []
        try:
            return _records_adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Stored history for {owner} is corrupted, ignoring it: {e}")
            return []

    def _write(self, owner: str, records: List[HistoryRecord]) -> None:
        payload = _records_adapter.dump_json(records, by_alias=True).decode("utf-8")
        self.db.set_value(history_key(owner), payload)

    def append(self, owner: str, result: AnalysisResult) -> HistoryRecord:
        """
        Tag a successful analysis with id and timestamp and store it.

        Args:
            owner: User identifier
            result: Analysis result to record

        Returns:
            The stored history record
        """
        record = HistoryRecord(
            **result.model_dump(exclude={"id", "created_at"}),
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            records = [record] + self.load(owner)
            self._write(owner, records)
        logger.info(f"History record {record.id} saved ({len(records)} total)")
        return record

    def get(self, owner: str, record_id: str) -> HistoryRecord:
        """
        Find one record by id.

        Raises:
            DataNotFoundError: If the record does not exist
        """
        for record in self.load(owner):
            if record.id == record_id:
                return record
        raise DataNotFoundError("History record not found", details={"record_id": record_id})

    def clear(self, owner: str) -> None:
        """Delete the whole history for owner."""
        with self._lock:
            self.db.delete_value(history_key(owner))
        logger.info(f"History cleared for {owner}")

    def trend(self, owner: str) -> List[dict]:
        """Chronological monthly totals for the trend chart."""
        return [
            {
                "id": r.id,
                "createdAt": r.created_at.isoformat(),
                "totalMonthly": r.total_monthly,
                "subscriptionCount": r.subscription_count,
            }
            for r in reversed(self.load(owner))
        ]


# Global store instance
_store: Optional[HistoryStore] = None


def get_history_store() -> HistoryStore:
    global _store
    if _store is None:
        _store = HistoryStore()
    return _store
