"""Session history of completed try-on generations."""

from collections import deque
from datetime import datetime
from typing import Callable

from ..errors import DuplicateAssetError
from ..models import HistoryRecord
from ..utils.ids import IdFactory, uuid_ids


class HistoryCache:
    """Append-only, newest-first log of try-on results."""

    def __init__(
        self,
        id_factory: IdFactory | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._id_factory = id_factory or uuid_ids()
        self._clock = clock
        self._records: deque[HistoryRecord] = deque()
        self._by_id: dict[str, HistoryRecord] = {}

    def record(self, person_ref: str, clothing_ref: str, result_ref: str) -> HistoryRecord:
        """Create a record stamped no earlier than the current head and prepend it."""
        created_at = self._clock()
        head = self.head
        if head is not None and created_at < head.created_at:
            created_at = head.created_at

        return self.append(HistoryRecord(
            id=self._id_factory("history"),
            person_image_ref=person_ref,
            clothing_image_ref=clothing_ref,
            result_image_ref=result_ref,
            created_at=created_at,
        ))

    def append(self, record: HistoryRecord) -> HistoryRecord:
        """Prepend an existing record.

        Raises:
            DuplicateAssetError: The record id is already in the history
            ValueError: The record is older than the current head
        """
        if record.id in self._by_id:
            raise DuplicateAssetError(f"History record already present: {record.id}")
        head = self.head
        if head is not None and record.created_at < head.created_at:
            raise ValueError("History records must be appended in chronological order")

        self._records.appendleft(record)
        self._by_id[record.id] = record
        return record

    @property
    def head(self) -> HistoryRecord | None:
        return self._records[0] if self._records else None

    def find_by_id(self, record_id: str) -> HistoryRecord | None:
        return self._by_id.get(record_id)

    def all(self) -> tuple[HistoryRecord, ...]:
        """All records, newest first."""
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)
