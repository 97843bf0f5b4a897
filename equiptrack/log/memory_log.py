import asyncio
from typing import AsyncIterator, List

from equiptrack.events import EventRecord
from equiptrack.log.interfaces import EventLog


class MemoryEventLog(EventLog):
    """
    In-memory implementation of the EventLog for tests and ephemeral use.
    Not persistent across restarts.
    """
    def __init__(self):
        self._records: List[EventRecord] = []
        self._lock = asyncio.Lock()

    async def append(self, record: EventRecord) -> EventRecord:
        async with self._lock:
            sequenced = record.sequenced(len(self._records) + 1)
            self._records.append(sequenced)
            return sequenced

    async def read(self, from_seq: int = 1) -> AsyncIterator[EventRecord]:
        # Snapshot the list so concurrent appends never show up mid-iteration
        snapshot = self._records[max(from_seq, 1) - 1:]
        for record in snapshot:
            yield record

    async def high_watermark(self) -> int:
        return len(self._records)
