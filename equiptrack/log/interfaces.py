from abc import ABC, abstractmethod
from typing import AsyncIterator, List

from equiptrack.events import EventRecord


class EventLog(ABC):
    """
    Abstract interface for the append-only ledger event log.

    Implementations assign strictly increasing sequence numbers starting at 1
    and must never expose a partially appended record to readers.
    """

    async def start(self) -> None:
        """Open underlying resources (files, connections)."""

    async def stop(self) -> None:
        """Release underlying resources."""

    @abstractmethod
    async def append(self, record: EventRecord) -> EventRecord:
        """Append a record and return it stamped with its sequence number."""
        pass

    @abstractmethod
    def read(self, from_seq: int = 1) -> AsyncIterator[EventRecord]:
        """
        Yield records in sequence order starting at `from_seq` (inclusive).
        Only records fully appended before the call are guaranteed to be seen.
        """
        pass

    @abstractmethod
    async def high_watermark(self) -> int:
        """Return the sequence number of the last appended record (0 when empty)."""
        pass

    async def read_all(self, from_seq: int = 1) -> List[EventRecord]:
        return [record async for record in self.read(from_seq)]
