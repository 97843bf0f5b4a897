import asyncio
import os
from typing import AsyncIterator, Optional

import aiosqlite

from equiptrack.events import EventRecord
from equiptrack.log.codec import decode_record, encode_record
from equiptrack.log.interfaces import EventLog
from equiptrack.utils.logging import get_logger

logger = get_logger("SQLiteEventLog")


class SQLiteEventLog(EventLog):
    """
    Persistent event log using SQLite.
    One row per event, keyed by its sequence number; records are stored as MessagePack.
    """
    def __init__(self, path: str, table_name: str = "events"):
        self.path = path
        self.table_name = table_name
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._last_seq = 0

    async def start(self) -> None:
        dirname = os.path.dirname(self.path)
        if dirname and not os.path.exists(dirname):
            os.makedirs(dirname)

        self._db = await aiosqlite.connect(self.path)
        await self._db.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table_name} ("
            "seq INTEGER PRIMARY KEY, event_id TEXT NOT NULL UNIQUE, "
            "item_key TEXT NOT NULL, kind TEXT NOT NULL, record BLOB NOT NULL)"
        )
        await self._db.commit()

        async with self._db.execute(f"SELECT COALESCE(MAX(seq), 0) FROM {self.table_name}") as cursor:
            row = await cursor.fetchone()
            self._last_seq = row[0]
        logger.info(f"Opened SQLite event log at {self.path} (last seq {self._last_seq})")

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _require_db(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Event log not started")
        return self._db

    async def append(self, record: EventRecord) -> EventRecord:
        db = self._require_db()
        async with self._lock:
            sequenced = record.sequenced(self._last_seq + 1)
            await db.execute(
                f"INSERT INTO {self.table_name} (seq, event_id, item_key, kind, record) VALUES (?, ?, ?, ?, ?)",
                (sequenced.seq, sequenced.event_id, sequenced.key, sequenced.kind, encode_record(sequenced)),
            )
            await db.commit()
            self._last_seq = sequenced.seq
            return sequenced

    async def read(self, from_seq: int = 1) -> AsyncIterator[EventRecord]:
        db = self._require_db()
        async with db.execute(
            f"SELECT record FROM {self.table_name} WHERE seq >= ? AND seq <= ? ORDER BY seq",
            (from_seq, self._last_seq),
        ) as cursor:
            async for row in cursor:
                yield decode_record(row[0])

    async def high_watermark(self) -> int:
        return self._last_seq
