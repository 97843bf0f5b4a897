import asyncio
import struct
import zlib
from pathlib import Path
from typing import AsyncIterator, List, Tuple

import aiofiles

from equiptrack.events import EventRecord
from equiptrack.exceptions import LogCorruption
from equiptrack.log.codec import decode_record, encode_record
from equiptrack.log.interfaces import EventLog
from equiptrack.utils.logging import get_logger

logger = get_logger("LocalEventLog")

HEADER = struct.Struct(">II")


class LocalEventLog(EventLog):
    """
    File-based implementation of the EventLog.

    Features:
    - Append-only segment files, rotated by size
    - Binary MessagePack format with CRC32 checksums
    - Startup recovery & safe truncation of a torn tail

    Format:
    [Length (4B Big Endian)][CRC32 (4B Big Endian)][Payload (MsgPack)]

    Segments are named `segment_{first_seq}.bin`.
    """

    def __init__(self, data_dir: str, max_segment_size: int = 64 * 1024 * 1024):
        self._data_dir = Path(data_dir)
        self._max_segment_size = max_segment_size
        self._lock = asyncio.Lock()
        self._next_seq = 1

        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._recover_sync()

    def _get_segment_path(self, start_seq: int) -> Path:
        return self._data_dir / f"segment_{start_seq}.bin"

    def _list_segments(self) -> List[Tuple[int, Path]]:
        """
        Returns sorted list of (start_seq, path).
        """
        segments = []
        for p in self._data_dir.glob("segment_*.bin"):
            try:
                start_seq = int(p.stem.split('_')[1])
            except (IndexError, ValueError):
                logger.warning(f"Ignoring invalid segment file: {p.name}")
                continue
            segments.append((start_seq, p))

        segments.sort(key=lambda x: x[0])
        return segments

    def _recover_sync(self) -> None:
        """
        Synchronous startup recovery.
        Scans the active segment to find the high water mark and truncates a corrupt tail.
        Archived segments (all but last) are immutable and assumed valid.
        """
        segments = self._list_segments()

        if not segments:
            self._get_segment_path(1).touch()
            self._next_seq = 1
            return

        last_start_seq, last_path = segments[-1]
        valid_records = 0

        with open(last_path, 'r+b') as f:
            while True:
                pos = f.tell()
                header = f.read(HEADER.size)
                if len(header) < HEADER.size:
                    if header:
                        logger.warning(f"Truncating partial header at end of {last_path.name} (offset {pos})")
                        f.seek(pos)
                        f.truncate()
                    break

                length, stored_crc = HEADER.unpack(header)
                payload = f.read(length)
                if len(payload) < length:
                    logger.warning(f"Truncating partial payload at end of {last_path.name} (offset {pos})")
                    f.seek(pos)
                    f.truncate()
                    break

                if zlib.crc32(payload) & 0xffffffff != stored_crc:
                    logger.error(f"CRC mismatch at offset {pos} in {last_path.name}. Truncating.")
                    f.seek(pos)
                    f.truncate()
                    break

                valid_records += 1

        self._next_seq = last_start_seq + valid_records
        logger.info(f"Event log recovered from {self._data_dir}. Next seq: {self._next_seq}")

    def _active_segment_path(self) -> Path:
        segments = self._list_segments()
        if segments:
            return segments[-1][1]
        return self._get_segment_path(1)

    async def high_watermark(self) -> int:
        return self._next_seq - 1

    async def append(self, record: EventRecord) -> EventRecord:
        async with self._lock:
            active_path = self._active_segment_path()

            # Rotate BEFORE writing if the active segment is full
            if active_path.exists() and active_path.stat().st_size >= self._max_segment_size:
                active_path = self._get_segment_path(self._next_seq)
                active_path.touch()
                logger.info(f"Rotated event log to {active_path.name}")

            sequenced = record.sequenced(self._next_seq)
            payload = encode_record(sequenced)
            crc = zlib.crc32(payload) & 0xffffffff

            # Single write per frame so readers see either nothing or a whole frame
            frame = HEADER.pack(len(payload), crc) + payload
            async with aiofiles.open(active_path, mode='ab') as f:
                await f.write(frame)
                await f.flush()

            self._next_seq += 1
            return sequenced

    async def read(self, from_seq: int = 1) -> AsyncIterator[EventRecord]:
        # Bound the read to what was committed when the call started
        last_seq = self._next_seq - 1
        segments = self._list_segments()

        for idx, (start_seq, path) in enumerate(segments):
            next_start = segments[idx + 1][0] if idx + 1 < len(segments) else None
            if next_start is not None and from_seq >= next_start:
                continue

            current_seq = start_seq
            async with aiofiles.open(path, mode='rb') as f:
                while current_seq <= last_seq:
                    header = await f.read(HEADER.size)
                    if len(header) < HEADER.size:
                        break

                    length, stored_crc = HEADER.unpack(header)
                    payload = await f.read(length)
                    if len(payload) < length:
                        break

                    if current_seq >= from_seq:
                        if zlib.crc32(payload) & 0xffffffff != stored_crc:
                            logger.error(f"CRC mismatch reading {path.name} at seq {current_seq}")
                            raise LogCorruption(f"CRC mismatch at seq {current_seq}", seq=current_seq)

                        record = decode_record(payload)
                        if record.seq != current_seq:
                            raise LogCorruption(
                                f"Out of order record in {path.name}: expected seq {current_seq}, found {record.seq}",
                                expected=current_seq,
                                found=record.seq,
                            )
                        yield record

                    current_seq += 1
