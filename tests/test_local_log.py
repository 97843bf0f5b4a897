import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from equiptrack.events import EventRecord, ItemCreated, CountAdjusted
from equiptrack.exceptions import LogCorruption
from equiptrack.log.local_log import LocalEventLog
from equiptrack.models import IssuanceStatus, IssueRequest, ItemFields
from equiptrack.service import InventoryService

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def created(item_id: int, count: int = 5) -> EventRecord:
    return EventRecord.new(
        ItemCreated(item_id=item_id, name=f"Item {item_id}", category="Misc", count=count),
        actor_id="tester",
        timestamp=T0 + timedelta(seconds=item_id),
    )


class TestLocalEventLog(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.test_dir = tempfile.mkdtemp(prefix="equiptrack-log-")
        self.log = LocalEventLog(self.test_dir)

    async def asyncTearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    async def test_append_assigns_increasing_seq(self):
        first = await self.log.append(created(1))
        second = await self.log.append(created(2))

        self.assertEqual((first.seq, second.seq), (1, 2))
        self.assertEqual(await self.log.high_watermark(), 2)

        records = await self.log.read_all()
        self.assertEqual(records, [first, second])
        self.assertEqual([r.seq for r in await self.log.read_all(from_seq=2)], [2])

    async def test_reopen_continues_sequence(self):
        await self.log.append(created(1))
        await self.log.append(created(2))

        reopened = LocalEventLog(self.test_dir)
        self.assertEqual(await reopened.high_watermark(), 2)
        third = await reopened.append(created(3))
        self.assertEqual(third.seq, 3)
        self.assertEqual([r.item_id for r in await reopened.read_all()], [1, 2, 3])

    async def test_torn_tail_is_truncated_on_recovery(self):
        await self.log.append(created(1))
        segment = Path(self.test_dir) / "segment_1.bin"
        size = segment.stat().st_size

        with open(segment, "ab") as f:
            f.write(b"\x00\x00\x01\x00\xde\xad")  # header without payload

        reopened = LocalEventLog(self.test_dir)
        self.assertEqual(segment.stat().st_size, size)
        self.assertEqual(await reopened.high_watermark(), 1)
        self.assertEqual((await reopened.append(created(2))).seq, 2)

    async def test_crc_mismatch_in_tail_is_truncated(self):
        await self.log.append(created(1))
        await self.log.append(created(2))
        segment = Path(self.test_dir) / "segment_1.bin"

        data = bytearray(segment.read_bytes())
        data[-1] ^= 0xFF
        segment.write_bytes(bytes(data))

        reopened = LocalEventLog(self.test_dir)
        self.assertEqual(await reopened.high_watermark(), 1)
        self.assertEqual([r.seq for r in await reopened.read_all()], [1])

    async def test_corrupted_archived_record_raises_on_read(self):
        small = LocalEventLog(self.test_dir, max_segment_size=1)
        await small.append(created(1))
        await small.append(created(2))
        archived = Path(self.test_dir) / "segment_1.bin"

        data = bytearray(archived.read_bytes())
        data[-1] ^= 0xFF
        archived.write_bytes(bytes(data))

        with self.assertRaises(LogCorruption):
            await small.read_all()

    async def test_rotation_preserves_order(self):
        small = LocalEventLog(self.test_dir, max_segment_size=64)
        for item_id in range(1, 6):
            await small.append(created(item_id))

        segments = sorted(Path(self.test_dir).glob("segment_*.bin"))
        self.assertGreater(len(segments), 1)
        self.assertEqual([r.seq for r in await small.read_all()], [1, 2, 3, 4, 5])
        self.assertEqual([r.seq for r in await small.read_all(from_seq=4)], [4, 5])

        reopened = LocalEventLog(self.test_dir, max_segment_size=64)
        self.assertEqual(await reopened.high_watermark(), 5)

    async def test_round_trip_preserves_payload(self):
        record = EventRecord.new(
            CountAdjusted(item_id=4, new_count=12, reason="Annual stocktake"),
            actor_id="auditor",
            timestamp=T0,
        )
        stored = await self.log.append(record)
        [loaded] = await self.log.read_all()
        self.assertEqual(loaded, stored)
        self.assertEqual(loaded.event.reason, "Annual stocktake")
        self.assertEqual(loaded.timestamp, T0)

    async def test_service_replays_from_disk(self):
        service = await InventoryService.open(self.log)
        dock = await service.create_item(
            ItemFields(name="Docking Station", category="Accessories", count=69), actor_id="admin")
        issuance = await service.issue(
            IssueRequest(
                item_id=dock.item_id,
                issuer_id="issuer",
                authorized_by_id="manager",
                quantity=3,
                status=IssuanceStatus.TEMPORARY,
                issue_date=T0,
                return_date=T0 + timedelta(days=5),
                recipient_department="Engineering",
            ),
            actor_id="issuer",
        )
        await service.return_issuance(issuance.issuance_id, actor_id="issuer", returned_date=T0 + timedelta(days=2))

        restarted = await InventoryService.open(LocalEventLog(self.test_dir))
        self.assertEqual(restarted.projector.snapshot(), service.projector.snapshot())
        self.assertEqual(restarted.list_audits(), service.list_audits())
        self.assertEqual(restarted.get_item(dock.item_id).count, 69)


if __name__ == '__main__':
    unittest.main()
