import asyncio
import re
import unittest
from datetime import datetime, timezone

from equiptrack.events import EventRecord
from equiptrack.exceptions import InsufficientStock
from equiptrack.log.memory_log import MemoryEventLog
from equiptrack.models import AuditAction, IssuanceStatus, IssueRequest, ItemFields
from equiptrack.runtime.locks import KeyedLocks
from equiptrack.service import InventoryService

STOCK_TRANSITION = re.compile(r"stock (\d+) -> (\d+)")


class YieldingLog(MemoryEventLog):
    """Memory log that yields to the event loop on every append, like real I/O would."""
    async def append(self, record: EventRecord) -> EventRecord:
        await asyncio.sleep(0)
        return await super().append(record)


def permanent(item_id: int, quantity: int) -> IssueRequest:
    return IssueRequest(
        item_id=item_id,
        issuer_id="issuer",
        authorized_by_id="manager",
        quantity=quantity,
        status=IssuanceStatus.PERMANENT,
        issue_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
        recipient_department="Operations",
    )


class TestConcurrentIssuance(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.log = YieldingLog()
        self.service = await InventoryService.open(self.log)

    async def test_concurrent_issues_exhaust_stock_without_lost_updates(self):
        quantities = list(range(1, 11))
        item = await self.service.create_item(
            ItemFields(name="Dell Laptop", category="Laptops", count=sum(quantities)), actor_id="admin")

        results = await asyncio.gather(*[
            self.service.issue(permanent(item.item_id, q), actor_id=f"issuer-{q}") for q in quantities
        ])

        self.assertEqual(len(results), len(quantities))
        self.assertEqual(self.service.get_item(item.item_id).count, 0)

        issues = self.service.list_audits(action=AuditAction.ISSUE)
        observed = [int(STOCK_TRANSITION.search(a.detail).group(1)) for a in issues]
        # Every issuance saw a distinct pre-decrement count
        self.assertEqual(len(set(observed)), len(quantities))
        for entry in issues:
            before, after = map(int, STOCK_TRANSITION.search(entry.detail).groups())
            self.assertGreaterEqual(after, 0)
            self.assertLess(after, before)

        self.assertEqual(await self.service.rebuild_snapshot(), self.service.projector.snapshot())

    async def test_oversubscription_rejects_exactly_the_excess(self):
        item = await self.service.create_item(
            ItemFields(name="HDMI Cable", category="Accessories", count=5), actor_id="admin")

        results = await asyncio.gather(
            *[self.service.issue(permanent(item.item_id, 1), actor_id="issuer") for _ in range(8)],
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, InsufficientStock)]
        self.assertEqual(len(rejected), 3)
        self.assertEqual(len(results) - len(rejected), 5)
        self.assertEqual(self.service.get_item(item.item_id).count, 0)
        self.assertEqual(len(self.service.list_issuances()), 5)

    async def test_issue_and_return_on_same_item_interleave_safely(self):
        item = await self.service.create_item(
            ItemFields(name="Pendrive", category="Accessories", count=10), actor_id="admin")
        opened = [await self.service.issue(permanent(item.item_id, 2), actor_id="issuer") for _ in range(3)]

        await asyncio.gather(
            *[self.service.return_issuance(i.issuance_id, actor_id="issuer") for i in opened],
            *[self.service.issue(permanent(item.item_id, 1), actor_id="issuer") for _ in range(4)],
        )

        self.assertEqual(self.service.get_item(item.item_id).count, 10 - 4)
        self.assertEqual(await self.service.rebuild_snapshot(), self.service.projector.snapshot())

    async def test_auto_ids_skip_explicit_ids_being_committed(self):
        explicit, automatic = await asyncio.gather(
            self.service.create_item(ItemFields(item_id=1, name="Mouse", category="Accessories"), actor_id="a"),
            self.service.create_item(ItemFields(name="Keyboard", category="Accessories"), actor_id="b"),
        )

        self.assertEqual(explicit.item_id, 1)
        self.assertEqual(automatic.item_id, 2)
        self.assertEqual([i.name for i in self.service.list_items()], ["Mouse", "Keyboard"])

    async def test_different_items_proceed_independently(self):
        items = [
            await self.service.create_item(ItemFields(name=f"Item {n}", category="Misc", count=3), actor_id="a")
            for n in range(5)
        ]

        await asyncio.gather(*[
            self.service.issue(permanent(i.item_id, 1), actor_id="issuer") for i in items for _ in range(3)
        ])

        self.assertTrue(all(i.count == 0 for i in self.service.list_items()))
        seqs = [r.seq async for r in self.log.read()]
        self.assertEqual(seqs, list(range(1, len(seqs) + 1)))


class TestKeyedLocks(unittest.IsolatedAsyncioTestCase):
    async def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        order = []

        async def worker(name: str):
            async with locks.hold("item-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        self.assertEqual(order, ["a-start", "a-end", "b-start", "b-end"])
        self.assertEqual(len(locks), 0)

    async def test_different_keys_overlap(self):
        locks = KeyedLocks()
        inside = asyncio.Event()

        async def first():
            async with locks.hold(1):
                inside.set()
                await asyncio.sleep(0.05)

        async def second():
            await inside.wait()
            async with locks.hold(2):
                return locks.is_locked(1)

        _, overlapped = await asyncio.wait_for(asyncio.gather(first(), second()), timeout=1.0)
        self.assertTrue(overlapped)


if __name__ == '__main__':
    unittest.main()
