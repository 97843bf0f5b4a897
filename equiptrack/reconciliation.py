from typing import Awaitable, Callable, List, Optional, Tuple

from equiptrack.events import CountAdjusted, EventRecord
from equiptrack.exceptions import InvalidCount
from equiptrack.ledger.projector import LedgerProjector, ProjectionResult
from equiptrack.log.interfaces import EventLog
from equiptrack.models import ActivityEntry, AuditEntry, ReconcileOutcome, ReconcileStatus
from equiptrack.utils.logging import get_logger
from equiptrack.utils.metrics import MetricsManager

logger = get_logger("ReconciliationEngine")

Commit = Callable[[CountAdjusted, str], Awaitable[Tuple[ProjectionResult, AuditEntry]]]


def normalize_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    reason = reason.strip()
    return reason or None


class ReconciliationEngine:
    """
    Compares a physically observed count with the projector's expected count.

    - equal counts are accepted silently: nothing is appended
    - a mismatch without a reason is returned as a discrepancy and changes nothing;
      the caller either re-counts or resubmits with a reason
    - a mismatch with a reason forces a CountAdjusted event (hard update)

    Discrepancies are never auto-corrected. The engine only appends through
    `commit`, which the owning service wires to its serialized write path.
    """
    def __init__(self, projector: LedgerProjector, log: EventLog, commit: Commit):
        self.projector = projector
        self.log = log
        self._commit = commit
        self.metrics = MetricsManager()

    async def reconcile(self,
                        item_id: int,
                        observed: int,
                        actor_id: str,
                        reason: Optional[str] = None) -> ReconcileOutcome:
        """Caller must hold the item's lock."""
        if observed < 0:
            raise InvalidCount(observed)

        expected = self.projector.expected_count(item_id)
        item = self.projector.get_item(item_id)
        reason = normalize_reason(reason)

        if observed == expected:
            return ReconcileOutcome(
                status=ReconcileStatus.ACCEPTED,
                item_id=item_id,
                expected=expected,
                observed=observed,
                item=item,
            )

        if reason is None:
            logger.warning(f"Count discrepancy on item {item_id}: expected {expected}, observed {observed}")
            self.metrics.discrepancy_reported()
            return ReconcileOutcome(
                status=ReconcileStatus.DISCREPANCY,
                item_id=item_id,
                expected=expected,
                observed=observed,
                item=item,
            )

        result, audit = await self._commit(
            CountAdjusted(item_id=item_id, new_count=observed, reason=reason),
            actor_id,
        )
        logger.info(f"Hard update on item {item_id}: {expected} -> {observed} ({reason})")
        return ReconcileOutcome(
            status=ReconcileStatus.ADJUSTED,
            item_id=item_id,
            expected=expected,
            observed=observed,
            item=result.item,
            reason=reason,
            event_seq=result.record.seq,
            audit=audit,
        )

    async def recent_activity(self, item_id: int, limit: int = 10) -> List[ActivityEntry]:
        """Most recent issuance and return events for an item, newest first. Read-only."""
        self.projector.get_item(item_id, include_deleted=True)
        key = str(item_id)
        activity: List[ActivityEntry] = []
        async for record in self.log.read():
            if record.key != key or record.kind not in ("item_issued", "issuance_returned"):
                continue
            activity.append(self._to_activity(record))

        activity.reverse()
        return activity[:limit]

    def _to_activity(self, record: EventRecord) -> ActivityEntry:
        event = record.event
        if record.kind == "item_issued":
            quantity = event.quantity
            kind = "issue"
        else:
            quantity = self.projector.get_issuance(event.issuance_id).quantity
            kind = "return"
        return ActivityEntry(
            seq=record.seq,
            kind=kind,
            issuance_id=event.issuance_id,
            item_id=event.item_id,
            quantity=quantity,
            actor_id=record.actor_id,
            timestamp=record.timestamp,
        )
