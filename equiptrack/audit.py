from typing import List, Optional

from equiptrack.events import (
    CountAdjusted,
    IssuanceReturned,
    ItemCreated,
    ItemDeleted,
    ItemEdited,
    ItemIssued,
)
from equiptrack.ledger.projector import ProjectionResult
from equiptrack.ledger.sequences import IdSequence
from equiptrack.models import AuditAction, AuditEntry


def describe(result: ProjectionResult) -> str:
    """Human-readable detail line for an applied event."""
    event = result.record.event
    item = result.item

    if isinstance(event, ItemCreated):
        return f"Created new item: {item.name} (count {item.count})"
    if isinstance(event, ItemEdited):
        return f"Updated item: {item.name}"
    if isinstance(event, ItemDeleted):
        return f"Deleted item: {item.name}"
    if isinstance(event, ItemIssued):
        return (
            f"Issued {event.quantity} {item.name}(s) to {event.recipient_department} "
            f"as {event.status.value} (stock {result.previous_count} -> {item.count})"
        )
    if isinstance(event, IssuanceReturned):
        return (
            f"Returned {result.issuance.quantity} {item.name}(s) from issuance {event.issuance_id} "
            f"(stock {result.previous_count} -> {item.count})"
        )
    if isinstance(event, CountAdjusted):
        detail = f"Count updated from {result.previous_count} to {event.new_count}"
        if event.reason:
            detail = f"{detail}. Reason: {event.reason}"
        return detail
    raise ValueError(f"No audit description for {result.record.kind}")


ACTIONS = {
    "item_created": AuditAction.CREATE,
    "item_edited": AuditAction.UPDATE,
    "item_deleted": AuditAction.DELETE,
    "item_issued": AuditAction.ISSUE,
    "issuance_returned": AuditAction.RETURN,
    "count_adjusted": AuditAction.ADJUST,
}


class AuditTrail:
    """
    Append-only list of audit entries, one per applied event.

    Entries are derived from (event, projection result), so replaying the log
    rebuilds the same trail with the same ids.
    """
    def __init__(self):
        self._entries: List[AuditEntry] = []
        self._ids = IdSequence("audit")

    def record(self, result: ProjectionResult) -> AuditEntry:
        record = result.record
        entry = AuditEntry(
            audit_id=self._ids.next(),
            actor_id=record.actor_id,
            action=ACTIONS[record.kind],
            detail=describe(result),
            timestamp=record.timestamp,
            item_id=record.item_id,
            event_seq=record.seq,
        )
        self._entries.append(entry)
        return entry

    def entries(self, item_id: Optional[int] = None, action: Optional[AuditAction] = None) -> List[AuditEntry]:
        return [
            e for e in self._entries
            if (item_id is None or e.item_id == item_id) and (action is None or e.action == action)
        ]

    def __len__(self) -> int:
        return len(self._entries)
