from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from equiptrack.events import (
    CountAdjusted,
    EventRecord,
    InventoryEvent,
    IssuanceReturned,
    ItemCreated,
    ItemDeleted,
    ItemEdited,
    ItemIssued,
)
from equiptrack.exceptions import (
    AlreadyReturned,
    Conflict,
    DuplicateItem,
    InsufficientStock,
    InvalidDates,
    IssuanceNotFound,
    ItemNotFound,
    LogCorruption,
)
from equiptrack.models import IssuanceRecord, Item
from equiptrack.utils.dates import ensure_utc


@dataclass
class ProjectionResult:
    """Outcome of applying one event: the item before and after, plus the touched issuance."""
    record: EventRecord
    item: Item
    previous: Optional[Item] = None
    issuance: Optional[IssuanceRecord] = None

    @property
    def previous_count(self) -> Optional[int]:
        return self.previous.count if self.previous is not None else None


class LedgerProjector:
    """
    Folds the event log into current per-item state and issuance records.

    The projection is a pure function of the applied records: replaying the
    same records from an empty projector always yields identical state.
    `validate` checks an event against current state without mutating it;
    `apply` validates and then mutates, so a rejected event leaves no trace.
    """
    def __init__(self):
        self._items: Dict[int, Item] = {}
        self._issuances: Dict[int, IssuanceRecord] = {}
        self._last_seq = 0

    @property
    def last_seq(self) -> int:
        return self._last_seq

    # --- Queries ---

    def has_item(self, item_id: int) -> bool:
        """True if the id was ever created, tombstoned or not."""
        return item_id in self._items

    def get_item(self, item_id: int, include_deleted: bool = False) -> Item:
        item = self._items.get(item_id)
        if item is None or (item.deleted and not include_deleted):
            raise ItemNotFound(item_id)
        return item.model_copy()

    def items(self, include_deleted: bool = False) -> List[Item]:
        return [
            item.model_copy()
            for _, item in sorted(self._items.items())
            if include_deleted or not item.deleted
        ]

    def expected_count(self, item_id: int) -> int:
        return self._live_item(item_id).count

    def get_issuance(self, issuance_id: int) -> IssuanceRecord:
        issuance = self._issuances.get(issuance_id)
        if issuance is None:
            raise IssuanceNotFound(issuance_id)
        return issuance.model_copy()

    def issuances(self) -> List[IssuanceRecord]:
        return [issuance.model_copy() for _, issuance in sorted(self._issuances.items())]

    def item_name(self, item_id: int) -> str:
        item = self._items.get(item_id)
        return item.name if item is not None else f"Item {item_id}"

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data dump of the full projection, used to compare replays."""
        return {
            "last_seq": self._last_seq,
            "items": [item.model_dump(mode="json") for _, item in sorted(self._items.items())],
            "issuances": [i.model_dump(mode="json") for _, i in sorted(self._issuances.items())],
        }

    # --- Validation ---

    def _live_item(self, item_id: int) -> Item:
        item = self._items.get(item_id)
        if item is None or item.deleted:
            raise ItemNotFound(item_id)
        return item

    def _open_issuance(self, event: IssuanceReturned) -> IssuanceRecord:
        issuance = self._issuances.get(event.issuance_id)
        if issuance is None or issuance.item_id != event.item_id:
            raise IssuanceNotFound(event.issuance_id)
        if not issuance.is_open:
            raise AlreadyReturned(event.issuance_id, issuance.returned_date)
        return issuance

    def validate(self, event: InventoryEvent) -> None:
        """Raise the domain error `event` would fail with; never mutates."""
        if isinstance(event, ItemCreated):
            if self.has_item(event.item_id):
                raise DuplicateItem(event.item_id)

        elif isinstance(event, (ItemEdited, ItemDeleted, CountAdjusted)):
            self._live_item(event.item_id)

        elif isinstance(event, ItemIssued):
            item = self._live_item(event.item_id)
            if event.issuance_id in self._issuances:
                raise Conflict(f"Issuance {event.issuance_id} already exists", issuance_id=event.issuance_id)
            if event.quantity > item.count:
                raise InsufficientStock(event.item_id, event.quantity, item.count)

        elif isinstance(event, IssuanceReturned):
            issuance = self._open_issuance(event)
            if ensure_utc(event.returned_date) < ensure_utc(issuance.issue_date):
                raise InvalidDates(
                    "Returned date precedes issue date",
                    issue_date=issuance.issue_date,
                    returned_date=event.returned_date,
                )

    # --- Mutation ---

    def apply(self, record: EventRecord) -> ProjectionResult:
        if record.seq is not None:
            if record.seq <= self._last_seq:
                raise LogCorruption(
                    f"Non-increasing sequence: {record.seq} after {self._last_seq}",
                    seq=record.seq,
                    last_seq=self._last_seq,
                )

        event = record.event
        self.validate(event)
        result = self._dispatch(record, event)

        if record.seq is not None:
            self._last_seq = record.seq
        return result

    def _dispatch(self, record: EventRecord, event: InventoryEvent) -> ProjectionResult:
        now = record.timestamp

        if isinstance(event, ItemCreated):
            item = Item(
                item_id=event.item_id,
                name=event.name,
                category=event.category,
                sub_category=event.sub_category,
                count=event.count,
                last_updated=now,
            )
            self._items[item.item_id] = item
            return ProjectionResult(record=record, item=item.model_copy())

        previous = self._items[event.item_id]
        issuance = None

        if isinstance(event, ItemEdited):
            updated = previous.model_copy(update={
                "name": event.name,
                "category": event.category,
                "sub_category": event.sub_category,
                "last_updated": now,
            })

        elif isinstance(event, ItemDeleted):
            updated = previous.model_copy(update={"deleted": True, "last_updated": now})

        elif isinstance(event, ItemIssued):
            updated = previous.model_copy(update={
                "count": previous.count - event.quantity,
                "last_updated": now,
            })
            issuance = IssuanceRecord(
                issuance_id=event.issuance_id,
                item_id=event.item_id,
                issuer_id=event.issuer_id,
                authorized_by_id=event.authorized_by_id,
                quantity=event.quantity,
                status=event.status,
                issue_date=event.issue_date,
                return_date=event.return_date,
                recipient_department=event.recipient_department,
            )
            self._issuances[issuance.issuance_id] = issuance

        elif isinstance(event, IssuanceReturned):
            opened = self._issuances[event.issuance_id]
            updated = previous.model_copy(update={
                "count": previous.count + opened.quantity,
                "last_updated": now,
            })
            issuance = opened.model_copy(update={"returned_date": event.returned_date})
            self._issuances[issuance.issuance_id] = issuance

        elif isinstance(event, CountAdjusted):
            updated = previous.model_copy(update={"count": event.new_count, "last_updated": now})

        else:
            raise LogCorruption(f"Unknown event kind {record.kind}", kind=record.kind)

        self._items[updated.item_id] = updated
        return ProjectionResult(
            record=record,
            item=updated.model_copy(),
            previous=previous.model_copy(),
            issuance=issuance.model_copy() if issuance is not None else None,
        )
