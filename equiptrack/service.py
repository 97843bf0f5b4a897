import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from equiptrack.analytics import AnalyticsAggregator
from equiptrack.audit import AuditTrail
from equiptrack.events import (
    BaseInventoryEvent,
    EventRecord,
    IssuanceReturned,
    ItemCreated,
    ItemDeleted,
    ItemEdited,
    ItemIssued,
)
from equiptrack.exceptions import (
    InsufficientStock,
    InvalidDates,
    InvalidInput,
    InvalidQuantity,
    InventoryError,
    MissingReturnDate,
)
from equiptrack.ledger.projector import LedgerProjector, ProjectionResult
from equiptrack.ledger.sequences import IdSequence
from equiptrack.log.interfaces import EventLog
from equiptrack.models import (
    ActivityEntry,
    AnalyticsSnapshot,
    AuditAction,
    AuditEntry,
    IssuanceFilter,
    IssuanceRecord,
    IssuanceStatus,
    IssueRequest,
    Item,
    ItemFields,
    OverdueIssuance,
    ReconcileOutcome,
    ReconcileRequest,
    ReturnRequest,
)
from equiptrack.reconciliation import ReconciliationEngine
from equiptrack.runtime.locks import KeyedLocks
from equiptrack.settings import Settings, settings as default_settings
from equiptrack.utils.dates import ensure_utc
from equiptrack.utils.logging import get_logger
from equiptrack.utils.metrics import MetricsManager

logger = get_logger("InventoryService")

Clock = Callable[[], datetime]
M = TypeVar("M", bound=BaseModel)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_request(model: Type[M], data: Union[M, Dict[str, Any]]) -> M:
    """Validate a request body against its schema before anything is attempted."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidInput(
            f"Invalid {model.__name__}: {e.error_count()} error(s)",
            errors=e.errors(include_url=False, include_context=False),
        ) from e


class InventoryService:
    """
    Inventory ledger use cases over an EventLog.

    Write discipline:
    - every mutation holds the per-item lock for its whole read-check-append-update
      sequence, so two operations on one item never act on a stale count
    - the append and the projection update happen under a single commit lock,
      so the projection and the audit trail are applied in log order
    - input is validated before anything is appended; a rejected operation
      leaves log, projection and audit trail untouched

    Attributes:
        log (EventLog): Source of truth.
        projector (LedgerProjector): Derived item and issuance state.
        audit (AuditTrail): One entry per applied event.
        reconciliation (ReconciliationEngine): Physical count checks.
    """
    def __init__(self,
                 log: EventLog,
                 clock: Optional[Clock] = None,
                 config: Optional[Settings] = None):
        self.log = log
        self.config = config or default_settings
        self._clock = clock or utc_now
        self.projector = LedgerProjector()
        self.audit = AuditTrail()
        self.metrics = MetricsManager()
        self._item_ids = IdSequence("item")
        self._issuance_ids = IdSequence("issuance")
        self._locks = KeyedLocks()
        self._commit_lock = asyncio.Lock()
        self.reconciliation = ReconciliationEngine(self.projector, self.log, self._commit)

    @classmethod
    async def open(cls, log: EventLog, **kwargs: Any) -> "InventoryService":
        service = cls(log, **kwargs)
        await service.start()
        return service

    async def start(self) -> None:
        """Open the log and rebuild projection and audit trail from it."""
        await self.log.start()
        await self.replay()

    async def stop(self) -> None:
        await self.log.stop()

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    # --- Write path ---

    async def replay(self) -> int:
        applied = 0
        async for record in self.log.read():
            self._apply(record)
            applied += 1
        logger.info(
            f"Replayed {applied} events: {len(self.projector.items())} items, "
            f"{len(self.projector.issuances())} issuances"
        )
        return applied

    def _apply(self, record: EventRecord) -> Tuple[ProjectionResult, AuditEntry]:
        result = self.projector.apply(record)
        self._item_ids.observe(record.item_id)
        if result.issuance is not None:
            self._issuance_ids.observe(result.issuance.issuance_id)
        return result, self.audit.record(result)

    async def _commit(self, event: BaseInventoryEvent, actor_id: str) -> Tuple[ProjectionResult, AuditEntry]:
        """Append `event` and project it. Caller must hold the lock for event.item_id."""
        self.projector.validate(event)
        record = EventRecord.new(event, actor_id=actor_id, timestamp=self.now())

        async with self._commit_lock:
            sequenced = await self.log.append(record)
            result, entry = self._apply(sequenced)

        self.metrics.event_appended(sequenced.kind)
        logger.info(
            f"Committed {sequenced.kind} for item {sequenced.item_id} at seq {sequenced.seq}",
            extra={"ledger": {"seq": sequenced.seq, "kind": sequenced.kind,
                              "item_id": sequenced.item_id, "actor_id": actor_id}},
        )
        return result, entry

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        try:
            yield
        except InventoryError as e:
            self.metrics.operation_rejected(e.code)
            logger.warning(f"{name} rejected: {e.message}", extra={"ledger": e.to_dict()})
            raise

    # --- Items ---

    async def create_item(self, fields: Union[ItemFields, Dict[str, Any]], actor_id: str) -> Item:
        with self._operation("create_item"):
            fields = parse_request(ItemFields, fields)
            if fields.item_id is not None:
                # Reserve the explicit id before yielding so concurrent auto ids skip it
                item_id = fields.item_id
                self._item_ids.observe(item_id)
            else:
                item_id = self._item_ids.next()
                while self.projector.has_item(item_id):
                    item_id = self._item_ids.next()
            async with self._locks.hold(item_id):
                result, _ = await self._commit(
                    ItemCreated(
                        item_id=item_id,
                        name=fields.name,
                        category=fields.category,
                        sub_category=fields.sub_category,
                        count=fields.count,
                    ),
                    actor_id,
                )
            return result.item

    async def edit_item(self, item_id: int, fields: Union[ItemFields, Dict[str, Any]], actor_id: str) -> Item:
        """Replace name, category and sub-category. The count is never changed by an edit."""
        with self._operation("edit_item"):
            fields = parse_request(ItemFields, fields)
            async with self._locks.hold(item_id):
                result, _ = await self._commit(
                    ItemEdited(
                        item_id=item_id,
                        name=fields.name,
                        category=fields.category,
                        sub_category=fields.sub_category,
                    ),
                    actor_id,
                )
            return result.item

    async def delete_item(self, item_id: int, actor_id: str) -> None:
        """Tombstone an item. Its history stays in the log, audit trail and analytics."""
        with self._operation("delete_item"):
            async with self._locks.hold(item_id):
                await self._commit(ItemDeleted(item_id=item_id), actor_id)

    # --- Issuance ---

    def _check_issue(self, request: IssueRequest) -> Tuple[datetime, Optional[datetime]]:
        if request.quantity <= 0:
            raise InvalidQuantity(request.quantity)

        issue_date = ensure_utc(request.issue_date) if request.issue_date else self.now()
        return_date = None
        if request.status == IssuanceStatus.TEMPORARY:
            if request.return_date is None:
                raise MissingReturnDate()
            return_date = ensure_utc(request.return_date)
            if return_date < issue_date:
                raise InvalidDates(
                    "Return date precedes issue date",
                    issue_date=issue_date,
                    return_date=return_date,
                )
        return issue_date, return_date

    async def issue(self, request: Union[IssueRequest, Dict[str, Any]], actor_id: str) -> IssuanceRecord:
        with self._operation("issue"):
            request = parse_request(IssueRequest, request)
            issue_date, return_date = self._check_issue(request)

            async with self._locks.hold(request.item_id):
                item = self.projector.get_item(request.item_id)
                if request.quantity > item.count:
                    raise InsufficientStock(item.item_id, request.quantity, item.count)

                result, _ = await self._commit(
                    ItemIssued(
                        item_id=request.item_id,
                        issuance_id=self._issuance_ids.next(),
                        issuer_id=request.issuer_id,
                        authorized_by_id=request.authorized_by_id,
                        quantity=request.quantity,
                        status=request.status,
                        issue_date=issue_date,
                        return_date=return_date,
                        recipient_department=request.recipient_department,
                    ),
                    actor_id,
                )
            return result.issuance

    async def return_issuance(self,
                              issuance_id: int,
                              actor_id: str,
                              returned_date: Optional[datetime] = None) -> IssuanceRecord:
        with self._operation("return_issuance"):
            request = parse_request(ReturnRequest, {"issuance_id": issuance_id, "returned_date": returned_date})
            item_id = self.projector.get_issuance(request.issuance_id).item_id
            returned_date = ensure_utc(request.returned_date) if request.returned_date else self.now()

            async with self._locks.hold(item_id):
                result, _ = await self._commit(
                    IssuanceReturned(item_id=item_id, issuance_id=request.issuance_id, returned_date=returned_date),
                    actor_id,
                )
            return result.issuance

    # --- Reconciliation ---

    async def reconcile_count(self,
                              item_id: int,
                              observed: int,
                              actor_id: str,
                              reason: Optional[str] = None) -> ReconcileOutcome:
        with self._operation("reconcile_count"):
            request = parse_request(ReconcileRequest, {"item_id": item_id, "observed": observed, "reason": reason})
            async with self._locks.hold(request.item_id):
                return await self.reconciliation.reconcile(
                    request.item_id, request.observed, actor_id, request.reason)

    async def recent_activity(self, item_id: int, limit: Optional[int] = None) -> List[ActivityEntry]:
        return await self.reconciliation.recent_activity(item_id, limit or self.config.RECENT_ACTIVITY_LIMIT)

    # --- Queries ---

    def list_items(self, include_deleted: bool = False, search: Optional[str] = None) -> List[Item]:
        items = self.projector.items(include_deleted=include_deleted)
        if search:
            needle = search.lower()
            items = [i for i in items if needle in i.name.lower() or needle in i.category.lower()]
        return items

    def get_item(self, item_id: int, include_deleted: bool = False) -> Item:
        return self.projector.get_item(item_id, include_deleted=include_deleted)

    def get_issuance(self, issuance_id: int) -> IssuanceRecord:
        return self.projector.get_issuance(issuance_id)

    def list_issuances(self, filters: Optional[IssuanceFilter] = None, **criteria: Any) -> List[IssuanceRecord]:
        if filters is None:
            filters = parse_request(IssuanceFilter, criteria)
        return [i for i in self.projector.issuances() if filters.matches(i)]

    def list_audits(self, item_id: Optional[int] = None, action: Optional[AuditAction] = None) -> List[AuditEntry]:
        return self.audit.entries(item_id=item_id, action=action)

    async def analytics(self) -> AnalyticsAggregator:
        return AnalyticsAggregator(await self.log.read_all(), self.projector)

    async def get_analytics(self, now: Optional[datetime] = None) -> AnalyticsSnapshot:
        now = ensure_utc(now) if now else self.now()
        aggregator = await self.analytics()
        return AnalyticsSnapshot(
            generated_at=now,
            item_frequency=aggregator.item_frequency(self.config.TOP_ITEMS),
            average_hold_durations=aggregator.average_hold_durations(),
            discrepancy_rate=aggregator.discrepancy_rate(now, self.config.DISCREPANCY_WINDOW_DAYS),
            discrepancy_rate_long=aggregator.discrepancy_rate(now, 180),
            overdue=aggregator.overdue(now),
        )

    def overdue(self, now: Optional[datetime] = None) -> List[OverdueIssuance]:
        """Open temporary issuances past their return date. Intended for the external notifier."""
        now = ensure_utc(now) if now else self.now()
        return AnalyticsAggregator([], self.projector).overdue(now)

    async def rebuild_snapshot(self) -> Dict[str, Any]:
        """Fold the whole log into a fresh projector and return its snapshot."""
        projector = LedgerProjector()
        async for record in self.log.read():
            projector.apply(record)
        return projector.snapshot()
