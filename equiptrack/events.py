"""
Inventory events.

Every change to inventory state is one of the payload variants below, wrapped
in an `EventRecord` envelope that carries ordering (seq), attribution
(actor_id) and the wall-clock timestamp. Payloads and envelopes are frozen:
once appended to a log they are never modified.
"""
import uuid
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from equiptrack.models import IssuanceStatus


class BaseInventoryEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: int


class ItemCreated(BaseInventoryEvent):
    kind: Literal["item_created"] = "item_created"
    name: str
    category: str
    sub_category: Optional[str] = None
    count: int = Field(ge=0)


class ItemEdited(BaseInventoryEvent):
    kind: Literal["item_edited"] = "item_edited"
    name: str
    category: str
    sub_category: Optional[str] = None


class ItemDeleted(BaseInventoryEvent):
    kind: Literal["item_deleted"] = "item_deleted"


class ItemIssued(BaseInventoryEvent):
    kind: Literal["item_issued"] = "item_issued"
    issuance_id: int
    issuer_id: str
    authorized_by_id: str
    quantity: int = Field(gt=0)
    status: IssuanceStatus
    issue_date: datetime
    return_date: Optional[datetime] = None
    recipient_department: str


class IssuanceReturned(BaseInventoryEvent):
    """Closes an issuance. item_id is denormalized so the record can be keyed by item."""
    kind: Literal["issuance_returned"] = "issuance_returned"
    issuance_id: int
    returned_date: datetime


class CountAdjusted(BaseInventoryEvent):
    """Hard update of an item's count, the only event that can set an arbitrary count."""
    kind: Literal["count_adjusted"] = "count_adjusted"
    new_count: int = Field(ge=0)
    reason: Optional[str] = None


InventoryEvent = Annotated[
    Union[
        ItemCreated,
        ItemEdited,
        ItemDeleted,
        ItemIssued,
        IssuanceReturned,
        CountAdjusted,
    ],
    Field(discriminator="kind"),
]


class EventRecord(BaseModel):
    """
    Envelope of an event in the ledger log.
    seq is None until the log assigns it on append.
    """
    model_config = ConfigDict(frozen=True)

    seq: Optional[int] = None
    event_id: str
    key: str
    actor_id: str
    timestamp: datetime
    event: InventoryEvent

    @property
    def kind(self) -> str:
        return self.event.kind

    @property
    def item_id(self) -> int:
        return self.event.item_id

    @classmethod
    def new(cls, event: BaseInventoryEvent, actor_id: str, timestamp: datetime) -> "EventRecord":
        return cls(
            event_id=str(uuid.uuid4()),
            key=str(event.item_id),
            actor_id=actor_id,
            timestamp=timestamp,
            event=event,
        )

    def sequenced(self, seq: int) -> "EventRecord":
        return self.model_copy(update={"seq": seq})
