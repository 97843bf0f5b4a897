from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from equiptrack.utils.dates import ensure_utc


class IssuanceStatus(str, Enum):
    PERMANENT = "Permanent"
    TEMPORARY = "Temporary"


class IssuanceState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ISSUE = "ISSUE"
    RETURN = "RETURN"
    ADJUST = "ADJUST"


class ReconcileStatus(str, Enum):
    ACCEPTED = "accepted"
    DISCREPANCY = "discrepancy"
    ADJUSTED = "adjusted"


# --- Requests ---

class ItemFields(BaseModel):
    """Mutable descriptive fields of an item, plus the initial count on create."""
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    sub_category: Optional[str] = None
    count: int = Field(default=0, ge=0)
    item_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("name", "category")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class IssueRequest(BaseModel):
    item_id: int
    issuer_id: str
    authorized_by_id: str
    quantity: int
    status: IssuanceStatus
    recipient_department: str = Field(min_length=1)
    issue_date: Optional[datetime] = None
    return_date: Optional[datetime] = None


class ReturnRequest(BaseModel):
    issuance_id: int
    returned_date: Optional[datetime] = None


class ReconcileRequest(BaseModel):
    """A physical count. Negative counts are rejected by the reconciliation engine as InvalidCount."""
    item_id: int
    observed: int
    reason: Optional[str] = None


class IssuanceFilter(BaseModel):
    """Filters for listing issuances. Unset fields match everything; date bounds are inclusive."""
    model_config = ConfigDict(extra="forbid")

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    issuer_id: Optional[str] = None
    authorized_by_id: Optional[str] = None
    recipient_department: Optional[str] = None
    status: Optional[IssuanceStatus] = None
    item_id: Optional[int] = None
    state: Optional[IssuanceState] = None

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    def matches(self, issuance: "IssuanceRecord") -> bool:
        if self.start is not None and issuance.issue_date < self.start:
            return False
        if self.end is not None and issuance.issue_date > self.end:
            return False
        if self.issuer_id is not None and issuance.issuer_id != self.issuer_id:
            return False
        if self.authorized_by_id is not None and issuance.authorized_by_id != self.authorized_by_id:
            return False
        if self.recipient_department is not None and issuance.recipient_department != self.recipient_department:
            return False
        if self.status is not None and issuance.status != self.status:
            return False
        if self.item_id is not None and issuance.item_id != self.item_id:
            return False
        if self.state is not None and issuance.state != self.state:
            return False
        return True


# --- Projections ---

class Item(BaseModel):
    item_id: int
    name: str
    category: str
    sub_category: Optional[str] = None
    count: int = Field(ge=0)
    last_updated: datetime
    deleted: bool = False


class IssuanceRecord(BaseModel):
    issuance_id: int
    item_id: int
    issuer_id: str
    authorized_by_id: str
    quantity: int
    status: IssuanceStatus
    issue_date: datetime
    return_date: Optional[datetime] = None
    returned_date: Optional[datetime] = None
    recipient_department: str

    @property
    def state(self) -> IssuanceState:
        return IssuanceState.OPEN if self.returned_date is None else IssuanceState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.returned_date is None


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    audit_id: int
    actor_id: str
    action: AuditAction
    detail: str
    timestamp: datetime
    item_id: int
    event_seq: int


# --- Results ---

class ReconcileOutcome(BaseModel):
    status: ReconcileStatus
    item_id: int
    expected: int
    observed: int
    item: Item
    reason: Optional[str] = None
    event_seq: Optional[int] = None
    audit: Optional[AuditEntry] = None


class ActivityEntry(BaseModel):
    seq: int
    kind: str
    issuance_id: int
    item_id: int
    quantity: int
    actor_id: str
    timestamp: datetime


class ItemFrequency(BaseModel):
    item_id: int
    name: str
    issuances: int


class HoldDuration(BaseModel):
    item_id: int
    name: str
    average_days: int
    samples: int


class DiscrepancyRate(BaseModel):
    window_days: Optional[int] = None
    since: Optional[datetime] = None
    total: int = 0
    per_item: Dict[int, int] = Field(default_factory=dict)


class OverdueIssuance(BaseModel):
    issuance: IssuanceRecord
    item_name: str
    days_overdue: int


class AnalyticsSnapshot(BaseModel):
    generated_at: datetime
    item_frequency: List[ItemFrequency]
    average_hold_durations: List[HoldDuration]
    discrepancy_rate: DiscrepancyRate
    discrepancy_rate_long: DiscrepancyRate
    overdue: List[OverdueIssuance]
