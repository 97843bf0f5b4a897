from equiptrack.exceptions import InventoryError
from equiptrack.log import EventLog, LocalEventLog, MemoryEventLog, SQLiteEventLog, open_event_log
from equiptrack.models import IssuanceFilter, IssuanceStatus, IssueRequest, ItemFields, ReconcileStatus
from equiptrack.service import InventoryService
from equiptrack.settings import settings

__version__ = "0.1.0"

__all__ = [
    "InventoryService",
    "InventoryError",
    "EventLog",
    "LocalEventLog",
    "MemoryEventLog",
    "SQLiteEventLog",
    "open_event_log",
    "IssuanceFilter",
    "IssuanceStatus",
    "IssueRequest",
    "ItemFields",
    "ReconcileStatus",
    "settings",
]
