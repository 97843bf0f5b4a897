import os
from typing import Optional

from equiptrack.log.interfaces import EventLog
from equiptrack.log.local_log import LocalEventLog
from equiptrack.log.memory_log import MemoryEventLog
from equiptrack.log.sqlite_log import SQLiteEventLog
from equiptrack.settings import Settings, settings as default_settings


def open_event_log(config: Optional[Settings] = None, data_dir: Optional[str] = None) -> EventLog:
    """Build the event log backend selected by `LOG_BACKEND`. Call `start()` before use."""
    config = config or default_settings
    data_dir = data_dir or config.DATA_DIR

    if config.LOG_BACKEND == "memory":
        return MemoryEventLog()
    if config.LOG_BACKEND == "sqlite":
        return SQLiteEventLog(path=os.path.join(data_dir, "events.db"))
    return LocalEventLog(data_dir=data_dir, max_segment_size=config.SEGMENT_MAX_BYTES)


__all__ = ["EventLog", "LocalEventLog", "MemoryEventLog", "SQLiteEventLog", "open_event_log"]
