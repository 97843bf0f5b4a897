import msgpack

from equiptrack.events import EventRecord
from equiptrack.exceptions import LogCorruption


def encode_record(record: EventRecord) -> bytes:
    """Serialize a sequenced record to MessagePack."""
    return msgpack.packb(record.model_dump(mode="json"), use_bin_type=True)


def decode_record(payload: bytes) -> EventRecord:
    # msgpack's unpack errors and pydantic's ValidationError are both ValueErrors
    try:
        return EventRecord.model_validate(msgpack.unpackb(payload, raw=False))
    except ValueError as e:
        raise LogCorruption(f"Undecodable event record: {e}") from e
