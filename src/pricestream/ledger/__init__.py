from pricestream.ledger.client import (
    DataStream,
    EventStream,
    LedgerClient,
    LedgerResult,
    StreamsLedgerClient,
    load_writer_account,
)
from pricestream.ledger.encoding import SchemaEncoder, stream_id
from pricestream.ledger.serializer import QueueStatus, WriteSerializer

__all__ = [
    "DataStream",
    "EventStream",
    "LedgerClient",
    "LedgerResult",
    "QueueStatus",
    "SchemaEncoder",
    "StreamsLedgerClient",
    "WriteSerializer",
    "load_writer_account",
    "stream_id",
]
