from .record_parser import ParseResult, RecordParser, parse_decimal, parse_direction
from .request_builder import (
    CreateTransactionRequest,
    CreateTransfer,
    MetadataEntry,
    RecordTransformer,
    is_complete_leg,
)

__all__ = [
    "ParseResult",
    "RecordParser",
    "parse_decimal",
    "parse_direction",
    "CreateTransactionRequest",
    "CreateTransfer",
    "MetadataEntry",
    "RecordTransformer",
    "is_complete_leg",
]
