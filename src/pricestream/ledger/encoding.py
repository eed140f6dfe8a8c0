"""Schema-checked ABI encoding for data stream payloads.

A schema is a comma separated list of `<type> <name>` pairs, for example
`"uint64 timestamp, string symbol, uint256 price"`. Payloads are the ABI
encoding of the values as one parameter list, the same layout readers
decode with the schema's types.
"""

import re
from typing import Any, NamedTuple

from eth_abi import decode, encode, is_encodable_type
from eth_abi.exceptions import DecodingError
from eth_abi.exceptions import EncodingError as AbiEncodingError

from pricestream.common.exceptions import EncodingError

BYTES32_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


class SchemaField(NamedTuple):
    type: str
    name: str


def parse_schema(schema: str) -> list[SchemaField]:
    fields: list[SchemaField] = []
    for part in schema.split(","):
        pieces = part.split()
        if len(pieces) != 2:
            raise EncodingError(f"invalid schema field {part.strip()!r}")
        if not is_encodable_type(pieces[0]):
            raise EncodingError(f"unsupported schema type {pieces[0]!r}")
        fields.append(SchemaField(type=pieces[0], name=pieces[1]))

    names = [f.name for f in fields]
    if len(set(names)) != len(names):
        raise EncodingError(f"duplicate field names in schema {schema!r}")

    return fields


def is_bytes_type(abi_type: str) -> bool:
    return abi_type.startswith("bytes")


def to_abi_value(field: SchemaField, value: Any) -> Any:
    """Hex strings are accepted for bytes fields; everything else passes as is."""
    if is_bytes_type(field.type) and isinstance(value, str):
        try:
            return bytes.fromhex(value.removeprefix("0x"))
        except ValueError:
            raise EncodingError(f"{field.name}={value!r} is not hex") from None

    # Mixed-case addresses would be checked as EIP-55 checksums
    if field.type == "address" and isinstance(value, str):
        return value.lower()

    return value


def from_abi_value(field: SchemaField, value: Any) -> Any:
    if is_bytes_type(field.type):
        return "0x" + bytes(value).hex()
    if field.type == "address":
        return value.lower()
    return value


class SchemaEncoder:
    def __init__(self, schema: str) -> None:
        self.schema = schema
        self.fields = parse_schema(schema)
        self.types = [f.type for f in self.fields]

    def encode_data(self, values: dict[str, Any]) -> str:
        """Validate `values` against the schema and return the 0x-prefixed ABI payload."""
        missing = [f.name for f in self.fields if f.name not in values]
        if missing:
            raise EncodingError(f"missing fields: {', '.join(missing)}")

        extra = set(values) - {f.name for f in self.fields}
        if extra:
            raise EncodingError(f"unexpected fields: {', '.join(sorted(extra))}")

        args = [to_abi_value(f, values[f.name]) for f in self.fields]
        try:
            return "0x" + encode(self.types, args).hex()
        except AbiEncodingError as e:
            raise EncodingError(f"cannot encode {self.schema!r}: {e}") from e

    def decode_data(self, payload: str) -> dict[str, Any]:
        try:
            raw = bytes.fromhex(payload.removeprefix("0x"))
            decoded = decode(self.types, raw)
        except (ValueError, DecodingError) as e:
            raise EncodingError(f"undecodable payload: {e}") from e

        return {f.name: from_abi_value(f, v) for f, v in zip(self.fields, decoded)}


def stream_id(label: str) -> str:
    """bytes32 id for a data stream: the UTF-8 label right-padded with zeros."""
    raw = label.encode("utf-8")
    if len(raw) > 32:
        raise EncodingError(f"stream label {label!r} longer than 32 bytes")
    return "0x" + raw.hex().ljust(64, "0")
