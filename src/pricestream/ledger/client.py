"""Data streams ledger client.

Writes are transactions against the streams contract, signed by the single
writer account:
- `publishDataAndEmitEvents`: store stream data and emit events
- `emitEvents`: emit events only, nothing stored
- `registerEventSchemas`: register an event id and its topic

Confirmation uses the standard transaction receipt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional, Protocol

import aiohttp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from pricestream.common.exceptions import (
    LedgerWriteError,
    SigningCredentialError,
    WriteConfirmationError,
)
from pricestream.config.enumerations import WriteStatus

logger = logging.getLogger(__name__)

STREAMS_CONTRACT_ADDRESS = "0x6AB397FF662e42312c003175DCD76EfF69D048Fc"

ALREADY_REGISTERED_ERRORS = ("EventSchemaAlreadyRegistered", "EventTopicAlreadyRegistered")

_DATA_STREAM = {
    "type": "tuple[]",
    "components": [
        {"name": "id", "type": "bytes32"},
        {"name": "schemaId", "type": "bytes32"},
        {"name": "data", "type": "bytes"},
    ],
}

_EVENT_STREAM = {
    "type": "tuple[]",
    "components": [
        {"name": "id", "type": "string"},
        {"name": "argumentTopics", "type": "bytes32[]"},
        {"name": "data", "type": "bytes"},
    ],
}

_EVENT_SCHEMA = {
    "type": "tuple[]",
    "components": [
        {
            "name": "params",
            "type": "tuple[]",
            "components": [
                {"name": "name", "type": "string"},
                {"name": "paramType", "type": "string"},
                {"name": "isIndexed", "type": "bool"},
            ],
        },
        {"name": "eventTopic", "type": "bytes32"},
    ],
}

STREAMS_ABI = [
    {
        "name": "publishDataAndEmitEvents",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "dataStreams", **_DATA_STREAM}, {"name": "eventStreams", **_EVENT_STREAM}],
        "outputs": [],
    },
    {
        "name": "emitEvents",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "events", **_EVENT_STREAM}],
        "outputs": [],
    },
    {
        "name": "registerEventSchemas",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "ids", "type": "string[]"}, {"name": "schemas", **_EVENT_SCHEMA}],
        "outputs": [],
    },
]


def to_bytes(hex_value: str) -> bytes:
    return bytes.fromhex(hex_value.removeprefix("0x"))


class DataStream(NamedTuple):
    id: str
    schema_id: str
    data: str

    def as_abi(self) -> tuple[bytes, bytes, bytes]:
        return to_bytes(self.id), to_bytes(self.schema_id), to_bytes(self.data)


class EventStream(NamedTuple):
    id: str
    argument_topics: list[str]
    data: str

    def as_abi(self) -> tuple[str, list[bytes], bytes]:
        return self.id, [to_bytes(t) for t in self.argument_topics], to_bytes(self.data)


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a ledger submission: a transaction hash or an error."""

    status: WriteStatus
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def submitted(cls, tx_hash: Optional[str]) -> "LedgerResult":
        return cls(status=WriteStatus.SUBMITTED, tx_hash=tx_hash)

    @classmethod
    def failed(cls, error: str) -> "LedgerResult":
        return cls(status=WriteStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.status == WriteStatus.SUBMITTED

    def unwrap(self) -> Optional[str]:
        """Return the transaction hash or raise LedgerWriteError."""
        if self.status == WriteStatus.FAILED:
            raise LedgerWriteError(self.error or "unknown error")
        return self.tx_hash


class LedgerClient(Protocol):
    writer_address: str

    def compute_schema_id(self, schema: str) -> str: ...

    async def set_and_emit_events(
        self, data_streams: list[DataStream], event_streams: list[EventStream]
    ) -> LedgerResult: ...

    async def emit_events(self, event_streams: list[EventStream]) -> LedgerResult: ...

    async def register_event_schema(self, event_id: str, param_name: str = "data") -> LedgerResult: ...

    async def wait_for_confirmation(self, tx_hash: str) -> None: ...

    async def close(self) -> None: ...


def load_writer_account(private_key: Optional[str]) -> LocalAccount:
    """Load the single writer identity. Raises SigningCredentialError."""
    if not private_key:
        raise SigningCredentialError("PRIVATE_KEY environment variable is required")

    try:
        return Account.from_key(private_key)
    except (ValueError, TypeError) as e:
        raise SigningCredentialError(f"invalid private key: {e}") from None


def error_selector(name: str) -> str:
    return "0x" + bytes(AsyncWeb3.keccak(text=f"{name}()"))[:4].hex()


ALREADY_REGISTERED_MARKERS = ALREADY_REGISTERED_ERRORS + tuple(
    error_selector(name) for name in ALREADY_REGISTERED_ERRORS
)


def is_already_registered(message: str) -> bool:
    """Match the revert by error name or, when undecoded, by its selector."""
    return any(marker in message for marker in ALREADY_REGISTERED_MARKERS)


class StreamsLedgerClient:
    """Ledger client bound to one writer account."""

    def __init__(
        self,
        rpc_url: str,
        private_key: Optional[str],
        contract_address: str = STREAMS_CONTRACT_ADDRESS,
        receipt_timeout: float = 120.0,
        timeout: float = 10.0,
        web3: Optional[AsyncWeb3] = None,
    ) -> None:
        self.account = load_writer_account(private_key)
        self.writer_address: str = self.account.address
        self.receipt_timeout = receipt_timeout
        self.w3 = web3 or AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)}
            )
        )
        self.contract_address = AsyncWeb3.to_checksum_address(contract_address)
        self.contract = self.w3.eth.contract(address=self.contract_address, abi=STREAMS_ABI)
        self.chain_id: Optional[int] = None
        logger.info(
            "Ledger client initialized with writer %s on %s", self.writer_address, self.contract_address
        )

    def compute_schema_id(self, schema: str) -> str:
        return "0x" + bytes(AsyncWeb3.keccak(text=schema)).hex()

    def event_topic(self, event_id: str) -> str:
        return "0x" + bytes(AsyncWeb3.keccak(text=f"{event_id}(bytes)")).hex()

    async def transact(self, name: str, function: Any) -> LedgerResult:
        """Build, sign and send one contract call from the writer account."""
        try:
            if self.chain_id is None:
                self.chain_id = await self.w3.eth.chain_id

            nonce = await self.w3.eth.get_transaction_count(self.writer_address, "pending")
            tx = await function.build_transaction(
                {"from": self.writer_address, "nonce": nonce, "chainId": self.chain_id}
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("%s transaction failed: %s", name, e)
            return LedgerResult.failed(str(e))

        return LedgerResult.submitted("0x" + bytes(tx_hash).hex())

    async def set_and_emit_events(
        self, data_streams: list[DataStream], event_streams: list[EventStream]
    ) -> LedgerResult:
        function = self.contract.functions.publishDataAndEmitEvents(
            [s.as_abi() for s in data_streams], [e.as_abi() for e in event_streams]
        )
        return await self.transact("publishDataAndEmitEvents", function)

    async def emit_events(self, event_streams: list[EventStream]) -> LedgerResult:
        function = self.contract.functions.emitEvents([e.as_abi() for e in event_streams])
        return await self.transact("emitEvents", function)

    async def register_event_schema(self, event_id: str, param_name: str = "data") -> LedgerResult:
        schema = ([(param_name, "bytes", False)], to_bytes(self.event_topic(event_id)))
        function = self.contract.functions.registerEventSchemas([event_id], [schema])
        return await self.transact("registerEventSchemas", function)

    async def wait_for_confirmation(self, tx_hash: str) -> None:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted:
            raise WriteConfirmationError(
                tx_hash, f"not confirmed within {self.receipt_timeout:.0f}s"
            ) from None
        except Exception as e:
            raise WriteConfirmationError(tx_hash, f"receipt lookup failed: {e}") from e

        if receipt.get("status") == 0:
            raise WriteConfirmationError(tx_hash, "transaction reverted")

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
