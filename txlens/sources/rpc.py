"""Ethereum JSON-RPC ledger adapter."""

import asyncio
import itertools

import httpx
import structlog

from txlens.models import LedgerTransaction, LogEntry, Receipt, TokenInfo
from txlens.processing.units import to_int, to_optional_int
from txlens.sources.base import LedgerQuery, SourceUnavailable

logger = structlog.get_logger(__name__)

# ERC-20 metadata selectors
NAME_SELECTOR = "0x06fdde03"
SYMBOL_SELECTOR = "0x95d89b41"
DECIMALS_SELECTOR = "0x313ce567"


class JsonRpcError(Exception):
    """Error returned by a JSON-RPC endpoint."""

    def __init__(self, method: str, error: dict | str):
        message = error.get("message", str(error)) if isinstance(error, dict) else error
        super().__init__(f"{method}: {message}")
        self.method = method


class JsonRpcClient:
    """Minimal async JSON-RPC 2.0 client."""

    def __init__(self, url: str, timeout: float = 20.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def request(self, method: str, params: list) -> object:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        response = await self._client.post(self.url, json=payload)
        response.raise_for_status()
        body = response.json()
        if body.get("error"):
            raise JsonRpcError(method, body["error"])
        return body.get("result")

    async def aclose(self) -> None:
        await self._client.aclose()


class JsonRpcLedger(LedgerQuery):
    """Ledger reads over a standard Ethereum JSON-RPC endpoint."""

    def __init__(self, rpc: JsonRpcClient):
        self.rpc = rpc

    @classmethod
    def from_url(cls, url: str, timeout: float = 20.0) -> "JsonRpcLedger":
        return cls(JsonRpcClient(url, timeout=timeout))

    async def get_transaction(self, tx_hash: str) -> LedgerTransaction | None:
        raw = await self.rpc.request("eth_getTransactionByHash", [tx_hash])
        if not raw:
            return None
        return parse_transaction(raw)

    async def get_receipt(self, tx_hash: str) -> Receipt | None:
        raw = await self.rpc.request("eth_getTransactionReceipt", [tx_hash])
        if not raw:
            return None
        return parse_receipt(raw)

    async def get_bytecode(self, address: str) -> str:
        code = await self.rpc.request("eth_getCode", [address, "latest"])
        return code or "0x"

    async def call(self, address: str, data: str) -> str | None:
        try:
            result = await self.rpc.request("eth_call", [{"to": address, "data": data}, "latest"])
        except JsonRpcError as e:
            # Reverts are a normal answer for contracts without the method
            logger.debug("eth_call_reverted", address=address, data=data, error=str(e))
            return None
        return result or None

    async def aclose(self) -> None:
        await self.rpc.aclose()


def parse_transaction(raw: dict) -> LedgerTransaction:
    """Convert an ``eth_getTransactionByHash`` result."""
    if raw.get("blockNumber") is None:
        raise SourceUnavailable("ledger", "transaction is still pending")
    return LedgerTransaction(
        hash=raw["hash"],
        from_address=raw["from"],
        to_address=raw.get("to"),
        value=to_int(raw.get("value")),
        gas_price=to_int(raw.get("gasPrice")),
        block_number=to_int(raw.get("blockNumber")),
        input=raw.get("input") or "0x",
        nonce=to_optional_int(raw.get("nonce")),
    )


def parse_receipt(raw: dict) -> Receipt:
    """Convert an ``eth_getTransactionReceipt`` result."""
    return Receipt(
        status=to_int(raw.get("status"), default=1) == 1,
        gas_used=to_int(raw.get("gasUsed")),
        effective_gas_price=to_optional_int(raw.get("effectiveGasPrice")),
        contract_address=raw.get("contractAddress"),
        logs=[
            LogEntry(
                address=log["address"],
                topics=list(log.get("topics") or []),
                data=log.get("data") or "0x",
            )
            for log in raw.get("logs") or []
        ],
    )


def decode_abi_string(data: str | None) -> str | None:
    """Decode an ABI-encoded ``string`` return value.

    Falls back to a left-aligned ``bytes32`` for legacy tokens (e.g. MKR).
    """
    if not data or data == "0x":
        return None
    body = data[2:] if data.startswith("0x") else data
    try:
        if len(body) == 64:
            text = bytes.fromhex(body).rstrip(b"\x00").decode("utf-8", errors="ignore")
            return text.strip() or None
        if len(body) < 128:
            return None
        length = int(body[64:128], 16)
        if length == 0 or length > 1000:
            return None
        raw = bytes.fromhex(body[128:128 + length * 2])
        return raw.replace(b"\x00", b"").decode("utf-8", errors="ignore").strip() or None
    except ValueError:
        return None


def decode_uint8(data: str | None) -> int | None:
    """Decode a ``uint8`` return value."""
    if not data or data == "0x":
        return None
    body = data[2:] if data.startswith("0x") else data
    if len(body) < 64:
        return None
    try:
        value = int(body[:64], 16)
    except ValueError:
        return None
    return value if 0 <= value <= 255 else None


async def read_token_info(ledger: LedgerQuery, token: str) -> TokenInfo | None:
    """Read ERC-20 metadata directly from the token contract.

    Costs three ``eth_call``s and no explorer quota. Returns None when none
    of the three methods answers.
    """
    name_raw, symbol_raw, decimals_raw = await asyncio.gather(
        ledger.call(token, NAME_SELECTOR),
        ledger.call(token, SYMBOL_SELECTOR),
        ledger.call(token, DECIMALS_SELECTOR),
        return_exceptions=True,
    )

    name = decode_abi_string(name_raw) if isinstance(name_raw, str) else None
    symbol = decode_abi_string(symbol_raw) if isinstance(symbol_raw, str) else None
    decimals = decode_uint8(decimals_raw) if isinstance(decimals_raw, str) else None

    if name or symbol or decimals is not None:
        return TokenInfo(name=name, symbol=symbol, decimals=decimals)
    return None


def has_bytecode(code: str | None) -> bool:
    return bool(code) and code not in ("0x", "0x0")
