"""Function selector identification and ABI calldata decoding."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from eth_abi import decode as abi_decode
from eth_abi.exceptions import ABITypeError, DecodingError, ParseError
from eth_utils import collapse_if_tuple, function_abi_to_4byte_selector
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from txlens.sources.labels import create_sqlite_engine

logger = structlog.get_logger(__name__)

# Common signatures, checked before the offline DB and used to break
# selector collisions found there.
KNOWN_SELECTORS: dict[str, str] = {
    "0xa9059cbb": "transfer(address,uint256)",
    "0x23b872dd": "transferFrom(address,address,uint256)",
    "0x095ea7b3": "approve(address,uint256)",
    "0x38ed1739": "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)",
    "0x7ff36ab5": "swapExactETHForTokens(uint256,address[],address,uint256)",
    "0x18cbafe5": "swapExactTokensForETH(uint256,uint256,address[],address,uint256)",
    "0x022c0d9f": "swap(uint256,uint256,address,bytes)",
    "0x128acb08": "swap(address,bool,int256,uint160,bytes)",
    "0xd0e30db0": "deposit()",
    "0x2e1a7d4d": "withdraw(uint256)",
}

METHOD_QUERY = text("SELECT method FROM methods WHERE selector = :selector LIMIT 50")


class AbiDecodeError(Exception):
    """Calldata could not be decoded with the supplied ABI."""

    pass


@dataclass(frozen=True)
class CalldataInfo:
    """Selector-level view of calldata."""

    selector: str | None
    signature: str | None
    raw_params: str


def selector_of(data: str | None) -> str | None:
    """First four bytes of calldata as ``0x``-prefixed lowercase hex."""
    if not data or len(data) < 10:
        return None
    return data[:10].lower()


def function_name(signature: str | None) -> str | None:
    if not signature:
        return None
    return signature.split("(", 1)[0]


class SelectorDatabase:
    """Selector → signature lookup over the offline 4-byte database.

    Schema: ``methods(selector TEXT, method TEXT)``. Results, including
    misses, are cached for the lifetime of the process.
    """

    def __init__(self, db_path: Path | None, known: dict[str, str] | None = None):
        self.known = KNOWN_SELECTORS if known is None else known
        self._engine: Engine | None = None
        self._cache: dict[str, str | None] = {}

        if db_path is not None and Path(db_path).exists():
            self._engine = create_sqlite_engine(Path(db_path))
            logger.info("selector_db_opened", path=str(db_path))
        else:
            logger.info("selector_db_missing", path=str(db_path))

    def lookup(self, selector: str) -> str | None:
        """Resolve a selector to a text signature.

        The hardcoded map wins. Otherwise, when the DB holds several
        signatures for the same selector, the shortest is chosen.
        """
        normalized = selector.lower()
        if normalized in self.known:
            return self.known[normalized]
        if normalized in self._cache:
            return self._cache[normalized]

        candidates = self._query(normalized)
        chosen = choose_signature(candidates)
        self._cache[normalized] = chosen
        return chosen

    def _query(self, selector: str) -> list[str]:
        if self._engine is None:
            return []
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(METHOD_QUERY, {"selector": selector}).fetchall()
        except SQLAlchemyError as e:
            logger.warning("selector_db_query_failed", selector=selector, error=str(e))
            return []
        return [row[0].strip() for row in rows if row[0] and row[0].strip()]

    def decode_calldata(self, data: str | None) -> CalldataInfo:
        selector = selector_of(data)
        if selector is None:
            return CalldataInfo(selector=None, signature=None, raw_params="")
        return CalldataInfo(
            selector=selector,
            signature=self.lookup(selector),
            raw_params=data[10:],
        )

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()


def choose_signature(candidates: list[str], preferred: str | None = None) -> str | None:
    """Pick one signature among colliding candidates."""
    if not candidates:
        return None
    if preferred and preferred in candidates:
        return preferred
    return min(candidates, key=len)


def _json_safe(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def decode_with_abi(abi: list[dict], data: str) -> tuple[str, list[Any]]:
    """Decode calldata against a contract ABI.

    Returns:
        Tuple of (function name, JSON-safe argument list).

    Raises:
        AbiDecodeError: If no ABI function matches the selector or the
            parameters do not decode.
    """
    selector = selector_of(data)
    if selector is None:
        raise AbiDecodeError("calldata shorter than a selector")

    for entry in abi:
        if entry.get("type", "function") != "function":
            continue
        try:
            entry_selector = "0x" + function_abi_to_4byte_selector(entry).hex()
        except (KeyError, TypeError, ValueError):
            continue
        if entry_selector != selector:
            continue

        try:
            types = [collapse_if_tuple(arg) for arg in entry.get("inputs", [])]
            values = abi_decode(types, bytes.fromhex(data[10:]))
        except (DecodingError, ParseError, ABITypeError, KeyError, TypeError, ValueError, OverflowError) as e:
            raise AbiDecodeError(f"{entry.get('name')}: {e}") from e
        return entry["name"], _json_safe(list(values))

    raise AbiDecodeError(f"selector {selector} not found in ABI")
