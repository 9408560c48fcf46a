"""Collaborator interfaces and the "source unavailable" boundary.

Every optional data source is reached through ``fetch_optional``: whatever
goes wrong on the far side (transport errors, bad payloads, timeouts,
missing configuration) comes back as an ``Unavailable`` value instead of an
exception, so fusion logic only ever sees data or a sentinel.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

import structlog

from txlens.models import (
    CallTraceNode,
    GasReference,
    InternalTransaction,
    LedgerTransaction,
    Receipt,
    TokenInfo,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SourceUnavailable(Exception):
    """An optional data source could not answer."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source} unavailable: {reason}")
        self.source = source
        self.reason = reason


class MandatoryFetchError(Exception):
    """The ledger could not return the transaction or its receipt."""

    pass


@dataclass(frozen=True)
class Unavailable:
    """Sentinel returned in place of data from a failed optional source."""

    source: str
    reason: str

    def __bool__(self) -> bool:
        return False

    def as_warning(self) -> dict:
        return {"source": self.source, "reason": self.reason}


def is_available(result: Any) -> bool:
    return not isinstance(result, Unavailable)


async def fetch_optional(
    source: str,
    call: Callable[[], Awaitable[T]],
    timeout: float,
) -> T | Unavailable:
    """Run one optional adapter call with its own timeout.

    Args:
        source: Name used in logs and in the returned sentinel.
        call: Zero-argument factory producing the awaitable.
        timeout: Seconds before the call is abandoned.

    Returns:
        The call's result, or ``Unavailable`` on any failure.
    """
    try:
        return await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("source_unavailable", source=source, reason="timeout", timeout=timeout)
        return Unavailable(source, f"timed out after {timeout}s")
    except SourceUnavailable as e:
        logger.warning("source_unavailable", source=source, reason=e.reason)
        return Unavailable(source, e.reason)
    except Exception as e:
        logger.warning(
            "source_unavailable",
            source=source,
            reason=str(e),
            exception_type=type(e).__name__,
        )
        return Unavailable(source, f"{type(e).__name__}: {e}")


async def first_available(
    providers: Sequence[tuple[str, Callable[[], Awaitable[T | None]]]],
    timeout: float,
    accept: Callable[[T], bool] | None = None,
) -> tuple[T | None, list[Unavailable]]:
    """Try capability-equivalent providers in priority order.

    A provider "answers" when it is available, returns something other than
    ``None`` and (if given) passes ``accept``.

    Returns:
        Tuple of (first accepted result or None, sentinels collected on the way).
    """
    misses: list[Unavailable] = []
    for name, call in providers:
        result = await fetch_optional(name, call, timeout)
        if isinstance(result, Unavailable):
            misses.append(result)
            continue
        if result is None:
            continue
        if accept is not None and not accept(result):
            continue
        return result, misses
    return None, misses


@runtime_checkable
class LedgerQuery(Protocol):
    """Read access to a ledger node."""

    async def get_transaction(self, tx_hash: str) -> LedgerTransaction | None: ...

    async def get_receipt(self, tx_hash: str) -> Receipt | None: ...

    async def get_bytecode(self, address: str) -> str: ...

    async def call(self, address: str, data: str) -> str | None: ...


@runtime_checkable
class TraceService(Protocol):
    """Execution trace provider (simulation / debug node)."""

    async def trace_transaction(self, tx_hash: str) -> CallTraceNode | None: ...


@runtime_checkable
class ExplorerService(Protocol):
    """Rate-limited block explorer."""

    async def get_internal_transactions(self, tx_hash: str) -> list[InternalTransaction]: ...

    async def get_contract_abi(self, address: str) -> list[dict] | None: ...

    async def get_contract_source(self, address: str) -> str | None: ...

    async def get_token_info(self, address: str) -> TokenInfo | None: ...

    async def get_gas_price_reference(self, block_number: int) -> GasReference | None: ...


@runtime_checkable
class LabelStore(Protocol):
    """Offline address label lookup."""

    def lookup_label(self, address: str, chain_id: int) -> str | None: ...
