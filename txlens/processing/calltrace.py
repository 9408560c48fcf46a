"""Call-trace flattening and address enrichment.

All tree walks use explicit stacks: trace depth comes from untrusted input
and must not be bounded by the interpreter's recursion limit.
"""

import asyncio

import structlog

from txlens.models import AddressInfo, CallTraceNode, FlattenedCall, InternalTransaction
from txlens.sources.base import ExplorerService, LabelStore, LedgerQuery, fetch_optional, is_available
from txlens.sources.rpc import has_bytecode
from txlens.sources.selectors import selector_of

logger = structlog.get_logger(__name__)

TRUNCATION_MARKER = "\n/* truncated */"


def flatten_call_tree(root: CallTraceNode) -> list[FlattenedCall]:
    """Flatten a call tree in pre-order (parent first, children in order).

    Args:
        root: Top-level frame of the trace.

    Returns:
        One entry per frame. ``index`` runs 0..N-1 in visit order and
        ``depth`` is the number of edges from the root.
    """
    flattened: list[FlattenedCall] = []
    stack: list[tuple[CallTraceNode, int]] = [(root, 0)]

    while stack:
        node, depth = stack.pop()
        flattened.append(
            FlattenedCall(
                depth=depth,
                index=len(flattened),
                call_type=node.call_type or "CALL",
                from_address=node.from_address,
                to_address=node.to_address,
                value=node.value,
                selector=selector_of(node.input),
                gas=node.gas,
                gas_used=node.gas_used,
                input=node.input,
                error=node.error,
            )
        )
        # Reversed so the first child is popped next
        for child in reversed(node.calls):
            stack.append((child, depth + 1))

    return flattened


def wrap_internal_transactions(txs: list[InternalTransaction]) -> list[FlattenedCall]:
    """Present a flat explorer list as depth-0 calls in their original order."""
    return [
        FlattenedCall(
            depth=0,
            index=i,
            call_type=(tx.call_type or "call").upper(),
            from_address=tx.from_address,
            to_address=tx.to_address,
            value=tx.value,
            selector=selector_of(tx.input),
            gas=tx.gas,
            gas_used=tx.gas_used,
            input=tx.input,
            error="reverted" if tx.is_error else None,
        )
        for i, tx in enumerate(txs)
    ]


def rebuild_call_tree(flattened: list[FlattenedCall]) -> CallTraceNode | None:
    """Inverse of ``flatten_call_tree``.

    Rebuilds the tree from the (depth, index) sequence with a stack of
    open ancestors. Raises ValueError if the sequence is not a valid
    pre-order walk of a single tree.
    """
    if not flattened:
        return None

    ordered = sorted(flattened, key=lambda c: c.index)
    if ordered[0].depth != 0:
        raise ValueError("first call must be the root at depth 0")

    def to_node(call: FlattenedCall) -> CallTraceNode:
        return CallTraceNode(
            call_type=call.call_type,
            from_address=call.from_address,
            to_address=call.to_address,
            value=call.value,
            gas=call.gas,
            gas_used=call.gas_used,
            input=call.input or "0x",
            error=call.error,
        )

    root = to_node(ordered[0])
    ancestors: list[tuple[CallTraceNode, int]] = [(root, 0)]

    for call in ordered[1:]:
        if call.depth == 0:
            raise ValueError(f"second root at index {call.index}")
        while ancestors and ancestors[-1][1] >= call.depth:
            ancestors.pop()
        if not ancestors or ancestors[-1][1] != call.depth - 1:
            raise ValueError(f"depth jumps to {call.depth} at index {call.index}")
        node = to_node(call)
        ancestors[-1][0].calls.append(node)
        ancestors.append((node, call.depth))

    return root


def unique_addresses(calls: list[FlattenedCall]) -> list[str]:
    """Lowercased from/to addresses in first-seen order."""
    seen: dict[str, None] = {}
    for call in calls:
        for address in (call.from_address, call.to_address):
            if address:
                seen.setdefault(address.lower(), None)
    return list(seen)


def truncate_source(source: str | None, limit: int, marker: str = TRUNCATION_MARKER) -> str | None:
    if source is None or len(source) <= limit:
        return source
    return source[:limit] + marker


async def enrich_address(
    address: str,
    chain_id: int,
    ledger: LedgerQuery,
    explorer: ExplorerService,
    labels: LabelStore,
    timeout: float,
    source_char_limit: int,
) -> AddressInfo:
    """Build the metadata record for a single address.

    The bytecode probe decides whether the address is a contract. If it
    cannot be answered the whole record is the unknown sentinel. A missing
    ABI or source only leaves that field empty.
    """
    label = labels.lookup_label(address, chain_id)

    code = await fetch_optional("ledger_bytecode", lambda: ledger.get_bytecode(address), timeout)
    if not is_available(code):
        return AddressInfo.unknown()

    is_contract = has_bytecode(code)
    if not is_contract:
        return AddressInfo(label=label, is_contract=False)

    abi, source = await asyncio.gather(
        fetch_optional("explorer_abi", lambda: explorer.get_contract_abi(address), timeout),
        fetch_optional("explorer_source", lambda: explorer.get_contract_source(address), timeout),
    )
    return AddressInfo(
        label=label,
        is_contract=True,
        abi=abi if is_available(abi) and abi else None,
        source=truncate_source(source, source_char_limit) if is_available(source) else None,
    )


async def enrich_addresses(
    addresses: list[str],
    chain_id: int,
    ledger: LedgerQuery,
    explorer: ExplorerService,
    labels: LabelStore,
    max_addresses: int = 20,
    concurrency: int = 5,
    timeout: float = 10.0,
    source_char_limit: int = 30000,
) -> dict[str, AddressInfo]:
    """Enrich up to ``max_addresses`` addresses concurrently.

    Returns:
        Mapping keyed by lowercased address, in candidate order. Every
        candidate has an entry; failures map to ``AddressInfo.unknown()``.
    """
    candidates = [a.lower() for a in addresses[:max_addresses]]
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def bounded(address: str) -> AddressInfo:
        async with semaphore:
            try:
                return await enrich_address(
                    address,
                    chain_id,
                    ledger,
                    explorer,
                    labels,
                    timeout,
                    source_char_limit,
                )
            except Exception as e:
                logger.warning("address_enrichment_failed", address=address, error=str(e))
                return AddressInfo.unknown()

    results = await asyncio.gather(*(bounded(a) for a in candidates))
    enrichment = dict(zip(candidates, results))

    logger.debug(
        "addresses_enriched",
        candidates=len(candidates),
        skipped=max(0, len(addresses) - len(candidates)),
        unresolved=sum(1 for info in results if not info.resolved),
    )
    return enrichment
