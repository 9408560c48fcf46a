"""Execution trace adapter (``debug_traceTransaction`` with ``callTracer``)."""

import structlog

from txlens.models import CallTraceNode
from txlens.processing.units import to_int, to_optional_int
from txlens.sources.base import SourceUnavailable, TraceService
from txlens.sources.rpc import JsonRpcClient

logger = structlog.get_logger(__name__)


class JsonRpcTraceService(TraceService):
    """Fetch call trees from a node (or simulation endpoint) exposing debug APIs."""

    def __init__(self, rpc: JsonRpcClient | None, enabled: bool = True):
        self.rpc = rpc
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings) -> "JsonRpcTraceService":
        url = settings.trace_rpc_url
        if not url:
            return cls(None, enabled=False)
        return cls(
            JsonRpcClient(url, timeout=settings.source_timeout_seconds),
            enabled=settings.use_trace_simulation,
        )

    async def trace_transaction(self, tx_hash: str) -> CallTraceNode | None:
        if self.rpc is None or not self.enabled:
            raise SourceUnavailable("trace", "trace simulation is not configured")

        raw = await self.rpc.request(
            "debug_traceTransaction",
            [tx_hash, {"tracer": "callTracer"}],
        )
        if not raw:
            return None

        root = parse_call_frame(raw)
        logger.debug("trace_fetched", tx_hash=tx_hash, frames=root.count())
        return root

    async def aclose(self) -> None:
        if self.rpc is not None:
            await self.rpc.aclose()


def _frame_to_node(frame: dict) -> CallTraceNode:
    to_address = frame.get("to")
    return CallTraceNode(
        call_type=(frame.get("type") or "CALL").upper(),
        from_address=frame.get("from") or "",
        to_address=to_address or None,
        value=to_int(frame.get("value")),
        gas=to_optional_int(frame.get("gas")),
        gas_used=to_optional_int(frame.get("gasUsed")),
        input=frame.get("input") or "0x",
        output=frame.get("output"),
        error=frame.get("error"),
    )


def parse_call_frame(raw: dict) -> CallTraceNode:
    """Convert a ``callTracer`` result into a ``CallTraceNode`` tree.

    Uses an explicit work stack so arbitrarily deep traces cannot exhaust
    the interpreter's recursion limit.
    """
    root = _frame_to_node(raw)
    stack = [(raw, root)]
    while stack:
        frame, node = stack.pop()
        for child_frame in frame.get("calls") or []:
            child = _frame_to_node(child_frame)
            node.calls.append(child)
            stack.append((child_frame, child))
    return root
