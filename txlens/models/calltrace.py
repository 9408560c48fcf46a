"""Models for call traces and address enrichment."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field


@dataclass
class CallTraceNode:
    """One frame of a recursive execution trace.

    Children are owned by their parent and kept in execution order.
    There are no back-references to the parent.
    """

    call_type: str = "CALL"
    from_address: str = ""
    to_address: str | None = None
    value: int = 0
    gas: int | None = None
    gas_used: int | None = None
    input: str = "0x"
    output: str | None = None
    error: str | None = None
    calls: list["CallTraceNode"] = field(default_factory=list)

    def count(self) -> int:
        """Total number of frames in this subtree."""
        total = 0
        stack = [self]
        while stack:
            node = stack.pop()
            total += 1
            stack.extend(node.calls)
        return total

    def max_depth(self) -> int:
        """Depth of the deepest frame, root is 0."""
        deepest = 0
        stack = [(self, 0)]
        while stack:
            node, depth = stack.pop()
            deepest = max(deepest, depth)
            stack.extend((child, depth + 1) for child in node.calls)
        return deepest


class FlattenedCall(BaseModel):
    """A call-trace frame positioned in execution order."""

    depth: int = Field(..., ge=0, description="Nesting level, root is 0")
    index: int = Field(..., ge=0, description="Pre-order position")
    call_type: str = "CALL"
    from_address: str
    to_address: str | None = None
    value: int = 0
    selector: str | None = Field(None, description="4-byte function selector")
    gas: int | None = None
    gas_used: int | None = None
    input: str | None = None
    error: str | None = None


class AddressInfo(BaseModel):
    """Human-meaningful metadata attached to an address in a trace."""

    label: str | None = None
    is_contract: bool = False
    abi: list[dict[str, Any]] | None = None
    source: str | None = None
    resolved: bool = True

    @classmethod
    def unknown(cls) -> "AddressInfo":
        """Sentinel for an address whose lookups failed."""
        return cls(label=None, is_contract=False, resolved=False)
