"""Prompt variable builders and reply parsers for the narrative stages."""

import json
import re
from typing import Any

from txlens.models import (
    AddressInfo,
    CallTraceNode,
    DecodedCall,
    FlattenedCall,
    GasContext,
    InternalTransaction,
    PatternMatch,
    TokenFlow,
    Transaction,
)
from txlens.processing.token_flows import format_amount, net_flows, summarize_flows, token_display
from txlens.processing.units import format_units, wei_to_eth

MAX_TOKEN_FLOW_LINES = 8
MAX_INTERNAL_TX_LINES = 5
MAX_EXPLORER_TX_LINES = 10
MAX_TRACE_CHARS = 5000
MAX_ARGS_CHARS = 200

STEP_PATTERN = re.compile(r"^\s*\d+\.\s+(.+)")
ISSUE_PREFIXES = ("- ", "* ", "• ")


def _label(address: str | None, labels: dict[str, str]) -> str:
    if not address:
        return "(contract creation)"
    label = labels.get(address.lower())
    return f"{address} [{label}]" if label else address


def _short(address: str | None, labels: dict[str, str], enrichment: dict[str, AddressInfo]) -> str:
    if not address:
        return "(create)"
    key = address.lower()
    label = labels.get(key)
    if not label and key in enrichment:
        label = enrichment[key].label
    return f"{address[:10]}... [{label}]" if label else f"{address[:14]}..."


def describe_function_call(decoded: DecodedCall | None, labels: dict[str, str]) -> str:
    if decoded is None:
        return "No function call (plain transfer or contract creation)"

    lines = [f"Called function: {decoded.function_name}"]
    label = labels.get(decoded.contract.lower())
    if label:
        lines.append(f"Contract: {label}")
    if decoded.args is not None:
        args = json.dumps(decoded.args, default=str)
        suffix = "..." if len(args) > MAX_ARGS_CHARS else ""
        lines.append(f"Parameters: {args[:MAX_ARGS_CHARS]}{suffix}")
    elif decoded.raw_params:
        lines.append(f"Raw data: 0x{decoded.raw_params[:100]}...")
    lines.append("Decoded with verified ABI" if decoded.decoded_with_abi else "Identified by selector only")
    return "\n".join(lines)


def describe_gas(gas: GasContext | None) -> str:
    if gas is None:
        return "No gas reference available"
    reference = (
        f"{gas.reference_gas_price_gwei} Gwei" if gas.reference_gas_price_gwei is not None else "unknown"
    )
    base_fee = f"{gas.base_fee_gwei} Gwei" if gas.base_fee_gwei is not None else "unknown"
    abnormal = "yes (far above reference or near zero)" if gas.is_abnormal else "no"
    return "\n".join([
        f"- Transaction gas price: {gas.tx_gas_price_gwei:.9f} Gwei",
        f"- Reference gas price: {reference}",
        f"- Suggested base fee: {base_fee}",
        f"- Abnormal: {abnormal}",
    ])


def describe_flow_summary(flows: list[TokenFlow], sender: str) -> str:
    summary = summarize_flows(flows, sender)
    if not summary["sent"] and not summary["received"]:
        return "The sender's token balances did not change"
    lines = []
    if summary["sent"]:
        lines.append("Sent:")
        lines.extend(f"  - {item}" for item in summary["sent"])
    if summary["received"]:
        lines.append("Received:")
        lines.extend(f"  - {item}" for item in summary["received"])
    return "\n".join(lines)


def describe_token_flows(flows: list[TokenFlow], sender: str, labels: dict[str, str]) -> str:
    if not flows:
        return "No token transfers"

    sender = sender.lower()
    blocks = []
    for i, flow in enumerate(flows[:MAX_TOKEN_FLOW_LINES], start=1):
        if flow.from_address.lower() == sender:
            direction = "outbound"
        elif flow.to_address.lower() == sender:
            direction = "inbound"
        else:
            direction = "other"
        name = f"{flow.symbol} ({flow.name or 'Unknown Token'})" if flow.symbol else flow.token
        blocks.append(
            f"{i}. Token: {name}\n"
            f"   From: {_label(flow.from_address, labels)}\n"
            f"   To: {_label(flow.to_address, labels)}\n"
            f"   Amount: {format_amount(flow)} {flow.symbol or ''}".rstrip()
            + f"\n   Direction: {direction}"
        )
    text = "\n\n".join(blocks)
    if len(flows) > MAX_TOKEN_FLOW_LINES:
        text += f"\n\n... and {len(flows) - MAX_TOKEN_FLOW_LINES} more token transfers"
    return text


def describe_internal_txs(txs: list[InternalTransaction], limit: int = MAX_INTERNAL_TX_LINES) -> str:
    if not txs:
        return "No internal calls"
    lines = [
        f"{i}. {tx.call_type}: {tx.from_address[:10]}... -> {(tx.to_address or '(create)')[:10]}... "
        f"({wei_to_eth(tx.value)} ETH){' [reverted]' if tx.is_error else ''}"
        for i, tx in enumerate(txs[:limit], start=1)
    ]
    if len(txs) > limit:
        lines.append(f"... and {len(txs) - limit} more internal calls")
    return "\n".join(lines)


def describe_explorer_view(txs: list[InternalTransaction]) -> str:
    if not txs:
        return "No data"
    rows = [
        {
            "type": tx.call_type,
            "from": tx.from_address,
            "to": tx.to_address,
            "value": str(tx.value),
            "gas_used": tx.gas_used,
            "is_error": tx.is_error,
        }
        for tx in txs[:MAX_EXPLORER_TX_LINES]
    ]
    text = json.dumps(rows, indent=2)
    if len(txs) > MAX_EXPLORER_TX_LINES:
        text += f"\n... {len(txs) - MAX_EXPLORER_TX_LINES} more omitted"
    return text


def describe_trace(call_trace: CallTraceNode | None, flattened: list[FlattenedCall]) -> str:
    if call_trace is None:
        return "Not available (simulation not configured or failed)"
    text = "\n".join(
        f"{'  ' * c.depth}{c.call_type} {c.from_address} -> {c.to_address or '(create)'} "
        f"value={c.value} selector={c.selector or 'N/A'}{' ERROR=' + c.error if c.error else ''}"
        for c in flattened
    )
    if len(text) > MAX_TRACE_CHARS:
        text = text[:MAX_TRACE_CHARS] + "\n... (truncated)"
    return f"{call_trace.count()} frames, max depth {call_trace.max_depth()}\n{text}"


def build_draft_variables(
    tx_hash: str,
    chain_id: int,
    transaction: Transaction,
    token_flows: list[TokenFlow],
    pattern: PatternMatch,
    *,
    decoded_call: DecodedCall | None = None,
    address_labels: dict[str, str] | None = None,
    gas_context: GasContext | None = None,
    internal_txs: list[InternalTransaction] | None = None,
    internal_tx_source: str = "none",
    explorer_internal_txs: list[InternalTransaction] | None = None,
    call_trace: CallTraceNode | None = None,
    flattened_calls: list[FlattenedCall] | None = None,
    call_trace_explanation: str | None = None,
    contract_source: str | None = None,
) -> dict[str, Any]:
    """Variables for ``DRAFT_USER_PROMPT``."""
    labels = {k.lower(): v for k, v in (address_labels or {}).items()}
    internal_txs = internal_txs or []
    fee_wei = transaction.gas_used * transaction.gas_price

    return {
        "tx_hash": tx_hash,
        "chain_id": chain_id,
        "block_number": transaction.block_number,
        "status": "success" if transaction.status else "reverted",
        "from_display": _label(transaction.from_address, labels),
        "to_display": _label(transaction.to_address, labels),
        "value_eth": wei_to_eth(transaction.value),
        "gas_used": transaction.gas_used,
        "gas_price_gwei": format_units(transaction.gas_price, 9),
        "fee_eth": wei_to_eth(fee_wei),
        "gas_analysis": describe_gas(gas_context),
        "function_call": describe_function_call(decoded_call, labels),
        "flow_summary": describe_flow_summary(token_flows, transaction.from_address),
        "token_flow_count": len(token_flows),
        "token_flow_details": describe_token_flows(token_flows, transaction.from_address, labels),
        "internal_tx_count": len(internal_txs),
        "internal_tx_source": internal_tx_source,
        "internal_tx_details": describe_internal_txs(internal_txs),
        "explorer_view": describe_explorer_view(explorer_internal_txs or []),
        "trace_view": describe_trace(call_trace, flattened_calls or []),
        "call_trace_explanation": call_trace_explanation or "Not available",
        "pattern_type": pattern.pattern_type.value,
        "pattern_confidence": f"{pattern.confidence:.0%}",
        "pattern_details": json.dumps(pattern.details, default=str),
        "contract_source": contract_source or "Not available",
    }


def build_calltrace_explain_variables(
    flattened: list[FlattenedCall],
    enrichment: dict[str, AddressInfo],
    address_labels: dict[str, str] | None = None,
    max_calls: int = 80,
) -> dict[str, Any]:
    """Variables for ``CALLTRACE_EXPLAIN_USER_PROMPT``.

    Shows up to ``max_calls`` calls, indented by depth and numbered in
    execution order.
    """
    labels = {k.lower(): v for k, v in (address_labels or {}).items()}
    lines = [
        f"{'  ' * c.depth}{i}. {c.call_type} {_short(c.from_address, labels, enrichment)} -> "
        f"{_short(c.to_address, labels, enrichment)} | value: {wei_to_eth(c.value)} ETH | "
        f"selector: {c.selector or 'N/A'}"
        for i, c in enumerate(flattened[:max_calls], start=1)
    ]
    if len(flattened) > max_calls:
        lines.append(f"... and {len(flattened) - max_calls} more calls")

    table = "\n".join(
        f"- {address}: {info.label or 'unknown'} | contract: {info.is_contract} | "
        f"ABI: {len(info.abi or [])} entries"
        + ("" if info.resolved else " | lookup failed")
        for address, info in enrichment.items()
    )
    return {
        "call_count": len(flattened),
        "max_calls": max_calls,
        "call_lines": "\n".join(lines),
        "enrichment_table": table or "No enrichment",
    }


def build_ground_truth(transaction: Transaction, token_flows: list[TokenFlow]) -> str:
    """Numeric and address facts taken from the ledger only.

    The narrative is never used as a source here, so the check compares the
    draft against independent data.
    """
    lines = [
        f"- Block number: {transaction.block_number}",
        f"- Status: {'success' if transaction.status else 'reverted'}",
        f"- Gas used: {transaction.gas_used}",
        f"- Sender: {transaction.from_address}",
        f"- Recipient: {transaction.to_address or '(contract creation)'}",
        f"- ETH value: {wei_to_eth(transaction.value)} ETH",
    ]
    if transaction.contract_address:
        lines.append(f"- Created contract: {transaction.contract_address}")

    by_token = {flow.token.lower(): flow for flow in token_flows}
    for token, net in net_flows(token_flows, transaction.from_address).items():
        if net == 0:
            continue
        sample = by_token[token]
        amount = format_units(abs(net), sample.decimals) if sample.decimals is not None else str(abs(net))
        direction = "received" if net > 0 else "sent"
        lines.append(f"- Sender net {direction}: {amount} {token_display(sample)} ({token})")

    lines.append(f"- Token transfer events: {len(token_flows)}")
    return "\n".join(lines)


def parse_verification_reply(reply: str) -> list[str]:
    """Bullet lines are issues; anything else counts as a pass."""
    issues = []
    for line in reply.splitlines():
        stripped = line.strip()
        for prefix in ISSUE_PREFIXES:
            if stripped.startswith(prefix):
                issue = stripped[len(prefix):].strip()
                if issue:
                    issues.append(issue)
                break
    return issues


def extract_steps(explanation: str) -> list[str]:
    """Numbered lines ("1. ...") of the narrative, in order."""
    steps = []
    for line in explanation.splitlines():
        match = STEP_PATTERN.match(line)
        if match:
            steps.append(match.group(1).strip())
    return steps
