"""Token transfer extraction from receipt logs."""

from collections import OrderedDict

from txlens.models import Receipt, TokenFlow, TokenInfo
from txlens.processing.units import format_units, to_int

# keccak256("Transfer(address,address,uint256)"), shared by ERC-20 and ERC-721
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def _topic_to_address(topic: str) -> str:
    return "0x" + topic[-40:].lower()


def extract_token_flows(receipt: Receipt) -> list[TokenFlow]:
    """Collect Transfer events from the receipt in log order.

    ERC-721 transfers index the token id as a fourth topic and carry no
    data; those are recorded with ``token_id`` and an amount of 1.
    """
    flows = []
    for log in receipt.logs:
        topics = log.topics
        if len(topics) < 3 or topics[0].lower() != TRANSFER_TOPIC:
            continue

        if len(topics) >= 4:
            flows.append(
                TokenFlow(
                    token=log.address.lower(),
                    from_address=_topic_to_address(topics[1]),
                    to_address=_topic_to_address(topics[2]),
                    amount=1,
                    token_id=to_int(topics[3]),
                )
            )
            continue

        flows.append(
            TokenFlow(
                token=log.address.lower(),
                from_address=_topic_to_address(topics[1]),
                to_address=_topic_to_address(topics[2]),
                amount=to_int(log.data),
            )
        )
    return flows


def unique_tokens(flows: list[TokenFlow], limit: int | None = None) -> list[str]:
    """Distinct token contracts in first-seen order, optionally capped."""
    seen: dict[str, None] = {}
    for flow in flows:
        seen.setdefault(flow.token.lower(), None)
    tokens = list(seen)
    return tokens[:limit] if limit is not None else tokens


def apply_token_metadata(flows: list[TokenFlow], metadata: dict[str, TokenInfo]) -> list[TokenFlow]:
    """Return copies of ``flows`` with symbol/name/decimals filled in."""
    enriched = []
    for flow in flows:
        info = metadata.get(flow.token.lower())
        if info is None:
            enriched.append(flow)
            continue
        enriched.append(
            flow.model_copy(
                update={
                    "symbol": info.symbol,
                    "name": info.name,
                    "decimals": info.decimals,
                }
            )
        )
    return enriched


def net_flows(flows: list[TokenFlow], account: str) -> "OrderedDict[str, int]":
    """Net balance change per token for ``account`` (received minus sent)."""
    account = account.lower()
    totals: OrderedDict[str, int] = OrderedDict()
    for flow in flows:
        if flow.token_id is not None:
            continue
        token = flow.token.lower()
        if flow.to_address.lower() == account:
            totals[token] = totals.get(token, 0) + flow.amount
        if flow.from_address.lower() == account:
            totals[token] = totals.get(token, 0) - flow.amount
    return totals


def token_display(flow: TokenFlow) -> str:
    return flow.symbol or flow.name or flow.token


def format_amount(flow: TokenFlow) -> str:
    if flow.token_id is not None:
        return f"#{flow.token_id}"
    if flow.decimals is None:
        return f"{flow.amount} (raw)"
    return format_units(flow.amount, flow.decimals)


def summarize_flows(flows: list[TokenFlow], account: str) -> dict[str, list[str]]:
    """Directional summary of what ``account`` sent and received.

    Returns:
        Dict with ``sent`` and ``received`` lists of "<amount> <token>"
        strings, aggregated per token.
    """
    by_token = {flow.token.lower(): flow for flow in flows}
    sent, received = [], []
    for token, net in net_flows(flows, account).items():
        if net == 0:
            continue
        sample = by_token[token]
        amount = abs(net)
        text = (
            format_units(amount, sample.decimals)
            if sample.decimals is not None
            else f"{amount} (raw)"
        )
        line = f"{text} {token_display(sample)}"
        (received if net > 0 else sent).append(line)
    return {"sent": sent, "received": received}
