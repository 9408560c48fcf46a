"""Unit tests for token transfer extraction."""

from conftest import PAIR, SENDER, USDC, WETH, address_topic, transfer_log, word

from txlens.models import LogEntry, Receipt, TokenFlow, TokenInfo
from txlens.processing.token_flows import (
    TRANSFER_TOPIC,
    apply_token_metadata,
    extract_token_flows,
    format_amount,
    net_flows,
    summarize_flows,
    unique_tokens,
)


class TestExtractTokenFlows:
    """Tests for Transfer log parsing."""

    def test_erc20_transfers_in_log_order(self, receipt):
        flows = extract_token_flows(receipt)

        assert [f.token for f in flows] == [WETH, USDC]
        assert flows[0].from_address == SENDER
        assert flows[0].to_address == PAIR
        assert flows[0].amount == 10**18
        assert flows[1].amount == 2000 * 10**6
        assert flows[1].token_id is None

    def test_ignores_other_events(self):
        receipt = Receipt(
            logs=[
                LogEntry(address=WETH, topics=["0x" + "00" * 32, address_topic(SENDER), address_topic(PAIR)]),
                LogEntry(address=WETH, topics=[TRANSFER_TOPIC]),
            ]
        )
        assert extract_token_flows(receipt) == []

    def test_erc721_transfer(self):
        nft = "0x" + "cc" * 20
        receipt = Receipt(
            logs=[
                LogEntry(
                    address=nft,
                    topics=[TRANSFER_TOPIC, address_topic(SENDER), address_topic(PAIR), "0x" + word(7)],
                    data="0x",
                )
            ]
        )
        flows = extract_token_flows(receipt)

        assert len(flows) == 1
        assert flows[0].token_id == 7
        assert flows[0].amount == 1

    def test_empty_receipt(self):
        assert extract_token_flows(Receipt()) == []


class TestTokenHelpers:
    """Tests for token flow helpers."""

    def test_unique_tokens_first_seen_order(self):
        flows = [
            TokenFlow(token=USDC, from_address=SENDER, to_address=PAIR, amount=1),
            TokenFlow(token=WETH, from_address=SENDER, to_address=PAIR, amount=1),
            TokenFlow(token=USDC.upper().replace("0X", "0x"), from_address=PAIR, to_address=SENDER, amount=1),
        ]
        assert unique_tokens(flows) == [USDC, WETH]
        assert unique_tokens(flows, limit=1) == [USDC]

    def test_apply_token_metadata(self, receipt):
        flows = extract_token_flows(receipt)
        enriched = apply_token_metadata(flows, {WETH: TokenInfo(name="Wrapped Ether", symbol="WETH", decimals=18)})

        assert enriched[0].symbol == "WETH"
        assert enriched[0].decimals == 18
        assert enriched[1].symbol is None
        # Originals untouched
        assert flows[0].symbol is None

    def test_net_flows(self, receipt):
        nets = net_flows(extract_token_flows(receipt), SENDER)
        assert nets == {WETH: -(10**18), USDC: 2000 * 10**6}

    def test_format_amount(self):
        flow = TokenFlow(token=USDC, from_address=SENDER, to_address=PAIR, amount=2_500_000, decimals=6)
        assert format_amount(flow) == "2.5"
        assert format_amount(flow.model_copy(update={"decimals": None})) == "2500000 (raw)"
        assert format_amount(flow.model_copy(update={"token_id": 3})) == "#3"

    def test_summarize_flows(self, receipt):
        flows = apply_token_metadata(
            extract_token_flows(receipt),
            {
                WETH: TokenInfo(symbol="WETH", decimals=18),
                USDC: TokenInfo(symbol="USDC", decimals=6),
            },
        )
        summary = summarize_flows(flows, SENDER)

        assert summary == {"sent": ["1 WETH"], "received": ["2000 USDC"]}

    def test_summarize_self_transfer_is_silent(self):
        flows = [transfer_log(WETH, SENDER, SENDER, 5)]
        receipt = Receipt(logs=flows)
        assert summarize_flows(extract_token_flows(receipt), SENDER) == {"sent": [], "received": []}
