"""Unit tests for prompt variable builders and reply parsers."""

from conftest import PAIR, ROUTER, SENDER, USDC, WETH, build_trace

from txlens.config.prompts import CALLTRACE_EXPLAIN_USER_PROMPT, DRAFT_USER_PROMPT, VERIFY_USER_PROMPT
from txlens.models import (
    AddressInfo,
    DecodedCall,
    GasContext,
    InternalTransaction,
    PatternMatch,
    PatternType,
    TokenFlow,
    Transaction,
)
from txlens.processing.calltrace import flatten_call_tree
from txlens.processing.prompt_context import (
    build_calltrace_explain_variables,
    build_draft_variables,
    build_ground_truth,
    describe_function_call,
    describe_gas,
    describe_internal_txs,
    describe_trace,
    extract_steps,
    parse_verification_reply,
)


def make_tx(**overrides) -> Transaction:
    fields = {
        "hash": "0x" + "ab" * 32,
        "from_address": SENDER,
        "to_address": ROUTER,
        "value": 0,
        "gas_used": 120_000,
        "gas_price": 30 * 10**9,
        "block_number": 18_000_000,
    }
    fields.update(overrides)
    return Transaction(**fields)


def swap_flows() -> list[TokenFlow]:
    return [
        TokenFlow(token=WETH, from_address=SENDER, to_address=PAIR, amount=10**18, symbol="WETH", decimals=18),
        TokenFlow(token=USDC, from_address=PAIR, to_address=SENDER, amount=2000 * 10**6, symbol="USDC", decimals=6),
    ]


class TestDraftVariables:
    """Tests for draft prompt variables."""

    def test_covers_every_placeholder(self):
        variables = build_draft_variables("0x" + "ab" * 32, 1, make_tx(), swap_flows(), PatternMatch())

        # Formatting must not leave any placeholder unfilled
        DRAFT_USER_PROMPT.format(**variables)

    def test_facts(self):
        variables = build_draft_variables(
            "0x" + "ab" * 32,
            1,
            make_tx(),
            swap_flows(),
            PatternMatch(pattern_type=PatternType.ARBITRAGE, confidence=0.7),
            address_labels={ROUTER: "Uniswap V2: Router"},
            internal_tx_source="trace",
        )

        assert variables["status"] == "success"
        assert variables["to_display"] == f"{ROUTER} [Uniswap V2: Router]"
        assert variables["gas_price_gwei"] == "30"
        assert variables["fee_eth"] == "0.0036"
        assert variables["token_flow_count"] == 2
        assert "Sent:\n  - 1 WETH" in variables["flow_summary"]
        assert "Received:\n  - 2000 USDC" in variables["flow_summary"]
        assert "Direction: outbound" in variables["token_flow_details"]
        assert variables["pattern_type"] == "arbitrage"
        assert variables["pattern_confidence"] == "70%"
        assert variables["internal_tx_source"] == "trace"
        assert variables["trace_view"].startswith("Not available")
        assert variables["contract_source"] == "Not available"

    def test_reverted_and_creation(self):
        variables = build_draft_variables(
            "0x01", 1, make_tx(to_address=None, status=False), [], PatternMatch()
        )
        assert variables["status"] == "reverted"
        assert variables["to_display"] == "(contract creation)"
        assert variables["token_flow_details"] == "No token transfers"


class TestDescribers:
    """Tests for individual prompt sections."""

    def test_function_call_with_abi(self):
        decoded = DecodedCall(
            contract=ROUTER,
            function_name="swapExactTokensForTokens",
            args=[10**18, 1],
            decoded_with_abi=True,
        )
        text = describe_function_call(decoded, {ROUTER: "Uniswap V2: Router"})

        assert "Called function: swapExactTokensForTokens" in text
        assert "Contract: Uniswap V2: Router" in text
        assert "Parameters: [1000000000000000000, 1]" in text
        assert "Decoded with verified ABI" in text

    def test_function_call_selector_only(self):
        decoded = DecodedCall(contract=ROUTER, function_name="0xdeadbeef", raw_params="00" * 10)
        text = describe_function_call(decoded, {})

        assert "Raw data: 0x" in text
        assert "Identified by selector only" in text

    def test_no_function_call(self):
        assert describe_function_call(None, {}).startswith("No function call")

    def test_gas(self):
        text = describe_gas(GasContext(tx_gas_price_gwei=90.0, reference_gas_price_gwei=25.0, is_abnormal=True))
        assert "Reference gas price: 25.0 Gwei" in text
        assert "Abnormal: yes" in text
        assert describe_gas(None) == "No gas reference available"

    def test_internal_txs_capped(self):
        txs = [InternalTransaction(from_address=ROUTER, to_address=SENDER, value=1) for _ in range(7)]
        text = describe_internal_txs(txs)
        assert text.count("\n") == 5
        assert text.endswith("... and 2 more internal calls")

    def test_trace_view(self):
        trace = build_trace()
        text = describe_trace(trace, flatten_call_tree(trace))
        assert text.startswith("4 frames, max depth 2")
        assert "selector=0xa9059cbb" in text


class TestCalltraceExplainVariables:
    """Tests for call-trace prompt variables."""

    def test_numbered_and_indented(self):
        flattened = flatten_call_tree(build_trace())
        enrichment = {
            ROUTER: AddressInfo(label="Uniswap V2: Router", is_contract=True),
            PAIR: AddressInfo.unknown(),
        }

        variables = build_calltrace_explain_variables(flattened, enrichment)
        lines = variables["call_lines"].splitlines()

        assert variables["call_count"] == 4
        assert lines[0].startswith("1. CALL")
        assert "[Uniswap V2: Router]" in lines[0]
        assert lines[3].startswith("    4. CALL")
        assert "lookup failed" in variables["enrichment_table"]
        CALLTRACE_EXPLAIN_USER_PROMPT.format(**variables)

    def test_capped(self):
        flattened = flatten_call_tree(build_trace())
        variables = build_calltrace_explain_variables(flattened, {}, max_calls=2)

        assert variables["call_lines"].endswith("... and 2 more calls")
        assert variables["enrichment_table"] == "No enrichment"


class TestGroundTruth:
    """Tests for the ledger-only fact sheet."""

    def test_contains_ledger_facts(self):
        text = build_ground_truth(make_tx(), swap_flows())

        assert "- Block number: 18000000" in text
        assert "- Gas used: 120000" in text
        assert f"- Sender net sent: 1 WETH ({WETH})" in text
        assert f"- Sender net received: 2000 USDC ({USDC})" in text
        VERIFY_USER_PROMPT.format(ground_truth=text, call_trace_explanation="Not available", draft="draft")
        VERIFY_USER_PROMPT.format(ground_truth=text, draft="draft")

    def test_contract_creation(self):
        text = build_ground_truth(make_tx(to_address=None, contract_address="0x" + "99" * 20), [])
        assert "(contract creation)" in text
        assert "Created contract" in text


class TestReplyParsing:
    """Tests for parsing model replies."""

    def test_pass(self):
        assert parse_verification_reply("PASS") == []

    def test_issues(self):
        reply = "Found problems:\n- Block number is wrong\n* Amount mismatch\n• Wrong sender\n-   \n"
        assert parse_verification_reply(reply) == [
            "Block number is wrong",
            "Amount mismatch",
            "Wrong sender",
        ]

    def test_extract_steps(self):
        text = "Summary line.\n\n1. First step\n  2.  Second step\n3.missing space\n10. Tenth"
        assert extract_steps(text) == ["First step", "Second step", "Tenth"]

    def test_no_steps(self):
        assert extract_steps("Just prose.") == []
