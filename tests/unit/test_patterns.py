"""Unit tests for the heuristic pattern classifier."""

from conftest import PAIR, ROUTER, SENDER, USDC, WETH

from txlens.models import PatternMatch, PatternType, TokenFlow, Transaction
from txlens.processing.patterns import (
    LARGE_SWAP_THRESHOLD,
    HeuristicPatternClassifier,
    PatternClassifier,
    detect_arbitrage,
    detect_sandwich,
)


def make_tx(to_address=ROUTER) -> Transaction:
    return Transaction(hash="0x01", from_address=SENDER, to_address=to_address, block_number=1)


def flow(token, src, dst, amount) -> TokenFlow:
    return TokenFlow(token=token, from_address=src, to_address=dst, amount=amount)


class TestDetectors:
    """Tests for individual detectors."""

    def test_arbitrage_needs_profit_and_two_tokens(self):
        flows = [flow(WETH, SENDER, PAIR, 10), flow(USDC, PAIR, SENDER, 20)]
        match = detect_arbitrage(make_tx(), flows)

        assert match.pattern_type == PatternType.ARBITRAGE
        assert match.confidence == 0.7
        assert match.details["unique_tokens"] == 2
        assert match.details["net_flows"] == {WETH: "-10", USDC: "20"}

    def test_no_arbitrage_with_single_token(self):
        flows = [flow(WETH, PAIR, SENDER, 10)]
        assert detect_arbitrage(make_tx(), flows) is None

    def test_no_arbitrage_without_profit(self):
        flows = [flow(WETH, SENDER, PAIR, 10), flow(USDC, SENDER, PAIR, 20)]
        assert detect_arbitrage(make_tx(), flows) is None

    def test_sandwich_on_large_transfer(self):
        flows = [flow(WETH, PAIR, ROUTER, LARGE_SWAP_THRESHOLD + 1), flow(USDC, ROUTER, PAIR, 1)]
        match = detect_sandwich(make_tx(), flows)

        assert match.pattern_type == PatternType.SANDWICH
        assert match.confidence == 0.3
        assert match.details["flow_count"] == 2

    def test_no_sandwich_on_small_transfers(self):
        flows = [flow(WETH, PAIR, ROUTER, 1), flow(USDC, ROUTER, PAIR, 1)]
        assert detect_sandwich(make_tx(), flows) is None


class TestHeuristicPatternClassifier:
    """Tests for the shipped classifier."""

    def test_implements_interface(self):
        assert isinstance(HeuristicPatternClassifier(), PatternClassifier)

    def test_contract_creation_is_unknown(self):
        match = HeuristicPatternClassifier().classify(make_tx(to_address=None), [])
        assert match.pattern_type == PatternType.UNKNOWN
        assert match.details == {"reason": "contract creation"}

    def test_no_flows_is_unknown(self):
        match = HeuristicPatternClassifier().classify(make_tx(), [])
        assert match == PatternMatch()

    def test_highest_confidence_wins(self):
        flows = [
            flow(WETH, SENDER, PAIR, LARGE_SWAP_THRESHOLD * 2),
            flow(USDC, PAIR, SENDER, 5),
        ]
        match = HeuristicPatternClassifier().classify(make_tx(), flows)
        assert match.pattern_type == PatternType.ARBITRAGE

    def test_custom_classifier_satisfies_protocol(self):
        class AlwaysLiquidation:
            def classify(self, transaction, token_flows):
                return PatternMatch(pattern_type=PatternType.LIQUIDATION, confidence=0.9)

        assert isinstance(AlwaysLiquidation(), PatternClassifier)
