"""Pattern classification over token flows.

The classifier is a pluggable interface; ``HeuristicPatternClassifier`` is
the shipped implementation and its confidences are rough priors, not
calibrated probabilities.
"""

from typing import Protocol, runtime_checkable

from txlens.models import PatternMatch, PatternType, TokenFlow, Transaction
from txlens.processing.token_flows import net_flows

# Raw amount above which a transfer counts as a large swap (100 tokens at 18 decimals)
LARGE_SWAP_THRESHOLD = 10**20


@runtime_checkable
class PatternClassifier(Protocol):
    """Labels a transaction with an economic behaviour pattern."""

    def classify(self, transaction: Transaction, token_flows: list[TokenFlow]) -> PatternMatch: ...


def detect_arbitrage(transaction: Transaction, token_flows: list[TokenFlow]) -> PatternMatch | None:
    """Sender ends up with a net gain in some token across two or more tokens."""
    nets = net_flows(token_flows, transaction.from_address)
    has_profit = any(net > 0 for net in nets.values())
    token_count = len({flow.token.lower() for flow in token_flows})

    if has_profit and token_count >= 2:
        return PatternMatch(
            pattern_type=PatternType.ARBITRAGE,
            confidence=0.7,
            details={
                "unique_tokens": token_count,
                "net_flows": {token: str(net) for token, net in nets.items()},
            },
        )
    return None


def detect_sandwich(transaction: Transaction, token_flows: list[TokenFlow]) -> PatternMatch | None:
    """Large multi-transfer swap: a possible sandwich victim or leg.

    Confirming a sandwich needs the neighbouring transactions in the block,
    which are not fetched, hence the low confidence.
    """
    if len(token_flows) >= 2 and any(flow.amount > LARGE_SWAP_THRESHOLD for flow in token_flows):
        return PatternMatch(
            pattern_type=PatternType.SANDWICH,
            confidence=0.3,
            details={
                "note": "Potential large swap (needs surrounding transactions to confirm)",
                "flow_count": len(token_flows),
            },
        )
    return None


class HeuristicPatternClassifier(PatternClassifier):
    """Runs each detector and keeps the most confident match."""

    detectors = (detect_arbitrage, detect_sandwich)

    def classify(self, transaction: Transaction, token_flows: list[TokenFlow]) -> PatternMatch:
        if transaction.is_contract_creation:
            return PatternMatch(details={"reason": "contract creation"})

        matches = [m for m in (d(transaction, token_flows) for d in self.detectors) if m]
        if not matches:
            return PatternMatch()
        return max(matches, key=lambda m: m.confidence)
