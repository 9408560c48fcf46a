"""Pytest configuration and fixtures."""

import pytest

from txlens.config.settings import Settings
from txlens.llm.generator import NarrativeError
from txlens.models import (
    CallTraceNode,
    GasReference,
    InternalTransaction,
    LedgerTransaction,
    LogEntry,
    Receipt,
    TokenInfo,
)
from txlens.pipeline.runtime import PipelineServices
from txlens.processing.patterns import HeuristicPatternClassifier
from txlens.processing.token_flows import TRANSFER_TOPIC
from txlens.sources.base import SourceUnavailable
from txlens.sources.selectors import SelectorDatabase

TX_HASH = "0x" + "ab" * 32
SENDER = "0x1111111111111111111111111111111111111111"
ROUTER = "0x7a250d5630b4cf539739df2c5dacb4c659f2488d"
PAIR = "0xb4e16d0168e52d35cacd2c6185b44281ec28c9dc"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"

CONTRACT_CODE = "0x6080604052"

ROUTER_ABI = [
    {
        "type": "function",
        "name": "swapExactTokensForTokens",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
    {"type": "event", "name": "Sync", "inputs": []},
]

DRAFT_TEXT = """The sender swapped 1 WETH for 2000 USDC through the Uniswap V2 router.

1. The router pulled 1 WETH from the sender into the WETH/USDC pair.
2. The pair executed the swap.
3. The pair sent 2000 USDC to the sender.
"""


def word(value: int) -> str:
    return format(value, "064x")


def address_word(address: str) -> str:
    return "0" * 24 + address[2:].lower()


def address_topic(address: str) -> str:
    return "0x" + address_word(address)


def encode_swap_input() -> str:
    """Calldata for swapExactTokensForTokens(1e18, 1990e6, [WETH, USDC], SENDER, 1700000000)."""
    return (
        "0x38ed1739"
        + word(10**18)
        + word(1990 * 10**6)
        + word(0xA0)
        + address_word(SENDER)
        + word(1_700_000_000)
        + word(2)
        + address_word(WETH)
        + address_word(USDC)
    )


def transfer_log(token: str, sender: str, recipient: str, amount: int) -> LogEntry:
    return LogEntry(
        address=token,
        topics=[TRANSFER_TOPIC, address_topic(sender), address_topic(recipient)],
        data="0x" + word(amount),
    )


def build_trace() -> CallTraceNode:
    """Four frames: swap -> (transferFrom, swap -> transfer)."""
    return CallTraceNode(
        call_type="CALL",
        from_address=SENDER,
        to_address=ROUTER,
        input=encode_swap_input(),
        gas=200_000,
        gas_used=120_000,
        calls=[
            CallTraceNode(
                call_type="CALL",
                from_address=ROUTER,
                to_address=WETH,
                input="0x23b872dd" + address_word(SENDER) + address_word(PAIR) + word(10**18),
            ),
            CallTraceNode(
                call_type="CALL",
                from_address=ROUTER,
                to_address=PAIR,
                input="0x022c0d9f" + word(0) + word(2000 * 10**6),
                calls=[
                    CallTraceNode(
                        call_type="CALL",
                        from_address=PAIR,
                        to_address=USDC,
                        input="0xa9059cbb" + address_word(SENDER) + word(2000 * 10**6),
                    ),
                ],
            ),
        ],
    )


class FakeLedger:
    """In-memory ledger. ``fail`` makes every call raise."""

    def __init__(self, transaction=None, receipt=None, code=None, calls=None, fail=False):
        self.transaction = transaction
        self.receipt = receipt
        self.code = code or {}
        self.calls = calls or {}
        self.fail = fail
        self.requests = []

    async def get_transaction(self, tx_hash):
        self.requests.append(("get_transaction", tx_hash))
        if self.fail:
            raise ConnectionError("ledger down")
        return self.transaction

    async def get_receipt(self, tx_hash):
        self.requests.append(("get_receipt", tx_hash))
        if self.fail:
            raise ConnectionError("ledger down")
        return self.receipt

    async def get_bytecode(self, address):
        self.requests.append(("get_bytecode", address))
        return self.code.get(address.lower(), "0x")

    async def call(self, address, data):
        self.requests.append(("call", address, data))
        return self.calls.get((address.lower(), data))


class FakeTrace:
    def __init__(self, root=None, fail=False):
        self.root = root
        self.fail = fail
        self.requests = []

    async def trace_transaction(self, tx_hash):
        self.requests.append(tx_hash)
        if self.fail:
            raise SourceUnavailable("trace", "trace simulation is not configured")
        return self.root


class FakeExplorer:
    """In-memory explorer. ``fail`` makes every call raise."""

    def __init__(self, internal_txs=None, abis=None, sources=None, tokens=None, gas=None, fail=False):
        self.internal_txs = internal_txs or []
        self.abis = abis or {}
        self.sources = sources or {}
        self.tokens = tokens or {}
        self.gas = gas
        self.fail = fail
        self.requests = []

    def _check(self, name, *args):
        self.requests.append((name, *args))
        if self.fail:
            raise RuntimeError("explorer down")

    async def get_internal_transactions(self, tx_hash):
        self._check("internal_txs", tx_hash)
        return list(self.internal_txs)

    async def get_contract_abi(self, address):
        self._check("abi", address)
        return self.abis.get(address.lower())

    async def get_contract_source(self, address):
        self._check("source", address)
        return self.sources.get(address.lower())

    async def get_token_info(self, address):
        self._check("token_info", address)
        return self.tokens.get(address.lower())

    async def get_gas_price_reference(self, block_number):
        self._check("gas", block_number)
        return self.gas


class FakeLabelStore:
    def __init__(self, labels=None):
        self.labels = {k.lower(): v for k, v in (labels or {}).items()}

    def lookup_label(self, address, chain_id):
        return self.labels.get(address.lower())


class FakeGenerator:
    """Canned replies keyed by ``context_name``; streams word by word."""

    def __init__(self, replies=None, fail_on=()):
        self.replies = {
            "calltrace_explain": "1. The sender called the router.\n2. The router moved tokens.",
            "draft": DRAFT_TEXT,
            "verify": "PASS",
        }
        self.replies.update(replies or {})
        self.fail_on = set(fail_on)
        self.calls = []

    async def generate(
        self,
        system_prompt,
        user_template,
        variables,
        *,
        temperature=None,
        on_chunk=None,
        context_name="chain",
    ):
        self.calls.append({"context_name": context_name, "variables": variables})
        if context_name in self.fail_on:
            raise NarrativeError(f"{context_name} model unavailable")
        text = self.replies.get(context_name, "")
        if on_chunk is not None:
            for piece in text.split(" "):
                await on_chunk(piece + " ")
        return text


@pytest.fixture
def settings() -> Settings:
    return Settings(
        explorer_api_key="test-key",
        source_timeout_seconds=1.0,
        ledger_timeout_seconds=1.0,
        supported_chain_ids=[1, 137],
        label_db_path=None,
        selector_db_path=None,
    )


@pytest.fixture
def ledger_tx() -> LedgerTransaction:
    return LedgerTransaction(
        hash=TX_HASH,
        from_address=SENDER,
        to_address=ROUTER,
        value=0,
        gas_price=30 * 10**9,
        block_number=18_000_000,
        input=encode_swap_input(),
        nonce=7,
    )


@pytest.fixture
def receipt() -> Receipt:
    return Receipt(
        status=True,
        gas_used=120_000,
        effective_gas_price=30 * 10**9,
        logs=[
            transfer_log(WETH, SENDER, PAIR, 10**18),
            transfer_log(USDC, PAIR, SENDER, 2000 * 10**6),
        ],
    )


@pytest.fixture
def explorer_internal_txs() -> list[InternalTransaction]:
    return [
        InternalTransaction(from_address=ROUTER, to_address=SENDER, value=5 * 10**15, call_type="call"),
    ]


@pytest.fixture
def make_services(settings, ledger_tx, receipt, explorer_internal_txs):
    """Factory for services wired with fakes; keyword overrides replace parts."""

    def factory(**overrides) -> PipelineServices:
        parts = {
            "ledger": FakeLedger(
                transaction=ledger_tx,
                receipt=receipt,
                code={ROUTER: CONTRACT_CODE, PAIR: CONTRACT_CODE, WETH: CONTRACT_CODE, USDC: CONTRACT_CODE},
            ),
            "trace": FakeTrace(root=build_trace()),
            "explorer": FakeExplorer(
                internal_txs=explorer_internal_txs,
                abis={ROUTER: ROUTER_ABI},
                sources={ROUTER: "contract UniswapV2Router02 {}"},
                tokens={
                    WETH: TokenInfo(name="Wrapped Ether", symbol="WETH", decimals=18),
                    USDC: TokenInfo(name="USD Coin", symbol="USDC", decimals=6),
                },
                gas=GasReference(gas_price_gwei=25.0, base_fee_gwei=24.0),
            ),
            "labels": FakeLabelStore({ROUTER: "Uniswap V2: Router", WETH: "Wrapped Ether"}),
            "selectors": SelectorDatabase(None),
            "generator": FakeGenerator(),
            "classifier": HeuristicPatternClassifier(),
            "settings": settings,
        }
        parts.update(overrides)
        return PipelineServices(**parts)

    return factory


@pytest.fixture
def recorder():
    """Progress sink that records every event."""

    class Recorder:
        def __init__(self):
            self.events = []

        def __call__(self, event):
            self.events.append(event)

        @property
        def types(self):
            return [e.type.value for e in self.events]

        def of_type(self, name):
            return [e for e in self.events if e.type.value == name]

    return Recorder()
