"""Unit tests for call-trace flattening and address enrichment."""

import asyncio

import pytest
from conftest import (
    CONTRACT_CODE,
    PAIR,
    ROUTER,
    ROUTER_ABI,
    SENDER,
    USDC,
    WETH,
    FakeExplorer,
    FakeLabelStore,
    FakeLedger,
    build_trace,
)

from txlens.models import CallTraceNode, FlattenedCall, InternalTransaction
from txlens.processing.calltrace import (
    TRUNCATION_MARKER,
    enrich_addresses,
    flatten_call_tree,
    rebuild_call_tree,
    truncate_source,
    unique_addresses,
    wrap_internal_transactions,
)


def deep_chain(depth: int) -> CallTraceNode:
    root = CallTraceNode(from_address="0x00")
    node = root
    for i in range(depth):
        child = CallTraceNode(from_address=f"0x{i:02x}")
        node.calls.append(child)
        node = child
    return root


class TestFlattenCallTree:
    """Tests for pre-order flattening."""

    def test_pre_order_with_depths(self):
        flattened = flatten_call_tree(build_trace())

        assert [c.index for c in flattened] == [0, 1, 2, 3]
        assert [c.depth for c in flattened] == [0, 1, 1, 2]
        assert [c.to_address for c in flattened] == [ROUTER, WETH, PAIR, USDC]
        assert [c.selector for c in flattened] == ["0x38ed1739", "0x23b872dd", "0x022c0d9f", "0xa9059cbb"]

    def test_single_frame(self):
        flattened = flatten_call_tree(CallTraceNode(from_address=SENDER, to_address=ROUTER))
        assert len(flattened) == 1
        assert flattened[0].depth == 0
        assert flattened[0].selector is None

    def test_deep_trace_does_not_recurse(self):
        flattened = flatten_call_tree(deep_chain(5000))
        assert len(flattened) == 5001
        assert flattened[-1].depth == 5000

    def test_depth_never_jumps(self):
        flattened = flatten_call_tree(build_trace())
        for previous, current in zip(flattened, flattened[1:]):
            assert current.depth <= previous.depth + 1


class TestRebuildCallTree:
    """Tests for rebuilding a tree from its flattening."""

    def test_round_trip(self):
        original = build_trace()
        rebuilt = rebuild_call_tree(flatten_call_tree(original))

        assert flatten_call_tree(rebuilt) == flatten_call_tree(original)
        assert rebuilt.count() == original.count()

    def test_empty(self):
        assert rebuild_call_tree([]) is None

    def test_rejects_depth_jump(self):
        calls = [
            FlattenedCall(depth=0, index=0, from_address="0xa"),
            FlattenedCall(depth=2, index=1, from_address="0xb"),
        ]
        with pytest.raises(ValueError):
            rebuild_call_tree(calls)

    def test_rejects_second_root(self):
        calls = [
            FlattenedCall(depth=0, index=0, from_address="0xa"),
            FlattenedCall(depth=0, index=1, from_address="0xb"),
        ]
        with pytest.raises(ValueError):
            rebuild_call_tree(calls)


class TestWrapInternalTransactions:
    """Tests for presenting the explorer list as calls."""

    def test_depth_zero_in_order(self):
        txs = [
            InternalTransaction(from_address=ROUTER, to_address=SENDER, value=5, call_type="call"),
            InternalTransaction(from_address=ROUTER, to_address=PAIR, call_type="delegatecall", is_error=True),
        ]
        wrapped = wrap_internal_transactions(txs)

        assert [c.depth for c in wrapped] == [0, 0]
        assert [c.index for c in wrapped] == [0, 1]
        assert wrapped[0].call_type == "CALL"
        assert wrapped[0].value == 5
        assert wrapped[1].error == "reverted"

    def test_empty(self):
        assert wrap_internal_transactions([]) == []


class TestAddressHelpers:
    """Tests for address collection and source truncation."""

    def test_unique_addresses_first_seen(self):
        addresses = unique_addresses(flatten_call_tree(build_trace()))
        assert addresses == [SENDER, ROUTER, WETH, PAIR, USDC]

    def test_unique_addresses_skips_creation_target(self):
        calls = [FlattenedCall(depth=0, index=0, from_address=SENDER.upper().replace("0X", "0x"), to_address=None)]
        assert unique_addresses(calls) == [SENDER]

    def test_truncate_source(self):
        assert truncate_source("abcdef", 3) == "abc" + TRUNCATION_MARKER
        assert truncate_source("abc", 3) == "abc"
        assert truncate_source(None, 3) is None
        assert truncate_source("abcdef", 2, marker="…") == "ab…"


class FailingBytecodeLedger(FakeLedger):
    async def get_bytecode(self, address):
        if address == PAIR:
            raise ConnectionError("node down")
        return await super().get_bytecode(address)


class SlowExplorer(FakeExplorer):
    async def get_contract_source(self, address):
        await asyncio.sleep(5)
        return "never"


class CountingLedger(FakeLedger):
    """Tracks how many bytecode reads are in flight at once."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.in_flight = 0
        self.peak = 0

    async def get_bytecode(self, address):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().get_bytecode(address)
        finally:
            self.in_flight -= 1


class TestEnrichAddresses:
    """Tests for concurrent address enrichment."""

    @pytest.fixture
    def ledger(self):
        return FakeLedger(code={ROUTER: CONTRACT_CODE, PAIR: CONTRACT_CODE, WETH: CONTRACT_CODE})

    @pytest.fixture
    def explorer(self):
        return FakeExplorer(abis={ROUTER: ROUTER_ABI}, sources={ROUTER: "x" * 100})

    @pytest.fixture
    def labels(self):
        return FakeLabelStore({ROUTER: "Uniswap V2: Router", SENDER: "Some EOA"})

    @pytest.mark.asyncio
    async def test_records_per_address(self, ledger, explorer, labels):
        enrichment = await enrich_addresses([SENDER, ROUTER, WETH], 1, ledger, explorer, labels)

        assert list(enrichment) == [SENDER, ROUTER, WETH]
        assert enrichment[SENDER].is_contract is False
        assert enrichment[SENDER].label == "Some EOA"
        assert enrichment[SENDER].abi is None
        assert enrichment[ROUTER].is_contract is True
        assert enrichment[ROUTER].label == "Uniswap V2: Router"
        assert enrichment[ROUTER].abi == ROUTER_ABI
        assert enrichment[ROUTER].source == "x" * 100
        # Verified ABI missing is not a failure
        assert enrichment[WETH].is_contract is True
        assert enrichment[WETH].abi is None
        assert enrichment[WETH].resolved is True

    @pytest.mark.asyncio
    async def test_caps_candidates(self, ledger, explorer, labels):
        addresses = [f"0x{i:040x}" for i in range(30)]
        enrichment = await enrich_addresses(addresses, 1, ledger, explorer, labels, max_addresses=20)

        assert len(enrichment) == 20
        assert list(enrichment) == addresses[:20]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, explorer, labels):
        ledger = CountingLedger()
        addresses = [f"0x{i:040x}" for i in range(12)]

        enrichment = await enrich_addresses(addresses, 1, ledger, explorer, labels, concurrency=3)

        assert len(enrichment) == 12
        assert ledger.peak == 3

    @pytest.mark.asyncio
    async def test_source_truncated(self, ledger, explorer, labels):
        enrichment = await enrich_addresses([ROUTER], 1, ledger, explorer, labels, source_char_limit=10)
        assert enrichment[ROUTER].source == "x" * 10 + TRUNCATION_MARKER

    @pytest.mark.asyncio
    async def test_bytecode_failure_gives_unknown(self, explorer, labels):
        ledger = FailingBytecodeLedger(code={ROUTER: CONTRACT_CODE})

        enrichment = await enrich_addresses([ROUTER, PAIR], 1, ledger, explorer, labels)

        assert enrichment[ROUTER].resolved is True
        assert enrichment[PAIR].resolved is False
        assert enrichment[PAIR].label is None
        assert enrichment[PAIR].is_contract is False

    @pytest.mark.asyncio
    async def test_slow_source_times_out(self, ledger, labels):
        explorer = SlowExplorer(abis={ROUTER: ROUTER_ABI})

        enrichment = await enrich_addresses([ROUTER], 1, ledger, explorer, labels, timeout=0.05)

        assert enrichment[ROUTER].abi == ROUTER_ABI
        assert enrichment[ROUTER].source is None

    @pytest.mark.asyncio
    async def test_explorer_down(self, ledger, labels):
        enrichment = await enrich_addresses([ROUTER], 1, ledger, FakeExplorer(fail=True), labels)

        assert enrichment[ROUTER].is_contract is True
        assert enrichment[ROUTER].abi is None
        assert enrichment[ROUTER].source is None

    @pytest.mark.asyncio
    async def test_empty(self, ledger, explorer, labels):
        assert await enrich_addresses([], 1, ledger, explorer, labels) == {}
