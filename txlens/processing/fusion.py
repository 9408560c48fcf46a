"""Reconciliation of overlapping data sources.

Two sources describe internal calls: the execution trace (complete call
tree) and the explorer's internal-transaction list (value transfers only).
They are never merged field by field. The trace wins outright whenever it
produced anything, otherwise the explorer list is used as-is.
"""

import structlog

from txlens.models import (
    FlattenedCall,
    GasContext,
    GasReference,
    InternalTransaction,
    InternalTxSource,
)
from txlens.processing.units import wei_to_gwei

logger = structlog.get_logger(__name__)


def internal_txs_from_flattened(calls: list[FlattenedCall]) -> list[InternalTransaction]:
    """Internal-transaction view of a flattened trace, one entry per frame.

    The root frame (the top-level call itself) is included, so a trace is
    never empty once the simulation answered.
    """
    return [
        InternalTransaction(
            from_address=call.from_address,
            to_address=call.to_address,
            value=call.value,
            call_type=call.call_type.lower(),
            gas=call.gas,
            gas_used=call.gas_used,
            is_error=call.error is not None,
            input=call.input,
        )
        for call in calls
    ]


def fuse_internal_transactions(
    trace_view: list[InternalTransaction],
    explorer_view: list[InternalTransaction],
) -> tuple[list[InternalTransaction], InternalTxSource]:
    """Pick the internal-transaction view handed to later stages.

    Returns:
        Tuple of (fused list, which source it came from).
    """
    if trace_view:
        return list(trace_view), InternalTxSource.TRACE
    if explorer_view:
        return list(explorer_view), InternalTxSource.EXPLORER
    return [], InternalTxSource.NONE


def is_gas_abnormal(
    tx_gwei: float,
    reference_gwei: float | None,
    high_ratio: float = 3.0,
    low_gwei: float = 0.001,
) -> bool:
    """Flag a gas price far above the reference or suspiciously close to zero.

    Without a positive reference price nothing is flagged.
    """
    if not reference_gwei or reference_gwei <= 0:
        return False
    return tx_gwei > reference_gwei * high_ratio or tx_gwei < low_gwei


def build_gas_context(
    gas_price_wei: int,
    reference: GasReference | None,
    high_ratio: float = 3.0,
    low_gwei: float = 0.001,
) -> GasContext:
    tx_gwei = wei_to_gwei(gas_price_wei)
    reference_gwei = reference.gas_price_gwei if reference else None
    return GasContext(
        tx_gas_price_gwei=tx_gwei,
        reference_gas_price_gwei=reference_gwei,
        base_fee_gwei=reference.base_fee_gwei if reference else None,
        is_abnormal=is_gas_abnormal(tx_gwei, reference_gwei, high_ratio, low_gwei),
    )
