"""Extract pipeline node: ledger facts plus best-effort enrichment."""

import asyncio

import structlog
from langchain_core.runnables import RunnableConfig

from txlens.models import (
    DecodedCall,
    ErrorKind,
    LedgerTransaction,
    PipelineError,
    ProgressEventType,
    Receipt,
    TokenFlow,
    TokenInfo,
    Transaction,
)
from txlens.pipeline.runtime import PipelineServices, get_progress, get_services
from txlens.pipeline.state import PipelineState
from txlens.processing.calltrace import flatten_call_tree, truncate_source
from txlens.processing.fusion import build_gas_context, fuse_internal_transactions, internal_txs_from_flattened
from txlens.processing.token_flows import apply_token_metadata, extract_token_flows, unique_tokens
from txlens.sources.base import (
    MandatoryFetchError,
    Unavailable,
    fetch_optional,
    first_available,
    is_available,
)
from txlens.sources.rpc import has_bytecode, read_token_info
from txlens.sources.selectors import AbiDecodeError, decode_with_abi, selector_of

logger = structlog.get_logger(__name__)

SOURCE_TRUNCATION_MARKER = "\n... (truncated)"
MAX_RAW_PARAMS_CHARS = 200


async def fetch_mandatory(
    services: PipelineServices,
    tx_hash: str,
) -> tuple[LedgerTransaction, Receipt]:
    """Fetch the transaction and its receipt concurrently.

    Raises:
        MandatoryFetchError: If either is missing, fails or times out.
    """
    timeout = services.settings.ledger_timeout_seconds
    try:
        ledger_tx, receipt = await asyncio.wait_for(
            asyncio.gather(
                services.ledger.get_transaction(tx_hash),
                services.ledger.get_receipt(tx_hash),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise MandatoryFetchError(f"ledger did not answer within {timeout}s") from e
    except Exception as e:
        raise MandatoryFetchError(f"Failed to fetch transaction: {type(e).__name__}: {e}") from e

    if ledger_tx is None:
        raise MandatoryFetchError(f"Transaction {tx_hash} not found")
    if receipt is None:
        raise MandatoryFetchError(f"Receipt for {tx_hash} not found")
    return ledger_tx, receipt


def merge_transaction(ledger_tx: LedgerTransaction, receipt: Receipt) -> Transaction:
    return Transaction(
        hash=ledger_tx.hash,
        from_address=ledger_tx.from_address,
        to_address=ledger_tx.to_address,
        value=ledger_tx.value,
        gas_used=receipt.gas_used,
        gas_price=receipt.effective_gas_price or ledger_tx.gas_price,
        block_number=ledger_tx.block_number,
        input=ledger_tx.input,
        status=receipt.status,
        contract_address=receipt.contract_address,
    )


def decode_top_level_call(
    services: PipelineServices,
    transaction: Transaction,
    abi: list[dict] | None,
) -> DecodedCall | None:
    """Identify the top-level function call.

    A verified ABI is tried first. Any decoding failure falls back to a
    selector-only identification without surfacing an error.
    """
    if transaction.is_contract_creation or selector_of(transaction.input) is None:
        return None

    if abi:
        try:
            name, args = decode_with_abi(abi, transaction.input)
            return DecodedCall(
                contract=transaction.to_address,
                function_name=name,
                args=args,
                selector=selector_of(transaction.input),
                value=transaction.value,
                decoded_with_abi=True,
            )
        except AbiDecodeError as e:
            logger.debug("abi_decode_fallback", contract=transaction.to_address, reason=str(e))

    info = services.selectors.decode_calldata(transaction.input)
    return DecodedCall(
        contract=transaction.to_address,
        function_name=info.signature or info.selector,
        raw_params=info.raw_params[:MAX_RAW_PARAMS_CHARS],
        selector=info.selector,
        value=transaction.value,
        decoded_with_abi=False,
    )


async def probe_contract(
    services: PipelineServices,
    transaction: Transaction,
) -> tuple[list[dict] | Unavailable | None, str | Unavailable | None]:
    """Fetch ABI and source for the recipient when it is a contract being called."""
    if transaction.is_contract_creation or selector_of(transaction.input) is None:
        return None, None

    timeout = services.settings.source_timeout_seconds
    address = transaction.to_address
    code = await fetch_optional("ledger_bytecode", lambda: services.ledger.get_bytecode(address), timeout)
    if not is_available(code):
        return code, None
    if not has_bytecode(code):
        return None, None

    abi, source = await asyncio.gather(
        fetch_optional("explorer_abi", lambda: services.explorer.get_contract_abi(address), timeout),
        fetch_optional("explorer_source", lambda: services.explorer.get_contract_source(address), timeout),
    )
    return abi, source


async def fetch_token_metadata(
    services: PipelineServices,
    token_flows: list[TokenFlow],
) -> tuple[dict[str, TokenInfo], list[Unavailable]]:
    """Resolve metadata for the first ``max_token_lookups`` tokens.

    On-chain reads come first; the explorer is only asked when the contract
    returned neither a name nor a symbol.
    """
    settings = services.settings
    tokens = unique_tokens(token_flows, settings.max_token_lookups)

    async def lookup(token: str) -> tuple[str, TokenInfo | None, list[Unavailable]]:
        info, misses = await first_available(
            [
                ("ledger_token_info", lambda: read_token_info(services.ledger, token)),
                ("explorer_token_info", lambda: services.explorer.get_token_info(token)),
            ],
            timeout=settings.source_timeout_seconds,
            accept=lambda result: not result.is_empty,
        )
        return token, info, misses

    results = await asyncio.gather(*(lookup(token) for token in tokens))

    metadata = {token: info for token, info, _ in results if info is not None}
    misses = [miss for _, _, token_misses in results for miss in token_misses]
    return metadata, misses


async def extract_node(state: PipelineState, config: RunnableConfig) -> PipelineState:
    """Gather every fact the later stages need.

    Only the ledger transaction/receipt fetch can fail the stage. Every
    other source degrades to missing data and is recorded in ``warnings``.

    Args:
        state: Current pipeline state with tx_hash and chain_id.
        config: Runnable config carrying services and the progress handle.

    Returns:
        Updated state with transaction facts, both internal-tx views and
        the fused view.
    """
    services = get_services(config)
    progress = get_progress(config)
    settings = services.settings
    tx_hash = state["tx_hash"]
    chain_id = state["chain_id"]

    logger.info("extract_node_start", tx_hash=tx_hash, chain_id=chain_id)

    try:
        ledger_tx, receipt = await fetch_mandatory(services, tx_hash)
    except MandatoryFetchError as e:
        logger.error("mandatory_fetch_failed", tx_hash=tx_hash, error=str(e))
        return {"error": PipelineError(kind=ErrorKind.MANDATORY_FETCH, stage="extract", message=str(e))}

    transaction = merge_transaction(ledger_tx, receipt)
    token_flows = extract_token_flows(receipt)
    await progress.emit(ProgressEventType.RPC_DONE, {"block_number": transaction.block_number})

    timeout = settings.source_timeout_seconds
    unavailable: list[Unavailable] = []

    await progress.emit(ProgressEventType.ETHERSCAN_START)

    # The trace runs alongside the explorer lookups but is reported after them
    trace_task = asyncio.create_task(
        fetch_optional("trace", lambda: services.trace.trace_transaction(tx_hash), timeout)
    )
    try:
        explorer_txs, (abi, source), gas_reference, (token_metadata, token_misses) = await asyncio.gather(
            fetch_optional(
                "explorer_internal_txs",
                lambda: services.explorer.get_internal_transactions(tx_hash),
                timeout,
            ),
            probe_contract(services, transaction),
            fetch_optional(
                "explorer_gas_reference",
                lambda: services.explorer.get_gas_price_reference(transaction.block_number),
                timeout,
            ),
            fetch_token_metadata(services, token_flows),
        )
    except BaseException:
        trace_task.cancel()
        raise

    for result in (explorer_txs, abi, source, gas_reference):
        if isinstance(result, Unavailable):
            unavailable.append(result)
    unavailable.extend(token_misses)

    explorer_view = explorer_txs if is_available(explorer_txs) and explorer_txs else []
    contract_abi = abi if is_available(abi) and abi else None
    contract_source = source if is_available(source) and source else None
    contract_source = truncate_source(
        contract_source,
        settings.contract_source_char_limit,
        marker=SOURCE_TRUNCATION_MARKER,
    )

    decoded_call = decode_top_level_call(services, transaction, contract_abi)
    token_flows = apply_token_metadata(token_flows, token_metadata)

    address_labels: dict[str, str] = {}
    for address in (transaction.from_address, transaction.to_address):
        if not address:
            continue
        try:
            label = services.labels.lookup_label(address, chain_id)
        except Exception as e:
            logger.warning("label_lookup_failed", address=address, error=str(e))
            unavailable.append(Unavailable("labels", f"{type(e).__name__}: {e}"))
            continue
        if label:
            address_labels[address.lower()] = label

    gas_context = build_gas_context(
        transaction.gas_price,
        gas_reference if is_available(gas_reference) else None,
        high_ratio=settings.gas_abnormal_high_ratio,
        low_gwei=settings.gas_abnormal_low_gwei,
    )

    await progress.emit(
        ProgressEventType.ETHERSCAN_DONE,
        {"abi": contract_abi is not None, "internal_tx_count": len(explorer_view)},
    )

    await progress.emit(ProgressEventType.TENDERLY_START)
    trace_result = await trace_task
    call_trace = trace_result if is_available(trace_result) else None
    if isinstance(trace_result, Unavailable):
        unavailable.append(trace_result)
    await progress.emit(ProgressEventType.TENDERLY_DONE, {"has_trace": call_trace is not None})

    trace_view = internal_txs_from_flattened(flatten_call_tree(call_trace)) if call_trace else []
    internal_txs, internal_tx_source = fuse_internal_transactions(trace_view, explorer_view)

    logger.info(
        "extract_node_complete",
        tx_hash=tx_hash,
        block_number=transaction.block_number,
        token_flows=len(token_flows),
        internal_txs=len(internal_txs),
        internal_tx_source=internal_tx_source.value,
        decoded=decoded_call.function_name if decoded_call else None,
        unavailable_sources=[u.source for u in unavailable],
    )

    return {
        "transaction": transaction,
        "receipt": receipt,
        "token_flows": token_flows,
        "decoded_call": decoded_call,
        "contract_abi": contract_abi,
        "contract_source": contract_source,
        "address_labels": address_labels,
        "gas_context": gas_context,
        "trace_internal_txs": trace_view,
        "explorer_internal_txs": explorer_view,
        "internal_txs": internal_txs,
        "internal_tx_source": internal_tx_source,
        "call_trace": call_trace,
        "warnings": [u.as_warning() for u in unavailable],
    }
