"""Models for on-chain transaction facts."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Transaction(BaseModel):
    """Raw transaction merged with its receipt totals.

    Frozen: once the extract stage sets it, no stage may rewrite it.
    """

    model_config = ConfigDict(frozen=True)

    hash: str = Field(..., description="Transaction hash")
    from_address: str = Field(..., description="Sender address")
    to_address: str | None = Field(None, description="Recipient, None for contract creation")
    value: int = Field(default=0, ge=0, description="Value transferred in wei")
    gas_used: int = Field(default=0, ge=0, description="Gas consumed")
    gas_price: int = Field(default=0, ge=0, description="Effective gas price in wei")
    block_number: int = Field(..., ge=0, description="Block the transaction was mined in")
    input: str = Field(default="0x", description="Calldata hex")
    status: bool = Field(default=True, description="Execution success flag")
    contract_address: str | None = Field(None, description="Created contract, if any")

    @property
    def is_contract_creation(self) -> bool:
        return self.to_address is None


class LedgerTransaction(BaseModel):
    """Transaction fields as served by the ledger, before the receipt is merged."""

    hash: str
    from_address: str
    to_address: str | None = None
    value: int = 0
    gas_price: int = 0
    block_number: int
    input: str = "0x"
    nonce: int | None = None


class LogEntry(BaseModel):
    """An event log emitted during execution."""

    address: str
    topics: list[str] = Field(default_factory=list)
    data: str = "0x"


class Receipt(BaseModel):
    """Subset of the transaction receipt used by the pipeline."""

    status: bool = True
    gas_used: int = 0
    effective_gas_price: int | None = None
    contract_address: str | None = None
    logs: list[LogEntry] = Field(default_factory=list)


class TokenInfo(BaseModel):
    """Token metadata resolved on-chain or via the explorer."""

    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    total_supply: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.symbol)


class TokenFlow(BaseModel):
    """A single Transfer event between two addresses."""

    token: str = Field(..., description="Token contract address")
    from_address: str
    to_address: str
    amount: int = Field(default=0, ge=0, description="Raw amount in base units")
    token_id: int | None = Field(None, description="ERC-721 token id, when applicable")
    symbol: str | None = None
    name: str | None = None
    decimals: int | None = None


class DecodedCall(BaseModel):
    """The top-level function call of a transaction."""

    contract: str
    function_name: str
    args: list[Any] | None = Field(None, description="ABI-decoded arguments")
    raw_params: str | None = Field(None, description="Undecoded parameter hex (selector-only)")
    selector: str | None = None
    value: int = 0
    decoded_with_abi: bool = False


class InternalTransaction(BaseModel):
    """A message call below the top-level transaction."""

    from_address: str
    to_address: str | None = None
    value: int = 0
    call_type: str = "call"
    gas: int | None = None
    gas_used: int | None = None
    is_error: bool = False
    input: str | None = None


class GasReference(BaseModel):
    """Reference gas prices from the explorer's gas oracle."""

    gas_price_gwei: float | None = None
    base_fee_gwei: float | None = None


class GasContext(BaseModel):
    """Comparison of the transaction's gas price against a reference."""

    tx_gas_price_gwei: float
    reference_gas_price_gwei: float | None = None
    base_fee_gwei: float | None = None
    is_abnormal: bool = False
