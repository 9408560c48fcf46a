"""Etherscan V2 multichain explorer adapter."""

import asyncio
import json

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from txlens.models import GasReference, InternalTransaction, TokenInfo
from txlens.processing.units import to_int, to_optional_int
from txlens.sources.base import ExplorerService, SourceUnavailable

logger = structlog.get_logger(__name__)

# Messages Etherscan returns with status "0" that mean "nothing to report"
EMPTY_RESULT_MESSAGES = (
    "no transactions found",
    "no records found",
    "no data found",
)


class ExplorerRateLimited(Exception):
    """The explorer refused a request because of its rate limit."""

    pass


def _is_rate_limited(body: dict) -> bool:
    result = body.get("result")
    text = f"{body.get('message', '')} {result if isinstance(result, str) else ''}".lower()
    return "rate limit" in text


class EtherscanExplorer(ExplorerService):
    """Explorer reads through the Etherscan V2 ``/v2/api`` endpoint.

    All requests share one semaphore so that concurrent lookups from the
    extract and enrichment stages stay under the API's rate limit.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        chain_id: int = 1,
        max_concurrency: int = 4,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.chain_id = chain_id
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings, chain_id: int | None = None) -> "EtherscanExplorer":
        return cls(
            api_url=settings.explorer_api_url,
            api_key=settings.explorer_api_key,
            chain_id=chain_id or settings.chain_id,
            max_concurrency=settings.explorer_max_concurrency,
            timeout=settings.source_timeout_seconds,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay_seconds,
        )

    async def _get(self, module: str, action: str, **params) -> dict:
        if not self.api_key:
            raise SourceUnavailable("explorer", "explorer API key not configured")

        query = {
            "chainid": self.chain_id,
            "module": module,
            "action": action,
            "apikey": self.api_key,
            **params,
        }
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(ExplorerRateLimited),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_delay, max=8),
            reraise=True,
        ):
            with attempt:
                return await self._request(query)

    async def _request(self, query: dict) -> dict:
        module, action = query["module"], query["action"]
        async with self._semaphore:
            response = await self._client.get(self.api_url, params=query)
        response.raise_for_status()
        body = response.json()

        if _is_rate_limited(body):
            logger.warning("explorer_rate_limited", module=module, action=action)
            raise ExplorerRateLimited(body.get("result") or body.get("message"))

        logger.debug(
            "explorer_response",
            module=module,
            action=action,
            status=body.get("status"),
            message=body.get("message"),
        )
        return body

    async def get_internal_transactions(self, tx_hash: str) -> list[InternalTransaction]:
        body = await self._get("account", "txlistinternal", txhash=tx_hash)
        if body.get("status") != "1":
            message = str(body.get("message", "")).lower()
            if any(m in message for m in EMPTY_RESULT_MESSAGES):
                return []
            raise SourceUnavailable("explorer", f"txlistinternal: {body.get('message')}")

        return [parse_internal_transaction(item) for item in body.get("result") or []]

    async def get_contract_abi(self, address: str) -> list[dict] | None:
        body = await self._get("contract", "getabi", address=address)
        if body.get("status") != "1":
            # Unverified contracts are a normal answer, not an outage
            return None
        try:
            abi = json.loads(body["result"])
        except (TypeError, ValueError) as e:
            raise SourceUnavailable("explorer", f"malformed ABI payload: {e}") from e
        return abi if isinstance(abi, list) else None

    async def get_contract_source(self, address: str) -> str | None:
        body = await self._get("contract", "getsourcecode", address=address)
        if body.get("status") != "1":
            return None
        result = body.get("result") or []
        if not result or not isinstance(result, list):
            return None
        return result[0].get("SourceCode") or None

    async def get_token_info(self, address: str) -> TokenInfo | None:
        body = await self._get("token", "tokeninfo", contractaddress=address)
        if body.get("status") != "1" or not body.get("result"):
            return None

        result = body["result"]
        info = result[0] if isinstance(result, list) else result
        decimals = info.get("decimals") or info.get("divisor")
        return TokenInfo(
            name=info.get("tokenName") or info.get("name") or None,
            symbol=info.get("symbol") or None,
            decimals=to_optional_int(decimals),
            total_supply=info.get("totalSupply") or None,
        )

    async def get_gas_price_reference(self, block_number: int) -> GasReference | None:
        # The gas oracle has no historical endpoint; the current proposal is
        # used as the reference regardless of block_number.
        body = await self._get("gastracker", "gasoracle")
        if body.get("status") != "1" or not isinstance(body.get("result"), dict):
            return None

        result = body["result"]
        return GasReference(
            gas_price_gwei=_optional_float(result.get("ProposeGasPrice")),
            base_fee_gwei=_optional_float(result.get("suggestBaseFee")),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def parse_internal_transaction(item: dict) -> InternalTransaction:
    """Convert one ``txlistinternal`` row."""
    to_address = item.get("to") or item.get("contractAddress") or None
    return InternalTransaction(
        from_address=item.get("from", ""),
        to_address=to_address,
        value=to_int(item.get("value")),
        call_type=item.get("type") or "call",
        gas=to_optional_int(item.get("gas")),
        gas_used=to_optional_int(item.get("gasUsed")),
        is_error=str(item.get("isError", "0")) == "1",
        input=item.get("input") or None,
    )


def _optional_float(value) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
