"""Offline address label store.

Labels come from a local SQLite database in the AddressInf0DB layout
(``info(chainID, address, name, label, labelType, labelSubtype)``), with a
small hardcoded map of well-known mainnet contracts as the last resort.
No network calls are made here, so label lookups never consume explorer
quota.
"""

from pathlib import Path

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from txlens.sources.base import LabelStore

logger = structlog.get_logger(__name__)

KNOWN_ADDRESSES: dict[str, str] = {
    # Uniswap
    "0x7a250d5630b4cf539739df2c5dacb4c659f2488d": "Uniswap V2: Router",
    "0xe592427a0aece92de3edee1f18e0157c05861564": "Uniswap V3: Router",
    "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45": "Uniswap V3: Router 2",
    "0x3fc91a3afd70395cd496c647d5a6cc9d4b2b7fad": "Uniswap: Universal Router",
    "0xc36442b4a4522e871399cd717abdd847ab11fe88": "Uniswap V3: Positions NFT",
    "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640": "Uniswap V3: WETH/USDC 0.3%",
    "0x3416cf6c708da44db2624d63ea0aaef7113527c6": "Uniswap V3: USDC/USDT 0.04%",
    # Other DEXes
    "0xd9e1ce17f2641f24ae83637ab66a2cca9c378b9f": "SushiSwap: Router",
    "0x1111111254fb6c44bac0bed2854e76f90643097d": "1inch v4: Router",
    "0x99a58482bd75cbab83b27ec03ca68ff489b5788f": "Curve.fi: Swap Router",
    "0xbebc44782c7db0a1a60cb6fe97d0b483032ff1c7": "Curve: 3pool (DAI/USDC/USDT)",
    "0xd51a44d3fae010294c616388b506acda1bfaae46": "Curve: Tricrypto (USDT/WBTC/WETH)",
    # Lending
    "0x7d2768de32b0b80b7a3454c06bdac94a69ddc7a9": "Aave: Lending Pool V2",
    "0x87870bca3f3fd6335c3f4ce8392d69350b4fa4e2": "Aave V3: Pool",
    "0x3d9819210a31b4961b30ef54be2aed79b9c9cd3b": "Compound: Comptroller",
    "0x39aa39c021dfbae8fac545936693ac917d5e7563": "Compound: cUSDC",
    # Exchanges
    "0x28c6c06298d514db089934071355e5743bf21d60": "Binance 14",
    "0x21a31ee1afc51d94c2efccaa2092ad1028285549": "Binance 15",
    "0x3cd751e6b0078be393132286c442345e5dc49699": "Coinbase 1",
    # Tokens
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": "Wrapped Ether",
    "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599": "Wrapped BTC",
    "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48": "USD Coin",
    "0xdac17f958d2ee523a2206206994597c13d831ec7": "Tether USD",
    "0x6b175474e89094c44da98b954eedeac495271d0f": "Dai Stablecoin",
    "0x9f8f72aa9304c8b593d555f12ef6589cc3a579a2": "Maker: MKR Token",
    # NFT marketplaces
    "0x00000000006c3852cbef3e08e8df289169ede581": "OpenSea: Seaport 1.1",
    # Known MEV bots
    "0x00000000003b3cc22af3ae1eac0440bcee416b40": "MEV Bot",
    "0x000000000035b5e5ad9019092c665357240f594e": "MEV Bot",
    "0xbadc0defafcf6d4239bdf0b66da4d7bd36fcf05a": "MEV Bot",
}

LABEL_QUERY = text(
    """
    SELECT COALESCE(NULLIF(trim(label), ''), NULLIF(trim(name), '')) AS label
    FROM info
    WHERE chainID = :chain_id AND lower(address) = :address
    LIMIT 1
    """
)


def create_sqlite_engine(db_path: Path) -> Engine:
    """Create a read-only engine for an offline SQLite database."""
    return create_engine(
        f"sqlite:///file:{db_path}?mode=ro&uri=true",
        connect_args={"check_same_thread": False},
    )


class SqliteLabelStore(LabelStore):
    """Label lookup backed by an offline SQLite database.

    Lookups are cached per chain. A missing database file is not an error:
    only the hardcoded map is consulted then.
    """

    def __init__(self, db_path: Path | None, known: dict[str, str] | None = None):
        self.db_path = db_path
        self.known = KNOWN_ADDRESSES if known is None else known
        self._engine: Engine | None = None
        self._cache: dict[int, dict[str, str | None]] = {}

        if db_path is not None and Path(db_path).exists():
            self._engine = create_sqlite_engine(Path(db_path))
            logger.info("label_db_opened", path=str(db_path))
        else:
            logger.info("label_db_missing", path=str(db_path), fallback_entries=len(self.known))

    def lookup_label(self, address: str, chain_id: int) -> str | None:
        normalized = address.lower()
        cache = self._cache.setdefault(chain_id, {})
        if normalized in cache:
            return cache[normalized]

        label = self._query(normalized, chain_id)
        if label is None and chain_id == 1:
            label = self.known.get(normalized)

        cache[normalized] = label
        return label

    def _query(self, address: str, chain_id: int) -> str | None:
        if self._engine is None:
            return None
        try:
            with self._engine.connect() as conn:
                row = conn.execute(LABEL_QUERY, {"chain_id": chain_id, "address": address}).first()
        except SQLAlchemyError as e:
            logger.warning("label_db_query_failed", address=address, chain_id=chain_id, error=str(e))
            return None
        return row[0] if row and row[0] else None

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
