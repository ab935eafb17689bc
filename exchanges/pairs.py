"""
Trading pair reference data.

Public pair metadata is loaded once per exchange with ``requests`` and
cached; DEX pairs come from static records.
"""
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional, Protocol
import logging

import requests

from errors import ConfigurationError, VenueError
from models import TradingPair

PairTable = Dict[str, TradingPair]


class PairInfoProvider(Protocol):
    """Protocol of reference-data providers."""

    def get_pair_info(self, exchange: str, pair: str) -> TradingPair:
        """
        Get the reference data of a normalized pair on an exchange.

        Raises:
            ConfigurationError: If the exchange does not list the pair
        """
        ...


def _decimals(increment: Any) -> int:
    """Count the decimal places of an increment such as "0.00000001"."""
    exponent = Decimal(str(increment)).normalize().as_tuple().exponent
    return max(0, -int(exponent)) if isinstance(exponent, int) else 0


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    return Decimal(str(value))


def _get_json(url: str, timeout: float) -> Any:
    logging.debug(f"Loading pair metadata: {url}")
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.json()


def load_kraken_pairs(timeout: float = 10.0) -> PairTable:
    data = _get_json("https://api.kraken.com/0/public/AssetPairs", timeout)
    if data.get("error"):
        raise VenueError("Kraken AssetPairs failed", data["error"])

    pairs: PairTable = {}
    for raw_pair, info in data["result"].items():
        if "wsname" not in info:
            continue
        normalized = info["wsname"].replace("/", "_")
        pairs[normalized] = TradingPair(
            exchange="Kraken",
            normalized_pair=normalized,
            raw_pair=raw_pair,
            price_precision=info["pair_decimals"],
            base_precision=info["lot_decimals"],
            quote_precision=info.get("cost_decimals", info["pair_decimals"]),
            min_base_quantity=_optional_decimal(info.get("ordermin")),
            min_quote_quantity=_optional_decimal(info.get("costmin")),
        )
    return pairs


def load_huobi_pairs(timeout: float = 10.0) -> PairTable:
    data = _get_json("https://api.huobi.pro/v1/common/symbols", timeout)
    if data.get("status") != "ok":
        raise VenueError("Huobi symbols failed", data)

    pairs: PairTable = {}
    for info in data["data"]:
        normalized = f"{info['base-currency']}_{info['quote-currency']}".upper()
        pairs[normalized] = TradingPair(
            exchange="Huobi",
            normalized_pair=normalized,
            raw_pair=info["symbol"],
            price_precision=info["price-precision"],
            base_precision=info["amount-precision"],
            quote_precision=info["value-precision"],
            min_base_quantity=_optional_decimal(info.get("min-order-amt")),
            min_quote_quantity=_optional_decimal(info.get("min-order-value")),
        )
    return pairs


def load_bitstamp_pairs(timeout: float = 10.0) -> PairTable:
    data = _get_json("https://www.bitstamp.net/api/v2/trading-pairs-info/", timeout)

    pairs: PairTable = {}
    for info in data:
        if info.get("trading") != "Enabled":
            continue
        normalized = info["name"].replace("/", "_")
        # e.g. "10.0 USD"
        minimum = info.get("minimum_order", "").split(" ")[0]
        pairs[normalized] = TradingPair(
            exchange="Bitstamp",
            normalized_pair=normalized,
            raw_pair=info["url_symbol"],
            price_precision=info["counter_decimals"],
            base_precision=info["base_decimals"],
            quote_precision=info["counter_decimals"],
            min_quote_quantity=_optional_decimal(minimum),
        )
    return pairs


def load_coinbase_pairs(timeout: float = 10.0) -> PairTable:
    data = _get_json("https://api.coinbase.com/api/v3/brokerage/market/products", timeout)

    pairs: PairTable = {}
    for info in data.get("products", []):
        normalized = f"{info['base_currency_id']}_{info['quote_currency_id']}"
        pairs[normalized] = TradingPair(
            exchange="Coinbase",
            normalized_pair=normalized,
            raw_pair=info["product_id"],
            price_precision=_decimals(info.get("price_increment") or info["quote_increment"]),
            base_precision=_decimals(info["base_increment"]),
            quote_precision=_decimals(info["quote_increment"]),
            min_base_quantity=_optional_decimal(info.get("base_min_size")),
            min_quote_quantity=_optional_decimal(info.get("quote_min_size")),
        )
    return pairs


REMOTE_LOADERS: Dict[str, Callable[[float], PairTable]] = {
    "Bitstamp": load_bitstamp_pairs,
    "Coinbase": load_coinbase_pairs,
    "Huobi": load_huobi_pairs,
    "Kraken": load_kraken_pairs,
}


class StaticPairProvider:
    """Pairs known up front, e.g. DEX pairs with their token contracts."""

    def __init__(self, pairs: Iterable[TradingPair] = ()):
        self._pairs: Dict[str, PairTable] = {}
        for pair in pairs:
            self._pairs.setdefault(pair.exchange, {})[pair.normalized_pair] = pair

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "StaticPairProvider":
        """Build a provider from plain dicts with TradingPair field names."""
        pairs = []
        for record in records:
            values = dict(record)
            for key in ("min_base_quantity", "min_quote_quantity"):
                values[key] = _optional_decimal(values.get(key))
            pairs.append(TradingPair(**values))
        return cls(pairs)

    def has_exchange(self, exchange: str) -> bool:
        return exchange in self._pairs

    def get_pair_info(self, exchange: str, pair: str) -> TradingPair:
        try:
            return self._pairs[exchange][pair]
        except KeyError:
            raise ConfigurationError(f"{exchange} does not list pair {pair}")


class RemotePairProvider:
    """
    Loads centralized exchange pairs on first use and caches them for the
    life of the process; everything else is served by ``fallback``.
    """

    def __init__(
        self,
        fallback: Optional[StaticPairProvider] = None,
        timeout: float = 10.0,
        loaders: Optional[Dict[str, Callable[[float], PairTable]]] = None
    ):
        self.fallback = fallback or StaticPairProvider()
        self.timeout = timeout
        self.loaders = REMOTE_LOADERS if loaders is None else loaders
        self._cache: Dict[str, PairTable] = {}

    def _table(self, exchange: str) -> PairTable:
        if exchange not in self._cache:
            self._cache[exchange] = self.loaders[exchange](self.timeout)
            logging.info(f"Loaded {len(self._cache[exchange])} {exchange} pairs")
        return self._cache[exchange]

    def get_pair_info(self, exchange: str, pair: str) -> TradingPair:
        if exchange not in self.loaders or self.fallback.has_exchange(exchange):
            return self.fallback.get_pair_info(exchange, pair)

        table = self._table(exchange)
        if pair not in table:
            raise ConfigurationError(f"{exchange} does not list pair {pair}")
        return table[pair]
