"""
Unified order interface across all supported exchanges.
"""
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar, Union
import asyncio
import logging

import httpx

from credentials import SigningContext
from errors import ConfigurationError, NetworkError
from exchanges.bitstamp import BitstampClient
from exchanges.coinbase import CoinbaseClient
from exchanges.http import create_http_client
from exchanges.huobi import HuobiClient
from exchanges.kraken import KrakenClient
from exchanges.mxc import MxcClient
from exchanges.newdex import NewdexClient
from exchanges.pairs import PairInfoProvider
from exchanges.whaleex import WhaleExClient
from exchanges.whaleex_eos import WhaleExEosClient
from formatting import Number
from models import DexOrderRef, OrderState, TradingPair
from validate import (
    check_credentials,
    validate_client_order_id,
    validate_exchange,
    validate_order_request,
    validate_pair,
)

T = TypeVar("T")

CLIENT_CLASSES: Dict[str, Callable[[SigningContext, httpx.AsyncClient], Any]] = {
    "Bitstamp": BitstampClient,
    "Coinbase": CoinbaseClient,
    "Huobi": HuobiClient,
    "Kraken": KrakenClient,
    "MXC": MxcClient,
    "Newdex": NewdexClient,
    "WhaleEx": WhaleExClient,
    "WhaleExEos": WhaleExEosClient,
}

# Orders placed on-chain are managed through the venue's REST API afterwards
ORDER_MANAGEMENT_EXCHANGE = {"WhaleExEos": "WhaleEx"}


async def retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    times: int = 3,
    backoff: float = 0.5,
    retry_on: Tuple[Type[BaseException], ...] = (NetworkError,),
    **kwargs: Any
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying failures of the given types.

    Delays double after each failed attempt, starting at ``backoff``
    seconds. The last error is raised once ``times`` attempts have failed.

    Args:
        func: Coroutine function to call
        times: Maximum number of attempts
        backoff: Delay before the second attempt, in seconds
        retry_on: Exception types worth another attempt

    Returns:
        The first successful result

    Example:
        order_id = await retry(client.place_order, "Kraken", "BTC_USD", 1000, 0.01, False)
    """
    if times < 1:
        raise ValueError(f"Invalid times: {times}. Must be >= 1")

    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except retry_on as e:
            if attempt >= times:
                logging.error(f"Giving up after {attempt} attempt(s): {e}")
                raise
            delay = backoff * 2 ** (attempt - 1)
            logging.warning(f"Attempt {attempt}/{times} failed: {e}. Retrying in {delay}s")
            await asyncio.sleep(delay)
            attempt += 1


class TradingClient:
    """
    Dispatches order operations to the right exchange client.

    Usage:
        async with TradingClient(context, pairs) as client:
            order_id = await client.place_order("Newdex", "EIDOS_EOS", "0.00121", "9.2644", False)

    Errors from the exchange clients propagate unchanged.
    """

    def __init__(
        self,
        context: SigningContext,
        pairs: PairInfoProvider,
        http: Optional[httpx.AsyncClient] = None
    ):
        self.context = context
        self.pairs = pairs
        self._owns_http = http is None
        self.http = http or create_http_client()
        self._clients: Dict[str, Any] = {}

    async def __aenter__(self) -> "TradingClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    def client(self, exchange: str) -> Any:
        """Get the exchange client, building it on first use."""
        if exchange not in self._clients:
            self._clients[exchange] = CLIENT_CLASSES[exchange](self.context, self.http)
            logging.info(f"Initialized {exchange} client")
        return self._clients[exchange]

    @staticmethod
    def _check(exchange: str, pair: str, *results: Tuple[bool, Optional[str]]) -> None:
        for valid, error in results:
            if not valid:
                logging.warning(f"Rejected {exchange} {pair}: {error}")
                raise ConfigurationError(error or "Invalid request")

    def _prepare(self, exchange: str, pair: str) -> TradingPair:
        """
        Validate a request and look up its pair, before any order I/O.

        Raises:
            ConfigurationError: Unsupported exchange, malformed pair or missing credentials
        """
        self._check(exchange, pair, validate_exchange(exchange), validate_pair(pair),
                    check_credentials(exchange, pair, self.context))
        return self.pairs.get_pair_info(exchange, pair)

    def _prepare_order(self, exchange: str, pair: str, price: Number, quantity: Number, sell: bool,
                       client_order_id: Optional[str] = None) -> TradingPair:
        """Validate a new order intent, then its venue and pair."""
        order = {"exchange": exchange, "pair": pair, "price": price, "quantity": quantity, "sell": sell}
        self._check(exchange, pair, validate_order_request(order),
                    validate_client_order_id(exchange, client_order_id))
        return self._prepare(exchange, pair)

    async def place_order(
        self,
        exchange: str,
        pair: str,
        price: Number,
        quantity: Number,
        sell: bool,
        client_order_id: Optional[str] = None
    ) -> str:
        """
        Place a limit order.

        Returns:
            The exchange order id, or the transaction id for Newdex orders

        Raises:
            ConfigurationError: Invalid order intent or client order id, before any I/O
        """
        pair_info = self._prepare_order(exchange, pair, price, quantity, sell, client_order_id)
        kwargs: Dict[str, Any] = {}
        if client_order_id:
            kwargs["client_order_id"] = client_order_id

        logging.info(f"place_order {exchange} {pair}: {'sell' if sell else 'buy'} {quantity} @ {price}")
        return await self.client(exchange).place_order(pair_info, price, quantity, sell, **kwargs)

    async def place_and_resolve(self, pair: str, price: Number, quantity: Number, sell: bool) -> DexOrderRef:
        """Place a Newdex order and resolve its contract order id."""
        pair_info = self._prepare_order("Newdex", pair, price, quantity, sell)
        return await self.client("Newdex").place_and_resolve(pair_info, price, quantity, sell)

    def _management_exchange(self, exchange: str, pair: str) -> Tuple[str, TradingPair]:
        pair_info = self._prepare(exchange, pair)
        target = ORDER_MANAGEMENT_EXCHANGE.get(exchange, exchange)
        if target != exchange:
            pair_info = self._prepare(target, pair)
        return target, pair_info

    async def cancel_order(self, exchange: str, pair: str, order_id: str) -> Union[bool, str]:
        """
        Cancel an order.

        Returns:
            Whether the venue accepted the cancel, or the cancel transaction id
            for on-chain venues
        """
        target, pair_info = self._management_exchange(exchange, pair)
        logging.info(f"cancel_order {exchange} {pair}: {order_id}")
        return await self.client(target).cancel_order(pair_info, order_id)

    async def query_order(self, exchange: str, pair: str, order_id: str) -> Optional[OrderState]:
        """
        Look up an order.

        Returns:
            The order state, or None if the venue does not know the order
        """
        target, pair_info = self._management_exchange(exchange, pair)
        return await self.client(target).query_order(pair_info, order_id)
