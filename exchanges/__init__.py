"""
Exchange clients package.

Each venue module provides an authenticator (or signer) and an async client
with ``place_order``, ``cancel_order`` and ``query_order``.
"""
from typing import Any, Dict, Optional, Protocol

from models import OrderState, TradingPair


class ExchangeAuthenticator(Protocol):
    """Protocol defining the interface for header-based authenticators."""

    def get_auth_headers(
        self,
        request_method: str,
        request_path: str,
        **kwargs: Any
    ) -> Dict[str, str]:
        """
        Get HTTP headers for authenticated API request.

        Args:
            request_method: HTTP method (GET, POST, etc.)
            request_path: API endpoint path
            **kwargs: Additional exchange-specific parameters

        Returns:
            Dictionary of HTTP headers including the signature
        """
        ...


class ExchangeClient(Protocol):
    """Protocol of the per-venue order clients."""

    async def place_order(self, pair: TradingPair, price: Any, quantity: Any, sell: bool) -> str:
        ...

    async def cancel_order(self, pair: TradingPair, order_id: str) -> Any:
        ...

    async def query_order(self, pair: TradingPair, order_id: str) -> Optional[OrderState]:
        ...


# Re-export clients for easy imports
from .bitstamp import BitstampAuthenticator, BitstampClient
from .coinbase import CoinbaseAuthenticator, CoinbaseClient, verify_coinbase_connection
from .huobi import HuobiAuthenticator, HuobiClient
from .kraken import KrakenAuthenticator, KrakenClient
from .mxc import MxcAuthenticator, MxcClient
from .newdex import NewdexClient
from .pairs import PairInfoProvider, RemotePairProvider, StaticPairProvider
from .whaleex import IdPool, WhaleExClient, WhaleExSigner
from .whaleex_eos import WhaleExEosClient

__all__ = [
    'ExchangeAuthenticator',
    'ExchangeClient',
    'BitstampAuthenticator',
    'BitstampClient',
    'CoinbaseAuthenticator',
    'CoinbaseClient',
    'verify_coinbase_connection',
    'HuobiAuthenticator',
    'HuobiClient',
    'KrakenAuthenticator',
    'KrakenClient',
    'MxcAuthenticator',
    'MxcClient',
    'NewdexClient',
    'PairInfoProvider',
    'RemotePairProvider',
    'StaticPairProvider',
    'IdPool',
    'WhaleExClient',
    'WhaleExSigner',
    'WhaleExEosClient',
]
