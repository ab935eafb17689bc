"""
Kraken exchange authentication and order placement.
"""
from typing import Any, Dict, Optional
from urllib.parse import urlencode
import base64
import hashlib
import logging

import httpx

from credentials import SigningContext
from errors import ConfigurationError, ProtocolShapeError, UnsupportedResponseError, VenueError
from exchanges.http import request_json
from exchanges.signing import NonceGenerator, hmac_digest, mask_api_key
from formatting import Number, convert_price_and_quantity_to_strings
from models import OrderState, TradingPair

API_ENDPOINT = "https://api.kraken.com"


class KrakenAuthenticator:
    """Kraken API authentication (API-Key / API-Sign headers)."""

    def __init__(self, api_key: str, api_secret: str):
        """
        Initialize Kraken authenticator.

        Args:
            api_key: Kraken API key
            api_secret: Kraken API secret, base64 encoded as issued by Kraken
        """
        self.api_key = api_key
        try:
            self._secret = base64.b64decode(api_secret, validate=True)
        except ValueError:
            raise ConfigurationError("Kraken API secret is not valid base64")
        self.nonces = NonceGenerator()
        logging.info(f"Kraken authenticator initialized: API Key={mask_api_key(api_key)}")

    @classmethod
    def from_context(cls, context: SigningContext) -> "KrakenAuthenticator":
        context.require("kraken_api_key", "kraken_private_key")
        return cls(context.kraken_api_key, context.kraken_private_key)  # type: ignore[arg-type]

    def get_signature(self, request_path: str, params: Dict[str, Any]) -> str:
        """
        Compute API-Sign.

        HMAC-SHA512 over the path followed by SHA256(nonce + urlencoded body),
        keyed with the decoded secret, base64 encoded.

        Args:
            request_path: API endpoint path (e.g. /0/private/AddOrder)
            params: Request body, must contain ``nonce``

        Returns:
            Base64 signature
        """
        if "nonce" not in params:
            raise ValueError("Kraken requests must carry a nonce")
        post_data = urlencode(params)
        sha256_digest = hashlib.sha256((str(params["nonce"]) + post_data).encode("utf-8")).digest()
        return hmac_digest(self._secret, request_path.encode("utf-8") + sha256_digest, "sha512", "base64")

    def get_auth_headers(
        self,
        request_method: str = "POST",
        request_path: str = "/0/private/AddOrder",
        **kwargs: Any
    ) -> Dict[str, str]:
        """
        Get HTTP headers for authenticated Kraken API request.

        Args:
            request_method: HTTP method, Kraken private calls are always POST
            request_path: API endpoint path
            **kwargs: ``params``, the request body including the nonce

        Returns:
            Dictionary of HTTP headers
        """
        params: Dict[str, Any] = kwargs.get("params", {})
        return {
            "API-Key": self.api_key,
            "API-Sign": self.get_signature(request_path, params),
            "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
        }


def _parse_order(order_id: str, raw: Dict[str, Any]) -> OrderState:
    descr = raw.get("descr", {})
    return OrderState(
        exchange="Kraken",
        order_id=order_id,
        status=raw.get("status", "unknown"),
        sell=descr.get("type") == "sell" if "type" in descr else None,
        price=descr.get("price"),
        quantity=raw.get("vol"),
        raw=raw,
    )


class KrakenClient:
    """Kraken private REST API."""

    def __init__(self, context: SigningContext, http: httpx.AsyncClient, api_base_url: str = API_ENDPOINT):
        self.authenticator = KrakenAuthenticator.from_context(context)
        self.http = http
        self.api_base_url = api_base_url

    async def private_method(self, path: str, params: Dict[str, Any]) -> Any:
        """
        Call a private endpoint.

        A fresh nonce is added to ``params`` before signing.

        Raises:
            VenueError: If Kraken returns a non-empty error list
        """
        body = dict(params)
        body["nonce"] = self.authenticator.nonces.next()
        headers = self.authenticator.get_auth_headers("POST", path, params=body)

        data = await request_json(self.http, "POST", f"{self.api_base_url}{path}",
                                  content=urlencode(body), headers=headers)
        if data.get("error"):
            logging.error(f"Kraken {path} failed: {data['error']}")
            raise VenueError("\n".join(data["error"]), data["error"])
        return data["result"]

    async def place_order(
        self,
        pair: TradingPair,
        price: Number,
        quantity: Number,
        sell: bool,
        client_order_id: Optional[str] = None
    ) -> str:
        """
        Place a limit order.

        Returns:
            The Kraken txid of the order

        Raises:
            UnsupportedResponseError: If Kraken reports several txids for one order
        """
        price_str, quantity_str, _ = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

        params: Dict[str, Any] = {
            "pair": pair.raw_pair,
            "type": "sell" if sell else "buy",
            "ordertype": "limit",
            "price": price_str,
            "volume": quantity_str,
        }
        if client_order_id:
            params["userref"] = int(client_order_id)

        logging.info(f"Placing Kraken {params['type']} order for {pair.raw_pair}: {quantity_str} @ {price_str}")
        result = await self.private_method("/0/private/AddOrder", params)

        txid = result.get("txid") or []
        if not txid:
            raise ProtocolShapeError("Kraken AddOrder returned no txid", {"result": result})
        if len(txid) > 1:
            raise UnsupportedResponseError("Kraken returned more than one txid for a single order",
                                           {"txid": txid})
        return txid[0]

    async def cancel_order(self, pair: TradingPair, order_id: str) -> bool:
        result = await self.private_method("/0/private/CancelOrder", {"txid": order_id})
        logging.info(f"Kraken CancelOrder {order_id} on {pair.raw_pair}: count={result.get('count')}")
        return result.get("count", 0) > 0

    async def query_order(self, pair: TradingPair, order_id: str) -> Optional[OrderState]:
        result = await self.private_method("/0/private/QueryOrders", {"txid": order_id})
        raw = result.get(order_id)
        if raw is None:
            return None
        return _parse_order(order_id, raw)
