"""
Bitstamp exchange authentication and order placement.

Version 2 endpoints are signed with ``X-Auth*`` headers, the legacy
version 1 endpoints with a signature in the form body.
"""
from typing import Any, Dict, Optional
from urllib.parse import urlencode
import logging
import time
import uuid

import httpx

from credentials import SigningContext
from errors import ConfigurationError, ProtocolShapeError, VenueError
from exchanges.http import request_json
from exchanges.signing import NonceGenerator, hmac_digest, mask_api_key
from formatting import Number, convert_price_and_quantity_to_strings
from models import OrderState, TradingPair

DOMAIN = "www.bitstamp.net"
API_ENDPOINT = f"https://{DOMAIN}"
CONTENT_TYPE = "application/x-www-form-urlencoded"

ORDER_NOT_FOUND = ("Invalid order id", "Order not found")


class BitstampAuthenticator:
    """Bitstamp API authentication, v2 headers and v1 body signatures."""

    def __init__(self, api_key: str, api_secret: str, customer_id: Optional[int] = None):
        self.api_key = api_key
        self._api_secret = api_secret
        self.customer_id = customer_id
        self.nonces = NonceGenerator()
        logging.info(f"Bitstamp authenticator initialized: API Key={mask_api_key(api_key)}")

    @classmethod
    def from_context(cls, context: SigningContext) -> "BitstampAuthenticator":
        context.require("bitstamp_api_key", "bitstamp_api_secret")
        return cls(context.bitstamp_api_key, context.bitstamp_api_secret,  # type: ignore[arg-type]
                   context.bitstamp_user_id)

    def get_auth_headers(
        self,
        request_method: str,
        request_path: str,
        payload: str,
        nonce: Optional[str] = None,
        timestamp: Optional[int] = None
    ) -> Dict[str, str]:
        """
        Get the v2 authentication headers.

        Args:
            request_method: HTTP method
            request_path: API endpoint path
            payload: Url-encoded request body
            nonce: Unique request id, defaults to a fresh UUID1
            timestamp: Milliseconds since the epoch, defaults to now

        Returns:
            Dictionary of HTTP headers
        """
        nonce = nonce or str(uuid.uuid1())
        timestamp = timestamp or int(time.time() * 1000)

        message = (f"BITSTAMP {self.api_key}{request_method.upper()}{DOMAIN}{request_path}"
                   f"{CONTENT_TYPE}{nonce}{timestamp}v2{payload}")
        return {
            "X-Auth": f"BITSTAMP {self.api_key}",
            "X-Auth-Signature": hmac_digest(self._api_secret, message, "sha256", "hex"),
            "X-Auth-Nonce": nonce,
            "X-Auth-Timestamp": str(timestamp),
            "X-Auth-Version": "v2",
            "Content-Type": CONTENT_TYPE,
        }

    def sign_v1(self, nonce: int) -> str:
        """Upper-case hex HMAC-SHA256 of nonce + customer id + API key."""
        if not self.customer_id:
            raise ValueError("Bitstamp v1 signatures require the customer id")
        message = f"{nonce}{self.customer_id}{self.api_key}"
        return hmac_digest(self._api_secret, message, "sha256", "hex").upper()


class BitstampClient:
    """Bitstamp private REST API."""

    def __init__(self, context: SigningContext, http: httpx.AsyncClient):
        self.authenticator = BitstampAuthenticator.from_context(context)
        self.http = http

    async def private_request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a signed POST, picking the signature scheme from the path.

        Raises:
            VenueError: If Bitstamp answers with an error
        """
        params = dict(params or {})
        if "/v2/" in path:
            payload = urlencode(params) or "{}"
            headers = self.authenticator.get_auth_headers("POST", path, payload)
            data = await request_json(self.http, "POST", f"{API_ENDPOINT}{path}",
                                      content=payload, headers=headers)
            if isinstance(data, dict) and data.get("status") == "error":
                raise VenueError(f"Bitstamp error: {data.get('reason')}", data.get("reason"))
            return data

        if not self.authenticator.customer_id:
            raise ConfigurationError("Missing required credential fields: bitstamp_user_id")
        nonce = self.authenticator.nonces.next()
        params.update({
            "key": self.authenticator.api_key,
            "signature": self.authenticator.sign_v1(nonce),
            "nonce": nonce,
        })
        data = await request_json(self.http, "POST", f"{API_ENDPOINT}{path}", content=urlencode(params),
                                  headers={"Content-Type": CONTENT_TYPE})
        if isinstance(data, dict) and data.get("error"):
            raise VenueError(f"Bitstamp error: {data['error']}", data["error"])
        return data

    async def place_order(self, pair: TradingPair, price: Number, quantity: Number, sell: bool) -> str:
        price_str, quantity_str, _ = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

        path = f"/api/v2/{'sell' if sell else 'buy'}/{pair.raw_pair}/"
        logging.info(f"Placing Bitstamp order {path}: {quantity_str} @ {price_str}")
        data = await self.private_request(path, {"price": price_str, "amount": quantity_str})

        if "id" not in data:
            raise ProtocolShapeError("Bitstamp order reply has no id", {"response": data})
        return str(data["id"])

    async def cancel_order(self, pair: TradingPair, order_id: str) -> bool:
        data = await self.private_request("/api/v2/cancel_order/", {"id": order_id})
        logging.info(f"Bitstamp cancel {order_id} on {pair.raw_pair}: {data}")
        return data.get("id") == int(order_id)

    async def query_order(self, pair: TradingPair, order_id: str) -> Optional[OrderState]:
        try:
            data = await self.private_request("/api/order_status/", {"id": order_id})
        except VenueError as e:
            if str(e.payload) in ORDER_NOT_FOUND:
                return None
            raise

        return OrderState(
            exchange="Bitstamp",
            order_id=order_id,
            status=data.get("status", "unknown"),
            raw=data,
        )
