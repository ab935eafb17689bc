"""
MXC exchange authentication and order placement.
"""
from typing import Any, Dict, Optional, Tuple
import hashlib
import logging
import time

import httpx

from credentials import SigningContext
from errors import ProtocolShapeError, VenueError
from exchanges.http import request_json
from exchanges.signing import canonical_query, mask_api_key
from formatting import Number, convert_price_and_quantity_to_strings
from models import OrderState, TradingPair

API_BASE_URL = "https://www.mxc.com"
ORDER_PATH = "/open/api/v1/private/order"


class MxcAuthenticator:
    """MXC request signing: MD5 over the sorted query and the secret."""

    def __init__(self, access_key: str, secret_key: str):
        self.access_key = access_key
        self._secret_key = secret_key
        logging.info(f"MXC authenticator initialized: Access Key={mask_api_key(access_key)}")

    @classmethod
    def from_context(cls, context: SigningContext) -> "MxcAuthenticator":
        context.require("mxc_access_key", "mxc_secret_key")
        return cls(context.mxc_access_key, context.mxc_secret_key)  # type: ignore[arg-type]

    def sign(self, params: Dict[str, Any]) -> Tuple[str, str]:
        """
        Sign request parameters.

        Returns:
            Tuple of (sorted query string, hex MD5 signature)
        """
        query = canonical_query(params)
        signature = hashlib.md5(f"{query}&api_secret={self._secret_key}".encode("utf-8")).hexdigest()
        return query, signature

    def signed_url(self, path: str, params: Dict[str, Any]) -> str:
        signed = {"api_key": self.access_key, "req_time": int(time.time() * 1000), **params}
        query, signature = self.sign(signed)
        return f"{API_BASE_URL}{path}?{query}&sign={signature}"


def _check_code(data: Dict[str, Any]) -> Any:
    if data.get("code") != 200:
        raise VenueError(f"MXC error: {data.get('msg', data.get('code'))}", data)
    return data.get("data")


class MxcClient:
    """MXC private REST API."""

    def __init__(self, context: SigningContext, http: httpx.AsyncClient):
        self.authenticator = MxcAuthenticator.from_context(context)
        self.http = http

    async def place_order(self, pair: TradingPair, price: Number, quantity: Number, sell: bool) -> str:
        price_str, quantity_str, _ = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

        url = self.authenticator.signed_url(ORDER_PATH, {
            "market": pair.raw_pair,
            "price": price_str,
            "quantity": quantity_str,
            "trade_type": 2 if sell else 1,
        })
        logging.info(f"Placing MXC {'sell' if sell else 'buy'} order for {pair.raw_pair}: "
                     f"{quantity_str} @ {price_str}")
        data = await request_json(self.http, "POST", url)

        order_id = _check_code(data)
        if not order_id:
            raise ProtocolShapeError("MXC place order returned no order id", {"response": data})
        return str(order_id)

    async def cancel_order(self, pair: TradingPair, order_id: str) -> bool:
        url = self.authenticator.signed_url(ORDER_PATH, {"market": pair.raw_pair, "trade_no": order_id})
        data = await request_json(self.http, "DELETE", url)
        _check_code(data)
        logging.info(f"MXC cancel {order_id} on {pair.raw_pair}: done")
        return True

    async def query_order(self, pair: TradingPair, order_id: str) -> Optional[OrderState]:
        url = self.authenticator.signed_url(ORDER_PATH, {"market": pair.raw_pair, "trade_no": order_id})
        data = await request_json(self.http, "GET", url)

        raw = _check_code(data)
        if not raw:
            return None
        return OrderState(
            exchange="MXC",
            order_id=order_id,
            status=str(raw.get("status", "unknown")),
            sell=raw.get("type") == 2 if "type" in raw else None,
            price=raw.get("price"),
            quantity=raw.get("totalQuantity"),
            raw=raw,
        )
