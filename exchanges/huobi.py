"""
Huobi exchange authentication and order placement.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

import httpx

from credentials import SigningContext
from errors import ProtocolShapeError, VenueError
from exchanges.http import request_json
from exchanges.signing import canonical_query, encode_uri_component, hmac_digest, mask_api_key
from formatting import Number, convert_price_and_quantity_to_strings
from models import OrderState, TradingPair

DOMAIN = "api.huobi.pro"
API_ENDPOINT = f"https://{DOMAIN}"

# err-code of a lookup for an order id Huobi does not know
ORDER_NOT_FOUND = "base-record-invalid"


class HuobiAuthenticator:
    """Huobi signature version 2 (HmacSHA256 over the canonical request)."""

    def __init__(self, access_key: str, secret_key: str):
        self.access_key = access_key
        self._secret_key = secret_key
        logging.info(f"Huobi authenticator initialized: Access Key={mask_api_key(access_key)}")

    @classmethod
    def from_context(cls, context: SigningContext) -> "HuobiAuthenticator":
        context.require("huobi_access_key", "huobi_secret_key")
        return cls(context.huobi_access_key, context.huobi_secret_key)  # type: ignore[arg-type]

    def sign_request(
        self,
        method: str,
        request_path: str,
        params: Optional[Dict[str, Any]] = None,
        timestamp: Optional[str] = None
    ) -> str:
        """
        Build a signed request URL.

        The authentication parameters are merged with ``params``, sorted and
        percent-encoded; the signature covers
        ``METHOD\\nhost\\npath\\nquery``.

        Args:
            method: "GET" or "POST"
            request_path: API endpoint path
            params: Query parameters, for GET requests
            timestamp: UTC timestamp "YYYY-MM-DDThh:mm:ss", defaults to now

        Returns:
            Full URL including the Signature parameter
        """
        signed: Dict[str, Any] = dict(params or {})
        signed["Timestamp"] = timestamp or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        signed["SignatureMethod"] = "HmacSHA256"
        signed["SignatureVersion"] = "2"
        signed["AccessKeyId"] = self.access_key

        query = canonical_query(signed, encode=True)
        source = f"{method.upper()}\n{DOMAIN}\n{request_path}\n{query}"
        signature = hmac_digest(self._secret_key, source, "sha256", "base64")

        return f"{API_ENDPOINT}{request_path}?{query}&Signature={encode_uri_component(signature)}"


def _check_ok(data: Dict[str, Any]) -> Any:
    if data.get("status") != "ok":
        raise VenueError(f"Huobi error: {data.get('err-msg', data.get('err-code', 'unknown'))}", data)
    return data.get("data")


class HuobiClient:
    """Huobi spot REST API."""

    def __init__(self, context: SigningContext, http: httpx.AsyncClient):
        context.require("huobi_account_id")
        self.authenticator = HuobiAuthenticator.from_context(context)
        self.account_id = context.huobi_account_id
        self.http = http

    async def place_order(
        self,
        pair: TradingPair,
        price: Number,
        quantity: Number,
        sell: bool,
        client_order_id: Optional[str] = None
    ) -> str:
        price_str, quantity_str, _ = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

        path = "/v1/order/orders/place"
        body = {
            "account-id": str(self.account_id),
            "amount": quantity_str,
            "price": price_str,
            "symbol": pair.raw_pair,
            "type": "sell-limit" if sell else "buy-limit",
        }
        if client_order_id:
            body["client-order-id"] = client_order_id

        logging.info(f"Placing Huobi {body['type']} order for {pair.raw_pair}: {quantity_str} @ {price_str}")
        url = self.authenticator.sign_request("POST", path)
        data = await request_json(self.http, "POST", url, json=body)

        order_id = _check_ok(data)
        if not order_id:
            raise ProtocolShapeError("Huobi place order returned no order id", {"response": data})
        return str(order_id)

    async def cancel_order(self, pair: TradingPair, order_id: str) -> bool:
        path = f"/v1/order/orders/{order_id}/submitcancel"
        url = self.authenticator.sign_request("POST", path)
        data = await request_json(self.http, "POST", url, json={})

        result = _check_ok(data)
        logging.info(f"Huobi cancel {order_id} on {pair.raw_pair}: {result}")
        return str(result) == order_id

    async def query_order(self, pair: TradingPair, order_id: str) -> Optional[OrderState]:
        path = f"/v1/order/orders/{order_id}"
        url = self.authenticator.sign_request("GET", path)
        data = await request_json(self.http, "GET", url)

        if data.get("status") == "error" and data.get("err-code") == ORDER_NOT_FOUND:
            return None
        raw = _check_ok(data)
        return OrderState(
            exchange="Huobi",
            order_id=order_id,
            status=raw.get("state", "unknown"),
            sell=raw.get("type", "").startswith("sell"),
            price=raw.get("price"),
            quantity=raw.get("amount"),
            raw=raw,
        )
