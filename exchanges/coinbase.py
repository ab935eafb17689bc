"""
Coinbase Advanced Trade authentication (ES256 JWT) and order placement.
"""
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
import json
import logging
import os
import time
import uuid

import httpx
import jwt
import requests

from credentials import SigningContext
from errors import ConfigurationError, ProtocolShapeError, VenueError
from exchanges.http import request_json
from formatting import Number, convert_price_and_quantity_to_strings
from models import OrderState, TradingPair

DEFAULT_API_BASE_URL = "https://api.coinbase.com"
JWT_MAX_LIFETIME = 120


def _api_base_url(api_base_url: Optional[str]) -> str:
    if api_base_url is None:
        return os.getenv("COINBASE_API_BASE_URL", DEFAULT_API_BASE_URL)
    return api_base_url


def _host(api_base_url: str) -> str:
    return api_base_url.replace("https://", "").replace("http://", "")


class CoinbaseAuthenticator:
    """Generate JWT tokens for Coinbase API authentication."""

    def __init__(self, api_key: str, private_key: str):
        """
        Initialize authenticator.

        Args:
            api_key: CDP key name (format: organizations/{org_id}/apiKeys/{key_id})
            private_key: EC private key in PEM format
        """
        self.api_key = api_key
        self._private_key = private_key
        # uri -> (token, expiry)
        self._cache: Dict[str, Tuple[str, float]] = {}

    @classmethod
    def from_context(cls, context: SigningContext) -> "CoinbaseAuthenticator":
        context.require("coinbase_api_key", "coinbase_private_key")
        return cls(context.coinbase_api_key, context.coinbase_private_key)  # type: ignore[arg-type]

    def generate_jwt(
        self,
        request_method: str = "GET",
        request_host: str = "api.coinbase.com",
        request_path: str = "/api/v3/brokerage/accounts",
        expires_in: int = JWT_MAX_LIFETIME
    ) -> str:
        """
        Generate a JWT token for Coinbase API authentication.

        Args:
            request_method: HTTP method (GET, POST, etc.)
            request_host: API host (e.g., api.coinbase.com)
            request_path: API endpoint path
            expires_in: Token validity in seconds (max 120)

        Returns:
            JWT token string

        Raises:
            ConfigurationError: If the private key cannot be used for ES256
        """
        current_time = int(time.time())
        uri = f"{request_method} {request_host}{request_path}"

        payload: Dict[str, Any] = {
            "iss": "cdp",
            "nbf": current_time,
            "exp": current_time + min(expires_in, JWT_MAX_LIFETIME),
            "sub": self.api_key,
            "uri": uri
        }
        headers = {
            "kid": self.api_key,
            "nonce": uuid.uuid4().hex
        }

        try:
            token = jwt.encode(payload, self._private_key, algorithm="ES256", headers=headers)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ConfigurationError(f"Invalid Coinbase private key: {type(e).__name__}")

        logging.debug(f"Generated JWT for {uri} (expires in {expires_in}s)")
        return token

    def get_token(
        self,
        request_method: str = "GET",
        request_host: str = "api.coinbase.com",
        request_path: str = "/api/v3/brokerage/accounts",
        use_cache: bool = True
    ) -> str:
        """
        Get a JWT token, reusing a cached one for the same uri while valid.

        Returns:
            JWT token string
        """
        current_time = time.time()
        uri = f"{request_method} {request_host}{request_path}"

        # 10s buffer before expiry
        cached = self._cache.get(uri)
        if use_cache and cached and current_time < cached[1] - 10:
            logging.debug("Using cached JWT token")
            return cached[0]

        token = self.generate_jwt(request_method, request_host, request_path, JWT_MAX_LIFETIME)
        self._cache[uri] = (token, current_time + JWT_MAX_LIFETIME)
        return token

    def get_auth_headers(
        self,
        request_method: str = "GET",
        request_path: str = "/api/v3/brokerage/accounts",
        **kwargs: Any
    ) -> Dict[str, str]:
        """
        Get HTTP headers for authenticated Coinbase API request.

        Args:
            request_method: HTTP method
            request_path: API endpoint path
            **kwargs: ``request_host``, defaults to api.coinbase.com

        Returns:
            Dictionary of HTTP headers including Authorization
        """
        request_host = kwargs.get("request_host", "api.coinbase.com")
        token = self.get_token(request_method, request_host, request_path)
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json"
        }


class CoinbaseClient:
    """Coinbase Advanced Trade brokerage API."""

    def __init__(self, context: SigningContext, http: httpx.AsyncClient, api_base_url: Optional[str] = None):
        self.authenticator = CoinbaseAuthenticator.from_context(context)
        self.http = http
        self.api_base_url = _api_base_url(api_base_url)

    async def _request(self, method: str, request_path: str, **kwargs: Any) -> Any:
        headers = self.authenticator.get_auth_headers(method, request_path,
                                                      request_host=_host(self.api_base_url))
        url = f"{self.api_base_url}{request_path}"
        logging.debug(f"API URL: {url}")
        return await request_json(self.http, method, url, headers=headers, **kwargs)

    async def place_order(
        self,
        pair: TradingPair,
        price: Number,
        quantity: Number,
        sell: bool,
        client_order_id: Optional[str] = None
    ) -> str:
        """
        Place a limit GTC order.

        Returns:
            Coinbase order id

        Raises:
            VenueError: If Coinbase rejects the order
        """
        price_str, quantity_str, _ = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

        request_body: Dict[str, Any] = {
            "client_order_id": client_order_id or str(uuid.uuid4()),
            "product_id": pair.raw_pair,
            "side": "SELL" if sell else "BUY",
            "order_configuration": {
                "limit_limit_gtc": {
                    "base_size": quantity_str,
                    "limit_price": price_str
                }
            }
        }

        logging.info(f"Placing {request_body['side']} order for {pair.raw_pair}: {quantity_str} @ {price_str}")
        logging.debug(f"Request body: {json.dumps(request_body, indent=2)}")
        result = await self._request("POST", "/api/v3/brokerage/orders", json=request_body)

        if not result.get("success"):
            error_response = result.get("error_response", {})
            error_msg = error_response.get("message", "Unknown error")
            logging.error(f"Order failed - Error: {error_response.get('error', 'UNKNOWN')}, Message: {error_msg}")
            raise VenueError(f"Order failed: {error_msg}", error_response)

        order_id = result.get("success_response", {}).get("order_id")
        if not order_id:
            raise ProtocolShapeError("Coinbase order reply has no order_id", {"response": result})
        logging.info(f"Order API response - Success: True, Order ID: {order_id}")
        return order_id

    async def cancel_order(self, pair: TradingPair, order_id: str) -> bool:
        result = await self._request("POST", "/api/v3/brokerage/orders/batch_cancel",
                                     json={"order_ids": [order_id]})
        results = result.get("results", [])
        if len(results) != 1:
            raise ProtocolShapeError("Expected one cancel result", {"results": results})
        logging.info(f"Coinbase cancel {order_id} on {pair.raw_pair}: {results[0]}")
        return bool(results[0].get("success"))

    async def query_order(self, pair: TradingPair, order_id: str) -> Optional[OrderState]:
        try:
            result = await self._request("GET", f"/api/v3/brokerage/orders/historical/{order_id}")
        except VenueError as e:
            if isinstance(e.payload, dict) and e.payload.get("error") == "NOT_FOUND":
                return None
            raise

        order = result.get("order")
        if not order:
            return None
        if order.get("product_id") != pair.raw_pair:
            raise ProtocolShapeError("Order belongs to another product",
                                     {"expected": pair.raw_pair, "actual": order.get("product_id")})

        config = order.get("order_configuration", {}).get("limit_limit_gtc", {})
        return OrderState(
            exchange="Coinbase",
            order_id=order_id,
            status=order.get("status", "UNKNOWN"),
            sell=order.get("side") == "SELL",
            price=config.get("limit_price"),
            quantity=config.get("base_size"),
            raw=order,
        )


def verify_coinbase_connection(context: SigningContext, api_base_url: Optional[str] = None) -> Dict[str, str]:
    """
    Check the Coinbase key by listing every account page.

    Meant as a startup probe before any order is placed.

    Args:
        context: Signing context holding the Coinbase key
        api_base_url: Override default API base URL (for testing)

    Returns:
        Mapping of currency to "value currency" available balance

    Raises:
        ConfigurationError: If credentials are missing or invalid
        requests.HTTPError: If API request fails
    """
    api_base_url = _api_base_url(api_base_url)
    authenticator = CoinbaseAuthenticator.from_context(context)
    request_path = "/api/v3/brokerage/accounts"

    headers = authenticator.get_auth_headers("GET", request_path, request_host=_host(api_base_url))

    url = f"{api_base_url}{request_path}"
    logging.info("Verifying Coinbase API connectivity...")
    logging.debug(f"API URL: {url}")

    all_accounts: list[Dict[str, Any]] = []
    cursor = None

    while True:
        params: Dict[str, Any] = {"limit": 250}
        if cursor:
            params["cursor"] = cursor

        response = requests.get(url, headers=headers, params=params, timeout=30)
        response.raise_for_status()
        result = response.json()

        all_accounts.extend(result.get("accounts", []))

        if not result.get("has_next", False):
            break
        cursor = result.get("cursor")
        if not cursor:
            break

        logging.debug(f"Fetching next page of accounts (cursor: {cursor})")

    logging.info("Coinbase API connection verified successfully!")
    logging.info(f"Found {len(all_accounts)} account(s) total")

    balances: Dict[str, str] = {}
    for account in all_accounts:
        currency = account.get("currency", "???")
        available_balance = account.get("available_balance", {})
        balance_value = available_balance.get("value", "0")
        if Decimal(balance_value or "0") == 0:
            continue
        balance_currency = available_balance.get("currency", currency)
        logging.info(f"  - {currency}: {balance_value} {balance_currency} available")
        balances[currency] = f"{balance_value} {balance_currency}"

    return balances
