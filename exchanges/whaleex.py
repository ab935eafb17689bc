"""
WhaleEx REST API: EOS-key request signing, binary order signatures and the
global order id pool.
"""
from collections import deque
from dataclasses import asdict, dataclass
from decimal import ROUND_CEILING, ROUND_DOWN
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple
import asyncio
import hashlib
import logging
import struct
import time

import httpx

from blockchain.eos import EosPrivateKey
from credentials import SigningContext
from errors import ProtocolShapeError, VenueError
from exchanges.http import request_json
from exchanges.signing import canonical_query, encode_uri_component, mask_api_key
from formatting import Number, convert_price_and_quantity_to_strings, to_decimal
from models import OrderState, TradingPair

DOMAIN = "api.whaleex.com"
URL_PREFIX = f"https://{DOMAIN}/BUSINESS"
WHALEEX_EOS_ACCOUNT = "whaleexchang"

ORDER_TYPES = ("buy-limit", "sell-limit", "buy-market", "sell-market")

# Paths signed with the public key only
PK_ONLY_PATHS = frozenset({"/api/auth/pk/status"})

# Global ids expire after 5 minutes; refresh a batch older than this
ID_POOL_MAX_AGE = 240.0
ID_BATCH_SIZE = 100
# Batches whose issued ids are remembered; older ids have long expired
ISSUED_BATCHES_KEPT = 8


class Packer:
    """Accumulate strings and little-endian integers into a byte buffer."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def update_str(self, value: str) -> "Packer":
        self._buf += value.encode("utf-8")
        return self

    def update_int16(self, value: int) -> "Packer":
        self._buf += struct.pack("<h", value)
        return self

    def update_int32(self, value: int) -> "Packer":
        self._buf += struct.pack("<i", value)
        return self

    def update_int64(self, value: Any) -> "Packer":
        self._buf += struct.pack("<q", int(value))
        return self

    def finalize(self) -> bytes:
        return bytes(self._buf)


def multiply(m: Number, n: Number, decimal: int, ceil: bool = False) -> str:
    """
    Compute m * n * 10^decimal as an integer string.

    The product is exact; ``ceil`` rounds a fractional result up, otherwise
    it is truncated.
    """
    product = to_decimal(m) * to_decimal(n) * to_decimal(10) ** decimal
    return str(product.to_integral_value(rounding=ROUND_CEILING if ceil else ROUND_DOWN))


@dataclass(frozen=True)
class WhaleExOrder:
    """Order body posted to /api/v1/order/orders/place."""
    orderId: str
    amount: str
    price: str
    symbol: str
    type: str


def pack_order(account: str, order: WhaleExOrder, timestamp: int, pair: TradingPair) -> bytes:
    """
    Serialize an order into the layout WhaleEx verifies signatures against.

    Layout: account, counter-account, order id (int64), timestamp in seconds
    (int32), then the (contract, token, int64 amount) tuples of what is given
    and what is received, then two int16 fee rates of 10.

    Args:
        account: EOS account placing the order
        order: Order to pack
        timestamp: Milliseconds since the epoch
        pair: Pair with base/quote contracts and precisions

    Returns:
        Packed bytes

    Raises:
        ValueError: If the order type is unknown
    """
    if order.type not in ORDER_TYPES:
        raise ValueError(f"Invalid order type: {order.type}. Must be one of {ORDER_TYPES}")

    pack = Packer()
    pack.update_str(account).update_str(WHALEEX_EOS_ACCOUNT) \
        .update_int64(order.orderId).update_int32(timestamp // 1000)

    base = (pair.base_contract or "", pair.base)
    quote = (pair.quote_contract or "", pair.quote)
    price, quantity = order.price, order.amount

    if order.type == "buy-limit":
        given = multiply(price, quantity, pair.quote_precision, True)
        received = multiply(1, quantity, pair.base_precision)
        sides = (quote, given, base, received)
    elif order.type == "sell-limit":
        given = multiply(1, quantity, pair.base_precision)
        received = multiply(price, quantity, pair.quote_precision)
        sides = (base, given, quote, received)
    elif order.type == "buy-market":
        sides = (quote, multiply(1, quantity, pair.quote_precision), base, "0")
    else:
        sides = (base, multiply(1, quantity, pair.base_precision), quote, "0")

    (give_contract, give_token), give_amount, (get_contract, get_token), get_amount = sides
    pack.update_str(give_contract).update_str(give_token).update_int64(give_amount)
    pack.update_str(get_contract).update_str(get_token).update_int64(get_amount)
    pack.update_int16(10).update_int16(10)
    return pack.finalize()


class WhaleExSigner:
    """Signs WhaleEx requests and orders with the account's EOS key."""

    def __init__(self, account: str, private_key: EosPrivateKey, api_key: str):
        self.account = account
        self.private_key = private_key
        self.api_key = api_key
        self.public_key = private_key.public_key()
        logging.info(f"WhaleEx signer initialized: account={account}, API Key={mask_api_key(api_key)}")

    @classmethod
    def from_context(cls, context: SigningContext) -> "WhaleExSigner":
        context.require("whaleex_api_key")
        return cls(context.eos_account, context.eos_key(), context.whaleex_api_key)  # type: ignore[arg-type]

    def sign_order(self, order: WhaleExOrder, timestamp: int, pair: TradingPair) -> str:
        digest = hashlib.sha256(pack_order(self.account, order, timestamp, pair)).digest()
        return self.private_key.sign_hash(digest)

    def sign_data(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        timestamp: Optional[int] = None
    ) -> str:
        """
        Sign a request and return its query string.

        Args:
            method: HTTP method
            path: API path, without the /BUSINESS prefix
            params: Request parameters
            timestamp: Milliseconds since the epoch, defaults to now

        Returns:
            Sorted query string followed by ``&Signature=...``
        """
        if path in PK_ONLY_PATHS:
            signed: Dict[str, Any] = {"pk": self.public_key}
        else:
            signed = {
                "timestamp": timestamp or int(time.time() * 1000),
                "APIKey": self.api_key,
                "pk": self.public_key,
            }
        signed.update(params or {})

        params_str = canonical_query(signed)
        data = f"{method.upper()}\n{DOMAIN}\n{path}\n{encode_uri_component(params_str)}"
        return f"{params_str}&Signature={self.private_key.sign(data)}"

    def sign_data_order(self, order: WhaleExOrder, pair: TradingPair, timestamp: Optional[int] = None) -> str:
        timestamp = timestamp or int(time.time() * 1000)
        params_str = canonical_query({
            "APIKey": self.api_key,
            "timestamp": timestamp,
            "pk": self.public_key,
            "orderId": order.orderId,
        })
        return f"{params_str}&Signature={self.sign_order(order, timestamp, pair)}"


class IdPool:
    """
    Pre-fetched WhaleEx global order ids.

    States: EMPTY -> FILLING -> READY -> (pop) -> READY or EMPTY. Popping
    from EMPTY fetches a batch before returning. A READY batch older than
    ``max_age`` seconds is replaced before serving. An id is never served
    twice; served ids are remembered for the last ``issued_batches``
    batches, by which time WhaleEx has expired them.
    """

    EMPTY = "EMPTY"
    FILLING = "FILLING"
    READY = "READY"

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[Tuple[str, List[str]]]],
        max_age: float = ID_POOL_MAX_AGE,
        clock: Callable[[], float] = time.monotonic,
        issued_batches: int = ISSUED_BATCHES_KEPT
    ):
        """
        Args:
            fetch: Coroutine taking the continuation remark and returning
                (next remark, ids)
            max_age: Seconds after which a batch is refreshed
            clock: Monotonic clock, injectable for tests
            issued_batches: Number of batches whose served ids are remembered
        """
        self._fetch = fetch
        self.max_age = max_age
        self._clock = clock
        self._lock = asyncio.Lock()
        self._ids: List[str] = []
        # Served ids, one set per batch, newest last
        self._issued: Deque[Set[str]] = deque([set()], maxlen=max(issued_batches, 1))
        self._remark = "0"
        self._fetched_at = 0.0
        self.state = self.EMPTY

    def __len__(self) -> int:
        return len(self._ids)

    def was_issued(self, order_id: str) -> bool:
        return any(order_id in batch for batch in self._issued)

    async def _refill(self) -> None:
        previous = self.state
        self.state = self.FILLING
        try:
            remark, ids = await self._fetch(self._remark)
        except Exception:
            self.state = previous
            raise

        fresh = [i for i in ids if not self.was_issued(i)]
        if not fresh:
            self.state = previous
            raise ProtocolShapeError("WhaleEx returned no unused global ids", {"remark": remark})

        self._remark = remark
        self._ids = fresh
        self._issued.append(set())
        self._fetched_at = self._clock()
        self.state = self.READY
        logging.info(f"Refilled WhaleEx id pool with {len(fresh)} ids (remark={remark})")

    async def pop(self) -> str:
        async with self._lock:
            if self.state == self.READY and self._clock() - self._fetched_at > self.max_age:
                logging.info("WhaleEx id pool is about to expire, refreshing")
                self._ids = []
                self.state = self.EMPTY
            if not self._ids:
                await self._refill()

            order_id = self._ids.pop()
            self._issued[-1].add(order_id)
            if not self._ids:
                self.state = self.EMPTY
            return order_id


def _check_return_code(data: Dict[str, Any]) -> Any:
    if str(data.get("returnCode")) != "0":
        raise VenueError(f"WhaleEx error: {data.get('message', data.get('returnCode'))}", data)
    return data.get("result")


class WhaleExClient:
    """WhaleEx REST API."""

    def __init__(self, context: SigningContext, http: httpx.AsyncClient, id_pool: Optional[IdPool] = None):
        self.signer = WhaleExSigner.from_context(context)
        self.http = http
        self.id_pool = id_pool or IdPool(self.get_global_ids)

    async def get_global_ids(self, remark: str = "0") -> Tuple[str, List[str]]:
        path = "/api/v1/order/globalIds"
        params = self.signer.sign_data("GET", path, {"remark": remark, "size": ID_BATCH_SIZE})
        data = await request_json(self.http, "GET", f"{URL_PREFIX}{path}?{params}")

        result = _check_return_code(data)
        if not isinstance(result, dict) or not isinstance(result.get("list"), list):
            raise ProtocolShapeError("WhaleEx globalIds reply has no id list", {"response": data})
        logging.info(f"Calling get_global_ids(remark:{remark}), new remark={result.get('remark')}")
        return str(result.get("remark")), [str(i) for i in result["list"]]

    async def place_order(self, pair: TradingPair, price: Number, quantity: Number, sell: bool) -> str:
        price_str, quantity_str, _ = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

        order = WhaleExOrder(
            orderId=await self.id_pool.pop(),
            amount=quantity_str,
            price=price_str,
            symbol=pair.raw_pair,
            type="sell-limit" if sell else "buy-limit",
        )
        path = "/api/v1/order/orders/place"
        params = self.signer.sign_data_order(order, pair)

        logging.info(f"Placing WhaleEx {order.type} order {order.orderId} for {pair.raw_pair}: "
                     f"{quantity_str} @ {price_str}")
        data = await request_json(self.http, "POST", f"{URL_PREFIX}{path}?{params}", json=asdict(order))

        result = _check_return_code(data)
        if result is None:
            raise ProtocolShapeError("WhaleEx order reply has no result", {"response": data})
        return str(result)

    async def cancel_order(self, pair: TradingPair, order_id: str) -> bool:
        path = f"/api/v1/order/orders/{order_id}/submitcancel"
        params = self.signer.sign_data("POST", path)
        data = await request_json(self.http, "POST", f"{URL_PREFIX}{path}?{params}")
        _check_return_code(data)
        logging.info(f"WhaleEx cancel {order_id} on {pair.raw_pair}: done")
        return True

    async def query_order(self, pair: TradingPair, order_id: str) -> Optional[OrderState]:
        path = f"/api/v1/order/orders/{order_id}"
        params = self.signer.sign_data("GET", path)
        data = await request_json(self.http, "GET", f"{URL_PREFIX}{path}?{params}")

        raw = _check_return_code(data)
        if not raw:
            return None
        side = raw.get("side") or raw.get("type")
        return OrderState(
            exchange="WhaleEx",
            order_id=order_id,
            status=str(raw.get("status", "unknown")),
            sell=str(side).lower().startswith("sell") if side else None,
            price=raw.get("price"),
            quantity=raw.get("quantity"),
            raw=raw,
        )
