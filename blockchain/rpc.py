"""
Redundant EOS RPC access.

Public EOS endpoints are individually unreliable, so every read and every
broadcast is raced against several endpoints and the first success wins.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar
import asyncio
import hashlib
import logging
import random

import httpx

from blockchain.eos import EOS_API_ENDPOINTS, EosPrivateKey
from blockchain.serializer import pack_action, pack_transaction, pack_transfer
from errors import AllEndpointsFailedError, NetworkError, ProtocolShapeError, VenueError

T = TypeVar("T")

DEFAULT_ENDPOINT_TIMEOUT = 8.0
DEFAULT_FANOUT = 3


async def first_success(
    factories: Sequence[Callable[[], Awaitable[T]]],
    timeout: float = DEFAULT_ENDPOINT_TIMEOUT,
    max_concurrency: Optional[int] = None
) -> T:
    """
    Run coroutine factories concurrently and return the first successful result.

    Only ``NetworkError`` (including per-task timeouts) is tolerated. Any
    other exception aborts the race and is raised as is, since it means the
    answer itself was wrong rather than unavailable.

    Args:
        factories: Zero-argument callables returning awaitables
        timeout: Timeout for each task in seconds
        max_concurrency: Maximum number of tasks in flight (all by default)

    Returns:
        Result of the first task that succeeded

    Raises:
        AllEndpointsFailedError: If every task failed with a network error
    """
    if not factories:
        raise ValueError("first_success needs at least one task")

    semaphore = asyncio.Semaphore(max_concurrency or len(factories))

    async def run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            try:
                return await asyncio.wait_for(factory(), timeout)
            except asyncio.TimeoutError:
                raise NetworkError(f"Timed out after {timeout}s")

    tasks = [asyncio.ensure_future(run(factory)) for factory in factories]
    errors: List[Exception] = []
    try:
        for next_done in asyncio.as_completed(tasks):
            try:
                return await next_done
            except NetworkError as e:
                logging.warning(f"Endpoint failed: {e}")
                errors.append(e)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    raise AllEndpointsFailedError(f"All {len(factories)} endpoints failed", errors)


def extract_transaction_id(response: Dict[str, Any]) -> str:
    """
    Get the transaction id out of a push/history response.

    Endpoint implementations name it either ``transaction_id`` or ``id``.

    Raises:
        ProtocolShapeError: If neither field is present
    """
    transaction_id = response.get("transaction_id") or response.get("id")
    if not transaction_id:
        raise ProtocolShapeError("Unknown response format", {"keys": sorted(response.keys())})
    return transaction_id


class EosRpc:
    """EOS chain API client that races a random subset of endpoints."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        endpoints: Optional[Sequence[str]] = None,
        timeout: float = DEFAULT_ENDPOINT_TIMEOUT,
        fanout: int = DEFAULT_FANOUT
    ):
        """
        Initialize the RPC client.

        Args:
            http: Shared async HTTP client
            endpoints: Chain API base URLs (defaults to EOS_API_ENDPOINTS)
            timeout: Per-endpoint timeout in seconds
            fanout: Number of endpoints raced per request
        """
        self.http = http
        self.endpoints = list(endpoints or EOS_API_ENDPOINTS)
        self.timeout = timeout
        self.fanout = fanout
        if not self.endpoints:
            raise ValueError("At least one EOS endpoint is required")

    def _pick_endpoints(self) -> List[str]:
        return random.sample(self.endpoints, min(self.fanout, len(self.endpoints)))

    async def _post(self, endpoint: str, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{endpoint}{path}"
        try:
            response = await self.http.post(url, json=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {url}", {"error": str(e)})

        logging.debug(f"POST {url} -> {response.status_code}")
        if response.status_code >= 400:
            # nodeos reports contract assertion failures with an "error" object; any other
            # failure (rate limits, missing plugins, proxies) is specific to this endpoint
            payload = _json_or_text(response)
            if isinstance(payload, dict) and _is_chain_rejection(payload):
                raise VenueError(f"Transaction rejected by {endpoint}", payload)
            raise NetworkError(f"Endpoint error {response.status_code}: {url}", {"response": str(payload)[:500]})
        try:
            return response.json()
        except ValueError:
            raise NetworkError(f"Endpoint returned invalid JSON: {url}", {"response": response.text[:500]})

    async def _race(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        factories = [
            (lambda endpoint=endpoint: self._post(endpoint, path, body))
            for endpoint in self._pick_endpoints()
        ]
        return await first_success(factories, timeout=self.timeout)

    async def get_info(self) -> Dict[str, Any]:
        return await self._race("/v1/chain/get_info", {})

    async def get_block(self, block_num_or_id: Any) -> Dict[str, Any]:
        return await self._race("/v1/chain/get_block", {"block_num_or_id": block_num_or_id})

    async def abi_json_to_bin(self, code: str, action: str, args: Dict[str, Any]) -> bytes:
        response = await self._race("/v1/chain/abi_json_to_bin", {"code": code, "action": action, "args": args})
        if "binargs" not in response:
            raise ProtocolShapeError("abi_json_to_bin response has no binargs", {"keys": sorted(response.keys())})
        return bytes.fromhex(response["binargs"])

    async def get_table_rows(self, query: Dict[str, Any]) -> Dict[str, Any]:
        """
        Read contract table rows.

        Returns:
            Dict with ``rows`` and ``more``

        Raises:
            ProtocolShapeError: If the response has no rows list
        """
        body = {"json": True, "limit": 10, **query}
        response = await self._race("/v1/chain/get_table_rows", body)
        if not isinstance(response.get("rows"), list):
            raise ProtocolShapeError("get_table_rows response has no rows", {"keys": sorted(response.keys())})
        return response

    async def push_transaction(self, signed: Dict[str, Any]) -> str:
        """
        Broadcast a signed transaction and return its id.

        Raises:
            ProtocolShapeError: If the reply has neither transaction_id nor id
        """
        async def push(endpoint: str) -> str:
            response = await self._post(endpoint, "/v1/chain/push_transaction", signed)
            return extract_transaction_id(response)

        factories = [(lambda endpoint=endpoint: push(endpoint)) for endpoint in self._pick_endpoints()]
        return await first_success(factories, timeout=self.timeout)

    async def _serialize_action(self, action: Dict[str, Any]) -> bytes:
        if action["name"] == "transfer":
            data = pack_transfer(action["data"])
        else:
            data = await self.abi_json_to_bin(action["account"], action["name"], action["data"])
        return pack_action(action, data)

    async def send_transaction(
        self,
        actions: List[Dict[str, Any]],
        private_key: EosPrivateKey,
        blocks_behind: int = 3,
        expire_seconds: int = 300
    ) -> str:
        """
        Serialize, sign and broadcast a transaction.

        Args:
            actions: Actions in eosjs dict form
            private_key: Key of the authorizing account
            blocks_behind: Reference block distance from head
            expire_seconds: Expiration relative to the reference block

        Returns:
            The transaction id
        """
        info = await self.get_info()
        block = await self.get_block(info["head_block_num"] - blocks_behind)

        block_time = datetime.fromisoformat(block["timestamp"]).replace(tzinfo=timezone.utc)
        expiration = int((block_time + timedelta(seconds=expire_seconds)).timestamp())

        packed_actions = [await self._serialize_action(action) for action in actions]
        packed_trx = pack_transaction(expiration, block["block_num"], block["ref_block_prefix"], packed_actions)

        digest = hashlib.sha256(bytes.fromhex(info["chain_id"]) + packed_trx + bytes(32)).digest()
        signed = {
            "signatures": [private_key.sign_hash(digest)],
            "compression": "none",
            "packed_context_free_data": "",
            "packed_trx": packed_trx.hex(),
        }

        logging.info(f"Broadcasting transaction with {len(actions)} action(s)")
        transaction_id = await self.push_transaction(signed)
        logging.info(f"Transaction accepted: {transaction_id}")
        return transaction_id


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


def _is_chain_rejection(payload: Dict[str, Any]) -> bool:
    error = payload.get("error")
    return isinstance(error, dict) and error.get("name") in {
        "eosio_assert_message_exception",
        "expired_tx_exception",
        "unsatisfied_authorization",
        "tx_net_usage_exceeded",
        "tx_cpu_usage_exceeded",
        "ram_usage_exceeded",
        "overdrawn_balance",
    }
