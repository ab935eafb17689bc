"""
Transaction lookup through the bloks.io block explorer.

Used to recover the order id a DEX contract assigned to an order from the
trace of the transaction that placed it.
"""
from typing import Any, Dict
import logging

import httpx

from errors import NetworkError, ProtocolShapeError
from models import DexOrderId

BLOKS_TRANSACTION_URL = "https://www.api.bloks.io/dfuse?type=fetch_transaction&id={transaction_id}"

# The Newdex contract emits exactly three inline actions for an order;
# the third carries the order record.
EXPECTED_ACTION_TRACES = 1
EXPECTED_INLINE_TRACES = 3
ORDER_INLINE_TRACE_INDEX = 2


class Bloks:
    """Block explorer client."""

    def __init__(self, http: httpx.AsyncClient, timeout: float = 10.0):
        self.http = http
        self.timeout = timeout

    async def get_transaction(self, transaction_id: str) -> Dict[str, Any]:
        url = BLOKS_TRANSACTION_URL.format(transaction_id=transaction_id)
        try:
            response = await self.http.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {url}", {"error": str(e)})

        if response.status_code != 200:
            raise NetworkError(f"Block explorer returned {response.status_code} for {transaction_id}",
                               {"response": response.text[:500]})
        return response.json()

    @staticmethod
    def extract_order_response(transaction: Dict[str, Any]) -> Dict[str, Any]:
        """
        Extract the order record from an executed transaction.

        Args:
            transaction: Transaction record returned by the explorer

        Returns:
            The ``act.data`` of the order inline trace

        Raises:
            ProtocolShapeError: If the transaction did not execute or the trace
                shape differs from what the contract is known to produce
        """
        status = transaction.get("transaction_status")
        if status != "executed":
            raise ProtocolShapeError(f"Transaction status is {status!r}, expected 'executed'",
                                     {"id": transaction.get("id")})
        if not transaction.get("id"):
            raise ProtocolShapeError("Transaction record has no id")

        execution_trace = transaction.get("execution_trace")
        if not execution_trace:
            raise ProtocolShapeError("Transaction record has no execution_trace", {"id": transaction["id"]})

        action_traces = execution_trace.get("action_traces") or []
        if len(action_traces) != EXPECTED_ACTION_TRACES:
            raise ProtocolShapeError(f"Expected {EXPECTED_ACTION_TRACES} action trace, got {len(action_traces)}",
                                     {"id": transaction["id"]})

        inline_traces = action_traces[0].get("inline_traces") or []
        if len(inline_traces) != EXPECTED_INLINE_TRACES:
            raise ProtocolShapeError(f"Expected {EXPECTED_INLINE_TRACES} inline traces, got {len(inline_traces)}",
                                     {"id": transaction["id"]})

        try:
            return inline_traces[ORDER_INLINE_TRACE_INDEX]["act"]["data"]
        except (KeyError, TypeError):
            raise ProtocolShapeError("Order inline trace has no act.data", {"id": transaction["id"]})

    async def get_order_id(self, transaction_id: str) -> DexOrderId:
        """
        Resolve the (order_id, pair_id) a transaction created.

        Raises:
            ProtocolShapeError: If the transaction shape is unexpected
            NetworkError: If the explorer cannot be reached
        """
        transaction = await self.get_transaction(transaction_id)
        order = self.extract_order_response(transaction)
        if "order_id" not in order or "pair_id" not in order:
            raise ProtocolShapeError("Order record lacks order_id or pair_id", {"id": transaction_id})

        order_id = DexOrderId(order_id=int(order["order_id"]), pair_id=int(order["pair_id"]))
        logging.info(f"Transaction {transaction_id} created order {order_id.order_id} on pair {order_id.pair_id}")
        return order_id
