"""
Newdex: limit orders settled by token transfers to newdexpublic.

An order is placed by a transfer whose JSON memo carries the trading
instruction. Its contract-assigned id is recovered afterwards from the
transaction trace through the Bloks explorer.
"""
from typing import Any, Dict, Optional
import json
import logging

import httpx

from blockchain.bloks import Bloks
from blockchain.eos import EOS_QUANTITY_PRECISION, EOS_TOKEN_CONTRACT, TransferAction, create_transfer_action
from blockchain.rpc import EosRpc
from credentials import SigningContext
from errors import ConfigurationError, PartialOrderError, ProtocolShapeError, TradingError
from formatting import Number, convert_price_and_quantity_to_strings
from models import DexOrderRef, OrderState, TradingPair

NEWDEX_ACCOUNT = "newdexpublic"
ORDER_TABLE_SCOPE = "...........u1"
SELL_ORDER_TYPE = 2


def build_order(
    account: str,
    pair: TradingPair,
    price: Number,
    quantity: Number,
    sell: bool,
    referral: str = "coinrace.com"
) -> TransferAction:
    """
    Build the transfer placing a Newdex limit order.

    Buying transfers the quote asset, selling transfers the base asset.

    Raises:
        ConfigurationError: If an EOS quoted pair has the wrong quote precision
            or the transferred token has no contract
    """
    if pair.quote == "EOS" and pair.quote_precision != EOS_QUANTITY_PRECISION:
        raise ConfigurationError(f"{pair.normalized_pair} quote precision {pair.quote_precision} "
                                 f"doesn't match EOS precision {EOS_QUANTITY_PRECISION}")

    price_str, quantity_str, quote_quantity_str = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

    memo = json.dumps({
        "type": "sell-limit" if sell else "buy-limit",
        "symbol": pair.raw_pair,
        "price": price_str,
        "channel": "dapp",
        "ref": referral,
    }, separators=(",", ":"))

    if sell:
        if not pair.base_contract:
            raise ConfigurationError(f"{pair.normalized_pair} has no base contract")
        return create_transfer_action(account, NEWDEX_ACCOUNT, pair.base, quantity_str, memo,
                                      contract=pair.base_contract)

    quote_contract = pair.quote_contract or (EOS_TOKEN_CONTRACT if pair.quote == "EOS" else None)
    if not quote_contract:
        raise ConfigurationError(f"{pair.normalized_pair} has no quote contract")
    return create_transfer_action(account, NEWDEX_ACCOUNT, pair.quote, quote_quantity_str, memo,
                                  contract=quote_contract)


class NewdexClient:
    """Newdex order placement, cancellation and lookup."""

    def __init__(
        self,
        context: SigningContext,
        http: httpx.AsyncClient,
        rpc: Optional[EosRpc] = None,
        bloks: Optional[Bloks] = None
    ):
        self.private_key = context.eos_key()
        self.account = context.eos_account
        self.referral = context.referral
        self.rpc = rpc or EosRpc(http, context.eos_api_endpoints or None)
        self.bloks = bloks or Bloks(http)

    async def place_order(self, pair: TradingPair, price: Number, quantity: Number, sell: bool) -> str:
        """
        Broadcast the order transfer.

        Returns:
            The transaction id, which identifies the order for cancel and query
        """
        action = build_order(self.account, pair, price, quantity, sell, self.referral)  # type: ignore[arg-type]
        logging.info(f"Placing Newdex order: {action.quantity} {action.symbol} -> {NEWDEX_ACCOUNT} "
                     f"memo={action.memo}")
        return await self.rpc.send_transaction([action.to_action()], self.private_key)

    async def place_and_resolve(self, pair: TradingPair, price: Number, quantity: Number, sell: bool) -> DexOrderRef:
        """
        Place an order and resolve its contract-assigned id.

        Raises:
            PartialOrderError: If the transaction was broadcast but the order id
                could not be resolved; carries the transaction id
        """
        transaction_id = await self.place_order(pair, price, quantity, sell)
        try:
            order = await self.bloks.get_order_id(transaction_id)
        except TradingError as e:
            logging.error(f"Newdex order {transaction_id} broadcast but not resolved: {e}")
            raise PartialOrderError("Order placed but its id could not be resolved", transaction_id, e)
        return DexOrderRef(transaction_id=transaction_id, order=order)

    async def cancel_order(self, pair: TradingPair, transaction_id: str) -> str:
        """
        Cancel the order placed by ``transaction_id``.

        Returns:
            The id of the cancel transaction
        """
        order = await self.bloks.get_order_id(transaction_id)
        action = {
            "account": NEWDEX_ACCOUNT,
            "name": "cancelorder",
            "authorization": [{"actor": self.account, "permission": "active"}],
            "data": {"order_id": order.order_id, "pair_id": order.pair_id},
        }
        logging.info(f"Cancelling Newdex order {order.order_id} on {pair.raw_pair}")
        return await self.rpc.send_transaction([action], self.private_key)

    async def _read_order_table(self, table: str, order_id: int) -> Dict[str, Any]:
        return await self.rpc.get_table_rows({
            "code": NEWDEX_ACCOUNT,
            "scope": ORDER_TABLE_SCOPE,
            "table": table,
            "lower_bound": order_id,
            "upper_bound": order_id + 1,
        })

    async def query_order(self, pair: TradingPair, transaction_id: str) -> Optional[OrderState]:
        """
        Look up an open order.

        Returns:
            The order, or None if it is in neither order table (filled or cancelled)

        Raises:
            ProtocolShapeError: If the table read is paginated, returns several
                rows, or the row belongs to another owner or token
        """
        order_id = (await self.bloks.get_order_id(transaction_id)).order_id

        response = await self._read_order_table("sellorder", order_id)
        if not response["rows"]:
            response = await self._read_order_table("buyorder", order_id)

        if response.get("more"):
            raise ProtocolShapeError("Order table read is paginated", {"order_id": order_id})
        rows = response["rows"]
        if not rows:
            return None
        if len(rows) != 1:
            raise ProtocolShapeError(f"Expected one order row, got {len(rows)}", {"order_id": order_id})

        row = rows[0]
        sell = row.get("type") == SELL_ORDER_TYPE
        if row.get("owner") != self.account:
            raise ProtocolShapeError("Order belongs to another account",
                                     {"order_id": order_id, "owner": row.get("owner")})
        expected_contract = pair.base_contract if sell else (pair.quote_contract or EOS_TOKEN_CONTRACT)
        if row.get("contract") != expected_contract:
            raise ProtocolShapeError("Order contract doesn't match the pair",
                                     {"expected": expected_contract, "actual": row.get("contract")})

        return OrderState(
            exchange="Newdex",
            order_id=transaction_id,
            status="open",
            sell=sell,
            price=str(row.get("price")),
            quantity=row.get("remain_quantity"),
            raw=row,
        )
