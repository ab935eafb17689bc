"""
WhaleEx orders placed on-chain by a token transfer to whaleextrust.
"""
from dataclasses import dataclass
from typing import Optional
import logging
import random
import time

import httpx

from blockchain.eos import EOS_QUANTITY_PRECISION, EOS_TOKEN_CONTRACT, TransferAction, create_transfer_action
from blockchain.rpc import EosRpc
from credentials import SigningContext
from errors import ConfigurationError
from exchanges.whaleex import WHALEEX_EOS_ACCOUNT
from formatting import Number, convert_price_and_quantity_to_strings
from models import TradingPair

WHALEEX_TRUST_ACCOUNT = "whaleextrust"


def create_order_id(now: Optional[float] = None, rand: Optional[int] = None) -> str:
    """
    Create an order correlation id, grouped in 12-digit chunks.

    The id is unix seconds * 65536 plus a random value in [0, 65534].
    """
    seconds = int(time.time() if now is None else now)
    value = str(seconds * 65536 + (random.randint(0, 65534) if rand is None else rand))
    return " ".join(value[i:i + 12] for i in range(0, len(value), 12))


@dataclass(frozen=True)
class WhaleExEosOrder:
    """A transfer encoding a WhaleEx order and the order id inside its memo."""
    action: TransferAction
    order_id: str


def check_pair(pair: TradingPair) -> None:
    """
    Ensure the pair is quoted in EOS with the on-chain precision.

    Raises:
        ConfigurationError: If the quote contract, quote asset or precision is wrong
    """
    if pair.quote_contract != EOS_TOKEN_CONTRACT:
        raise ConfigurationError(f"WhaleEx on-chain orders need quote contract {EOS_TOKEN_CONTRACT}, "
                                 f"got {pair.quote_contract}")
    if not pair.normalized_pair.endswith("_EOS"):
        raise ConfigurationError(f"WhaleEx on-chain orders need an EOS quoted pair, got {pair.normalized_pair}")
    if pair.quote_precision != EOS_QUANTITY_PRECISION:
        raise ConfigurationError(f"{pair.normalized_pair} quote precision {pair.quote_precision} "
                                 f"doesn't match EOS precision {EOS_QUANTITY_PRECISION}")
    if not pair.base_contract:
        raise ConfigurationError(f"{pair.normalized_pair} has no base contract")


def build_order(
    account: str,
    pair: TradingPair,
    price: Number,
    quantity: Number,
    sell: bool,
    referral: str = "coinrace.com",
    now: Optional[float] = None
) -> WhaleExEosOrder:
    """
    Build the transfer placing a WhaleEx limit order.

    Buying transfers EOS, selling transfers the base token.

    Args:
        account: EOS account placing the order
        pair: EOS quoted pair
        price: Limit price
        quantity: Base quantity
        sell: True for a sell order
        referral: Referral tag at the end of the memo
        now: Unix time, defaults to now

    Returns:
        The transfer action and the order id without spaces
    """
    check_pair(pair)
    price_str, quantity_str, quote_quantity_str = convert_price_and_quantity_to_strings(pair, price, quantity, sell)

    now = time.time() if now is None else now
    order_id = create_order_id(now)

    memo = (f"order:{account} | {'sell' if sell else 'buy'} | limit | {pair.base_contract} | {pair.base} | "
            f"{quantity_str.replace('.', '', 1)} | {EOS_TOKEN_CONTRACT} | EOS | "
            f"{quote_quantity_str.replace('.', '', 1)} | 10 | 10 | {WHALEEX_EOS_ACCOUNT} | {order_id} | "
            f"{int(now)} | | {price_str} | {referral}:")

    if sell:
        action = create_transfer_action(account, WHALEEX_TRUST_ACCOUNT, pair.base, quantity_str, memo,
                                        contract=pair.base_contract)  # type: ignore[arg-type]
    else:
        action = create_transfer_action(account, WHALEEX_TRUST_ACCOUNT, "EOS", quote_quantity_str, memo)

    return WhaleExEosOrder(action=action, order_id=order_id.replace(" ", ""))


class WhaleExEosClient:
    """Places WhaleEx orders through the EOS chain."""

    def __init__(self, context: SigningContext, http: httpx.AsyncClient, rpc: Optional[EosRpc] = None):
        self.private_key = context.eos_key()
        self.account = context.eos_account
        self.referral = context.referral
        self.rpc = rpc or EosRpc(http, context.eos_api_endpoints or None)

    async def place_order(self, pair: TradingPair, price: Number, quantity: Number, sell: bool) -> str:
        """
        Broadcast the order transfer.

        Returns:
            The WhaleEx order id carried in the memo, used to cancel or query
            the order through the WhaleEx REST API
        """
        order = build_order(self.account, pair, price, quantity, sell, self.referral)  # type: ignore[arg-type]
        logging.info(f"Placing WhaleEx on-chain order {order.order_id}: "
                     f"{order.action.quantity} {order.action.symbol} -> {WHALEEX_TRUST_ACCOUNT}")
        transaction_id = await self.rpc.send_transaction([order.action.to_action()], self.private_key)
        logging.info(f"WhaleEx on-chain order {order.order_id} broadcast in transaction {transaction_id}")
        return order.order_id
