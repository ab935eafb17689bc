"""
Data model shared by the venue clients.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TradingPair:
    """
    Reference data for one pair on one exchange.

    Attributes:
        exchange: Exchange name (e.g. "Newdex")
        normalized_pair: Normalized pair, e.g. "EIDOS_EOS"
        raw_pair: Exchange specific pair string (e.g. "eidosonecoin-eidos-eos")
        price_precision: Number of decimals allowed in the price
        base_precision: Number of decimals of the base asset quantity
        quote_precision: Number of decimals of the quote asset quantity
        base_contract: On-chain contract of the base asset (DEX only)
        quote_contract: On-chain contract of the quote asset (DEX only)
        min_base_quantity: Minimum order quantity in base asset
        min_quote_quantity: Minimum order value in quote asset
    """
    exchange: str
    normalized_pair: str
    raw_pair: str
    price_precision: int
    base_precision: int
    quote_precision: int
    base_contract: Optional[str] = None
    quote_contract: Optional[str] = None
    min_base_quantity: Optional[Decimal] = None
    min_quote_quantity: Optional[Decimal] = None

    @property
    def base(self) -> str:
        return self.normalized_pair.split("_")[0]

    @property
    def quote(self) -> str:
        return self.normalized_pair.split("_")[1]


@dataclass(frozen=True)
class DexOrderId:
    """Order identifier assigned by a DEX smart contract."""
    order_id: int
    pair_id: int


@dataclass(frozen=True)
class DexOrderRef:
    """Two-part identifier of an order placed through a blockchain transaction."""
    transaction_id: str
    order: DexOrderId


@dataclass(frozen=True)
class OrderState:
    """
    Canonical view of an order, parsed from a venue specific reply.

    The untouched reply is kept in ``raw`` for diagnostics.
    """
    exchange: str
    order_id: str
    status: str
    sell: Optional[bool] = None
    price: Optional[str] = None
    quantity: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)
