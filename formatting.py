"""
Price and quantity formatting with exact decimal arithmetic.
"""
from decimal import Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional, Tuple, Union
import logging

from models import TradingPair

Number = Union[str, int, float, Decimal]


def to_decimal(value: Number) -> Decimal:
    """
    Convert a number to Decimal without going through binary float digits.

    Floats are converted through their shortest repr, so 0.1 becomes
    Decimal("0.1") rather than 0.1000000000000000055511151231257827.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def number_to_string(n: Number, decimal: int, ceil: bool = False) -> str:
    """
    Format a number with exactly ``decimal`` digits after the decimal point.

    The value is first rounded half-up at digit ``decimal + 1``, then rounded
    up (``ceil=True``) or truncated to ``decimal`` digits.

    Args:
        n: The number to format
        decimal: Number of decimal places, must not be negative
        ceil: Round up instead of down at the last digit

    Returns:
        Fixed-point string, never in scientific notation

    Raises:
        ValueError: If decimal is negative

    Examples:
        >>> number_to_string(0.0019999, 6)
        '0.001999'
        >>> number_to_string(0.0019999, 5)
        '0.00200'
    """
    if decimal < 0:
        raise ValueError(f"Invalid precision: {decimal}. Must be >= 0")

    value = to_decimal(n)
    rounded = (value.scaleb(decimal + 1)).to_integral_value(rounding=ROUND_HALF_UP) / 10
    restored = rounded.to_integral_value(rounding=ROUND_CEILING if ceil else ROUND_DOWN)
    quantized = restored.scaleb(-decimal).quantize(Decimal(1).scaleb(-decimal))
    return f"{quantized:f}"


def calc_precision(number_str: str) -> int:
    """Count the digits after the decimal point of a number string."""
    if "." not in number_str:
        return 0
    return len(number_str) - number_str.index(".") - 1


def validate_price_quantity(pair: TradingPair, price: str, quantity: str) -> bool:
    """
    Check formatted price and quantity strings against the pair limits.

    Args:
        pair: Trading pair reference data
        price: Formatted price string
        quantity: Formatted base quantity string

    Returns:
        True if the order respects the pair precision and minimums

    Raises:
        ValueError: If precision does not match or the order is too small
    """
    if calc_precision(price) != pair.price_precision:
        raise ValueError(f"{pair.exchange} {pair.raw_pair} precision of price {price} doesn't match {pair.price_precision}")
    if calc_precision(quantity) != pair.base_precision:
        raise ValueError(f"{pair.exchange} {pair.raw_pair} precision of quantity {quantity} doesn't match {pair.base_precision}")

    if pair.min_base_quantity is None and pair.min_quote_quantity is None:
        raise ValueError(f"{pair.exchange} {pair.raw_pair} has neither a base nor a quote minimum")

    if pair.min_base_quantity is not None and Decimal(quantity) < pair.min_base_quantity:
        raise ValueError(f"The base quantity {quantity} is less than min_base_quantity "
                         f"{pair.min_base_quantity} {pair.base}")

    quote_quantity = Decimal(price) * Decimal(quantity)
    if pair.min_quote_quantity is not None and quote_quantity <= pair.min_quote_quantity:
        raise ValueError(f"The order volume {quote_quantity} is less than min_quote_quantity "
                         f"{pair.min_quote_quantity} {pair.quote}")

    return True


def convert_price_and_quantity_to_strings(
    pair: TradingPair,
    price: Number,
    quantity: Number,
    sell: bool,
    quote_precision: Optional[int] = None
) -> Tuple[str, str, str]:
    """
    Format price, base quantity and quote amount for an order.

    A buyer's price and quote amount are rounded up so the venue is never
    under-paid; a seller's quote amount is rounded down. The base quantity is
    always rounded down.

    Args:
        pair: Trading pair reference data
        price: Limit price
        quantity: Base quantity
        sell: True for a sell order
        quote_precision: Override of the pair's quote precision

    Returns:
        Tuple of (price_str, quantity_str, quote_quantity_str)
    """
    price_str = number_to_string(price, pair.price_precision, not sell)
    quantity_str = number_to_string(quantity, pair.base_precision, False)

    validate_price_quantity(pair, price_str, quantity_str)

    decimals = pair.quote_precision if quote_precision is None else quote_precision
    quote_quantity_str = number_to_string(Decimal(price_str) * Decimal(quantity_str), decimals, not sell)

    logging.debug(f"{pair.exchange} {pair.normalized_pair}: price={price_str}, quantity={quantity_str}, "
                  f"quote_quantity={quote_quantity_str}")
    return price_str, quantity_str, quote_quantity_str
