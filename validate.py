from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Set

from credentials import SigningContext

SUPPORTED_EXCHANGES: Set[str] = {
    "Bitstamp",
    "Coinbase",
    "Huobi",
    "Kraken",
    "MXC",
    "Newdex",
    "WhaleEx",
    "WhaleExEos",
}

# Venues that sign with the EOS account key
EOS_EXCHANGES: Set[str] = {"Newdex", "WhaleEx", "WhaleExEos"}

# Credential fields each venue needs before any request is sent
REQUIRED_CREDENTIALS: Dict[str, tuple[str, ...]] = {
    "Bitstamp": ("bitstamp_api_key", "bitstamp_api_secret"),
    "Coinbase": ("coinbase_api_key", "coinbase_private_key"),
    "Huobi": ("huobi_access_key", "huobi_secret_key", "huobi_account_id"),
    "Kraken": ("kraken_api_key", "kraken_private_key"),
    "MXC": ("mxc_access_key", "mxc_secret_key"),
    "Newdex": ("eos_account", "eos_private_key"),
    "WhaleEx": ("eos_account", "eos_private_key", "whaleex_api_key"),
    "WhaleExEos": ("eos_account", "eos_private_key"),
}

NATIVE_ASSET = "EOS"

# Venues accepting a caller-supplied correlation id on placement
CLIENT_ORDER_ID_EXCHANGES: Set[str] = {"Coinbase", "Huobi", "Kraken"}


def validate_exchange(exchange: str) -> tuple[bool, Optional[str]]:
    """
    Check the exchange name is supported.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if exchange not in SUPPORTED_EXCHANGES:
        return False, f"Unsupported exchange: {exchange}. Must be one of {', '.join(sorted(SUPPORTED_EXCHANGES))}"
    return True, None


def validate_pair(pair: str) -> tuple[bool, Optional[str]]:
    """
    Check a normalized pair has exactly two underscore-delimited parts.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(pair, str) or not pair:
        return False, "Pair must be a non-empty string"

    parts = pair.split("_")
    if len(parts) != 2 or not all(parts):
        return False, f"Invalid pair: {pair}. Must look like BASE_QUOTE"
    return True, None


def check_credentials(exchange: str, pair: str, context: SigningContext) -> tuple[bool, Optional[str]]:
    """
    Check the context holds what the venue needs.

    EOS quoted pairs on EOS venues always need the account and its key.

    Returns:
        Tuple of (is_valid, error_message)
    """
    required = list(REQUIRED_CREDENTIALS.get(exchange, ()))
    if exchange in EOS_EXCHANGES and pair.split("_")[-1] == NATIVE_ASSET:
        for name in ("eos_account", "eos_private_key"):
            if name not in required:
                required.append(name)

    missing = [name for name in required if getattr(context, name) in (None, "")]
    if missing:
        return False, f"{exchange} requires credentials: {', '.join(missing)}"
    return True, None


def validate_order_request(order: Dict[str, Any]) -> tuple[bool, Optional[str]]:
    """
    Validate an order intent before it is dispatched.

    Args:
        order: Dict with exchange, pair, price, quantity and sell

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = {"exchange", "pair", "price", "quantity", "sell"} - order.keys()
    if missing_fields:
        return False, f"Missing required fields: {', '.join(sorted(missing_fields))}"

    valid, error = validate_exchange(order["exchange"])
    if not valid:
        return valid, error

    valid, error = validate_pair(order["pair"])
    if not valid:
        return valid, error

    if not isinstance(order["sell"], bool):
        return False, "Field 'sell' must be a boolean"

    for field in ("price", "quantity"):
        value = order[field]
        if isinstance(value, bool):
            return False, f"Field '{field}' must be a valid number"
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return False, f"Field '{field}' must be a valid number"
        if not number.is_finite() or number <= 0:
            return False, f"Field '{field}' must be a positive number"

    return True, None


def validate_client_order_id(exchange: str, client_order_id: Optional[str]) -> tuple[bool, Optional[str]]:
    """
    Check a caller-supplied correlation id suits the venue.

    Kraken carries it as ``userref``, a signed 32-bit integer.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not client_order_id:
        return True, None
    if exchange not in CLIENT_ORDER_ID_EXCHANGES:
        return False, f"{exchange} does not accept client order ids"
    if exchange == "Kraken":
        try:
            userref = int(client_order_id)
        except ValueError:
            return False, f"Kraken client order id must be an integer, got {client_order_id!r}"
        if not -2 ** 31 <= userref < 2 ** 31:
            return False, f"Kraken client order id {userref} is outside the 32-bit range"
    return True, None
