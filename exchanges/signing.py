"""
Canonical request strings, HMAC digests and nonces shared by the REST signers.
"""
from typing import Any, Mapping, Union
from urllib.parse import quote
import base64
import hashlib
import hmac
import time

# encodeURIComponent leaves these unescaped, on top of quote()'s own safe set
_URI_COMPONENT_SAFE = "!*'()"

SUPPORTED_ALGORITHMS = ("sha256", "sha512")
SUPPORTED_ENCODINGS = ("hex", "base64")


def encode_uri_component(value: Any) -> str:
    """Percent-encode a value like JavaScript's encodeURIComponent."""
    return quote(str(value), safe=_URI_COMPONENT_SAFE)


def canonical_query(params: Mapping[str, Any], encode: bool = False) -> str:
    """
    Build the canonical query string of a request.

    Keys are sorted alphabetically and joined as ``key=value`` pairs with
    ``&``, whatever the insertion order.

    Args:
        params: Request parameters
        encode: Percent-encode the values

    Returns:
        Canonical query string

    Examples:
        >>> canonical_query({"b": 2, "a": 1})
        'a=1&b=2'
    """
    pairs = []
    for key in sorted(params):
        value = params[key]
        if isinstance(value, bool):
            value = str(value).lower()
        pairs.append(f"{key}={encode_uri_component(value) if encode else value}")
    return "&".join(pairs)


def hmac_digest(
    secret: Union[str, bytes],
    message: Union[str, bytes],
    algorithm: str = "sha256",
    encoding: str = "hex"
) -> str:
    """
    Compute an HMAC and encode it.

    Args:
        secret: HMAC key
        message: Message to authenticate
        algorithm: "sha256" or "sha512"
        encoding: "hex" or "base64"

    Returns:
        Encoded digest

    Raises:
        ValueError: If the algorithm or encoding is not supported
    """
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Invalid algorithm: {algorithm}. Must be one of {SUPPORTED_ALGORITHMS}")
    if encoding not in SUPPORTED_ENCODINGS:
        raise ValueError(f"Invalid encoding: {encoding}. Must be one of {SUPPORTED_ENCODINGS}")

    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    data = message.encode("utf-8") if isinstance(message, str) else message
    mac = hmac.new(key, data, getattr(hashlib, algorithm))
    if encoding == "hex":
        return mac.hexdigest()
    return base64.b64encode(mac.digest()).decode("ascii")


class NonceGenerator:
    """
    Strictly increasing nonces derived from wall-clock microseconds.

    One instance per credential: two calls within the same microsecond, or
    a clock stepping backwards, still yield increasing values.
    """

    def __init__(self) -> None:
        self._last = 0

    def next(self) -> int:
        nonce = max(time.time_ns() // 1000, self._last + 1)
        self._last = nonce
        return nonce


def mask_api_key(api_key: str) -> str:
    """Show only the first 8 characters of an API key."""
    if len(api_key) <= 8:
        return "***"
    return f"{api_key[:8]}***"
