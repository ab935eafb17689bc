"""
Binary serialization of EOS names, assets, actions and transactions.
"""
from decimal import Decimal
from typing import Any, Dict, List
import struct

NAME_CHARS = ".12345abcdefghijklmnopqrstuvwxyz"


def _char_to_symbol(c: str) -> int:
    if "a" <= c <= "z":
        return ord(c) - ord("a") + 6
    if "1" <= c <= "5":
        return ord(c) - ord("1") + 1
    return 0


def name_to_int(name: str) -> int:
    """
    Encode an EOS account/action name into its 64-bit integer form.

    Raises:
        ValueError: If the name is longer than 13 characters or has invalid characters
    """
    if len(name) > 13 or any(c not in NAME_CHARS for c in name):
        raise ValueError(f"Invalid EOS name: {name!r}")

    value = 0
    for i in range(13):
        c = _char_to_symbol(name[i]) if i < len(name) else 0
        if i < 12:
            c &= 0x1F
            c <<= 64 - 5 * (i + 1)
        else:
            c &= 0x0F
        value |= c
    return value


def varuint32(n: int) -> bytes:
    """LEB128 encoding used for lengths and counts."""
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def pack_name(name: str) -> bytes:
    return struct.pack("<Q", name_to_int(name))


def pack_string(s: str) -> bytes:
    data = s.encode("utf-8")
    return varuint32(len(data)) + data


def pack_asset(quantity: str) -> bytes:
    """
    Serialize an asset string like "0.0113 EOS".

    The precision is taken from the number of decimals in the amount.
    """
    amount_str, symbol = quantity.split(" ")
    precision = len(amount_str.split(".")[1]) if "." in amount_str else 0
    if len(symbol) > 7 or not symbol.isupper():
        raise ValueError(f"Invalid asset symbol: {symbol!r}")
    amount = int(Decimal(amount_str).scaleb(precision))
    return struct.pack("<qB", amount, precision) + symbol.encode("ascii").ljust(7, b"\x00")


def pack_transfer(data: Dict[str, Any]) -> bytes:
    """Serialize the data of a token ``transfer`` action."""
    return pack_name(data["from"]) + pack_name(data["to"]) + pack_asset(data["quantity"]) + pack_string(data["memo"])


def pack_action(action: Dict[str, Any], data: bytes) -> bytes:
    authorization = action["authorization"]
    out = pack_name(action["account"]) + pack_name(action["name"]) + varuint32(len(authorization))
    for auth in authorization:
        out += pack_name(auth["actor"]) + pack_name(auth["permission"])
    return out + varuint32(len(data)) + data


def pack_transaction(
    expiration: int,
    ref_block_num: int,
    ref_block_prefix: int,
    packed_actions: List[bytes]
) -> bytes:
    """
    Serialize a transaction header followed by its actions.

    Net/CPU limits and delay are left at zero; there are no context free
    actions and no extensions.
    """
    out = struct.pack("<IHI", expiration, ref_block_num & 0xFFFF, ref_block_prefix)
    out += varuint32(0) + struct.pack("<B", 0) + varuint32(0)
    out += varuint32(0)
    out += varuint32(len(packed_actions)) + b"".join(packed_actions)
    out += varuint32(0)
    return out
