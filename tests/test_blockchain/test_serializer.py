"""
Unit tests for EOS binary serialization.
"""
import struct

import pytest

from blockchain.serializer import (
    name_to_int,
    pack_action,
    pack_asset,
    pack_name,
    pack_string,
    pack_transaction,
    pack_transfer,
    varuint32,
)


class TestNames:
    """Test EOS name encoding."""

    def test_known_names(self) -> None:
        assert name_to_int("eosio") == 6138663577826885632
        assert name_to_int("eosio.token") == 6138663591592764928

    def test_empty_name(self) -> None:
        assert name_to_int("") == 0

    def test_pack_name_is_little_endian(self) -> None:
        assert pack_name("eosio") == struct.pack("<Q", 6138663577826885632)

    @pytest.mark.parametrize("name", ["UPPER", "toolongaccountname", "has-dash", "six6"])
    def test_invalid_names(self, name: str) -> None:
        with pytest.raises(ValueError, match="Invalid EOS name"):
            name_to_int(name)


class TestPrimitives:
    """Test varuint32, strings and assets."""

    def test_varuint32(self) -> None:
        assert varuint32(0) == b"\x00"
        assert varuint32(127) == b"\x7f"
        assert varuint32(128) == b"\x80\x01"
        assert varuint32(300) == b"\xac\x02"

    def test_pack_string(self) -> None:
        assert pack_string("abc") == b"\x03abc"
        assert pack_string("") == b"\x00"

    def test_pack_asset(self) -> None:
        assert pack_asset("0.0113 EOS") == struct.pack("<qB", 113, 4) + b"EOS\x00\x00\x00\x00"

    def test_pack_asset_without_decimals(self) -> None:
        assert pack_asset("5 ABC") == struct.pack("<qB", 5, 0) + b"ABC\x00\x00\x00\x00"

    def test_pack_asset_invalid_symbol(self) -> None:
        with pytest.raises(ValueError, match="Invalid asset symbol"):
            pack_asset("1.0 eos")


class TestActions:
    """Test action and transaction packing."""

    def test_pack_transfer(self) -> None:
        data = {"from": "eosio", "to": "eosio.token", "quantity": "1.0000 EOS", "memo": "hi"}

        packed = pack_transfer(data)

        assert packed == (pack_name("eosio") + pack_name("eosio.token")
                          + pack_asset("1.0000 EOS") + b"\x02hi")

    def test_pack_action(self) -> None:
        action = {
            "account": "eosio.token",
            "name": "transfer",
            "authorization": [{"actor": "eosio", "permission": "active"}],
        }

        packed = pack_action(action, b"\x01\x02")

        assert packed == (pack_name("eosio.token") + pack_name("transfer") + b"\x01"
                          + pack_name("eosio") + pack_name("active") + b"\x02\x01\x02")

    def test_pack_transaction_header(self) -> None:
        packed = pack_transaction(1561000000, 0x12345, 987654321, [b"ACTION"])

        assert packed[:10] == struct.pack("<IHI", 1561000000, 0x2345, 987654321)
        # net usage, cpu usage, delay, no context free actions
        assert packed[10:14] == b"\x00\x00\x00\x00"
        assert packed[14:] == b"\x01ACTION\x00"
