"""
Unit tests for order request validation module.
"""
from typing import Any, Dict

import pytest

from credentials import SigningContext
from validate import (
    check_credentials,
    validate_client_order_id,
    validate_exchange,
    validate_order_request,
    validate_pair,
)


class TestValidateExchange:
    """Test exchange name validation."""

    @pytest.mark.parametrize("exchange", ["Bitstamp", "Coinbase", "Huobi", "Kraken", "MXC", "Newdex",
                                          "WhaleEx", "WhaleExEos"])
    def test_supported(self, exchange: str) -> None:
        assert validate_exchange(exchange) == (True, None)

    def test_unsupported(self) -> None:
        """Test validation fails for unknown and wrongly cased names."""
        for exchange in ("Binance", "kraken", ""):
            valid, error = validate_exchange(exchange)

            assert valid is False
            assert error is not None
            assert "Unsupported exchange" in error


class TestValidatePair:
    """Test normalized pair validation."""

    def test_valid(self) -> None:
        assert validate_pair("EIDOS_EOS") == (True, None)

    @pytest.mark.parametrize("pair", ["EIDOSEOS", "A_B_C", "_EOS", "EIDOS_", ""])
    def test_invalid(self, pair: str) -> None:
        valid, error = validate_pair(pair)

        assert valid is False
        assert error is not None


class TestCheckCredentials:
    """Test per-venue credential checks."""

    def test_complete_context(self, signing_context: SigningContext) -> None:
        assert check_credentials("Kraken", "BTC_USD", signing_context) == (True, None)
        assert check_credentials("Newdex", "EIDOS_EOS", signing_context) == (True, None)

    def test_missing_fields_listed(self) -> None:
        """Test every missing field is named."""
        context = SigningContext(huobi_access_key="access")

        valid, error = check_credentials("Huobi", "BTC_USDT", context)

        assert valid is False
        assert error is not None
        assert "huobi_secret_key" in error
        assert "huobi_account_id" in error
        assert "huobi_access_key" not in error

    def test_eos_pair_needs_eos_key(self) -> None:
        """EOS quoted pairs on EOS venues need the account key even for REST calls."""
        context = SigningContext(whaleex_api_key="key", eos_account="cryptoforest")

        valid, error = check_credentials("WhaleEx", "EIDOS_EOS", context)

        assert valid is False
        assert error is not None
        assert "eos_private_key" in error

    def test_centralized_exchange_ignores_eos(self) -> None:
        context = SigningContext(kraken_api_key="key", kraken_private_key="c2VjcmV0")

        assert check_credentials("Kraken", "XBT_EOS", context) == (True, None)


class TestValidateOrderRequest:
    """Test validation of complete order intents."""

    @pytest.fixture
    def order(self) -> Dict[str, Any]:
        return {"exchange": "Newdex", "pair": "EIDOS_EOS", "price": 0.00121, "quantity": "9.2644", "sell": False}

    def test_valid(self, order: Dict[str, Any]) -> None:
        assert validate_order_request(order) == (True, None)

    def test_missing_fields(self) -> None:
        valid, error = validate_order_request({"exchange": "Newdex"})

        assert valid is False
        assert error == "Missing required fields: pair, price, quantity, sell"

    def test_unsupported_exchange(self, order: Dict[str, Any]) -> None:
        order["exchange"] = "Binance"

        valid, error = validate_order_request(order)

        assert valid is False
        assert error is not None
        assert "Unsupported exchange" in error

    def test_invalid_pair(self, order: Dict[str, Any]) -> None:
        order["pair"] = "EIDOS-EOS"

        assert validate_order_request(order)[0] is False

    def test_sell_must_be_bool(self, order: Dict[str, Any]) -> None:
        order["sell"] = "true"

        valid, error = validate_order_request(order)

        assert valid is False
        assert error == "Field 'sell' must be a boolean"

    @pytest.mark.parametrize("value", ["abc", True, None, "nan", "inf"])
    def test_invalid_price(self, order: Dict[str, Any], value: Any) -> None:
        order["price"] = value

        valid, error = validate_order_request(order)

        assert valid is False
        assert error is not None
        assert "price" in error

    @pytest.mark.parametrize("value", [0, -1, "-0.5"])
    def test_non_positive_quantity(self, order: Dict[str, Any], value: Any) -> None:
        order["quantity"] = value

        valid, error = validate_order_request(order)

        assert valid is False
        assert error == "Field 'quantity' must be a positive number"


class TestValidateClientOrderId:
    """Test caller-supplied correlation ids."""

    def test_absent(self) -> None:
        assert validate_client_order_id("MXC", None) == (True, None)

    @pytest.mark.parametrize("exchange,client_order_id", [("Kraken", "77"), ("Kraken", "-5"),
                                                          ("Coinbase", "my-id"), ("Huobi", "c1")])
    def test_valid(self, exchange: str, client_order_id: str) -> None:
        assert validate_client_order_id(exchange, client_order_id) == (True, None)

    def test_venue_without_client_ids(self) -> None:
        assert validate_client_order_id("Newdex", "7") == (False, "Newdex does not accept client order ids")

    @pytest.mark.parametrize("client_order_id", ["abc", "1.5", str(2 ** 31), str(-2 ** 31 - 1)])
    def test_kraken_userref(self, client_order_id: str) -> None:
        valid, error = validate_client_order_id("Kraken", client_order_id)

        assert valid is False
        assert error is not None
        assert error.startswith("Kraken client order id")
