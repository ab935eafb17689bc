"""
Unit tests for Newdex order transfers, resolution, cancellation and lookup.
"""
from dataclasses import replace
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock
import json

import pytest

from credentials import SigningContext
from errors import ConfigurationError, NetworkError, PartialOrderError, ProtocolShapeError
from exchanges.newdex import NewdexClient, build_order
from models import DexOrderId, DexOrderRef, TradingPair


def _table(rows: List[Dict[str, Any]], more: bool = False) -> Dict[str, Any]:
    return {"rows": rows, "more": more}


def _row(**overrides: Any) -> Dict[str, Any]:
    row = {
        "order_id": 4567,
        "pair_id": 89,
        "type": 1,
        "owner": "cryptoforest",
        "price": "0.00121",
        "contract": "eosio.token",
        "remain_quantity": "9.2644 EIDOS",
    }
    row.update(overrides)
    return row


class TestBuildOrder:
    """Test build_order."""

    def test_buy(self, eidos_pair: TradingPair) -> None:
        action = build_order("cryptoforest", eidos_pair, 0.00121, 9.2644, sell=False)

        assert action.contract == "eosio.token"
        assert action.recipient == "newdexpublic"
        assert action.symbol == "EOS"
        assert action.quantity == "0.0113"
        assert action.memo == ('{"type":"buy-limit","symbol":"eidosonecoin-eidos-eos","price":"0.00121",'
                               '"channel":"dapp","ref":"coinrace.com"}')

    def test_sell(self, eidos_pair: TradingPair) -> None:
        action = build_order("cryptoforest", eidos_pair, 0.00121, 9.2644, sell=True, referral="ref.example")

        assert action.contract == "eidosonecoin"
        assert action.symbol == "EIDOS"
        assert action.quantity == "9.2644"
        assert json.loads(action.memo) == {
            "type": "sell-limit",
            "symbol": "eidosonecoin-eidos-eos",
            "price": "0.00121",
            "channel": "dapp",
            "ref": "ref.example",
        }

    def test_buy_defaults_to_eosio_token(self, eidos_pair: TradingPair) -> None:
        action = build_order("cryptoforest", replace(eidos_pair, quote_contract=None), 0.00121, 9.2644, sell=False)

        assert action.contract == "eosio.token"

    def test_wrong_eos_precision(self, eidos_pair: TradingPair) -> None:
        with pytest.raises(ConfigurationError, match="precision"):
            build_order("cryptoforest", replace(eidos_pair, quote_precision=8), 0.00121, 9.2644, sell=False)

    def test_sell_requires_base_contract(self, eidos_pair: TradingPair) -> None:
        with pytest.raises(ConfigurationError, match="base contract"):
            build_order("cryptoforest", replace(eidos_pair, base_contract=None), 0.00121, 9.2644, sell=True)

    def test_below_minimum(self, eidos_pair: TradingPair) -> None:
        with pytest.raises(ValueError, match="min_quote_quantity"):
            build_order("cryptoforest", eidos_pair, 0.00121, 1, sell=False)


class TestNewdexClient:
    """Test NewdexClient with mocked RPC and explorer."""

    @pytest.fixture
    def rpc(self) -> MagicMock:
        rpc = MagicMock()
        rpc.send_transaction = AsyncMock(return_value="tx123")
        rpc.get_table_rows = AsyncMock()
        return rpc

    @pytest.fixture
    def bloks(self) -> MagicMock:
        bloks = MagicMock()
        bloks.get_order_id = AsyncMock(return_value=DexOrderId(order_id=4567, pair_id=89))
        return bloks

    @pytest.fixture
    def client(self, signing_context: SigningContext, rpc: MagicMock, bloks: MagicMock) -> NewdexClient:
        return NewdexClient(signing_context, MagicMock(), rpc=rpc, bloks=bloks)

    @pytest.mark.asyncio
    async def test_place_order(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        assert await client.place_order(eidos_pair, 0.00121, 9.2644, sell=False) == "tx123"

        actions, _ = rpc.send_transaction.call_args[0]
        assert actions[0]["data"] == {
            "from": "cryptoforest",
            "to": "newdexpublic",
            "quantity": "0.0113 EOS",
            "memo": build_order("cryptoforest", eidos_pair, 0.00121, 9.2644, sell=False).memo,
        }

    @pytest.mark.asyncio
    async def test_place_and_resolve(self, client: NewdexClient, bloks: MagicMock, eidos_pair: TradingPair) -> None:
        ref = await client.place_and_resolve(eidos_pair, 0.00121, 9.2644, sell=False)

        assert ref == DexOrderRef(transaction_id="tx123", order=DexOrderId(order_id=4567, pair_id=89))
        bloks.get_order_id.assert_awaited_once_with("tx123")

    @pytest.mark.asyncio
    async def test_place_and_resolve_keeps_transaction_id(self, client: NewdexClient, bloks: MagicMock,
                                                          eidos_pair: TradingPair) -> None:
        bloks.get_order_id.side_effect = NetworkError("explorer down")

        with pytest.raises(PartialOrderError) as exc_info:
            await client.place_and_resolve(eidos_pair, 0.00121, 9.2644, sell=False)

        assert exc_info.value.transaction_id == "tx123"
        assert isinstance(exc_info.value.cause, NetworkError)

    @pytest.mark.asyncio
    async def test_cancel_order(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.send_transaction.return_value = "cancel-tx"

        assert await client.cancel_order(eidos_pair, "tx123") == "cancel-tx"

        actions, _ = rpc.send_transaction.call_args[0]
        assert actions == [{
            "account": "newdexpublic",
            "name": "cancelorder",
            "authorization": [{"actor": "cryptoforest", "permission": "active"}],
            "data": {"order_id": 4567, "pair_id": 89},
        }]

    @pytest.mark.asyncio
    async def test_query_buy_order(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.get_table_rows.side_effect = [_table([]), _table([_row()])]

        state = await client.query_order(eidos_pair, "tx123")

        assert state is not None
        assert state.order_id == "tx123"
        assert state.sell is False
        assert state.price == "0.00121"
        assert state.quantity == "9.2644 EIDOS"

        tables = [c.args[0]["table"] for c in rpc.get_table_rows.call_args_list]
        assert tables == ["sellorder", "buyorder"]
        query = rpc.get_table_rows.call_args_list[0].args[0]
        assert query["scope"] == "...........u1"
        assert (query["lower_bound"], query["upper_bound"]) == (4567, 4568)

    @pytest.mark.asyncio
    async def test_query_sell_order(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.get_table_rows.side_effect = [_table([_row(type=2, contract="eidosonecoin")])]

        state = await client.query_order(eidos_pair, "tx123")

        assert state is not None
        assert state.sell is True
        assert rpc.get_table_rows.await_count == 1

    @pytest.mark.asyncio
    async def test_query_closed_order(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.get_table_rows.side_effect = [_table([]), _table([])]

        assert await client.query_order(eidos_pair, "tx123") is None

    @pytest.mark.asyncio
    async def test_query_paginated(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.get_table_rows.side_effect = [_table([_row(type=2, contract="eidosonecoin")], more=True)]

        with pytest.raises(ProtocolShapeError, match="paginated"):
            await client.query_order(eidos_pair, "tx123")

    @pytest.mark.asyncio
    async def test_query_several_rows(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.get_table_rows.side_effect = [_table([_row(type=2), _row(type=2)])]

        with pytest.raises(ProtocolShapeError, match="one order row"):
            await client.query_order(eidos_pair, "tx123")

    @pytest.mark.asyncio
    async def test_query_other_owner(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.get_table_rows.side_effect = [_table([]), _table([_row(owner="someoneelse")])]

        with pytest.raises(ProtocolShapeError, match="another account"):
            await client.query_order(eidos_pair, "tx123")

    @pytest.mark.asyncio
    async def test_query_other_contract(self, client: NewdexClient, rpc: MagicMock, eidos_pair: TradingPair) -> None:
        rpc.get_table_rows.side_effect = [_table([_row(type=2, contract="fakeeidoscoin")])]

        with pytest.raises(ProtocolShapeError, match="contract"):
            await client.query_order(eidos_pair, "tx123")
