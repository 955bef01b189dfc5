from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import requests

from engine.errors import CollaboratorUnavailable, ExecutionFailure
from providers.alpaca import AlpacaClient
from providers.gateway import MarketDataGateway
from providers.http import HttpClient
from providers.tradier import TradierClient, parse_option
from providers.twelvedata import TwelveDataClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Routes by URL suffix; a list of responses is consumed in order."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "headers": headers, "timeout": timeout, **kwargs})
        for suffix, answer in self.routes.items():
            if url.endswith(suffix):
                if isinstance(answer, list):
                    answer = answer.pop(0)
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return FakeResponse(404, {}, "not found")


def _day(offset):
    return (datetime.now(timezone.utc).date() + timedelta(days=offset)).isoformat()


# ---------- HttpClient ----------


def test_http_retries_server_errors_then_succeeds():
    session = FakeSession({"/ping": [FakeResponse(502, text="bad gateway"), FakeResponse(200, {"ok": True})]})
    client = HttpClient("test", "https://x.test/", timeout=1.5, max_retries=2, session=session)

    assert client.get("/ping") == {"ok": True}
    assert len(session.calls) == 2
    assert session.calls[0]["timeout"] == 1.5
    assert session.calls[0]["url"] == "https://x.test/ping"


def test_http_retries_transport_errors_until_exhausted():
    session = FakeSession({"/ping": [requests.ConnectionError("reset"), requests.Timeout("slow")]})
    client = HttpClient("test", "https://x.test", max_retries=2, session=session)

    with pytest.raises(CollaboratorUnavailable) as exc:
        client.get("/ping")
    assert exc.value.source == "test"
    assert len(session.calls) == 2


def test_http_client_error_fails_fast():
    session = FakeSession({"/ping": [FakeResponse(401, text="unauthorized"), FakeResponse(200, {})]})
    client = HttpClient("test", "https://x.test", max_retries=3, session=session)

    with pytest.raises(CollaboratorUnavailable, match="401"):
        client.get("/ping")
    assert len(session.calls) == 1


def test_http_invalid_json():
    session = FakeSession({"/ping": FakeResponse(200, ValueError("no json"))})

    with pytest.raises(CollaboratorUnavailable, match="invalid JSON"):
        HttpClient("test", "https://x.test", session=session).get("/ping")


def test_http_post_form_drops_none_and_does_not_retry():
    session = FakeSession({"/orders": [FakeResponse(503), FakeResponse(200, {"order": {"id": 1}})]})
    client = HttpClient("test", "https://x.test", max_retries=3, session=session)

    with pytest.raises(CollaboratorUnavailable):
        client.post_form("/orders", {"symbol": "AAPL", "price": None, "quantity": 3})
    assert len(session.calls) == 1
    assert session.calls[0]["data"] == {"symbol": "AAPL", "quantity": "3"}


# ---------- Tradier ----------


def _tradier(routes, **kw):
    return TradierClient("key", account_id="VA123", session=FakeSession(routes), **kw)


def test_tradier_quote_single_object():
    client = _tradier({"/markets/quotes": FakeResponse(200, {"quotes": {"quote": {"symbol": "AAPL", "last": 101.5, "bid": 101.4, "ask": 101.6}}})})

    quote = client.get_quote("AAPL")

    assert (quote.symbol, quote.last, quote.bid, quote.ask) == ("AAPL", 101.5, 101.4, 101.6)
    assert quote.source == "tradier"


def test_tradier_quote_missing_raises():
    client = _tradier({"/markets/quotes": FakeResponse(200, {"quotes": {"unmatched_symbols": {"symbol": "ZZZ"}}})})

    with pytest.raises(CollaboratorUnavailable):
        client.get_quote("ZZZ")


def test_tradier_chain_limits_expirations_to_window():
    near, mid, far = _day(3), _day(20), _day(90)
    option = {
        "symbol": "AAPL250124C00100000",
        "underlying": "AAPL",
        "strike": 100,
        "option_type": "call",
        "expiration_date": mid,
        "bid": 1.0,
        "ask": 1.1,
        "volume": 120,
        "open_interest": 900,
        "greeks": {"delta": 0.51, "gamma": 0.04, "theta": -0.05, "mid_iv": 0.31, "smv_vol": 0.3},
    }
    session = FakeSession(
        {
            "/markets/options/expirations": FakeResponse(200, {"expirations": {"date": [near, mid, far]}}),
            "/markets/options/chains": FakeResponse(200, {"options": {"option": option}}),
        }
    )
    client = TradierClient("key", session=session, min_dte=7, max_dte=45)

    chain = client.get_options_chain("AAPL")

    chain_calls = [c for c in session.calls if c["url"].endswith("/chains")]
    assert [c["params"]["expiration"] for c in chain_calls] == [mid]
    assert chain_calls[0]["params"]["greeks"] == "true"
    assert len(chain) == 1
    assert chain[0].delta == 0.51
    assert chain[0].implied_vol == 0.31


def test_tradier_chain_falls_back_to_first_expiration():
    session = FakeSession(
        {
            "/markets/options/expirations": FakeResponse(200, {"expirations": {"date": _day(2)}}),
            "/markets/options/chains": FakeResponse(200, {"options": None}),
        }
    )

    assert TradierClient("key", session=session).get_options_chain("AAPL") == []
    assert session.calls[-1]["params"]["expiration"] == _day(2)


def test_parse_option_uses_smv_vol_when_iv_missing():
    contract = parse_option({"symbol": "X", "strike": "50", "option_type": "put", "greeks": {"smv_vol": "0.4"}})

    assert contract.option_type == "put"
    assert contract.strike == 50.0
    assert contract.greeks.iv == 0.4
    assert contract.delta is None


def test_tradier_balances_and_positions():
    client = _tradier(
        {
            "/accounts/VA123/balances": FakeResponse(
                200,
                {"balances": {"account_number": "VA123", "total_equity": 25000, "margin": {"stock_buying_power": 40000}, "total_cash": 9000}},
            ),
            "/accounts/VA123/positions": FakeResponse(
                200,
                {"positions": {"position": {"symbol": "AAPL250124C00100000", "quantity": 2, "cost_basis": 250}}},
            ),
        }
    )

    balances = client.get_balances()
    positions = client.get_open_positions()

    assert (balances.equity, balances.buying_power, balances.cash) == (25000, 40000, 9000)
    assert positions[0].symbol == "AAPL250124C00100000"
    assert positions[0].quantity == 2


def test_tradier_account_calls_need_account_id():
    client = TradierClient("key", session=FakeSession({}))

    with pytest.raises(CollaboratorUnavailable, match="TRADIER_ACCOUNT_ID"):
        client.get_balances()


def test_tradier_bracket_order_form():
    session = FakeSession({"/accounts/VA123/orders": FakeResponse(200, {"order": {"id": 777, "status": "ok"}})})
    client = TradierClient("key", account_id="VA123", session=session)

    order = client.place_stock_bracket_order(
        symbol="AAPL",
        side="buy",
        quantity=5,
        entry_type="limit",
        limit_price=100.0,
        stop_loss=97.999,
        take_profit=103.0,
    )

    assert order["id"] == "777"
    form = session.calls[0]["data"]
    assert form["class"] == "bracket"
    assert form["price"] == "100.0"
    assert form["stop_loss[stop]"] == "98.0"
    assert form["take_profit[price]"] == "103.0"


def test_tradier_order_rejected_raises_execution_failure():
    session = FakeSession({"/accounts/VA123/orders": FakeResponse(400, text="invalid quantity")})
    client = TradierClient("key", account_id="VA123", session=session)

    with pytest.raises(ExecutionFailure):
        client.place_option_bracket_order(
            option_symbol="AAPL250124C00100000",
            quantity=1,
            entry_type="market",
            limit_price=None,
            stop_loss=1.0,
            take_profit=4.0,
        )


# ---------- TwelveData ----------


def test_twelvedata_indicators_best_effort():
    session = FakeSession(
        {
            "/rsi": FakeResponse(200, {"values": [{"rsi": "44.2"}]}),
            "/atr": FakeResponse(200, {"values": [{"atr": "1.8"}]}),
            "/adx": FakeResponse(200, {"status": "error", "code": 429, "message": "rate limit"}),
            "/stoch": FakeResponse(200, {"values": [{"slow_k": "22", "slow_d": "18"}]}),
            "/bbands": FakeResponse(200, {"values": [{"upper_band": "110", "middle_band": "105", "lower_band": "100"}]}),
        }
    )
    client = TwelveDataClient("key", session=session)

    ind = client.get_indicators("AAPL", 15)

    assert ind.rsi == 44.2
    assert ind.atr == 1.8
    assert ind.adx is None
    assert (ind.stoch_k, ind.stoch_d) == (22.0, 18.0)
    assert (ind.bb_upper, ind.bb_middle, ind.bb_lower) == (110.0, 105.0, 100.0)
    assert session.calls[0]["params"]["interval"] == "15min"


def test_twelvedata_all_failed_raises():
    error = FakeResponse(200, {"status": "error", "message": "invalid apikey"})
    session = FakeSession({"/rsi": error, "/atr": error, "/adx": error, "/stoch": error, "/bbands": error})

    with pytest.raises(CollaboratorUnavailable):
        TwelveDataClient("bad", session=session).get_indicators("AAPL", 5)


# ---------- Alpaca ----------


def test_alpaca_market_status():
    session = FakeSession({"/v2/clock": FakeResponse(200, {"is_open": False, "next_open": "2025-01-03T14:30:00Z"})})

    status = AlpacaClient("k", "s", session=session).get_market_status()

    assert not status.is_open
    assert status.next_open == "2025-01-03T14:30:00Z"
    assert session.calls[0]["headers"]["APCA-API-KEY-ID"] == "k"


def test_alpaca_quote_uses_mid_without_trade():
    session = FakeSession(
        {
            "/quotes/latest": FakeResponse(200, {"quote": {"bp": 99.0, "ap": 101.0}}),
            "/trades/latest": FakeResponse(404, {}, "no trade"),
        }
    )

    quote = AlpacaClient("k", "s", session=session).get_quote("AAPL")

    assert quote.last == 100.0
    assert quote.source == "alpaca"


# ---------- gateway ----------


def test_gateway_without_credentials_is_empty(settings):
    gateway = MarketDataGateway.from_settings(settings)

    assert gateway.quote is None
    assert gateway.options is None
    assert gateway.indicators is None
    assert gateway.market_hours is None
    assert gateway.brokerage is None


def test_gateway_wires_clients_by_credentials(make_settings):
    settings = make_settings(
        tradier_api_key="t",
        tradier_account_id="VA1",
        twelvedata_api_key="td",
        alpaca_api_key="a",
        alpaca_secret_key="s",
    )

    gateway = MarketDataGateway.from_settings(settings)

    assert isinstance(gateway.quote, TradierClient)
    assert gateway.options is gateway.quote
    assert gateway.account is gateway.quote
    assert gateway.brokerage is gateway.quote
    assert isinstance(gateway.alt_quote, AlpacaClient)
    assert gateway.market_hours is gateway.alt_quote
    assert isinstance(gateway.indicators, TwelveDataClient)


def test_gateway_without_account_has_no_brokerage(make_settings):
    gateway = MarketDataGateway.from_settings(make_settings(tradier_api_key="t"))

    assert gateway.quote is not None
    assert gateway.account is None
    assert gateway.brokerage is None


def test_tradier_order_without_order_object_rejected():
    session = FakeSession({"/accounts/VA123/orders": FakeResponse(200, {"order": "null", "errors": {"error": "bad"}})})
    client = TradierClient("key", account_id="VA123", session=session)

    with pytest.raises(ExecutionFailure, match="order rejected"):
        client.place_stock_bracket_order(
            symbol="AAPL",
            side="buy",
            quantity=1,
            entry_type="market",
            limit_price=None,
            stop_loss=98.0,
            take_profit=103.0,
        )
