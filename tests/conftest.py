from __future__ import annotations

import dataclasses
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from config import Settings  # noqa: E402
from engine.errors import CollaboratorUnavailable, ExecutionFailure  # noqa: E402
from engine.models import Greeks, OptionContract, Signal  # noqa: E402

TODAY = date(2025, 1, 2)
EXPIRY = (TODAY + timedelta(days=22)).isoformat()      # inside the 14-30 DTE sweet spot
NOW_MS = 1_735_826_400_000                               # 2025-01-02 14:00 UTC


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def now_ms() -> int:
    return NOW_MS


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        return dataclasses.replace(Settings(), **overrides)

    return _make


@pytest.fixture
def make_signal():
    def _make(**overrides) -> Signal:
        base = dict(
            source="full",
            ticker="AAPL",
            direction="LONG",
            timestamp=NOW_MS,
            timeframe_minutes=5,
            confluence_score=6.0,
            max_confluence=8.0,
            entry=100.0,
            stop_loss=98.0,
            target1=103.0,
            target2=106.0,
            price=100.0,
        )
        base.update(overrides)
        return Signal(**base)

    return _make


@pytest.fixture
def make_contract():
    def _make(
        strike: float,
        option_type: str = "call",
        *,
        delta=0.5,
        bid: float = 1.00,
        ask: float = 1.04,
        volume: int = 500,
        open_interest: int = 1500,
        expiration: str = EXPIRY,
        gamma=None,
        theta=-0.05,
        iv=0.30,
        underlying: str = "AAPL",
    ) -> OptionContract:
        cp = "C" if option_type == "call" else "P"
        exp = expiration.replace("-", "")[2:]
        return OptionContract(
            symbol=f"{underlying}{exp}{cp}{int(round(strike * 1000)):08d}",
            strike=strike,
            expiration=expiration,
            option_type=option_type,
            bid=bid,
            ask=ask,
            last=(bid + ask) / 2,
            volume=volume,
            open_interest=open_interest,
            underlying=underlying,
            greeks=Greeks(delta=delta, gamma=gamma, theta=theta, iv=iv, mid_iv=iv),
        )

    return _make


@pytest.fixture
def full_payload():
    def _make(**signal_overrides) -> dict:
        sig = {
            "direction": "LONG",
            "quality": "HIGH",
            "confluence_score": 6,
            "max_confluence": 8,
        }
        sig.update(signal_overrides)
        return {
            "signal": sig,
            "market": {"ticker": "aapl", "timestamp": NOW_MS, "timeframe_minutes": 15},
            "price": {"entry": 100.0, "close": 100.0},
            "risk_management": {"stop_loss": 98.0, "target_1": 103.0, "target_2": 106.0, "atr_value": 1.5},
            "strat": {"patterns": {"detected_name": "2-1-2 Bull"}},
            "ict": {"amd_phase": "DISTRIBUTION"},
        }

    return _make


@pytest.fixture
def scanner_payload():
    def _make(direction: str = "LONG", tfs=("5m ▲", "15m ▲", "1h ▼"), **extra) -> dict:
        payload = {
            "scanner": "multi-tf",
            "signal": {"ticker": "nvda", "direction": direction, "quality": "MEGA", "trigger_tf": "15"},
            "timestamp": NOW_MS,
        }
        if tfs is not None:
            payload["strat"] = {"tf1": tfs[0], "tf2": tfs[1], "tf3": tfs[2]}
        payload.update(extra)
        return payload

    return _make


# ---------- fake collaborators ----------


class FakeProvider:
    """Returns canned values per method; an Exception value is raised instead."""

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []

    def _answer(self, name, *args):
        self.calls.append((name, args))
        value = self.responses[name]
        if isinstance(value, Exception):
            raise value
        return value

    def get_quote(self, ticker):
        return self._answer("get_quote", ticker)

    def get_options_chain(self, ticker):
        return self._answer("get_options_chain", ticker)

    def get_indicators(self, ticker, timeframe_minutes):
        return self._answer("get_indicators", ticker, timeframe_minutes)

    def get_market_status(self):
        return self._answer("get_market_status")

    def get_balances(self):
        return self._answer("get_balances")

    def get_open_positions(self):
        return self._answer("get_open_positions")


class FakeBroker:
    def __init__(self, fail=False):
        self.fail = fail
        self.orders = []

    def _place(self, kind, kwargs):
        self.orders.append((kind, kwargs))
        if isinstance(self.fail, Exception):
            raise self.fail
        if self.fail:
            raise ExecutionFailure("tradier: order rejected: insufficient funds")
        return {"id": f"ord-{len(self.orders)}", "status": "ok", "raw": {"order": {"id": len(self.orders)}}}

    def place_stock_bracket_order(self, **kwargs):
        return self._place("stock", kwargs)

    def place_option_bracket_order(self, **kwargs):
        return self._place("option", kwargs)


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def fake_broker():
    return FakeBroker


@pytest.fixture
def unavailable():
    def _make(source: str = "tradier", message: str = "boom") -> CollaboratorUnavailable:
        return CollaboratorUnavailable(source, message)

    return _make
