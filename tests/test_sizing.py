from __future__ import annotations

import pytest

from engine.models import OptionSpread
from engine.sizing import (
    option_loss_estimate,
    quality_tier,
    risk_budget,
    size_option,
    size_spread,
    size_stock,
)


@pytest.mark.parametrize(
    "overrides,tier,dollars",
    [
        ({"is_legendary": True}, "legendary", 2000.0),
        ({"is_mega": True}, "mega", 1500.0),
        ({"quality_label": "HIGH", "confluence_score": 2}, "high", 1000.0),
        ({"confluence_score": 4}, "standard", 500.0),
    ],
)
def test_risk_budget_tiers(make_signal, settings, overrides, tier, dollars):
    budget = risk_budget(make_signal(**overrides), 100_000.0, settings)

    assert budget.tier == tier
    assert budget.dollars == pytest.approx(dollars)
    assert budget.from_equity


def test_high_tier_from_confluence_ratio(make_signal):
    # 6/8 = 0.75
    assert quality_tier(make_signal()) == "high"


def test_flat_budget_when_equity_unknown(make_signal, settings):
    budget = risk_budget(make_signal(is_legendary=True), None, settings)

    assert budget.dollars == settings.max_risk_per_trade
    assert not budget.from_equity


def test_stock_size_bounded_by_notional_cap(settings):
    # risk: 500 / 2 = 250, notional: 10000 / 100 = 100
    assert size_stock(100.0, 98.0, 500.0, None, settings) == 100


def test_stock_size_bounded_by_buying_power(settings):
    assert size_stock(100.0, 98.0, 500.0, 5_000.0, settings) == 50


def test_stock_size_bounded_by_risk(settings):
    assert size_stock(100.0, 90.0, 200.0, None, settings) == 20


def test_stock_size_one_share_without_risk_per_share(settings):
    assert size_stock(100.0, None, 500.0, None, settings) == 1
    assert size_stock(100.0, 100.0, 500.0, None, settings) == 1


def test_stock_size_zero_without_entry_or_buying_power(settings):
    assert size_stock(0.0, 98.0, 500.0, None, settings) == 0
    assert size_stock(100.0, 98.0, 500.0, 50.0, settings) == 0


def test_option_loss_estimate_delta_plus_gamma(make_contract):
    contract = make_contract(100, bid=1.9, ask=2.0, delta=0.5, gamma=0.05)

    # 0.5*100*2 + 0.5*0.05*100*4 = 110, below the 200 premium
    assert option_loss_estimate(contract, 100.0, 98.0) == pytest.approx(110.0)


def test_option_loss_capped_at_premium(make_contract):
    contract = make_contract(100, bid=0.45, ask=0.50, delta=0.5, gamma=0.05)

    assert option_loss_estimate(contract, 100.0, 90.0) == pytest.approx(50.0)


def test_option_size(make_contract, settings):
    contract = make_contract(100, bid=1.9, ask=2.0, delta=0.5, gamma=0.05)

    # risk: floor(500 / 110) = 4, buying power: floor(1000 / 200) = 5
    assert size_option(contract, 100.0, 98.0, 500.0, 1_000.0, settings) == 4
    # contract cap
    assert size_option(contract, 100.0, 98.0, 50_000.0, None, settings) == settings.max_option_contracts


def test_option_size_zero_without_premium(make_contract, settings):
    contract = make_contract(100, bid=0.0, ask=0.0)

    assert size_option(contract, 100.0, 98.0, 500.0, None, settings) == 0


def _spread(make_contract, max_loss):
    return OptionSpread(
        structure="CALL_DEBIT_SPREAD",
        expiration="2025-01-24",
        width=5.0,
        long_leg=make_contract(100),
        short_leg=make_contract(105),
        estimated_debit=max_loss / 100 if max_loss else None,
        estimated_max_loss=max_loss,
        estimated_max_profit=500 - max_loss if max_loss else None,
    )


def test_spread_size(make_contract, settings):
    spread = _spread(make_contract, 80.0)

    assert size_spread(spread, 500.0, None, settings) == 6
    assert size_spread(spread, 500.0, 300.0, settings) == 3
    assert size_spread(spread, 10_000.0, None, settings) == settings.max_spread_contracts


def test_spread_size_zero_without_max_loss(make_contract, settings):
    assert size_spread(_spread(make_contract, 0.0), 500.0, None, settings) == 0


@pytest.mark.parametrize("budget", [0.0, -100.0])
def test_quantity_never_negative(make_contract, settings, budget):
    assert size_stock(100.0, 98.0, budget, None, settings) >= 0
    assert size_option(make_contract(100), 100.0, 98.0, budget, None, settings) >= 0
    assert size_spread(_spread(make_contract, 80.0), budget, None, settings) >= 0
