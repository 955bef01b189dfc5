# engine/sizing.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .models import OptionContract, OptionSpread, Signal

log = logging.getLogger(__name__)

CONTRACT_MULTIPLIER = 100

# confluence ratio that counts as a "high" quality alert without a label
HIGH_TIER_RATIO = 0.75


@dataclass(frozen=True)
class RiskBudget:
    dollars: float
    tier: str                 # legendary | mega | high | standard
    from_equity: bool


def quality_tier(signal: Signal) -> str:
    if signal.is_legendary:
        return "legendary"
    if signal.is_mega:
        return "mega"
    label = (signal.quality_label or "").upper()
    if label == "HIGH" or signal.confluence_ratio >= HIGH_TIER_RATIO:
        return "high"
    return "standard"


def risk_budget(signal: Signal, equity: Optional[float], settings) -> RiskBudget:
    """Percent of equity by quality tier; flat MAX_RISK_PER_TRADE when equity is unknown."""
    tier = quality_tier(signal)
    pct = {
        "legendary": settings.risk_pct_legendary,
        "mega": settings.risk_pct_mega,
        "high": settings.risk_pct_high,
        "standard": settings.risk_pct_standard,
    }[tier]
    if equity is not None and equity > 0:
        return RiskBudget(dollars=equity * pct / 100.0, tier=tier, from_equity=True)
    return RiskBudget(dollars=float(settings.max_risk_per_trade), tier=tier, from_equity=False)


def size_stock(
    entry: float,
    stop: Optional[float],
    budget: float,
    buying_power: Optional[float],
    settings,
) -> int:
    if not entry or entry <= 0:
        return 0

    risk_per_share = abs(entry - stop) if stop is not None else 0.0
    if risk_per_share > 0:
        shares = math.floor(budget / risk_per_share)
    else:
        shares = 1

    shares = min(shares, math.floor(settings.max_position_size / entry))
    if buying_power is not None:
        shares = min(shares, math.floor(buying_power / entry))
    return max(0, int(shares))


def option_premium(contract: OptionContract) -> Optional[float]:
    if contract.ask > 0:
        return contract.ask
    mid = contract.mid
    return mid if mid is not None and mid > 0 else None


def option_loss_estimate(contract: OptionContract, entry: float, stop: Optional[float]) -> Optional[float]:
    """
    Per-contract loss if the underlying runs from entry to stop: delta plus
    gamma terms, never more than the premium paid.
    """
    premium = option_premium(contract)
    if premium is None:
        return None
    premium_cost = premium * CONTRACT_MULTIPLIER

    move = abs(entry - stop) if stop is not None and entry else 0.0
    delta = contract.abs_delta or 0.0
    gamma = abs(contract.greeks.gamma) if contract.greeks and contract.greeks.gamma is not None else 0.0
    greek_loss = delta * CONTRACT_MULTIPLIER * move + 0.5 * gamma * CONTRACT_MULTIPLIER * move ** 2

    if greek_loss <= 0:
        return premium_cost
    return min(premium_cost, greek_loss)


def size_option(
    contract: OptionContract,
    entry: float,
    stop: Optional[float],
    budget: float,
    buying_power: Optional[float],
    settings,
) -> int:
    premium = option_premium(contract)
    loss = option_loss_estimate(contract, entry, stop)
    if premium is None or not loss or loss <= 0:
        return 0

    contracts = min(math.floor(budget / loss), settings.max_option_contracts)
    if buying_power is not None:
        contracts = min(contracts, math.floor(buying_power / (premium * CONTRACT_MULTIPLIER)))
    return max(0, int(contracts))


def size_spread(
    spread: OptionSpread,
    budget: float,
    buying_power: Optional[float],
    settings,
) -> int:
    max_loss = spread.estimated_max_loss
    if not max_loss or max_loss <= 0:
        return 0

    contracts = min(math.floor(budget / max_loss), settings.max_spread_contracts)
    if buying_power is not None:
        contracts = min(contracts, math.floor(buying_power / max_loss))
    return max(0, int(contracts))
