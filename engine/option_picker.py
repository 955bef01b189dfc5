# engine/option_picker.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from .models import Enrichment, OptionContract, OptionType, Signal
from .options_utils import days_to_expiry, spread_pct_of_mid, spread_ratio_of_ask

log = logging.getLogger(__name__)

# Fallback strike-distance reference when no ATR is known: ~0.5% of spot.
_ATR_FALLBACK_PCT = 0.005


@dataclass
class _ScoredContract:
    contract: OptionContract
    dte: int
    score: int            # higher = better


def direction_option_type(signal: Signal) -> OptionType:
    return "call" if signal.direction == "LONG" else "put"


def atr_reference(signal: Signal, enrichment: Enrichment, spot: float) -> float:
    if signal.atr and signal.atr > 0:
        return signal.atr
    ind = enrichment.indicators
    if ind is not None and ind.atr and ind.atr > 0:
        return ind.atr
    return spot * _ATR_FALLBACK_PCT


def passes_liquidity(contract: OptionContract, settings, today: Optional[date] = None) -> bool:
    """DTE window, volume/OI floors and bid/ask ceiling. Shared with spread legs."""
    dte = days_to_expiry(contract.expiration, today)
    if dte is None or dte < settings.option_min_dte or dte > settings.option_max_dte:
        return False
    if contract.volume < settings.option_min_volume:
        return False
    if contract.open_interest < settings.option_min_open_interest:
        return False
    spread = spread_pct_of_mid(contract)
    if spread is None or spread > settings.option_max_spread_pct:
        return False
    return True


def passes_single_filters(
    contract: OptionContract,
    wanted: OptionType,
    settings,
    today: Optional[date] = None,
) -> bool:
    if contract.option_type != wanted:
        return False
    if not passes_liquidity(contract, settings, today):
        return False
    delta = contract.abs_delta
    if delta is None or delta < settings.option_min_delta or delta > settings.option_max_delta:
        return False
    iv = contract.implied_vol
    if iv is not None and iv >= settings.option_max_iv:
        return False
    return True


def _score_candidate(contract: OptionContract, dte: int, spot: float, atr_ref: float) -> int:
    score = 0

    strike_diff = abs(contract.strike - spot)
    if strike_diff < atr_ref * 0.5:
        score += 3
    elif strike_diff < atr_ref:
        score += 2
    elif strike_diff < atr_ref * 1.5:
        score += 1

    if contract.volume > 100:
        score += 2
    if contract.open_interest > 500:
        score += 2

    spread = spread_ratio_of_ask(contract)
    if spread < 0.05:
        score += 2
    elif spread < 0.1:
        score += 1

    delta = contract.abs_delta
    if delta is not None:
        if 0.4 <= delta <= 0.6:
            score += 2
        elif 0.3 <= delta <= 0.7:
            score += 1

    theta = contract.greeks.theta if contract.greeks else None
    if theta is not None and theta > -0.10:
        score += 1

    if 14 <= dte <= 30:
        score += 2
    elif 7 <= dte <= 45:
        score += 1

    return score


def rank_candidates(
    signal: Signal,
    enrichment: Enrichment,
    settings,
    *,
    today: Optional[date] = None,
) -> List[_ScoredContract]:
    """Filtered candidates, best first; equal scores keep chain order."""
    options: Sequence[OptionContract] = enrichment.options or ()
    spot = enrichment.spot_price(signal)
    if not options or spot is None:
        return []

    wanted = direction_option_type(signal)
    atr_ref = atr_reference(signal, enrichment, spot)

    scored: List[_ScoredContract] = []
    for contract in options:
        if not passes_single_filters(contract, wanted, settings, today):
            continue
        dte = days_to_expiry(contract.expiration, today)
        scored.append(_ScoredContract(contract, dte, _score_candidate(contract, dte, spot, atr_ref)))

    # sort is stable, so ties stay in source order
    scored.sort(key=lambda c: c.score, reverse=True)
    return scored


def pick_best_contract(
    signal: Signal,
    enrichment: Enrichment,
    settings,
    *,
    today: Optional[date] = None,
) -> Optional[OptionContract]:
    """
    Single-leg contract for the signal:
      - LONG => CALL, SHORT => PUT
      - passes DTE/liquidity/spread/delta/IV filters
      - best by strike proximity, liquidity, tightness, delta, theta, DTE
    """
    ranked = rank_candidates(signal, enrichment, settings, today=today)
    if not ranked:
        log.info("option_picker: no %s candidates passed filters for %s", direction_option_type(signal), signal.ticker)
        return None

    best = ranked[0]
    log.debug(
        "option_picker: %s score=%s dte=%s (%d candidates)",
        best.contract.symbol,
        best.score,
        best.dte,
        len(ranked),
    )
    return best.contract
