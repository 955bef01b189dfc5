# engine/spreads.py
"""
Vertical spread construction and option-structure selection.

    structure            bias   legs (base leg first)
    CALL_DEBIT_SPREAD    bull   buy call ~0.50d, sell further-OTM call
    PUT_CREDIT_SPREAD    bull   sell put ~0.30d, buy further-OTM put
    PUT_DEBIT_SPREAD     bear   buy put ~0.50d, sell further-OTM put
    CALL_CREDIT_SPREAD   bear   sell call ~0.30d, buy further-OTM call

Rich IV (by the chain-snapshot proxy) prefers selling premium first; a bare
single-leg contract is always the last resort.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from .models import Enrichment, OptionContract, OptionSpread, OptionStructure, Signal
from .option_picker import passes_liquidity, pick_best_contract
from .options_utils import leg_price

log = logging.getLogger(__name__)

_DEBIT = {"LONG": "CALL_DEBIT_SPREAD", "SHORT": "PUT_DEBIT_SPREAD"}
_CREDIT = {"LONG": "PUT_CREDIT_SPREAD", "SHORT": "CALL_CREDIT_SPREAD"}

# partner distance weights: delta gap vs. relative width gap
_DELTA_WEIGHT = 0.7
_WIDTH_WEIGHT = 0.3


@dataclass
class StructureChoice:
    structure: Optional[OptionStructure] = None
    contract: Optional[OptionContract] = None
    spread: Optional[OptionSpread] = None
    skipped: List[Tuple[str, str]] = field(default_factory=list)   # (structure, why)


def structure_preference(signal: Signal, iv_rank: Optional[float], settings) -> List[OptionStructure]:
    debit = _DEBIT[signal.direction]
    credit = _CREDIT[signal.direction]
    mode = settings.options_structure_mode

    if mode == "single":
        return ["SINGLE"]
    if mode == "debit":
        return [debit, "SINGLE"]
    if mode == "credit":
        return [credit, "SINGLE"]
    if iv_rank is not None and iv_rank >= settings.iv_rank_high:
        return [credit, debit, "SINGLE"]
    return [debit, credit, "SINGLE"]


def price_spread(
    structure: OptionStructure,
    long_leg: OptionContract,
    short_leg: OptionContract,
) -> Optional[OptionSpread]:
    """
    Price a vertical from leg mids (ask when a mid is unusable). Max loss /
    max profit come from width and net premium only; they always sum to
    width * 100. None when the net premium is outside (0, width).
    """
    width = round(abs(long_leg.strike - short_leg.strike), 4)
    if width <= 0 or long_leg.expiration != short_leg.expiration:
        return None

    long_px = leg_price(long_leg)
    short_px = leg_price(short_leg)
    if long_px is None or short_px is None:
        return None

    if structure.endswith("DEBIT_SPREAD"):
        debit = round(long_px - short_px, 2)
        if debit <= 0 or debit >= width:
            return None
        max_loss = round(debit * 100, 2)
        return OptionSpread(
            structure=structure,
            expiration=long_leg.expiration,
            width=width,
            long_leg=long_leg,
            short_leg=short_leg,
            estimated_debit=debit,
            estimated_max_loss=max_loss,
            estimated_max_profit=round(width * 100 - max_loss, 2),
        )

    credit = round(short_px - long_px, 2)
    if credit <= 0 or credit >= width:
        return None
    max_profit = round(credit * 100, 2)
    return OptionSpread(
        structure=structure,
        expiration=long_leg.expiration,
        width=width,
        long_leg=long_leg,
        short_leg=short_leg,
        estimated_credit=credit,
        estimated_max_profit=max_profit,
        estimated_max_loss=round(width * 100 - max_profit, 2),
    )


def _nearest_delta(pool: List[OptionContract], target: float) -> Optional[OptionContract]:
    best = None
    best_gap = None
    for c in pool:
        gap = abs(c.abs_delta - target)
        if best_gap is None or gap < best_gap:
            best, best_gap = c, gap
    return best


def build_vertical_spread(
    structure: OptionStructure,
    signal: Signal,
    enrichment: Enrichment,
    settings,
    *,
    today: Optional[date] = None,
) -> Optional[OptionSpread]:
    option_type = "call" if structure.startswith("CALL") else "put"
    is_debit = structure.endswith("DEBIT_SPREAD")
    base_target = settings.spread_debit_long_delta if is_debit else settings.spread_credit_short_delta
    partner_target = settings.spread_debit_short_delta if is_debit else settings.spread_credit_long_delta

    pool = [
        c
        for c in enrichment.options or ()
        if c.option_type == option_type and c.abs_delta is not None and passes_liquidity(c, settings, today)
    ]
    base = _nearest_delta(pool, base_target)
    if base is None:
        log.debug("spreads: no %s base leg for %s", structure, signal.ticker)
        return None

    spot = enrichment.spot_price(signal) or base.strike
    target_width = max(spot * settings.spread_target_width_pct / 100.0, 0.01)

    def further_otm(c: OptionContract) -> bool:
        return c.strike > base.strike if option_type == "call" else c.strike < base.strike

    best: Optional[OptionSpread] = None
    best_dist = None
    for partner in pool:
        if partner.expiration != base.expiration or not further_otm(partner):
            continue
        if is_debit:
            spread = price_spread(structure, base, partner)
        else:
            spread = price_spread(structure, partner, base)
        if spread is None:
            continue
        dist = (
            _DELTA_WEIGHT * abs(partner.abs_delta - partner_target)
            + _WIDTH_WEIGHT * abs(spread.width - target_width) / target_width
        )
        if best_dist is None or dist < best_dist:
            best, best_dist = spread, dist

    if best is None:
        log.debug("spreads: no partner leg for %s base %s", structure, base.symbol)
    return best


def select_option_structure(
    signal: Signal,
    enrichment: Enrichment,
    settings,
    *,
    today: Optional[date] = None,
) -> StructureChoice:
    """Walk the structure preference list; first structure that resolves wins."""
    choice = StructureChoice()
    if not enrichment.options:
        choice.skipped.append(("ALL", "no options chain"))
        return choice

    for structure in structure_preference(signal, enrichment.derived.iv_rank, settings):
        if structure == "SINGLE":
            contract = pick_best_contract(signal, enrichment, settings, today=today)
            if contract is not None:
                choice.structure = "SINGLE"
                choice.contract = contract
                return choice
            choice.skipped.append((structure, "no contract passed filters"))
            continue

        spread = build_vertical_spread(structure, signal, enrichment, settings, today=today)
        if spread is not None:
            choice.structure = structure
            choice.spread = spread
            return choice
        choice.skipped.append((structure, "no valid leg pair"))

    return choice
