# engine/decision.py
"""
Disposition state machine.

    confidence <  paper threshold      -> SKIP
    confidence <  execute threshold    -> PAPER
    otherwise                          -> EXECUTE
    EXECUTE with quantity <= 0         -> PAPER (sizing failure)

The instrument is chosen once from the enrichment snapshot: an option
structure when options trading is on and one resolves, else the stock.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from .models import Disposition, Enrichment, OptionLeg, Scores, Signal, TradeDecision
from .option_picker import atr_reference
from .options_utils import format_option_label
from .sizing import risk_budget, size_option, size_spread, size_stock
from .spreads import StructureChoice, select_option_structure

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Levels:
    entry: float
    stop_loss: float
    target1: float
    target2: float


def resolve_disposition(confidence: float, settings) -> Disposition:
    if confidence < settings.confidence_paper_threshold:
        return "SKIP"
    if confidence < settings.confidence_execute_threshold:
        return "PAPER"
    return "EXECUTE"


def derive_levels(signal: Signal, enrichment: Enrichment, settings) -> Levels:
    """
    Underlying entry/stop/targets. Alert-supplied levels win; missing ones are
    derived from ATR (stop = ATR_STOP_MULTIPLIER x ATR, targets in R multiples).
    """
    spot = enrichment.spot_price(signal)
    entry = signal.entry if signal.entry and signal.entry > 0 else (spot or 0.0)
    sign = 1.0 if signal.direction == "LONG" else -1.0

    if signal.stop_loss is not None:
        stop = signal.stop_loss
    elif entry > 0:
        stop = entry - sign * atr_reference(signal, enrichment, entry) * settings.atr_stop_multiplier
    else:
        stop = 0.0

    risk = abs(entry - stop)
    t1 = signal.target1 if signal.target1 is not None else entry + sign * risk * settings.target1_r
    t2 = signal.target2 if signal.target2 is not None else entry + sign * risk * settings.target2_r

    return Levels(entry=round(entry, 4), stop_loss=round(stop, 4), target1=round(t1, 4), target2=round(t2, 4))


def _structure_line(choice: Optional[StructureChoice], settings, enrichment: Enrichment) -> str:
    if choice is None or choice.structure is None:
        if not settings.trade_options:
            return "Structure: STOCK (options trading disabled)"
        if not enrichment.options:
            return "Structure: STOCK (no options chain)"
        return "Structure: STOCK (no option structure passed filters)"

    if choice.contract is not None:
        return f"Structure: SINGLE {format_option_label(choice.contract)} ({choice.contract.symbol})"

    spread = choice.spread
    if spread.is_debit:
        price = f"debit {spread.estimated_debit:.2f}"
    else:
        price = f"credit {spread.estimated_credit:.2f}"
    return (
        f"Structure: {spread.structure} {spread.long_leg.strike:g}/{spread.short_leg.strike:g} "
        f"exp {spread.expiration}, width {spread.width:g}, {price}, "
        f"max loss ${spread.estimated_max_loss:,.2f}, max profit ${spread.estimated_max_profit:,.2f}"
    )


def make_decision(
    signal: Signal,
    enrichment: Enrichment,
    scores: Scores,
    settings,
    *,
    today: Optional[date] = None,
) -> TradeDecision:
    confidence = scores.confidence
    disposition = resolve_disposition(confidence, settings)
    if confidence >= settings.confidence_paper_threshold:
        action = "BUY" if signal.direction == "LONG" else "SELL"
    else:
        action = "HOLD"

    levels = derive_levels(signal, enrichment, settings)
    budget = risk_budget(signal, enrichment.equity, settings)
    buying_power = enrichment.buying_power

    choice: Optional[StructureChoice] = None
    if settings.trade_options and enrichment.options:
        choice = select_option_structure(signal, enrichment, settings, today=today)

    legs: Tuple[OptionLeg, ...] = ()
    if choice is not None and choice.contract is not None:
        contract = choice.contract
        instrument = "CALL" if contract.option_type == "call" else "PUT"
        symbol = contract.symbol
        entry_price = contract.ask if contract.ask > 0 else (contract.mid or 0.0)
        quantity = size_option(contract, levels.entry, levels.stop_loss, budget.dollars, buying_power, settings)
        legs = (OptionLeg.from_contract(contract, "buy_to_open", quantity),)
        unit = "contracts"
    elif choice is not None and choice.spread is not None:
        spread = choice.spread
        instrument = "CALL" if spread.long_leg.option_type == "call" else "PUT"
        symbol = signal.ticker
        entry_price = spread.estimated_debit if spread.is_debit else spread.estimated_credit
        quantity = size_spread(spread, budget.dollars, buying_power, settings)
        legs = tuple(spread.legs(quantity))
        unit = "spreads"
    else:
        instrument = "STOCK"
        symbol = signal.ticker
        entry_price = levels.entry
        quantity = size_stock(levels.entry, levels.stop_loss, budget.dollars, buying_power, settings)
        unit = "shares"

    quantity = max(0, int(quantity))

    reasoning: List[str] = [
        f"Confluence: {signal.confluence_score:g}/{signal.max_confluence:g} "
        f"({signal.confluence_ratio * 100:.0f}%, {signal.source})",
        f"Technical score: {scores.technical_score:.1f}/10",
        f"Options score: {scores.options_score:.1f}/10",
        f"Confidence: {confidence:.1f}/100",
    ]
    if enrichment.derived.spread_pct is not None:
        reasoning.append(f"Spread: {enrichment.derived.spread_pct:.2f}%")
    if enrichment.derived.iv_rank is not None:
        reasoning.append(f"IV rank (chain proxy): {enrichment.derived.iv_rank:.0f}")
    if signal.pattern:
        reasoning.append(f"Pattern: {signal.pattern}")
    if signal.amd_phase:
        reasoning.append(f"AMD: {signal.amd_phase}")
    reasoning.append(_structure_line(choice, settings, enrichment))
    budget_src = "of equity" if budget.from_equity else "flat"
    reasoning.append(
        f"Sizing: {quantity} {unit} (risk budget ${budget.dollars:,.2f} {budget_src}, {budget.tier} tier)"
    )
    reasoning.append(
        f"Disposition: {disposition} (paper >= {settings.confidence_paper_threshold:g}, "
        f"execute >= {settings.confidence_execute_threshold:g})"
    )
    if disposition == "EXECUTE" and quantity <= 0:
        disposition = "PAPER"
        reasoning.append("Downgraded EXECUTE -> PAPER: resolved quantity is 0")

    decision = TradeDecision(
        disposition=disposition,
        action=action,
        instrument_type=instrument,
        symbol=symbol,
        quantity=quantity,
        entry_price=round(float(entry_price or 0.0), 4),
        stop_loss=levels.stop_loss,
        target1=levels.target1,
        target2=levels.target2,
        confidence=confidence,
        reasoning=tuple(reasoning),
        option_structure=choice.structure if choice is not None else None,
        option_contract=choice.contract if choice is not None else None,
        option_spread=choice.spread if choice is not None else None,
        option_legs=legs,
    )
    log.info(
        "decision %s %s: %s %s %s x%d conf=%.1f",
        signal.ticker,
        signal.direction,
        decision.disposition,
        decision.action,
        decision.symbol,
        decision.quantity,
        confidence,
    )
    return decision
