# engine/scoring.py
from __future__ import annotations

import logging
from typing import Optional

from .models import Enrichment, OptionContract, Scores, Signal
from .options_utils import spread_ratio_of_ask

log = logging.getLogger(__name__)

# Confidence blend, in percentage points of the 0-100 scale. Policy, not config.
CONFLUENCE_WEIGHT = 50
TECHNICAL_WEIGHT = 30
OPTIONS_WEIGHT = 20


def calculate_technical_score(signal: Signal, enrichment: Enrichment) -> float:
    """
    0-10 from the indicator snapshot. A missing indicator contributes 0.

      RSI        0-2   pullback band for the direction
      ADX        0-2   trend strength
      Stoch      0-2   %K/%D cross in the signal's favor
      Bollinger  0-2   price at the favorable band
    """
    ind = enrichment.indicators
    if ind is None:
        return 0.0

    long = signal.direction == "LONG"
    score = 0

    if ind.rsi is not None:
        rsi = ind.rsi
        if long:
            if 30 <= rsi <= 50:
                score += 2
            elif 50 < rsi <= 70:
                score += 1
        else:
            if 50 <= rsi <= 70:
                score += 2
            elif 30 <= rsi < 50:
                score += 1

    if ind.adx is not None:
        if ind.adx > 25:
            score += 2
        elif ind.adx > 20:
            score += 1

    if ind.stoch_k is not None and ind.stoch_d is not None:
        k, d = ind.stoch_k, ind.stoch_d
        if long:
            if k < 30 and k > d:
                score += 2
            elif k < 50:
                score += 1
        else:
            if k > 70 and k < d:
                score += 2
            elif k > 50:
                score += 1

    price = enrichment.spot_price(signal)
    if price is not None and ind.bb_upper is not None and ind.bb_lower is not None:
        if long and price <= ind.bb_lower * 1.02:
            score += 2
        elif not long and price >= ind.bb_upper * 0.98:
            score += 2

    return float(min(score, 10))


def contract_quality(contract: OptionContract) -> int:
    """0-6 liquidity/greeks sub-score for one contract."""
    s = 0
    if contract.volume > 100:
        s += 1
    if contract.open_interest > 1000:
        s += 1
    spread = spread_ratio_of_ask(contract)
    if spread < 0.05:
        s += 2
    elif spread < 0.1:
        s += 1
    delta = contract.abs_delta
    if delta is not None:
        if 0.4 <= delta <= 0.6:
            s += 2
        elif 0.3 <= delta <= 0.7:
            s += 1
    return s


def best_quality_contract(signal: Signal, enrichment: Enrichment) -> Optional[OptionContract]:
    wanted = "call" if signal.direction == "LONG" else "put"
    best: Optional[OptionContract] = None
    best_score = -1
    for contract in enrichment.options or ():
        if contract.option_type != wanted:
            continue
        s = contract_quality(contract)
        if s > best_score:
            best, best_score = contract, s
    return best


def calculate_options_score(signal: Signal, enrichment: Enrichment) -> float:
    """
    0-10 from the chain snapshot.

    IV rank -1..+2 (rich IV is penalized), put/call ratio 0..+2 when crowd
    positioning leans against the signal, plus the best direction-matching
    contract's liquidity/greeks sub-score (0-6).
    """
    score = 0
    iv_rank = enrichment.derived.iv_rank
    if iv_rank is not None:
        if iv_rank < 30:
            score += 2
        elif iv_rank < 50:
            score += 1
        elif iv_rank > 70:
            score -= 1

    pcr = enrichment.derived.put_call_ratio
    if pcr is not None:
        if signal.direction == "LONG" and pcr > 1.2:
            score += 2
        elif signal.direction == "SHORT" and pcr < 0.8:
            score += 2

    best = best_quality_contract(signal, enrichment)
    if best is not None:
        score += contract_quality(best)

    return float(max(0, min(score, 10)))


def blend_confidence(
    confluence_score: float,
    max_confluence: float,
    technical_score: float,
    options_score: float,
) -> float:
    """Unclamped 50/30/20 blend on the 0-100 scale."""
    if max_confluence and max_confluence > 0:
        # multiply before dividing keeps e.g. 6/8 -> 37.5 exact
        confluence_part = confluence_score * CONFLUENCE_WEIGHT / max_confluence
    else:
        confluence_part = 0.0
    return (
        confluence_part
        + technical_score * TECHNICAL_WEIGHT / 10
        + options_score * OPTIONS_WEIGHT / 10
    )


def calculate_scores(signal: Signal, enrichment: Enrichment) -> Scores:
    technical = calculate_technical_score(signal, enrichment)
    options = calculate_options_score(signal, enrichment)

    final_score = blend_confidence(signal.confluence_score, signal.max_confluence, technical, options)
    confidence = min(max(final_score, 0.0), 100.0)

    log.debug(
        "scores %s: technical=%.1f options=%.1f confluence=%s/%s confidence=%.2f",
        signal.ticker,
        technical,
        options,
        signal.confluence_score,
        signal.max_confluence,
        confidence,
    )
    return Scores(
        technical_score=technical,
        options_score=options,
        original_score=signal.confluence_score,
        original_max=signal.max_confluence,
        final_score=final_score,
        confidence=confidence,
    )
