# engine/validation.py
from __future__ import annotations

import logging
import time
from typing import Dict, Optional

from .models import Enrichment, Signal, ValidationResult
from .options_utils import underlying_of

log = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _has_required_fields(signal: Signal) -> bool:
    return bool(signal.ticker) and signal.direction in ("LONG", "SHORT") and signal.timestamp > 0


def _not_stale(signal: Signal, now_ms: int, max_age_ms: int) -> bool:
    if signal.timestamp <= 0:
        return False
    return now_ms - signal.timestamp <= max_age_ms


def _market_open(enrichment: Enrichment, settings) -> bool:
    # Unknown status (unconfigured or failed clock) does not block.
    if not settings.require_market_open or enrichment.market_status is None:
        return True
    return bool(enrichment.market_status.is_open)


def _no_conflicting_position(signal: Signal, enrichment: Enrichment) -> bool:
    for pos in enrichment.positions or ():
        if pos.quantity and underlying_of(pos.symbol) == signal.ticker:
            return False
    return True


def _meets_min_confluence(signal: Signal, settings) -> bool:
    floor = settings.min_confluence_scanner if signal.source == "scanner" else settings.min_confluence_full
    return signal.confluence_score >= floor


def _sufficient_buying_power(enrichment: Enrichment, settings) -> bool:
    bp = enrichment.buying_power
    if bp is None:
        return True
    return bp >= settings.min_buying_power


def validate_signal(
    signal: Signal,
    enrichment: Enrichment,
    settings,
    daily_trade_count: int = 0,
    *,
    now_ms: Optional[int] = None,
) -> ValidationResult:
    """
    Evaluate every gate in fixed order. No short-circuit: the complete
    failed-check list is part of the audit record.
    """
    now_ms = _now_ms() if now_ms is None else now_ms

    checks: Dict[str, bool] = {}
    checks["hasRequiredFields"] = _has_required_fields(signal)
    checks["notStale"] = _not_stale(signal, now_ms, settings.signal_max_age_ms)
    checks["marketOpen"] = _market_open(enrichment, settings)
    checks["noConflictingPosition"] = _no_conflicting_position(signal, enrichment)
    checks["meetsMinConfluence"] = _meets_min_confluence(signal, settings)
    checks["underDailyLimit"] = daily_trade_count < settings.daily_trade_limit
    checks["sufficientBuyingPower"] = _sufficient_buying_power(enrichment, settings)

    result = ValidationResult(checks=checks)
    if not result.is_valid:
        log.info("validation %s %s failed: %s", signal.ticker, signal.direction, result.failed_checks)
    return result
