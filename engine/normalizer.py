# engine/normalizer.py
"""
Turn the two inbound alert shapes into one canonical Signal.

Scanner alert (lightweight, one of many tickers per scan):

    {"scanner": "...", "signal": {"ticker", "direction", "quality", "trigger_tf"},
     "strat": {"tf1", "tf2", "tf3"}, "conditions": {name: bool}, "timestamp": ms}

Full alert (comprehensive, single ticker):

    {"signal": {...}, "market": {...}, "price": {...}, "risk_management": {...},
     "confluence": {...}, ...}

The shape is resolved here exactly once; nothing downstream of Signal looks
at the raw payload again.
"""
from __future__ import annotations

import copy
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .errors import UnrecognizedPayload
from .models import Direction, Signal

log = logging.getLogger(__name__)

SCANNER_MARKER = "scanner"
DEFAULT_TIMEFRAME_MINUTES = 5
DEFAULT_FULL_MAX_CONFLUENCE = 10.0
SCANNER_MAX_CONFLUENCE = 3

_ARROWS = {
    "LONG": ("▲", "↑", "⬆"),
    "SHORT": ("▼", "↓", "⬇"),
}
_DIRECTION_ALIASES = {
    "LONG": "LONG",
    "BUY": "LONG",
    "BULL": "LONG",
    "BULLISH": "LONG",
    "SHORT": "SHORT",
    "SELL": "SHORT",
    "BEAR": "SHORT",
    "BEARISH": "SHORT",
}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _normalize_ticker(value: Any) -> str:
    ticker = str(value or "").strip().upper()
    # "NASDAQ:AAPL" -> "AAPL"
    if ":" in ticker:
        ticker = ticker.rsplit(":", 1)[1].strip()
    return ticker


def _normalize_direction(value: Any) -> Direction:
    key = str(value or "").strip().upper()
    direction = _DIRECTION_ALIASES.get(key)
    if direction is None:
        raise UnrecognizedPayload(f"Unknown signal direction: {value!r}")
    return direction  # type: ignore[return-value]


def _normalize_timestamp(value: Any) -> int:
    """Epoch milliseconds. Second-resolution epochs and ISO strings are accepted too."""
    n = _to_float(value)
    if n is None and isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return 0
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if n is None or n <= 0:
        return 0
    if n < 1e11:
        n *= 1000.0
    return int(n)


def _normalize_timeframe(*candidates: Any) -> int:
    for value in candidates:
        if isinstance(value, str):
            value = value.strip().lower().rstrip("m").replace("min", "")
        n = _to_float(value)
        if n is not None and n > 0:
            return int(n)
    return DEFAULT_TIMEFRAME_MINUTES


def scanner_confluence(payload: Mapping[str, Any], direction: Direction) -> tuple[int, int]:
    """
    (score, max) for a scanner alert.

    Three timeframe strings -> count carrying the direction arrow, out of 3.
    Otherwise a condition map -> count true, out of its size, rescaled onto 3
    when the map is larger than 3.
    """
    strat = _as_dict(payload.get("strat"))
    tfs = [strat.get("tf1"), strat.get("tf2"), strat.get("tf3")]
    if all(isinstance(tf, str) for tf in tfs):
        arrows = _ARROWS[direction]
        score = sum(1 for tf in tfs if any(a in tf for a in arrows))
        return score, SCANNER_MAX_CONFLUENCE

    conditions = _as_dict(payload.get("conditions"))
    if conditions:
        size = len(conditions)
        score = sum(1 for v in conditions.values() if v is True)
        if size > SCANNER_MAX_CONFLUENCE:
            score = int(math.floor(score / size * SCANNER_MAX_CONFLUENCE + 0.5))
            size = SCANNER_MAX_CONFLUENCE
        return score, size

    return 0, SCANNER_MAX_CONFLUENCE


def _parse_scanner(payload: Mapping[str, Any]) -> Signal:
    sig = _as_dict(payload.get("signal"))
    direction = _normalize_direction(sig.get("direction"))
    score, max_score = scanner_confluence(payload, direction)
    quality = str(sig.get("quality") or "").strip().upper() or None

    return Signal(
        source="scanner",
        ticker=_normalize_ticker(sig.get("ticker")),
        direction=direction,
        timestamp=_normalize_timestamp(payload.get("timestamp", sig.get("timestamp"))),
        timeframe_minutes=_normalize_timeframe(sig.get("trigger_tf")),
        confluence_score=float(score),
        max_confluence=float(max_score),
        quality_label=quality,
        is_legendary=quality == "LEGENDARY",
        is_mega=quality == "MEGA",
        raw=copy.deepcopy(dict(payload)),
    )


def _parse_full(payload: Mapping[str, Any]) -> Signal:
    sig = _as_dict(payload.get("signal"))
    market = _as_dict(payload.get("market"))
    price = _as_dict(payload.get("price"))
    risk = _as_dict(payload.get("risk_management"))
    confluence = _as_dict(payload.get("confluence"))
    levels = _as_dict(payload.get("levels"))
    patterns = _as_dict(_as_dict(payload.get("strat")).get("patterns"))
    ict = _as_dict(payload.get("ict"))

    direction = _normalize_direction(sig.get("direction"))

    score = _to_float(sig.get("confluence_score"))
    if score is None:
        score = _to_float(confluence.get("total_score")) or 0.0
    max_score = _to_float(sig.get("max_confluence"))
    if max_score is None or max_score <= 0:
        max_score = DEFAULT_FULL_MAX_CONFLUENCE

    quality = sig.get("quality") or sig.get("quality_stars")
    is_legendary = bool(sig.get("is_legendary"))
    is_mega = bool(sig.get("is_mega"))
    if isinstance(quality, str) and quality.strip().upper() in ("LEGENDARY", "MEGA", "HIGH", "STANDARD"):
        quality = quality.strip().upper()
        is_legendary = is_legendary or quality == "LEGENDARY"
        is_mega = is_mega or quality == "MEGA"

    atr = _to_float(levels.get("atr"))
    if atr is None:
        atr = _to_float(risk.get("atr_value"))

    return Signal(
        source="full",
        ticker=_normalize_ticker(market.get("ticker") or market.get("symbol")),
        direction=direction,
        timestamp=_normalize_timestamp(market.get("timestamp")),
        timeframe_minutes=_normalize_timeframe(market.get("timeframe_minutes"), market.get("timeframe")),
        confluence_score=score,
        max_confluence=max_score,
        quality_label=str(quality).strip() if quality else None,
        is_legendary=is_legendary,
        is_mega=is_mega,
        entry=_to_float(price.get("entry")),
        stop_loss=_to_float(risk.get("stop_loss")),
        target1=_to_float(risk.get("target_1")),
        target2=_to_float(risk.get("target_2")),
        price=_to_float(price.get("close")),
        atr=atr if atr and atr > 0 else None,
        pattern=patterns.get("detected_name") or None,
        amd_phase=ict.get("amd_phase") or None,
        raw=copy.deepcopy(dict(payload)),
    )


def payload_kind(payload: Any) -> str:
    """'scanner' or 'full'; raises UnrecognizedPayload for anything else."""
    if not isinstance(payload, Mapping):
        raise UnrecognizedPayload(f"Webhook payload must be a JSON object, got {type(payload).__name__}")
    if SCANNER_MARKER in payload:
        return "scanner"
    if all(isinstance(payload.get(k), dict) for k in ("signal", "market", "price")):
        return "full"
    raise UnrecognizedPayload("Payload is neither a scanner alert nor a full signal (signal/market/price missing)")


def normalize_webhook_payload(payload: Any) -> Signal:
    kind = payload_kind(payload)
    signal = _parse_scanner(payload) if kind == "scanner" else _parse_full(payload)
    log.debug(
        "normalized %s signal %s %s confluence=%s/%s",
        signal.source,
        signal.ticker,
        signal.direction,
        signal.confluence_score,
        signal.max_confluence,
    )
    return signal
