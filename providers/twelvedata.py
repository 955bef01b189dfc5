# providers/twelvedata.py
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

import requests

from engine.errors import CollaboratorUnavailable
from engine.models import Indicators

from .http import HttpClient

log = logging.getLogger(__name__)

SOURCE = "twelvedata"


def _num(value: Any) -> Optional[float]:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


class TwelveDataClient:
    """Latest technical indicator values for a ticker/interval."""

    BASE_URL = "https://api.twelvedata.com"

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 5.0,
        max_retries: int = 2,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.http = HttpClient(SOURCE, self.BASE_URL, timeout=timeout, max_retries=max_retries, session=session)

    def _latest(self, indicator: str, ticker: str, interval: str, **extra: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {"symbol": ticker, "interval": interval, "apikey": self.api_key}
        params.update(extra)
        data = self.http.get(f"/{indicator}", params)
        if data.get("status") == "error":
            raise CollaboratorUnavailable(SOURCE, f"{indicator}: {data.get('message') or data.get('code')}")
        values = data.get("values") or []
        return values[0] if values and isinstance(values[0], dict) else {}

    def get_indicators(self, ticker: str, timeframe_minutes: int) -> Indicators:
        """
        RSI/ATR/ADX (14), stochastic %K/%D and Bollinger(20).

        Each indicator is fetched on its own; one failing leaves the rest.
        Raises CollaboratorUnavailable only when every call failed.
        """
        interval = f"{int(timeframe_minutes)}min"
        fields: Dict[str, Optional[float]] = {}
        failures = 0

        requests_plan = (
            ("rsi", {"time_period": 14}, {"rsi": "rsi"}),
            ("atr", {"time_period": 14}, {"atr": "atr"}),
            ("adx", {"time_period": 14}, {"adx": "adx"}),
            ("stoch", {}, {"stoch_k": "slow_k", "stoch_d": "slow_d"}),
            (
                "bbands",
                {"time_period": 20},
                {"bb_upper": "upper_band", "bb_lower": "lower_band", "bb_middle": "middle_band"},
            ),
        )

        for indicator, extra, mapping in requests_plan:
            try:
                row = self._latest(indicator, ticker, interval, **extra)
            except CollaboratorUnavailable as exc:
                failures += 1
                log.debug("twelvedata: %s failed for %s: %s", indicator, ticker, exc)
                continue
            for attr, key in mapping.items():
                value = row.get(key)
                # older responses use k/d for stoch
                if value is None and indicator == "stoch":
                    value = row.get(key[-1])
                fields[attr] = _num(value)

        if failures == len(requests_plan):
            raise CollaboratorUnavailable(SOURCE, f"all indicator calls failed for {ticker}")

        return Indicators(**fields)
