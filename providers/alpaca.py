# providers/alpaca.py
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from engine.errors import CollaboratorUnavailable
from engine.models import MarketStatus, Quote

from .http import HttpClient

log = logging.getLogger(__name__)

SOURCE = "alpaca"


def _num(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class AlpacaClient:
    """Market clock (trading API) and latest stock quote (data API)."""

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        *,
        base_url: str = "https://paper-api.alpaca.markets",
        data_url: str = "https://data.alpaca.markets",
        timeout: float = 5.0,
        max_retries: int = 2,
        session: Optional[requests.Session] = None,
    ):
        headers = {"APCA-API-KEY-ID": api_key, "APCA-API-SECRET-KEY": secret_key}
        session = session or requests.Session()
        self.trading = HttpClient(
            SOURCE, base_url, headers=headers, timeout=timeout, max_retries=max_retries, session=session
        )
        self.data = HttpClient(
            SOURCE, data_url, headers=headers, timeout=timeout, max_retries=max_retries, session=session
        )

    def get_market_status(self) -> MarketStatus:
        data = self.trading.get("/v2/clock")
        if "is_open" not in data:
            raise CollaboratorUnavailable(SOURCE, "clock response missing is_open")
        return MarketStatus(
            is_open=bool(data.get("is_open")),
            timestamp=str(data["timestamp"]) if data.get("timestamp") else None,
            next_open=str(data["next_open"]) if data.get("next_open") else None,
            next_close=str(data["next_close"]) if data.get("next_close") else None,
        )

    def get_quote(self, ticker: str) -> Quote:
        quote = (self.data.get(f"/v2/stocks/{ticker}/quotes/latest").get("quote")) or {}
        try:
            trade = (self.data.get(f"/v2/stocks/{ticker}/trades/latest").get("trade")) or {}
        except CollaboratorUnavailable as exc:
            log.debug("alpaca: latest trade unavailable for %s: %s", ticker, exc)
            trade = {}

        bid = _num(quote.get("bp"))
        ask = _num(quote.get("ap"))
        last = _num(trade.get("p"))
        if last is None and bid and ask:
            last = (bid + ask) / 2.0
        if last is None and bid is None and ask is None:
            raise CollaboratorUnavailable(SOURCE, f"quote missing for {ticker}")

        return Quote(symbol=ticker, last=last, bid=bid, ask=ask, source=SOURCE)
