# providers/tradier.py
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

import requests

from engine.errors import CollaboratorUnavailable, ExecutionFailure
from engine.models import Balances, Greeks, OptionContract, Position, Quote
from engine.options_utils import days_to_expiry

from .http import HttpClient

log = logging.getLogger(__name__)

SOURCE = "tradier"


def _num(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _as_list(value: Any) -> List[Dict[str, Any]]:
    # Tradier returns a bare object instead of a one-element list.
    if not value:
        return []
    if isinstance(value, list):
        return [v for v in value if isinstance(v, dict)]
    return [value] if isinstance(value, dict) else []


def _parse_greeks(raw: Any) -> Optional[Greeks]:
    if not isinstance(raw, dict):
        return None
    return Greeks(
        delta=_num(raw.get("delta")),
        gamma=_num(raw.get("gamma")),
        theta=_num(raw.get("theta")),
        vega=_num(raw.get("vega")),
        rho=_num(raw.get("rho")),
        iv=_num(raw.get("smv_vol")) if raw.get("iv") is None else _num(raw.get("iv")),
        mid_iv=_num(raw.get("mid_iv")),
    )


def parse_option(raw: Dict[str, Any]) -> OptionContract:
    option_type = str(raw.get("option_type") or raw.get("type") or "").lower()
    return OptionContract(
        symbol=str(raw.get("symbol")),
        underlying=str(raw["underlying"]) if raw.get("underlying") else None,
        strike=_num(raw.get("strike")) or 0.0,
        expiration=str(raw.get("expiration_date") or raw.get("expiration") or ""),
        option_type="put" if option_type == "put" else "call",
        bid=_num(raw.get("bid")) or 0.0,
        ask=_num(raw.get("ask")) or 0.0,
        last=_num(raw.get("last")) or 0.0,
        volume=int(_num(raw.get("volume")) or 0),
        open_interest=int(_num(raw.get("open_interest")) or 0),
        greeks=_parse_greeks(raw.get("greeks")),
    )


class TradierClient:
    """Quotes, option chains, account state and bracket orders from Tradier."""

    def __init__(
        self,
        api_key: str,
        *,
        account_id: Optional[str] = None,
        base_url: str = "https://sandbox.tradier.com/v1",
        timeout: float = 5.0,
        max_retries: int = 2,
        min_dte: int = 7,
        max_dte: int = 45,
        max_expirations: int = 4,
        session: Optional[requests.Session] = None,
    ):
        self.account_id = account_id
        self.min_dte = min_dte
        self.max_dte = max_dte
        self.max_expirations = max(1, max_expirations)
        self.http = HttpClient(
            SOURCE,
            base_url,
            headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
            timeout=timeout,
            max_retries=max_retries,
            session=session,
        )

    def _account(self) -> str:
        if not self.account_id:
            raise CollaboratorUnavailable(SOURCE, "Missing TRADIER_ACCOUNT_ID")
        return self.account_id

    # ---------- market data ----------

    def get_quote(self, ticker: str) -> Quote:
        data = self.http.get("/markets/quotes", {"symbols": ticker, "greeks": "false"})
        quotes = _as_list((data.get("quotes") or {}).get("quote"))
        if not quotes:
            raise CollaboratorUnavailable(SOURCE, f"quote missing for {ticker}")
        q = quotes[0]
        return Quote(
            symbol=str(q.get("symbol") or ticker),
            last=_num(q.get("last")),
            bid=_num(q.get("bid")),
            ask=_num(q.get("ask")),
            volume=_num(q.get("volume")),
            source=SOURCE,
        )

    def get_expirations(self, ticker: str) -> List[str]:
        data = self.http.get("/markets/options/expirations", {"symbol": ticker})
        dates = (data.get("expirations") or {}).get("date") or []
        if isinstance(dates, str):
            dates = [dates]
        return [str(d) for d in dates]

    def _pick_expirations(self, expirations: List[str]) -> List[str]:
        in_window = []
        for exp in expirations:
            dte = days_to_expiry(exp)
            if dte is not None and self.min_dte <= dte <= self.max_dte:
                in_window.append(exp)
        if not in_window:
            return expirations[:1]
        return in_window[: self.max_expirations]

    def get_options_chain(self, ticker: str) -> List[OptionContract]:
        expirations = self._pick_expirations(self.get_expirations(ticker))
        if not expirations:
            log.info("tradier: no expirations returned for %s", ticker)
            return []

        contracts: List[OptionContract] = []
        for expiration in expirations:
            data = self.http.get(
                "/markets/options/chains",
                {"symbol": ticker, "expiration": expiration, "greeks": "true"},
            )
            rows = _as_list((data.get("options") or {}).get("option"))
            contracts.extend(parse_option(row) for row in rows if row.get("symbol"))

        log.debug("tradier: %d contracts across %d expirations for %s", len(contracts), len(expirations), ticker)
        return contracts

    # ---------- account ----------

    def get_balances(self) -> Balances:
        data = self.http.get(f"/accounts/{self._account()}/balances")
        b = data.get("balances") or {}
        nested = b.get("account_balance") or {}
        cash = b.get("cash") or {}
        margin = b.get("margin") or {}

        equity = _num(b.get("total_equity"))
        if equity is None:
            equity = _num(nested.get("total_equity"))
        buying_power = _num(b.get("buying_power"))
        if buying_power is None:
            buying_power = _num(nested.get("buying_power"))
        if buying_power is None:
            buying_power = _num(margin.get("stock_buying_power"))
        cash_available = _num(cash.get("cash_available"))
        if cash_available is None:
            cash_available = _num(b.get("total_cash"))

        return Balances(
            account_number=str(b["account_number"]) if b.get("account_number") else None,
            equity=equity,
            buying_power=buying_power if buying_power is not None else cash_available,
            cash=cash_available,
        )

    def get_open_positions(self) -> List[Position]:
        data = self.http.get(f"/accounts/{self._account()}/positions")
        rows = _as_list((data.get("positions") or {}).get("position"))
        positions = []
        for p in rows:
            qty = _num(p.get("quantity")) or 0.0
            if not p.get("symbol") or qty == 0:
                continue
            positions.append(Position(symbol=str(p["symbol"]), quantity=qty, cost_basis=_num(p.get("cost_basis"))))
        return positions

    # ---------- orders ----------

    def _place(self, form: Dict[str, Any]) -> Dict[str, Any]:
        try:
            data = self.http.post_form(f"/accounts/{self._account()}/orders", form)
        except CollaboratorUnavailable as exc:
            raise ExecutionFailure(str(exc)) from exc
        order = data.get("order")
        if not isinstance(order, dict) or not order.get("id"):
            raise ExecutionFailure(f"tradier: order rejected: {data}")
        return {
            "id": str(order["id"]),
            "status": str(order.get("status") or "submitted"),
            "raw": data,
        }

    def place_stock_bracket_order(
        self,
        *,
        symbol: str,
        side: str,
        quantity: int,
        entry_type: str,
        limit_price: Optional[float],
        stop_loss: float,
        take_profit: float,
    ) -> Dict[str, Any]:
        return self._place(
            {
                "class": "bracket",
                "symbol": symbol,
                "side": side,
                "quantity": quantity,
                "type": entry_type,
                "duration": "day",
                "price": limit_price if entry_type == "limit" else None,
                "take_profit[price]": round(take_profit, 2),
                "stop_loss[stop]": round(stop_loss, 2),
            }
        )

    def place_option_bracket_order(
        self,
        *,
        option_symbol: str,
        quantity: int,
        entry_type: str,
        limit_price: Optional[float],
        stop_loss: float,
        take_profit: float,
    ) -> Dict[str, Any]:
        return self._place(
            {
                "class": "bracket",
                "symbol": option_symbol,
                "side": "buy_to_open",
                "quantity": quantity,
                "type": entry_type,
                "duration": "day",
                "price": limit_price if entry_type == "limit" else None,
                "take_profit[price]": round(take_profit, 2),
                "stop_loss[stop]": round(stop_loss, 2),
            }
        )
