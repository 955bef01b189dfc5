# engine/options_utils.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Union

from .models import OptionContract

# root (1-6), YYMMDD, C/P, strike * 1000 zero-padded to 8 digits
_OCC_RE = re.compile(r"^([A-Z][A-Z0-9.]{0,5})(\d{6})([CP])(\d{8})$")


@dataclass(frozen=True)
class OccSymbol:
    underlying: str
    expiry: date
    option_type: str  # "call" or "put"
    strike: float


def parse_occ_symbol(sym: str) -> Optional[OccSymbol]:
    """'SPY240119C00450000' -> OccSymbol; None for stock tickers and malformed symbols."""
    m = _OCC_RE.match((sym or "").strip().upper())
    if not m:
        return None
    root, ymd, cp, strike = m.groups()
    try:
        expiry = date(2000 + int(ymd[:2]), int(ymd[2:4]), int(ymd[4:]))
    except ValueError:
        return None
    return OccSymbol(root, expiry, "call" if cp == "C" else "put", int(strike) / 1000.0)


def underlying_of(symbol: str) -> str:
    """Stock symbols map to themselves, option symbols to their underlying."""
    s = (symbol or "").strip().upper()
    parsed = parse_occ_symbol(s)
    return parsed.underlying if parsed else s


def _as_date(expiry: Union[date, str, None]) -> Optional[date]:
    if expiry is None:
        return None
    if isinstance(expiry, date):
        return expiry
    try:
        return datetime.fromisoformat(str(expiry)[:10]).date()
    except ValueError:
        return None


def days_to_expiry(expiry: Union[date, str, None], today: Optional[date] = None) -> Optional[int]:
    exp = _as_date(expiry)
    if exp is None:
        return None
    today = today or datetime.now(timezone.utc).date()
    return (exp - today).days


def spread_pct_of_mid(contract: OptionContract) -> Optional[float]:
    """Bid/ask width as a percent of mid; None without a two-sided quote."""
    mid = contract.mid
    if mid is None or mid <= 0:
        return None
    return (contract.ask - contract.bid) / mid * 100.0


def spread_ratio_of_ask(contract: OptionContract) -> float:
    """(ask - bid) / ask, 1.0 when there is no ask."""
    if contract.ask > 0:
        return (contract.ask - contract.bid) / contract.ask
    return 1.0


def leg_price(contract: OptionContract) -> Optional[float]:
    """Mid when valid, else ask."""
    mid = contract.mid
    if mid is not None and mid > 0:
        return mid
    if contract.ask > 0:
        return contract.ask
    return None


def format_option_label(contract: OptionContract) -> str:
    """
    Build a clean label like: TSLA 255C 1/18
    Falls back gracefully if info is missing.
    """
    parsed = parse_occ_symbol(contract.symbol)
    under = (contract.underlying or (parsed.underlying if parsed else None) or "UNKNOWN").upper()
    cp = "C" if contract.option_type == "call" else "P"
    strike = contract.strike
    strike_str = str(int(strike)) if float(strike).is_integer() else f"{strike}"

    exp = _as_date(contract.expiration)
    exp_str = f"{exp.month}/{exp.day}" if exp else "?"

    return f"{under} {strike_str}{cp} {exp_str}"
