# engine/enrichment.py
"""
Concurrent, best-effort market enrichment for one signal.

Every configured collaborator call runs on its own worker; each branch is
wrapped so it settles as a SourceResult (value or error) and no exception
crosses the join. The bundle is only assembled after all branches settle.
"""
from __future__ import annotations

import logging
import statistics
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from providers.gateway import MarketDataGateway

from .models import Derived, Enrichment, OptionContract, Quote, Signal

log = logging.getLogger(__name__)

SOURCES = (
    "tradier_quote",
    "alpaca_quote",
    "options",
    "indicators",
    "market_status",
    "balances",
    "positions",
)


@dataclass(frozen=True)
class SourceResult:
    name: str
    value: Any = None
    error: Optional[str] = None
    runtime: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def _settle(name: str, fn: Callable[..., Any], *args: Any) -> SourceResult:
    start = perf_counter()
    try:
        value = fn(*args)
    except Exception as exc:  # noqa: BLE001
        runtime = perf_counter() - start
        log.warning("enrichment source %s failed after %.2fs: %s", name, runtime, exc)
        return SourceResult(name=name, error=str(exc) or type(exc).__name__, runtime=runtime)
    return SourceResult(name=name, value=value, runtime=perf_counter() - start)


def calc_put_call_ratio(options: Optional[Sequence[OptionContract]]) -> Optional[float]:
    if not options:
        return None
    call_vol = sum(o.volume or 0 for o in options if o.option_type == "call")
    put_vol = sum(o.volume or 0 for o in options if o.option_type == "put")
    if call_vol <= 0:
        return None
    return put_vol / call_vol


def calc_spread_pct(quote: Optional[Quote]) -> Optional[float]:
    if quote is None or not quote.last:
        return None
    if quote.bid is None or quote.ask is None:
        return None
    return (quote.ask - quote.bid) / quote.last * 100.0


def estimate_iv_rank(options: Optional[Sequence[OptionContract]]) -> Optional[float]:
    """
    IV-rank proxy from one chain snapshot: where the chain's median implied
    vol sits between its own min and max, 0-100.

    This is NOT a historical IV percentile. Scoring and structure preference
    are calibrated against this approximation.
    """
    if not options:
        return None
    ivs = [iv for iv in (o.implied_vol for o in options) if iv is not None]
    if len(ivs) < 2:
        return None
    lo, hi = min(ivs), max(ivs)
    if hi <= lo:
        return None
    return (statistics.median(ivs) - lo) / (hi - lo) * 100.0


def compute_derived(
    tradier_quote: Optional[Quote],
    alpaca_quote: Optional[Quote],
    options: Optional[Sequence[OptionContract]],
) -> Derived:
    spread_pct = calc_spread_pct(tradier_quote)
    if spread_pct is None:
        spread_pct = calc_spread_pct(alpaca_quote)
    return Derived(
        spread_pct=spread_pct,
        put_call_ratio=calc_put_call_ratio(options),
        iv_rank=estimate_iv_rank(options),
    )


def _plan(signal: Signal, gateway: MarketDataGateway) -> Tuple[List[Tuple[str, Callable[..., Any], tuple]], List[str]]:
    candidates: Dict[str, Optional[Tuple[Callable[..., Any], tuple]]] = {
        "tradier_quote": (gateway.quote.get_quote, (signal.ticker,)) if gateway.quote else None,
        "alpaca_quote": (gateway.alt_quote.get_quote, (signal.ticker,)) if gateway.alt_quote else None,
        "options": (gateway.options.get_options_chain, (signal.ticker,)) if gateway.options else None,
        "indicators": (
            (gateway.indicators.get_indicators, (signal.ticker, signal.timeframe_minutes))
            if gateway.indicators
            else None
        ),
        "market_status": (gateway.market_hours.get_market_status, ()) if gateway.market_hours else None,
        "balances": (gateway.account.get_balances, ()) if gateway.account else None,
        "positions": (gateway.account.get_open_positions, ()) if gateway.account else None,
    }
    plan = []
    disabled = []
    for name in SOURCES:
        entry = candidates[name]
        if entry is None:
            disabled.append(name)
        else:
            plan.append((name, entry[0], entry[1]))
    return plan, disabled


def _tuple_or_none(value: Optional[Iterable[Any]]) -> Optional[tuple]:
    return tuple(value) if value is not None else None


def enrich_signal(signal: Signal, gateway: MarketDataGateway, *, max_workers: int = 7) -> Enrichment:
    plan, disabled = _plan(signal, gateway)
    results: Dict[str, SourceResult] = {}

    # nothing to look up without a ticker
    if not signal.ticker:
        plan, disabled = [], list(SOURCES)

    if plan:
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(plan)))) as pool:
            futures = [pool.submit(_settle, name, fn, *args) for name, fn, args in plan]
            wait(futures, return_when=ALL_COMPLETED)
            for fut in futures:
                res = fut.result()
                results[res.name] = res

    def value(name: str) -> Any:
        res = results.get(name)
        return res.value if res is not None and res.ok else None

    tradier_quote = value("tradier_quote")
    alpaca_quote = value("alpaca_quote")
    options = _tuple_or_none(value("options"))

    enrichment = Enrichment(
        tradier_quote=tradier_quote,
        alpaca_quote=alpaca_quote,
        options=options,
        indicators=value("indicators"),
        market_status=value("market_status"),
        balances=value("balances"),
        positions=_tuple_or_none(value("positions")),
        derived=compute_derived(tradier_quote, alpaca_quote, options),
        failed_sources=tuple(name for name in SOURCES if name in results and not results[name].ok),
        disabled_sources=tuple(disabled),
    )

    log.info(
        "enriched %s: ok=%s failed=%s disabled=%s",
        signal.ticker,
        [n for n in SOURCES if n in results and results[n].ok],
        list(enrichment.failed_sources),
        list(enrichment.disabled_sources),
    )
    return enrichment
