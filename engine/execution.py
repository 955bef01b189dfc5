# engine/execution.py
from __future__ import annotations

import logging
from typing import Optional

from providers.gateway import Brokerage

from .errors import CollaboratorUnavailable, ExecutionFailure
from .models import ExecutionResult, Signal, TradeDecision, ValidationResult

log = logging.getLogger(__name__)

SPREADS_NOT_SUPPORTED = "Multi-leg spread orders are not supported yet"


def should_execute(
    decision: TradeDecision,
    validation: ValidationResult,
    settings,
    brokerage: Optional[Brokerage],
) -> bool:
    return (
        settings.enable_auto_trading
        and validation.is_valid
        and decision.disposition == "EXECUTE"
        and decision.quantity > 0
        and brokerage is not None
    )


def option_exit_prices(premium: float, settings):
    """Premium-based bracket exits for a long option: (stop, take_profit)."""
    stop = max(0.01, premium * (1 - settings.option_stop_pct / 100.0))
    take = premium * (1 + settings.option_target_pct / 100.0)
    return round(stop, 2), round(take, 2)


def execute_decision(
    signal: Signal,
    decision: TradeDecision,
    settings,
    brokerage: Brokerage,
) -> ExecutionResult:
    """
    Best-effort bracket order for a stock or single-leg option decision.
    Broker errors come back as executed=False, never raised.
    """
    if decision.option_spread is not None:
        log.info("execution %s: %s not submitted (%s)", signal.ticker, decision.option_structure, SPREADS_NOT_SUPPORTED)
        return ExecutionResult(executed=False, error=SPREADS_NOT_SUPPORTED)

    limit = settings.order_entry_type == "limit"
    try:
        if decision.option_contract is not None:
            stop, take = option_exit_prices(decision.entry_price, settings)
            order = brokerage.place_option_bracket_order(
                option_symbol=decision.option_contract.symbol,
                quantity=decision.quantity,
                entry_type=settings.order_entry_type,
                limit_price=round(decision.entry_price, 2) if limit else None,
                stop_loss=stop,
                take_profit=take,
            )
        else:
            order = brokerage.place_stock_bracket_order(
                symbol=decision.symbol,
                side="buy" if signal.direction == "LONG" else "sell_short",
                quantity=decision.quantity,
                entry_type=settings.order_entry_type,
                limit_price=round(decision.entry_price, 2) if limit else None,
                stop_loss=decision.stop_loss,
                take_profit=decision.target1,
            )
    except (ExecutionFailure, CollaboratorUnavailable) as exc:
        log.warning("execution %s %s failed: %s", signal.ticker, decision.symbol, exc)
        return ExecutionResult(executed=False, error=str(exc))
    except Exception as exc:  # noqa: BLE001
        # order state at the broker is unknown here
        log.exception("execution %s %s crashed: %s", signal.ticker, decision.symbol, exc)
        return ExecutionResult(executed=False, error=f"{type(exc).__name__}: {exc}")

    log.info(
        "execution %s: order %s %s x%d status=%s",
        signal.ticker,
        order.get("id"),
        decision.symbol,
        decision.quantity,
        order.get("status"),
    )
    return ExecutionResult(
        executed=True,
        order_id=str(order.get("id")),
        order_status=order.get("status"),
        raw=order.get("raw"),
    )
