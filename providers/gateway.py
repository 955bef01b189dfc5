# providers/gateway.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from engine.models import Balances, Indicators, MarketStatus, OptionContract, Position, Quote

from .alpaca import AlpacaClient
from .tradier import TradierClient
from .twelvedata import TwelveDataClient

log = logging.getLogger(__name__)


class QuoteProvider(Protocol):
    def get_quote(self, ticker: str) -> Quote: ...


class OptionsChainProvider(Protocol):
    def get_options_chain(self, ticker: str) -> List[OptionContract]: ...


class IndicatorProvider(Protocol):
    def get_indicators(self, ticker: str, timeframe_minutes: int) -> Indicators: ...


class MarketHoursProvider(Protocol):
    def get_market_status(self) -> MarketStatus: ...


class AccountProvider(Protocol):
    def get_balances(self) -> Balances: ...

    def get_open_positions(self) -> List[Position]: ...


class Brokerage(Protocol):
    def place_stock_bracket_order(self, **kwargs: Any) -> Dict[str, Any]: ...

    def place_option_bracket_order(self, **kwargs: Any) -> Dict[str, Any]: ...


@dataclass
class MarketDataGateway:
    """
    The external collaborators one decision may consult. Any of them may be
    None (unconfigured); the engine degrades instead of failing.
    """

    quote: Optional[QuoteProvider] = None
    alt_quote: Optional[QuoteProvider] = None
    options: Optional[OptionsChainProvider] = None
    indicators: Optional[IndicatorProvider] = None
    market_hours: Optional[MarketHoursProvider] = None
    account: Optional[AccountProvider] = None
    brokerage: Optional[Brokerage] = None

    @classmethod
    def from_settings(cls, settings) -> "MarketDataGateway":
        tradier = None
        if settings.tradier_enabled:
            tradier = TradierClient(
                settings.tradier_api_key,
                account_id=settings.tradier_account_id,
                base_url=settings.tradier_base_url,
                timeout=settings.http_timeout_sec,
                max_retries=settings.http_max_retries,
                min_dte=settings.option_min_dte,
                max_dte=settings.option_max_dte,
                max_expirations=settings.option_chain_max_expirations,
            )

        twelve = None
        if settings.twelvedata_enabled:
            twelve = TwelveDataClient(
                settings.twelvedata_api_key,
                timeout=settings.http_timeout_sec,
                max_retries=settings.http_max_retries,
            )

        alpaca = None
        if settings.alpaca_enabled:
            alpaca = AlpacaClient(
                settings.alpaca_api_key,
                settings.alpaca_secret_key,
                base_url=settings.alpaca_base_url,
                data_url=settings.alpaca_data_url,
                timeout=settings.http_timeout_sec,
                max_retries=settings.http_max_retries,
            )

        has_account = tradier is not None and bool(settings.tradier_account_id)
        gateway = cls(
            quote=tradier,
            alt_quote=alpaca,
            options=tradier,
            indicators=twelve,
            market_hours=alpaca,
            account=tradier if has_account else None,
            brokerage=tradier if has_account else None,
        )
        log.info(
            "Market data gateway: tradier=%s twelvedata=%s alpaca=%s account=%s",
            tradier is not None,
            twelve is not None,
            alpaca is not None,
            has_account,
        )
        return gateway
