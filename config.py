import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    # Collaborator credentials. A missing credential disables that source.
    tradier_api_key: Optional[str] = None
    tradier_account_id: Optional[str] = None
    tradier_base_url: str = "https://sandbox.tradier.com/v1"
    twelvedata_api_key: Optional[str] = None
    alpaca_api_key: Optional[str] = None
    alpaca_secret_key: Optional[str] = None
    alpaca_base_url: str = "https://paper-api.alpaca.markets"
    alpaca_data_url: str = "https://data.alpaca.markets"
    redis_url: Optional[str] = None

    # Validation gates
    signal_max_age_ms: int = 2 * 60 * 1000
    min_confluence_scanner: float = 2.0
    min_confluence_full: float = 5.0
    daily_trade_limit: int = 10
    min_buying_power: float = 1000.0
    require_market_open: bool = True

    # Disposition thresholds (confidence 0-100)
    confidence_paper_threshold: float = 50.0
    confidence_execute_threshold: float = 65.0

    # Execution / dedupe
    enable_auto_trading: bool = False
    webhook_dedupe_enabled: bool = True
    webhook_dedupe_ttl_sec: int = 86400

    # Risk sizing
    max_risk_per_trade: float = 500.0
    max_position_size: float = 10_000.0
    risk_pct_legendary: float = 2.0
    risk_pct_mega: float = 1.5
    risk_pct_high: float = 1.0
    risk_pct_standard: float = 0.5
    max_option_contracts: int = 10
    max_spread_contracts: int = 10

    # Stops/targets derived from ATR when the alert carries none
    atr_stop_multiplier: float = 1.5
    target1_r: float = 1.5
    target2_r: float = 3.0

    # Option picker
    trade_options: bool = True
    options_structure_mode: str = "auto"   # auto | single | debit | credit
    option_min_dte: int = 7
    option_max_dte: int = 45
    option_min_volume: int = 10
    option_min_open_interest: int = 100
    option_max_spread_pct: float = 15.0
    option_min_delta: float = 0.25
    option_max_delta: float = 0.75
    option_max_iv: float = 1.5
    option_chain_max_expirations: int = 4
    iv_rank_high: float = 50.0

    # Vertical spreads
    spread_debit_long_delta: float = 0.50
    spread_debit_short_delta: float = 0.30
    spread_credit_short_delta: float = 0.30
    spread_credit_long_delta: float = 0.15
    spread_target_width_pct: float = 2.0

    # Bracket orders
    order_entry_type: str = "limit"
    option_stop_pct: float = 50.0
    option_target_pct: float = 100.0

    # HTTP collaborators
    http_timeout_sec: float = 5.0
    http_max_retries: int = 2
    enrichment_max_workers: int = 7

    def __post_init__(self) -> None:
        if self.confidence_paper_threshold > self.confidence_execute_threshold:
            raise ValueError("confidence_paper_threshold must not exceed confidence_execute_threshold")
        if self.option_min_delta > self.option_max_delta:
            raise ValueError("option_min_delta must not exceed option_max_delta")
        if self.option_min_dte > self.option_max_dte:
            raise ValueError("option_min_dte must not exceed option_max_dte")
        if self.options_structure_mode not in ("auto", "single", "debit", "credit"):
            raise ValueError(f"Unknown options_structure_mode: {self.options_structure_mode!r}")
        if self.order_entry_type not in ("market", "limit"):
            raise ValueError(f"Unknown order_entry_type: {self.order_entry_type!r}")
        self.webhook_dedupe_ttl_sec = max(60, min(7 * 86400, int(self.webhook_dedupe_ttl_sec)))

    @property
    def tradier_enabled(self) -> bool:
        return bool(self.tradier_api_key)

    @property
    def twelvedata_enabled(self) -> bool:
        return bool(self.twelvedata_api_key)

    @property
    def alpaca_enabled(self) -> bool:
        return bool(self.alpaca_api_key and self.alpaca_secret_key)


def _num_env(name: str, fallback: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in (None, "") else fallback
    except ValueError:
        return fallback


def _int_env(name: str, fallback: int) -> int:
    return int(_num_env(name, fallback))


def _bool_env(name: str, fallback: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return fallback
    return raw in ("1", "true", "yes", "y")


def _str_env(name: str, fallback: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    return raw.strip() if raw and raw.strip() else fallback


def get_settings() -> Settings:
    d = Settings.__dataclass_fields__

    return Settings(
        tradier_api_key=_str_env("TRADIER_API_KEY"),
        tradier_account_id=_str_env("TRADIER_ACCOUNT_ID"),
        tradier_base_url=_str_env("TRADIER_BASE_URL", d["tradier_base_url"].default).rstrip("/"),
        twelvedata_api_key=_str_env("TWELVEDATA_API_KEY"),
        alpaca_api_key=_str_env("ALPACA_API_KEY"),
        alpaca_secret_key=_str_env("ALPACA_SECRET_KEY"),
        alpaca_base_url=_str_env("ALPACA_BASE_URL", d["alpaca_base_url"].default).rstrip("/"),
        alpaca_data_url=_str_env("ALPACA_DATA_URL", d["alpaca_data_url"].default).rstrip("/"),
        redis_url=_str_env("REDIS_URL"),
        signal_max_age_ms=_int_env("SIGNAL_MAX_AGE_MS", d["signal_max_age_ms"].default),
        min_confluence_scanner=_num_env("MIN_CONFLUENCE_SCANNER", d["min_confluence_scanner"].default),
        min_confluence_full=_num_env("MIN_CONFLUENCE_FULL", d["min_confluence_full"].default),
        daily_trade_limit=_int_env("DAILY_TRADE_LIMIT", d["daily_trade_limit"].default),
        min_buying_power=_num_env("MIN_BUYING_POWER", d["min_buying_power"].default),
        require_market_open=_bool_env("REQUIRE_MARKET_OPEN", d["require_market_open"].default),
        confidence_paper_threshold=_num_env(
            "CONFIDENCE_PAPER_THRESHOLD", d["confidence_paper_threshold"].default
        ),
        confidence_execute_threshold=_num_env(
            "CONFIDENCE_EXECUTE_THRESHOLD", d["confidence_execute_threshold"].default
        ),
        enable_auto_trading=_bool_env("ENABLE_AUTO_TRADING", d["enable_auto_trading"].default),
        webhook_dedupe_enabled=_bool_env("WEBHOOK_DEDUPE_ENABLED", d["webhook_dedupe_enabled"].default),
        webhook_dedupe_ttl_sec=_int_env("WEBHOOK_DEDUPE_TTL_SEC", d["webhook_dedupe_ttl_sec"].default),
        max_risk_per_trade=_num_env("MAX_RISK_PER_TRADE", d["max_risk_per_trade"].default),
        max_position_size=_num_env("MAX_POSITION_SIZE", d["max_position_size"].default),
        risk_pct_legendary=_num_env("RISK_PCT_LEGENDARY", d["risk_pct_legendary"].default),
        risk_pct_mega=_num_env("RISK_PCT_MEGA", d["risk_pct_mega"].default),
        risk_pct_high=_num_env("RISK_PCT_HIGH", d["risk_pct_high"].default),
        risk_pct_standard=_num_env("RISK_PCT_STANDARD", d["risk_pct_standard"].default),
        max_option_contracts=_int_env("MAX_OPTION_CONTRACTS", d["max_option_contracts"].default),
        max_spread_contracts=_int_env("MAX_SPREAD_CONTRACTS", d["max_spread_contracts"].default),
        atr_stop_multiplier=_num_env("ATR_STOP_MULTIPLIER", d["atr_stop_multiplier"].default),
        target1_r=_num_env("TARGET1_R", d["target1_r"].default),
        target2_r=_num_env("TARGET2_R", d["target2_r"].default),
        trade_options=_bool_env("TRADE_OPTIONS", d["trade_options"].default),
        options_structure_mode=(
            _str_env("OPTIONS_STRUCTURE_MODE", d["options_structure_mode"].default) or "auto"
        ).lower(),
        option_min_dte=_int_env("OPTION_MIN_DTE", d["option_min_dte"].default),
        option_max_dte=_int_env("OPTION_MAX_DTE", d["option_max_dte"].default),
        option_min_volume=_int_env("OPTION_MIN_VOLUME", d["option_min_volume"].default),
        option_min_open_interest=_int_env("OPTION_MIN_OPEN_INTEREST", d["option_min_open_interest"].default),
        option_max_spread_pct=_num_env("OPTION_MAX_SPREAD_PCT", d["option_max_spread_pct"].default),
        option_min_delta=_num_env("OPTION_MIN_DELTA", d["option_min_delta"].default),
        option_max_delta=_num_env("OPTION_MAX_DELTA", d["option_max_delta"].default),
        option_max_iv=_num_env("OPTION_MAX_IV", d["option_max_iv"].default),
        option_chain_max_expirations=_int_env(
            "OPTION_CHAIN_MAX_EXPIRATIONS", d["option_chain_max_expirations"].default
        ),
        iv_rank_high=_num_env("IV_RANK_HIGH", d["iv_rank_high"].default),
        spread_debit_long_delta=_num_env("SPREAD_DEBIT_LONG_DELTA", d["spread_debit_long_delta"].default),
        spread_debit_short_delta=_num_env("SPREAD_DEBIT_SHORT_DELTA", d["spread_debit_short_delta"].default),
        spread_credit_short_delta=_num_env("SPREAD_CREDIT_SHORT_DELTA", d["spread_credit_short_delta"].default),
        spread_credit_long_delta=_num_env("SPREAD_CREDIT_LONG_DELTA", d["spread_credit_long_delta"].default),
        spread_target_width_pct=_num_env("SPREAD_TARGET_WIDTH_PCT", d["spread_target_width_pct"].default),
        order_entry_type=(_str_env("ORDER_ENTRY_TYPE", d["order_entry_type"].default) or "limit").lower(),
        option_stop_pct=_num_env("OPTION_STOP_PCT", d["option_stop_pct"].default),
        option_target_pct=_num_env("OPTION_TARGET_PCT", d["option_target_pct"].default),
        http_timeout_sec=_num_env("HTTP_TIMEOUT_SEC", d["http_timeout_sec"].default),
        http_max_retries=_int_env("HTTP_MAX_RETRIES", d["http_max_retries"].default),
        enrichment_max_workers=_int_env("ENRICHMENT_MAX_WORKERS", d["enrichment_max_workers"].default),
    )
