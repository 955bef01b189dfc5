# engine/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

Direction = Literal["LONG", "SHORT"]
SignalSource = Literal["scanner", "full"]
OptionType = Literal["call", "put"]
Disposition = Literal["SKIP", "PAPER", "EXECUTE"]
Action = Literal["BUY", "SELL", "HOLD"]
InstrumentType = Literal["STOCK", "CALL", "PUT"]
OptionStructure = Literal[
    "SINGLE",
    "CALL_DEBIT_SPREAD",
    "PUT_DEBIT_SPREAD",
    "CALL_CREDIT_SPREAD",
    "PUT_CREDIT_SPREAD",
]
LegSide = Literal["buy_to_open", "sell_to_open", "buy_to_close", "sell_to_close"]


@dataclass(frozen=True)
class Signal:
    """
    Canonical trading alert, produced once by engine.normalizer from either
    inbound shape and read-only afterwards.

    confluence_score / max_confluence are on the source's native scale; only
    compare signals through `confluence_ratio`.
    raw keeps the original payload for the audit trail.
    """

    source: SignalSource
    ticker: str
    direction: Direction
    timestamp: int                  # epoch ms
    timeframe_minutes: int
    confluence_score: float
    max_confluence: float
    quality_label: Optional[str] = None
    is_legendary: bool = False
    is_mega: bool = False
    entry: Optional[float] = None
    stop_loss: Optional[float] = None
    target1: Optional[float] = None
    target2: Optional[float] = None
    price: Optional[float] = None   # reference close from the alert bar
    atr: Optional[float] = None
    pattern: Optional[str] = None
    amd_phase: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @property
    def confluence_ratio(self) -> float:
        if not self.max_confluence or self.max_confluence <= 0:
            return 0.0
        return self.confluence_score / self.max_confluence


@dataclass(frozen=True)
class Quote:
    symbol: str
    last: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    volume: Optional[float] = None
    source: str = "tradier"


@dataclass(frozen=True)
class Greeks:
    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None
    rho: Optional[float] = None
    iv: Optional[float] = None
    mid_iv: Optional[float] = None


@dataclass(frozen=True)
class OptionContract:
    """One row of a single options-chain snapshot."""

    symbol: str
    strike: float
    expiration: str                 # ISO date, e.g. "2025-12-19"
    option_type: OptionType
    bid: float = 0.0
    ask: float = 0.0
    last: float = 0.0
    volume: int = 0
    open_interest: int = 0
    underlying: Optional[str] = None
    greeks: Optional[Greeks] = None

    @property
    def delta(self) -> Optional[float]:
        return self.greeks.delta if self.greeks else None

    @property
    def abs_delta(self) -> Optional[float]:
        d = self.delta
        return abs(d) if d is not None else None

    @property
    def implied_vol(self) -> Optional[float]:
        if not self.greeks:
            return None
        iv = self.greeks.mid_iv if self.greeks.mid_iv else self.greeks.iv
        return iv if iv and iv > 0 else None

    @property
    def mid(self) -> Optional[float]:
        if self.bid > 0 and self.ask > 0 and self.ask >= self.bid:
            return (self.bid + self.ask) / 2.0
        return None


@dataclass(frozen=True)
class OptionLeg:
    option_symbol: str
    side: LegSide
    quantity: int
    expiration: Optional[str] = None
    strike: Optional[float] = None
    option_type: Optional[OptionType] = None
    greeks: Optional[Greeks] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    last: Optional[float] = None

    @classmethod
    def from_contract(cls, contract: OptionContract, side: LegSide, quantity: int) -> "OptionLeg":
        return cls(
            option_symbol=contract.symbol,
            side=side,
            quantity=quantity,
            expiration=contract.expiration,
            strike=contract.strike,
            option_type=contract.option_type,
            greeks=contract.greeks,
            bid=contract.bid,
            ask=contract.ask,
            last=contract.last,
        )


@dataclass(frozen=True)
class OptionSpread:
    """
    Vertical spread: long + short leg on one expiration.

    estimated_debit / estimated_credit are per spread in option price units;
    estimated_max_loss / estimated_max_profit are dollars per spread (x100).
    """

    structure: OptionStructure
    expiration: str
    width: float
    long_leg: OptionContract
    short_leg: OptionContract
    estimated_debit: Optional[float] = None
    estimated_credit: Optional[float] = None
    estimated_max_loss: Optional[float] = None
    estimated_max_profit: Optional[float] = None

    @property
    def is_debit(self) -> bool:
        return self.structure.endswith("DEBIT_SPREAD")

    def legs(self, quantity: int) -> List[OptionLeg]:
        return [
            OptionLeg.from_contract(self.long_leg, "buy_to_open", quantity),
            OptionLeg.from_contract(self.short_leg, "sell_to_open", quantity),
        ]


@dataclass(frozen=True)
class Indicators:
    rsi: Optional[float] = None
    atr: Optional[float] = None
    adx: Optional[float] = None
    stoch_k: Optional[float] = None
    stoch_d: Optional[float] = None
    bb_upper: Optional[float] = None
    bb_lower: Optional[float] = None
    bb_middle: Optional[float] = None


@dataclass(frozen=True)
class MarketStatus:
    is_open: bool
    timestamp: Optional[str] = None
    next_open: Optional[str] = None
    next_close: Optional[str] = None


@dataclass(frozen=True)
class Balances:
    account_number: Optional[str] = None
    equity: Optional[float] = None
    buying_power: Optional[float] = None
    cash: Optional[float] = None


@dataclass(frozen=True)
class Position:
    symbol: str
    quantity: float
    cost_basis: Optional[float] = None


@dataclass(frozen=True)
class Derived:
    spread_pct: Optional[float] = None
    put_call_ratio: Optional[float] = None
    iv_rank: Optional[float] = None   # chain-snapshot proxy, not historical IV rank


@dataclass(frozen=True)
class Enrichment:
    """
    Best-effort market snapshot for one decision. Every field may be None:
    the source was disabled, failed, or returned nothing.
    """

    tradier_quote: Optional[Quote] = None
    alpaca_quote: Optional[Quote] = None
    options: Optional[Tuple[OptionContract, ...]] = None
    indicators: Optional[Indicators] = None
    market_status: Optional[MarketStatus] = None
    balances: Optional[Balances] = None
    positions: Optional[Tuple[Position, ...]] = None
    derived: Derived = field(default_factory=Derived)
    failed_sources: Tuple[str, ...] = ()
    disabled_sources: Tuple[str, ...] = ()

    @property
    def quote(self) -> Optional[Quote]:
        return self.tradier_quote or self.alpaca_quote

    def spot_price(self, signal: Signal) -> Optional[float]:
        for q in (self.tradier_quote, self.alpaca_quote):
            if q is not None and q.last and q.last > 0:
                return q.last
        for px in (signal.price, signal.entry):
            if px and px > 0:
                return px
        return None

    @property
    def equity(self) -> Optional[float]:
        return self.balances.equity if self.balances else None

    @property
    def buying_power(self) -> Optional[float]:
        return self.balances.buying_power if self.balances else None


@dataclass(frozen=True)
class Scores:
    technical_score: float          # 0-10
    options_score: float            # 0-10
    original_score: float           # native confluence
    original_max: float
    final_score: float              # unclamped blend
    confidence: float               # 0-100


@dataclass(frozen=True)
class TradeDecision:
    disposition: Disposition
    action: Action
    instrument_type: InstrumentType
    symbol: str
    quantity: int
    entry_price: float
    stop_loss: float
    target1: float
    target2: float
    confidence: float
    reasoning: Tuple[str, ...] = ()
    option_structure: Optional[OptionStructure] = None
    option_contract: Optional[OptionContract] = None
    option_spread: Optional[OptionSpread] = None
    option_legs: Tuple[OptionLeg, ...] = ()


@dataclass(frozen=True)
class ValidationResult:
    """Named boolean checks in evaluation order."""

    checks: Dict[str, bool]

    @property
    def is_valid(self) -> bool:
        return all(self.checks.values())

    @property
    def failed_checks(self) -> List[str]:
        return [name for name, ok in self.checks.items() if not ok]


@dataclass(frozen=True)
class ExecutionResult:
    executed: bool
    order_id: Optional[str] = None
    order_status: Optional[str] = None
    error: Optional[str] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)
