# engine/pipeline.py
"""
One inbound webhook -> one auditable decision.

    normalize -> dedupe claim -> enrich (one snapshot) -> validate -> score
      -> pick structure / size -> disposition -> (optional) execution gate

Only UnrecognizedPayload (and programming errors) escape process_webhook.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Mapping, Optional

from providers.gateway import MarketDataGateway

from .decision import make_decision
from .enrichment import enrich_signal
from .execution import execute_decision, should_execute
from .idempotency import IdempotencyStore, context_trade_count, dedupe_key, utc_day_key
from .models import Enrichment, ExecutionResult, Scores, Signal, TradeDecision, ValidationResult
from .normalizer import normalize_webhook_payload
from .scoring import calculate_scores
from .validation import validate_signal

log = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    webhook_id: str
    signal: Signal
    decision: TradeDecision
    status: str
    validation: Optional[ValidationResult] = None
    enrichment: Optional[Enrichment] = None
    scores: Optional[Scores] = None
    should_execute: bool = False
    execution: Optional[ExecutionResult] = None
    duplicate_of: Optional[str] = None
    dedupe_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = _jsonable(dataclasses.asdict(self))
        if self.validation is not None:
            out["validation"]["is_valid"] = self.validation.is_valid
            out["validation"]["failed_checks"] = self.validation.failed_checks
        return out


def _jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def result_status(
    validation: ValidationResult,
    decision: TradeDecision,
    should_exec: bool,
    execution: Optional[ExecutionResult],
) -> str:
    if not validation.is_valid:
        return "rejected"
    if decision.disposition == "SKIP":
        return "skipped"
    if decision.disposition == "PAPER":
        return "paper"
    if execution is not None and execution.executed:
        return "executed"
    if should_exec:
        return "execute_failed"
    return "approved"


def duplicate_decision(signal: Signal, original_id: str) -> TradeDecision:
    px = signal.entry or signal.price or 0.0
    return TradeDecision(
        disposition="SKIP",
        action="HOLD",
        instrument_type="STOCK",
        symbol=signal.ticker,
        quantity=0,
        entry_price=px,
        stop_loss=signal.stop_loss or 0.0,
        target1=signal.target1 or 0.0,
        target2=signal.target2 or 0.0,
        confidence=0.0,
        reasoning=(f"Duplicate webhook (deduped). Original: {original_id}",),
    )


class DecisionPipeline:
    def __init__(
        self,
        settings,
        gateway: Optional[MarketDataGateway] = None,
        store: Optional[IdempotencyStore] = None,
    ):
        self.settings = settings
        self.gateway = gateway or MarketDataGateway()
        self.store = store

    def _claim(self, signal: Signal, raw: Any, webhook_id: str):
        """(dedupe key, original webhook id when this delivery is a duplicate)."""
        if not self.settings.webhook_dedupe_enabled or self.store is None:
            return None, None

        key = dedupe_key(signal, raw)
        try:
            if self.store.claim(key, webhook_id, self.settings.webhook_dedupe_ttl_sec):
                return key, None
            return key, self.store.owner_of(key) or "unknown"
        except Exception as exc:  # noqa: BLE001
            # store outage: decide without dedupe rather than drop the alert
            log.warning("dedupe claim failed for %s: %s", key, exc)
            return key, None

    def _daily_trade_count(self, context: Optional[Mapping[str, Any]], day: str) -> int:
        count = context_trade_count(context)
        if count is not None:
            return count
        if self.store is None:
            return 0
        try:
            return self.store.get_daily_trade_count(day)
        except Exception as exc:  # noqa: BLE001
            log.warning("daily trade count unavailable: %s", exc)
            return 0

    def _record_trade(self, day: str) -> None:
        if self.store is None:
            return
        try:
            self.store.increment_daily_trade_count(day)
        except Exception as exc:  # noqa: BLE001
            log.warning("daily trade count increment failed: %s", exc)

    def process_webhook(
        self,
        raw: Any,
        context: Optional[Mapping[str, Any]] = None,
        *,
        now_ms: Optional[int] = None,
        today: Optional[date] = None,
    ) -> ProcessResult:
        signal = normalize_webhook_payload(raw)
        webhook_id = f"wh_{uuid.uuid4()}"
        day = utc_day_key(today)

        key, original = self._claim(signal, raw, webhook_id)
        if original is not None:
            log.info("webhook %s duplicate of %s (%s)", webhook_id, original, key)
            return ProcessResult(
                webhook_id=webhook_id,
                signal=signal,
                decision=duplicate_decision(signal, original),
                status="duplicate",
                duplicate_of=original,
                dedupe_key=key,
            )

        # one snapshot for validation, scoring and sizing
        enrichment = enrich_signal(signal, self.gateway, max_workers=self.settings.enrichment_max_workers)
        validation = validate_signal(
            signal,
            enrichment,
            self.settings,
            self._daily_trade_count(context, day),
            now_ms=now_ms,
        )
        scores = calculate_scores(signal, enrichment)
        decision = make_decision(signal, enrichment, scores, self.settings, today=today)

        brokerage = self.gateway.brokerage
        should_exec = should_execute(decision, validation, self.settings, brokerage)
        execution = None
        if should_exec:
            execution = execute_decision(signal, decision, self.settings, brokerage)
            if execution.executed:
                self._record_trade(day)

        status = result_status(validation, decision, should_exec, execution)
        log.info(
            "webhook %s %s %s -> %s (%s, confidence=%.1f)",
            webhook_id,
            signal.ticker,
            signal.direction,
            status,
            decision.disposition,
            decision.confidence,
        )
        return ProcessResult(
            webhook_id=webhook_id,
            signal=signal,
            decision=decision,
            status=status,
            validation=validation,
            enrichment=enrichment,
            scores=scores,
            should_execute=should_exec,
            execution=execution,
            dedupe_key=key,
        )


def process_webhook(
    raw: Any,
    context: Optional[Mapping[str, Any]] = None,
    *,
    settings=None,
    gateway: Optional[MarketDataGateway] = None,
    store: Optional[IdempotencyStore] = None,
) -> ProcessResult:
    """One-shot helper; builds settings and gateway from the environment when omitted."""
    if settings is None:
        from config import get_settings

        settings = get_settings()
    if gateway is None:
        gateway = MarketDataGateway.from_settings(settings)
    return DecisionPipeline(settings, gateway, store).process_webhook(raw, context)
