# run.py
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from time import perf_counter
from typing import Any, List, Optional

from config import get_settings
from engine.errors import UnrecognizedPayload
from engine.idempotency import InMemoryStore, RedisStore
from engine.pipeline import DecisionPipeline
from providers.gateway import MarketDataGateway

logging.basicConfig(
    level=getattr(logging, (os.getenv("LOG_LEVEL") or "INFO").upper(), logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("runner")


def _load_payload(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def _process_safely(pipeline: DecisionPipeline, path: str, daily_trade_count: Optional[int]) -> Optional[dict]:
    start = perf_counter()
    try:
        payload = _load_payload(path)
        context = {"daily_trade_count": daily_trade_count} if daily_trade_count is not None else None
        result = pipeline.process_webhook(payload, context)
    except (OSError, json.JSONDecodeError) as exc:
        log.error("Could not read payload %s: %s", path, exc)
        return None
    except UnrecognizedPayload as exc:
        log.error("Rejected payload %s: %s", path, exc)
        return {"status": "error", "error": str(exc), "source": path}
    except Exception as exc:  # noqa: BLE001
        log.exception("Payload %s failed: %s", path, exc)
        return {"status": "error", "error": str(exc), "source": path}

    log.info("Processed %s in %.2fs -> %s", path, perf_counter() - start, result.status)
    return result.to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay webhook alerts through the signal decision engine.")
    parser.add_argument("payloads", nargs="*", default=["-"], help="JSON payload files ('-' for stdin)")
    parser.add_argument("--daily-trade-count", type=int, default=None, help="override today's trade count")
    parser.add_argument("--indent", type=int, default=2)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    gateway = MarketDataGateway.from_settings(settings)
    store = RedisStore.from_url(settings.redis_url) if settings.redis_url else InMemoryStore()
    pipeline = DecisionPipeline(settings, gateway, store)

    log.info(
        "Decision engine ready: auto_trading=%s options=%s mode=%s",
        settings.enable_auto_trading,
        settings.trade_options,
        settings.options_structure_mode,
    )

    failed = 0
    for path in args.payloads:
        out = _process_safely(pipeline, path, args.daily_trade_count)
        if out is None or out.get("status") == "error":
            failed += 1
        if out is not None:
            print(json.dumps(out, indent=args.indent, default=str))
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
