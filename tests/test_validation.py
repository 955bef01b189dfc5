from __future__ import annotations

from engine.models import Balances, Enrichment, MarketStatus, Position
from engine.validation import validate_signal

from conftest import NOW_MS

CHECK_ORDER = [
    "hasRequiredFields",
    "notStale",
    "marketOpen",
    "noConflictingPosition",
    "meetsMinConfluence",
    "underDailyLimit",
    "sufficientBuyingPower",
]


def test_fresh_signal_with_unknown_collaborators_passes(make_signal, settings):
    result = validate_signal(make_signal(), Enrichment(), settings, 0, now_ms=NOW_MS + 1_000)

    assert result.is_valid
    assert list(result.checks) == CHECK_ORDER
    assert result.failed_checks == []


def test_stale_signal_fails_not_stale(make_signal, settings):
    now = NOW_MS + settings.signal_max_age_ms + 1

    result = validate_signal(make_signal(), Enrichment(), settings, 0, now_ms=now)

    assert not result.is_valid
    assert result.failed_checks == ["notStale"]


def test_age_exactly_at_limit_is_fresh(make_signal, settings):
    now = NOW_MS + settings.signal_max_age_ms

    assert validate_signal(make_signal(), Enrichment(), settings, 0, now_ms=now).checks["notStale"]


def test_missing_timestamp_fails_required_and_stale(make_signal, settings):
    result = validate_signal(make_signal(timestamp=0), Enrichment(), settings, 0, now_ms=NOW_MS)

    assert result.failed_checks == ["hasRequiredFields", "notStale"]


def test_closed_market_fails_only_when_required(make_signal, settings, make_settings):
    closed = Enrichment(market_status=MarketStatus(is_open=False))

    assert validate_signal(make_signal(), closed, settings, 0, now_ms=NOW_MS).failed_checks == ["marketOpen"]

    relaxed = make_settings(require_market_open=False)
    assert validate_signal(make_signal(), closed, relaxed, 0, now_ms=NOW_MS).is_valid


def test_option_position_on_same_underlying_conflicts(make_signal, settings):
    enrichment = Enrichment(positions=(Position(symbol="AAPL250117C00150000", quantity=2),))

    result = validate_signal(make_signal(), enrichment, settings, 0, now_ms=NOW_MS)

    assert result.failed_checks == ["noConflictingPosition"]


def test_other_positions_do_not_conflict(make_signal, settings):
    enrichment = Enrichment(positions=(Position(symbol="AAPLX", quantity=5), Position(symbol="MSFT", quantity=1)))

    assert validate_signal(make_signal(), enrichment, settings, 0, now_ms=NOW_MS).is_valid


def test_min_confluence_is_per_source(make_signal, settings):
    scanner = make_signal(source="scanner", confluence_score=2, max_confluence=3)
    weak_full = make_signal(confluence_score=4)

    assert validate_signal(scanner, Enrichment(), settings, 0, now_ms=NOW_MS).is_valid
    assert validate_signal(weak_full, Enrichment(), settings, 0, now_ms=NOW_MS).failed_checks == [
        "meetsMinConfluence"
    ]


def test_daily_limit(make_signal, settings):
    result = validate_signal(make_signal(), Enrichment(), settings, settings.daily_trade_limit, now_ms=NOW_MS)

    assert result.failed_checks == ["underDailyLimit"]


def test_buying_power_floor(make_signal, settings):
    poor = Enrichment(balances=Balances(equity=900.0, buying_power=500.0))

    assert validate_signal(make_signal(), poor, settings, 0, now_ms=NOW_MS).failed_checks == [
        "sufficientBuyingPower"
    ]


def test_every_check_evaluated_without_short_circuit(make_signal, settings):
    enrichment = Enrichment(
        market_status=MarketStatus(is_open=False),
        positions=(Position(symbol="AAPL", quantity=10),),
        balances=Balances(buying_power=10.0),
    )
    signal = make_signal(confluence_score=1)

    result = validate_signal(signal, enrichment, settings, 99, now_ms=NOW_MS + 10 * 60 * 1000)

    assert result.failed_checks == CHECK_ORDER[1:]
