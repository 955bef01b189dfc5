# engine/errors.py
from __future__ import annotations


class EngineError(Exception):
    """Base class for decision-engine failures."""


class UnrecognizedPayload(EngineError, ValueError):
    """Inbound webhook matched neither the scanner nor the full alert shape."""


class CollaboratorUnavailable(EngineError, RuntimeError):
    """An external data source or brokerage could not be reached or answered badly."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class ExecutionFailure(EngineError):
    """Order placement was attempted and rejected or errored."""
