"""Exceptions raised by the context engine.

Collector-local problems are represented by CollectorFailure and never
escape an assembly round. Everything else is caller-visible.
"""

from typing import Optional


class ContextEngineError(Exception):
    """Base class for context engine errors"""


class CollectorFailure(ContextEngineError):
    """A single collector call raised, timed out or returned garbage"""

    def __init__(self, collector_name: str, reason: str, timed_out: bool = False):
        super().__init__(f"Collector '{collector_name}' failed: {reason}")
        self.collector_name = collector_name
        self.reason = reason
        self.timed_out = timed_out


class BudgetExceededError(ContextEngineError):
    """Assembled fragments exceed the token budget.

    Budget selection enforces the limit, so this only signals a broken
    invariant.
    """


class AssemblyCancelledError(ContextEngineError):
    """The caller cancelled an assembly before the merge step"""

    def __init__(self, request_id: Optional[str] = None):
        super().__init__(f"Context assembly cancelled (request_id={request_id})")
        self.request_id = request_id


class RegistryError(ContextEngineError):
    """Invalid collector registry operation"""


class PromotionRefusedError(ContextEngineError):
    """An experiment result does not justify promoting its variant"""


class ExperimentInconclusiveError(PromotionRefusedError):
    """Not enough trials survived to reach a verdict"""
