"""Deterministic collectors for exercising the engine and experiments."""

import asyncio
from typing import Iterable, List, Optional

from context_engine.domain.collector.base_collector import BaseCollector
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope, TaskKind
from context_engine.domain.models.context_fragment import CHARS_PER_TOKEN


def sized_content(label: str, tokens: int) -> str:
    """Content that estimates to exactly `tokens` tokens"""
    text = (label + " ") * (tokens * CHARS_PER_TOKEN // (len(label) + 1) + 1)
    return text[:tokens * CHARS_PER_TOKEN]


class FixedCollector(BaseCollector):
    """Always returns the same kind of fragment with a fixed score"""

    def __init__(
        self,
        name: str,
        relevance: float,
        tokens: int = 10,
        content: Optional[str] = None,
        fragment_type: FragmentType = FragmentType.CODE_IMPLEMENTATION,
        aspects: Iterable[str] = (),
        min_scope: Scope = Scope.MINIMAL,
        task_kinds: Optional[Iterable[TaskKind]] = None,
        priority: int = 50,
        delay: float = 0.0,
    ):
        super().__init__(name=name, description=f"Fixed collector {name}", priority=priority)
        self.relevance = relevance
        self.content = content if content is not None else sized_content(name, tokens)
        self.fragment_type = fragment_type
        self.aspects = tuple(aspects)
        self.min_scope = min_scope
        self.task_kinds = frozenset(task_kinds) if task_kinds is not None else None
        self.delay = delay
        self.calls: List[ContextRequest] = []

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.build_fragment(self.fragment_type, self.content, self.relevance, aspects=self.aspects)


class TrialVaryingCollector(FixedCollector):
    """Score drifts slightly with the request's trial parameter"""

    def __init__(self, name: str, relevance: float, step: float = 0.01, **kwargs):
        super().__init__(name, relevance, **kwargs)
        self.step = step

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        trial = request.get_parameter("trial", 0)
        score = min(self.relevance + self.step * (trial % 5), 1.0)
        return self.build_fragment(self.fragment_type, self.content, score, aspects=self.aspects)


class EmptyCollector(FixedCollector):
    """Applicable but never has anything to offer"""

    def __init__(self, name: str = "empty", **kwargs):
        super().__init__(name, 0.0, **kwargs)

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        self.calls.append(request)
        return None


class FailingCollector(FixedCollector):
    """Raises on every call"""

    def __init__(self, name: str = "failing", **kwargs):
        super().__init__(name, 0.0, **kwargs)

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        self.calls.append(request)
        raise RuntimeError(f"{self.name} exploded")


class SlowCollector(FixedCollector):
    """Sleeps far longer than any test timeout"""

    def __init__(self, name: str = "slow", relevance: float = 0.9, delay: float = 5.0, **kwargs):
        super().__init__(name, relevance, delay=delay, **kwargs)


class WrongTypeCollector(FixedCollector):
    """Returns something that is not a fragment"""

    def __init__(self, name: str = "wrong_type", **kwargs):
        super().__init__(name, 0.0, **kwargs)

    async def collect(self, request: ContextRequest):
        return "not a fragment"


class BrokenPredicateCollector(FixedCollector):
    """Applicability check raises"""

    def __init__(self, name: str = "broken_predicate", **kwargs):
        super().__init__(name, 0.9, **kwargs)

    def is_applicable(self, request: ContextRequest) -> bool:
        raise ValueError("cannot decide")


class CancellingCollector(FixedCollector):
    """Sets a cancellation event while it runs"""

    def __init__(self, cancel_event: asyncio.Event, name: str = "cancelling", **kwargs):
        super().__init__(name, 0.9, **kwargs)
        self.cancel_event = cancel_event

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        self.cancel_event.set()
        return await super().collect(request)


class ConcurrencyProbe:
    """Tracks how many probed collectors run at the same time"""

    def __init__(self):
        self.active = 0
        self.peak = 0


class ProbedCollector(FixedCollector):
    def __init__(self, name: str, probe: ConcurrencyProbe, delay: float = 0.05, **kwargs):
        super().__init__(name, 0.5, delay=delay, **kwargs)
        self.probe = probe

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        self.probe.active += 1
        self.probe.peak = max(self.probe.peak, self.probe.active)
        try:
            return await super().collect(request)
        finally:
            self.probe.active -= 1
