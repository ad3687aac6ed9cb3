"""Tests for single-round context assembly."""

import asyncio

import pytest

from context_engine.domain.context.context_engine import ContextEngine
from context_engine.domain.errors import AssemblyCancelledError
from context_engine.domain.models import AssembledContext, ContextRequest, FragmentType, Scope, TaskKind
from context_engine.infrastructure.config.settings import BudgetPolicy, EngineSettings
from context_engine.infrastructure.observability.events import EngineEventType
from tests.helpers.collectors import (
    BrokenPredicateCollector,
    CancellingCollector,
    EmptyCollector,
    FailingCollector,
    FixedCollector,
    SlowCollector,
)


def summary(context):
    return [(f.source, f.content, f.relevance_score) for f in context.fragments]


class TestCollectorSelection:
    def test_scope_filters_collectors(self, engine, registry):
        registry.register(FixedCollector("local", 0.5, min_scope=Scope.LOCAL))
        registry.register(FixedCollector("project", 0.5, min_scope=Scope.PROJECT))

        selected = engine.select_collectors(ContextRequest(scope=Scope.MODULE))

        assert [r.name for r in selected] == ["local"]

    def test_scope_applies_even_when_collector_ignores_it(self, engine, registry):
        collector = FixedCollector("greedy", 0.5, min_scope=Scope.GLOBAL)
        collector.is_applicable = lambda request: True
        registry.register(collector)

        assert engine.select_collectors(ContextRequest(scope=Scope.MINIMAL)) == []

    def test_task_kind_filters_collectors(self, engine, registry):
        registry.register(FixedCollector("bugs", 0.5, task_kinds=[TaskKind.BUG_FIXING]))
        registry.register(FixedCollector("any", 0.5))

        selected = engine.select_collectors(ContextRequest(task_kind=TaskKind.DOCUMENTATION))

        assert [r.name for r in selected] == ["any"]

    def test_priority_then_registration_order(self, engine, registry):
        registry.register(FixedCollector("low", 0.5, priority=10))
        registry.register(FixedCollector("high_first", 0.5, priority=90))
        registry.register(FixedCollector("high_second", 0.5, priority=90))

        selected = engine.select_collectors(ContextRequest())

        assert [r.name for r in selected] == ["high_first", "high_second", "low"]

    def test_raising_predicate_is_not_applicable(self, engine, registry):
        registry.register(BrokenPredicateCollector())
        registry.register(FixedCollector("fine", 0.5))

        assert [r.name for r in engine.select_collectors(ContextRequest())] == ["fine"]


class TestAssemble:
    @pytest.mark.asyncio
    async def test_no_applicable_collectors_gives_empty_context(self, engine, registry, recorder):
        registry.register(FixedCollector("project", 0.9, min_scope=Scope.PROJECT))

        context = await engine.assemble(ContextRequest(scope=Scope.MINIMAL))

        assert context.is_empty
        assert context.aggregate_relevance == 0.0
        assert context.contributing_collectors == frozenset()
        rounds = recorder.of_type(EngineEventType.ROUND_COMPLETED)
        assert rounds[0].applicable_collectors == 0

    @pytest.mark.asyncio
    async def test_fragments_ordered_by_relevance(self, engine, registry):
        registry.register(FixedCollector("mid", 0.5, priority=90))
        registry.register(FixedCollector("top", 0.9, priority=10))
        registry.register(FixedCollector("low", 0.2, priority=50))

        context = await engine.assemble(ContextRequest())

        assert [f.source for f in context.fragments] == ["top", "mid", "low"]
        assert context.contributing_collectors == frozenset({"top", "mid", "low"})
        assert context.total_tokens == 30

    @pytest.mark.asyncio
    async def test_failing_and_slow_collectors_are_isolated(self, engine, registry, engine_metrics):
        registry.register(FixedCollector("good", 0.8))
        registry.register(FailingCollector())
        registry.register(SlowCollector())
        registry.register(EmptyCollector())

        context = await engine.assemble(ContextRequest())

        assert [f.source for f in context.fragments] == ["good"]
        assert context.contributing_collectors == frozenset({"good"})
        assert context.silent_collectors == frozenset({"failing", "slow", "empty"})
        assert context.aggregate_relevance == pytest.approx(0.8)
        assert engine_metrics.get_counter("collector.failures") == 1
        assert engine_metrics.get_counter("collector.timeouts") == 1

    @pytest.mark.asyncio
    async def test_duplicates_keep_higher_relevance(self, engine, registry):
        registry.register(FixedCollector("weak", 0.4, content="def parse(): ..."))
        registry.register(FixedCollector("strong", 0.9, content="def parse():   ..."))

        context = await engine.assemble(ContextRequest())

        assert len(context.fragments) == 1
        assert context.fragments[0].relevance_score == 0.9
        assert context.contributing_collectors == frozenset({"strong"})
        assert context.silent_collectors == frozenset({"weak"})

    @pytest.mark.asyncio
    async def test_budget_is_respected(self, engine, registry):
        for i, score in enumerate([0.9, 0.8, 0.7, 0.6, 0.5]):
            registry.register(FixedCollector(f"c{i}", score, tokens=40))

        context = await engine.assemble(ContextRequest(token_budget=100))

        assert context.total_tokens <= 100
        assert [f.source for f in context.fragments] == ["c0", "c1"]

    @pytest.mark.asyncio
    async def test_truncate_policy(self, registry, event_bus):
        settings = EngineSettings(budget_policy=BudgetPolicy.TRUNCATE, collector_timeout_seconds=0.2)
        engine = ContextEngine(registry=registry, settings=settings, event_bus=event_bus)
        registry.register(FixedCollector("first", 0.9, tokens=60))
        registry.register(FixedCollector("second", 0.8, tokens=60))

        context = await engine.assemble(ContextRequest(token_budget=100))

        assert context.total_tokens == 100
        assert context.fragments[1].metadata["truncated"] is True
        assert context.contributing_collectors == frozenset({"first", "second"})

    @pytest.mark.asyncio
    async def test_excluded_types_are_dropped(self, engine, registry):
        registry.register(FixedCollector("history", 0.9, fragment_type=FragmentType.VCS_HISTORY))
        registry.register(FixedCollector("code", 0.5))

        context = await engine.assemble(
            ContextRequest(excluded_types=frozenset({FragmentType.VCS_HISTORY}))
        )

        assert [f.source for f in context.fragments] == ["code"]
        assert "history" in context.silent_collectors

    @pytest.mark.asyncio
    async def test_filter_rules_silence_rejected_collectors(self, registry, settings, event_bus):
        engine = ContextEngine(
            registry=registry,
            settings=settings,
            event_bus=event_bus,
            filter_rules=[lambda fragment, request: fragment.source != "noisy"],
        )
        registry.register(FixedCollector("noisy", 0.9))
        registry.register(FixedCollector("quiet", 0.6))

        context = await engine.assemble(ContextRequest())

        assert [f.source for f in context.fragments] == ["quiet"]
        assert context.silent_collectors == frozenset({"noisy"})

    @pytest.mark.asyncio
    async def test_repeated_assembly_is_stable(self, engine, registry):
        registry.register(FixedCollector("a", 0.7))
        registry.register(FixedCollector("b", 0.7))
        registry.register(FixedCollector("c", 0.3, tokens=25))
        request = ContextRequest(token_budget=45)

        first = await engine.assemble(request)
        second = await engine.assemble(request)

        assert summary(first) == summary(second)
        assert first.aggregate_relevance == second.aggregate_relevance

    @pytest.mark.asyncio
    async def test_analyze_reports_coverage(self, registry, event_bus):
        settings = EngineSettings(required_aspects={"errors", "structure"}, collector_timeout_seconds=0.2)
        engine = ContextEngine(registry=registry, settings=settings, event_bus=event_bus)
        registry.register(FixedCollector("errors", 0.8, aspects=["errors"]))

        metrics = engine.analyze(await engine.assemble(ContextRequest()))

        assert metrics.coverage == pytest.approx(0.5)
        assert metrics.fragment_count == 1
        assert metrics.relevance_score == pytest.approx(0.8)
        assert "coverage=0.50" in str(metrics)

    @pytest.mark.asyncio
    async def test_focus_areas_count_toward_coverage(self, engine, registry):
        registry.register(FixedCollector("errors", 0.8, aspects=["errors"]))

        context = await engine.assemble(ContextRequest(focus_areas=frozenset({"errors", "history"})))

        assert engine.analyze(context).coverage == pytest.approx(0.5)
        assert engine.analyze(AssembledContext.empty(ContextRequest())).coverage == 1.0

    @pytest.mark.asyncio
    async def test_round_event(self, engine, registry, recorder):
        registry.register(FixedCollector("a", 0.6))

        context = await engine.assemble(ContextRequest())

        rounds = recorder.of_type(EngineEventType.ROUND_COMPLETED)
        assert len(rounds) == 1
        assert rounds[0].request_id == context.request.request_id
        assert rounds[0].fragment_count == 1
        assert rounds[0].applicable_collectors == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, engine, registry):
        collector = FixedCollector("a", 0.5)
        registry.register(collector)
        cancel_event = asyncio.Event()
        cancel_event.set()

        with pytest.raises(AssemblyCancelledError):
            await engine.assemble(ContextRequest(), cancel_event=cancel_event)
        assert collector.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_during_collection_discards_results(self, engine, registry, recorder):
        cancel_event = asyncio.Event()
        registry.register(CancellingCollector(cancel_event))

        with pytest.raises(AssemblyCancelledError) as exc_info:
            await engine.assemble(ContextRequest(request_id="abc"), cancel_event=cancel_event)

        assert exc_info.value.request_id == "abc"
        assert recorder.of_type(EngineEventType.ROUND_COMPLETED) == []

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, engine, registry):
        registry.register(SlowCollector(delay=0.15))

        task = asyncio.create_task(engine.assemble(ContextRequest()))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
