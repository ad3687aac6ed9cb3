import os

import pytest

from context_engine.domain.collector.collector_registry import CollectorRegistry
from context_engine.domain.context.context_engine import ContextEngine
from context_engine.infrastructure.config.settings import EngineSettings, ExperimentSettings
from context_engine.infrastructure.observability.event_bus import EventBus, RecordingHandler
from context_engine.infrastructure.observability.logging import MetricsCollector


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep CONTEXT_ENGINE_* variables from leaking into settings under test"""

    for key in [k for k in os.environ if k.startswith("CONTEXT_ENGINE_")]:
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def settings():
    return EngineSettings(
        relevance_threshold=0.7,
        max_iterations=3,
        collector_timeout_seconds=0.2,
        max_concurrency=4,
    )


@pytest.fixture
def recorder():
    return RecordingHandler()


@pytest.fixture
def event_bus(recorder):
    bus = EventBus()
    bus.register_handler(None, recorder)
    return bus


@pytest.fixture
def engine_metrics():
    return MetricsCollector()


@pytest.fixture
def engine(registry, settings, event_bus, engine_metrics):
    return ContextEngine(registry=registry, settings=settings, event_bus=event_bus, metrics=engine_metrics)


@pytest.fixture
def experiment_settings():
    return ExperimentSettings(
        seed=7,
        max_parallel_trials=4,
        collector_timeout_seconds=0.2,
        min_samples=2,
    )
