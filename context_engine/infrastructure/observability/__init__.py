from .event_bus import EventBus, RecordingHandler
from .events import (
    BaseEngineEvent,
    CollectorFailedEvent,
    CollectorFinishedEvent,
    CollectorPromotedEvent,
    CollectorStartedEvent,
    EngineEventType,
    ExperimentTrialEvent,
    RefinementTriggeredEvent,
    RoundCompletedEvent,
)
from .logging import EngineLogger, MetricsCollector, engine_logger, metrics, setup_logging

__all__ = [
    "BaseEngineEvent",
    "CollectorFailedEvent",
    "CollectorFinishedEvent",
    "CollectorPromotedEvent",
    "CollectorStartedEvent",
    "EngineEventType",
    "EngineLogger",
    "EventBus",
    "ExperimentTrialEvent",
    "MetricsCollector",
    "RecordingHandler",
    "RefinementTriggeredEvent",
    "RoundCompletedEvent",
    "engine_logger",
    "metrics",
    "setup_logging",
]
