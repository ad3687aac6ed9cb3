from typing import Dict, Any, Optional, Literal
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum


class EngineEventType(str, Enum):
    """Structured events emitted by the context engine"""
    COLLECTOR_STARTED = "collector_started"
    COLLECTOR_FINISHED = "collector_finished"
    COLLECTOR_FAILED = "collector_failed"
    ROUND_COMPLETED = "round_completed"
    REFINEMENT_TRIGGERED = "refinement_triggered"
    EXPERIMENT_TRIAL_COMPLETED = "experiment_trial_completed"
    COLLECTOR_PROMOTED = "collector_promoted"


class BaseEngineEvent(BaseModel):
    """Base model for all engine events"""
    type: EngineEventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None


class CollectorStartedEvent(BaseEngineEvent):
    """A collector call is about to run"""
    type: Literal[EngineEventType.COLLECTOR_STARTED] = EngineEventType.COLLECTOR_STARTED
    collector_name: str


class CollectorFinishedEvent(BaseEngineEvent):
    """A collector call returned, with or without a fragment"""
    type: Literal[EngineEventType.COLLECTOR_FINISHED] = EngineEventType.COLLECTOR_FINISHED
    collector_name: str
    duration_ms: float
    produced_fragment: bool
    relevance: Optional[float] = None


class CollectorFailedEvent(BaseEngineEvent):
    """A collector call raised or timed out"""
    type: Literal[EngineEventType.COLLECTOR_FAILED] = EngineEventType.COLLECTOR_FAILED
    collector_name: str
    duration_ms: float
    error: str
    timed_out: bool = False


class RoundCompletedEvent(BaseEngineEvent):
    """One assembly round passed the merge barrier"""
    type: Literal[EngineEventType.ROUND_COMPLETED] = EngineEventType.ROUND_COMPLETED
    iteration: int = 1
    applicable_collectors: int
    fragment_count: int
    total_tokens: int
    aggregate_relevance: float


class RefinementTriggeredEvent(BaseEngineEvent):
    """Relevance was insufficient and the request is being widened"""
    type: Literal[EngineEventType.REFINEMENT_TRIGGERED] = EngineEventType.REFINEMENT_TRIGGERED
    iteration: int
    from_scope: str
    to_scope: str
    relaxed: bool
    aggregate_relevance: float
    threshold: float


class ExperimentTrialEvent(BaseEngineEvent):
    """One trial of an experiment was measured"""
    type: Literal[EngineEventType.EXPERIMENT_TRIAL_COMPLETED] = EngineEventType.EXPERIMENT_TRIAL_COMPLETED
    experiment_id: str
    trial_index: int
    baseline: Dict[str, float] = Field(default_factory=dict)
    variant: Dict[str, float] = Field(default_factory=dict)
    excluded: bool = False


class CollectorPromotedEvent(BaseEngineEvent):
    """A variant collector replaced its baseline in the registry"""
    type: Literal[EngineEventType.COLLECTOR_PROMOTED] = EngineEventType.COLLECTOR_PROMOTED
    experiment_id: str
    registration_name: str
    variant_name: str
    improvement: float
    metadata: Dict[str, Any] = Field(default_factory=dict)
