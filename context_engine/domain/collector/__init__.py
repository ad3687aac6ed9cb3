from .base_collector import BaseCollector, CollectorKind, CollectorMetadata
from .collector_executor import CollectorExecutor, CollectorOutcome, CollectorStatus
from .collector_registry import CollectorRegistration, CollectorRegistry, get_collector_registry

__all__ = [
    "BaseCollector",
    "CollectorExecutor",
    "CollectorKind",
    "CollectorMetadata",
    "CollectorOutcome",
    "CollectorRegistration",
    "CollectorRegistry",
    "CollectorStatus",
    "get_collector_registry",
]
