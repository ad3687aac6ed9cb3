from typing import List, Optional

from context_engine.domain.collector.base_collector import BaseCollector
from context_engine.domain.collector.collector_registry import CollectorRegistry, get_collector_registry
from .code_structure_collector import CodeStructureCollector
from .dependency_collector import DependencyCollector
from .documentation_collector import DocumentationCollector
from .runtime_error_collector import RuntimeErrorCollector
from .semantic_search_collector import SemanticSearchCollector
from .vcs_history_collector import VCSHistoryCollector


def builtin_collectors() -> List[BaseCollector]:
    """Fresh instances of every built-in collector"""
    return [
        RuntimeErrorCollector(),
        CodeStructureCollector(),
        DependencyCollector(),
        SemanticSearchCollector(),
        DocumentationCollector(),
        VCSHistoryCollector(),
    ]


def register_builtin_collectors(registry: Optional[CollectorRegistry] = None) -> CollectorRegistry:
    """Register the built-in collectors that are not registered yet"""

    registry = registry if registry is not None else get_collector_registry()
    for collector in builtin_collectors():
        if collector.name not in registry:
            registry.register(collector)
    return registry


__all__ = [
    "CodeStructureCollector",
    "DependencyCollector",
    "DocumentationCollector",
    "RuntimeErrorCollector",
    "SemanticSearchCollector",
    "VCSHistoryCollector",
    "builtin_collectors",
    "register_builtin_collectors",
]
