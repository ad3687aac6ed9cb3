from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Iterable, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict

from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope, TaskKind


class CollectorKind(str, Enum):
    """How a collector obtains its information"""
    STATIC = "static"        # analyzes static code
    DYNAMIC = "dynamic"      # analyzes runtime behavior
    EXTERNAL = "external"    # fetches external resources
    HYBRID = "hybrid"        # combination of approaches


class CollectorMetadata(BaseModel):
    """Descriptive information about a collector"""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    version: str = "1.0.0"
    kind: CollectorKind = CollectorKind.STATIC


class BaseCollector(ABC):
    """Base class for context collectors.

    A collector inspects a request and may produce one fragment for it.
    Collectors must not share mutable state with one another; anything one
    collector needs from the outside world comes in through the request
    parameters.

    Subclasses declare ``min_scope`` and, optionally, the ``task_kinds`` they
    serve (None means every kind).
    """

    min_scope: Scope = Scope.MINIMAL
    task_kinds: Optional[FrozenSet[TaskKind]] = None

    def __init__(
        self,
        name: str,
        description: str,
        version: str = "1.0.0",
        kind: CollectorKind = CollectorKind.STATIC,
        priority: int = 50,
    ):
        self.name = name
        self.description = description
        self.version = version
        self.kind = kind
        self.priority = priority

    @property
    def metadata(self) -> CollectorMetadata:
        return CollectorMetadata(
            name=self.name,
            description=self.description,
            version=self.version,
            kind=self.kind,
        )

    def scope_permits(self, request: ContextRequest) -> bool:
        """Whether the request is at least as broad as this collector requires"""
        return self.min_scope <= request.scope

    def serves_task(self, task_kind: TaskKind) -> bool:
        return self.task_kinds is None or task_kind in self.task_kinds

    def is_applicable(self, request: ContextRequest) -> bool:
        """Cheap, side-effect free check run once per request"""
        return self.scope_permits(request) and self.serves_task(request.task_kind)

    def is_loosely_applicable(self, request: ContextRequest) -> bool:
        """Softer check used once refinement relaxes a request"""
        return self.scope_permits(request)

    @abstractmethod
    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        """Produce a fragment for the request, or None when there is nothing to offer"""
        pass

    def build_fragment(
        self,
        fragment_type: FragmentType,
        content: str,
        relevance_score: float,
        aspects: Iterable[str] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ContextFragment:
        """Create a fragment attributed to this collector"""

        return ContextFragment(
            source=self.name,
            fragment_type=fragment_type,
            content=content,
            aspects=frozenset(aspects),
            relevance_score=relevance_score,
            metadata=metadata or {},
        )

    def get_info(self) -> Dict[str, Any]:
        """Get collector information"""
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "kind": self.kind.value,
            "priority": self.priority,
            "min_scope": self.min_scope.name,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority})"
