from typing import FrozenSet, Iterable, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .context_fragment import ContextFragment
from .context_request import ContextRequest, Scope


class RefinementStep(BaseModel):
    """Diagnostics for one iteration of the refinement loop"""
    model_config = ConfigDict(frozen=True)

    iteration: int
    scope: Scope
    relaxed: bool
    aggregate_relevance: float
    fragment_count: int


class AssembledContext(BaseModel):
    """Final context handed back to the caller"""
    model_config = ConfigDict(frozen=True)

    request: ContextRequest
    fragments: Tuple[ContextFragment, ...] = Field(default=(), description="Included fragments, most relevant first")
    aggregate_relevance: float = Field(default=0.0, ge=0.0, le=1.0, description="Size-weighted mean relevance")
    total_tokens: int = Field(default=0, ge=0)
    contributing_collectors: FrozenSet[str] = Field(default_factory=frozenset)
    silent_collectors: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Collectors that were applicable but contributed nothing"
    )
    iterations: int = Field(default=1, ge=1)
    refinement_exhausted: bool = Field(
        default=False,
        description="Refinement stopped before reaching the relevance threshold"
    )
    refinement_trace: Tuple[RefinementStep, ...] = ()

    @classmethod
    def empty(cls, request: ContextRequest, silent_collectors: Iterable[str] = ()) -> "AssembledContext":
        """Context for a request nothing relevant was found for"""
        return cls(request=request, silent_collectors=frozenset(silent_collectors))

    @property
    def is_empty(self) -> bool:
        return not self.fragments

    def as_text(self, separator: str = "\n\n") -> str:
        """Join included fragment contents into a single blob"""
        return separator.join(fragment.content for fragment in self.fragments)


class ContextMetrics(BaseModel):
    """Quality metrics of an assembled context"""
    model_config = ConfigDict(frozen=True)

    total_tokens: int
    fragment_count: int
    relevance_score: float
    coverage: float

    def __str__(self) -> str:
        return (
            f"ContextMetrics(tokens={self.total_tokens}, fragments={self.fragment_count}, "
            f"relevance={self.relevance_score:.2f}, coverage={self.coverage:.2f})"
        )
