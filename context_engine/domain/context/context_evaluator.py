from typing import Iterable, Optional, Set

from context_engine.domain.models import AssembledContext, ContextMetrics, ContextRequest


class QualityEvaluator:
    """Judges whether an assembled context is good enough"""

    def __init__(self, relevance_threshold: float = 0.7, required_aspects: Optional[Iterable[str]] = None):
        if not 0.0 <= relevance_threshold <= 1.0:
            raise ValueError("relevance_threshold must be within [0, 1]")

        self.relevance_threshold = relevance_threshold
        self.required_aspects: Set[str] = set(required_aspects or ())

    def is_sufficient(self, context: AssembledContext) -> bool:
        return context.aggregate_relevance >= self.relevance_threshold

    def next_request(self, request: ContextRequest) -> Optional[ContextRequest]:
        """Strictly broader request for the next iteration, or None when nothing is left to widen"""

        widened = request.widened()
        if widened is not None and widened.breadth <= request.breadth:
            # Widening must make progress or the loop could spin
            return None
        return widened

    def coverage(self, context: AssembledContext) -> float:
        """Fraction of required aspects and requested focus areas covered by the included fragments"""

        wanted = self.required_aspects | context.request.focus_areas
        if not wanted:
            return 1.0

        covered = set()
        for fragment in context.fragments:
            covered.update(fragment.aspects)
        return len(wanted & covered) / len(wanted)

    def analyze(self, context: AssembledContext) -> ContextMetrics:
        """Summarize the quality of an assembled context"""

        return ContextMetrics(
            total_tokens=context.total_tokens,
            fragment_count=len(context.fragments),
            relevance_score=context.aggregate_relevance,
            coverage=self.coverage(context),
        )
