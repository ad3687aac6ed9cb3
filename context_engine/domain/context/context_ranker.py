from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import re

import structlog

from context_engine.domain.errors import BudgetExceededError
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType
from context_engine.infrastructure.config.settings import BudgetPolicy

logger = structlog.get_logger(__name__)

# Extra inclusion predicate; returning False or raising drops the fragment
FilterRule = Callable[[ContextFragment, ContextRequest], bool]


class ContextRanker:
    """Ranks, deduplicates and budgets context fragments"""

    def __init__(
        self,
        budget_policy: BudgetPolicy = BudgetPolicy.SKIP_THEN_STOP,
        min_relevance: float = 0.0,
        max_fragments: int = 1000,
        max_age_seconds: Optional[float] = None,
        filter_rules: Sequence[FilterRule] = (),
    ):
        self.budget_policy = budget_policy
        self.min_relevance = min_relevance
        self.max_fragments = max_fragments
        self.max_age_seconds = max_age_seconds
        self.filter_rules = tuple(filter_rules)

    def rank(self, fragments: Sequence[ContextFragment], request: ContextRequest) -> List[ContextFragment]:
        """Full pipeline: dedup, filter, sort and fit into the request's budget"""

        unique = self.deduplicate(fragments)
        filtered = self.filter_fragments(unique, request)
        ordered = self.sort_by_relevance(filtered)

        if len(ordered) > self.max_fragments:
            logger.warning("Too many fragments, keeping the most relevant",
                          request_id=request.request_id,
                          fragment_count=len(ordered),
                          max_fragments=self.max_fragments)
            ordered = ordered[:self.max_fragments]

        selected = self.select_within_budget(ordered, request.token_budget)
        used = self.total_tokens(selected)
        if used > request.token_budget:
            raise BudgetExceededError(
                f"Selected {used} tokens for request {request.request_id}, budget is {request.token_budget}"
            )

        logger.debug("Ranked fragments",
                    request_id=request.request_id,
                    received=len(fragments),
                    unique=len(unique),
                    selected=len(selected),
                    budget=request.token_budget)
        return selected

    def deduplicate(self, fragments: Iterable[ContextFragment]) -> List[ContextFragment]:
        """Keep one fragment per (type, normalized content), preferring the higher score"""

        best: Dict[Tuple[FragmentType, str], ContextFragment] = {}
        for fragment in fragments:
            key = fragment.dedup_key
            current = best.get(key)
            if current is None or fragment.relevance_score > current.relevance_score:
                best[key] = fragment

        # Dict preserves first-seen key order, so survivors keep collector order
        return list(best.values())

    def filter_fragments(self, fragments: Iterable[ContextFragment], request: ContextRequest) -> List[ContextFragment]:
        """Drop excluded types, empty content, low scores, stale fragments and rule rejections"""

        now = datetime.now(timezone.utc)
        kept = []
        for fragment in fragments:
            if fragment.fragment_type in request.excluded_types:
                continue
            if not fragment.content.strip():
                continue
            if fragment.relevance_score < self.min_relevance:
                continue
            if self.is_stale(fragment, now):
                logger.debug("Dropped stale fragment",
                            request_id=request.request_id,
                            source=fragment.source,
                            created_at=fragment.created_at.isoformat())
                continue
            if not self._passes_rules(fragment, request):
                continue
            kept.append(fragment)
        return kept

    def is_stale(self, fragment: ContextFragment, now: Optional[datetime] = None) -> bool:
        """True when the fragment is older than max_age_seconds"""

        if self.max_age_seconds is None:
            return False

        created_at = fragment.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        age = (now or datetime.now(timezone.utc)) - created_at
        return age.total_seconds() > self.max_age_seconds

    def _passes_rules(self, fragment: ContextFragment, request: ContextRequest) -> bool:
        for rule in self.filter_rules:
            try:
                if not rule(fragment, request):
                    return False
            except Exception as e:
                logger.warning("Filter rule failed, dropping fragment",
                              request_id=request.request_id,
                              source=fragment.source,
                              rule=getattr(rule, "__name__", type(rule).__name__),
                              error=str(e))
                return False
        return True

    def sort_by_relevance(self, fragments: Iterable[ContextFragment]) -> List[ContextFragment]:
        """Most relevant first; ties keep their incoming order"""
        return sorted(fragments, key=lambda f: f.relevance_score, reverse=True)

    def select_within_budget(self, fragments: Sequence[ContextFragment], token_budget: int) -> List[ContextFragment]:
        """Greedily accept fragments while the total stays within token_budget"""

        selected: List[ContextFragment] = []
        remaining = token_budget

        for fragment in fragments:
            if remaining <= 0:
                break

            size = fragment.estimated_tokens
            if size <= remaining:
                selected.append(fragment)
                remaining -= size
                continue

            if self.budget_policy == BudgetPolicy.TRUNCATE:
                selected.append(fragment.truncated(remaining))
                break

            # Skip: a smaller fragment further down may still fit

        return selected

    @staticmethod
    def total_tokens(fragments: Iterable[ContextFragment]) -> int:
        return sum(f.estimated_tokens for f in fragments)

    @staticmethod
    def aggregate_relevance(fragments: Sequence[ContextFragment]) -> float:
        """Mean relevance weighted by fragment size"""

        total_weight = sum(f.estimated_tokens for f in fragments)
        if total_weight == 0:
            return 0.0

        weighted = sum(f.relevance_score * f.estimated_tokens for f in fragments)
        return min(max(weighted / total_weight, 0.0), 1.0)

    def calculate_relevance(self, query: str, content: str) -> float:
        """Calculate relevance score between query and content"""

        query_lower = query.lower()
        content_lower = content.lower()

        # Simple keyword overlap scoring
        query_words = set(re.findall(r'\w+', query_lower))
        content_words = set(re.findall(r'\w+', content_lower))

        if not query_words:
            return 0.0

        overlap = len(query_words.intersection(content_words))
        score = overlap / len(query_words)

        # Boost score if query appears as substring
        if query_lower in content_lower:
            score += 0.3

        return min(score, 1.0)  # Cap at 1.0
