from typing import List, Optional, Tuple

from context_engine.domain.collector.base_collector import BaseCollector, CollectorKind
from context_engine.domain.context.context_ranker import ContextRanker
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope


class SemanticSearchCollector(BaseCollector):
    """Finds corpus passages matching the task description and focus areas.

    Reads:
        project_path: root of the project being searched. Required.
        corpus: text to search, passages separated by blank lines. Required.
    """

    min_scope = Scope.PROJECT

    def __init__(self, top_k: int = 3, ranker: Optional[ContextRanker] = None):
        super().__init__(
            name="SemanticSearchCollector",
            description="Uses semantic search to find relevant code examples",
            kind=CollectorKind.HYBRID,
            priority=65,
        )
        self.top_k = top_k
        self.context_ranker = ranker or ContextRanker()

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        project_path = request.get_text_parameter("project_path")
        corpus = request.get_text_parameter("corpus")
        query = " ".join([request.task_description.strip(), *sorted(request.focus_areas)]).strip()
        if not project_path or not corpus or not query:
            return None

        matches = self._search(query, corpus)
        if not matches:
            return None

        return self.build_fragment(
            FragmentType.DOMAIN_EXAMPLES,
            "\n\n".join(passage for _, passage in matches),
            relevance_score=matches[0][0],
            aspects=("examples", "patterns", "similar_code"),
            metadata={"query": query, "search_scope": project_path, "match_count": len(matches)},
        )

    def _search(self, query: str, corpus: str) -> List[Tuple[float, str]]:
        passages = [p.strip() for p in corpus.split("\n\n") if p.strip()]
        scored = [(self.context_ranker.calculate_relevance(query, p), p) for p in passages]
        scored = [item for item in scored if item[0] > 0]
        scored.sort(key=lambda item: item[0], reverse=True)
        return scored[:self.top_k]
