from typing import Optional

from context_engine.domain.collector.base_collector import BaseCollector, CollectorKind
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope, TaskKind


class DocumentationCollector(BaseCollector):
    """Collects existing project documentation.

    Reads:
        project_path: root of the project. Required.
        readme: README or docs text. Optional.
    """

    min_scope = Scope.MODULE
    task_kinds = frozenset({TaskKind.DOCUMENTATION, TaskKind.EXPLANATION, TaskKind.CODE_GENERATION})

    def __init__(self, max_chars: int = 8000):
        super().__init__(
            name="DocumentationCollector",
            description="Collects existing documentation, README files, and code comments",
            kind=CollectorKind.STATIC,
            priority=60,
        )
        self.max_chars = max_chars

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        project_path = request.get_text_parameter("project_path")
        if not project_path:
            return None

        readme = (request.get_text_parameter("readme") or "").strip()
        content = f"Documentation from: {project_path}"
        if readme:
            content += "\n" + readme[:self.max_chars]

        return self.build_fragment(
            FragmentType.PROJECT_DOCUMENTATION,
            content,
            relevance_score=0.6,
            aspects=("documentation", "comments", "readme"),
            metadata={"source_path": project_path, "clipped": len(readme) > self.max_chars},
        )
