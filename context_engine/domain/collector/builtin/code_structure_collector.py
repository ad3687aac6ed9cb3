from typing import Optional
import re

from context_engine.domain.collector.base_collector import BaseCollector, CollectorKind
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope, TaskKind

# Lines that open a class, function or interface in common languages
_DECLARATION = re.compile(
    r"^\s*(?:(?:export\s+)?(?:async\s+)?def\s+\w+|class\s+\w+|(?:export\s+)?(?:async\s+)?function\s+\w+"
    r"|(?:public|private|protected)?\s*(?:static\s+)?interface\s+\w+"
    r"|(?:public|private|protected)\s+[\w<>\[\], ]+\s+\w+\s*\()"
)


class CodeStructureCollector(BaseCollector):
    """Outlines class, function and interface declarations of a file.

    Reads:
        file_path: path of the file being worked on. Required.
        source_text: the file's contents. Optional; without it only the
            path is reported.
    """

    min_scope = Scope.LOCAL

    def __init__(self):
        super().__init__(
            name="CodeStructureCollector",
            description="Analyzes and collects code structure information",
            kind=CollectorKind.STATIC,
            priority=80,
        )

    def serves_task(self, task_kind: TaskKind) -> bool:
        return task_kind.is_code_task or task_kind in (TaskKind.DOCUMENTATION, TaskKind.EXPLANATION)

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        file_path = request.get_text_parameter("file_path")
        if not file_path:
            return None

        source = request.get_text_parameter("source_text") or ""
        declarations = [line.rstrip() for line in source.splitlines() if _DECLARATION.match(line)]

        content = f"Code structure for: {file_path}"
        if declarations:
            content += "\n" + "\n".join(declarations)

        return self.build_fragment(
            FragmentType.CODE_STRUCTURE,
            content,
            relevance_score=0.8 if declarations else 0.4,
            aspects=("structure", "api", "code"),
            metadata={"file": file_path, "declaration_count": len(declarations)},
        )
