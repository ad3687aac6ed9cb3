from typing import Optional
import re

from context_engine.domain.collector.base_collector import BaseCollector, CollectorKind
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope

_IMPORT_LINE = re.compile(
    r"^\s*(?:import\s+[\w.*{}, ]+|from\s+[\w.]+\s+import\s+.+|#include\s+[<\"].+[>\"]|using\s+[\w.]+;"
    r"|(?:const|let|var)\s+\w+\s*=\s*require\(.+\))"
)


class DependencyCollector(BaseCollector):
    """Lists the import statements of a file.

    Reads:
        file_path: path of the file being worked on. Required.
        source_text: the file's contents. Optional.
    """

    min_scope = Scope.LOCAL

    def __init__(self):
        super().__init__(
            name="DependencyCollector",
            description="Analyzes code dependencies and imports",
            kind=CollectorKind.STATIC,
            priority=70,
        )

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        file_path = request.get_text_parameter("file_path")
        if not file_path:
            return None

        source = request.get_text_parameter("source_text") or ""
        imports = [line.strip() for line in source.splitlines() if _IMPORT_LINE.match(line)]

        content = f"Dependencies for: {file_path}"
        if imports:
            content += "\n" + "\n".join(imports)

        return self.build_fragment(
            FragmentType.CODE_DEPENDENCIES,
            content,
            relevance_score=0.7,
            aspects=("dependencies", "imports"),
            metadata={"file": file_path, "import_count": len(imports)},
        )
