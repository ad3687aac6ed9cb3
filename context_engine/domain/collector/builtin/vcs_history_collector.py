from typing import Optional

from context_engine.domain.collector.base_collector import BaseCollector, CollectorKind
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope, TaskKind


class VCSHistoryCollector(BaseCollector):
    """Summarizes recent version control history for a file.

    Reads:
        file_path: path of the file being worked on. Required.
        vcs_log: output of a log command, newest first. Optional.
    """

    min_scope = Scope.MODULE
    task_kinds = frozenset({TaskKind.CODE_REFACTORING, TaskKind.CODE_REVIEW, TaskKind.BUG_FIXING})

    def __init__(self, max_entries: int = 20):
        super().__init__(
            name="VCSHistoryCollector",
            description="Collects Git history and blame information",
            kind=CollectorKind.EXTERNAL,
            priority=50,
        )
        self.max_entries = max_entries

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        file_path = request.get_text_parameter("file_path")
        if not file_path:
            return None

        log_text = request.get_text_parameter("vcs_log") or ""
        entries = [line.strip() for line in log_text.splitlines() if line.strip()]

        content = f"History for: {file_path}"
        if entries:
            content += "\n" + "\n".join(entries[:self.max_entries])

        return self.build_fragment(
            FragmentType.VCS_HISTORY,
            content,
            relevance_score=0.5,
            aspects=("history", "git", "blame"),
            metadata={"file": file_path, "entry_count": min(len(entries), self.max_entries)},
        )
