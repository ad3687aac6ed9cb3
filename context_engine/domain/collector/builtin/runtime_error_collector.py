from typing import List, Optional
import re

from context_engine.domain.collector.base_collector import BaseCollector, CollectorKind
from context_engine.domain.models import ContextFragment, ContextRequest, FragmentType, Scope, TaskKind

_ERROR_NAME = re.compile(r"\b([A-Z]\w*(?:Error|Exception))\b")
_FRAME_LINE = re.compile(r'^\s*(?:File "[^"]+", line \d+|at [\w.$<>]+\(.*\))')


class RuntimeErrorCollector(BaseCollector):
    """Collects and structures runtime errors and stack traces.

    Reads:
        error_log: raw log text (str or bytes). Required.
    """

    min_scope = Scope.MINIMAL
    task_kinds = frozenset({TaskKind.BUG_FIXING, TaskKind.ERROR_DIAGNOSIS, TaskKind.TEST_DEBUGGING})

    def __init__(self, max_frames: int = 20):
        super().__init__(
            name="RuntimeErrorCollector",
            description="Collects and parses runtime errors and stack traces",
            kind=CollectorKind.DYNAMIC,
            priority=95,
        )
        self.max_frames = max_frames

    async def collect(self, request: ContextRequest) -> Optional[ContextFragment]:
        error_log = request.get_text_parameter("error_log")
        if not error_log:
            return None

        error_names = _ERROR_NAME.findall(error_log)
        frames = [line.strip() for line in error_log.splitlines() if _FRAME_LINE.match(line)]

        return self.build_fragment(
            FragmentType.RUNTIME_ERRORS,
            self._format(error_log, error_names, frames),
            relevance_score=0.95,
            aspects=("errors", "exceptions", "stack_trace"),
            metadata={
                "error_count": len(error_names),
                "exception_types": sorted(set(error_names)),
                "frame_count": len(frames),
            },
        )

    def _format(self, error_log: str, error_names: List[str], frames: List[str]) -> str:
        lines = ["Parsed errors:"]
        for name in sorted(set(error_names)):
            lines.append(f"- {name} x{error_names.count(name)}")

        if frames:
            lines.append("Innermost frames:")
            lines.extend(frames[-self.max_frames:])

        lines.append("Raw log:")
        lines.append(error_log.strip())
        return "\n".join(lines)
