from .context_request import ContextRequest, FragmentType, ParamValue, Scope, TaskKind
from .context_fragment import ContextFragment, estimate_tokens, normalize_content
from .assembled_context import AssembledContext, ContextMetrics, RefinementStep

__all__ = [
    "AssembledContext",
    "ContextFragment",
    "ContextMetrics",
    "ContextRequest",
    "FragmentType",
    "ParamValue",
    "RefinementStep",
    "Scope",
    "TaskKind",
    "estimate_tokens",
    "normalize_content",
]
