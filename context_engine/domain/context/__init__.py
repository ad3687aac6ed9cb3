# This module handles context assembly

# +---------------------+
# |     Collectors      |   (Registered strategies, run in parallel)
# |---------------------|
# | Runtime errors      |
# | Code structure      |
# | Dependencies        |
# | Semantic search     |
# +---------------------+
#          |
#          v
# +------------------------------+
# |           Ranker             |   (Single-threaded merge barrier)
# |------------------------------|
# | Dedup (type + content hash)  |
# | Sort by relevance            |
# | Fit into token budget        |
# +------------------------------+
#          |
#          v
# +------------------------------+
# |          Evaluator           |   (Widen scope and retry while
# |------------------------------|    relevance is below threshold)
# | Aggregate relevance          |
# | Coverage of required aspects |
# +------------------------------+
#          |
#          v
#   [AssembledContext -> caller]

from .context_engine import ContextEngine
from .context_evaluator import QualityEvaluator
from .context_ranker import ContextRanker, FilterRule

__all__ = ["ContextEngine", "ContextRanker", "FilterRule", "QualityEvaluator"]
