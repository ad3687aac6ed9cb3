from typing import Any, Dict, FrozenSet, Optional, Tuple, Union
from enum import Enum, IntEnum
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictBytes,
    StrictFloat,
    StrictInt,
    StrictStr,
)


class TaskKind(str, Enum):
    """Kinds of tasks an agent asks context for"""
    # Code generation
    CODE_GENERATION = "code_generation"
    CODE_COMPLETION = "code_completion"
    CODE_REFACTORING = "code_refactoring"

    # Analysis
    CODE_REVIEW = "code_review"
    BUG_DETECTION = "bug_detection"
    PERFORMANCE_ANALYSIS = "performance_analysis"
    SECURITY_ANALYSIS = "security_analysis"

    # Documentation
    DOCUMENTATION = "documentation"
    EXPLANATION = "explanation"

    # Testing
    TEST_GENERATION = "test_generation"
    TEST_DEBUGGING = "test_debugging"

    # Debugging
    BUG_FIXING = "bug_fixing"
    ERROR_DIAGNOSIS = "error_diagnosis"

    # Architecture
    DESIGN = "design"
    ARCHITECTURE_REVIEW = "architecture_review"

    # General
    GENERAL = "general"
    QUESTION_ANSWERING = "question_answering"

    @property
    def is_code_task(self) -> bool:
        return self.name.startswith("CODE_")


class Scope(IntEnum):
    """Breadth of a context request, ordered from narrowest to widest"""
    MINIMAL = 0   # current file or method
    LOCAL = 1     # current file and direct dependencies
    MODULE = 2    # current module or package
    PROJECT = 3   # entire project
    EXTENDED = 4  # project plus external resources
    GLOBAL = 5    # everything available

    @property
    def rank(self) -> int:
        return int(self)

    def broader(self) -> Optional["Scope"]:
        """Next wider scope, or None when already at the widest"""
        if self is Scope.GLOBAL:
            return None
        return Scope(self + 1)


class FragmentType(str, Enum):
    """Tags for the kind of content a fragment carries"""
    # Code
    CODE_STRUCTURE = "code_structure"
    CODE_IMPLEMENTATION = "code_implementation"
    CODE_DEPENDENCIES = "code_dependencies"
    CODE_COMMENTS = "code_comments"

    # Project
    PROJECT_STRUCTURE = "project_structure"
    PROJECT_CONFIGURATION = "project_configuration"
    PROJECT_DOCUMENTATION = "project_documentation"

    # Execution
    RUNTIME_STATE = "runtime_state"
    RUNTIME_LOGS = "runtime_logs"
    RUNTIME_ERRORS = "runtime_errors"

    # Version control
    VCS_HISTORY = "vcs_history"
    VCS_DIFF = "vcs_diff"
    VCS_BRANCHES = "vcs_branches"

    # Environment
    ENVIRONMENT_VARIABLES = "environment_variables"
    ENVIRONMENT_SYSTEM = "environment_system"

    # Task
    TASK_DESCRIPTION = "task_description"
    TASK_HISTORY = "task_history"
    TASK_CONSTRAINTS = "task_constraints"

    # Domain knowledge
    DOMAIN_PATTERNS = "domain_patterns"
    DOMAIN_BEST_PRACTICES = "domain_best_practices"
    DOMAIN_EXAMPLES = "domain_examples"

    # External resources
    EXTERNAL_API = "external_api"
    EXTERNAL_LIBRARY = "external_library"
    EXTERNAL_WEB = "external_web"


# Values a request parameter may hold: text, numbers, flags or raw blobs
ParamValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, StrictBytes]


class ContextRequest(BaseModel):
    """A single ask for context. Never mutated once built."""
    model_config = ConfigDict(frozen=True)

    task_kind: TaskKind = Field(default=TaskKind.GENERAL, description="Kind of task being performed")
    scope: Scope = Field(default=Scope.LOCAL, description="Breadth of the request")
    parameters: Dict[str, ParamValue] = Field(
        default_factory=dict,
        description="Free-form named parameters read by collectors (e.g. file_path, error_log)"
    )
    token_budget: int = Field(default=10000, gt=0, description="Maximum tokens of assembled context")
    task_description: str = Field(default="", description="Free-text description of the task")
    focus_areas: FrozenSet[str] = Field(default_factory=frozenset, description="Aspects the caller cares about most")
    excluded_types: FrozenSet[FragmentType] = Field(
        default_factory=frozenset,
        description="Fragment types that must never be included"
    )
    relaxed: bool = Field(
        default=False,
        description="Use the softer applicability check; set by refinement, not by callers"
    )
    request_id: str = Field(default_factory=lambda: uuid4().hex[:12])

    def get_parameter(self, key: str, default: Any = None) -> Any:
        """Get a named parameter"""
        return self.parameters.get(key, default)

    def get_text_parameter(self, key: str) -> Optional[str]:
        """Get a parameter as text, decoding blobs and ignoring non-text values"""

        value = self.parameters.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        if isinstance(value, str):
            return value
        return None

    @property
    def breadth(self) -> Tuple[int, bool]:
        """Comparable measure of how broad the request is"""
        return (self.scope.rank, self.relaxed)

    def widened(self) -> Optional["ContextRequest"]:
        """Return a strictly broader copy of this request, or None if it cannot widen"""

        broader_scope = self.scope.broader()
        if broader_scope is not None:
            return self.model_copy(update={"scope": broader_scope})
        if not self.relaxed:
            return self.model_copy(update={"relaxed": True})
        return None
