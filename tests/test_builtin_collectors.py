"""Tests for the built-in collectors."""

import pytest

from context_engine.domain.collector.builtin import (
    CodeStructureCollector,
    DependencyCollector,
    DocumentationCollector,
    RuntimeErrorCollector,
    SemanticSearchCollector,
    VCSHistoryCollector,
    builtin_collectors,
    register_builtin_collectors,
)
from context_engine.domain.collector.collector_registry import CollectorRegistry
from context_engine.domain.context.context_engine import ContextEngine
from context_engine.domain.models import ContextRequest, FragmentType, Scope, TaskKind

PYTHON_SOURCE = """\
import os
from typing import List

class Parser:
    def parse(self, text):
        return text.split()

async def load(path):
    return open(path).read()
"""

TRACEBACK = """\
Traceback (most recent call last):
  File "app/main.py", line 10, in <module>
    run()
  File "app/runner.py", line 42, in run
    raise ValueError("bad input")
ValueError: bad input
"""


class TestRuntimeErrorCollector:
    @pytest.mark.asyncio
    async def test_parses_errors_and_frames(self):
        request = ContextRequest(task_kind=TaskKind.BUG_FIXING, parameters={"error_log": TRACEBACK})

        fragment = await RuntimeErrorCollector().collect(request)

        assert fragment.fragment_type == FragmentType.RUNTIME_ERRORS
        assert fragment.relevance_score == 0.95
        assert fragment.metadata["exception_types"] == ["ValueError"]
        assert fragment.metadata["frame_count"] == 2
        assert 'File "app/runner.py", line 42, in run' in fragment.content
        assert "errors" in fragment.aspects

    @pytest.mark.asyncio
    async def test_accepts_bytes_and_requires_log(self):
        collector = RuntimeErrorCollector()

        fragment = await collector.collect(ContextRequest(parameters={"error_log": b"KeyError: 'x'"}))
        assert fragment.metadata["exception_types"] == ["KeyError"]

        assert await collector.collect(ContextRequest()) is None

    def test_applicability(self):
        collector = RuntimeErrorCollector()

        assert collector.is_applicable(ContextRequest(task_kind=TaskKind.ERROR_DIAGNOSIS, scope=Scope.MINIMAL))
        assert not collector.is_applicable(ContextRequest(task_kind=TaskKind.DOCUMENTATION))


class TestCodeStructureCollector:
    @pytest.mark.asyncio
    async def test_outlines_declarations(self):
        request = ContextRequest(
            task_kind=TaskKind.CODE_REVIEW,
            parameters={"file_path": "parser.py", "source_text": PYTHON_SOURCE},
        )

        fragment = await CodeStructureCollector().collect(request)

        assert fragment.metadata["declaration_count"] == 3
        assert "class Parser:" in fragment.content
        assert "async def load(path):" in fragment.content
        assert "import os" not in fragment.content

    @pytest.mark.asyncio
    async def test_path_only_scores_lower(self):
        fragment = await CodeStructureCollector().collect(ContextRequest(parameters={"file_path": "a.py"}))

        assert fragment.relevance_score == 0.4
        assert fragment.content == "Code structure for: a.py"

    def test_serves_code_and_documentation_tasks(self):
        collector = CodeStructureCollector()

        assert collector.is_applicable(ContextRequest(task_kind=TaskKind.CODE_COMPLETION))
        assert collector.is_applicable(ContextRequest(task_kind=TaskKind.EXPLANATION))
        assert not collector.is_applicable(ContextRequest(task_kind=TaskKind.BUG_FIXING))
        assert not collector.is_applicable(ContextRequest(task_kind=TaskKind.CODE_REVIEW, scope=Scope.MINIMAL))


class TestDependencyCollector:
    @pytest.mark.asyncio
    async def test_lists_imports(self):
        request = ContextRequest(parameters={"file_path": "parser.py", "source_text": PYTHON_SOURCE})

        fragment = await DependencyCollector().collect(request)

        assert fragment.fragment_type == FragmentType.CODE_DEPENDENCIES
        assert fragment.metadata["import_count"] == 2
        assert "from typing import List" in fragment.content

    @pytest.mark.asyncio
    async def test_requires_file_path(self):
        assert await DependencyCollector().collect(ContextRequest(parameters={"source_text": "import os"})) is None


class TestSemanticSearchCollector:
    @pytest.mark.asyncio
    async def test_returns_best_matching_passages(self):
        corpus = "How to parse config files\n\nUnrelated notes about lunch\n\nconfig loader reads yaml"
        request = ContextRequest(
            scope=Scope.PROJECT,
            task_description="parse config",
            parameters={"project_path": "/repo", "corpus": corpus},
        )

        fragment = await SemanticSearchCollector().collect(request)

        assert fragment.relevance_score == 1.0
        assert fragment.content.startswith("How to parse config files")
        assert "lunch" not in fragment.content
        assert fragment.metadata["match_count"] == 2

    @pytest.mark.asyncio
    async def test_focus_areas_extend_the_query(self):
        request = ContextRequest(
            focus_areas=frozenset({"yaml"}),
            parameters={"project_path": "/repo", "corpus": "loader reads yaml\n\nunrelated"},
        )

        fragment = await SemanticSearchCollector().collect(request)

        assert fragment.content == "loader reads yaml"
        assert fragment.metadata["query"] == "yaml"

    @pytest.mark.asyncio
    async def test_no_match_or_missing_inputs(self):
        collector = SemanticSearchCollector()
        params = {"project_path": "/repo", "corpus": "nothing relevant"}

        assert await collector.collect(ContextRequest(task_description="parse config", parameters=params)) is None
        assert await collector.collect(ContextRequest(parameters=params)) is None

    def test_requires_project_scope(self):
        collector = SemanticSearchCollector()

        assert not collector.is_applicable(ContextRequest(scope=Scope.MODULE))
        assert collector.is_applicable(ContextRequest(scope=Scope.PROJECT))


class TestDocumentationAndHistory:
    @pytest.mark.asyncio
    async def test_documentation_clips_readme(self):
        collector = DocumentationCollector(max_chars=10)
        request = ContextRequest(parameters={"project_path": "/repo", "readme": "0123456789abcdef"})

        fragment = await collector.collect(request)

        assert fragment.content == "Documentation from: /repo\n0123456789"
        assert fragment.metadata["clipped"] is True

    @pytest.mark.asyncio
    async def test_history_keeps_most_recent_entries(self):
        collector = VCSHistoryCollector(max_entries=2)
        log = "abc123 fix parser\n\ndef456 add tests\n789aaa initial commit\n"
        request = ContextRequest(parameters={"file_path": "parser.py", "vcs_log": log})

        fragment = await collector.collect(request)

        assert fragment.content.splitlines()[1:] == ["abc123 fix parser", "def456 add tests"]
        assert fragment.metadata["entry_count"] == 2

    def test_history_requires_module_scope(self):
        collector = VCSHistoryCollector()

        assert not collector.is_applicable(ContextRequest(task_kind=TaskKind.CODE_REVIEW, scope=Scope.LOCAL))
        assert collector.is_applicable(ContextRequest(task_kind=TaskKind.CODE_REVIEW, scope=Scope.MODULE))


class TestRegistration:
    def test_register_builtin_collectors_is_idempotent(self):
        registry = CollectorRegistry()

        register_builtin_collectors(registry)
        register_builtin_collectors(registry)

        assert len(registry) == len(builtin_collectors()) == 6
        assert registry.get("RuntimeErrorCollector").priority == 95

    @pytest.mark.asyncio
    async def test_engine_with_builtins(self, settings, event_bus):
        registry = register_builtin_collectors(CollectorRegistry())
        engine = ContextEngine(registry=registry, settings=settings, event_bus=event_bus)
        request = ContextRequest(
            task_kind=TaskKind.BUG_FIXING,
            scope=Scope.MODULE,
            parameters={"error_log": TRACEBACK, "file_path": "app/runner.py", "source_text": PYTHON_SOURCE},
        )

        context = await engine.assemble(request)

        assert context.fragments[0].source == "RuntimeErrorCollector"
        assert "RuntimeErrorCollector" in context.contributing_collectors
        assert "CodeStructureCollector" not in context.contributing_collectors | context.silent_collectors
        assert "SemanticSearchCollector" not in context.silent_collectors
