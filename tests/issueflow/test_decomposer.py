"""Unit tests for AI-assisted complexity analysis and task decomposition."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.issueflow.llm.client import TextGenerationError
from src.issueflow.llm.parsing import extract_json_block
from src.issueflow.planning.decomposer import (
    COMPLEXITY_MAX_TOKENS,
    DECOMPOSITION_MAX_TOKENS,
    FALLBACK_TASKS,
    TaskDecomposer,
    build_decomposition_prompt,
    parse_complexity,
    parse_tasks,
)
from src.issueflow.planning.models import Complexity


def run_async(coro):
    return asyncio.run(coro)


TASKS_RESPONSE = """Here is the plan:

```json
{
  "tasks": [
    {"id": "task-1", "title": "Add model", "dependencies": [], "estimatedEffort": "1h", "agent": "codegen"},
    {"id": "task-2", "title": "Review", "dependencies": ["task-1"], "estimatedEffort": "30m", "agent": "review"}
  ]
}
```
"""


def _make_decomposer(*responses: str) -> TaskDecomposer:
    generator = AsyncMock()
    generator.generate = AsyncMock(side_effect=list(responses))
    return TaskDecomposer(generator)


class TestParseComplexity:

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("small", Complexity.SMALL),
            ("  LARGE\n", Complexity.LARGE),
            ("xlarge", Complexity.XLARGE),
            ("It is probably medium-ish", Complexity.MEDIUM),
            ("", Complexity.MEDIUM),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_complexity(text) == expected


class TestParseTasks:

    def test_camel_case_tasks(self):
        tasks = parse_tasks(TASKS_RESPONSE)

        assert [task.id for task in tasks] == ["task-1", "task-2"]
        assert tasks[1].dependencies == ["task-1"]
        assert tasks[1].estimated_effort == "30m"
        assert tasks[1].agent == "review"

    @pytest.mark.parametrize(
        "response",
        [
            "No JSON here at all",
            "```json\n{not valid json}\n```",
            '```json\n{"tasks": []}\n```',
            '```json\n{"steps": [{"id": "a"}]}\n```',
            '```json\n{"tasks": [{"title": "missing id"}]}\n```',
            '```json\n["task-1"]\n```',
        ],
    )
    def test_unusable_responses(self, response):
        assert parse_tasks(response) is None

    def test_extract_json_block_takes_first_block(self):
        text = '```json\n{"a": 1}\n```\n```json\n{"a": 2}\n```'
        assert extract_json_block(text) == {"a": 1}


class TestTaskDecomposer:

    def test_analyze_complexity(self):
        decomposer = _make_decomposer("large")

        result = run_async(decomposer.analyze_complexity("Rewrite auth", "Everything"))

        assert result == Complexity.LARGE
        prompt = decomposer.text_generator.generate.call_args.args[0]
        assert "Rewrite auth" in prompt
        assert decomposer.text_generator.generate.call_args.kwargs["max_tokens"] == COMPLEXITY_MAX_TOKENS

    def test_decompose_parses_tasks(self):
        decomposer = _make_decomposer(TASKS_RESPONSE)

        tasks = run_async(decomposer.decompose("Add model", None))

        assert [task.id for task in tasks] == ["task-1", "task-2"]
        assert (
            decomposer.text_generator.generate.call_args.kwargs["max_tokens"]
            == DECOMPOSITION_MAX_TOKENS
        )

    def test_decompose_falls_back(self):
        decomposer = _make_decomposer("I cannot help with that")

        tasks = run_async(decomposer.decompose("Add model", "body"))

        assert tasks == list(FALLBACK_TASKS)
        assert [task.agent for task in tasks] == ["codegen", "review", "pr"]
        assert tasks[2].dependencies == ["task-2"]

    def test_generator_failure_propagates(self):
        generator = AsyncMock()
        generator.generate = AsyncMock(side_effect=TextGenerationError("model offline"))
        decomposer = TaskDecomposer(generator)

        with pytest.raises(TextGenerationError):
            run_async(decomposer.decompose("Add model", None))

    def test_prompt_lists_agents_and_format(self):
        prompt = build_decomposition_prompt("Add login", None)

        assert "Issue: Add login" in prompt
        assert "```json" in prompt
        assert "codegen, review, test, pr" in prompt
