"""AI-assisted complexity analysis and task decomposition.

The decomposer asks a TextGenerator for two things about an issue:

1. A one-word complexity estimate (small, medium, large, xlarge).
2. A task breakdown as a fenced ```json block holding ``{"tasks": [...]}``.

Unusable answers never fail the caller: an unknown complexity becomes
``medium`` and an unparseable breakdown becomes the three-step fallback
(generate code, review it, open a PR). Generator failures propagate.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from src.issueflow.llm.parsing import extract_json_block
from src.issueflow.planning.models import Complexity, Task
from src.issueflow.ports import TextGenerator


logger = logging.getLogger(__name__)


COMPLEXITY_MAX_TOKENS = 1000
DECOMPOSITION_MAX_TOKENS = 4000

AVAILABLE_AGENTS = ("codegen", "review", "test", "pr")

FALLBACK_TASKS = (
    Task(id="task-1", title="Generate code", dependencies=[],
         estimated_effort="1h", agent="codegen"),
    Task(id="task-2", title="Review code", dependencies=["task-1"],
         estimated_effort="30m", agent="review"),
    Task(id="task-3", title="Create PR", dependencies=["task-2"],
         estimated_effort="15m", agent="pr"),
)


def _issue_section(title: str, body: Optional[str]) -> str:
    return f"Issue: {title}\n{body or ''}"


def build_complexity_prompt(title: str, body: Optional[str]) -> str:
    return (
        "Analyze the complexity of this GitHub issue and respond with ONLY "
        "one word: small, medium, large, or xlarge.\n\n"
        f"{_issue_section(title, body)}\n\n"
        "Complexity:"
    )


def build_decomposition_prompt(title: str, body: Optional[str]) -> str:
    """Build the task breakdown prompt.

    Args:
        title: The issue title.
        body: The issue body, if any.

    Returns:
        Prompt asking for a fenced JSON task list.
    """
    return (
        "Break down this GitHub issue into concrete implementation tasks.\n\n"
        f"{_issue_section(title, body)}\n\n"
        "Provide your response in JSON format:\n"
        "```json\n"
        "{\n"
        '  "tasks": [\n'
        "    {\n"
        '      "id": "task-1",\n'
        '      "title": "Task description",\n'
        '      "dependencies": [],\n'
        '      "estimatedEffort": "1h",\n'
        '      "agent": "codegen"\n'
        "    }\n"
        "  ]\n"
        "}\n"
        "```\n\n"
        f"Available agents: {', '.join(AVAILABLE_AGENTS)}\n"
        "Keep it simple - 3-5 tasks maximum."
    )


def parse_complexity(response_text: str) -> Complexity:
    """Map a free-text answer onto a Complexity, defaulting to medium."""
    answer = response_text.strip().lower()
    try:
        return Complexity(answer)
    except ValueError:
        logger.warning(
            "Unrecognised complexity from generator, defaulting to medium",
            extra={"received": answer[:50]},
        )
        return Complexity.MEDIUM


def parse_tasks(response_text: str) -> Optional[List[Task]]:
    """Extract the task list from a fenced JSON block.

    Args:
        response_text: Raw generator output.

    Returns:
        The parsed tasks, or None when the block is missing, is not
        valid JSON, or does not hold a non-empty list of valid tasks.
    """
    data = extract_json_block(response_text)
    raw_tasks = data.get("tasks") if isinstance(data, dict) else None
    if not isinstance(raw_tasks, list) or not raw_tasks:
        return None

    try:
        return [Task.model_validate(item) for item in raw_tasks]
    except ValidationError as e:
        logger.warning(
            "Task breakdown contains invalid tasks",
            extra={"error": str(e)},
        )
        return None


class TaskDecomposer:
    """Turns an issue into a complexity estimate and a task list.

    Attributes:
        text_generator: The generator queried for both answers.

    Example:
        >>> decomposer = TaskDecomposer(ChatTextGenerator(...))
        >>> tasks = await decomposer.decompose("Add login", "OAuth2 please")
        >>> [t.id for t in tasks]
        ['task-1', 'task-2', 'task-3']
    """

    def __init__(self, text_generator: TextGenerator):
        self.text_generator = text_generator

    async def analyze_complexity(self, title: str, body: Optional[str]) -> Complexity:
        response = await self.text_generator.generate(
            build_complexity_prompt(title, body),
            max_tokens=COMPLEXITY_MAX_TOKENS,
        )
        return parse_complexity(response)

    async def decompose(self, title: str, body: Optional[str]) -> List[Task]:
        """Ask for a task breakdown, falling back to the default chain.

        Raises:
            TextGenerationError: If the generator itself fails.
        """
        response = await self.text_generator.generate(
            build_decomposition_prompt(title, body),
            max_tokens=DECOMPOSITION_MAX_TOKENS,
        )

        tasks = parse_tasks(response)
        if tasks is None:
            logger.info(
                "Using fallback task decomposition",
                extra={"title": title[:100]},
            )
            return list(FALLBACK_TASKS)

        logger.info(
            "Decomposed issue into tasks",
            extra={"task_count": len(tasks)},
        )
        return tasks
