"""Issue-processing agents.

Each agent satisfies the pipeline Agent protocol (``name`` plus
``async process(issue)``) and exposes ``execute(issue)`` returning a
result model. Progress is reported as issue comments.

- CoordinatorAgent: complexity analysis, decomposition and planning
- CodeGenAgent: code generation onto a feature branch
- ReviewAgent: type check, lint and security scan with a quality score
- TestAgent: test suite and coverage threshold
"""

from src.issueflow.agents.codegen import CodeGenAgent, UnsafePathError
from src.issueflow.agents.coordinator import CoordinatorAgent
from src.issueflow.agents.models import (
    CodeGenResult,
    CoordinatorResult,
    QualityFinding,
    QualityMetrics,
    ReviewResult,
    TestRunResult,
)
from src.issueflow.agents.review import ReviewAgent, calculate_quality_score
from src.issueflow.agents.testing import TestAgent

__all__ = [
    # Agents
    "CodeGenAgent",
    "CoordinatorAgent",
    "ReviewAgent",
    "TestAgent",
    # Results
    "CodeGenResult",
    "CoordinatorResult",
    "QualityFinding",
    "QualityMetrics",
    "ReviewResult",
    "TestRunResult",
    # Helpers
    "UnsafePathError",
    "calculate_quality_score",
]
