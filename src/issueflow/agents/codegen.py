"""Code generation agent.

Prompts the text generator for an implementation, writes the returned
files onto a feature branch and commits them:

1. Post a "started" comment naming the branch
2. Generate code; parse the fenced ```json ``files`` list
3. Create (or reuse) ``feature/issue-<n>``
4. Write each file under the repository root and stage it
5. Commit with ``feat: Implement code for Issue #<n>``
6. Post a "completed" comment listing the files

Failures are reported in the result rather than raised from ``execute``;
``process`` turns them into AgentFailureError for the pipeline.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError

from src.issueflow.agents.base import TrackerAgent, issue_number
from src.issueflow.agents.formatting import format_codegen_comment
from src.issueflow.agents.models import CodeGenResult, GeneratedFile
from src.issueflow.lifecycle.models import IssueRecord
from src.issueflow.llm.parsing import extract_json_block
from src.issueflow.pipeline.agent import AgentFailureError
from src.issueflow.ports import IssueStore, TextGenerator, VersionControl


logger = logging.getLogger(__name__)


CODEGEN_MAX_TOKENS = 8000

BRANCH_PREFIX = "feature/issue-"

FALLBACK_FILES = (
    GeneratedFile(
        path="src/hello.py",
        content='def hello_world() -> str:\n    return "Hello, world!"\n',
    ),
)


class UnsafePathError(ValueError):
    """Raised when a generated file path would land outside the repository."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Generated path escapes the repository root: {path}")


def branch_name_for(number: int) -> str:
    return f"{BRANCH_PREFIX}{number}"


def build_codegen_prompt(number: int, issue: IssueRecord) -> str:
    """Build the implementation prompt for an issue."""
    return f"""You are a code generation agent.

**Issue #{number}: {issue.title}**

{issue.body or 'No description provided.'}

**Instructions:**
1. Analyze the issue and generate the necessary code implementation
2. Follow the existing project structure and conventions
3. Include proper error handling
4. Add basic unit tests if applicable

**Output Format:**
Provide your response in the following format:

```json
{{
  "files": [
    {{
      "path": "src/example.py",
      "content": "... code ..."
    }}
  ],
  "summary": "Brief summary of what was implemented"
}}
```

Generate the code now."""


def parse_generated_files(response_text: str) -> Tuple[List[GeneratedFile], Optional[str]]:
    """Extract generated files and the summary from a model response.

    Falls back to a single placeholder module when the response holds no
    usable ``files`` list.

    Returns:
        Tuple of (files, summary).
    """
    data = extract_json_block(response_text)
    if isinstance(data, dict) and isinstance(data.get("files"), list):
        try:
            files = [GeneratedFile.model_validate(item) for item in data["files"]]
        except ValidationError as e:
            logger.warning(
                "Generated files are malformed, using fallback",
                extra={"error": str(e)},
            )
        else:
            summary = data.get("summary")
            return files, str(summary) if summary else None

    logger.warning("Failed to extract files from model response, using fallback")
    return list(FALLBACK_FILES), None


def resolve_in_root(root: Path, relative_path: str) -> Path:
    """Resolve a generated path, refusing anything outside ``root``.

    Raises:
        UnsafePathError: If the path is absolute or escapes the root.
    """
    if Path(relative_path).is_absolute():
        raise UnsafePathError(relative_path)

    resolved_root = root.resolve()
    target = (resolved_root / relative_path).resolve()
    try:
        target.relative_to(resolved_root)
    except ValueError:
        raise UnsafePathError(relative_path) from None
    if target == resolved_root:
        raise UnsafePathError(relative_path)
    return target


class CodeGenAgent(TrackerAgent):
    """Generates and commits an implementation for an issue.

    Attributes:
        store: Issue tracker.
        text_generator: Source of generated code.
        vcs: Working copy the files are committed to.
        repo_path: Root of the working copy.
    """

    name = "codegen"
    title = "CodeGenAgent"

    def __init__(
        self,
        store: IssueStore,
        text_generator: TextGenerator,
        vcs: VersionControl,
        repo_path: Path,
    ):
        super().__init__(store)
        self.text_generator = text_generator
        self.vcs = vcs
        self.repo_path = Path(repo_path)

    async def execute(self, issue: IssueRecord) -> CodeGenResult:
        number = issue_number(issue)
        branch_name = branch_name_for(number)
        files_generated: List[str] = []

        try:
            await self._post_started(
                number,
                f"Generating code...\n\n**Branch:** `{branch_name}`",
            )

            response = await self.text_generator.generate(
                build_codegen_prompt(number, issue),
                max_tokens=CODEGEN_MAX_TOKENS,
            )
            files, summary = parse_generated_files(response)
            targets = [
                (generated, resolve_in_root(self.repo_path, generated.path))
                for generated in files
            ]

            await self.vcs.create_branch(branch_name)

            for generated, target in targets:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(generated.content, encoding="utf-8")
                files_generated.append(generated.path)

            await self.vcs.stage(files_generated)
            await self.vcs.commit(self._commit_message(number, files_generated))

            result = CodeGenResult(
                success=True,
                files_generated=files_generated,
                branch_name=branch_name,
                summary=summary,
            )
            await self.store.create_comment(number, format_codegen_comment(result))

        except Exception as e:
            logger.error(
                "Code generation failed",
                extra={
                    "issue_number": number,
                    "branch": branch_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            await self._post_failed(number, str(e))
            return CodeGenResult(
                success=False,
                files_generated=files_generated,
                branch_name=branch_name,
                error=str(e),
            )

        logger.info(
            "Code generated",
            extra={
                "issue_number": number,
                "branch": branch_name,
                "file_count": len(files_generated),
            },
        )
        return result

    async def process(self, issue: IssueRecord) -> IssueRecord:
        result = await self.execute(issue)
        if not result.success:
            raise AgentFailureError(self.name, result.error or "code generation failed")
        return issue.model_copy(deep=True)

    @staticmethod
    def _commit_message(number: int, files: List[str]) -> str:
        listing = "\n".join(f"- {path}" for path in files)
        return f"feat: Implement code for Issue #{number}\n\nFiles:\n{listing}\n"
