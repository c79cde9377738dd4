"""Service configuration using pydantic-settings.

IssueflowSettings reads configuration from environment variables with
the ISSUEFLOW_ prefix (e.g. ISSUEFLOW_GITHUB_TOKEN). Required fields must
be set for the service to start.
"""

from pathlib import Path
from typing import Any, Dict, List

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.issueflow.events.emitter import EventSinkType


class IssueflowSettings(BaseSettings):
    """Service configuration from environment variables.

    Required fields:
    - github_token: GitHub API token for reading issues, labelling and commenting
    - github_owner / github_repo: The repository the service manages
    - llm_url: OpenAI-compatible endpoint used by the agents
    """

    model_config = SettingsConfigDict(
        env_prefix="ISSUEFLOW_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: SecretStr

    github_owner: str

    github_repo: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # Optional; when set, webhook signatures are verified
    github_webhook_secret: SecretStr = SecretStr("")

    # -------------------------------------------------------------------------
    # LLM Configuration
    # -------------------------------------------------------------------------
    llm_url: str

    llm_model: str = "gpt-4o-mini"

    # Local vLLM endpoints accept any key
    llm_api_key: SecretStr = SecretStr("not-needed")

    llm_timeout_seconds: float = 60.0

    # -------------------------------------------------------------------------
    # Repository Configuration
    # -------------------------------------------------------------------------
    # Working copy the code generation, review and test agents operate on
    repo_path: str = "/var/lib/issueflow/checkout"

    base_branch: str = "main"

    # -------------------------------------------------------------------------
    # Agent Configuration
    # -------------------------------------------------------------------------
    # Agents run, in order, when an issue is opened
    pipeline_agents: List[str] = Field(default_factory=lambda: ["coordinator"])

    type_check_command: str = "mypy ."

    lint_command: str = "ruff check ."

    test_command: str = "coverage run -m pytest -q"

    coverage_command: str = "coverage report"

    quality_threshold: int = 80

    coverage_threshold: float = 80.0

    command_timeout_seconds: int = 600

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------
    event_sinks: List[EventSinkType] = Field(
        default_factory=lambda: [EventSinkType.LOGGING, EventSinkType.METRICS]
    )

    log_level: str = "INFO"

    json_logs: bool = True

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: SecretStr) -> SecretStr:
        """Validate that GitHub token is not empty."""
        if not v.get_secret_value().strip():
            raise ValueError("github_token cannot be empty")
        return v

    @field_validator("github_owner", "github_repo")
    @classmethod
    def validate_repository_part(cls, v: str) -> str:
        """Validate that owner and repo are non-empty."""
        if not v or not v.strip():
            raise ValueError("repository owner and name cannot be empty")
        return v.strip()

    @field_validator("llm_url", "github_base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that URLs are http(s)."""
        if not v or not v.strip():
            raise ValueError("URL cannot be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v

    @field_validator("repo_path")
    @classmethod
    def validate_repo_path(cls, v: str) -> str:
        """Validate that the repository path is absolute."""
        if not Path(v).is_absolute():
            raise ValueError("repo_path must be an absolute path")
        return v

    @field_validator("quality_threshold", "coverage_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Validate that thresholds are percentages."""
        if not 0 <= v <= 100:
            raise ValueError("thresholds must be between 0 and 100")
        return v

    @field_validator("command_timeout_seconds")
    @classmethod
    def validate_command_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError("command_timeout_seconds must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {v}")
        return level

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    def redacted(self) -> Dict[str, Any]:
        """Settings as a dict safe to log; secrets are masked."""
        return self.model_dump(mode="json")


def get_settings() -> IssueflowSettings:
    """Create and return an IssueflowSettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return IssueflowSettings()
