"""FastAPI application entry point.

Exposes the issue lifecycle service over HTTP:

- GET  /health                   liveness probe
- GET  /ready                    readiness probe (GitHub reachability)
- GET  /metrics                  Prometheus metrics
- POST /webhooks/github          GitHub ``issues`` webhook receiver
- POST /issues/{number}/transition   move an issue to another state
- POST /issues/{number}/agents       run one agent against an issue

Services are built from IssueflowSettings during lifespan startup and kept
on ``app.state``; tests pass prebuilt services to create_app instead.
"""

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field

from src.issueflow.agents.codegen import CodeGenAgent
from src.issueflow.agents.coordinator import CoordinatorAgent
from src.issueflow.agents.review import ReviewAgent
from src.issueflow.agents.testing import TestAgent
from src.issueflow.config import IssueflowSettings, get_settings
from src.issueflow.events.emitter import create_event_emitter
from src.issueflow.events.metrics import generate_metrics_output
from src.issueflow.github.client import GitHubAPIError, GitHubClient
from src.issueflow.lifecycle.machine import InvalidTransitionError
from src.issueflow.lifecycle.models import IssueState
from src.issueflow.llm.client import ChatTextGenerator
from src.issueflow.logging_config import configure_logging, get_logger
from src.issueflow.pipeline.agent import AgentFailureError
from src.issueflow.pipeline.orchestrator import AgentPipeline
from src.issueflow.planning.decomposer import TaskDecomposer
from src.issueflow.ports import PortFailure
from src.issueflow.router import IssueRouter, UnknownAgentError
from src.issueflow.runner.command import CommandRunner
from src.issueflow.runner.git import GitRepository
from src.issueflow.webhook.handler import WebhookHandler
from src.issueflow.webhook.models import GitHubIssueEvent

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the endpoints need, built once per process."""

    router: IssueRouter
    webhook_handler: WebhookHandler
    github_client: Optional[GitHubClient] = None


class TransitionRequest(BaseModel):
    to_state: IssueState = Field(..., description="Target lifecycle state")
    reason: Optional[str] = Field(default=None, description="Why the issue moves")


class AgentRunRequest(BaseModel):
    agent: Optional[str] = Field(
        default=None,
        description="Agent name; defaults to the issue's agent label or the coordinator",
    )


def build_services(settings: IssueflowSettings) -> Services:
    """Wire the GitHub client, agents, pipeline and router.

    Args:
        settings: Validated service settings.

    Returns:
        Services ready to serve requests.
    """
    github_client = GitHubClient(
        token=settings.github_token.get_secret_value(),
        owner=settings.github_owner,
        repo=settings.github_repo,
        base_url=settings.github_base_url,
    )
    text_generator = ChatTextGenerator(
        llm_url=settings.llm_url,
        model_name=settings.llm_model,
        api_key=settings.llm_api_key.get_secret_value(),
        timeout=settings.llm_timeout_seconds,
    )

    repo_path = Path(settings.repo_path)
    runner = CommandRunner(cwd=repo_path, timeout_seconds=settings.command_timeout_seconds)
    repository = GitRepository(
        repo_path,
        base_branch=settings.base_branch,
        runner=runner,
    )

    agents = [
        CoordinatorAgent(github_client, TaskDecomposer(text_generator)),
        CodeGenAgent(github_client, text_generator, repository, repo_path),
        ReviewAgent(
            github_client,
            repository,
            runner,
            repo_path,
            type_check_command=settings.type_check_command,
            lint_command=settings.lint_command,
            quality_threshold=settings.quality_threshold,
            base_branch=settings.base_branch,
        ),
        TestAgent(
            github_client,
            runner,
            test_command=settings.test_command,
            coverage_command=settings.coverage_command,
            coverage_threshold=settings.coverage_threshold,
        ),
    ]
    by_name = {agent.name: agent for agent in agents}

    unknown = [name for name in settings.pipeline_agents if name not in by_name]
    if unknown:
        raise UnknownAgentError(unknown[0], by_name)

    sink = create_event_emitter(settings.event_sinks, logger_name="issueflow.events")
    pipeline = AgentPipeline(
        agents=[by_name[name] for name in settings.pipeline_agents],
        sink=sink,
    )
    router = IssueRouter(github_client, pipeline, agents=agents, sink=sink)

    return Services(
        router=router,
        webhook_handler=WebhookHandler(
            secret=settings.github_webhook_secret.get_secret_value()
        ),
        github_client=github_client,
    )


async def handle_event_in_background(router: IssueRouter, event: GitHubIssueEvent) -> None:
    """Run a webhook event after the response has been sent.

    Failures are logged; the agents have already reported them on the issue.
    """
    try:
        await router.handle_issue_event(event)
    except Exception:
        logger.exception(
            "Background event handling failed",
            extra={"issue_number": event.issue_number, "action": event.action.value},
        )


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Prebuilt services. When None, settings are loaded and
            services built on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned: Optional[Services] = None
        if services is None:
            settings = get_settings()
            configure_logging(settings.log_level, settings.json_logs)
            get_logger(__name__).info(
                "Issueflow starting up", configuration=settings.redacted()
            )
            owned = build_services(settings)
            app.state.services = owned
        else:
            app.state.services = services

        yield

        logger.info("Issueflow shutting down")
        if owned is not None and owned.github_client is not None:
            await owned.github_client.close()

    app = FastAPI(
        title="Issueflow",
        description="Issue lifecycle automation for GitHub repositories",
        version="0.1.0",
        lifespan=lifespan,
    )

    def get_services(request: Request) -> Services:
        found = getattr(request.app.state, "services", None)
        if found is None:
            raise HTTPException(status_code=503, detail="Service not initialized")
        return found

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> Dict[str, Any]:
        """Readiness probe; 503 when GitHub is unreachable."""
        current = get_services(request)
        github_status = "unknown"
        if current.github_client is not None:
            healthy = await current.github_client.health_check()
            github_status = "healthy" if healthy else "unhealthy"
        if github_status == "unhealthy":
            raise HTTPException(status_code=503, detail={"github": github_status})
        return {"status": "ready", "dependencies": {"github": github_status}}

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)

    @app.post("/webhooks/github", status_code=202)
    async def github_webhook(request: Request, background_tasks: BackgroundTasks) -> Dict[str, Any]:
        """Acknowledge a webhook and handle it in the background."""
        current = get_services(request)
        body = await request.body()

        signature = request.headers.get("x-hub-signature-256")
        if not current.webhook_handler.verify_signature(body, signature):
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

        event_name = request.headers.get("x-github-event")
        if event_name is not None and event_name != "issues":
            return {"status": "ignored", "message": f"Unsupported event: {event_name}"}

        try:
            payload = json.loads(body)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON payload")

        event = current.webhook_handler.parse_issue_event(payload)
        if event is None:
            return {"status": "ignored", "message": "Unsupported or invalid event"}

        background_tasks.add_task(handle_event_in_background, current.router, event)
        return {"status": "accepted", "issue_id": event.issue_id}

    @app.post("/issues/{issue_number}/transition")
    async def transition_issue(
        issue_number: int,
        body: TransitionRequest,
        request: Request,
    ) -> Dict[str, Any]:
        current = get_services(request)
        try:
            transition = await current.router.transition_issue(
                issue_number, body.to_state, body.reason
            )
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except GitHubAPIError as e:
            raise _port_error(e)

        return {
            "issue_number": issue_number,
            "from_state": transition.from_state.value,
            "to_state": transition.to_state.value,
            "reason": transition.reason,
            "timestamp": transition.timestamp.isoformat(),
        }

    @app.post("/issues/{issue_number}/agents")
    async def run_agent(
        issue_number: int,
        request: Request,
        body: Optional[AgentRunRequest] = None,
    ) -> Dict[str, Any]:
        current = get_services(request)
        agent_name = body.agent if body is not None else None
        try:
            record = await current.router.run_agent(issue_number, agent_name)
        except UnknownAgentError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except AgentFailureError as e:
            raise HTTPException(status_code=500, detail=str(e))
        except PortFailure as e:
            raise _port_error(e)

        return {
            "issue_number": issue_number,
            "state": record.state.value,
            "labels": record.labels,
        }

    return app


def _port_error(error: PortFailure) -> HTTPException:
    status_code = getattr(error, "status_code", None)
    if status_code == 404:
        return HTTPException(status_code=404, detail="Issue not found")
    return HTTPException(status_code=502, detail=str(error))


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.issueflow.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
