"""Agent pipeline.

Sequences the lifecycle state machine and an ordered list of agents over
one issue record, fanning out lifecycle events to pipeline subscribers.
"""

from src.issueflow.pipeline.agent import Agent, AgentFailureError, FunctionAgent
from src.issueflow.pipeline.orchestrator import AgentPipeline

__all__ = [
    "Agent",
    "AgentFailureError",
    "AgentPipeline",
    "FunctionAgent",
]
