"""AI Agents package."""

from buildledger.agents.ai_agents import (
    ASSISTANT_APOLOGY,
    AssistantAgent,
    ProjectAnalysisAgent,
)

__all__ = [
    "ASSISTANT_APOLOGY",
    "AssistantAgent",
    "ProjectAnalysisAgent",
]
