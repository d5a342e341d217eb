"""
Tests for the AI agents.

The Gemini model is replaced by a fake exposing generate_content_async,
so no API calls are made.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from buildledger.agents import ASSISTANT_APOLOGY, AssistantAgent, ProjectAnalysisAgent
from buildledger.exceptions import AIServiceError, ValidationError
from buildledger.models import BudgetHistoryEntry, Invoice, PaymentStatus, Project


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, text="## Analysis\nAll good.", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return FakeResponse(self.text)


@pytest.fixture
def sample_project():
    return Project(
        name="Residential Block A",
        code="RB-A",
        planned_budget=Decimal("1000000"),
        total_costs=Decimal("750000"),
        invoice_count=1,
    )


@pytest.fixture
def sample_invoices(sample_project):
    return [Invoice(
        invoice_number="FV-1",
        project_id=sample_project.id,
        supplier_name="Beton Praha",
        total_amount=Decimal("750000"),
        date_issue=date(2025, 1, 1),
        payment_status=PaymentStatus.OVERDUE,
    )]


class TestProjectAnalysisAgent:
    """Tests for the project analysis agent."""

    def test_prompt_contains_figures(self, sample_project, sample_invoices):
        model = FakeModel()
        agent = ProjectAnalysisAgent(model=model)
        history = [BudgetHistoryEntry(
            project_id=sample_project.id,
            changed_by=uuid4(),
            old_value=Decimal("800000"),
            new_value=Decimal("1000000"),
            reason="Change order #1",
            actor_name="Petr Svoboda",
        )]

        text = asyncio.run(agent.analyze_project(sample_project, sample_invoices, history))

        assert text == "## Analysis\nAll good."
        prompt = model.prompts[0]
        assert "RB-A" in prompt
        assert "1,000,000.00 CZK" in prompt
        assert "75.0%" in prompt
        assert "Beton Praha" in prompt
        assert "Change order #1" in prompt

    def test_failure_raises(self, sample_project):
        agent = ProjectAnalysisAgent(model=FakeModel(error=RuntimeError("quota")))
        with pytest.raises(AIServiceError):
            asyncio.run(agent.analyze_project(sample_project, []))

    def test_empty_response_raises(self, sample_project):
        agent = ProjectAnalysisAgent(model=FakeModel(text="   "))
        with pytest.raises(AIServiceError):
            asyncio.run(agent.analyze_project(sample_project, []))


class TestAssistantAgent:
    """Tests for the assistant chat."""

    def test_reply(self, sample_project):
        model = FakeModel(text="Residential Block A is at 75% of budget.")
        agent = AssistantAgent(model=model)

        reply = asyncio.run(agent.chat("Which project is closest to its budget?", [sample_project]))

        assert reply.startswith("Residential Block A")
        assert "Residential Block A: 75.0% used" in model.prompts[0]

    def test_failure_returns_apology(self, sample_project):
        agent = AssistantAgent(model=FakeModel(error=ConnectionError("offline")))
        assert asyncio.run(agent.chat("Hello?", [sample_project])) == ASSISTANT_APOLOGY

    def test_empty_message_rejected(self):
        agent = AssistantAgent(model=FakeModel())
        with pytest.raises(ValidationError):
            asyncio.run(agent.chat("   ", []))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
