"""End-to-end tests for the project detail and assistant flows."""

import asyncio
from decimal import Decimal

import pytest

from buildledger.agents import ASSISTANT_APOLOGY, AssistantAgent, ProjectAnalysisAgent
from buildledger.auth import InMemoryAuthProvider
from buildledger.exceptions import AIServiceError, StaleBudgetError
from buildledger.orchestrator import create_app_components


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, text):
        self.text = text
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        return FakeResponse(self.text)


@pytest.fixture
def app(db):
    return create_app_components("memory", database=db)


class TestProjectDetailFlow:
    """Tests for loading a project and changing its budget."""

    def test_load(self, app, project, add_invoice):
        add_invoice(project, "250000")

        detail = asyncio.run(app.project_detail.load(project.id))

        assert detail.project.total_costs == Decimal("250000")
        assert len(detail.invoices) == 1
        assert detail.history == []
        assert detail.timeline.is_empty

    def test_save_budget_refreshes_history(self, app, project, admin_session):
        detail = asyncio.run(app.project_detail.load(project.id))

        outcome, detail = asyncio.run(app.project_detail.save_budget(
            admin_session, detail, "1250000", "Change order #2"
        ))

        assert outcome.changed
        assert detail.project.planned_budget == Decimal("1250000")
        top = detail.timeline.visible_entries[0]
        assert top.entry.id == outcome.entry.id
        assert top.amount_label == "+250,000.00 CZK"
        assert top.actor_name == "Petr Svoboda"

    def test_noop_save_keeps_detail(self, app, project, admin_session):
        detail = asyncio.run(app.project_detail.load(project.id))

        outcome, same = asyncio.run(app.project_detail.save_budget(
            admin_session, detail, "1000000", ""
        ))

        assert not outcome.changed
        assert same is detail

    def test_stale_detail_rejected(self, app, project, admin_session):
        stale = asyncio.run(app.project_detail.load(project.id))
        asyncio.run(app.project_detail.save_budget(admin_session, stale, "1100000", "First"))

        with pytest.raises(StaleBudgetError):
            asyncio.run(app.project_detail.save_budget(admin_session, stale, "1200000", "Second"))

    def test_analyze_with_agent(self, db, project):
        app = create_app_components(
            "memory",
            database=db,
            analysis_agent=ProjectAnalysisAgent(model=FakeModel("Fine.")),
        )
        detail = asyncio.run(app.project_detail.load(project.id))

        assert asyncio.run(app.project_detail.analyze(detail)) == "Fine."
        assert db.audit_events[-1].event_type.value == "ai_analysis_generated"

    def test_analyze_without_configuration(self, app, project):
        detail = asyncio.run(app.project_detail.load(project.id))
        with pytest.raises(AIServiceError):
            asyncio.run(app.project_detail.analyze(detail))


class TestAssistantFlow:
    """Tests for the assistant flow."""

    def test_ask_uses_all_projects(self, db, project, add_project):
        add_project("Empty lot", "EL-1", "0")
        model = FakeModel("Two projects.")
        app = create_app_components("memory", database=db, assistant_agent=AssistantAgent(model=model))

        assert asyncio.run(app.assistant.ask("How many projects?")) == "Two projects."
        assert "Empty lot" in model.prompts[0]

    def test_ask_without_configuration_apologises(self, app):
        assert asyncio.run(app.assistant.ask("Hello")) == ASSISTANT_APOLOGY


class TestFactory:
    """Tests for create_app_components."""

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_app_components("postgres")

    def test_sign_in_through_app(self, db, admin):
        provider = InMemoryAuthProvider()
        asyncio.run(provider.sign_up(admin.email, "correct-horse", user_id=admin.id))
        app = create_app_components("memory", auth_provider=provider, database=db)

        session = asyncio.run(app.auth.sign_in(admin.email, "correct-horse"))
        assert session.is_admin


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
