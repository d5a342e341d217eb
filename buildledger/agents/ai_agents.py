"""
AI Agents for BuildLedger

Two narrow uses of Gemini:

1. PROJECT ANALYSIS AGENT:
   - CAN: Comment on one project's budget health from the figures given
   - CANNOT: Change any data
   - Failure is an error the caller shows (AIServiceError)

2. ASSISTANT AGENT:
   - CAN: Answer portfolio questions from the project overview given
   - CANNOT: Change any data
   - Failure degrades to a fixed apology, never an exception

The LLM only ever sees figures we pass in the prompt. It has no access
to storage.
"""

from typing import Optional, Sequence

import google.generativeai as genai
import structlog

from buildledger.budget.history_view import format_money
from buildledger.config import get_settings
from buildledger.exceptions import AIServiceError, ValidationError
from buildledger.models.budget import BudgetHistoryEntry
from buildledger.models.project import Invoice, Project


logger = structlog.get_logger(__name__)

ASSISTANT_APOLOGY = (
    "Sorry, the connection to the AI assistant was interrupted. "
    "Please try again in a moment."
)
EMPTY_RESPONSE = "Sorry, I could not understand the question."

MAX_RECENT_INVOICES = 5
MAX_RECENT_CHANGES = 5


def _build_model(temperature: Optional[float] = None):
    """Configure Google Generative AI and return a model."""
    settings = get_settings().gemini
    genai.configure(api_key=settings.api_key)
    return genai.GenerativeModel(
        model_name=settings.model_name,
        generation_config={
            "temperature": settings.temperature if temperature is None else temperature,
            "max_output_tokens": settings.max_tokens,
        }
    )


class ProjectAnalysisAgent:
    """
    Generates a markdown financial health analysis for one project.

    RESPONSIBILITIES:
    - Assess overspend risk from budget vs. costs
    - Suggest concrete control steps
    - Project the trend if spending continues at the current pace
    """

    def __init__(self, model=None):
        self._model = model or _build_model()
        self._currency = get_settings().app.currency_code

    def _money(self, amount) -> str:
        return format_money(amount, self._currency)

    def build_prompt(
        self,
        project: Project,
        invoices: Sequence[Invoice],
        history: Sequence[BudgetHistoryEntry] = (),
    ) -> str:
        invoice_lines = "\n".join(
            f"- {inv.supplier_name}: {self._money(inv.total_amount)} ({inv.payment_status.value})"
            for inv in invoices[:MAX_RECENT_INVOICES]
        ) or "- no invoices yet"

        change_lines = "\n".join(
            f"- {entry.created_at.date()}: {self._money(entry.old_value)} -> "
            f"{self._money(entry.new_value)} ({entry.reason or 'no reason given'})"
            for entry in history[:MAX_RECENT_CHANGES]
        ) or "- the budget has not been changed"

        return f"""You are a senior financial auditor at a construction company.

Analyze the project {project.name} (code: {project.code}).

Current figures:
- Planned budget: {self._money(project.planned_budget)}
- Actual costs: {self._money(project.total_costs)}
- Budget used: {project.budget_usage_percent:.1f}%
- Invoices: {project.invoice_count} ({project.overdue_invoice_count} overdue)
- Status: {project.status.value}

Latest invoices:
{invoice_lines}

Recent budget changes:
{change_lines}

Tasks:
1. Assess the financial health (risk of overspending).
2. Suggest 3 concrete steps for optimisation or control.
3. Estimate the outcome if spending continues at the same pace.

Use ONLY the figures above. Be professional and concise. Use Markdown."""

    async def analyze_project(
        self,
        project: Project,
        invoices: Sequence[Invoice],
        history: Sequence[BudgetHistoryEntry] = (),
    ) -> str:
        """
        Return the analysis text.

        Raises:
            AIServiceError: The model call failed or returned nothing
        """
        prompt = self.build_prompt(project, invoices, history)
        try:
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("project_analysis_failed", project_id=str(project.id), error=str(e))
            raise AIServiceError("AI analysis is not available right now") from e

        if not text:
            raise AIServiceError("AI analysis returned no text")
        return text


class AssistantAgent:
    """Portfolio-wide chat assistant."""

    def __init__(self, model=None):
        self._model = model or _build_model()

    @staticmethod
    def build_prompt(message: str, projects: Sequence[Project]) -> str:
        context = "\n".join(
            f"- {p.name}: {p.budget_usage_percent:.1f}% used, budget {p.planned_budget}"
            for p in projects
        ) or "- no projects"

        return f"""You are the AI assistant of a construction company.
You have access to this overview of projects:
{context}

The user asks: "{message}"

Answer as a construction management expert. Be factual, friendly and professional.
If the question is unrelated to construction or the company's projects, politely
steer back to the projects."""

    async def chat(self, message: str, projects: Sequence[Project]) -> str:
        """
        Answer a question. Model failures return a fixed apology.

        Raises:
            ValidationError: Empty message
        """
        message = (message or "").strip()
        if not message:
            raise ValidationError("Message must not be empty", field="message")

        try:
            response = await self._model.generate_content_async(
                self.build_prompt(message, projects)
            )
            return (response.text or "").strip() or EMPTY_RESPONSE
        except Exception as e:
            logger.warning("assistant_chat_failed", error=str(e))
            return ASSISTANT_APOLOGY
