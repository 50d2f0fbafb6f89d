"""Executive summary generation.

Builds a prompt from a user-editable template and the data collected by the
workflow, then asks the AI completion endpoint for the summary prose.

Template placeholders:
    {{clientName}}, {{projectName}}, {{surveyContext}}, {{serviceDescriptions}}

Placeholders without a value are left in the prompt verbatim.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from models.scopestack import ProjectService, Question
from services.ai_client import AIClient
from services.local_store import LocalStore, KEY_PROMPT_TEMPLATE

logger = structlog.get_logger(__name__)


NO_SERVICES_SUMMARY = "No services available to generate summary."
SUMMARY_UNAVAILABLE = "Executive summary could not be generated."

PLACEHOLDERS = ("clientName", "projectName", "surveyContext", "serviceDescriptions")

DEFAULT_PROMPT_TEMPLATE = """Generate an executive summary for a professional services engagement. The summary should be concise yet comprehensive, clearly outlining the business objectives, key challenges, proposed solutions, and expected outcomes. Use the discovery questionnaire answers to provide specific insights into the client's needs, operational constraints, and strategic goals.

The summary should include the following sections:

Client Overview: Briefly describe the client's business, industry, and relevant background.
Engagement Objectives: Define the specific goals the client aims to achieve through this engagement, linking them to measurable business outcomes.
Key Findings from Discovery: Highlight critical insights gathered from discovery, including pain points, inefficiencies, or opportunities for improvement.
Proposed Solution & Approach: Outline the recommended services and methodologies that will address the client's challenges.
Business Impact & Success Metrics: Explain the expected business impact and the measures that will determine the effectiveness of the engagement.
Next Steps & Timeline: Summarize the implementation plan, key milestones, and next steps.

Use a professional, results-oriented tone. Keep the focus on strategic outcomes rather than technical details, making it accessible to executive stakeholders.

Client Name: {{clientName}}
Project Name: {{projectName}}

Discovery Questionnaire:
{{surveyContext}}

Recommended Services:
{{serviceDescriptions}}
"""


def render(template: str, data: Mapping[str, Any]) -> str:
    """Substitute every `{{key}}` occurrence for each key present in `data`.

    Pure: no I/O, same output for the same inputs.
    """
    prompt = template
    for key, value in data.items():
        prompt = prompt.replace("{{" + key + "}}", "" if value is None else str(value))
    return prompt


def build_survey_context(pairs: Iterable[Tuple[str, Any]]) -> str:
    """QUESTION/ANSWER blocks separated by a blank line, in the given order."""
    return "\n\n".join(f"QUESTION: {question}\nANSWER: {answer}" for question, answer in pairs)


def survey_pairs(questions: Sequence[Question], answers: Mapping[str, Any]) -> List[Tuple[str, Any]]:
    """(question text, answer) for each answered, non-deleted question in presentation order."""
    pairs = []
    for question in questions:
        if question.is_deleted or question.slug not in answers:
            continue
        answer = answers[question.slug]
        if answer is None or (isinstance(answer, str) and not answer.strip()):
            continue
        pairs.append((question.question, answer))
    return pairs


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def build_service_descriptions(services: Sequence[ProjectService]) -> str:
    """One block per service, ascending by position.

    The sort is stable: equal positions keep fetch order, and services
    without a position go last.
    """
    ordered = sorted(
        services,
        key=lambda s: (s.position is None, s.position if s.position is not None else 0),
    )
    blocks = []
    for service in ordered:
        blocks.append(
            f"SERVICE: {service.name}\n"
            f"QUANTITY: {_format_number(service.quantity)}\n"
            f"HOURS: {_format_number(service.total_hours)}\n"
            f"DESCRIPTION: {service.description}"
        )
    return "\n\n".join(blocks)


class PromptTemplateStore:
    """The user's prompt template, persisted in the local store."""

    def __init__(self, store: Optional[LocalStore] = None):
        self.store = store or LocalStore()

    def load(self) -> str:
        return self.store.get(KEY_PROMPT_TEMPLATE) or DEFAULT_PROMPT_TEMPLATE

    def save(self, template: str) -> str:
        self.store.set(KEY_PROMPT_TEMPLATE, template)
        logger.info("prompt_template_saved", length=len(template))
        return template

    def reset(self) -> str:
        self.store.delete(KEY_PROMPT_TEMPLATE)
        logger.info("prompt_template_reset")
        return DEFAULT_PROMPT_TEMPLATE


class SummaryGenerator:
    """Renders the prompt and calls the AI endpoint."""

    def __init__(self, ai: Optional[AIClient] = None, templates: Optional[PromptTemplateStore] = None):
        self.ai = ai or AIClient()
        self.templates = templates or PromptTemplateStore()

    def build_prompt(
        self,
        client_name: str,
        project_name: str,
        pairs: Iterable[Tuple[str, Any]],
        services: Sequence[ProjectService],
        template: Optional[str] = None,
    ) -> str:
        data: Dict[str, Any] = {
            "clientName": client_name,
            "projectName": project_name,
            "surveyContext": build_survey_context(pairs),
            "serviceDescriptions": build_service_descriptions(services),
        }
        return render(template if template is not None else self.templates.load(), data)

    async def generate_summary(
        self,
        client_name: str,
        project_name: str,
        pairs: Iterable[Tuple[str, Any]],
        services: Sequence[ProjectService],
        template: Optional[str] = None,
    ) -> str:
        """Executive summary for the project.

        With no services the AI endpoint is not called and a placeholder
        is returned.

        Raises:
            AIGenerationError: The completion failed.
        """
        if not services:
            logger.info("summary_skipped_no_services", project_name=project_name)
            return NO_SERVICES_SUMMARY

        prompt = self.build_prompt(client_name, project_name, pairs, services, template)
        summary = await self.ai.generate(prompt)
        logger.info("summary_generated", project_name=project_name, length=len(summary))
        return summary
