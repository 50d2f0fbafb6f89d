"""Unit tests for prompt rendering and summary generation."""

from unittest.mock import AsyncMock

import pytest

from config.errors import AIGenerationError
from models.scopestack import ProjectService
from services.summary_generator import (
    DEFAULT_PROMPT_TEMPLATE,
    NO_SERVICES_SUMMARY,
    PLACEHOLDERS,
    PromptTemplateStore,
    SummaryGenerator,
    build_service_descriptions,
    build_survey_context,
    render,
    survey_pairs,
)


def _service(service_id, name, position):
    return ProjectService(
        id=str(service_id),
        name=name,
        quantity=1,
        total_hours=4.5,
        description=f"{name} work",
        position=position,
    )


class TestRender:
    """Tests for template placeholder substitution."""

    def test_substitutes_known_placeholders(self):
        prompt = render("Hi {{clientName}}, re {{projectName}}", {"clientName": "Acme", "projectName": "Rollout"})

        assert prompt == "Hi Acme, re Rollout"

    def test_unused_placeholder_is_left_verbatim(self):
        prompt = render("{{clientName}}: {{surveyContext}}", {"clientName": "Acme"})

        assert prompt == "Acme: {{surveyContext}}"

    def test_every_occurrence_is_replaced(self):
        prompt = render("{{clientName}} / {{clientName}}", {"clientName": "Acme"})

        assert prompt == "Acme / Acme"

    def test_render_is_pure(self):
        template = "Hi {{clientName}}"
        data = {"clientName": "Acme"}

        first = render(template, data)
        second = render(template, data)

        assert first == second
        assert template == "Hi {{clientName}}"
        assert data == {"clientName": "Acme"}

    def test_default_template_uses_every_placeholder(self):
        for name in PLACEHOLDERS:
            assert "{{" + name + "}}" in DEFAULT_PROMPT_TEMPLATE


class TestContextBuilders:
    """Tests for survey context and service descriptions."""

    def test_survey_context_blocks(self):
        context = build_survey_context([("Industry", "Retail"), ("How many sites?", 3)])

        assert context == "QUESTION: Industry\nANSWER: Retail\n\nQUESTION: How many sites?\nANSWER: 3"

    def test_survey_pairs_skip_deleted_questions(self, sample_questions):
        pairs = survey_pairs(sample_questions, {"legacy": "old", "site_count": 3, "industry": "Retail"})

        assert pairs == [("Industry", "Retail"), ("How many sites?", 3)]

    def test_services_sorted_stably_by_position(self):
        services = [
            _service(1, "Deploy", 2),
            _service(2, "Design", 1),
            _service(3, "Train", 2),
            _service(4, "Extras", None),
        ]

        text = build_service_descriptions(services)

        names = [line.split(": ", 1)[1] for line in text.splitlines() if line.startswith("SERVICE:")]
        assert names == ["Design", "Deploy", "Train", "Extras"]

    def test_service_block_lists_all_fields(self):
        text = build_service_descriptions([_service(1, "Design", 1)])

        assert text == "SERVICE: Design\nQUANTITY: 1\nHOURS: 4.5\nDESCRIPTION: Design work"


class TestPromptTemplateStore:
    """Tests for the persisted prompt template."""

    def test_default_when_absent(self, local_store):
        assert PromptTemplateStore(local_store).load() == DEFAULT_PROMPT_TEMPLATE

    def test_save_and_reset(self, local_store):
        store = PromptTemplateStore(local_store)

        store.save("Summarize {{projectName}}")
        assert store.load() == "Summarize {{projectName}}"

        assert store.reset() == DEFAULT_PROMPT_TEMPLATE
        assert store.load() == DEFAULT_PROMPT_TEMPLATE


class TestSummaryGenerator:
    """Tests for SummaryGenerator."""

    @pytest.mark.asyncio
    async def test_no_services_skips_ai(self, local_store):
        ai = AsyncMock()
        generator = SummaryGenerator(ai=ai, templates=PromptTemplateStore(local_store))

        summary = await generator.generate_summary("Acme", "Rollout", [], [])

        assert summary == NO_SERVICES_SUMMARY
        ai.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_renders_stored_template(self, local_store):
        ai = AsyncMock()
        ai.generate.return_value = "Executive summary text"
        templates = PromptTemplateStore(local_store)
        templates.save("{{clientName}}|{{projectName}}|{{surveyContext}}")
        generator = SummaryGenerator(ai=ai, templates=templates)

        summary = await generator.generate_summary("Acme", "Rollout", [("Industry", "Retail")], [_service(1, "Design", 1)])

        assert summary == "Executive summary text"
        ai.generate.assert_awaited_once_with("Acme|Rollout|QUESTION: Industry\nANSWER: Retail")

    @pytest.mark.asyncio
    async def test_explicit_template_overrides_stored(self, local_store):
        ai = AsyncMock()
        ai.generate.return_value = "ok"
        generator = SummaryGenerator(ai=ai, templates=PromptTemplateStore(local_store))

        await generator.generate_summary("Acme", "Rollout", [], [_service(1, "Design", 1)], template="Only {{clientName}}")

        ai.generate.assert_awaited_once_with("Only Acme")

    @pytest.mark.asyncio
    async def test_ai_errors_propagate(self, local_store):
        ai = AsyncMock()
        ai.generate.side_effect = AIGenerationError(message="quota exceeded")
        generator = SummaryGenerator(ai=ai, templates=PromptTemplateStore(local_store))

        with pytest.raises(AIGenerationError):
            await generator.generate_summary("Acme", "Rollout", [], [_service(1, "Design", 1)])
