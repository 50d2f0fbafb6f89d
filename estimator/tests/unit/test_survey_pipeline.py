"""Unit tests for the survey pipeline."""

import json

import pytest

from config.errors import DataIntegrityError, ErrorCode, PipelineError, WorkflowTimeoutError
from services.survey_pipeline import SurveyPhase, SurveyPipeline, build_survey_responses
from tests.fixtures.mock_scopestack import resource, scoped


def _status(value):
    return {"data": resource("surveys", 9, status=value)}


@pytest.fixture
def survey_routes(fake_scopestack):
    fake_scopestack.on("POST", scoped("/v1/surveys"), (201, {"data": resource("surveys", 9, name="P Survey")}))
    fake_scopestack.on("PUT", scoped("/v1/surveys/9/calculate"), {"data": resource("surveys", 9, status="calculating")})
    fake_scopestack.on("PUT", scoped("/v1/surveys/9/apply"), {"data": resource("surveys", 9, status="applied")})
    return fake_scopestack


class TestBuildSurveyResponses:
    """Tests for turning answers into response triples."""

    def test_follows_question_order_and_skips_blanks(self, sample_questions):
        responses = build_survey_responses(
            sample_questions,
            {"site_count": 3, "industry": "Retail"},
        )

        assert [r.to_payload() for r in responses] == [
            {"question-id": "101", "question": "Industry", "answer": "Retail"},
            {"question-id": "102", "question": "How many sites?", "answer": 3},
        ]

    def test_blank_answers_are_not_submitted(self, sample_questions):
        responses = build_survey_responses(sample_questions, {"industry": "Retail", "site_count": "  "})

        assert [r.question_id for r in responses] == ["101"]

    def test_deleted_question_answer_is_rejected(self, sample_questions):
        with pytest.raises(DataIntegrityError) as exc_info:
            build_survey_responses(sample_questions, {"industry": "Retail", "legacy": "x"})

        assert exc_info.value.slug == "legacy"

    def test_unknown_slug_is_rejected(self, sample_questions):
        with pytest.raises(DataIntegrityError):
            build_survey_responses(sample_questions, {"not_a_question": "x"})


class TestSurveyPipeline:
    """Tests for SurveyPipeline."""

    @pytest.mark.asyncio
    async def test_run_creates_calculates_polls_and_applies(self, api, survey_routes, sample_questions):
        survey_routes.on(
            "GET",
            scoped("/v1/surveys/9"),
            _status("calculating"),
            _status("calculating"),
            _status("completed"),
        )
        pipeline = SurveyPipeline(api, poll_interval=0, max_poll_attempts=5)
        responses = build_survey_responses(sample_questions, {"industry": "Retail"})

        outcome = await pipeline.run("55", "12", "1", "Network Refresh", responses)

        assert outcome.survey_id == "9"
        assert outcome.final_status == "completed"
        assert outcome.phases == [
            SurveyPhase.CREATED.value,
            SurveyPhase.CALCULATING.value,
            SurveyPhase.COMPLETED.value,
            SurveyPhase.APPLIED.value,
        ]
        assert len(survey_routes.calls("GET", scoped("/v1/surveys/9"))) == 3

        order = [(r.method, r.url.path) for r in survey_routes.requests]
        assert order[0] == ("POST", scoped("/v1/surveys"))
        assert order[1] == ("PUT", scoped("/v1/surveys/9/calculate"))
        assert order[-1] == ("PUT", scoped("/v1/surveys/9/apply"))

        data = json.loads(survey_routes.requests[0].content)["data"]
        assert data["attributes"]["name"] == "Network Refresh Survey"
        assert data["attributes"]["responses"] == [
            {"question-id": "101", "question": "Industry", "answer": "Retail"}
        ]
        assert data["relationships"]["questionnaire"]["data"]["id"] == "12"
        assert data["relationships"]["project"]["data"]["id"] == "55"

    @pytest.mark.asyncio
    async def test_any_non_calculating_status_ends_polling(self, api, survey_routes):
        survey_routes.on("GET", scoped("/v1/surveys/9"), _status("recalculated"))
        pipeline = SurveyPipeline(api, poll_interval=0, max_poll_attempts=5)

        status = await pipeline.await_completion("9")

        assert status == "recalculated"
        assert pipeline.phase == SurveyPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_calculation_raises(self, api, survey_routes):
        survey_routes.on("GET", scoped("/v1/surveys/9"), _status("failed"))
        pipeline = SurveyPipeline(api, poll_interval=0, max_poll_attempts=5)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.await_completion("9")

        assert exc_info.value.code == ErrorCode.SURVEY_CALCULATION_FAILED

    @pytest.mark.asyncio
    async def test_polling_is_bounded(self, api, survey_routes):
        survey_routes.on("GET", scoped("/v1/surveys/9"), _status("calculating"))
        pipeline = SurveyPipeline(api, poll_interval=0, max_poll_attempts=3)

        with pytest.raises(WorkflowTimeoutError) as exc_info:
            await pipeline.run("55", "12", "1", "P", [])

        assert exc_info.value.code == ErrorCode.SURVEY_TIMEOUT
        assert exc_info.value.stage == "survey"
        assert len(survey_routes.calls("GET", scoped("/v1/surveys/9"))) == 3
        assert survey_routes.calls("PUT", scoped("/v1/surveys/9/apply")) == []

    @pytest.mark.asyncio
    async def test_fetch_recommendations(self, api, fake_scopestack):
        fake_scopestack.on(
            "GET",
            scoped("/v1/surveys/9/recommendations"),
            {"data": [resource("survey-recommendations", 1, quantity=2)]},
        )
        pipeline = SurveyPipeline(api)

        recommendations = await pipeline.fetch_recommendations("9")

        assert recommendations[0]["attributes"]["quantity"] == 2
