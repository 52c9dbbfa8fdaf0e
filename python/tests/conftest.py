"""
Pytest configuration and fixtures for Sensei tutor gateway tests
"""

import pytest
import pytest_asyncio
import httpx
from unittest.mock import Mock, AsyncMock

from tutor_gateway.models import (
    EnrollmentRecord,
    LearningRecords,
    LessonRecord,
    QuizSubmission,
    RequestCategory,
)
from tutor_gateway.services.completion_router import CompletionRouter, RouterSettings
from tutor_gateway.services.provider_catalog import ProviderCatalog, ProviderConfig


@pytest.fixture
def sample_records():
    """A student two lessons into one course with two graded quizzes"""
    return LearningRecords(
        student_id="stu-1",
        full_name="Aiko Tanaka",
        email="aiko@example.com",
        enrollments=[
            EnrollmentRecord(course_id="jp101", course_title="Japanese 101", enrolled_at="2026-01-10T09:00:00Z"),
        ],
        quiz_submissions=[
            QuizSubmission(quiz_id="q2", quiz_title="Particles", score=9, total_points=10,
                           submitted_at="2026-02-02T10:00:00Z"),
            QuizSubmission(quiz_id="q1", quiz_title="Hiragana", score=7, total_points=10,
                           submitted_at="2026-01-20T10:00:00Z"),
        ],
        watch_time_seconds=3 * 3600 + 25 * 60,
        course_lessons={
            "jp101": [
                LessonRecord(lesson_id="l1", title="Greetings"),
                LessonRecord(lesson_id="l2", title="Self Introduction"),
                LessonRecord(lesson_id="l3", title="Numbers"),
            ]
        },
        completed_lesson_ids=["l1"],
    )


@pytest.fixture
def three_provider_catalog():
    """Three qa providers on a fake host so MockTransport can tell them apart"""
    template = "https://providers.test/{model}"
    return ProviderCatalog({
        RequestCategory.QA: (
            ProviderConfig("first/model", endpoint_template=template, parameters={"max_new_tokens": 64}),
            ProviderConfig("second/model", endpoint_template=template, parameters={"max_new_tokens": 64}),
            ProviderConfig("third/model", endpoint_template=template, parameters={"max_new_tokens": 64}),
        ),
    })


@pytest_asyncio.fixture
async def router_factory():
    """Build a CompletionRouter whose provider calls are answered by `handler`"""
    created = []

    def _make(handler, catalog=None, api_key="hf_test", logger=None, **settings):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        router = CompletionRouter(
            catalog=catalog or ProviderCatalog.default(),
            settings=RouterSettings(api_key=api_key, **settings),
            logger=logger,
            client=client,
        )
        created.append(client)
        return router

    yield _make
    for client in created:
        await client.aclose()


@pytest.fixture
def mock_context_service():
    """Context service stand-in that never touches Redis"""
    service = Mock()
    service.context_or_default = AsyncMock()
    service.health_check = AsyncMock(return_value=True)
    return service
