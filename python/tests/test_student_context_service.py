import pytest, pytest_asyncio, json
from unittest.mock import AsyncMock, Mock

from tutor_gateway.models import LearningRecords, QuizSubmission
from tutor_gateway.services.student_context_service import (
    StudentContextError,
    StudentContextService,
    aggregate,
    default_snapshot,
    learning_time,
    student_status,
)

try:
    import fakeredis.aioredis as fakeredis
except Exception:
    fakeredis = None

@pytest_asyncio.fixture
async def r():
    if fakeredis is None:
        pytest.skip("fakeredis not installed")
    rr = fakeredis.FakeRedis(decode_responses=True)
    yield rr
    await rr.flushall(); await rr.aclose()

def _service(r):
    # generous timeout; fakeredis is in-process
    return StudentContextService(r, op_timeout_ms=1000)

@pytest.mark.asyncio
async def test_put_get_roundtrip(r, sample_records):
    s = _service(r)
    ok = await s.put_records(sample_records); assert ok
    out = await s.get_records("stu-1")
    assert out is not None and out.full_name == "Aiko Tanaka"
    assert out.course_lessons["jp101"][1].title == "Self Introduction"
    assert await r.ttl("learning_records:stu-1") > 0

@pytest.mark.asyncio
async def test_patch_creates_and_merges(r, sample_records):
    s = _service(r)
    created = await s.patch_records("new-1", {"watch_time_seconds": 7200})
    assert created.student_id == "new-1" and created.watch_time_seconds == 7200

    await s.put_records(sample_records)
    merged = await s.patch_records("stu-1", {"completed_lesson_ids": ["l1", "l2", "l2"], "student_id": "evil"})
    assert merged.student_id == "stu-1"
    assert merged.completed_lesson_ids == ["l1", "l2"]
    assert merged.full_name == "Aiko Tanaka"

@pytest.mark.asyncio
async def test_gather_context_from_stored_records(r, sample_records):
    s = _service(r)
    await s.put_records(sample_records)
    ctx = await s.gather_context("stu-1")
    assert ctx.student_name == "Aiko Tanaka"
    assert ctx.quiz_performance.average_score == 80
    assert ctx.next_steps[0] == 'Continue with "Self Introduction" in Japanese 101'

@pytest.mark.asyncio
async def test_gather_context_for_unknown_student(r):
    ctx = await _service(r).gather_context("ghost")
    assert ctx.student_name == "Student"
    assert ctx.next_steps == [
        "Enroll in your first course to begin learning",
        "Take a quiz to test your knowledge",
        "Watch more course videos to increase learning time",
    ]

@pytest.mark.asyncio
async def test_redis_failure_raises_then_defaults():
    broken = Mock()
    broken.get = AsyncMock(side_effect=ConnectionError("redis down"))
    s = StudentContextService(broken)
    with pytest.raises(StudentContextError):
        await s.gather_context("stu-1")
    ctx = await s.context_or_default("stu-1")
    assert ctx == default_snapshot("stu-1")
    assert await s.get_records("stu-1") is None

@pytest.mark.asyncio
async def test_corrupt_records_fall_back(r):
    await r.set("learning_records:bad", "{not json")
    ctx = await _service(r).context_or_default("bad")
    assert ctx.next_steps == ["Start learning to see your progress"]

def test_default_snapshot_shape():
    snap = default_snapshot("s1")
    assert snap.student_name == "Student"
    assert snap.student_status.level == "Beginner" and snap.student_status.score == 0
    assert snap.learning_time.formatted == "0h 0m"
    assert snap.next_steps == ["Start learning to see your progress"]

def test_aggregate_metrics(sample_records):
    ctx = aggregate(sample_records)
    assert ctx.quiz_performance.total_quizzes == 2
    assert ctx.quiz_performance.recent_scores == [90.0, 70.0]
    assert ctx.recent_activity[0].title == "Particles"
    assert ctx.recent_activity[0].score == "9/10"
    assert ctx.recent_activity[0].date == "2026-02-02"
    assert ctx.strengths == ["Excellent quiz performance"]
    assert ctx.weak_areas == []

def test_aggregate_weak_areas_and_zero_point_quiz():
    records = LearningRecords(
        student_id="s2",
        email="kenji@example.com",
        quiz_submissions=[
            QuizSubmission(quiz_id="q", score=3, total_points=10, submitted_at="2026-03-01T00:00:00Z"),
            QuizSubmission(quiz_id="z", score=0, total_points=0, submitted_at="2026-02-01T00:00:00Z"),
        ],
    )
    ctx = aggregate(records)
    assert ctx.student_name == "kenji"
    assert ctx.quiz_performance.average_score == 15
    assert ctx.recent_activity[0].title == "Quiz"
    assert ctx.weak_areas == [
        "Quiz performance needs improvement",
        "Low study time - consider increasing learning hours",
        "No enrolled courses - start by enrolling in a course",
    ]

def test_learning_time_formatting():
    t = learning_time(2 * 3600 + 5 * 60 + 59)
    assert (t.hours, t.minutes, t.formatted) == (2, 5, "2h 5m")

@pytest.mark.parametrize("average,hours,courses,quizzes,level", [
    (100, 12, 5, 4, "Expert"),
    (80, 3.5, 1, 2, "Advanced"),
    (50, 2, 1, 3, "Intermediate"),
    (0, 0, 0, 0, "Beginner"),
])
def test_student_status_levels(average, hours, courses, quizzes, level):
    assert student_status(average, hours, courses, quizzes).level == level

def test_student_status_improvements():
    status = student_status(50, 0.5, 1, 2)
    assert status.improvements == [
        "Focus on reviewing quiz mistakes to improve your understanding",
        "Increase your learning time by watching more course videos",
        "Enroll in more courses to broaden your knowledge",
    ]
    assert student_status(90, 20, 5, 10).improvements == ["Keep up the great work!"]
