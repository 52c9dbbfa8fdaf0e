import os, asyncio, json, logging
from typing import Optional, Dict, Any, List
from prometheus_client import Counter

from ..models import (
    ActivityItem,
    EnrollmentSummary,
    LearningRecords,
    LearningTime,
    QuizPerformance,
    QuizSubmission,
    StudentContextSnapshot,
    StudentStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = int(os.getenv("LEARNING_RECORDS_TTL_DAYS", "30"))
REDIS_OP_TIMEOUT_MS = int(os.getenv("REDIS_OP_TIMEOUT_MS", "25"))  # chat hot path

RECENT_LIMIT = 5
NEXT_STEP_COURSES = 3

try:
    records_redis_hit = Counter("learning_records_redis_hit_total", "Redis hits for learning records")
    records_redis_miss = Counter("learning_records_redis_miss_total", "Redis misses for learning records")
    context_failures = Counter("student_context_failures_total", "Context aggregations that fell back to defaults")
except ValueError:
    # metrics already registered
    pass

LEVEL_DESCRIPTIONS = {
    "Expert": "Outstanding performance! You have demonstrated excellent understanding and consistent engagement.",
    "Advanced": "Great work! You are making excellent progress and showing strong mastery of the material.",
    "Intermediate": "Good progress! Keep practicing and engaging with the material to advance further.",
    "Beginner": "You're just getting started! Keep learning and practicing to improve your skills.",
}


class StudentContextError(Exception):
    """Learning records could not be read; callers fall back to the default snapshot"""


def default_snapshot(student_id: str, student_name: str = "Student") -> StudentContextSnapshot:
    """Snapshot for a student we know nothing about"""
    return StudentContextSnapshot(
        student_id=student_id,
        student_name=student_name or "Student",
        learning_time=LearningTime(hours=0, minutes=0, formatted="0h 0m"),
        student_status=StudentStatus(level="Beginner", score=0, description="", improvements=[]),
        quiz_performance=QuizPerformance(total_quizzes=0, average_score=0, recent_scores=[]),
        next_steps=["Start learning to see your progress"],
    )


def _percentage(submission: QuizSubmission) -> float:
    if submission.total_points <= 0:
        return 0.0
    return submission.score / submission.total_points * 100


def _points(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def learning_time(watch_time_seconds: int) -> LearningTime:
    hours = watch_time_seconds // 3600
    minutes = (watch_time_seconds % 3600) // 60
    return LearningTime(hours=hours, minutes=minutes, formatted=f"{hours}h {minutes}m")


def student_status(average_score: float, total_hours: float, enrolled_courses: int, total_quizzes: int) -> StudentStatus:
    """
    Overall score out of 100: quiz average is worth 50 points, study time 30,
    course engagement 20.
    """
    quiz_score = average_score / 100 * 50

    if total_hours >= 10:
        time_score = 30
    elif total_hours >= 5:
        time_score = 20
    elif total_hours >= 1:
        time_score = 10
    else:
        time_score = 5

    if enrolled_courses >= 5:
        engagement_score = 20
    elif enrolled_courses >= 3:
        engagement_score = 15
    elif enrolled_courses >= 1:
        engagement_score = 10
    else:
        engagement_score = 0

    overall = quiz_score + time_score + engagement_score
    if overall >= 75:
        level = "Expert"
    elif overall >= 55:
        level = "Advanced"
    elif overall >= 35:
        level = "Intermediate"
    else:
        level = "Beginner"

    improvements: List[str] = []
    if average_score < 70 and total_quizzes > 0:
        improvements.append("Focus on reviewing quiz mistakes to improve your understanding")
    if total_hours < 5:
        improvements.append("Increase your learning time by watching more course videos")
    if enrolled_courses < 2:
        improvements.append("Enroll in more courses to broaden your knowledge")
    if total_quizzes == 0:
        improvements.append("Complete quizzes to track your progress")

    return StudentStatus(
        level=level,
        score=min(100, round(overall)),
        description=LEVEL_DESCRIPTIONS[level],
        improvements=improvements or ["Keep up the great work!"],
    )


def _next_steps(records: LearningRecords, total_quizzes: int, hours: int) -> List[str]:
    steps: List[str] = []
    if not records.enrollments:
        steps.append("Enroll in your first course to begin learning")
    else:
        completed = set(records.completed_lesson_ids)
        for enrollment in records.enrollments[:NEXT_STEP_COURSES]:
            lessons = records.course_lessons.get(enrollment.course_id, [])
            upcoming = next((lesson for lesson in lessons if lesson.lesson_id not in completed), None)
            if upcoming:
                steps.append(f'Continue with "{upcoming.title}" in {enrollment.course_title}')

    if total_quizzes == 0:
        steps.append("Take a quiz to test your knowledge")
    if hours < 5:
        steps.append("Watch more course videos to increase learning time")
    return steps


def aggregate(records: LearningRecords) -> StudentContextSnapshot:
    """Fold raw learning records into the snapshot the tutor prompts and fallbacks read"""
    submissions = records.quiz_submissions
    scores = [_percentage(s) for s in submissions]
    average = sum(scores) / len(scores) if scores else 0.0
    time = learning_time(records.watch_time_seconds)
    total_hours = time.hours + time.minutes / 60

    weak_areas: List[str] = []
    strengths: List[str] = []
    if average < 60 and submissions:
        weak_areas.append("Quiz performance needs improvement")
    if time.hours < 2:
        weak_areas.append("Low study time - consider increasing learning hours")
    if not records.enrollments:
        weak_areas.append("No enrolled courses - start by enrolling in a course")

    if average >= 80 and submissions:
        strengths.append("Excellent quiz performance")
    if time.hours >= 10:
        strengths.append("High engagement with learning materials")
    if len(records.enrollments) >= 3:
        strengths.append("Active participation in multiple courses")

    recent_activity = [
        ActivityItem(
            type="quiz",
            title=s.quiz_title or "Quiz",
            date=s.submitted_at[:10],
            score=f"{_points(s.score)}/{_points(s.total_points)}",
        )
        for s in submissions[:RECENT_LIMIT]
    ]

    return StudentContextSnapshot(
        student_id=records.student_id,
        student_name=records.display_name(),
        enrollments=[
            EnrollmentSummary(course_id=e.course_id, course_title=e.course_title, enrolled_at=e.enrolled_at)
            for e in records.enrollments
        ],
        learning_time=time,
        student_status=student_status(average, total_hours, len(records.enrollments), len(submissions)),
        quiz_performance=QuizPerformance(
            total_quizzes=len(submissions),
            average_score=round(average),
            recent_scores=scores[:RECENT_LIMIT],
        ),
        recent_activity=recent_activity,
        weak_areas=weak_areas,
        strengths=strengths,
        next_steps=_next_steps(records, len(submissions), time.hours),
    )


class StudentContextService:
    """
    Learning-records store and context aggregator.
    Keys:
      - learning_records:{student_id} -> JSON(LearningRecords)
    """

    def __init__(self, redis_client, ttl_days: int = DEFAULT_TTL_DAYS, op_timeout_ms: int = REDIS_OP_TIMEOUT_MS):
        self.r = redis_client
        self.ttl = ttl_days * 24 * 3600
        self.op_timeout = op_timeout_ms / 1000

    def _key(self, student_id: str) -> str:
        return f"learning_records:{student_id}"

    async def _fetch(self, key: str) -> Optional[str]:
        """GET that raises StudentContextError instead of hiding Redis failures"""
        try:
            return await asyncio.wait_for(self.r.get(key), timeout=self.op_timeout)
        except Exception as e:
            raise StudentContextError(f"GET failed for {key}: {e}") from e

    async def _setex(self, key: str, ttl: int, value: str) -> bool:
        try:
            await asyncio.wait_for(self.r.setex(key, ttl, value), timeout=self.op_timeout)
            return True
        except Exception as e:
            logger.warning(f"LearningRecords SETEX failed for {key}: {e}")
            return False

    async def _load(self, student_id: str) -> Optional[LearningRecords]:
        key = self._key(student_id)
        raw = await self._fetch(key)
        if not raw:
            records_redis_miss.inc()
            return None

        records_redis_hit.inc()
        # Refresh TTL on read
        try:
            await asyncio.wait_for(self.r.expire(key, self.ttl), timeout=self.op_timeout)
        except Exception as e:
            logger.warning(f"LearningRecords EXPIRE failed for {key}: {e}")
        try:
            return LearningRecords(**json.loads(raw))
        except (ValueError, TypeError) as e:
            raise StudentContextError(f"Corrupt learning records for {student_id}: {e}") from e

    async def get_records(self, student_id: str) -> Optional[LearningRecords]:
        try:
            return await self._load(student_id)
        except StudentContextError as e:
            logger.warning(f"LearningRecords read failed: {e}")
            return None

    async def put_records(self, records: LearningRecords) -> bool:
        payload = json.dumps(records.model_dump())
        return await self._setex(self._key(records.student_id), self.ttl, payload)

    async def patch_records(self, student_id: str, updates: Dict[str, Any]) -> Optional[LearningRecords]:
        current = await self.get_records(student_id)
        data = current.model_dump() if current else {"student_id": student_id}
        # shallow merge of known fields only
        for field_name in LearningRecords.model_fields:
            if field_name != "student_id" and field_name in updates:
                data[field_name] = updates[field_name]
        merged = LearningRecords(**data)
        if not await self.put_records(merged):
            return None
        return merged

    async def gather_context(self, student_id: str) -> StudentContextSnapshot:
        """
        Build a fresh snapshot for `student_id`.
        A student with no stored records gets the snapshot of an empty history.
        Raises StudentContextError when the store can't be read.
        """
        records = await self._load(student_id)
        if records is None:
            records = LearningRecords(student_id=student_id)
        return aggregate(records)

    async def context_or_default(self, student_id: str) -> StudentContextSnapshot:
        try:
            return await self.gather_context(student_id)
        except StudentContextError as e:
            context_failures.inc()
            logger.error(f"⚠️ Student context unavailable for {student_id}, using defaults: {e}")
            return default_snapshot(student_id)

    async def health_check(self) -> bool:
        try:
            return bool(await asyncio.wait_for(self.r.ping(), timeout=max(self.op_timeout, 0.5)))
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False
