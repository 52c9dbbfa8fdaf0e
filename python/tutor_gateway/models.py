"""
Pydantic models for the tutor gateway request/response cycle.
Chat payloads keep the camelCase field names the web client already sends.
"""

from pydantic import BaseModel, Field, validator
from typing import List, Optional, Dict, Any, Literal
from enum import Enum


class RequestCategory(str, Enum):
    """Classified intent of a chat message"""
    QA = "qa"
    GRAMMAR = "grammar"
    TRANSLATION = "translation"
    SUMMARIZATION = "summarization"
    GENERAL = "general"


TranslationDirection = Literal["en-jp", "jp-en"]


class ErrorDetail(BaseModel):
    """Error detail for API responses"""
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: Literal["healthy", "degraded", "unhealthy"]
    services: Dict[str, bool] = {}
    version: str = "1.0.0"
    timestamp: str


# === Conversation ===

class ConversationTurn(BaseModel):
    """Single prior message supplied by the client"""
    role: Literal["user", "assistant"] = Field(..., description="Message sender role")
    content: str = Field(..., description="Message content")


class ChatRequest(BaseModel):
    """
    Inbound tutor chat request.

    History entries the tutor cannot use (system turns, non-string content,
    junk objects) are dropped instead of failing the whole request.
    """
    message: str = Field(default="", max_length=4000, description="User message/question")
    conversation_history: List[ConversationTurn] = Field(
        default=[], alias="conversationHistory", description="Prior turns, oldest first"
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "message": "What is the difference between は and が?",
                "conversationHistory": [
                    {"role": "user", "content": "Hi Sensei!"},
                    {"role": "assistant", "content": "こんにちは! How can I help?"}
                ]
            }
        }

    @validator("message", pre=True)
    def non_string_message_is_empty(cls, v):
        return v if isinstance(v, str) else ""

    @validator("conversation_history", pre=True)
    def drop_unusable_turns(cls, v):
        if not isinstance(v, list):
            return []
        return [
            turn for turn in v
            if isinstance(turn, dict)
            and turn.get("role") in ("user", "assistant")
            and isinstance(turn.get("content"), str)
        ]


class ChatResponse(BaseModel):
    """Tutor reply; requestType is omitted when the request never got classified"""
    response: str = Field(..., min_length=1)
    request_type: Optional[RequestCategory] = Field(None, alias="requestType")

    class Config:
        populate_by_name = True


# === Student context ===

class EnrollmentSummary(BaseModel):
    course_id: str
    course_title: str
    enrolled_at: Optional[str] = None


class LearningTime(BaseModel):
    hours: int = 0
    minutes: int = 0
    formatted: str = "0h 0m"


class StudentStatus(BaseModel):
    level: Literal["Beginner", "Intermediate", "Advanced", "Expert"] = "Beginner"
    score: int = Field(default=0, ge=0, le=100)
    description: str = ""
    improvements: List[str] = []


class QuizPerformance(BaseModel):
    total_quizzes: int = 0
    average_score: int = 0
    recent_scores: List[float] = []


class ActivityItem(BaseModel):
    type: str
    title: str
    date: str
    score: Optional[str] = None


class StudentContextSnapshot(BaseModel):
    """
    Point-in-time view of a student's learning state.
    Built fresh per request and never mutated afterwards.
    """
    student_id: str
    student_name: str = "Student"
    enrollments: List[EnrollmentSummary] = []
    learning_time: LearningTime = Field(default_factory=LearningTime)
    student_status: StudentStatus = Field(default_factory=StudentStatus)
    quiz_performance: QuizPerformance = Field(default_factory=QuizPerformance)
    recent_activity: List[ActivityItem] = []
    weak_areas: List[str] = []
    strengths: List[str] = []
    next_steps: List[str] = []

    class Config:
        frozen = True


# === Learning records (aggregator input) ===

class EnrollmentRecord(BaseModel):
    course_id: str = Field(..., min_length=1)
    course_title: str = "Course"
    enrolled_at: Optional[str] = None


class QuizSubmission(BaseModel):
    quiz_id: str
    quiz_title: Optional[str] = None
    score: float = Field(..., ge=0)
    total_points: float = Field(..., ge=0)
    submitted_at: str = Field(..., description="ISO-8601 submission timestamp")


class LessonRecord(BaseModel):
    lesson_id: str
    title: str


class LearningRecords(BaseModel):
    """
    Raw learning state for one student, as exported by the course backend.
    Quiz submissions are ordered most recent first.
    """
    student_id: str = Field(..., description="Unique student identifier")
    full_name: Optional[str] = None
    email: Optional[str] = None
    enrollments: List[EnrollmentRecord] = []
    quiz_submissions: List[QuizSubmission] = []
    watch_time_seconds: int = Field(default=0, ge=0, description="Total video watch time")
    course_lessons: Dict[str, List[LessonRecord]] = Field(default={}, description="Ordered lessons per course id")
    completed_lesson_ids: List[str] = []

    @validator("completed_lesson_ids", pre=True)
    def dedupe_completed(cls, v):
        if not v:
            return []
        return list(dict.fromkeys(str(x) for x in v))

    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email.split("@")[0]
        return "Student"


# === Routing ===

class SkipReason(str, Enum):
    """Why a provider attempt did not produce the final answer"""
    WARMING_UP = "warming_up"
    HTTP_ERROR = "http_error"
    TRANSPORT_ERROR = "transport_error"
    PROVIDER_ERROR = "provider_error"
    EMPTY_RESPONSE = "empty_response"
    SIMILAR_TO_INPUT = "similar_to_input"
    WRONG_SCRIPT = "wrong_script"


class ProviderAttempt(BaseModel):
    provider: str
    accepted: bool = False
    skip_reason: Optional[SkipReason] = None
    status_code: Optional[int] = None
    latency_ms: Optional[float] = None


class RouterResult(BaseModel):
    """Outcome of one routed completion; provider_used is None on the fallback path"""
    text: str = Field(..., min_length=1)
    category: RequestCategory
    provider_used: Optional[str] = None
    attempts: List[ProviderAttempt] = []

    @property
    def used_fallback(self) -> bool:
        return self.provider_used is None


# === Recommendations ===

class Recommendation(BaseModel):
    id: str
    title: str
    priority: int = Field(..., ge=1)
    type: str = "general"


class RecommendationsResponse(BaseModel):
    recommendations: List[Recommendation] = []
