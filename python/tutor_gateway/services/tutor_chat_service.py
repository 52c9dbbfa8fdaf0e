# Tutor Chat Service - request orchestration for the Sensei chat
# context -> classify -> route; every path ends in a non-empty reply.

import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from prometheus_client import Counter, Histogram

from ..models import (
    ChatRequest,
    ChatResponse,
    Recommendation,
    RecommendationsResponse,
    StudentContextSnapshot,
)
from .completion_router import CompletionRouter
from .fallback_responder import DEFAULT_HELP_MESSAGE
from .intent_classifier import classify
from .student_context_service import StudentContextService, default_snapshot

logger = logging.getLogger(__name__)

try:
    chat_requests_total = Counter("tutor_chat_requests_total", "Tutor chat requests", ["outcome"])
    chat_request_duration_seconds = Histogram(
        "tutor_chat_request_duration_seconds", "Tutor chat latency",
        buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0),
    )
except ValueError:
    # metrics already registered
    pass

REPHRASE_MESSAGE = "I'm here to help you with your studies! Could you please rephrase your question?"
ASK_A_QUESTION_MESSAGE = (
    "I'm here to help you with your studies! Please ask me a question. For example:\n\n"
    "• 'What is the difference between は and が?'\n"
    "• 'Translate: I am hungry'\n"
    "• 'How do I use て-form?'\n"
    "• 'What should I study next?'"
)

ANONYMOUS_STUDENT = "anonymous"


class TutorChatService:
    """
    Sensei chat orchestration.

    The HTTP layer hands over the raw JSON body; this service owns parsing so
    malformed input gets a friendly reply instead of a 4xx.
    """

    def __init__(self, router: CompletionRouter, context_service: Optional[StudentContextService] = None):
        self.router = router
        self.context_service = context_service

    async def load_context(self, student_id: Optional[str]) -> StudentContextSnapshot:
        student_id = student_id or ANONYMOUS_STUDENT
        if self.context_service is None:
            return default_snapshot(student_id)
        return await self.context_service.context_or_default(student_id)

    def parse_request(self, body: Any) -> Optional[ChatRequest]:
        if not isinstance(body, dict):
            return None
        try:
            return ChatRequest(**body)
        except (ValidationError, TypeError) as e:
            logger.info(f"Rejecting chat body: {e}")
            return None

    async def chat(self, body: Any, student_id: Optional[str] = None) -> ChatResponse:
        t0 = time.perf_counter()
        try:
            request = self.parse_request(body)
            if request is None:
                chat_requests_total.labels(outcome="invalid_body").inc()
                return ChatResponse(response=REPHRASE_MESSAGE)

            message = request.message.strip()
            if not message:
                chat_requests_total.labels(outcome="empty_message").inc()
                return ChatResponse(response=ASK_A_QUESTION_MESSAGE)

            context = await self.load_context(student_id)
            category = classify(message)
            result = await self.router.route(category, message, request.conversation_history, context)

            chat_requests_total.labels(outcome="fallback" if result.used_fallback else "provider").inc()
            return ChatResponse(response=result.text, request_type=result.category)
        except Exception as e:
            logger.exception(f"Chat request failed: {e}")
            chat_requests_total.labels(outcome="error").inc()
            return ChatResponse(response=DEFAULT_HELP_MESSAGE)
        finally:
            chat_request_duration_seconds.observe(time.perf_counter() - t0)

    async def recommendations(self, student_id: Optional[str] = None) -> RecommendationsResponse:
        """Next steps from the student's snapshot, in priority order"""
        context = await self.load_context(student_id)
        items: List[Recommendation] = [
            Recommendation(id=f"rec-{i}", title=step, priority=i + 1, type="general")
            for i, step in enumerate(context.next_steps)
        ]
        return RecommendationsResponse(recommendations=items)

    async def health_check(self) -> Dict[str, Any]:
        router_health = await self.router.health_check()
        redis_ok = await self.context_service.health_check() if self.context_service else False
        return {"router": router_health, "redis": redis_ok}

    async def close(self):
        await self.router.close()
