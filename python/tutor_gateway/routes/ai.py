import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ..dependencies import get_optional_tutor_chat_service, get_tutor_chat_service
from ..models import ChatResponse, RecommendationsResponse
from ..services.fallback_responder import DEFAULT_HELP_MESSAGE
from ..services.tutor_chat_service import REPHRASE_MESSAGE, TutorChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True, response_model_by_alias=True)
async def chat(
    request: Request,
    x_student_id: Optional[str] = Header(default=None),
    svc: Optional[TutorChatService] = Depends(get_optional_tutor_chat_service),
):
    """
    Sensei chat. Always answers 200 with a reply; malformed bodies get a
    friendly rephrase prompt rather than a validation error.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return ChatResponse(response=REPHRASE_MESSAGE)

    if svc is None:
        logger.error("Tutor chat service not initialized, answering with default help")
        return ChatResponse(response=DEFAULT_HELP_MESSAGE)

    return await svc.chat(body, student_id=x_student_id)


@router.get("/recommendations", response_model=RecommendationsResponse)
async def recommendations(
    x_student_id: Optional[str] = Header(default=None),
    svc: TutorChatService = Depends(get_tutor_chat_service),
):
    return await svc.recommendations(x_student_id)
