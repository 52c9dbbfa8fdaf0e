"""
FastAPI dependencies shared by main and the routers
"""
import os
from typing import Optional

import redis.asyncio as redis
from fastapi import HTTPException

from .services.tutor_chat_service import TutorChatService


redis_client = None
# set by main on startup
tutor_chat_service: Optional[TutorChatService] = None

async def get_redis():
    """Dependency to get Redis client instance"""
    global redis_client

    if redis_client is None:
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
        try:
            redis_client = redis.from_url(redis_url, decode_responses=True)
            await redis_client.ping()
        except Exception as e:
            redis_client = None
            raise HTTPException(
                status_code=503,
                detail=f"Redis service not available: {e}"
            )

    return redis_client

async def get_tutor_chat_service() -> TutorChatService:
    """Dependency to get the tutor chat service instance"""
    if tutor_chat_service is None:
        raise HTTPException(
            status_code=503,
            detail="Tutor chat service not available"
        )
    return tutor_chat_service

async def get_optional_tutor_chat_service() -> Optional[TutorChatService]:
    """Chat must answer even before startup finished, so no 503 here"""
    return tutor_chat_service
