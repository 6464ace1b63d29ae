"""
AI Tutor Router

Endpoints for free-form study help and model status:
- POST /api/ask: single question
- POST /api/chat: conversation with history
- GET /api/health: OpenAI connectivity
- GET /api/models: model in use
"""

from datetime import datetime
from typing import Optional
import logging

from fastapi import APIRouter, Depends

from learning_api.dependencies.auth import get_optional_user_id
from learning_api.dependencies.services import get_model_client, get_tutor_service
from learning_api.schemas.problems import AskBody, ChatBody
from learning_api.services.openai_service import OpenAIModelClient
from learning_api.services.tutor_service import TutorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ai"])


@router.post("/ask")
async def ask(
    body: AskBody,
    user_id: Optional[str] = Depends(get_optional_user_id),
    tutor: TutorService = Depends(get_tutor_service),
):
    result = await tutor.ask(body.question, user_id=user_id)
    return {"success": True, **result}


@router.post("/chat")
async def chat(
    body: ChatBody,
    user_id: Optional[str] = Depends(get_optional_user_id),
    tutor: TutorService = Depends(get_tutor_service),
):
    result = await tutor.chat(body.messages, user_id=user_id)
    return {"success": True, **result}


@router.get("/health")
async def openai_health(client: OpenAIModelClient = Depends(get_model_client)):
    """Check that the configured OpenAI key works."""
    connected = await client.validate_api_key()
    return {
        "status": "ok",
        "openai": {"connected": connected, "model": client.model},
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/models")
def list_models(client: OpenAIModelClient = Depends(get_model_client)):
    return {
        "success": True,
        "models": [{"id": client.model, "name": client.model}],
        "current_model": client.model,
        "timestamp": datetime.utcnow().isoformat(),
    }
