"""
Service providers for FastAPI routes.

Routes receive their collaborators through these dependencies, so tests
can swap in fakes with app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends

from learning_api.database import SessionLocal
from learning_api.services.generation_log_service import GenerationLogStore
from learning_api.services.openai_service import OpenAIModelClient
from learning_api.services.problem_generator import ProblemGenerator
from learning_api.services.tutor_service import TutorService


@lru_cache()
def get_model_client() -> OpenAIModelClient:
    """Shared model client. The underlying OpenAI client is created on first call."""
    return OpenAIModelClient()


@lru_cache()
def get_log_store() -> GenerationLogStore:
    return GenerationLogStore(SessionLocal)


def get_problem_generator(
    client: OpenAIModelClient = Depends(get_model_client),
    log_store: GenerationLogStore = Depends(get_log_store),
) -> ProblemGenerator:
    return ProblemGenerator(client, log_store)


def get_tutor_service(
    client: OpenAIModelClient = Depends(get_model_client),
) -> TutorService:
    return TutorService(client)
