"""
FastAPI Dependencies for the Learning API
"""

from learning_api.dependencies.auth import (
    create_access_token,
    get_current_user_id,
    get_optional_user_id,
    get_request_context,
)
from learning_api.dependencies.services import (
    get_log_store,
    get_model_client,
    get_problem_generator,
    get_tutor_service,
)

__all__ = [
    "create_access_token",
    "get_current_user_id",
    "get_optional_user_id",
    "get_request_context",
    "get_log_store",
    "get_model_client",
    "get_problem_generator",
    "get_tutor_service",
]
