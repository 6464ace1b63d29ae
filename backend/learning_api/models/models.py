from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, Text
from datetime import datetime
import uuid
from learning_api.database import Base

def generate_uuid():
    return str(uuid.uuid4())

class GenerationLog(Base):
    """One problem generation attempt. Rows are inserted once and never updated."""
    __tablename__ = "problem_generation_logs"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=True, index=True)  # Null for anonymous callers

    # Payloads
    request_data = Column(JSON, nullable=False)  # GenerationRequest as submitted
    response_data = Column(JSON, nullable=True)  # Validated problem set (success only)
    raw_response = Column(Text, nullable=True)  # Model output, kept for failed validations too

    # Model usage
    model_used = Column(String, nullable=False)
    prompt_tokens = Column(Integer, nullable=True)
    completion_tokens = Column(Integer, nullable=True)
    total_tokens = Column(Integer, nullable=True)
    tokens_estimated = Column(Boolean, default=False)  # Counted from stream fragments
    response_time_ms = Column(Integer, nullable=True)

    # Outcome
    status = Column(String, nullable=False, index=True)  # "success", "error"
    error_kind = Column(String, nullable=True)  # "rate_limited", "no_json_found", etc.
    error_message = Column(Text, nullable=True)

    # Request context
    api_endpoint = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)

    # Search fields copied from request_data
    subject = Column(String, nullable=True, index=True)
    grade = Column(Integer, nullable=True)
    question_type = Column(String, nullable=True)
    question_count = Column(Integer, nullable=True)
    difficulty = Column(String, nullable=True)
    include_explanation = Column(Boolean, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
