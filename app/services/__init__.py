from app.services.auth_service import (
    verify_password, get_password_hash, create_access_token,
    decode_token_claims, authenticate_user, create_user,
    verify_email_token, start_session, get_active_session, end_session,
    verify_google_id_token, get_or_create_google_user,
    get_user_by_id, get_user_by_email
)
from app.services.email_service import send_verification_email
from app.services.query_generator import build_prompt, generate_query
from app.services.ask_service import answer_question, format_query_result
from app.services.llm_key_validator import validate_key

__all__ = [
    "verify_password",
    "get_password_hash",
    "create_access_token",
    "decode_token_claims",
    "authenticate_user",
    "create_user",
    "verify_email_token",
    "start_session",
    "get_active_session",
    "end_session",
    "verify_google_id_token",
    "get_or_create_google_user",
    "get_user_by_id",
    "get_user_by_email",
    "send_verification_email",
    "build_prompt",
    "generate_query",
    "answer_question",
    "format_query_result",
    "validate_key",
]
