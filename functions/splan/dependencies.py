"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from splan.assistant import Assistant
from splan.cache import Cache, NullCache
from splan.config import Settings, get_settings
from splan.db import DbClient, InMemoryDbClient, SqlDbClient, UserRecord
from splan.security import decode_access_token

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_assistant: Assistant | None = None

_bearer = HTTPBearer(auto_error=False)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_assistant(db: DbClient = Depends(get_db_client)) -> Assistant:
    global _assistant
    if _assistant and _assistant.db is db:
        return _assistant

    settings = get_settings()
    llm = None
    if settings.gemini_api_key:
        from splan.models.gemini import GeminiClient

        llm = GeminiClient(settings.gemini_api_key, model=settings.gemini_model)
    else:
        logger.warning("Gemini API key not found. AI features will use fallback responses.")
    _assistant = Assistant(
        db, llm, max_requests_per_minute=settings.ai_max_requests_per_minute
    )
    return _assistant


def get_cache(request: Request) -> Cache:
    """The cache lives on app.state; it is always present, possibly disabled."""
    cache = getattr(request.app.state, "cache", None)
    return cache if cache is not None else NullCache()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
) -> UserRecord:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access token required")
    payload = decode_access_token(credentials.credentials, settings.jwt_secret)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get_user(payload["sub"])
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user
