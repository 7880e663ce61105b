"""Shared request dependencies."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlmodel import Session

from codebuddy.core.config import settings
from codebuddy.core.database import get_session
from codebuddy.services.completion import CompletionClient
from codebuddy.services.llm import get_llm_provider
from codebuddy.services.session_store import SessionStore


@lru_cache
def get_completion_client() -> CompletionClient:
    """One provider client for the life of the process, built on first use."""
    return CompletionClient(get_llm_provider(), idle_timeout=settings.stream_idle_timeout)


def get_store(session: Session = Depends(get_session)) -> SessionStore:
    return SessionStore(session)


def get_current_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    # Authentication happens upstream; it forwards the user id in X-User-Id
    return x_user_id if x_user_id is not None else settings.default_user_id
