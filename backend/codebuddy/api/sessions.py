"""REST API for browsing chat history."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from codebuddy.api.deps import get_current_user_id, get_store
from codebuddy.core.config import settings
from codebuddy.models.chat import ChatMessage, ChatSession, as_utc
from codebuddy.services.session_store import SessionStore

router = APIRouter()
logger = logging.getLogger(__name__)


def _session_dict(s: ChatSession) -> dict:
    return {
        "id": s.id,
        "title": s.title,
        "createdAt": as_utc(s.created_at).isoformat(),
        "updatedAt": as_utc(s.updated_at).isoformat(),
        "metadata": s.meta,
    }


def _message_dict(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "sessionId": m.session_id,
        "sender": m.sender,
        "content": m.content,
        "contentHtml": m.content_html,
        "timestamp": as_utc(m.timestamp).isoformat(),
        "metadata": m.meta,
    }


def _get_owned_session(store: SessionStore, session_id: int, user_id: int) -> ChatSession:
    chat_session = store.get_session(session_id)
    if not chat_session or chat_session.user_id != user_id:
        logger.debug(f"Chat session {session_id} not found for user {user_id}")
        raise HTTPException(status_code=404, detail="Chat session not found")
    return chat_session


@router.get("")
async def list_chat_sessions(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    store: SessionStore = Depends(get_store),
):
    previews = store.list_sessions(user_id, limit or settings.session_list_limit)
    return [
        {
            **_session_dict(p.session),
            "latestMessage": _message_dict(p.latest_message) if p.latest_message else None,
        }
        for p in previews
    ]


@router.get("/{session_id}")
async def get_chat_session(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    store: SessionStore = Depends(get_store),
):
    chat_session = _get_owned_session(store, session_id, user_id)
    return {
        **_session_dict(chat_session),
        "messages": [_message_dict(m) for m in store.list_messages(session_id)],
    }


@router.get("/{session_id}/messages")
async def list_chat_messages(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    store: SessionStore = Depends(get_store),
):
    _get_owned_session(store, session_id, user_id)
    return [_message_dict(m) for m in store.list_messages(session_id)]
