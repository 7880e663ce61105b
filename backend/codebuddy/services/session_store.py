"""Session Store: append-only persistence for chat sessions and messages.

Concurrent appends to the same session are not serialized here. Messages are
ordered by timestamp, then by id, so two requests racing on one session both
land and read back in write order rather than request-arrival order.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from codebuddy.core.errors import StorageError
from codebuddy.models.chat import ChatMessage, ChatSession

logger = logging.getLogger(__name__)


@dataclass
class SessionPreview:
    session: ChatSession
    latest_message: Optional[ChatMessage]


class SessionStore:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, *objects) -> None:
        try:
            for obj in objects:
                self.db.add(obj)
            self.db.commit()
            for obj in objects:
                self.db.refresh(obj)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Storage write failed: {e}")
            raise StorageError("Failed to save chat data") from e

    def create_session(self, user_id: int, title: str, metadata: Optional[dict] = None) -> ChatSession:
        chat_session = ChatSession(user_id=user_id, title=title, meta=metadata or {})
        self._commit(chat_session)
        logger.debug(f"Created chat session {chat_session.id} for user {user_id}")
        return chat_session

    def get_session(self, session_id: int) -> Optional[ChatSession]:
        try:
            return self.db.get(ChatSession, session_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load chat session {session_id}") from e

    def update_session_title(self, session_id: int, title: str) -> Optional[ChatSession]:
        chat_session = self.get_session(session_id)
        if not chat_session:
            return None
        chat_session.title = title
        chat_session.updated_at = datetime.now(timezone.utc)
        self._commit(chat_session)
        return chat_session

    def list_sessions(self, user_id: int, limit: Optional[int] = None) -> list[SessionPreview]:
        """The user's sessions, most recently updated first, with their latest message."""
        query = (
            select(ChatSession)
            .where(ChatSession.user_id == user_id)
            .order_by(col(ChatSession.updated_at).desc(), col(ChatSession.id).desc())
        )
        if limit is not None:
            query = query.limit(limit)
        try:
            sessions = self.db.exec(query).all()
            return [SessionPreview(session=s, latest_message=self._latest_message(s.id)) for s in sessions]
        except SQLAlchemyError as e:
            raise StorageError("Failed to list chat sessions") from e

    def _latest_message(self, session_id: int) -> Optional[ChatMessage]:
        return self.db.exec(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(col(ChatMessage.timestamp).desc(), col(ChatMessage.id).desc())
            .limit(1)
        ).first()

    def append_message(
        self,
        session_id: int,
        user_id: int,
        sender: str,
        content: str,
        html: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> ChatMessage:
        """Append a message and bump the session's updated_at.

        Turn order (user then ai) is the caller's responsibility.
        """
        message = ChatMessage(
            session_id=session_id,
            user_id=user_id,
            sender=sender,
            content=content,
            content_html=html,
            meta=metadata or {},
        )
        objects = [message]
        chat_session = self.get_session(session_id)
        if chat_session:
            chat_session.updated_at = message.timestamp
            objects.append(chat_session)
        self._commit(*objects)
        return message

    def list_messages(self, session_id: int) -> list[ChatMessage]:
        try:
            return list(
                self.db.exec(
                    select(ChatMessage)
                    .where(ChatMessage.session_id == session_id)
                    .order_by(col(ChatMessage.timestamp), col(ChatMessage.id))
                ).all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load messages for session {session_id}") from e
