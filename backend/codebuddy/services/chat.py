"""Chat Endpoint Handler: resolves the session, records the user's message,
builds the prompt, and either completes the turn or hands it to the relay."""

import logging
from dataclasses import dataclass
from typing import Optional

from codebuddy.core.config import settings
from codebuddy.core.errors import SessionNotFoundError, ValidationError
from codebuddy.models.chat import as_utc
from codebuddy.schemas.chat import ChatRequest, ChatResponse, HistoryTurn
from codebuddy.services.completion import CompletionClient
from codebuddy.services.llm.base import Message
from codebuddy.services.relay import PersistenceContext
from codebuddy.services.session_store import SessionStore

logger = logging.getLogger(__name__)

# Wire sender -> provider role
HISTORY_ROLES = {"user": "user", "ai": "assistant"}


def make_title(message: str, max_length: int = 30) -> str:
    if len(message) > max_length:
        return message[:max_length] + "..."
    return message


def build_prompt(system_prompt: str, history: list[HistoryTurn], message: str) -> list[Message]:
    """System instruction, then the prior turns, then the new user message."""
    messages = [Message(role="system", content=system_prompt)]
    messages.extend(Message(role=HISTORY_ROLES[turn.sender], content=turn.content) for turn in history)
    messages.append(Message(role="user", content=message))
    return messages


@dataclass
class ChatTurn:
    user_id: int
    session_id: int
    is_new_session: bool
    messages: list[Message]

    @property
    def context(self) -> PersistenceContext:
        return PersistenceContext(
            session_id=self.session_id,
            user_id=self.user_id,
            is_new_session=self.is_new_session,
        )


class ChatService:
    def __init__(
        self,
        store: SessionStore,
        completion_client: CompletionClient,
        system_prompt: str = settings.system_prompt,
        title_max_length: int = settings.title_max_length,
    ):
        self.store = store
        self.completion_client = completion_client
        self.system_prompt = system_prompt
        self.title_max_length = title_max_length

    def start_turn(self, user_id: int, request: ChatRequest, client_info: Optional[str] = None) -> ChatTurn:
        """Validate, resolve or create the session, and store the user's message.

        The user's message is stored before any provider call, so a storage
        failure here aborts the turn without touching the provider.
        """
        message = request.message
        if not message.strip():
            raise ValidationError("Message is required")

        if request.session_id is None:
            chat_session = self.store.create_session(
                user_id,
                make_title(message, self.title_max_length),
                {"source": "web", "client": client_info},
            )
            is_new_session = True
        else:
            chat_session = self.store.get_session(request.session_id)
            if chat_session is None or chat_session.user_id != user_id:
                raise SessionNotFoundError(request.session_id)
            is_new_session = False

        self.store.append_message(chat_session.id, user_id, "user", message)
        logger.info(f"Turn started: session={chat_session.id}, new={is_new_session}, history={len(request.conversation_history)}")

        return ChatTurn(
            user_id=user_id,
            session_id=chat_session.id,
            is_new_session=is_new_session,
            messages=build_prompt(self.system_prompt, request.conversation_history, message),
        )

    async def complete_turn(self, turn: ChatTurn) -> ChatResponse:
        """Blocking path. ProviderError propagates with only the user message stored."""
        reply = await self.completion_client.complete(turn.messages)
        ai_message = self.store.append_message(
            turn.session_id,
            turn.user_id,
            "ai",
            reply,
            None,
            {"model": self.completion_client.model, "streamed": False},
        )
        return ChatResponse(
            response=reply,
            timestamp=as_utc(ai_message.timestamp).isoformat(),
            session_id=turn.session_id,
            is_new_session=turn.is_new_session,
        )
