"""Chat session and message models. Messages are append-only."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChatSession(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    title: str = Field(default="New Conversation")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    # "metadata" is reserved on SQLModel classes, so the attribute is named meta
    meta: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))

    messages: list["ChatMessage"] = Relationship(back_populates="session")


class ChatMessage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="chatsession.id", index=True)
    user_id: int
    sender: str  # "user" | "ai"
    content: str
    content_html: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    meta: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))

    session: Optional[ChatSession] = Relationship(back_populates="messages")
