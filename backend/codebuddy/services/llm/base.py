"""Abstract LLM provider interface. All providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator


@dataclass
class Message:
    role: str  # "user" | "assistant" | "system"
    content: str


@dataclass
class LLMResponse:
    content: str | None
    usage: dict = field(default_factory=dict)


class BaseLLMProvider(ABC):
    model: str

    @abstractmethod
    async def chat(self, messages: list[Message]) -> LLMResponse:
        """Send messages and get the finished response."""
        ...

    @abstractmethod
    def chat_stream(self, messages: list[Message]) -> AsyncIterator[str]:
        """Stream a chat response delta by delta."""
        ...
