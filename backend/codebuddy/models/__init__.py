from codebuddy.models.chat import ChatMessage, ChatSession

__all__ = ["ChatMessage", "ChatSession"]
