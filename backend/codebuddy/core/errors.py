"""Error taxonomy for a chat turn."""


class ChatError(Exception):
    pass


class ValidationError(ChatError):
    """Malformed or empty input. Nothing has been written."""


class ProviderError(ChatError):
    """The language-model call failed or returned nothing usable."""


class StorageError(ChatError):
    """The persistence layer failed."""


class SessionNotFoundError(ChatError):
    def __init__(self, session_id: int):
        super().__init__(f"Chat session {session_id} not found")
        self.session_id = session_id


class ClientDisconnected(ChatError):
    """Raised by an output sink that is written after the client went away."""
