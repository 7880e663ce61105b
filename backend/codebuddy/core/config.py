from pathlib import Path

from pydantic_settings import BaseSettings

SYSTEM_PROMPT = """You are Code Buddy, an AI coding assistant.
Help the user with programming questions: explain concepts clearly, show short
runnable code examples in fenced markdown blocks, and point out pitfalls.
Be concise. If a question is ambiguous, state the assumption you made."""


class Settings(BaseSettings):
    app_name: str = "Code Buddy"
    debug: bool = False

    # Database
    db_url: str = f"sqlite:///{Path(__file__).resolve().parent.parent.parent / 'codebuddy.db'}"

    # LLM
    llm_provider: str = "openai"  # openai | gemini
    openai_api_key: str = ""
    gemini_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1000
    system_prompt: str = SYSTEM_PROMPT

    # Streaming: seconds to wait for the next delta, 0 disables
    stream_idle_timeout: float = 60.0

    # Chat sessions
    title_max_length: int = 30
    session_list_limit: int = 10
    default_user_id: int = 1

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "CODEBUDDY_",
    }


settings = Settings()
