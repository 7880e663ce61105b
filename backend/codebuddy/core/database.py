from sqlmodel import SQLModel, create_engine, Session

from codebuddy.core.config import settings

engine = create_engine(
    settings.db_url,
    echo=settings.debug,
    connect_args={"check_same_thread": False} if settings.db_url.startswith("sqlite") else {},
)


def init_db() -> None:
    import codebuddy.models  # noqa: F401 - ensure models are registered
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def get_engine():
    return engine
