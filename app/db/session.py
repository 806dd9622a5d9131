from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # sessions are used from the websocket tasks as well as request threads
        return {"connect_args": {"check_same_thread": False}}
    kwargs = {"pool_timeout": settings.DB_POOL_TIMEOUT, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        kwargs["connect_args"] = {"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"}
    return kwargs


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = sessionmaker(autoflush=False, autocommit=False, bind=engine)


def init_db() -> None:
    from app.db.models import Base

    Base.metadata.create_all(bind=engine)
