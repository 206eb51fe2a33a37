from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from app.core.config import settings
from app.db.base import Base

def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine = the DB connection factory"""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # in-memory sqlite must share a single connection or every session sees an empty db
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, future=True)

def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    # SessionLocal = the session factory
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )

def init_db(engine: Engine) -> None:
    # Registers models on Base.metadata before creating tables
    import app.models.storage_entry  # noqa: F401

    Base.metadata.create_all(bind=engine)

engine = make_engine(settings.database_url, echo=settings.db_echo)
SessionLocal = make_session_factory(engine)
