from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from locker_rental.config.settings import Settings


def _connect_args(database_url: str) -> dict:
    # Engine calls arrive from several threads, serialized per locker
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def get_engine(database_url: str):
    kwargs = {}
    if database_url.endswith(":memory:"):
        # one shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool
    return create_engine(
        database_url,
        pool_pre_ping=True,
        future=True,
        connect_args=_connect_args(database_url),
        **kwargs,
    )


def get_sessionmaker(settings: Settings, engine=None) -> sessionmaker:
    engine = engine or get_engine(settings.database_url)
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
