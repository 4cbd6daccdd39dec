from .database import get_engine, get_sessionmaker
from .models import Base, Locker

__all__ = [
    "Base",
    "Locker",
    "get_sessionmaker",
    "get_engine",
]
