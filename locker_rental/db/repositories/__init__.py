from .locker import LockerRepository

__all__ = ["LockerRepository"]
