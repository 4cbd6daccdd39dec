from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Locker(Base):
    __tablename__ = "lockers"

    id: Mapped[str] = mapped_column(String(8), primary_key=True)  # A007
    number: Mapped[int] = mapped_column(Integer)
    zone: Mapped[str] = mapped_column(String(4))
    size: Mapped[str] = mapped_column(String(8))  # small / medium / large
    status: Mapped[str] = mapped_column(String(16))  # available / rented / out_of_service

    # Rental columns are all NULL unless status == rented
    session_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pin: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_locked: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    paid_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    overstay_charge: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def clear_rental(self) -> None:
        self.session_token = None
        self.start_time = None
        self.end_time = None
        self.duration_hours = None
        self.pin = None
        self.phone = None
        self.email = None
        self.is_locked = None
        self.paid_amount = None
        self.overstay_charge = None


Index("ix_lockers_status", Locker.status)
