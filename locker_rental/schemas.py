from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from locker_rental.core.pricing import ExtensionCharge


class LockerStatus(str, Enum):
    AVAILABLE = "available"
    RENTED = "rented"
    OUT_OF_SERVICE = "out_of_service"


class LockerSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class Contact(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    pin: Optional[str] = None


class RentalInfo(BaseModel):
    session_token: str
    start_time: datetime
    end_time: datetime
    duration_hours: float
    pin: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_locked: bool
    paid_amount: int = Field(description="Cumulative amount authorized with the PSP")
    overstay_charge: int = Field(0, description="Cumulative overstay fees")


class LockerData(BaseModel):
    id: str
    number: int
    zone: str
    size: LockerSize
    status: LockerStatus
    rental_info: Optional[RentalInfo] = None


class SessionCredential(BaseModel):
    """Renter-held proof of a rental, persisted client-side."""

    locker_id: str
    session_token: str
    rented_at: datetime
    expires_at: datetime
    phone: Optional[str] = None
    email: Optional[str] = None


class RentalResult(BaseModel):
    session_token: str
    locker: LockerData

    def to_credential(self) -> SessionCredential:
        rental = self.locker.rental_info
        return SessionCredential(
            locker_id=self.locker.id,
            session_token=self.session_token,
            rented_at=rental.start_time,
            expires_at=rental.end_time,
            phone=rental.phone,
            email=rental.email,
        )


class ExtensionResult(BaseModel):
    locker: LockerData
    charge: ExtensionCharge

    @property
    def additional_charge(self) -> int:
        return self.charge.additional_charge


class AvailabilityResult(BaseModel):
    available: bool
    locker: Optional[LockerData] = None


class LockerStats(BaseModel):
    total: int = 0
    available: int = 0
    rented: int = 0
    out_of_service: int = 0


class BulkUnlockResult(BaseModel):
    count: int
    failed: List[str] = Field(default_factory=list, description="Lockers whose actuation was not confirmed")
