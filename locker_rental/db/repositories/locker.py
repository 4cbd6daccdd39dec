from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from locker_rental.core.utils import ensure_aware
from locker_rental.db.models import Locker
from locker_rental.schemas import LockerData, LockerStatus, RentalInfo


class LockerRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, locker_id: str) -> Optional[Locker]:
        return self.session.get(Locker, locker_id)

    def get_for_update(self, locker_id: str) -> Optional[Locker]:
        # Row lock on databases that support it; SQLite relies on the engine's per-locker mutex
        return self.session.execute(
            select(Locker).where(Locker.id == locker_id).with_for_update()
        ).scalar_one_or_none()

    def get_by_token(self, session_token: str) -> Optional[Locker]:
        return self.session.execute(
            select(Locker).where(Locker.session_token == session_token)
        ).scalar_one_or_none()

    def list_all(self) -> List[Locker]:
        return list(self.session.execute(select(Locker).order_by(Locker.number)).scalars())

    def list_rented(self) -> List[Locker]:
        return list(
            self.session.execute(
                select(Locker)
                .where(Locker.status == LockerStatus.RENTED.value)
                .order_by(Locker.number)
            ).scalars()
        )

    def create_locker(self, locker: Locker) -> None:
        self.session.add(locker)
        self.session.flush()

    def count(self) -> int:
        return self.session.execute(select(func.count(Locker.id))).scalar_one()

    def count_by_status(self) -> Dict[str, int]:
        rows = self.session.execute(
            select(Locker.status, func.count(Locker.id)).group_by(Locker.status)
        ).all()
        counts = {status.value: 0 for status in LockerStatus}
        counts.update({status: count for status, count in rows})
        logger.debug(f"Locker counts: {counts}")
        return counts

    @staticmethod
    def to_data(locker: Locker) -> LockerData:
        rental_info = None
        if locker.status == LockerStatus.RENTED.value:
            rental_info = RentalInfo(
                session_token=locker.session_token,
                start_time=ensure_aware(locker.start_time),
                end_time=ensure_aware(locker.end_time),
                duration_hours=locker.duration_hours,
                pin=locker.pin,
                phone=locker.phone,
                email=locker.email,
                is_locked=locker.is_locked,
                paid_amount=locker.paid_amount,
                overstay_charge=locker.overstay_charge or 0,
            )

        return LockerData(
            id=locker.id,
            number=locker.number,
            zone=locker.zone,
            size=locker.size,
            status=locker.status,
            rental_info=rental_info,
        )

    def get_locker_data(self, locker_id: str) -> Optional[LockerData]:
        locker = self.get_by_id(locker_id)
        if not locker:
            return None
        return self.to_data(locker)


__all__ = ["LockerRepository"]
