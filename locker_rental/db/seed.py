from typing import Iterable, List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from locker_rental.db.models import Locker
from locker_rental.db.repositories.locker import LockerRepository
from locker_rental.schemas import LockerSize, LockerStatus

# zone letter, lockers in zone
DEFAULT_ZONES: Tuple[Tuple[str, int], ...] = (("A", 20), ("B", 100), ("C", 20))
DEFAULT_OUT_OF_SERVICE: Tuple[str, ...] = ("B025", "B076")

SIZES = (LockerSize.SMALL, LockerSize.MEDIUM, LockerSize.LARGE)


def locker_id_for(zone: str, index: int) -> str:
    return f"{zone}{index:03d}"


def build_lockers(
    zones: Iterable[Tuple[str, int]] = DEFAULT_ZONES,
    out_of_service: Iterable[str] = DEFAULT_OUT_OF_SERVICE,
) -> List[Locker]:
    broken = set(out_of_service)
    lockers: List[Locker] = []
    number = 0
    for zone, count in zones:
        for index in range(1, count + 1):
            number += 1
            locker_id = locker_id_for(zone, index)
            status = LockerStatus.OUT_OF_SERVICE if locker_id in broken else LockerStatus.AVAILABLE
            lockers.append(
                Locker(
                    id=locker_id,
                    number=number,
                    zone=zone,
                    size=SIZES[index % 3].value,
                    status=status.value,
                )
            )
    return lockers


def seed_registry(session: Session, lockers: Optional[Iterable[Locker]] = None) -> int:
    """Insert the kiosk layout into an empty registry. Returns lockers added."""
    repo = LockerRepository(session)
    if repo.count() > 0:
        logger.debug("Locker registry already populated, skipping seed")
        return 0

    added = 0
    for locker in lockers if lockers is not None else build_lockers():
        repo.create_locker(locker)
        added += 1

    logger.info(f"Seeded locker registry with {added} lockers")
    return added
