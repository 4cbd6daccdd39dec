import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from locker_rental.core.exceptions import (
    ActuationFailedException,
    CredentialExpiredException,
    InvalidTokenException,
    LockerNotFoundException,
    NotAvailableException,
    NotRentedException,
    PaymentDeclinedException,
)
from locker_rental.core.locks import LockerLocks
from locker_rental.core.pricing import PricingPolicy, Quote
from locker_rental.core.utils import (
    ensure_aware,
    new_session_token,
    normalize_locker_id,
    round_half_up,
    utcnow,
)
from locker_rental.db.models import Locker
from locker_rental.db.repositories.locker import LockerRepository
from locker_rental.monitoring.metrics import MetricsCollector
from locker_rental.schemas import (
    AvailabilityResult,
    BulkUnlockResult,
    Contact,
    ExtensionResult,
    LockerData,
    LockerStats,
    LockerStatus,
    RentalResult,
    SessionCredential,
)
from locker_rental.services.payment import PaymentService

RENTED = LockerStatus.RENTED.value
AVAILABLE = LockerStatus.AVAILABLE.value
OUT_OF_SERVICE = LockerStatus.OUT_OF_SERVICE.value


def _token_hint(token: str) -> str:
    return f"{token[:8]}..."


def _tokens_match(expected: str, presented: str) -> bool:
    # compare_digest only accepts ASCII str, so compare the encoded bytes
    return bool(presented) and secrets.compare_digest(expected.encode(), presented.encode())


class RentalEngine:
    """Owns the locker registry: lifecycle transitions, credentials and billing.

    Every mutating call holds the locker's mutex from the first read to the
    commit, so two callers racing for the same locker are serialized and the
    loser sees the winner's committed state. Validation always precedes the
    first write; a failed call leaves the row untouched.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        pricing: PricingPolicy,
        lock_controller,
        payment_service: Optional[PaymentService] = None,
        clock: Callable[[], datetime] = utcnow,
        locks: Optional[LockerLocks] = None,
    ):
        self.session_factory = session_factory
        self.pricing = pricing
        self.lock_controller = lock_controller
        self.payment_service = payment_service or PaymentService()
        self.clock = clock
        self.locks = locks or LockerLocks()

    # -----------------------------
    # Internal helpers
    # -----------------------------
    @staticmethod
    def _require_locker(repo: LockerRepository, locker_id: str) -> Locker:
        locker = repo.get_for_update(locker_id)
        if locker is None:
            logger.warning(f"Locker {locker_id} not found")
            raise LockerNotFoundException(locker_id)
        return locker

    @staticmethod
    def _authorize(locker: Locker, session_token: str, operation: str) -> None:
        if locker.status != RENTED:
            logger.warning(f"{operation} rejected: locker {locker.id} is {locker.status}")
            raise NotRentedException(locker.id)
        if not _tokens_match(locker.session_token, session_token):
            MetricsCollector.record_rejected_credential(operation)
            logger.warning(f"{operation} rejected: invalid session token for locker {locker.id}")
            raise InvalidTokenException(locker.id)

    def _actuate(self, locker_id: str, locked: bool) -> None:
        try:
            self.lock_controller.actuate(locker_id, locked)
        except ActuationFailedException as e:
            logger.error(f"Actuation failed for locker {locker_id}, state kept: {e.reason}")
            raise

    def _read(self) -> Session:
        return self.session_factory()

    # -----------------------------
    # Queries
    # -----------------------------
    def get(self, locker_id: str) -> Optional[LockerData]:
        with self._read() as session:
            return LockerRepository(session).get_locker_data(normalize_locker_id(locker_id))

    def list_all(self) -> List[LockerData]:
        with self._read() as session:
            return [LockerRepository.to_data(locker) for locker in LockerRepository(session).list_all()]

    def find_by_token(self, session_token: str) -> Optional[LockerData]:
        with self._read() as session:
            locker = LockerRepository(session).get_by_token(session_token)
            return LockerRepository.to_data(locker) if locker else None

    def check_availability(self, locker_id: str) -> AvailabilityResult:
        locker = self.get(locker_id)
        if locker is None:
            return AvailabilityResult(available=False, locker=None)
        return AvailabilityResult(available=locker.status == LockerStatus.AVAILABLE, locker=locker)

    def stats(self) -> LockerStats:
        with self._read() as session:
            counts = LockerRepository(session).count_by_status()
        MetricsCollector.record_locker_counts(counts)
        return LockerStats(total=sum(counts.values()), **counts)

    def quote(self, minutes: float) -> Quote:
        return self.pricing.quote(minutes)

    # -----------------------------
    # Renter operations
    # -----------------------------
    def rent(
        self,
        locker_id: str,
        duration_hours: float,
        contact: Optional[Contact] = None,
    ) -> RentalResult:
        locker_id = normalize_locker_id(locker_id)
        self.pricing.validate_duration(duration_hours)
        contact = contact or Contact()

        with self.locks.hold(locker_id), self.session_factory() as session:
            repo = LockerRepository(session)
            locker = self._require_locker(repo, locker_id)

            if locker.status != AVAILABLE:
                MetricsCollector.record_rental("not_available")
                logger.warning(f"Locker {locker_id} is not available (status={locker.status})")
                raise NotAvailableException(locker_id, locker.status)

            amount = self.pricing.price(duration_hours)
            session_token = new_session_token()

            try:
                self.payment_service.charge_or_raise(locker_id, session_token, amount)
            except PaymentDeclinedException:
                MetricsCollector.record_rental("payment_declined")
                raise

            now = self.clock()
            locker.status = RENTED
            locker.session_token = session_token
            locker.start_time = now
            locker.end_time = now + timedelta(hours=duration_hours)
            locker.duration_hours = duration_hours
            locker.pin = contact.pin or None
            locker.phone = contact.phone or None
            locker.email = contact.email or None
            # Starts unlocked so the renter can load it
            locker.is_locked = False
            locker.paid_amount = amount
            locker.overstay_charge = 0
            session.commit()

            data = repo.to_data(locker)

        MetricsCollector.record_rental("started", amount)
        logger.info(f"Locker {locker_id} rented for {duration_hours}h, paid {amount}")
        return RentalResult(session_token=session_token, locker=data)

    def unlock(self, locker_id: str, session_token: str) -> LockerData:
        return self._set_locked(locker_id, session_token, locked=False)

    def lock(self, locker_id: str, session_token: str) -> LockerData:
        return self._set_locked(locker_id, session_token, locked=True)

    def _set_locked(self, locker_id: str, session_token: str, locked: bool) -> LockerData:
        locker_id = normalize_locker_id(locker_id)
        operation = "lock" if locked else "unlock"

        with self.locks.hold(locker_id):
            with self.session_factory() as session:
                repo = LockerRepository(session)
                locker = self._require_locker(repo, locker_id)
                self._authorize(locker, session_token, operation)

                locker.is_locked = locked
                session.commit()
                data = repo.to_data(locker)

            # Committed first: a controller failure never reverts the recorded state
            self._actuate(locker_id, locked)

        logger.info(f"Locker {locker_id} {operation}ed by renter")
        return data

    def extend(self, locker_id: str, session_token: str, extra_hours: float) -> ExtensionResult:
        locker_id = normalize_locker_id(locker_id)

        with self.locks.hold(locker_id), self.session_factory() as session:
            repo = LockerRepository(session)
            locker = self._require_locker(repo, locker_id)
            self._authorize(locker, session_token, "extend")

            now = self.clock()
            charge = self.pricing.extension(ensure_aware(locker.end_time), now, extra_hours)

            self.payment_service.charge_or_raise(locker_id, session_token, charge.additional_charge)

            locker.end_time = charge.new_end_time
            locker.duration_hours = locker.duration_hours + extra_hours
            locker.paid_amount = locker.paid_amount + charge.additional_charge
            locker.overstay_charge = (locker.overstay_charge or 0) + charge.overstay_charge
            session.commit()

            data = repo.to_data(locker)

        MetricsCollector.record_extension(charge.extension_cost, charge.overstay_charge)
        logger.info(
            f"Locker {locker_id} extended by {extra_hours}h: extension={charge.extension_cost}, "
            f"overstay_blocks={charge.overstay_blocks}, overstay={charge.overstay_charge}, "
            f"total={charge.additional_charge}"
        )
        return ExtensionResult(locker=data, charge=charge)

    def end_session(self, locker_id: str, session_token: str) -> LockerData:
        locker_id = normalize_locker_id(locker_id)

        with self.locks.hold(locker_id), self.session_factory() as session:
            repo = LockerRepository(session)
            locker = self._require_locker(repo, locker_id)
            self._authorize(locker, session_token, "end_session")
            data = self._release_locked(session, repo, locker)

        MetricsCollector.record_release("session_end")
        logger.info(f"Renter ended session on locker {locker_id}")
        return data

    # -----------------------------
    # Recovery
    # -----------------------------
    def resynchronize(self, locker_id: str, credential: SessionCredential) -> LockerData:
        """Rebuild a rental from a client-held credential after registry state loss.

        This trusts client input, so every call is audit-logged. When the
        registry still holds the same rental, its own times and billing
        fields win over the credential.
        """
        locker_id = normalize_locker_id(locker_id)
        rented_at = ensure_aware(credential.rented_at)
        expires_at = ensure_aware(credential.expires_at)

        with self.locks.hold(locker_id), self.session_factory() as session:
            repo = LockerRepository(session)
            locker = self._require_locker(repo, locker_id)

            now = self.clock()
            if expires_at <= now:
                MetricsCollector.record_resync("expired")
                logger.info(f"Resync of locker {locker_id} refused: credential expired at {expires_at}")
                raise CredentialExpiredException(locker_id)

            if normalize_locker_id(credential.locker_id) != locker_id:
                MetricsCollector.record_resync("rejected")
                logger.warning(
                    f"AUDIT resync rejected: credential for {credential.locker_id} presented for {locker_id}"
                )
                raise InvalidTokenException(locker_id)

            if expires_at <= rented_at:
                raise ValueError("Credential expires before it was issued")

            if locker.status == OUT_OF_SERVICE:
                MetricsCollector.record_resync("rejected")
                raise NotAvailableException(locker_id, locker.status)

            if locker.status == RENTED:
                if not _tokens_match(locker.session_token, credential.session_token):
                    MetricsCollector.record_resync("rejected")
                    logger.warning(
                        f"AUDIT resync rejected: locker {locker_id} is held by another session, "
                        f"presented token {_token_hint(credential.session_token)}"
                    )
                    raise InvalidTokenException(locker_id)

                if not locker.phone and credential.phone:
                    locker.phone = credential.phone
                if not locker.email and credential.email:
                    locker.email = credential.email
                session.commit()
                MetricsCollector.record_resync("restored")
                logger.info(f"AUDIT resync of locker {locker_id}: registry already holds the session")
                return repo.to_data(locker)

            holder = repo.get_by_token(credential.session_token)
            if holder is not None and holder.id != locker_id:
                MetricsCollector.record_resync("rejected")
                logger.warning(
                    f"AUDIT resync rejected: token {_token_hint(credential.session_token)} "
                    f"is active on locker {holder.id}, presented for {locker_id}"
                )
                raise InvalidTokenException(locker_id)

            duration = round_half_up((expires_at - rented_at).total_seconds() / 3600)
            paid_amount = self.pricing.hourly_amount(duration)

            locker.status = RENTED
            locker.session_token = credential.session_token
            locker.start_time = rented_at
            locker.end_time = expires_at
            locker.duration_hours = duration
            locker.phone = credential.phone or None
            locker.email = credential.email or None
            # Unknown physical state: assume locked until a renter command proves otherwise
            locker.is_locked = True
            locker.paid_amount = paid_amount
            locker.overstay_charge = 0
            session.commit()
            data = repo.to_data(locker)

        MetricsCollector.record_resync("reconstructed")
        logger.warning(
            f"AUDIT resync of locker {locker_id} reconstructed from client credential "
            f"{_token_hint(credential.session_token)}: duration={duration}h, "
            f"expires_at={expires_at.isoformat()}, assumed paid={paid_amount}"
        )
        return data

    # -----------------------------
    # Admin operations
    # -----------------------------
    def _release_locked(self, session: Session, repo: LockerRepository, locker: Locker) -> LockerData:
        locker.status = AVAILABLE
        locker.clear_rental()
        session.commit()
        return repo.to_data(locker)

    def release(self, locker_id: str) -> LockerData:
        locker_id = normalize_locker_id(locker_id)

        with self.locks.hold(locker_id), self.session_factory() as session:
            repo = LockerRepository(session)
            locker = self._require_locker(repo, locker_id)
            previous = locker.status
            data = self._release_locked(session, repo, locker)

        MetricsCollector.record_release("admin")
        logger.info(f"Admin released locker {locker_id} (was {previous})")
        return data

    def admin_unlock(self, locker_id: str) -> LockerData:
        locker_id = normalize_locker_id(locker_id)

        with self.locks.hold(locker_id):
            with self.session_factory() as session:
                repo = LockerRepository(session)
                locker = self._require_locker(repo, locker_id)
                if locker.status == RENTED:
                    locker.is_locked = False
                    session.commit()
                data = repo.to_data(locker)

            self._actuate(locker_id, False)

        logger.info(f"Admin unlocked locker {locker_id}")
        return data

    def open_all(self) -> BulkUnlockResult:
        with self._read() as session:
            rented_ids = [locker.id for locker in LockerRepository(session).list_rented()]

        opened = 0
        failed: List[str] = []
        for locker_id in rented_ids:
            try:
                self.admin_unlock(locker_id)
                opened += 1
            except ActuationFailedException:
                # state already flipped; the caller retries the physical command
                opened += 1
                failed.append(locker_id)

        logger.warning(f"Admin opened all rented lockers: opened={opened}, actuation_failed={failed}")
        return BulkUnlockResult(count=opened, failed=failed)

    def mark_out_of_service(self, locker_id: str) -> LockerData:
        locker_id = normalize_locker_id(locker_id)

        with self.locks.hold(locker_id), self.session_factory() as session:
            repo = LockerRepository(session)
            locker = self._require_locker(repo, locker_id)
            if locker.status == RENTED:
                logger.warning(
                    f"Locker {locker_id} taken out of service during rental "
                    f"{_token_hint(locker.session_token)}"
                )
            locker.status = OUT_OF_SERVICE
            locker.clear_rental()
            session.commit()
            data = repo.to_data(locker)

        logger.info(f"Locker {locker_id} marked out of service")
        return data

    def mark_in_service(self, locker_id: str) -> LockerData:
        locker_id = normalize_locker_id(locker_id)

        with self.locks.hold(locker_id), self.session_factory() as session:
            repo = LockerRepository(session)
            locker = self._require_locker(repo, locker_id)
            if locker.status == OUT_OF_SERVICE:
                locker.status = AVAILABLE
                session.commit()
                logger.info(f"Locker {locker_id} back in service")
            data = repo.to_data(locker)

        return data
