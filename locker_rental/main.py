from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from locker_rental import __version__
from locker_rental.clients.external import (
    AcknowledgingLockController,
    LockControllerClient,
    PaymentClient,
)
from locker_rental.config.logging import setup_logging
from locker_rental.config.settings import Settings
from locker_rental.core.circuit_breaker import CircuitBreakerConfig
from locker_rental.core.pricing import PricingPolicy
from locker_rental.core.utils import utcnow
from locker_rental.db.database import get_engine, get_sessionmaker
from locker_rental.db.models import Base
from locker_rental.db.seed import seed_registry
from locker_rental.monitoring.metrics import init_app_info, start_metrics_server
from locker_rental.services.payment import PaymentService
from locker_rental.services.rental import RentalEngine


def build_lock_controller(settings: Settings, cb_config: CircuitBreakerConfig):
    if settings.lock_controller_base:
        return LockControllerClient(settings, cb_config)
    logger.warning("No lock controller configured, lock commands are acknowledged in-process")
    return AcknowledgingLockController()


def create_rental_engine(
    settings: Optional[Settings] = None,
    clock: Callable[[], datetime] = utcnow,
) -> RentalEngine:
    settings = settings or Settings()

    db_engine = get_engine(settings.database_url)
    Base.metadata.create_all(db_engine)
    session_factory = get_sessionmaker(settings, db_engine)

    if settings.seed_registry:
        with session_factory() as session:
            seed_registry(session)
            session.commit()

    cb_config = CircuitBreakerConfig(settings)
    payment_client = PaymentClient(settings, cb_config) if settings.psp_base else None

    return RentalEngine(
        session_factory,
        PricingPolicy(settings),
        build_lock_controller(settings, cb_config),
        PaymentService(payment_client),
        clock=clock,
    )


def main():
    settings = Settings()
    setup_logging(settings.log_level)

    init_app_info(__version__)
    if settings.metrics_port:
        start_metrics_server(settings.metrics_port)
        logger.info(f"Metrics server started on port {settings.metrics_port}")

    logger.info(f"Starting locker rental engine on {settings.database_url}")
    engine = create_rental_engine(settings)

    stats = engine.stats()
    logger.info(
        f"Locker registry ready: total={stats.total}, available={stats.available}, "
        f"rented={stats.rented}, out_of_service={stats.out_of_service}"
    )
    return engine


if __name__ == "__main__":
    main()
