from typing import Optional

from loguru import logger

from locker_rental.clients.external import PaymentClient
from locker_rental.core.exceptions import PaymentDeclinedException
from locker_rental.monitoring.metrics import MetricsCollector


class PaymentService:
    def __init__(self, payment_client: Optional[PaymentClient] = None):
        self.payment_client = payment_client

    def charge_or_raise(self, locker_id: str, reference: str, amount: int) -> None:
        """Capture ``amount`` with the PSP or raise PaymentDeclinedException.

        Without a PSP client the amount is assumed to be authorized upstream
        (the kiosk payment screen) and only logged.
        """
        if amount <= 0:
            return

        if self.payment_client is None:
            logger.debug(f"No PSP configured, recording {amount} for {reference} as authorized")
            return

        success, error = self.payment_client.charge(reference, amount)
        MetricsCollector.record_payment_attempt(success)

        if not success:
            logger.warning(f"Payment for locker {locker_id} failed: {error}")
            raise PaymentDeclinedException(locker_id, amount, error or "Payment service unavailable")
