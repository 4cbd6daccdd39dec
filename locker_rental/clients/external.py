import time
from typing import Optional, Tuple

import pybreaker
import requests
from loguru import logger
from requests.adapters import HTTPAdapter

from locker_rental.config.settings import Settings
from locker_rental.core.circuit_breaker import CircuitBreakerConfig
from locker_rental.core.exceptions import ActuationFailedException
from locker_rental.monitoring.metrics import MetricsCollector


class HttpClient:
    # No transport retries: physical and payment retries belong to the caller
    def __init__(self, base_url: str, settings: Settings):
        self._base_url = base_url
        self._timeout = settings.http_timeout_sec
        self._session = self._build_session()

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": "locker-rental/1.0"})
        return session

    def _url(self, path: str) -> str:
        return f"{self._base_url.rstrip('/')}/{path.lstrip('/')}"

    def _post(self, path: str, payload: dict) -> dict:
        response = self._session.post(
            self._url(path), json=payload, timeout=self._timeout
        )
        response.raise_for_status()
        return response.json() if response.content else {}


class LockControllerClient(HttpClient):
    """Sends lock/unlock commands to the lock server over HTTP."""

    def __init__(self, settings: Settings, cb_config: Optional[CircuitBreakerConfig] = None):
        super().__init__(settings.lock_controller_base, settings)
        self._cb_config = cb_config or CircuitBreakerConfig(settings)
        self._breaker = self._cb_config.get_lock_breaker()

    def actuate(self, locker_id: str, locked: bool) -> None:
        action = "lock" if locked else "unlock"

        @self._breaker
        def _actuate():
            data = self._post(f"/lockers/{locker_id}/{action}", {"locker_id": locker_id})
            if not data.get("success", True):
                raise ActuationFailedException(
                    locker_id, locked, data.get("error", "controller refused")
                )

        started = time.monotonic()
        try:
            _actuate()
        except ActuationFailedException:
            MetricsCollector.record_actuation(action, time.monotonic() - started, False)
            raise
        except (requests.RequestException, pybreaker.CircuitBreakerError) as e:
            MetricsCollector.record_actuation(action, time.monotonic() - started, False)
            logger.warning(f"Lock controller {action} of {locker_id} failed: {e}")
            raise ActuationFailedException(locker_id, locked, str(e)) from e

        MetricsCollector.record_actuation(action, time.monotonic() - started, True)
        logger.debug(f"Lock controller confirmed {action} of {locker_id}")

    def get_circuit_breaker_stats(self):
        return self._cb_config.get_breaker_stats()


class AcknowledgingLockController:
    """In-process controller for kiosks running without a lock server.

    Acknowledges every command immediately.
    """

    def actuate(self, locker_id: str, locked: bool) -> None:
        action = "lock" if locked else "unlock"
        MetricsCollector.record_actuation(action, 0.0, True)
        logger.info(f"Simulated {action} of locker {locker_id}")


class PaymentClient(HttpClient):
    """Asks the PSP to capture an amount. Card data never passes through here."""

    def __init__(self, settings: Settings, cb_config: Optional[CircuitBreakerConfig] = None):
        super().__init__(settings.psp_base, settings)
        self._cb_config = cb_config or CircuitBreakerConfig(settings)
        self._breaker = self._cb_config.get_payment_breaker()

    def charge(self, reference: str, amount: int) -> Tuple[bool, Optional[str]]:
        @self._breaker
        def _charge():
            return self._post("/charges", {"reference": reference, "amount": amount})

        try:
            data = _charge()
        except (requests.RequestException, pybreaker.CircuitBreakerError) as e:
            error_msg = str(e) or type(e).__name__
            logger.warning(f"Failed to charge {amount} for {reference}: {error_msg}")
            return False, error_msg

        if not data.get("success", True):
            error_msg = data.get("error", "declined")
            logger.warning(f"PSP declined {amount} for {reference}: {error_msg}")
            return False, error_msg

        logger.debug(f"Successfully charged {amount} for {reference}")
        return True, None

    def get_circuit_breaker_stats(self):
        return self._cb_config.get_breaker_stats()
