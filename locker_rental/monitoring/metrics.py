from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server

# Business metrics
rentals_total = Counter(
    "locker_rental_rentals_total",
    "Total number of rentals attempted",
    ["service", "status"],  # status=started/not_available/payment_declined
)

rental_revenue_total = Counter(
    "locker_rental_revenue_total",
    "Total amount charged",
    ["service", "kind"],  # kind=rental/extension/overstay
)

extensions_total = Counter(
    "locker_rental_extensions_total",
    "Total number of rental extensions",
    ["service", "overstay"],  # overstay=yes/no
)

releases_total = Counter(
    "locker_rental_releases_total",
    "Total number of lockers returned to the available pool",
    ["service", "reason"],  # reason=admin/session_end
)

rejected_credentials_total = Counter(
    "locker_rental_rejected_credentials_total",
    "Operations rejected because of a mismatching session token",
    ["service", "operation"],
)

resync_total = Counter(
    "locker_rental_resynchronizations_total",
    "Registry reconstructions from client-held credentials",
    ["service", "outcome"],  # outcome=restored/reconstructed/expired/rejected
)

lockers_by_status = Gauge(
    "locker_rental_lockers",
    "Current number of lockers per status",
    ["service", "status"],
)

# Technical metrics
actuations_total = Counter(
    "locker_rental_actuations_total",
    "Lock controller commands",
    ["service", "action", "status"],  # action=lock/unlock, status=success/failure
)

actuation_duration = Histogram(
    "locker_rental_actuation_duration_seconds",
    "Lock controller round-trip duration",
    ["service", "action"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

payment_attempts_total = Counter(
    "locker_rental_payment_attempts_total",
    "Total PSP charge attempts",
    ["service", "status"],  # status=success/failure
)

circuit_breaker_state = Gauge(
    "locker_rental_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half-open)",
    ["service", "circuit_name"],  # circuit_name=lock_controller/payment
)

circuit_breaker_failures = Counter(
    "locker_rental_circuit_breaker_failures_total",
    "Total circuit breaker failures",
    ["service", "circuit_name"],
)

# Application info
app_info = Info("locker_rental_app_info", "Application information")


def init_app_info(version: str = "1.0.0"):
    app_info.info({"version": version, "service": "locker-rental", "component": "engine"})


def start_metrics_server(port: int = 8001):
    start_http_server(port)


class MetricsCollector:
    SERVICE_NAME = "locker-rental"

    @staticmethod
    def record_rental(status: str, amount: int = 0):
        rentals_total.labels(service=MetricsCollector.SERVICE_NAME, status=status).inc()
        if amount:
            rental_revenue_total.labels(service=MetricsCollector.SERVICE_NAME, kind="rental").inc(amount)

    @staticmethod
    def record_extension(extension_cost: int, overstay_charge: int):
        overstay = "yes" if overstay_charge else "no"
        extensions_total.labels(service=MetricsCollector.SERVICE_NAME, overstay=overstay).inc()
        rental_revenue_total.labels(service=MetricsCollector.SERVICE_NAME, kind="extension").inc(extension_cost)
        if overstay_charge:
            rental_revenue_total.labels(service=MetricsCollector.SERVICE_NAME, kind="overstay").inc(overstay_charge)

    @staticmethod
    def record_release(reason: str):
        releases_total.labels(service=MetricsCollector.SERVICE_NAME, reason=reason).inc()

    @staticmethod
    def record_rejected_credential(operation: str):
        rejected_credentials_total.labels(service=MetricsCollector.SERVICE_NAME, operation=operation).inc()

    @staticmethod
    def record_resync(outcome: str):
        resync_total.labels(service=MetricsCollector.SERVICE_NAME, outcome=outcome).inc()

    @staticmethod
    def record_locker_counts(counts: dict):
        for status, count in counts.items():
            lockers_by_status.labels(service=MetricsCollector.SERVICE_NAME, status=status).set(count)

    @staticmethod
    def record_actuation(action: str, duration: float, success: bool):
        status = "success" if success else "failure"
        actuations_total.labels(service=MetricsCollector.SERVICE_NAME, action=action, status=status).inc()
        actuation_duration.labels(service=MetricsCollector.SERVICE_NAME, action=action).observe(duration)

    @staticmethod
    def record_payment_attempt(success: bool):
        status = "success" if success else "failure"
        payment_attempts_total.labels(service=MetricsCollector.SERVICE_NAME, status=status).inc()

    @staticmethod
    def record_circuit_breaker_state(circuit_name: str, state: str):
        state_value = {"closed": 0, "open": 1, "half-open": 2}.get(state, 0)
        circuit_breaker_state.labels(
            service=MetricsCollector.SERVICE_NAME,
            circuit_name=circuit_name,
        ).set(state_value)

    @staticmethod
    def record_circuit_breaker_failure(circuit_name: str):
        circuit_breaker_failures.labels(
            service=MetricsCollector.SERVICE_NAME,
            circuit_name=circuit_name,
        ).inc()
