"""Prometheus metrics for monitoring payments, tranche adjudication and webhook performance"""

from prometheus_client import Counter, Histogram

# Payment metrics
payment_created_counter = Counter(
    "installment_payment_created_total",
    "Payments created",
    ["payment_type"],  # full | installment
)

tranche_transition_counter = Counter(
    "installment_tranche_transition_total",
    "Tranche state transitions applied",
    ["transition"],  # submit | approved | rejected | mark_paid
)

domain_error_counter = Counter(
    "installment_domain_errors_total",
    "Operations refused by the reconciliation core",
    ["code"],
)

# Suspicion monitor
suspicion_flag_counter = Counter(
    "installment_suspicion_flags_total",
    "Accounts flagged as suspicious",
    ["source"],  # scan | admin
)

suspicion_scan_histogram = Histogram(
    "installment_suspicion_scan_seconds",
    "Duration of suspicion scans",
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment_created(payment_type: str) -> None:
    payment_created_counter.labels(payment_type=payment_type).inc()


def record_transition(transition: str) -> None:
    """Record tranche transitions for monitoring approval and rejection rates"""
    tranche_transition_counter.labels(transition=transition).inc()
