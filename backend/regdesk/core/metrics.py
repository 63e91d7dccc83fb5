"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Registration metrics
registrations_created = Counter(
    'registrations_created_total',
    'Participant groups created',
    ['prefix']
)

capacity_rejections = Counter(
    'capacity_rejections_total',
    'Registrations rejected because the event was full'
)

# Queue allocation metrics
queue_numbers_allocated = Counter(
    'queue_numbers_allocated_total',
    'Queue numbers issued by the allocator',
    ['prefix']
)

allocation_latency = Histogram(
    'queue_allocation_latency_seconds',
    'Atomic counter increment latency',
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25]
)

# Attendance metrics
attendance_transitions = Counter(
    'attendance_transitions_total',
    'Attendance and cancellation state changes',
    ['transition']  # attended, absent, cancelled, restored, noop, rejected
)

checkin_scans = Counter(
    'checkin_scans_total',
    'Decoded QR scans',
    ['result']  # checked_in, already_marked, invalid_format, token_mismatch, not_found, cancelled
)

debounced_scans = Counter(
    'checkin_scans_debounced_total',
    'Scans suppressed as repeats of the same physical scan'
)

# Store metrics
store_errors = Counter(
    'store_errors_total',
    'Persistent store failures surfaced as typed conditions',
    ['kind']  # unavailable, duplicate_queue_number
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_scan(result: str):
    """Record scan outcome."""
    checkin_scans.labels(result=result).inc()


def record_transition(transition: str):
    """Record attendance state machine transition."""
    attendance_transitions.labels(transition=transition).inc()
