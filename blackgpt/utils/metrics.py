"""Prometheus metrics exporters."""
from prometheus_client import Counter, Histogram, CollectorRegistry

# Create registry
registry = CollectorRegistry()

# ========== SIGNAL METRICS ==========
signals_created = Counter(
    'signals_created_total',
    'Total number of signals created',
    ['status'],
    registry=registry
)

signals_rejected_on_upload = Counter(
    'signals_rejected_on_upload_total',
    'Uploads blocked by provenance validation',
    registry=registry
)

verifications = Counter(
    'signal_verifications_total',
    'Reviewer verification actions applied',
    ['action'],
    registry=registry
)

# ========== CORRELATION METRICS ==========
correlation_jobs = Counter(
    'correlation_jobs_total',
    'Correlation jobs by final status',
    ['status'],
    registry=registry
)

connector_queries = Counter(
    'connector_queries_total',
    'Public source connector queries',
    ['source', 'outcome'],
    registry=registry
)

correlation_confidence = Histogram(
    'correlation_confidence',
    'Aggregate confidence of completed correlations',
    buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
    registry=registry
)

connector_latency = Histogram(
    'connector_query_seconds',
    'Connector query time in seconds',
    ['source'],
    registry=registry
)

# ========== HELPER FUNCTIONS ==========
def record_signal_created(status: str):
    """Record a new signal creation."""
    signals_created.labels(status=status).inc()

def record_upload_rejected():
    """Record an upload blocked by validation."""
    signals_rejected_on_upload.inc()

def record_verification(action: str):
    """Record a reviewer action."""
    verifications.labels(action=action).inc()

def record_correlation_job(status: str, confidence: float = None):
    """Record a correlation job reaching a terminal status."""
    correlation_jobs.labels(status=status).inc()
    if confidence is not None:
        correlation_confidence.observe(confidence)

def record_connector_query(source: str, outcome: str, seconds: float):
    """Record a single connector query."""
    connector_queries.labels(source=source, outcome=outcome).inc()
    connector_latency.labels(source=source).observe(seconds)
