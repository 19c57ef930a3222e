"""
Prometheus metrics for the commerce API.

/metrics serves request latency per endpoint plus checkout and group-join
outcome counters. The endpoint is unauthenticated; restrict it at the
network level.
"""
from contextlib import contextmanager
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY

from coursemart.exceptions import CommerceError, GatewayError

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers write to PROMETHEUS_MULTIPROC_DIR; metrics are then
# created unregistered and collected per scrape.
if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

http_requests_total = Counter(
    'http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

checkouts_total = Counter(
    'coursemart_checkouts_total',
    'Checkout attempts by kind and outcome',
    ['kind', 'outcome'],  # kind: course|group, outcome: started|rejected|gateway_error
    registry=_metric_registry
)

group_joins_total = Counter(
    'coursemart_group_joins_total',
    'Group join attempts by outcome',
    ['outcome'],  # joined|completed|already_member|rejected
    registry=_metric_registry
)


@contextmanager
def track_checkout(kind):
    """Count one checkout attempt by how it ended. Errors are re-raised."""
    try:
        yield
    except GatewayError:
        checkouts_total.labels(kind=kind, outcome='gateway_error').inc()
        raise
    except CommerceError:
        checkouts_total.labels(kind=kind, outcome='rejected').inc()
        raise
    checkouts_total.labels(kind=kind, outcome='started').inc()


def join_outcome(result):
    if result.completed:
        return 'completed'
    if result.joined:
        return 'joined'
    return 'already_member'


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status."""

    @app.before_request
    def start_request_timer():
        g.request_started_at = time.time()

    @app.after_request
    def record_request(response):
        started_at = g.pop('request_started_at', None)
        if started_at is None:
            return response

        endpoint = request.endpoint or 'unknown'
        try:
            http_request_duration_seconds.labels(
                method=request.method, endpoint=endpoint
            ).observe(time.time() - started_at)
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except ValueError as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        return response


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
