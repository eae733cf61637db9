# shared/metrics.py
"""
Prometheus metrics for the payment reconciler
"""

from prometheus_client import Counter, Info, CONTENT_TYPE_LATEST, generate_latest


WEBHOOK_EVENTS = Counter(
    'reconciler_webhook_events_total',
    'Webhook events by terminal outcome',
    ['outcome']
)

ZOHO_REQUESTS = Counter(
    'reconciler_zoho_requests_total',
    'Outbound Zoho Books requests',
    ['method', 'status']
)

TOKEN_REFRESHES = Counter(
    'reconciler_token_refreshes_total',
    'Zoho access token refresh attempts',
    ['status']
)

PAYMENTS_CREATED = Counter(
    'reconciler_payments_created_total',
    'Customer payments recorded in Zoho Books',
    ['payment_mode']
)

SERVICE_INFO = Info(
    'reconciler_service',
    'Service information'
)


def render_metrics() -> tuple:
    """Return the exposition payload and its content type"""
    return generate_latest(), CONTENT_TYPE_LATEST
