"""
Middleware for request correlation, metrics and audit logging
"""
import logging
import uuid

from django.utils import timezone
from django.utils.deprecation import MiddlewareMixin
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('audit')


class RequestIdMiddleware(MiddlewareMixin):
    """Attach a request id for correlation across logs."""

    HEADER = 'X-Request-ID'

    def process_request(self, request):
        rid = request.META.get('HTTP_X_REQUEST_ID')
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        return None

    def process_response(self, request, response):
        rid = getattr(request, 'request_id', None)
        if rid:
            response.headers.setdefault(self.HEADER, rid)
        return response


class AuditLoggingMiddleware(MiddlewareMixin):
    """
    Log mutating API requests to the audit logger.

    Pipeline mutations are also written to the SponsorActivity table by the
    services; this is the transport-level trail (who called what, with which
    outcome).
    """

    MUTATING_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')

    def process_request(self, request):
        if request.path.startswith('/api/') and request.method in self.MUTATING_METHODS:
            request._audit_started_at = timezone.now()
        return None

    def process_response(self, request, response):
        started = getattr(request, '_audit_started_at', None)
        if started is None:
            return response

        user = getattr(request, 'user', None)
        user_id = user.pk if user is not None and user.is_authenticated else None
        audit_logger.info(
            f"API_CALL|method={request.method}|endpoint={request.path}|"
            f"status={response.status_code}|user_id={user_id}|"
            f"ip={self.get_client_ip(request)}|request_id={getattr(request, 'request_id', None)}|"
            f"ms={(timezone.now() - started).total_seconds() * 1000:.1f}"
        )
        if response.status_code >= 400:
            logger.warning(
                f"API Error: {request.method} {request.path} - "
                f"Status: {response.status_code} - User: {user_id}"
            )
        return response

    @staticmethod
    def get_client_ip(request):
        """Extract client IP address from request"""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0]
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip


API_REQUEST_COUNT = Counter(
    'sponsor_api_requests_total',
    'Total API requests',
    ['method', 'path', 'status'],
)
API_REQUEST_LATENCY = Histogram(
    'sponsor_api_request_latency_seconds',
    'API request latency (seconds)',
    ['method', 'path'],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)


class MetricsMiddleware(MiddlewareMixin):
    """Prometheus request metrics for /api/* routes."""

    def process_request(self, request):
        request._metrics_start_ts = timezone.now()
        return None

    def process_response(self, request, response):
        path = getattr(request, 'path', '')
        if not path.startswith('/api/'):
            return response

        start = getattr(request, '_metrics_start_ts', None)
        if start is None:
            return response
        duration = (timezone.now() - start).total_seconds()

        # Label by route pattern, not the concrete path.
        match = getattr(request, 'resolver_match', None)
        if match is not None and match.route:
            path = '/' + match.route
        elif len(path) > 120:
            path = path[:120]

        method = getattr(request, 'method', 'GET')
        API_REQUEST_COUNT.labels(method=method, path=path, status=str(response.status_code)).inc()
        API_REQUEST_LATENCY.labels(method=method, path=path).observe(duration)
        return response
