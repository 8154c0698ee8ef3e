"""
Prometheus scrape endpoint.

Counters are registered in the modules that own them (request metrics in
sponsor_backend.middleware, contract send and signing webhook outcomes in
the sponsors app); this view only exposes the default registry.
"""
from __future__ import annotations

import hmac

from django.conf import settings
from django.http import HttpRequest, HttpResponse, HttpResponseNotAllowed
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest


def _is_authorized(request: HttpRequest) -> bool:
    token = (getattr(settings, 'METRICS_TOKEN', '') or '').strip()
    if not token:
        return True
    header = (request.headers.get('X-Metrics-Token') or '').strip()
    return hmac.compare_digest(header, token)


def metrics_view(request: HttpRequest) -> HttpResponse:
    """GET /metrics. With METRICS_TOKEN set, X-Metrics-Token must match."""
    if request.method != 'GET':
        return HttpResponseNotAllowed(['GET'])
    if not _is_authorized(request):
        return HttpResponse('unauthorized', status=401, content_type='text/plain')
    return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
