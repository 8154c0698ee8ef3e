"""
Error taxonomy for the contract lifecycle, plus the DRF exception handler
that maps it onto HTTP responses.
"""
import logging
from typing import Any, Dict, List, Optional

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class SponsorCRMError(RuntimeError):
    """Base class for contract lifecycle errors."""

    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def to_payload(self) -> Dict[str, Any]:
        return {'error': str(self)}


class NotFound(SponsorCRMError):
    http_status = status.HTTP_404_NOT_FOUND


class NoActiveTemplate(NotFound):
    def __init__(self, event_id):
        super().__init__(f'No active contract template found for event {event_id}')
        self.event_id = event_id


class RecordNotFound(NotFound):
    def __init__(self, record_id):
        super().__init__(f'Sponsor pipeline record {record_id} not found')
        self.record_id = record_id


class ValidationFailure(SponsorCRMError):
    """
    Raised when a record is not ready for an operation.

    `missing` holds the unmet rules as dicts ({field, label, source,
    severity}); `grouped` is the same list keyed by source.
    """

    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, missing: Optional[List[Dict[str, Any]]] = None,
                 grouped: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        super().__init__(message)
        self.missing = missing or []
        self.grouped = grouped or {}

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.missing:
            payload['missing'] = self.grouped
        return payload


class IllegalTransition(ValidationFailure):
    def __init__(self, axis: str, old: str, new: str):
        super().__init__(f'Illegal {axis} transition: {old} -> {new}')
        self.axis = axis
        self.old = old
        self.new = new


class RenderFailure(SponsorCRMError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class ExternalProviderFailure(SponsorCRMError):
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, status_code: Optional[int] = None, response_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class PersistenceFailure(SponsorCRMError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


def sponsor_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None:
        return response

    if isinstance(exc, SponsorCRMError):
        if exc.http_status >= 500:
            logger.error(f"{type(exc).__name__}: {exc}", exc_info=exc)
        return Response(exc.to_payload(), status=exc.http_status)

    return None
