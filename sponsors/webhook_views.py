"""
Adobe Sign webhook receiver.

Adobe verifies a webhook URL by calling it with an X-AdobeSign-ClientId
header and expects the same client id echoed back, both as a response
header and in the JSON body. Event notifications are POSTed with the same
header.
"""
import logging

from prometheus_client import Counter
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .contract_send import apply_signature_event
from .signing_service import load_signing_config

logger = logging.getLogger(__name__)

CLIENT_ID_HEADER = 'X-AdobeSign-ClientId'

SIGNING_WEBHOOKS = Counter(
    'sponsor_signing_webhooks_total',
    'Adobe Sign webhook deliveries, by outcome',
    ['outcome'],
)


class AdobeSignWebhookView(APIView):
    """
    GET  /api/v1/webhooks/adobe-sign/ - verification handshake
    POST /api/v1/webhooks/adobe-sign/ - agreement events
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def _verified_client_id(self, request):
        client_id = (request.headers.get(CLIENT_ID_HEADER) or '').strip()
        expected = load_signing_config().webhook_client_id
        if not client_id or (expected and client_id != expected):
            logger.warning(f"Rejected Adobe Sign webhook call with client id '{client_id}'")
            return None
        return client_id

    def _ack(self, client_id, **extra):
        response = Response({'xAdobeSignClientId': client_id, **extra}, status=status.HTTP_200_OK)
        response[CLIENT_ID_HEADER] = client_id
        return response

    def get(self, request):
        client_id = self._verified_client_id(request)
        if client_id is None:
            return Response({'error': 'Unknown client id'}, status=status.HTTP_401_UNAUTHORIZED)
        return self._ack(client_id)

    def post(self, request):
        client_id = self._verified_client_id(request)
        if client_id is None:
            SIGNING_WEBHOOKS.labels(outcome='rejected').inc()
            return Response({'error': 'Unknown client id'}, status=status.HTTP_401_UNAUTHORIZED)

        payload = request.data if isinstance(request.data, dict) else {}
        event_type = payload.get('event') or ''
        agreement = payload.get('agreement') or {}
        agreement_id = agreement.get('id') or payload.get('agreementId')
        if not agreement_id:
            logger.info(f"Adobe Sign webhook {event_type or 'event'} without agreement id acknowledged")
            SIGNING_WEBHOOKS.labels(outcome='ignored').inc()
            return self._ack(client_id)

        logger.info(f"Adobe Sign webhook {event_type} for agreement {agreement_id}")
        record = apply_signature_event(agreement_id, event_type, agreement)
        processed = record is not None
        SIGNING_WEBHOOKS.labels(outcome='processed' if processed else 'ignored').inc()
        return self._ack(client_id, processed=processed)
