"""
Digital signing providers.

`SigningProvider` is the narrow interface the contract orchestrator talks
to: upload a document, create an agreement. `AdobeSignService` implements it
against the Adobe Sign REST API v6. In 'self-hosted' mode there is no
provider and `get_signing_provider` returns None.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from .exceptions import ExternalProviderFailure

logger = logging.getLogger(__name__)

MODE_SELF_HOSTED = 'self-hosted'
MODE_ADOBE_SIGN = 'adobe-sign'


@dataclass(frozen=True)
class SigningConfig:
    mode: str
    base_url: str
    ims_url: str
    application_id: str
    application_secret: str
    webhook_client_id: str
    timeout_seconds: int
    mock_mode: bool

    @property
    def self_hosted(self) -> bool:
        return self.mode != MODE_ADOBE_SIGN


def load_signing_config() -> SigningConfig:
    mode = (getattr(settings, 'CONTRACT_SIGNING_PROVIDER', '') or MODE_SELF_HOSTED).strip().lower()
    if mode not in (MODE_SELF_HOSTED, MODE_ADOBE_SIGN):
        raise ExternalProviderFailure(f"Unknown CONTRACT_SIGNING_PROVIDER '{mode}'")
    return SigningConfig(
        mode=mode,
        base_url=(getattr(settings, 'ADOBE_SIGN_BASE_URL', '') or '').rstrip('/'),
        ims_url=getattr(settings, 'ADOBE_SIGN_IMS_URL', '') or 'https://ims-na1.adobelogin.com/ims/token/v3',
        application_id=getattr(settings, 'ADOBE_SIGN_APPLICATION_ID', '') or '',
        application_secret=getattr(settings, 'ADOBE_SIGN_APPLICATION_SECRET', '') or '',
        webhook_client_id=getattr(settings, 'ADOBE_SIGN_CLIENT_ID', '') or '',
        timeout_seconds=int(getattr(settings, 'ADOBE_SIGN_TIMEOUT_SECONDS', 30) or 30),
        mock_mode=bool(getattr(settings, 'ADOBE_SIGN_MOCK', False)),
    )


@dataclass
class SigningResult:
    agreement_id: str
    signing_url: Optional[str] = None


class SigningProvider:
    name = ''

    def upload_document(self, pdf_bytes: bytes, filename: str) -> str:
        """Upload a transient document. Returns its id."""
        raise NotImplementedError

    def create_agreement(self, name: str, participant_email: str, message: str,
                         transient_document_id: str) -> str:
        """Create a signing agreement. Returns the agreement id."""
        raise NotImplementedError

    def get_signing_url(self, agreement_id: str) -> Optional[str]:
        return None

    def send_for_signing(self, *, pdf_bytes: bytes, filename: str, signer_email: str,
                         agreement_name: str, message: str) -> SigningResult:
        transient_id = self.upload_document(pdf_bytes, filename)
        if not transient_id:
            raise ExternalProviderFailure(f'{self.name}: upload returned no transient document id')

        agreement_id = self.create_agreement(agreement_name, signer_email, message, transient_id)
        if not agreement_id:
            raise ExternalProviderFailure(f'{self.name}: agreement creation returned no agreement id')

        signing_url = None
        try:
            signing_url = self.get_signing_url(agreement_id)
        except ExternalProviderFailure as e:
            logger.warning(f"{self.name}: signing URL lookup failed for agreement {agreement_id}: {e}")

        return SigningResult(agreement_id=agreement_id, signing_url=signing_url)


class AdobeSignService(SigningProvider):
    """HTTP wrapper for the Adobe Sign REST API (v6).

    Authenticates with the OAuth client-credentials grant against Adobe IMS
    and caches the access token until shortly before it expires.

    For local testing without an Adobe account, set ADOBE_SIGN_MOCK=true.
    """

    name = 'Adobe Sign'
    API_PREFIX = '/api/rest/v6'
    TOKEN_EXPIRY_MARGIN_SECONDS = 60

    def __init__(self, config: Optional[SigningConfig] = None):
        self.config = config or load_signing_config()
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        if not (self.config.application_id and self.config.application_secret):
            raise ExternalProviderFailure('Adobe Sign credentials not configured')

        try:
            resp = requests.request(
                'POST',
                self.config.ims_url,
                data={
                    'grant_type': 'client_credentials',
                    'client_id': self.config.application_id,
                    'client_secret': self.config.application_secret,
                    'scope': 'agreement_read agreement_write agreement_send',
                },
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error(f"Adobe Sign token request failed: {e}", exc_info=True)
            raise ExternalProviderFailure(f'Adobe Sign token request failed: {e}') from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ExternalProviderFailure(
                f'Adobe Sign token request failed ({resp.status_code})',
                status_code=resp.status_code,
                response_text=(resp.text or '')[:2000],
            )

        data = resp.json()
        token = data.get('access_token')
        if not token:
            raise ExternalProviderFailure('Adobe Sign token response had no access_token')
        expires_in = int(data.get('expires_in') or 3600)
        self._access_token = token
        self._token_expires_at = time.time() + max(0, expires_in - self.TOKEN_EXPIRY_MARGIN_SECONDS)
        return token

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{self.API_PREFIX}{path if path.startswith('/') else '/' + path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        if not self.config.base_url:
            raise ExternalProviderFailure('ADOBE_SIGN_BASE_URL is not configured')

        url = self._url(path)
        headers = dict(kwargs.pop('headers', {}) or {})
        headers['Authorization'] = f"Bearer {self._get_access_token()}"

        logger.info(f"Adobe Sign API request: {method} {url}")
        try:
            resp = requests.request(method, url, headers=headers, timeout=self.config.timeout_seconds, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Adobe Sign API request failed: {method} {url} | Error: {e}", exc_info=True)
            raise ExternalProviderFailure(f'Adobe Sign API request failed: {e}') from e

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.error(f"Adobe Sign API error response: {method} {url} | Status: {resp.status_code} | Body: {resp.text[:1000]}")
            raise ExternalProviderFailure(
                f'Adobe Sign API error ({resp.status_code})',
                status_code=resp.status_code,
                response_text=(resp.text or '')[:2000],
            )
        return resp

    def upload_document(self, pdf_bytes: bytes, filename: str) -> str:
        if self.config.mock_mode:
            return f'mock_td_{uuid.uuid4().hex}'

        logger.info(f"Uploading transient document {filename} ({len(pdf_bytes)} bytes)")
        resp = self._request(
            'POST', '/transientDocuments',
            data={'File-Name': filename, 'Mime-Type': 'application/pdf'},
            files={'File': (filename, pdf_bytes, 'application/pdf')},
        )
        return (resp.json() or {}).get('transientDocumentId') or ''

    def create_agreement(self, name: str, participant_email: str, message: str,
                         transient_document_id: str) -> str:
        if self.config.mock_mode:
            return f'mock_agr_{uuid.uuid4().hex}'

        payload: Dict[str, Any] = {
            'fileInfos': [{'transientDocumentId': transient_document_id}],
            'name': name,
            'participantSetsInfo': [{
                'memberInfos': [{'email': participant_email}],
                'order': 1,
                'role': 'SIGNER',
            }],
            'signatureType': 'ESIGN',
            'state': 'IN_PROCESS',
        }
        if message:
            payload['message'] = message

        resp = self._request('POST', '/agreements', json=payload)
        agreement_id = (resp.json() or {}).get('id') or ''
        logger.info(f"Adobe Sign agreement created: {agreement_id} for {participant_email}")
        return agreement_id

    def get_signing_url(self, agreement_id: str) -> Optional[str]:
        if self.config.mock_mode:
            return None

        resp = self._request('GET', f'/agreements/{agreement_id}/signingUrls')
        for url_set in (resp.json() or {}).get('signingUrlSetInfos') or []:
            for entry in url_set.get('signingUrls') or []:
                if entry.get('esignUrl'):
                    return entry['esignUrl']
        return None

    def download_signed_document(self, agreement_id: str) -> bytes:
        if self.config.mock_mode:
            return b''
        return self._request('GET', f'/agreements/{agreement_id}/combinedDocument').content


def get_signing_provider(config: Optional[SigningConfig] = None) -> Optional[SigningProvider]:
    """Provider for the configured mode; None when signatures are self-hosted."""
    config = config or load_signing_config()
    if config.self_hosted:
        return None
    return AdobeSignService(config)
