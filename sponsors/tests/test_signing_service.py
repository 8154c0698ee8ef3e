from unittest import mock

import requests
from django.test import SimpleTestCase, override_settings

from sponsors.exceptions import ExternalProviderFailure
from sponsors.signing_service import (
    AdobeSignService, MODE_ADOBE_SIGN, MODE_SELF_HOSTED, SigningConfig, get_signing_provider,
    load_signing_config,
)


def _config(**overrides):
    fields = dict(
        mode=MODE_ADOBE_SIGN, base_url='https://api.eu2.adobesign.com',
        ims_url='https://ims-na1.adobelogin.com/ims/token/v3',
        application_id='app-id', application_secret='app-secret', webhook_client_id='client',
        timeout_seconds=5, mock_mode=False,
    )
    fields.update(overrides)
    return SigningConfig(**fields)


def _response(status_code=200, payload=None, text=''):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.text = text
    return resp


TOKEN = _response(payload={'access_token': 'tok', 'expires_in': 3600})


class SigningConfigTests(SimpleTestCase):
    @override_settings(CONTRACT_SIGNING_PROVIDER='adobe-sign', ADOBE_SIGN_BASE_URL='https://x.test/',
                       ADOBE_SIGN_MOCK=True)
    def test_load_from_settings(self):
        config = load_signing_config()
        self.assertEqual(config.mode, MODE_ADOBE_SIGN)
        self.assertEqual(config.base_url, 'https://x.test')
        self.assertTrue(config.mock_mode)
        self.assertFalse(config.self_hosted)

    @override_settings(CONTRACT_SIGNING_PROVIDER='docusign')
    def test_unknown_mode(self):
        with self.assertRaises(ExternalProviderFailure):
            load_signing_config()

    def test_self_hosted_has_no_provider(self):
        self.assertIsNone(get_signing_provider(_config(mode=MODE_SELF_HOSTED)))
        self.assertIsInstance(get_signing_provider(_config()), AdobeSignService)


class AdobeSignServiceTests(SimpleTestCase):
    @mock.patch('sponsors.signing_service.requests.request')
    def test_send_for_signing_flow(self, request):
        request.side_effect = [
            TOKEN,
            _response(payload={'transientDocumentId': 'td-1'}),
            _response(payload={'id': 'agr-1'}),
            _response(payload={'signingUrlSetInfos': [{'signingUrls': [{'esignUrl': 'https://sign/1'}]}]}),
        ]
        service = AdobeSignService(_config())

        result = service.send_for_signing(
            pdf_bytes=b'%PDF', filename='contract.pdf', signer_email='ada@acme.example',
            agreement_name='Sponsorship Agreement - Acme', message='Please sign',
        )

        self.assertEqual(result.agreement_id, 'agr-1')
        self.assertEqual(result.signing_url, 'https://sign/1')
        self.assertEqual(request.call_count, 4)

        token_call, upload_call, agreement_call, _ = request.call_args_list
        self.assertEqual(token_call.args[1], 'https://ims-na1.adobelogin.com/ims/token/v3')
        self.assertEqual(token_call.kwargs['data']['grant_type'], 'client_credentials')
        self.assertEqual(upload_call.args[1], 'https://api.eu2.adobesign.com/api/rest/v6/transientDocuments')
        self.assertEqual(upload_call.kwargs['headers']['Authorization'], 'Bearer tok')
        payload = agreement_call.kwargs['json']
        self.assertEqual(payload['fileInfos'], [{'transientDocumentId': 'td-1'}])
        self.assertEqual(payload['participantSetsInfo'][0]['memberInfos'], [{'email': 'ada@acme.example'}])
        self.assertEqual(payload['state'], 'IN_PROCESS')

    @mock.patch('sponsors.signing_service.requests.request')
    def test_token_is_cached(self, request):
        request.side_effect = [
            TOKEN,
            _response(payload={'signingUrlSetInfos': [{'signingUrls': [{'esignUrl': 'https://sign/a'}]}]}),
            _response(payload={'signingUrlSetInfos': []}),
        ]
        service = AdobeSignService(_config())

        self.assertEqual(service.get_signing_url('a'), 'https://sign/a')
        self.assertIsNone(service.get_signing_url('b'))
        self.assertEqual(request.call_count, 3)
        self.assertEqual(request.call_args_list[2].kwargs['headers']['Authorization'], 'Bearer tok')

    @mock.patch('sponsors.signing_service.requests.request')
    def test_http_error_raises_provider_failure(self, request):
        request.side_effect = [TOKEN, _response(status_code=500, text='server exploded')]
        with self.assertRaises(ExternalProviderFailure) as ctx:
            AdobeSignService(_config()).upload_document(b'%PDF', 'c.pdf')
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn('exploded', ctx.exception.response_text)

    @mock.patch('sponsors.signing_service.requests.request')
    def test_network_error_raises_provider_failure(self, request):
        request.side_effect = requests.ConnectionError('refused')
        with self.assertRaises(ExternalProviderFailure):
            AdobeSignService(_config()).upload_document(b'%PDF', 'c.pdf')

    @mock.patch('sponsors.signing_service.requests.request')
    def test_missing_agreement_id_raises(self, request):
        request.side_effect = [TOKEN, _response(payload={'transientDocumentId': 'td-1'}), _response(payload={})]
        with self.assertRaises(ExternalProviderFailure):
            AdobeSignService(_config()).send_for_signing(
                pdf_bytes=b'%PDF', filename='c.pdf', signer_email='a@b.c', agreement_name='x', message='',
            )

    @mock.patch('sponsors.signing_service.requests.request')
    def test_signing_url_failure_is_tolerated(self, request):
        request.side_effect = [
            TOKEN,
            _response(payload={'transientDocumentId': 'td-1'}),
            _response(payload={'id': 'agr-1'}),
            _response(status_code=404, text='not yet'),
        ]
        result = AdobeSignService(_config()).send_for_signing(
            pdf_bytes=b'%PDF', filename='c.pdf', signer_email='a@b.c', agreement_name='x', message='',
        )
        self.assertEqual(result.agreement_id, 'agr-1')
        self.assertIsNone(result.signing_url)

    def test_missing_credentials(self):
        service = AdobeSignService(_config(application_id='', application_secret=''))
        with self.assertRaises(ExternalProviderFailure):
            service.upload_document(b'%PDF', 'c.pdf')

    @mock.patch('sponsors.signing_service.requests.request')
    def test_mock_mode_makes_no_calls(self, request):
        result = AdobeSignService(_config(mock_mode=True)).send_for_signing(
            pdf_bytes=b'%PDF', filename='c.pdf', signer_email='a@b.c', agreement_name='x', message='',
        )
        self.assertTrue(result.agreement_id.startswith('mock_agr_'))
        request.assert_not_called()
