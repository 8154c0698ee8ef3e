from datetime import timedelta
from unittest import mock

from django.core import mail
from django.test import TestCase
from django.utils import timezone

from sponsors.asset_store import DatabaseAssetStore, read_asset
from sponsors.contract_send import (
    ContractSendService, apply_signature_event, contract_filename, send_contract_reminder,
    send_due_contract_reminders,
)
from sponsors.exceptions import (
    ExternalProviderFailure, IllegalTransition, NoActiveTemplate, ValidationFailure,
)
from sponsors.models import ContractTemplate, SponsorActivity, SponsorPipelineRecord
from sponsors.signing_service import MODE_ADOBE_SIGN, MODE_SELF_HOSTED, SigningConfig, SigningResult
from sponsors.tests.factories import make_event, make_record, make_template
from sponsors.variables import build_contract_variables


def _config(mode=MODE_ADOBE_SIGN):
    return SigningConfig(
        mode=mode, base_url='https://api.example.test', ims_url='https://ims.example.test/token',
        application_id='app', application_secret='secret', webhook_client_id='client',
        timeout_seconds=5, mock_mode=False,
    )


class SendForSignatureTests(TestCase):
    def setUp(self):
        self.event = make_event()
        self.template = make_template(self.event, is_default=True)
        self.record = make_record(event=self.event)
        self.provider = mock.Mock()
        self.provider.send_for_signing.return_value = SigningResult('agr-123', 'https://sign.example/abc')

    def _service(self, provider=None, mode=MODE_ADOBE_SIGN):
        return ContractSendService(
            config=_config(mode), provider=provider or self.provider, asset_store=DatabaseAssetStore(),
        )

    def test_successful_send(self):
        result = self._service().send_for_signature(self.record.id, actor='user-1')

        self.record.refresh_from_db()
        self.assertEqual(self.record.contract_status, 'contract-sent')
        self.assertEqual(self.record.signature_status, 'pending')
        self.assertEqual(self.record.signature_id, 'agr-123')
        self.assertEqual(self.record.signing_url, 'https://sign.example/abc')
        self.assertEqual(self.record.signer_email, 'ada@acme.example')
        self.assertEqual(self.record.contract_template_id, self.template.id)
        self.assertIsNotNone(self.record.contract_sent_at)
        self.assertTrue(read_asset(self.record.contract_document).startswith(b'%PDF'))
        self.assertEqual(self.record.contract_document.filename, 'contract-acme-corp.pdf')
        self.assertIsNone(result.provider_error)

        kwargs = self.provider.send_for_signing.call_args.kwargs
        self.assertEqual(kwargs['signer_email'], 'ada@acme.example')
        self.assertEqual(kwargs['agreement_name'], 'Sponsorship Agreement - Acme Corp')

        kinds = sorted(self.record.activities.values_list('kind', flat=True))
        self.assertEqual(kinds, ['contract_status_change', 'signature_status_change'])
        self.assertTrue(all(a.actor == 'user-1' for a in self.record.activities.all()))

    def test_provider_failure_is_not_fatal(self):
        self.provider.send_for_signing.side_effect = ExternalProviderFailure('Adobe Sign API error (500)')

        result = self._service().send_for_signature(self.record.id)

        self.record.refresh_from_db()
        self.assertEqual(self.record.contract_status, 'contract-sent')
        self.assertEqual(self.record.signature_id, '')
        self.assertIsNotNone(self.record.contract_document)
        self.assertIn('500', result.provider_error)
        self.assertEqual(self.record.activities.count(), 2)

    def test_unexpected_provider_error_is_not_fatal(self):
        self.provider.send_for_signing.side_effect = ConnectionError('reset by peer')
        result = self._service().send_for_signature(self.record.id)
        self.assertIsNone(result.agreement_id)
        self.assertEqual(SponsorPipelineRecord.objects.get(id=self.record.id).contract_status, 'contract-sent')

    def test_self_hosted_skips_provider(self):
        service = ContractSendService(config=_config(MODE_SELF_HOSTED), provider=None,
                                      asset_store=DatabaseAssetStore())
        result = service.send_for_signature(self.record.id)
        self.assertIsNone(result.agreement_id)
        self.record.refresh_from_db()
        self.assertEqual(self.record.signature_status, 'pending')
        self.assertEqual(self.record.signature_id, '')

    def test_readiness_blocks_with_grouped_missing_fields(self):
        record = make_record(event=self.event, sponsor_name='No Contact AS', contact_persons=[])
        with self.assertRaises(ValidationFailure) as ctx:
            self._service().send_for_signature(record.id)

        payload = ctx.exception.to_payload()
        self.assertIn('contact_persons', [m['field'] for m in payload['missing']['sponsor']])
        record.refresh_from_db()
        self.assertEqual(record.contract_status, 'none')
        self.assertIsNone(record.contract_document)
        self.assertFalse(record.activities.exists())
        self.provider.send_for_signing.assert_not_called()

    def test_signed_contract_cannot_be_resent(self):
        SponsorPipelineRecord.objects.filter(id=self.record.id).update(
            contract_status='contract-signed', signature_status='signed',
        )
        with self.assertRaises(IllegalTransition):
            self._service().send_for_signature(self.record.id)
        self.assertFalse(SponsorActivity.objects.exists())

    def test_resend_logs_only_changed_axes(self):
        SponsorPipelineRecord.objects.filter(id=self.record.id).update(
            contract_status='contract-sent', signature_status='rejected',
        )
        self._service().send_for_signature(self.record.id, actor='user-1')

        activity = self.record.activities.get()
        self.assertEqual(activity.kind, 'signature_status_change')
        self.assertEqual(activity.metadata['oldValue'], 'rejected')
        self.assertEqual(activity.metadata['newValue'], 'pending')

        self._service().send_for_signature(self.record.id, actor='user-1')
        self.assertEqual(self.record.activities.count(), 1)
        self.assertEqual(self.provider.send_for_signing.call_count, 2)

    def test_no_active_template(self):
        self.template.is_active = False
        self.template.save()
        with self.assertRaises(NoActiveTemplate):
            self._service().send_for_signature(self.record.id)
        self.record.refresh_from_db()
        self.assertEqual(self.record.contract_status, 'none')

    def test_explicit_signer_overrides_contact(self):
        self._service().send_for_signature(self.record.id, signer_email='cfo@acme.example', signer_name='CFO')
        self.record.refresh_from_db()
        self.assertEqual(self.record.signer_email, 'cfo@acme.example')
        self.assertEqual(self.record.signer_name, 'CFO')

    def test_preview_does_not_persist(self):
        template, pdf = self._service().preview(self.record.id)
        self.assertEqual(template, self.template)
        self.assertTrue(pdf.startswith(b'%PDF'))
        self.record.refresh_from_db()
        self.assertEqual(self.record.contract_status, 'none')
        self.assertIsNone(self.record.contract_document)

    def test_render_uses_template_currency_when_record_has_none(self):
        ContractTemplate.objects.filter(id=self.template.id).update(currency='EUR')
        SponsorPipelineRecord.objects.filter(id=self.record.id).update(contract_currency='')
        with mock.patch(
            'sponsors.contract_send.build_contract_variables', wraps=build_contract_variables,
        ) as build:
            self._service().preview(self.record.id)
        self.assertEqual(build.call_args.args[0].contract_currency, 'EUR')

    def test_contract_filename(self):
        self.assertEqual(contract_filename('Ærlig & Co AS'), 'contract-rlig-co-as.pdf')
        self.assertEqual(contract_filename(''), 'contract-sponsor.pdf')


class ContractReminderTests(TestCase):
    def setUp(self):
        self.record = make_record(
            contract_status='contract-sent', signature_status='pending',
            signer_name='Ada', signer_email='ada@acme.example', signing_url='https://sign.example/abc',
            contract_sent_at=timezone.now() - timedelta(days=5),
        )

    def test_send_reminder(self):
        count = send_contract_reminder(self.record, actor='user-1')
        self.assertEqual(count, 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['ada@acme.example'])
        self.assertIn('https://sign.example/abc', mail.outbox[0].body)
        activity = self.record.activities.get()
        self.assertEqual(activity.kind, 'contract_reminder_sent')
        self.assertEqual(activity.metadata['reminderCount'], 1)

    def test_reminder_requires_pending_signature(self):
        self.record.signature_status = 'signed'
        with self.assertRaises(ValidationFailure):
            send_contract_reminder(self.record)
        self.assertEqual(len(mail.outbox), 0)

    def test_due_reminders(self):
        make_record(
            event=self.record.event, sponsor_name='No Link AS',
            signature_status='pending', signer_email='x@nolink.example',
            contract_sent_at=timezone.now() - timedelta(days=5),
        )
        make_record(
            event=self.record.event, sponsor_name='Maxed AS', signature_status='pending',
            signer_email='y@maxed.example', signing_url='https://sign.example/y', reminder_count=2,
            contract_sent_at=timezone.now() - timedelta(days=5),
        )
        make_record(
            event=self.record.event, sponsor_name='Fresh AS', signature_status='pending',
            signer_email='z@fresh.example', signing_url='https://sign.example/z',
            contract_sent_at=timezone.now(),
        )

        result = send_due_contract_reminders(max_reminders=2, interval_days=3)

        self.assertEqual(result, {'total': 2, 'sent': 1, 'failed': 1})
        self.record.refresh_from_db()
        self.assertEqual(self.record.reminder_count, 1)


class ApplySignatureEventTests(TestCase):
    def setUp(self):
        self.record = make_record(
            contract_status='contract-sent', signature_status='pending', signature_id='agr-9',
            signer_name='Ada',
        )

    def test_signed_copy_is_downloaded_when_not_inline(self):
        provider = mock.Mock()
        provider.download_signed_document.return_value = b'%PDF-combined'

        record = apply_signature_event(
            'agr-9', 'AGREEMENT_WORKFLOW_COMPLETED', {'id': 'agr-9'},
            asset_store=DatabaseAssetStore(), provider=provider,
        )

        provider.download_signed_document.assert_called_once_with('agr-9')
        self.assertEqual(read_asset(record.contract_document), b'%PDF-combined')
        self.assertEqual(record.contract_document.filename, 'signed-contract-agr-9.pdf')
        self.assertEqual(record.activities.get(kind='contract_signed').description, 'Contract signed by Ada')

    def test_download_failure_still_marks_signed(self):
        provider = mock.Mock()
        provider.download_signed_document.side_effect = ExternalProviderFailure('Adobe Sign API error (404)')

        record = apply_signature_event('agr-9', 'AGREEMENT_WORKFLOW_COMPLETED', {}, provider=provider)

        self.assertEqual(record.signature_status, 'signed')
        self.assertEqual(record.contract_status, 'contract-signed')
        self.assertIsNone(record.contract_document)

    def test_unknown_agreement_skips_download(self):
        provider = mock.Mock()
        self.assertIsNone(apply_signature_event('nope', 'AGREEMENT_WORKFLOW_COMPLETED', {}, provider=provider))
        provider.download_signed_document.assert_not_called()
