"""
Tests for the sponsors API
"""
from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from sponsors.exceptions import ExternalProviderFailure
from sponsors.models import ContractTemplate, SponsorActivity, SponsorPipelineRecord
from sponsors.template_service import ContractTemplateService
from sponsors.tests.factories import block, make_event, make_record, make_template, make_tier


@override_settings(CONTRACT_SIGNING_PROVIDER='self-hosted', CONTRACT_ASSET_STORAGE='database')
class PipelineApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(username='organizer', password='pass1234')
        self.client.force_authenticate(user=self.user)
        self.event = make_event()
        self.template = make_template(self.event, is_default=True)
        self.record = make_record(event=self.event)

    def _url(self, suffix=''):
        return f'/api/v1/pipeline/{self.record.id}/{suffix}'

    def test_requires_authentication(self):
        res = APIClient().get('/api/v1/pipeline/')
        self.assertIn(res.status_code, (401, 403))

    def test_list_filters_by_status(self):
        make_record(event=self.event, sponsor_name='Other', status='prospect')
        res = self.client.get('/api/v1/pipeline/', {'event': str(self.event.id), 'status': 'negotiating'})
        self.assertEqual(res.status_code, 200)
        results = res.json()['results']
        self.assertEqual([r['sponsor_name'] for r in results], ['Acme Corp'])

    def test_status_fields_are_read_only(self):
        res = self.client.patch(self._url(), {'status': 'closed-won', 'tags': ['vip']}, format='json')
        self.assertEqual(res.status_code, 200)
        self.record.refresh_from_db()
        self.assertEqual(self.record.status, 'negotiating')
        self.assertEqual(self.record.tags, ['vip'])

    def test_patch_assignee_is_logged(self):
        kari = get_user_model().objects.create_user(username='kari', password='pass1234', first_name='Kari')
        res = self.client.patch(self._url(), {'assigned_to': kari.pk}, format='json')
        self.assertEqual(res.status_code, 200)

        activity = SponsorActivity.objects.get(record=self.record)
        self.assertEqual(activity.kind, 'note')
        self.assertEqual(activity.description, 'Assigned to Kari')
        self.assertEqual(activity.actor, str(self.user.pk))

        self.client.patch(self._url(), {'tags': ['vip']}, format='json')
        self.assertEqual(SponsorActivity.objects.filter(record=self.record).count(), 1)

        self.client.patch(self._url(), {'assigned_to': None}, format='json')
        self.assertTrue(SponsorActivity.objects.filter(record=self.record, description='Unassigned').exists())

    def test_readiness(self):
        res = self.client.get(self._url('contract-readiness/'))
        self.assertEqual(res.status_code, 200)
        payload = res.json()
        self.assertTrue(payload['can_send'])
        self.assertEqual([m['field'] for m in payload['grouped']['pipeline-data']], ['tier'])

    def test_preview_returns_pdf(self):
        res = self.client.get(self._url('contract-preview/'))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res['Content-Type'], 'application/pdf')
        self.assertTrue(res.content.startswith(b'%PDF'))

    def test_send_contract_self_hosted(self):
        res = self.client.post(self._url('send-contract/'), {}, format='json')
        self.assertEqual(res.status_code, 200)
        payload = res.json()
        self.assertTrue(payload['success'])
        self.assertEqual(payload['record']['contract_status'], 'contract-sent')
        self.assertIsNone(payload['signature_id'])

        activity = SponsorActivity.objects.filter(record=self.record, kind='contract_status_change').get()
        self.assertEqual(activity.actor, str(self.user.pk))

        res = self.client.get(self._url('contract-document/'))
        self.assertEqual(res.status_code, 200)
        self.assertIn('contract-acme-corp.pdf', res['Content-Disposition'])

    @override_settings(CONTRACT_SIGNING_PROVIDER='adobe-sign')
    def test_send_contract_provider_failure_returns_warning(self):
        with mock.patch(
            'sponsors.signing_service.AdobeSignService.send_for_signing',
            side_effect=ExternalProviderFailure('Adobe Sign credentials not configured'),
        ):
            res = self.client.post(self._url('send-contract/'), {}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertIn('credentials', res.json()['warning'])
        self.assertEqual(SponsorPipelineRecord.objects.get(id=self.record.id).contract_status, 'contract-sent')

    def test_send_contract_blocked_returns_missing_fields(self):
        record = make_record(event=self.event, sponsor_name='Nobody AS', contact_persons=[])
        res = self.client.post(f'/api/v1/pipeline/{record.id}/send-contract/', {}, format='json')
        self.assertEqual(res.status_code, 400)
        payload = res.json()
        self.assertIn('error', payload)
        self.assertEqual(set(payload['missing']), {'organizer', 'sponsor', 'pipeline-data'})
        self.assertIn('contact_persons', [m['field'] for m in payload['missing']['sponsor']])

    def test_send_contract_without_template(self):
        ContractTemplate.objects.all().update(is_active=False)
        res = self.client.post(self._url('send-contract/'), {}, format='json')
        self.assertEqual(res.status_code, 404)

    def test_transition(self):
        res = self.client.post(self._url('transition/'), {'axis': 'status', 'to': 'closed-won'}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['status'], 'closed-won')

        res = self.client.post(self._url('transition/'), {'axis': 'status', 'to': 'prospect'}, format='json')
        self.assertEqual(res.status_code, 400)

        res = self.client.get(self._url('activities/'))
        self.assertEqual([a['kind'] for a in res.json()], ['stage_change'])

    def test_add_note(self):
        res = self.client.post(self._url('activities/'), {'kind': 'call', 'description': 'Called CMO'}, format='json')
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.json()['kind'], 'call')

    def test_contract_document_missing(self):
        res = self.client.get(self._url('contract-document/'))
        self.assertEqual(res.status_code, 404)
        self.assertIn('no contract document', res.json()['error'])

    def test_send_reminder(self):
        res = self.client.post(self._url('send-reminder/'))
        self.assertEqual(res.status_code, 400)

        SponsorPipelineRecord.objects.filter(id=self.record.id).update(
            signature_status='pending', signer_email='ada@acme.example', signing_url='https://sign.example/1',
        )
        res = self.client.post(self._url('send-reminder/'))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['reminder_count'], 1)
        self.assertEqual(len(mail.outbox), 1)

    def test_unknown_record_is_404(self):
        res = self.client.get('/api/v1/pipeline/00000000-0000-0000-0000-000000000000/contract-readiness/')
        self.assertEqual(res.status_code, 404)

    def test_bulk_update_and_delete(self):
        other = make_record(event=self.event, sponsor_name='Other', status='prospect')
        res = self.client.post('/api/v1/pipeline/bulk-update/', {
            'ids': [str(self.record.id), str(other.id)],
            'changes': {'status': 'contacted', 'tags_add': ['2026']},
        }, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['updated_count'], 2)

        res = self.client.post('/api/v1/pipeline/bulk-delete/', {'ids': [str(other.id)]}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['deleted_count'], 1)
        self.assertFalse(SponsorPipelineRecord.objects.filter(id=other.id).exists())

    def test_bulk_update_rejects_bad_payload(self):
        res = self.client.post('/api/v1/pipeline/bulk-update/', {'ids': ['not-a-uuid'], 'changes': {}}, format='json')
        self.assertEqual(res.status_code, 400)


class TemplateAndVariableApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(username='organizer', password='pass1234')
        self.client.force_authenticate(user=self.user)
        self.event = make_event()

    def test_create_and_update_template(self):
        res = self.client.post('/api/v1/contract-templates/', {
            'event': str(self.event.id),
            'title': 'Agreement',
            'language': 'en',
            'sections': [{'heading': 'Scope', 'body': [block('Hi {{{SPONSOR_NAME}}}')]}],
        }, format='json')
        self.assertEqual(res.status_code, 201, res.content)
        template_id = res.json()['id']
        self.assertEqual(res.json()['sections'][0]['_key'], 'section-1')

        res = self.client.patch(f'/api/v1/contract-templates/{template_id}/', {'title': 'Renamed'}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['version'], 2)

        res = self.client.get('/api/v1/contract-templates/', {'event': str(self.event.id)})
        self.assertEqual([t['title'] for t in res.json()['results']], ['Renamed'])

    def test_template_writes_go_through_service(self):
        tier = make_tier(self.event)
        res = self.client.post('/api/v1/contract-templates/', {
            'event': str(self.event.id), 'title': 'Gold Agreement', 'tier': str(tier.id),
        }, format='json')
        self.assertEqual(res.status_code, 201, res.content)
        template_id = res.json()['id']
        self.assertEqual(res.json()['tier'], str(tier.id))

        with mock.patch(
            'sponsors.views.ContractTemplateService.update', wraps=ContractTemplateService.update,
        ) as update:
            res = self.client.patch(f'/api/v1/contract-templates/{template_id}/', {'tier': None}, format='json')
        self.assertEqual(res.status_code, 200)
        update.assert_called_once()
        self.assertIsNone(res.json()['tier'])
        self.assertEqual(res.json()['version'], 2)

        res = self.client.delete(f'/api/v1/contract-templates/{template_id}/')
        self.assertEqual(res.status_code, 204)
        self.assertFalse(ContractTemplate.objects.filter(id=template_id).exists())

    def test_invalid_sections_rejected(self):
        res = self.client.post('/api/v1/contract-templates/', {
            'event': str(self.event.id), 'title': 'Broken', 'sections': [{'heading': 'x', 'body': 'nope'}],
        }, format='json')
        self.assertEqual(res.status_code, 400)
        self.assertIn('sections', res.json())

    def test_contract_variables(self):
        res = self.client.get('/api/v1/contract-variables/')
        self.assertEqual(res.status_code, 200)
        names = [v['name'] for v in res.json()['variables']]
        self.assertIn('SPONSOR_NAME', names)
        self.assertIn('CONFERENCE_DATES', names)

    def test_event_terms(self):
        terms = [block('General', style='h2')]
        make_template(self.event, terms=terms, is_default=True)
        res = self.client.get(f'/api/v1/events/{self.event.id}/contract-terms/')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()['terms'], terms)


class MetricsEndpointTests(TestCase):
    def test_exposes_contract_counters(self):
        res = APIClient().get('/metrics')
        self.assertEqual(res.status_code, 200)
        self.assertIn(b'sponsor_contracts_sent', res.content)
        self.assertIn(b'sponsor_signing_webhooks', res.content)

    @override_settings(METRICS_TOKEN='scrape-secret')
    def test_token_required_when_configured(self):
        self.assertEqual(APIClient().get('/metrics').status_code, 401)
        res = APIClient().get('/metrics', HTTP_X_METRICS_TOKEN='scrape-secret')
        self.assertEqual(res.status_code, 200)
