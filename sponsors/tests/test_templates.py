from datetime import timedelta

from django.test import TestCase

from sponsors.exceptions import NoActiveTemplate, NotFound, RenderFailure
from sponsors.models import ContractTemplate
from sponsors.template_service import (
    ContractTemplateService, find_best_template, get_terms_for_event, score_template,
)
from sponsors.tests.factories import block, make_event, make_template, make_tier


class TemplateMatcherTests(TestCase):
    def setUp(self):
        self.event = make_event()
        self.tier_a = make_tier(self.event, title='Tier A')
        self.tier_b = make_tier(self.event, title='Tier B')

    def test_tier_match_beats_default(self):
        tier_a_template = make_template(self.event, title='A', tier=self.tier_a, language='en', is_default=False)
        default_template = make_template(self.event, title='B', tier=self.tier_b, language='en', is_default=True)

        self.assertEqual(score_template(tier_a_template, self.tier_a.id, 'en'), 6)
        self.assertEqual(score_template(default_template, self.tier_a.id, 'en'), 3)
        self.assertEqual(find_best_template(self.event.id, self.tier_a.id, 'en'), tier_a_template)

    def test_tie_prefers_default(self):
        make_template(self.event, title='Plain', language='en')
        default_template = make_template(self.event, title='Default', language='nb', is_default=True)
        self.assertEqual(find_best_template(self.event.id), default_template)

    def test_tie_without_default_keeps_first_created(self):
        first = make_template(self.event, title='First', language='en')
        second = make_template(self.event, title='Second', language='en')
        ContractTemplate.objects.filter(id=second.id).update(created_at=first.created_at + timedelta(seconds=1))
        self.assertEqual(find_best_template(self.event.id, language='en'), first)

    def test_matching_is_deterministic(self):
        make_template(self.event, title='X', language='en')
        make_template(self.event, title='Y', language='nb', is_default=True)
        picks = {find_best_template(self.event.id, self.tier_b.id, 'en').id for _ in range(5)}
        self.assertEqual(len(picks), 1)

    def test_inactive_templates_are_ignored(self):
        make_template(self.event, title='Old', is_active=False, is_default=True)
        with self.assertRaises(NoActiveTemplate):
            find_best_template(self.event.id)


class ContractTemplateServiceTests(TestCase):
    def setUp(self):
        self.event = make_event()

    def test_create_assigns_section_keys(self):
        template = ContractTemplateService.create(self.event.id, {
            'title': 'Agreement',
            'sections': [{'heading': 'Scope', 'body': [block('Text')]}],
        })
        self.assertEqual(template.sections[0]['_key'], 'section-1')
        self.assertEqual(template.version, 1)

    def test_update_bumps_version(self):
        template = make_template(self.event)
        updated = ContractTemplateService.update(template.id, {'title': 'Renamed', 'version': 99})
        self.assertEqual(updated.title, 'Renamed')
        self.assertEqual(updated.version, 2)

    def test_invalid_rich_text_is_rejected(self):
        with self.assertRaises(RenderFailure):
            ContractTemplateService.create(self.event.id, {
                'title': 'Broken', 'sections': [{'heading': 'Scope', 'body': 'not blocks'}],
            })
        with self.assertRaises(RenderFailure):
            ContractTemplateService.create(self.event.id, {
                'title': 'No heading', 'sections': [{'body': []}],
            })

    def test_get_and_delete_missing(self):
        template = make_template(self.event)
        ContractTemplateService.delete(template.id)
        with self.assertRaises(NotFound):
            ContractTemplateService.get(template.id)
        with self.assertRaises(NotFound):
            ContractTemplateService.delete(template.id)

    def test_terms_for_event(self):
        self.assertIsNone(get_terms_for_event(self.event.id))
        terms = [block('General', style='h2')]
        make_template(self.event, title='Plain', terms=[block('Other')])
        make_template(self.event, title='Default', terms=terms, is_default=True)
        self.assertEqual(get_terms_for_event(self.event.id), terms)

    def test_list_for_event_is_sorted_by_title(self):
        make_template(self.event, title='Workshop addon')
        make_template(self.event, title='Gold')
        make_template(make_event(), title='Elsewhere')
        titles = [t.title for t in ContractTemplateService.list_for_event(self.event.id)]
        self.assertEqual(titles, ['Gold', 'Workshop addon'])
