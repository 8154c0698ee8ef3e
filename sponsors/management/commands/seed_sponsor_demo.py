"""
Seed demo data for the sponsor contract flow

Creates:
- One event with organizer details
- Standard tiers and an add-on
- Default Norwegian template and an English template
- A sponsor with a pipeline record ready for a contract
"""
from datetime import date
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from sponsors.models import ContractTemplate, Event, Sponsor, SponsorPipelineRecord, SponsorTier
from sponsors.template_service import normalize_sections


def _block(text, style='normal', list_item=None, marks=()):
    block = {'_type': 'block', 'style': style,
             'children': [{'_type': 'span', 'text': text, 'marks': list(marks)}]}
    if list_item:
        block['listItem'] = list_item
    return block


SECTIONS_EN = [
    {
        'heading': 'Scope',
        'body': [
            _block('Partnership with {{{SPONSOR_NAME}}} for {{{CONFERENCE_TITLE}}} ({{{CONFERENCE_DATES}}}).'),
            _block('The sponsorship package {{{TIER_NAME}}} includes:'),
            _block('Logo on the conference website', list_item='bullet'),
            _block('Exhibition space at {{{VENUE_NAME}}}', list_item='bullet'),
            _block('Add-ons: {{{ADDONS_LIST}}}', list_item='bullet'),
        ],
    },
    {
        'heading': 'Payment',
        'body': [
            {'_type': 'block', 'style': 'normal', 'children': [
                {'_type': 'span', 'text': 'The total amount of ', 'marks': []},
                {'_type': 'span', 'text': '{{{CONTRACT_VALUE}}}', 'marks': ['strong']},
                {'_type': 'span', 'text': ' is invoiced upon signing.', 'marks': []},
            ]},
            _block('Invoice is sent after signing', list_item='number'),
            _block('Payment terms are 30 days', list_item='number'),
        ],
    },
]

SECTIONS_NB = [
    {
        'heading': 'Omfang',
        'body': [
            _block('Samarbeid med {{{SPONSOR_NAME}}} for {{{CONFERENCE_TITLE}}} ({{{CONFERENCE_DATES}}}).'),
            _block('Pakken {{{TIER_NAME}}} inkluderer:'),
            _block('Logo på konferansens nettside', list_item='bullet'),
            _block('Standplass på {{{VENUE_NAME}}}', list_item='bullet'),
        ],
    },
    {
        'heading': 'Betaling',
        'body': [
            _block('Totalbeløpet {{{CONTRACT_VALUE}}} faktureres ved signering.'),
        ],
    },
]

TERMS = [
    _block('General', style='h2'),
    _block('These terms apply to all sponsorships of {{{CONFERENCE_TITLE}}}.'),
    _block('Cancellation', style='h2'),
    _block('Cancellation later than 60 days before the event is not refunded.', list_item='number'),
    _block('The organizer may cancel the event due to force majeure.', list_item='number'),
]


class Command(BaseCommand):
    help = 'Seed sponsor contract demo data (event, tiers, templates, pipeline record)'

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Creating event and tiers...')
        event, _ = Event.objects.get_or_create(
            title='Cloud Native Day Bergen',
            defaults={
                'start_date': date(2026, 6, 10),
                'end_date': date(2026, 6, 11),
                'city': 'Bergen',
                'venue_name': 'Grieghallen',
                'venue_address': 'Edvard Griegs plass 1, 5015 Bergen',
                'organizer': 'Cloud Native Bergen',
                'organizer_org_number': '926465732',
                'organizer_address': 'Postboks 1, 5001 Bergen',
                'sponsor_email': 'sponsor@cloudnativebergen.dev',
            },
        )
        gold, _ = SponsorTier.objects.get_or_create(
            event=event, title='Gold',
            defaults={'tagline': 'Maximum visibility', 'price_amount': Decimal('75000')},
        )
        SponsorTier.objects.get_or_create(
            event=event, title='Silver',
            defaults={'tagline': 'Great visibility', 'price_amount': Decimal('40000')},
        )
        addon, _ = SponsorTier.objects.get_or_create(
            event=event, title='Workshop', defaults={'tier_type': 'addon', 'price_amount': Decimal('10000')},
        )

        self.stdout.write('Creating contract templates...')
        ContractTemplate.objects.get_or_create(
            event=event, title='Sponsoravtale',
            defaults={'language': 'nb', 'sections': normalize_sections(SECTIONS_NB), 'terms': TERMS, 'is_default': True,
                      'header_text': event.title, 'footer_text': 'Cloud Native Bergen'},
        )
        ContractTemplate.objects.get_or_create(
            event=event, title='Sponsorship Agreement',
            defaults={'language': 'en', 'sections': normalize_sections(SECTIONS_EN), 'terms': TERMS,
                      'header_text': event.title, 'footer_text': 'Cloud Native Bergen'},
        )

        self.stdout.write('Creating sponsor and pipeline record...')
        sponsor, _ = Sponsor.objects.get_or_create(
            name='Acme Corp',
            defaults={'org_number': '912345678', 'address': 'Storgata 1, 0155 Oslo', 'website': 'https://acme.example'},
        )
        record, created = SponsorPipelineRecord.objects.get_or_create(
            event=event, sponsor=sponsor,
            defaults={
                'tier': gold,
                'status': 'negotiating',
                'contract_value': Decimal('85000'),
                'contact_persons': [
                    {'name': 'Ada Lovelace', 'email': 'ada@acme.example', 'role': 'CMO', 'is_primary': True},
                ],
                'billing': {'email': 'invoice@acme.example', 'reference': 'PO-1234'},
            },
        )
        if created:
            record.addons.add(addon)

        self.stdout.write(self.style.SUCCESS(f'✓ Seeded event {event.id} with pipeline record {record.id}'))
