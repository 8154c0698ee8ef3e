"""
Shared fixtures for sponsor tests
"""
from datetime import date
from decimal import Decimal

from sponsors.models import ContractTemplate, Event, Sponsor, SponsorPipelineRecord, SponsorTier


def span(text, *marks):
    return {'_type': 'span', 'text': text, 'marks': list(marks)}


def block(*children, style='normal', list_item=None):
    raw = {'_type': 'block', 'style': style, 'children': [
        span(c) if isinstance(c, str) else c for c in children
    ]}
    if list_item:
        raw['listItem'] = list_item
    return raw


def make_event(**overrides):
    fields = {
        'title': 'Cloud Native Day Bergen',
        'start_date': date(2026, 6, 10),
        'end_date': date(2026, 6, 11),
        'city': 'Bergen',
        'venue_name': 'Grieghallen',
        'venue_address': 'Edvard Griegs plass 1',
        'organizer': 'Cloud Native Bergen',
        'organizer_org_number': '926465732',
        'organizer_address': 'Postboks 1, 5001 Bergen',
        'sponsor_email': 'sponsor@cloudnativebergen.dev',
    }
    fields.update(overrides)
    return Event.objects.create(**fields)


def make_tier(event, title='Gold', **overrides):
    fields = {'tagline': 'Maximum visibility', 'price_amount': Decimal('75000')}
    fields.update(overrides)
    return SponsorTier.objects.create(event=event, title=title, **fields)


def make_template(event, title='Sponsorship Agreement', **overrides):
    fields = {
        'language': 'en',
        'sections': [
            {'_key': 'section-1', 'heading': 'Scope',
             'body': [block('Partnership with {{{SPONSOR_NAME}}}')]},
        ],
        'is_default': False,
        'is_active': True,
    }
    fields.update(overrides)
    return ContractTemplate.objects.create(event=event, title=title, **fields)


def make_record(event=None, sponsor_name='Acme Corp', contact_persons=None, **overrides):
    event = event or make_event()
    sponsor = Sponsor.objects.create(
        name=sponsor_name, org_number='912345678', address='Storgata 1, 0155 Oslo',
    )
    if contact_persons is None:
        contact_persons = [{'name': 'Ada Lovelace', 'email': 'ada@acme.example', 'is_primary': True}]
    fields = {
        'status': 'negotiating',
        'contract_value': Decimal('75000'),
        'contact_persons': contact_persons,
    }
    fields.update(overrides)
    return SponsorPipelineRecord.objects.create(event=event, sponsor=sponsor, **fields)
