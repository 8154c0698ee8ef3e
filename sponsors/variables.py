"""
Contract variable resolution.

`build_contract_variables` flattens a ContractVariableContext into
{NAME: str}. A key is only present when its source field is, so a
placeholder for missing data stays in the rendered text as `{{{NAME}}}`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Union

from django.utils import timezone

from .rich_text import RichText, map_spans

PLACEHOLDER_RE = re.compile(r'\{\{\{([A-Z0-9_]+)\}\}\}')

NBSP = '\u00A0'
EN_DASH = '\u2013'

MONTHS = {
    'en': ['January', 'February', 'March', 'April', 'May', 'June', 'July',
           'August', 'September', 'October', 'November', 'December'],
    'nb': ['januar', 'februar', 'mars', 'april', 'mai', 'juni', 'juli',
           'august', 'september', 'oktober', 'november', 'desember'],
}

CONTRACT_VARIABLE_DESCRIPTIONS: Dict[str, str] = {
    'SPONSOR_NAME': 'Sponsor company name',
    'SPONSOR_ORG_NUMBER': 'Sponsor organization number',
    'SPONSOR_ADDRESS': 'Sponsor postal address',
    'SPONSOR_WEBSITE': 'Sponsor website URL',
    'CONTACT_NAME': 'Primary contact person name',
    'CONTACT_EMAIL': 'Primary contact person email',
    'TIER_NAME': 'Sponsorship tier name',
    'TIER_TAGLINE': 'Sponsorship tier tagline',
    'ADDONS_LIST': 'Comma-separated list of selected add-ons',
    'CONTRACT_VALUE': 'Total contract value, formatted with currency',
    'CONTRACT_VALUE_NUMBER': 'Total contract value as a plain number',
    'CONTRACT_CURRENCY': 'Contract currency code (defaults to NOK)',
    'CONFERENCE_TITLE': 'Conference title',
    'CONFERENCE_DATE': 'Conference start date',
    'CONFERENCE_DATES': 'Conference date range',
    'CONFERENCE_YEAR': 'Conference year',
    'CONFERENCE_CITY': 'Conference city',
    'VENUE_NAME': 'Venue name',
    'VENUE_ADDRESS': 'Venue address',
    'ORG_NAME': 'Organizer legal name',
    'ORG_ORG_NUMBER': 'Organizer organization number',
    'ORG_ADDRESS': 'Organizer postal address',
    'ORG_EMAIL': 'Organizer sponsor contact email',
    'TODAY_DATE': 'Date the contract was generated',
}


@dataclass
class SponsorInfo:
    name: str
    org_number: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None


@dataclass
class ContactInfo:
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class TierInfo:
    title: str
    tagline: Optional[str] = None


@dataclass
class EventInfo:
    title: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    city: Optional[str] = None
    organizer: Optional[str] = None
    organizer_org_number: Optional[str] = None
    organizer_address: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    sponsor_email: Optional[str] = None


@dataclass
class ContractVariableContext:
    sponsor: SponsorInfo
    event: EventInfo
    contact: Optional[ContactInfo] = None
    tier: Optional[TierInfo] = None
    addons: List[str] = field(default_factory=list)
    contract_value: Optional[Union[int, Decimal, float]] = None
    contract_currency: Optional[str] = None


def format_org_number(value: str) -> str:
    """Group a 9-digit organization number as 'NNN NNN NNN' (non-breaking spaces)."""
    digits = re.sub(r'\s+', '', value or '')
    if len(digits) == 9 and digits.isdigit():
        return NBSP.join([digits[0:3], digits[3:6], digits[6:9]])
    return value


def format_date(value: date, language: str = 'en') -> str:
    months = MONTHS.get(language, MONTHS['en'])
    if language == 'nb':
        return f"{value.day}. {months[value.month - 1]} {value.year}"
    return f"{value.day} {months[value.month - 1]} {value.year}"


def format_date_range(start: date, end: Optional[date], language: str = 'en') -> str:
    if end is None or end == start:
        return format_date(start, language)
    if start.year == end.year and start.month == end.month:
        months = MONTHS.get(language, MONTHS['en'])
        sep = '.' if language == 'nb' else ''
        return f"{start.day}{sep}{EN_DASH}{end.day}{sep} {months[start.month - 1]} {start.year}"
    return f"{format_date(start, language)} {EN_DASH} {format_date(end, language)}"


def _plain_number(amount: Union[int, Decimal, float]) -> str:
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value.quantize(Decimal('0.01'))}"


def format_currency(amount: Union[int, Decimal, float], currency: str = 'NOK', language: str = 'en') -> str:
    """Format an amount with thousands grouping and currency.

    en: 'NOK 75,000'. nb: '75 000 kr' (NOK) or '75 000 USD'.
    """
    value = Decimal(str(amount))
    decimals = 0 if value == value.to_integral_value() else 2
    grouped = f"{value:,.{decimals}f}"
    if language == 'nb':
        grouped = grouped.replace(',', NBSP).replace('.', ',')
        suffix = 'kr' if currency == 'NOK' else currency
        return f"{grouped}{NBSP}{suffix}"
    return f"{currency}{NBSP}{grouped}"


def build_contract_variables(ctx: ContractVariableContext, language: str = 'en',
                             today: Optional[date] = None) -> Dict[str, str]:
    variables: Dict[str, str] = {}

    variables['SPONSOR_NAME'] = ctx.sponsor.name
    if ctx.sponsor.org_number:
        variables['SPONSOR_ORG_NUMBER'] = format_org_number(ctx.sponsor.org_number)
    if ctx.sponsor.address:
        variables['SPONSOR_ADDRESS'] = ctx.sponsor.address
    if ctx.sponsor.website:
        variables['SPONSOR_WEBSITE'] = ctx.sponsor.website

    if ctx.contact is not None:
        if ctx.contact.name:
            variables['CONTACT_NAME'] = ctx.contact.name
        if ctx.contact.email:
            variables['CONTACT_EMAIL'] = ctx.contact.email

    if ctx.tier is not None:
        variables['TIER_NAME'] = ctx.tier.title
        if ctx.tier.tagline:
            variables['TIER_TAGLINE'] = ctx.tier.tagline

    if ctx.addons:
        variables['ADDONS_LIST'] = ', '.join(ctx.addons)

    currency = ctx.contract_currency or 'NOK'
    if ctx.contract_value is not None:
        variables['CONTRACT_VALUE'] = format_currency(ctx.contract_value, currency, language)
        variables['CONTRACT_VALUE_NUMBER'] = _plain_number(ctx.contract_value)
    variables['CONTRACT_CURRENCY'] = currency

    event = ctx.event
    variables['CONFERENCE_TITLE'] = event.title
    if event.start_date:
        variables['CONFERENCE_DATE'] = format_date(event.start_date, language)
        variables['CONFERENCE_DATES'] = format_date_range(event.start_date, event.end_date, language)
        variables['CONFERENCE_YEAR'] = str(event.start_date.year)
    if event.city:
        variables['CONFERENCE_CITY'] = event.city
    if event.venue_name:
        variables['VENUE_NAME'] = event.venue_name
    if event.venue_address:
        variables['VENUE_ADDRESS'] = event.venue_address
    if event.organizer:
        variables['ORG_NAME'] = event.organizer
    if event.organizer_org_number:
        variables['ORG_ORG_NUMBER'] = format_org_number(event.organizer_org_number)
    if event.organizer_address:
        variables['ORG_ADDRESS'] = event.organizer_address
    if event.sponsor_email:
        variables['ORG_EMAIL'] = event.sponsor_email

    variables['TODAY_DATE'] = format_date(today or timezone.localdate(), language)
    return variables


def substitute(text: str, variables: Dict[str, str]) -> str:
    """Replace every {{{KEY}}} whose KEY is known. Unknown keys are left as-is."""
    if not text:
        return text

    def _replace(match):
        key = match.group(1)
        return variables[key] if key in variables else match.group(0)

    return PLACEHOLDER_RE.sub(_replace, text)


def substitute_rich_text(rich: RichText, variables: Dict[str, str]) -> RichText:
    return map_spans(rich, lambda text: substitute(text, variables))


def find_placeholders(text: str) -> List[str]:
    return PLACEHOLDER_RE.findall(text or '')


def primary_contact(contact_persons) -> Optional[dict]:
    """Contact flagged is_primary, else the first listed contact."""
    contacts = [c for c in (contact_persons or []) if isinstance(c, dict)]
    for contact in contacts:
        if contact.get('is_primary'):
            return contact
    return contacts[0] if contacts else None


def context_from_record(record, default_currency: Optional[str] = None) -> ContractVariableContext:
    """
    Build the variable context for a SponsorPipelineRecord. A record without
    its own currency uses `default_currency` (the template currency).
    """
    sponsor = record.sponsor
    event = record.event
    contact = primary_contact(record.contact_persons)
    tier = record.tier

    return ContractVariableContext(
        sponsor=SponsorInfo(
            name=sponsor.name,
            org_number=sponsor.org_number or None,
            address=sponsor.address or None,
            website=sponsor.website or None,
        ),
        contact=ContactInfo(name=contact.get('name'), email=contact.get('email')) if contact else None,
        tier=TierInfo(title=tier.title, tagline=tier.tagline or None) if tier else None,
        addons=[a.title for a in record.addons.all().order_by('title')],
        contract_value=record.contract_value,
        contract_currency=record.contract_currency or default_currency or None,
        event=EventInfo(
            title=event.title,
            start_date=event.start_date,
            end_date=event.end_date,
            city=event.city or None,
            organizer=event.organizer or None,
            organizer_org_number=event.organizer_org_number or None,
            organizer_address=event.organizer_address or None,
            venue_name=event.venue_name or None,
            venue_address=event.venue_address or None,
            sponsor_email=event.sponsor_email or None,
        ),
    )
