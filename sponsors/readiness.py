"""
Contract readiness check.

A fixed table of field rules, each tied to the party that has to supply the
data. Only a complete primary contact person is required to send; every
other gap is reported as recommended.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional

SOURCE_ORGANIZER = 'organizer'
SOURCE_SPONSOR = 'sponsor'
SOURCE_PIPELINE = 'pipeline-data'
SOURCES = (SOURCE_ORGANIZER, SOURCE_SPONSOR, SOURCE_PIPELINE)

REQUIRED = 'required'
RECOMMENDED = 'recommended'


@dataclass(frozen=True)
class FieldRule:
    field: str
    label: str
    source: str
    severity: str
    check: Callable[[Any], bool]


@dataclass(frozen=True)
class MissingField:
    field: str
    label: str
    source: str
    severity: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class ReadinessResult:
    ready: bool
    can_send: bool
    missing: List[MissingField]

    def grouped(self) -> Dict[str, List[Dict[str, str]]]:
        return group_missing_by_source(self.missing)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ready': self.ready,
            'can_send': self.can_send,
            'missing': [m.to_dict() for m in self.missing],
            'grouped': self.grouped(),
        }


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def select_primary_contact(contact_persons) -> Optional[dict]:
    """The contact flagged is_primary, or the only contact when there is one.

    Several contacts with none flagged is ambiguous and yields None.
    """
    contacts = [c for c in (contact_persons or []) if isinstance(c, dict)]
    for contact in contacts:
        if contact.get('is_primary'):
            return contact
    if len(contacts) == 1:
        return contacts[0]
    return None


def _has_primary_contact(record) -> bool:
    contact = select_primary_contact(record.contact_persons)
    return contact is not None and _present(contact.get('name')) and _present(contact.get('email'))


def _has_contract_value(record) -> bool:
    return record.contract_value is not None and record.contract_value > 0


CONTRACT_READINESS_RULES: List[FieldRule] = [
    FieldRule('organizer', 'Organizer name', SOURCE_ORGANIZER, RECOMMENDED,
              lambda r: _present(r.event.organizer)),
    FieldRule('organizer_org_number', 'Organizer org. number', SOURCE_ORGANIZER, RECOMMENDED,
              lambda r: _present(r.event.organizer_org_number)),
    FieldRule('organizer_address', 'Organizer address', SOURCE_ORGANIZER, RECOMMENDED,
              lambda r: _present(r.event.organizer_address)),
    FieldRule('sponsor_email', 'Organizer contact email', SOURCE_ORGANIZER, RECOMMENDED,
              lambda r: _present(r.event.sponsor_email)),
    FieldRule('start_date', 'Conference start date', SOURCE_ORGANIZER, RECOMMENDED,
              lambda r: r.event.start_date is not None),
    FieldRule('venue_name', 'Venue name', SOURCE_ORGANIZER, RECOMMENDED,
              lambda r: _present(r.event.venue_name)),

    FieldRule('org_number', 'Sponsor org. number', SOURCE_SPONSOR, RECOMMENDED,
              lambda r: _present(r.sponsor.org_number)),
    FieldRule('address', 'Sponsor address', SOURCE_SPONSOR, RECOMMENDED,
              lambda r: _present(r.sponsor.address)),
    FieldRule('contact_persons', 'Primary contact person', SOURCE_SPONSOR, REQUIRED,
              _has_primary_contact),

    FieldRule('tier', 'Sponsor tier', SOURCE_PIPELINE, RECOMMENDED,
              lambda r: r.tier_id is not None),
    FieldRule('contract_value', 'Contract value', SOURCE_PIPELINE, RECOMMENDED,
              _has_contract_value),
]


def check_contract_readiness(record, rules: Optional[List[FieldRule]] = None) -> ReadinessResult:
    missing = [
        MissingField(rule.field, rule.label, rule.source, rule.severity)
        for rule in (rules if rules is not None else CONTRACT_READINESS_RULES)
        if not rule.check(record)
    ]
    return ReadinessResult(
        ready=not missing,
        can_send=not any(m.severity == REQUIRED for m in missing),
        missing=missing,
    )


def group_missing_by_source(missing: List[MissingField]) -> Dict[str, List[Dict[str, str]]]:
    grouped: Dict[str, List[Dict[str, str]]] = {source: [] for source in SOURCES}
    for item in missing:
        grouped.setdefault(item.source, []).append(item.to_dict())
    return grouped
