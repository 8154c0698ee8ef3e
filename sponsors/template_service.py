"""
Contract template store and best-template matcher
"""
import logging
from typing import List, Optional

from django.db import transaction

from .exceptions import NoActiveTemplate, NotFound, RenderFailure
from .models import ContractTemplate
from .rich_text import validate_blocks

logger = logging.getLogger(__name__)

SCORE_TIER = 4
SCORE_LANGUAGE = 2
SCORE_DEFAULT = 1

TEMPLATE_FIELDS = (
    'title', 'tier_id', 'language', 'currency', 'sections', 'header_text',
    'footer_text', 'terms', 'is_default', 'is_active',
)


def normalize_sections(sections) -> List[dict]:
    """Validate sections and normalise each body. Keys are kept or assigned."""
    if sections is None:
        return []
    if not isinstance(sections, list):
        raise RenderFailure('sections must be a list')
    out = []
    for index, section in enumerate(sections):
        if not isinstance(section, dict):
            raise RenderFailure(f'sections[{index}] must be an object')
        heading = section.get('heading')
        if not isinstance(heading, str) or not heading.strip():
            raise RenderFailure(f'sections[{index}].heading is required')
        out.append({
            '_key': section.get('_key') or f'section-{index + 1}',
            'heading': heading,
            'body': validate_blocks(section.get('body')),
        })
    return out


def _clean(data: dict) -> dict:
    cleaned = {k: v for k, v in data.items() if k in TEMPLATE_FIELDS}
    if 'sections' in cleaned:
        cleaned['sections'] = normalize_sections(cleaned['sections'])
    if 'terms' in cleaned and cleaned['terms'] is not None:
        cleaned['terms'] = validate_blocks(cleaned['terms'])
    return cleaned


class ContractTemplateService:
    """CRUD over ContractTemplate rows, scoped to an event."""

    @staticmethod
    def list_for_event(event_id):
        return list(ContractTemplate.objects.filter(event_id=event_id).order_by('title'))

    @staticmethod
    def get(template_id) -> ContractTemplate:
        try:
            return ContractTemplate.objects.select_related('tier', 'event').get(id=template_id)
        except ContractTemplate.DoesNotExist:
            raise NotFound(f'Contract template {template_id} not found')

    @staticmethod
    @transaction.atomic
    def create(event_id, data: dict) -> ContractTemplate:
        template = ContractTemplate.objects.create(event_id=event_id, **_clean(data))
        logger.info(f"Contract template {template.id} created for event {event_id}")
        return template

    @staticmethod
    @transaction.atomic
    def update(template_id, data: dict) -> ContractTemplate:
        """Partial update. Every update bumps `version`."""
        template = ContractTemplate.objects.select_for_update().filter(id=template_id).first()
        if template is None:
            raise NotFound(f'Contract template {template_id} not found')
        for field, value in _clean(data).items():
            setattr(template, field, value)
        template.version += 1
        template.save()
        logger.info(f"Contract template {template.id} updated to v{template.version}")
        return template

    @staticmethod
    def delete(template_id) -> None:
        deleted, _ = ContractTemplate.objects.filter(id=template_id).delete()
        if not deleted:
            raise NotFound(f'Contract template {template_id} not found')
        logger.info(f"Contract template {template_id} deleted")


def score_template(template: ContractTemplate, tier_id=None, language: Optional[str] = None) -> int:
    score = 0
    if tier_id is not None and template.tier_id is not None and str(template.tier_id) == str(tier_id):
        score += SCORE_TIER
    if language and template.language == language:
        score += SCORE_LANGUAGE
    if template.is_default:
        score += SCORE_DEFAULT
    return score


def pick_best_template(candidates: List[ContractTemplate], tier_id=None, language: Optional[str] = None):
    """
    Highest score wins. Only a strictly higher score replaces the current
    best, so ties keep the earlier candidate; with default-first ordering
    that is the first default-flagged template.
    """
    best = None
    best_score = -1
    for template in candidates:
        score = score_template(template, tier_id, language)
        if score > best_score:
            best, best_score = template, score
    return best


def find_best_template(event_id, tier_id=None, language: Optional[str] = None) -> ContractTemplate:
    candidates = list(
        ContractTemplate.objects
        .filter(event_id=event_id, is_active=True)
        .select_related('tier')
        .order_by('-is_default', 'created_at', 'id')
    )
    if not candidates:
        raise NoActiveTemplate(event_id)
    best = pick_best_template(candidates, tier_id, language)
    logger.debug(
        f"Matched contract template {best.id} for event {event_id} "
        f"(tier={tier_id}, language={language}, candidates={len(candidates)})"
    )
    return best


def get_terms_for_event(event_id):
    """Terms of the preferred active template that defines any. None when absent."""
    template = (
        ContractTemplate.objects
        .filter(event_id=event_id, is_active=True, terms__isnull=False)
        .order_by('-is_default', 'created_at', 'id')
        .first()
    )
    if template is None or not template.terms:
        return None
    return template.terms
