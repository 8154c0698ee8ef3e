"""
Contract send orchestration.

send_for_signature runs the pipeline

    readiness gate -> template -> variables -> PDF -> asset store
    -> record update -> signing provider -> activity log

Everything up to the record update is fatal on failure. The provider call
is not: a failing provider leaves the record marked contract-sent with the
document attached, signature_id stays empty and the error is logged.
"""
import base64
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify
from prometheus_client import Counter

from .activity import ActivityLog, SYSTEM_ACTOR
from .asset_store import ContractAssetStore, get_asset_store
from .contract_pdf import render_contract_pdf
from .exceptions import ExternalProviderFailure, NotFound, RecordNotFound, ValidationFailure
from .models import ContractTemplate, SponsorPipelineRecord
from .readiness import check_contract_readiness, select_primary_contact
from .signing_service import SigningConfig, SigningProvider, get_signing_provider, load_signing_config
from .state_machines import CONTRACT_STATUS, SIGNATURE_STATUS
from .template_service import ContractTemplateService, find_best_template
from .variables import build_contract_variables, context_from_record

logger = logging.getLogger(__name__)

CONTRACTS_SENT = Counter(
    'sponsor_contracts_sent_total',
    'Contracts generated and sent, by signing provider outcome',
    ['provider_outcome'],
)

ADOBE_SIGN_VIA = 'Adobe Sign webhook'

_UNSET = object()


@dataclass
class SendContractResult:
    record: SponsorPipelineRecord
    template: ContractTemplate
    agreement_id: Optional[str] = None
    signing_url: Optional[str] = None
    provider_error: Optional[str] = None


def contract_filename(sponsor_name: str) -> str:
    return f"contract-{slugify(sponsor_name or '') or 'sponsor'}.pdf"


def load_record(record_id) -> SponsorPipelineRecord:
    try:
        return (
            SponsorPipelineRecord.objects
            .select_related('event', 'sponsor', 'tier', 'contract_template', 'contract_document')
            .get(id=record_id)
        )
    except (SponsorPipelineRecord.DoesNotExist, ValueError):
        raise RecordNotFound(record_id)


class ContractSendService:
    """
    Args:
        config: signing configuration (defaults to settings)
        provider: signing provider; defaults to the one for `config.mode`.
            Pass None to skip provider registration.
        asset_store: where rendered PDFs are stored
    """

    def __init__(self, config: Optional[SigningConfig] = None, provider=_UNSET,
                 asset_store: Optional[ContractAssetStore] = None):
        self.config = config or load_signing_config()
        self.provider: Optional[SigningProvider] = (
            get_signing_provider(self.config) if provider is _UNSET else provider
        )
        self.asset_store = asset_store or get_asset_store()

    def resolve_template(self, record: SponsorPipelineRecord, template_id=None,
                         language: Optional[str] = None) -> ContractTemplate:
        if template_id:
            template = ContractTemplateService.get(template_id)
            if template.event_id != record.event_id:
                raise NotFound(f'Contract template {template_id} does not belong to event {record.event_id}')
            return template
        return find_best_template(record.event_id, tier_id=record.tier_id, language=language)

    def render(self, record: SponsorPipelineRecord, template: ContractTemplate) -> bytes:
        variables = build_contract_variables(
            context_from_record(record, default_currency=template.currency), language=template.language,
        )
        return render_contract_pdf(template, variables, embed_signature_markers=not self.config.self_hosted)

    def preview(self, record_id, template_id=None, language: Optional[str] = None):
        """Render without persisting anything. Returns (template, pdf_bytes)."""
        record = load_record(record_id)
        template = self.resolve_template(record, template_id, language)
        return template, self.render(record, template)

    def send_for_signature(self, record_id, *, template_id=None, signer_name: Optional[str] = None,
                           signer_email: Optional[str] = None, language: Optional[str] = None,
                           actor: str = SYSTEM_ACTOR) -> SendContractResult:
        record = load_record(record_id)
        log_ctx = f"[contract-send] record={record.id} sponsor='{record.sponsor.name}'"

        readiness = check_contract_readiness(record)
        if not readiness.can_send:
            logger.info(f"{log_ctx} blocked by readiness check: {[m.field for m in readiness.missing]}")
            raise ValidationFailure(
                'Contract cannot be sent: required information is missing',
                missing=[m.to_dict() for m in readiness.missing],
                grouped=readiness.grouped(),
            )

        contact = select_primary_contact(record.contact_persons) or {}
        signer_email = signer_email or record.signer_email or contact.get('email') or ''
        signer_name = signer_name or record.signer_name or contact.get('name') or ''

        old_contract_status = record.contract_status
        old_signature_status = record.signature_status
        CONTRACT_STATUS.ensure(old_contract_status, 'contract-sent')
        if signer_email:
            SIGNATURE_STATUS.ensure(old_signature_status, 'pending')

        template = self.resolve_template(record, template_id, language)
        pdf_bytes = self.render(record, template)
        filename = contract_filename(record.sponsor.name)

        with transaction.atomic():
            asset = self.asset_store.save(pdf_bytes, filename, 'application/pdf')
            record.contract_status = 'contract-sent'
            record.contract_sent_at = timezone.now()
            record.contract_template = template
            record.contract_document = asset
            record.signature_id = ''
            record.signing_url = ''
            if signer_email:
                record.signer_name = signer_name
                record.signer_email = signer_email
                record.signature_status = 'pending'
            record.save()
        logger.info(f"{log_ctx} contract generated with template {template.id} ({len(pdf_bytes)} bytes)")

        result = SendContractResult(record=record, template=template)
        outcome = self._register_with_provider(record, result, pdf_bytes, filename, signer_email, log_ctx)
        CONTRACTS_SENT.labels(provider_outcome=outcome).inc()

        if old_contract_status != 'contract-sent':
            ActivityLog.try_record(
                ActivityLog.log_contract_status_change, record.id, old_contract_status, 'contract-sent', actor,
            )
        if signer_email and old_signature_status != 'pending':
            ActivityLog.try_record(
                ActivityLog.log_signature_status_change, record.id, old_signature_status, 'pending', actor,
            )
        return result

    def _register_with_provider(self, record, result: SendContractResult, pdf_bytes: bytes,
                                filename: str, signer_email: str, log_ctx: str) -> str:
        if self.provider is None or not signer_email:
            return 'skipped'

        try:
            signing = self.provider.send_for_signing(
                pdf_bytes=pdf_bytes,
                filename=filename,
                signer_email=signer_email,
                agreement_name=f"Sponsorship Agreement - {record.sponsor.name}",
                message=f"Please sign the sponsorship agreement for {record.event.title}.",
            )
        except Exception as e:
            logger.warning(f"{log_ctx} signing provider registration failed: {e}", exc_info=True)
            result.provider_error = str(e)
            return 'failed'

        record.signature_id = signing.agreement_id
        record.signing_url = signing.signing_url or ''
        record.save(update_fields=['signature_id', 'signing_url', 'updated_at'])
        result.agreement_id = signing.agreement_id
        result.signing_url = signing.signing_url
        logger.info(f"{log_ctx} sent for signing, agreement={signing.agreement_id}")
        return 'ok'


def apply_signature_event(agreement_id: str, event_type: str, agreement_payload: Optional[dict] = None,
                          asset_store: Optional[ContractAssetStore] = None, provider=_UNSET):
    """
    Apply a provider webhook event to the record owning `agreement_id`.

    On completion the signed copy is taken from the payload's inline
    signedDocumentInfo, or downloaded from `provider` when absent.

    Returns the updated record, or None when the event was ignored
    (unknown agreement, unhandled event type, or illegal transition).
    """
    new_status = {
        'AGREEMENT_WORKFLOW_COMPLETED': 'signed',
        'AGREEMENT_RECALLED': 'rejected',
        'AGREEMENT_EXPIRED': 'expired',
    }.get(event_type)
    if new_status is None:
        logger.info(f"Ignoring signing event {event_type} for agreement {agreement_id}")
        return None
    if not SponsorPipelineRecord.objects.filter(signature_id=agreement_id).exists():
        logger.warning(f"No pipeline record found with signature_id={agreement_id}")
        return None

    signed_doc = None
    if new_status == 'signed':
        if provider is _UNSET:
            provider = get_signing_provider()
        signed_doc = _signed_document(agreement_id, agreement_payload, provider)

    with transaction.atomic():
        record = (
            SponsorPipelineRecord.objects.select_for_update()
            .filter(signature_id=agreement_id).first()
        )
        if record is None:
            logger.warning(f"Pipeline record with signature_id={agreement_id} disappeared")
            return None

        old_status = record.signature_status
        if old_status == new_status:
            return record
        if not SIGNATURE_STATUS.can_transition(old_status, new_status):
            logger.warning(
                f"Ignoring {event_type} for record {record.id}: "
                f"signature status {old_status} -> {new_status} is not allowed"
            )
            return None

        old_contract_status = record.contract_status
        record.signature_status = new_status
        if new_status == 'signed':
            if CONTRACT_STATUS.can_transition(old_contract_status, 'contract-signed'):
                record.contract_status = 'contract-signed'
            record.contract_signed_at = timezone.now()
            if signed_doc is not None:
                record.contract_document = (asset_store or get_asset_store()).save(*signed_doc)
        record.save()

        ActivityLog.log_signature_status_change(
            record.id, old_status, new_status, SYSTEM_ACTOR, via=ADOBE_SIGN_VIA,
        )
        if record.contract_status != old_contract_status:
            ActivityLog.log_contract_status_change(
                record.id, old_contract_status, record.contract_status, SYSTEM_ACTOR,
            )
        if new_status == 'signed':
            ActivityLog.log_contract_signed(record.id, SYSTEM_ACTOR, signer=record.signer_name or record.signer_email)

    logger.info(f"Record {record.id} signature status {old_status} -> {new_status} via {event_type}")
    return record


def _signed_document(agreement_id, agreement_payload, provider):
    """(bytes, filename, content_type) of the signed copy, or None."""
    doc_info = (agreement_payload or {}).get('signedDocumentInfo') or {}
    filename = doc_info.get('name') or f"signed-contract-{agreement_id}.pdf"
    encoded = doc_info.get('document')
    if encoded:
        try:
            data = base64.b64decode(encoded)
        except (ValueError, TypeError) as e:
            logger.error(f"Signed document for agreement {agreement_id} is not valid base64: {e}")
            return None
        return data, filename, doc_info.get('mimeType') or 'application/pdf'

    download = getattr(provider, 'download_signed_document', None)
    if download is None:
        logger.warning(f"No signed document available for agreement {agreement_id}")
        return None
    try:
        data = download(agreement_id)
    except ExternalProviderFailure as e:
        logger.warning(f"Signed document download failed for agreement {agreement_id}: {e}")
        return None
    return (data, filename, 'application/pdf') if data else None


def send_contract_reminder(record: SponsorPipelineRecord, actor: str = SYSTEM_ACTOR) -> int:
    """
    Email the signer a reminder for a pending signature.

    Returns the new reminder count. Raises ValidationFailure when the record
    is not awaiting a signature or has no signer email / signing link.
    """
    if record.signature_status != 'pending':
        raise ValidationFailure(f'Record {record.id} is not awaiting a signature')
    if not record.signer_email or not record.signing_url:
        raise ValidationFailure(f'Record {record.id} has no signer email or signing link')

    event = record.event
    send_mail(
        subject=f"Reminder: Sponsorship Agreement for {event.title}",
        message=(
            f"Hi {record.signer_name or record.sponsor.name},\n\n"
            f"The sponsorship agreement between {record.sponsor.name} and "
            f"{event.organizer or event.title} is still waiting for your signature.\n\n"
            f"Sign here: {record.signing_url}\n"
        ),
        from_email=event.sponsor_email or settings.DEFAULT_FROM_EMAIL,
        recipient_list=[record.signer_email],
    )

    with transaction.atomic():
        record.reminder_count += 1
        record.save(update_fields=['reminder_count', 'updated_at'])
        ActivityLog.log_reminder_sent(record.id, record.signer_email, record.reminder_count, actor)
    return record.reminder_count


def send_due_contract_reminders(max_reminders: int = 2, interval_days: int = 3):
    """Send reminders for pending signatures older than `interval_days`.

    Returns {'total', 'sent', 'failed'}.
    """
    cutoff = timezone.now() - timedelta(days=interval_days)
    due = list(
        SponsorPipelineRecord.objects
        .select_related('event', 'sponsor')
        .filter(signature_status='pending', reminder_count__lt=max_reminders, contract_sent_at__lte=cutoff)
    )
    sent = failed = 0
    for record in due:
        try:
            send_contract_reminder(record)
            sent += 1
        except Exception as e:
            failed += 1
            logger.warning(f"Contract reminder failed for record {record.id}: {e}")
    return {'total': len(due), 'sent': sent, 'failed': failed}
