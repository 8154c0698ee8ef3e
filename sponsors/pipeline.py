"""
Pipeline record mutations: single status transitions and bulk update/delete.

Bulk operations run in one transaction. Either every targeted record gets
its change and its activity entries, or nothing is written.
"""
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction

from .activity import ActivityLog, SYSTEM_ACTOR
from .asset_store import get_asset_store
from .exceptions import NotFound, PersistenceFailure, RecordNotFound, SponsorCRMError, ValidationFailure
from .models import ContractAsset, SponsorPipelineRecord
from .state_machines import CONTRACT_STATUS, INVOICE_STATUS, MACHINES, SALES_STATUS

logger = logging.getLogger(__name__)

BULK_FIELDS = (
    'status', 'contract_status', 'invoice_status', 'assigned_to', 'tags_replace', 'tags_add', 'tags_remove',
)

# Axes a bulk update may set directly. Only the sales status gets an activity.
BULK_STATUS_AXES = {
    'status': SALES_STATUS,
    'contract_status': CONTRACT_STATUS,
    'invoice_status': INVOICE_STATUS,
}

_STATUS_LOGGERS = {
    'status': ActivityLog.log_stage_change,
    'contract_status': ActivityLog.log_contract_status_change,
    'signature_status': ActivityLog.log_signature_status_change,
    'invoice_status': ActivityLog.log_invoice_status_change,
}


@transaction.atomic
def transition_status(record_id, axis: str, new_value: str, actor: str = SYSTEM_ACTOR) -> SponsorPipelineRecord:
    """Move one status axis of a record, validated by its transition table."""
    machine = MACHINES.get(axis)
    if machine is None:
        raise ValidationFailure(f"Unknown status axis '{axis}'")

    try:
        record = SponsorPipelineRecord.objects.select_for_update().get(id=record_id)
    except (SponsorPipelineRecord.DoesNotExist, ValueError):
        raise RecordNotFound(record_id)

    old_value = getattr(record, axis)
    machine.ensure(old_value, new_value)
    if old_value == new_value:
        return record

    setattr(record, axis, new_value)
    record.save(update_fields=[axis, 'updated_at'])
    _STATUS_LOGGERS[axis](record.id, old_value, new_value, actor)
    logger.info(f"Record {record.id} {axis}: {old_value} -> {new_value} by {actor}")
    return record


def apply_tag_changes(tags: List[str], replace=None, add=None, remove=None) -> List[str]:
    """replace, then add (union), then remove (difference). Order is kept."""
    result = list(replace) if replace is not None else list(tags or [])
    for tag in add or []:
        if tag not in result:
            result.append(tag)
    if remove:
        drop = set(remove)
        result = [t for t in result if t not in drop]
    return result


def _clean_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(changes) - set(BULK_FIELDS))
    if unknown:
        raise ValidationFailure(f"Unsupported bulk update fields: {', '.join(unknown)}")
    if not changes:
        raise ValidationFailure('No changes given')
    for axis, machine in BULK_STATUS_AXES.items():
        if axis in changes and changes[axis] not in machine.states:
            raise ValidationFailure(f"Unknown {axis} value '{changes[axis]}'")
    for key in ('tags_replace', 'tags_add', 'tags_remove'):
        value = changes.get(key)
        if value is not None and not (isinstance(value, list) and all(isinstance(t, str) for t in value)):
            raise ValidationFailure(f'{key} must be a list of strings')
    return changes


def _normalize_ids(record_ids: Iterable) -> List[str]:
    """Canonical, de-duplicated id strings. Malformed ids raise ValidationFailure."""
    ids = []
    for raw in record_ids:
        try:
            ids.append(str(raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw))))
        except (TypeError, ValueError):
            raise ValidationFailure(f"Invalid record id '{raw}'")
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationFailure('No record ids given')
    return ids


def _resolve_assignee(changes):
    if 'assigned_to' not in changes or changes['assigned_to'] is None:
        return None
    User = get_user_model()
    try:
        return User.objects.get(pk=changes['assigned_to'])
    except (User.DoesNotExist, ValueError):
        raise NotFound(f"User {changes['assigned_to']} not found")


def bulk_update(record_ids: Iterable, changes: Dict[str, Any], actor: str = SYSTEM_ACTOR) -> Dict[str, int]:
    """
    Apply the same changes to many records.

    Args:
        record_ids: pipeline record ids
        changes: any of status, contract_status, invoice_status,
            assigned_to (user id or None to unassign), tags_replace,
            tags_add, tags_remove
        actor: acting identity stored on activities

    Returns:
        {'updated_count': records whose status axes or assignee changed,
         'total_count': records targeted}

    Every status axis change is checked against its transition table. An
    activity is written only where status or assigned_to actually changed.
    Raises IllegalTransition/NotFound/ValidationFailure as-is and wraps any
    other write error in PersistenceFailure; in every case nothing is kept.
    """
    ids = _normalize_ids(record_ids)
    changes = _clean_changes(dict(changes))
    assignee = _resolve_assignee(changes)
    touches_tags = any(k in changes for k in ('tags_replace', 'tags_add', 'tags_remove'))

    try:
        with transaction.atomic():
            records = list(SponsorPipelineRecord.objects.select_for_update().filter(id__in=ids))
            if len(records) != len(ids):
                found = {str(r.id) for r in records}
                missing = [i for i in ids if i not in found]
                raise RecordNotFound(', '.join(missing))

            updated = 0
            for record in records:
                changed_assignee = False
                update_fields = ['updated_at']

                old_status = record.status
                changed_axes = []
                for axis, machine in BULK_STATUS_AXES.items():
                    old_value = getattr(record, axis)
                    if axis in changes and changes[axis] != old_value:
                        machine.ensure(old_value, changes[axis])
                        setattr(record, axis, changes[axis])
                        update_fields.append(axis)
                        changed_axes.append(axis)
                changed_status = 'status' in changed_axes

                old_assignee = record.assigned_to_id
                new_assignee = assignee.pk if assignee is not None else None
                if 'assigned_to' in changes and old_assignee != new_assignee:
                    record.assigned_to = assignee
                    update_fields.append('assigned_to')
                    changed_assignee = True

                if touches_tags:
                    new_tags = apply_tag_changes(
                        record.tags,
                        replace=changes.get('tags_replace'),
                        add=changes.get('tags_add'),
                        remove=changes.get('tags_remove'),
                    )
                    if new_tags != list(record.tags or []):
                        record.tags = new_tags
                        update_fields.append('tags')

                if len(update_fields) > 1:
                    record.save(update_fields=update_fields)

                if changed_status:
                    ActivityLog.log_stage_change(record.id, old_status, record.status, actor)
                if changed_assignee:
                    ActivityLog.log_assignment_change(
                        record.id, old_assignee, new_assignee, actor,
                        assignee_name=display_name(assignee), via='bulk update',
                    )
                if changed_axes or changed_assignee:
                    updated += 1
    except SponsorCRMError:
        raise
    except Exception as e:
        logger.error(f"Bulk update of {len(ids)} records failed and was rolled back: {e}", exc_info=True)
        raise PersistenceFailure(f'Bulk update failed: {e}') from e

    logger.info(f"Bulk update by {actor}: {updated}/{len(ids)} records changed")
    return {'updated_count': updated, 'total_count': len(ids)}


def display_name(user) -> Optional[str]:
    if user is None:
        return None
    full_name = user.get_full_name() if hasattr(user, 'get_full_name') else ''
    return full_name or user.get_username()


def bulk_delete(record_ids: Iterable, delete_contract_assets: bool = False) -> Dict[str, int]:
    """
    Delete records; their activities go with them. With
    `delete_contract_assets`, contract documents no other record references
    are removed too.
    """
    ids = _normalize_ids(record_ids)

    try:
        with transaction.atomic():
            records = SponsorPipelineRecord.objects.filter(id__in=ids)
            asset_ids = set(
                records.exclude(contract_document__isnull=True).values_list('contract_document_id', flat=True)
            )
            deleted_records = records.count()
            records.delete()

            deleted_assets = 0
            if delete_contract_assets and asset_ids:
                orphaned = ContractAsset.objects.filter(id__in=asset_ids, pipeline_records__isnull=True)
                for asset in orphaned:
                    get_asset_store(asset.storage_backend).delete(asset)
                    deleted_assets += 1
    except DatabaseError as e:
        logger.error(f"Bulk delete of {len(ids)} records failed and was rolled back: {e}", exc_info=True)
        raise PersistenceFailure(f'Bulk delete failed: {e}') from e

    logger.info(f"Bulk delete: {deleted_records} records, {deleted_assets} contract assets")
    return {'deleted_count': deleted_records, 'deleted_assets': deleted_assets}
