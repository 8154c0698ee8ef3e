"""
Activity log service for sponsor pipeline records.

Entries are append-only. The status-change wrappers format the description
from the old/new values and store {oldValue, newValue, timestamp} as
metadata.
"""
import logging

from django.db import transaction
from django.utils import timezone

from .models import SponsorActivity

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = 'system'


def format_status_name(status):
    """'contract-sent' -> 'Contract Sent', 'closed_won' -> 'Closed Won'."""
    if not status:
        return 'None'
    return ' '.join(part.capitalize() for part in str(status).replace('_', '-').split('-') if part)


def actor_id(user):
    """Identity string stored on activities for a Django user (or None)."""
    if user is None or not getattr(user, 'is_authenticated', False):
        return SYSTEM_ACTOR
    return str(user.pk)


class ActivityLog:
    """
    Writes SponsorActivity rows. Every mutating lifecycle operation goes
    through here.
    """

    @staticmethod
    def record(record_id, kind, description, actor, metadata=None):
        """
        Append one activity entry.

        Args:
            record_id: SponsorPipelineRecord id
            kind: one of SponsorActivity.KIND_CHOICES
            description: human-readable text
            actor: acting identity (user id or 'system')
            metadata: optional dict

        Returns:
            SponsorActivity instance
        """
        activity = SponsorActivity.objects.create(
            record_id=record_id,
            kind=kind,
            description=description,
            actor=actor or SYSTEM_ACTOR,
            metadata=metadata,
        )
        logger.debug(f"Activity {kind} recorded for record {record_id}: {description}")
        return activity

    @staticmethod
    def _change_metadata(old_value, new_value):
        return {
            'oldValue': old_value,
            'newValue': new_value,
            'timestamp': timezone.now().isoformat(),
        }

    @classmethod
    def _status_change(cls, record_id, kind, prefix, old_value, new_value, actor, suffix=''):
        description = (
            f"{prefix} changed from {format_status_name(old_value)} "
            f"to {format_status_name(new_value)}{suffix}"
        )
        return cls.record(record_id, kind, description, actor, cls._change_metadata(old_value, new_value))

    @classmethod
    def log_stage_change(cls, record_id, old_status, new_status, actor):
        return cls._status_change(record_id, 'stage_change', 'Status', old_status, new_status, actor)

    @classmethod
    def log_contract_status_change(cls, record_id, old_status, new_status, actor):
        return cls._status_change(
            record_id, 'contract_status_change', 'Contract status', old_status, new_status, actor,
        )

    @classmethod
    def log_signature_status_change(cls, record_id, old_status, new_status, actor, via=None):
        suffix = f" (via {via})" if via else ''
        return cls._status_change(
            record_id, 'signature_status_change', 'Signature status', old_status, new_status, actor, suffix,
        )

    @classmethod
    def log_invoice_status_change(cls, record_id, old_status, new_status, actor):
        return cls._status_change(
            record_id, 'invoice_status_change', 'Invoice status', old_status, new_status, actor,
        )

    @classmethod
    def log_assignment_change(cls, record_id, old_assignee, new_assignee, actor, assignee_name=None, via=None):
        suffix = f" via {via}" if via else ''
        if new_assignee is None:
            description = f"Unassigned{suffix}"
        else:
            description = f"Assigned to {assignee_name or new_assignee}{suffix}"
        return cls.record(
            record_id, 'note', description, actor,
            cls._change_metadata(
                str(old_assignee) if old_assignee is not None else None,
                str(new_assignee) if new_assignee is not None else None,
            ),
        )

    @classmethod
    def log_contract_signed(cls, record_id, actor, signer=None):
        description = f"Contract signed by {signer}" if signer else 'Contract signed'
        return cls.record(record_id, 'contract_signed', description, actor)

    @classmethod
    def log_reminder_sent(cls, record_id, recipient, reminder_count, actor):
        return cls.record(
            record_id, 'contract_reminder_sent',
            f"Contract signing reminder #{reminder_count} sent to {recipient}", actor,
            {'reminderCount': reminder_count, 'recipient': recipient, 'timestamp': timezone.now().isoformat()},
        )

    @staticmethod
    def try_record(fn, *args, **kwargs):
        """Best-effort variant: a failed log write is logged, not raised."""
        try:
            with transaction.atomic():
                return fn(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Failed to write activity via {getattr(fn, '__name__', fn)}: {e}", exc_info=True)
            return None
