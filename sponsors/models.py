"""
Sponsor pipeline, contract template and activity models
"""
import uuid

from django.conf import settings
from django.db import models


LANGUAGE_CHOICES = [
    ('nb', 'Norwegian (Bokmål)'),
    ('en', 'English'),
]

SALES_STATUS_CHOICES = [
    ('prospect', 'Prospect'),
    ('contacted', 'Contacted'),
    ('negotiating', 'Negotiating'),
    ('closed-won', 'Closed Won'),
    ('closed-lost', 'Closed Lost'),
]

CONTRACT_STATUS_CHOICES = [
    ('none', 'None'),
    ('verbal-agreement', 'Verbal Agreement'),
    ('contract-sent', 'Contract Sent'),
    ('contract-signed', 'Contract Signed'),
]

SIGNATURE_STATUS_CHOICES = [
    ('not-started', 'Not Started'),
    ('pending', 'Pending'),
    ('signed', 'Signed'),
    ('rejected', 'Rejected'),
    ('expired', 'Expired'),
]

INVOICE_STATUS_CHOICES = [
    ('not-sent', 'Not Sent'),
    ('sent', 'Sent'),
    ('paid', 'Paid'),
    ('overdue', 'Overdue'),
]


class Event(models.Model):
    """
    Conference/event that sponsors are sold for. Carries the organizer's
    identity, which appears as the first contracting party.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    city = models.CharField(max_length=120, blank=True, default='')
    venue_name = models.CharField(max_length=255, blank=True, default='')
    venue_address = models.CharField(max_length=500, blank=True, default='')
    organizer = models.CharField(max_length=255, blank=True, default='', help_text='Organizer legal name')
    organizer_org_number = models.CharField(max_length=32, blank=True, default='')
    organizer_address = models.CharField(max_length=500, blank=True, default='')
    sponsor_email = models.EmailField(blank=True, default='', help_text='Organizer contact email shown to sponsors')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sponsor_events'
        ordering = ['-start_date']

    def __str__(self):
        return self.title


class Sponsor(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    org_number = models.CharField(max_length=32, blank=True, default='')
    address = models.CharField(max_length=500, blank=True, default='')
    website = models.URLField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sponsors'
        ordering = ['name']

    def __str__(self):
        return self.name


class SponsorTier(models.Model):
    """
    Sponsorship package for an event. Add-ons are tiers with tier_type='addon'.
    """
    TIER_TYPE_CHOICES = [
        ('standard', 'Standard'),
        ('addon', 'Add-on'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='tiers')
    title = models.CharField(max_length=255)
    tagline = models.CharField(max_length=500, blank=True, default='')
    tier_type = models.CharField(max_length=20, choices=TIER_TYPE_CHOICES, default='standard')
    price_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    price_currency = models.CharField(max_length=3, default='NOK')

    class Meta:
        db_table = 'sponsor_tiers'
        ordering = ['event', 'title']

    def __str__(self):
        return f"{self.title} ({self.tier_type})"


class ContractTemplate(models.Model):
    """
    Versioned sponsorship agreement template.

    `sections` is a list of {"heading": str, "body": <rich text>} and `terms`
    is rich text rendered as the appendix. Rich text is stored as a list of
    block dicts; see sponsors.rich_text for the accepted shape.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='contract_templates')
    title = models.CharField(max_length=255)
    tier = models.ForeignKey(
        SponsorTier, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='contract_templates', help_text='Tier this template is tailored for',
    )
    language = models.CharField(max_length=2, choices=LANGUAGE_CHOICES, default='nb')
    currency = models.CharField(max_length=3, default='NOK')
    sections = models.JSONField(default=list, blank=True)
    header_text = models.CharField(max_length=500, blank=True, default='')
    footer_text = models.CharField(max_length=500, blank=True, default='')
    terms = models.JSONField(null=True, blank=True)
    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    version = models.IntegerField(default=1, help_text='Incremented on every update')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sponsor_contract_templates'
        ordering = ['-is_default', 'created_at']
        indexes = [
            models.Index(fields=['event', 'is_active'], name='sponsor_con_event_i_5b0f1e_idx'),
        ]

    def __str__(self):
        return f"{self.title} v{self.version} ({self.language})"


class ContractAsset(models.Model):
    """
    Stored contract document. Bytes live either inline (database backend) or
    under `storage_key` in object storage.
    """
    STORAGE_CHOICES = [
        ('database', 'Database'),
        ('r2', 'Cloudflare R2'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    filename = models.CharField(max_length=255)
    content_type = models.CharField(max_length=100, default='application/pdf')
    size = models.PositiveIntegerField(default=0)
    sha256 = models.CharField(max_length=64)
    storage_backend = models.CharField(max_length=20, choices=STORAGE_CHOICES, default='database')
    storage_key = models.CharField(max_length=500, blank=True, default='')
    data = models.BinaryField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sponsor_contract_assets'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.filename} ({self.storage_backend})"


class SponsorPipelineRecord(models.Model):
    """
    Relationship between the organizer and one sponsor for one event.

    Three independent status axes: `status` (sales stage), `contract_status`
    and `signature_status`. Transitions are validated by
    sponsors.state_machines.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='pipeline_records')
    sponsor = models.ForeignKey(Sponsor, on_delete=models.CASCADE, related_name='pipeline_records')
    tier = models.ForeignKey(
        SponsorTier, on_delete=models.SET_NULL, null=True, blank=True, related_name='pipeline_records',
    )
    addons = models.ManyToManyField(SponsorTier, blank=True, related_name='addon_pipeline_records')

    status = models.CharField(max_length=20, choices=SALES_STATUS_CHOICES, default='prospect')
    contract_status = models.CharField(max_length=20, choices=CONTRACT_STATUS_CHOICES, default='none')
    signature_status = models.CharField(max_length=20, choices=SIGNATURE_STATUS_CHOICES, default='not-started')
    invoice_status = models.CharField(max_length=20, choices=INVOICE_STATUS_CHOICES, default='not-sent')

    tags = models.JSONField(default=list, blank=True)
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='assigned_sponsor_records',
    )
    contact_persons = models.JSONField(
        default=list, blank=True,
        help_text='[{"name": str, "email": str, "phone": str, "role": str, "is_primary": bool}]',
    )
    billing = models.JSONField(default=dict, blank=True, help_text='{"email": str, "reference": str, "comments": str}')

    contract_value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    contract_currency = models.CharField(max_length=3, default='NOK')
    contract_template = models.ForeignKey(
        ContractTemplate, on_delete=models.SET_NULL, null=True, blank=True, related_name='pipeline_records',
    )
    contract_document = models.ForeignKey(
        ContractAsset, on_delete=models.SET_NULL, null=True, blank=True, related_name='pipeline_records',
    )
    contract_sent_at = models.DateTimeField(null=True, blank=True)
    contract_signed_at = models.DateTimeField(null=True, blank=True)
    reminder_count = models.PositiveIntegerField(default=0)

    signer_name = models.CharField(max_length=255, blank=True, default='')
    signer_email = models.EmailField(blank=True, default='')
    signature_id = models.CharField(max_length=255, blank=True, default='', db_index=True,
                                    help_text='Signing provider agreement id')
    signing_url = models.URLField(max_length=1000, blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sponsor_pipeline_records'
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['event', 'status'], name='sponsor_pip_event_i_3c1a7d_idx'),
            models.Index(fields=['event', 'contract_status'], name='sponsor_pip_event_i_8e2b94_idx'),
        ]

    def __str__(self):
        return f"{self.sponsor} @ {self.event} [{self.status}]"


class SponsorActivity(models.Model):
    """
    Append-only audit entry for a pipeline record. Rows are never updated;
    they disappear only when the owning record is deleted.
    """
    KIND_CHOICES = [
        ('stage_change', 'Stage Change'),
        ('invoice_status_change', 'Invoice Status Change'),
        ('contract_status_change', 'Contract Status Change'),
        ('contract_signed', 'Contract Signed'),
        ('note', 'Note'),
        ('email', 'Email'),
        ('call', 'Call'),
        ('meeting', 'Meeting'),
        ('signature_status_change', 'Signature Status Change'),
        ('onboarding_complete', 'Onboarding Complete'),
        ('contract_reminder_sent', 'Contract Reminder Sent'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    record = models.ForeignKey(SponsorPipelineRecord, on_delete=models.CASCADE, related_name='activities')
    kind = models.CharField(max_length=40, choices=KIND_CHOICES)
    description = models.TextField()
    metadata = models.JSONField(null=True, blank=True, help_text='{"oldValue", "newValue", "timestamp"}')
    actor = models.CharField(max_length=255, help_text="Acting identity (user id or 'system')")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sponsor_activities'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['record', '-created_at'], name='sponsor_act_record__a4d2c6_idx'),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('SponsorActivity entries are immutable')
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.kind}: {self.description}"
