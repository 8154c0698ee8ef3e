from rest_framework import serializers

from .exceptions import RenderFailure
from .models import (
    Event, Sponsor, SponsorTier, ContractTemplate, ContractAsset,
    SponsorPipelineRecord, SponsorActivity,
)
from .state_machines import MACHINES
from .template_service import normalize_sections
from .rich_text import validate_blocks


class EventSerializer(serializers.ModelSerializer):
    class Meta:
        model = Event
        fields = '__all__'
        read_only_fields = ['id', 'created_at', 'updated_at']


class SponsorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Sponsor
        fields = '__all__'
        read_only_fields = ['id', 'created_at', 'updated_at']


class SponsorTierSerializer(serializers.ModelSerializer):
    class Meta:
        model = SponsorTier
        fields = '__all__'
        read_only_fields = ['id']


class ContractTemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = ContractTemplate
        fields = '__all__'
        read_only_fields = ['id', 'version', 'created_at', 'updated_at']

    def validate_sections(self, value):
        try:
            return normalize_sections(value)
        except RenderFailure as e:
            raise serializers.ValidationError(str(e))

    def validate_terms(self, value):
        if value is None:
            return None
        try:
            return validate_blocks(value)
        except RenderFailure as e:
            raise serializers.ValidationError(str(e))

    def validate(self, attrs):
        event = attrs.get('event') or getattr(self.instance, 'event', None)
        tier = attrs.get('tier')
        if tier is not None and event is not None and tier.event_id != event.id:
            raise serializers.ValidationError({'tier': 'Tier belongs to a different event'})
        return attrs


class ContractTemplateListSerializer(serializers.ModelSerializer):
    """Listing payload without section and terms bodies."""

    class Meta:
        model = ContractTemplate
        fields = [
            'id',
            'event',
            'title',
            'tier',
            'language',
            'currency',
            'is_default',
            'is_active',
            'version',
            'updated_at',
        ]
        read_only_fields = fields


class ContractAssetSerializer(serializers.ModelSerializer):
    class Meta:
        model = ContractAsset
        fields = ['id', 'filename', 'content_type', 'size', 'sha256', 'storage_backend', 'created_at']
        read_only_fields = fields


class SponsorPipelineRecordSerializer(serializers.ModelSerializer):
    """
    Status axes are read-only here; they move through the transition,
    send-contract and bulk-update endpoints so every change is logged.
    """
    sponsor_name = serializers.CharField(source='sponsor.name', read_only=True)
    contract_document = ContractAssetSerializer(read_only=True)

    class Meta:
        model = SponsorPipelineRecord
        fields = '__all__'
        read_only_fields = [
            'id', 'status', 'contract_status', 'signature_status', 'invoice_status',
            'contract_template', 'contract_document', 'contract_sent_at', 'contract_signed_at',
            'reminder_count', 'signature_id', 'signing_url', 'created_at', 'updated_at',
        ]

    def validate_contact_persons(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError('Expected a list of contact persons')
        for contact in value:
            if not isinstance(contact, dict):
                raise serializers.ValidationError('Each contact person must be an object')
        if sum(1 for c in value if c.get('is_primary')) > 1:
            raise serializers.ValidationError('Only one contact person can be primary')
        return value

    def validate_tags(self, value):
        if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
            raise serializers.ValidationError('Expected a list of strings')
        return value

    def validate(self, attrs):
        event = attrs.get('event') or getattr(self.instance, 'event', None)
        tier = attrs.get('tier')
        if tier is not None and event is not None and tier.event_id != event.id:
            raise serializers.ValidationError({'tier': 'Tier belongs to a different event'})
        return attrs


class SponsorActivitySerializer(serializers.ModelSerializer):
    class Meta:
        model = SponsorActivity
        fields = ['id', 'record', 'kind', 'description', 'metadata', 'actor', 'created_at']
        read_only_fields = fields


class NoteSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=['note', 'email', 'call', 'meeting'], default='note')
    description = serializers.CharField()


class SendContractSerializer(serializers.Serializer):
    template_id = serializers.UUIDField(required=False, allow_null=True)
    signer_name = serializers.CharField(required=False, allow_blank=True)
    signer_email = serializers.EmailField(required=False, allow_blank=True)
    language = serializers.ChoiceField(choices=['nb', 'en'], required=False)


class TransitionSerializer(serializers.Serializer):
    axis = serializers.ChoiceField(choices=sorted(MACHINES))
    to = serializers.CharField()

    def validate(self, attrs):
        if attrs['to'] not in MACHINES[attrs['axis']].states:
            raise serializers.ValidationError({'to': f"Unknown {attrs['axis']} value '{attrs['to']}'"})
        return attrs


class BulkUpdateSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    changes = serializers.DictField()


class BulkDeleteSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    delete_contract_assets = serializers.BooleanField(default=False)
