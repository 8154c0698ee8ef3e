"""
Sponsor pipeline and contract lifecycle API
"""
from django.db import transaction
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .activity import ActivityLog, actor_id
from .asset_store import read_asset
from .contract_send import ContractSendService, send_contract_reminder
from .exceptions import NotFound
from .models import Event, Sponsor, SponsorTier, ContractTemplate, SponsorPipelineRecord
from . import pipeline
from .readiness import check_contract_readiness
from .template_service import ContractTemplateService, get_terms_for_event
from .serializers import (
    EventSerializer, SponsorSerializer, SponsorTierSerializer,
    ContractTemplateSerializer, ContractTemplateListSerializer,
    SponsorPipelineRecordSerializer, SponsorActivitySerializer, NoteSerializer,
    SendContractSerializer, TransitionSerializer, BulkUpdateSerializer, BulkDeleteSerializer,
)
from .variables import CONTRACT_VARIABLE_DESCRIPTIONS


def _pdf_response(data: bytes, filename: str, inline: bool = True) -> HttpResponse:
    response = HttpResponse(data, content_type='application/pdf')
    disposition = 'inline' if inline else 'attachment'
    response['Content-Disposition'] = f'{disposition}; filename="{filename}"'
    response['Content-Length'] = str(len(data))
    return response


class EventViewSet(viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = EventSerializer
    queryset = Event.objects.all()


class SponsorViewSet(viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = SponsorSerializer
    queryset = Sponsor.objects.all()


class SponsorTierViewSet(viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = SponsorTierSerializer

    def get_queryset(self):
        qs = SponsorTier.objects.all()
        event_id = self.request.query_params.get('event')
        if event_id:
            qs = qs.filter(event_id=event_id)
        return qs


class ContractTemplateViewSet(viewsets.ModelViewSet):
    """
    Contract templates. Filter with ?event=<id>. Every update bumps the
    template version.
    """
    permission_classes = [IsAuthenticated]

    def get_serializer_class(self):
        if getattr(self, 'action', None) == 'list':
            return ContractTemplateListSerializer
        return ContractTemplateSerializer

    def get_queryset(self):
        qs = ContractTemplate.objects.select_related('tier')
        event_id = self.request.query_params.get('event')
        if event_id:
            qs = qs.filter(event_id=event_id)
        if getattr(self, 'action', None) == 'list':
            return qs.defer('sections', 'terms').order_by('title')
        return qs

    @staticmethod
    def _service_data(validated_data):
        data = dict(validated_data)
        data.pop('event', None)
        if 'tier' in data:
            tier = data.pop('tier')
            data['tier_id'] = tier.pk if tier is not None else None
        return data

    def perform_create(self, serializer):
        serializer.instance = ContractTemplateService.create(
            serializer.validated_data['event'].pk, self._service_data(serializer.validated_data),
        )

    def perform_update(self, serializer):
        serializer.instance = ContractTemplateService.update(
            serializer.instance.pk, self._service_data(serializer.validated_data),
        )

    def perform_destroy(self, instance):
        ContractTemplateService.delete(instance.pk)


class SponsorPipelineViewSet(viewsets.ModelViewSet):
    """
    Sponsor pipeline records.

    Filters: ?event=, ?status= (comma separated), ?contract_status=,
    ?assigned_to=, ?tier=, ?tag=
    """
    permission_classes = [IsAuthenticated]
    serializer_class = SponsorPipelineRecordSerializer

    def get_queryset(self):
        qs = SponsorPipelineRecord.objects.select_related(
            'event', 'sponsor', 'tier', 'contract_document',
        ).prefetch_related('addons')
        params = self.request.query_params
        if params.get('event'):
            qs = qs.filter(event_id=params['event'])
        if params.get('status'):
            qs = qs.filter(status__in=params['status'].split(','))
        if params.get('contract_status'):
            qs = qs.filter(contract_status__in=params['contract_status'].split(','))
        if params.get('assigned_to'):
            qs = qs.filter(assigned_to_id=params['assigned_to'])
        if params.get('tier'):
            qs = qs.filter(tier_id=params['tier'])
        tag = params.get('tag')
        if tag:
            # JSON containment is not available on SQLite
            ids = [r.id for r in qs.only('id', 'tags') if tag in (r.tags or [])]
            qs = qs.filter(id__in=ids)
        return qs

    def perform_update(self, serializer):
        old_assignee = serializer.instance.assigned_to_id
        with transaction.atomic():
            record = serializer.save()
            if record.assigned_to_id != old_assignee:
                ActivityLog.log_assignment_change(
                    record.id, old_assignee, record.assigned_to_id, actor_id(self.request.user),
                    assignee_name=pipeline.display_name(record.assigned_to),
                )

    @action(detail=True, methods=['get'], url_path='contract-readiness')
    def contract_readiness(self, request, pk=None):
        record = self.get_object()
        return Response(check_contract_readiness(record).to_dict())

    @action(detail=True, methods=['get'], url_path='contract-preview')
    def contract_preview(self, request, pk=None):
        record = self.get_object()
        template, pdf_bytes = ContractSendService(provider=None).preview(
            record.id,
            template_id=request.query_params.get('template_id') or None,
            language=request.query_params.get('language') or None,
        )
        return _pdf_response(pdf_bytes, f"preview-{template.id}.pdf")

    @extend_schema(request=SendContractSerializer)
    @action(detail=True, methods=['post'], url_path='send-contract')
    def send_contract(self, request, pk=None):
        record = self.get_object()
        serializer = SendContractSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ContractSendService().send_for_signature(
            record.id,
            actor=actor_id(request.user),
            **{k: v for k, v in serializer.validated_data.items() if v not in (None, '')},
        )
        payload = {
            'success': True,
            'record': self.get_serializer(result.record).data,
            'template_id': str(result.template.id),
            'signature_id': result.agreement_id,
            'signing_url': result.signing_url,
        }
        if result.provider_error:
            payload['warning'] = f'Contract saved, but the signing provider failed: {result.provider_error}'
        return Response(payload, status=status.HTTP_200_OK)

    @action(detail=True, methods=['get'], url_path='contract-document')
    def contract_document(self, request, pk=None):
        record = self.get_object()
        if record.contract_document is None:
            raise NotFound(f'Record {record.id} has no contract document')
        asset = record.contract_document
        return _pdf_response(read_asset(asset), asset.filename, inline=False)

    @extend_schema(request=TransitionSerializer)
    @action(detail=True, methods=['post'], url_path='transition')
    def transition(self, request, pk=None):
        record = self.get_object()
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = pipeline.transition_status(
            record.id,
            serializer.validated_data['axis'],
            serializer.validated_data['to'],
            actor=actor_id(request.user),
        )
        return Response(self.get_serializer(record).data)

    @action(detail=True, methods=['post'], url_path='send-reminder')
    def send_reminder(self, request, pk=None):
        record = self.get_object()
        count = send_contract_reminder(record, actor=actor_id(request.user))
        return Response({'success': True, 'reminder_count': count})

    @action(detail=True, methods=['get', 'post'], url_path='activities')
    def activities(self, request, pk=None):
        record = self.get_object()
        if request.method == 'POST':
            serializer = NoteSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            activity = ActivityLog.record(
                record.id,
                serializer.validated_data['kind'],
                serializer.validated_data['description'],
                actor_id(request.user),
            )
            return Response(SponsorActivitySerializer(activity).data, status=status.HTTP_201_CREATED)

        activities = record.activities.order_by('-created_at')
        return Response(SponsorActivitySerializer(activities, many=True).data)

    @extend_schema(request=BulkUpdateSerializer)
    @action(detail=False, methods=['post'], url_path='bulk-update')
    def bulk_update(self, request):
        serializer = BulkUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = pipeline.bulk_update(
            serializer.validated_data['ids'],
            serializer.validated_data['changes'],
            actor=actor_id(request.user),
        )
        return Response({'success': True, **result})

    @extend_schema(request=BulkDeleteSerializer)
    @action(detail=False, methods=['post'], url_path='bulk-delete')
    def bulk_delete(self, request):
        serializer = BulkDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = pipeline.bulk_delete(
            serializer.validated_data['ids'],
            delete_contract_assets=serializer.validated_data['delete_contract_assets'],
        )
        return Response({'success': True, **result})


class ContractVariablesView(APIView):
    """
    GET /api/v1/contract-variables/ - placeholder names usable in templates
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({
            'syntax': '{{{VARIABLE_NAME}}}',
            'variables': [
                {'name': name, 'description': description}
                for name, description in CONTRACT_VARIABLE_DESCRIPTIONS.items()
            ],
        })


class EventContractTermsView(APIView):
    """
    GET /api/v1/events/<id>/contract-terms/ - terms appendix of the preferred template
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, event_id):
        get_object_or_404(Event, id=event_id)
        return Response({'event': str(event_id), 'terms': get_terms_for_event(event_id)})
