"""
URL configuration for the sponsors app
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from . import views
from .webhook_views import AdobeSignWebhookView

router = DefaultRouter()
router.register(r'events', views.EventViewSet, basename='event')
router.register(r'sponsors', views.SponsorViewSet, basename='sponsor')
router.register(r'tiers', views.SponsorTierViewSet, basename='tier')
router.register(r'contract-templates', views.ContractTemplateViewSet, basename='contract-template')
router.register(r'pipeline', views.SponsorPipelineViewSet, basename='pipeline')

urlpatterns = [
    path('contract-variables/', views.ContractVariablesView.as_view(), name='contract-variables'),
    path('events/<uuid:event_id>/contract-terms/', views.EventContractTermsView.as_view(), name='event-contract-terms'),
    path('webhooks/adobe-sign/', AdobeSignWebhookView.as_view(), name='adobe-sign-webhook'),
    path('', include(router.urls)),
]
