from django.contrib import admin
from .models import Event, Sponsor, SponsorTier, ContractTemplate, ContractAsset, SponsorPipelineRecord, SponsorActivity

@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ('title', 'start_date', 'end_date', 'city', 'organizer')
    search_fields = ('title', 'organizer')

@admin.register(Sponsor)
class SponsorAdmin(admin.ModelAdmin):
    list_display = ('name', 'org_number', 'website')
    search_fields = ('name', 'org_number')

@admin.register(SponsorTier)
class SponsorTierAdmin(admin.ModelAdmin):
    list_display = ('title', 'event', 'tier_type', 'price_amount', 'price_currency')
    list_filter = ('tier_type',)

@admin.register(ContractTemplate)
class ContractTemplateAdmin(admin.ModelAdmin):
    list_display = ('title', 'event', 'tier', 'language', 'version', 'is_default', 'is_active')
    list_filter = ('language', 'is_default', 'is_active')
    search_fields = ('title',)

@admin.register(ContractAsset)
class ContractAssetAdmin(admin.ModelAdmin):
    list_display = ('filename', 'storage_backend', 'size', 'created_at')
    exclude = ('data',)

@admin.register(SponsorPipelineRecord)
class SponsorPipelineRecordAdmin(admin.ModelAdmin):
    list_display = ('sponsor', 'event', 'status', 'contract_status', 'signature_status', 'invoice_status')
    list_filter = ('status', 'contract_status', 'signature_status', 'invoice_status')
    search_fields = ('sponsor__name', 'signature_id')

@admin.register(SponsorActivity)
class SponsorActivityAdmin(admin.ModelAdmin):
    list_display = ('record', 'kind', 'actor', 'created_at')
    list_filter = ('kind',)
    readonly_fields = ('record', 'kind', 'description', 'metadata', 'actor', 'created_at')

    def has_change_permission(self, request, obj=None):
        return False
