import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ContractAsset',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('filename', models.CharField(max_length=255)),
                ('content_type', models.CharField(default='application/pdf', max_length=100)),
                ('size', models.PositiveIntegerField(default=0)),
                ('sha256', models.CharField(max_length=64)),
                ('storage_backend', models.CharField(choices=[('database', 'Database'), ('r2', 'Cloudflare R2')], default='database', max_length=20)),
                ('storage_key', models.CharField(blank=True, default='', max_length=500)),
                ('data', models.BinaryField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'sponsor_contract_assets',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Event',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('start_date', models.DateField(blank=True, null=True)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('city', models.CharField(blank=True, default='', max_length=120)),
                ('venue_name', models.CharField(blank=True, default='', max_length=255)),
                ('venue_address', models.CharField(blank=True, default='', max_length=500)),
                ('organizer', models.CharField(blank=True, default='', help_text='Organizer legal name', max_length=255)),
                ('organizer_org_number', models.CharField(blank=True, default='', max_length=32)),
                ('organizer_address', models.CharField(blank=True, default='', max_length=500)),
                ('sponsor_email', models.EmailField(blank=True, default='', help_text='Organizer contact email shown to sponsors', max_length=254)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'sponsor_events',
                'ordering': ['-start_date'],
            },
        ),
        migrations.CreateModel(
            name='Sponsor',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('org_number', models.CharField(blank=True, default='', max_length=32)),
                ('address', models.CharField(blank=True, default='', max_length=500)),
                ('website', models.URLField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'sponsors',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='SponsorTier',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('tagline', models.CharField(blank=True, default='', max_length=500)),
                ('tier_type', models.CharField(choices=[('standard', 'Standard'), ('addon', 'Add-on')], default='standard', max_length=20)),
                ('price_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('price_currency', models.CharField(default='NOK', max_length=3)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tiers', to='sponsors.event')),
            ],
            options={
                'db_table': 'sponsor_tiers',
                'ordering': ['event', 'title'],
            },
        ),
        migrations.CreateModel(
            name='ContractTemplate',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('language', models.CharField(choices=[('nb', 'Norwegian (Bokmål)'), ('en', 'English')], default='nb', max_length=2)),
                ('currency', models.CharField(default='NOK', max_length=3)),
                ('sections', models.JSONField(blank=True, default=list)),
                ('header_text', models.CharField(blank=True, default='', max_length=500)),
                ('footer_text', models.CharField(blank=True, default='', max_length=500)),
                ('terms', models.JSONField(blank=True, null=True)),
                ('is_default', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('version', models.IntegerField(default=1, help_text='Incremented on every update')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='contract_templates', to='sponsors.event')),
                ('tier', models.ForeignKey(blank=True, help_text='Tier this template is tailored for', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='contract_templates', to='sponsors.sponsortier')),
            ],
            options={
                'db_table': 'sponsor_contract_templates',
                'ordering': ['-is_default', 'created_at'],
                'indexes': [models.Index(fields=['event', 'is_active'], name='sponsor_con_event_i_5b0f1e_idx')],
            },
        ),
        migrations.CreateModel(
            name='SponsorPipelineRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('prospect', 'Prospect'), ('contacted', 'Contacted'), ('negotiating', 'Negotiating'), ('closed-won', 'Closed Won'), ('closed-lost', 'Closed Lost')], default='prospect', max_length=20)),
                ('contract_status', models.CharField(choices=[('none', 'None'), ('verbal-agreement', 'Verbal Agreement'), ('contract-sent', 'Contract Sent'), ('contract-signed', 'Contract Signed')], default='none', max_length=20)),
                ('signature_status', models.CharField(choices=[('not-started', 'Not Started'), ('pending', 'Pending'), ('signed', 'Signed'), ('rejected', 'Rejected'), ('expired', 'Expired')], default='not-started', max_length=20)),
                ('invoice_status', models.CharField(choices=[('not-sent', 'Not Sent'), ('sent', 'Sent'), ('paid', 'Paid'), ('overdue', 'Overdue')], default='not-sent', max_length=20)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('contact_persons', models.JSONField(blank=True, default=list, help_text='[{"name": str, "email": str, "phone": str, "role": str, "is_primary": bool}]')),
                ('billing', models.JSONField(blank=True, default=dict, help_text='{"email": str, "reference": str, "comments": str}')),
                ('contract_value', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('contract_currency', models.CharField(default='NOK', max_length=3)),
                ('contract_sent_at', models.DateTimeField(blank=True, null=True)),
                ('contract_signed_at', models.DateTimeField(blank=True, null=True)),
                ('reminder_count', models.PositiveIntegerField(default=0)),
                ('signer_name', models.CharField(blank=True, default='', max_length=255)),
                ('signer_email', models.EmailField(blank=True, default='', max_length=254)),
                ('signature_id', models.CharField(blank=True, db_index=True, default='', help_text='Signing provider agreement id', max_length=255)),
                ('signing_url', models.URLField(blank=True, default='', max_length=1000)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('addons', models.ManyToManyField(blank=True, related_name='addon_pipeline_records', to='sponsors.sponsortier')),
                ('assigned_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_sponsor_records', to=settings.AUTH_USER_MODEL)),
                ('contract_document', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='pipeline_records', to='sponsors.contractasset')),
                ('contract_template', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='pipeline_records', to='sponsors.contracttemplate')),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pipeline_records', to='sponsors.event')),
                ('sponsor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pipeline_records', to='sponsors.sponsor')),
                ('tier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='pipeline_records', to='sponsors.sponsortier')),
            ],
            options={
                'db_table': 'sponsor_pipeline_records',
                'ordering': ['-updated_at'],
                'indexes': [
                    models.Index(fields=['event', 'status'], name='sponsor_pip_event_i_3c1a7d_idx'),
                    models.Index(fields=['event', 'contract_status'], name='sponsor_pip_event_i_8e2b94_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SponsorActivity',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('kind', models.CharField(choices=[('stage_change', 'Stage Change'), ('invoice_status_change', 'Invoice Status Change'), ('contract_status_change', 'Contract Status Change'), ('contract_signed', 'Contract Signed'), ('note', 'Note'), ('email', 'Email'), ('call', 'Call'), ('meeting', 'Meeting'), ('signature_status_change', 'Signature Status Change'), ('onboarding_complete', 'Onboarding Complete'), ('contract_reminder_sent', 'Contract Reminder Sent')], max_length=40)),
                ('description', models.TextField()),
                ('metadata', models.JSONField(blank=True, help_text='{"oldValue", "newValue", "timestamp"}', null=True)),
                ('actor', models.CharField(help_text="Acting identity (user id or 'system')", max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activities', to='sponsors.sponsorpipelinerecord')),
            ],
            options={
                'db_table': 'sponsor_activities',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['record', '-created_at'], name='sponsor_act_record__a4d2c6_idx')],
            },
        ),
    ]
