import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import server.apps.drive.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='FileNode',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('is_folder', models.BooleanField(default=False)),
                ('size_bytes', models.BigIntegerField(default=0, help_text='Size of the current version in bytes (0 for folders)')),
                ('storage_path', models.CharField(blank=True, default='', help_text='Storage key of the current content', max_length=1024)),
                ('mime_type', models.CharField(blank=True, default='', max_length=255)),
                ('checksum_sha256', models.CharField(blank=True, default='', max_length=64)),
                ('sync_status', models.CharField(choices=[('synced', 'Synced'), ('syncing', 'Syncing'), ('error', 'Error')], db_index=True, default='synced', max_length=16)),
                ('conflict_status', models.CharField(blank=True, choices=[('detected', 'Detected'), ('resolved', 'Resolved')], default='', max_length=16)),
                ('conflict_strategy', models.CharField(blank=True, choices=[('keep_local', 'Keep local'), ('keep_remote', 'Keep remote'), ('keep_both', 'Keep both')], default='', max_length=16)),
                ('conflict_at', models.DateTimeField(blank=True, null=True)),
                ('offline_available', models.BooleanField(default=False)),
                ('is_deleted', models.BooleanField(db_index=True, default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('modified_at', models.DateTimeField(auto_now=True)),
                ('last_modified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='drive_nodes', to=settings.AUTH_USER_MODEL)),
                ('parent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='children', to='drive.filenode')),
            ],
            options={
                'verbose_name': 'File node',
                'verbose_name_plural': 'File nodes',
                'ordering': ['-is_folder', 'name'],
                'base_manager_name': 'all_objects',
                'indexes': [
                    models.Index(fields=['owner', 'parent'], name='drive_owner_parent_idx'),
                    models.Index(fields=['owner', '-modified_at'], name='drive_owner_recent_idx'),
                    models.Index(fields=['is_deleted', 'deleted_at'], name='drive_trash_sweep_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(size_bytes__gte=0), name='drive_node_size_non_negative'),
                ],
            },
            managers=[
                ('objects', models.Manager()),
                ('all_objects', models.Manager()),
            ],
        ),
        migrations.CreateModel(
            name='FileVersion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('version_number', models.PositiveIntegerField()),
                ('storage_path', models.CharField(max_length=1024)),
                ('size_bytes', models.BigIntegerField()),
                ('checksum_sha256', models.CharField(blank=True, default='', max_length=64)),
                ('comment', models.CharField(blank=True, default='', max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('file', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='versions', to='drive.filenode')),
                ('uploaded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'File version',
                'verbose_name_plural': 'File versions',
                'ordering': ['-version_number'],
                'constraints': [
                    models.UniqueConstraint(fields=('file', 'version_number'), name='drive_version_number_unique'),
                    models.CheckConstraint(condition=models.Q(version_number__gte=1), name='drive_version_number_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserQuota',
            fields=[
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='quota', serialize=False, to=settings.AUTH_USER_MODEL)),
                ('quota_bytes', models.BigIntegerField(default=server.apps.drive.models.default_quota_bytes, help_text='Storage quota limit in bytes')),
                ('used_bytes', models.BigIntegerField(default=0, help_text='Currently used storage in bytes')),
            ],
            options={
                'verbose_name': 'User Quota',
                'verbose_name_plural': 'User Quotas',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(quota_bytes__gte=0), name='quota_bytes_non_negative'),
                    models.CheckConstraint(condition=models.Q(used_bytes__gte=0), name='used_bytes_non_negative'),
                ],
            },
        ),
    ]
