"""Tests for cleanup_trash management command."""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from server.apps.drive.logic.trash_operations import soft_delete
from server.apps.drive.logic.tree_operations import create_folder
from server.apps.drive.models import FileNode, UserQuota


def _trash(user, node, days):
    soft_delete(user, node.id)
    FileNode.all_objects.filter(id=node.id).update(
        deleted_at=timezone.now() - timedelta(days=days),
    )


@pytest.mark.django_db
class TestCleanupTrashCommand:
    """Tests for cleanup_trash management command."""

    def test_cleanup_deletes_old_files(self, user, make_file):
        """Test cleanup deletes files older than 30 days."""
        node = make_file('old_file.txt', b'x' * 100)
        _trash(user, node, days=31)

        out = StringIO()
        call_command('cleanup_trash', stdout=out)

        assert not FileNode.all_objects.filter(id=node.id).exists()
        assert UserQuota.objects.get(user=user).used_bytes == 0
        assert 'Purged 1 files from trash, 0 failed' in out.getvalue()

    def test_cleanup_preserves_recent_files(self, user, make_file):
        """Test cleanup preserves files deleted less than 30 days ago."""
        node = make_file('recent_file.txt')
        _trash(user, node, days=29)

        out = StringIO()
        call_command('cleanup_trash', stdout=out)

        assert FileNode.all_objects.filter(id=node.id).exists()
        assert 'Purged 0 files' in out.getvalue()

    def test_cleanup_custom_days(self, user, make_file):
        """Test --days overrides the retention period."""
        node = make_file('a.txt')
        _trash(user, node, days=10)

        out = StringIO()
        call_command('cleanup_trash', '--days', '7', stdout=out)

        assert not FileNode.all_objects.filter(id=node.id).exists()
        assert 'older than 7 days' in out.getvalue()

    def test_cleanup_dry_run(self, user, make_file):
        """Test dry run reports without deleting."""
        node = make_file('dry_run.txt')
        _trash(user, node, days=31)

        out = StringIO()
        call_command('cleanup_trash', '--dry-run', stdout=out)

        assert FileNode.all_objects.filter(id=node.id).exists()
        output = out.getvalue()
        assert 'Would delete: dry_run.txt' in output
        assert 'Would purge 1 files from trash' in output

    def test_cleanup_batch_size(self, user, make_file):
        """Test batch size limits processed nodes."""
        for index in range(3):
            _trash(user, make_file(f'{index}.txt'), days=31 + index)

        out = StringIO()
        call_command('cleanup_trash', '--batch-size', '2', stdout=out)

        assert FileNode.all_objects.count() == 1
        assert 'Purged 2 files' in out.getvalue()

    def test_dry_run_matches_real_run(self, user, make_file):
        """Test dry run lists the same nodes a batch would purge."""
        folder = create_folder(user, 'docs')
        inner = make_file('inner.txt', parent_id=folder.id)
        soft_delete(user, folder.id)
        FileNode.all_objects.update(
            deleted_at=timezone.now() - timedelta(days=31),
        )

        out = StringIO()
        call_command(
            'cleanup_trash',
            '--dry-run',
            '--batch-size',
            '1',
            stdout=out,
        )
        assert 'Would delete: inner.txt' in out.getvalue()
        assert 'Would delete: docs' not in out.getvalue()

        call_command('cleanup_trash', '--batch-size', '1', stdout=StringIO())

        assert not FileNode.all_objects.filter(id=inner.id).exists()
        assert FileNode.all_objects.filter(id=folder.id).exists()

    def test_cleanup_ignores_live_files(self, user, make_file):
        """Test live files are never touched."""
        node = make_file('live.txt')

        call_command('cleanup_trash', stdout=StringIO())

        assert FileNode.objects.filter(id=node.id).exists()
