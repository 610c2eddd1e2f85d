"""Tests for trash operations business logic."""

from datetime import timedelta

import pytest
from django.core.files.base import ContentFile
from django.test import override_settings
from django.utils import timezone

from server.apps.drive.exceptions import NotFoundError, StorageBackendError
from server.apps.drive.infrastructure.storage import FileStorage
from server.apps.drive.logic.trash_operations import (
    empty_trash,
    list_trash,
    permanent_delete,
    purge_expired_trash,
    purge_older_than,
    restore,
    soft_delete,
)
from server.apps.drive.logic.tree_operations import create_folder
from server.apps.drive.logic.version_operations import upload_new_version
from server.apps.drive.models import FileNode, FileVersion, UserQuota


def _used_bytes(user):
    return UserQuota.objects.get(user=user).used_bytes


def _object_keys(bucket):
    return {obj.key for obj in bucket.objects.all()}


def _age(node, days):
    """Pretend a trashed subtree was deleted ``days`` ago."""
    deleted_at = timezone.now() - timedelta(days=days)
    FileNode.all_objects.filter(deleted_at=node.deleted_at).update(
        deleted_at=deleted_at,
    )
    return deleted_at


@pytest.mark.django_db
class TestSoftDelete:
    """Tests for moving nodes to the trash."""

    def test_soft_delete_sets_flags(self, user, make_file):
        """Test node is hidden but kept."""
        node = make_file('a.txt')

        trashed = soft_delete(user, node.id)

        assert trashed.is_deleted is True
        assert trashed.deleted_at is not None
        assert not FileNode.objects.filter(id=node.id).exists()
        assert FileNode.all_objects.filter(id=node.id).exists()

    def test_soft_delete_preserves_storage(self, user, bucket, make_file):
        """Test content stays in storage while in trash."""
        node = make_file('a.txt')

        soft_delete(user, node.id)

        assert node.storage_path in _object_keys(bucket)

    def test_soft_delete_quota_unchanged(self, user, make_file):
        """Test trashed files keep counting against quota."""
        node = make_file('a.txt', b'x' * 40)

        soft_delete(user, node.id)

        assert _used_bytes(user) == 40

    def test_soft_delete_folder_cascades(self, user, make_file):
        """Test descendants are trashed with the folder."""
        folder = create_folder(user, 'docs')
        inner = create_folder(user, 'inner', folder.id)
        node = make_file('a.txt', parent_id=inner.id)

        trashed = soft_delete(user, folder.id)

        for node_id in (folder.id, inner.id, node.id):
            row = FileNode.all_objects.get(id=node_id)
            assert row.is_deleted
            assert row.deleted_at == trashed.deleted_at

    def test_soft_delete_twice(self, user, make_file):
        """Test trashed nodes cannot be trashed again."""
        node = make_file('a.txt')
        soft_delete(user, node.id)

        with pytest.raises(NotFoundError):
            soft_delete(user, node.id)

    def test_soft_delete_foreign_node(self, user, other_user, make_file):
        """Test other users' nodes are reported as missing."""
        node = make_file('a.txt', owner=other_user)

        with pytest.raises(NotFoundError):
            soft_delete(user, node.id)


@pytest.mark.django_db
class TestRestore:
    """Tests for restoring nodes from the trash."""

    def test_restore_clears_flags(self, user, make_file):
        """Test restored node is live again."""
        node = make_file('a.txt')
        soft_delete(user, node.id)

        restored = restore(user, node.id)

        assert restored.is_deleted is False
        assert restored.deleted_at is None
        assert FileNode.objects.filter(id=node.id).exists()

    def test_restore_folder_brings_back_subtree(self, user, make_file):
        """Test children trashed with the folder come back."""
        folder = create_folder(user, 'docs')
        node = make_file('a.txt', parent_id=folder.id)
        soft_delete(user, folder.id)

        restore(user, folder.id)

        assert FileNode.objects.filter(id=node.id, parent=folder).exists()

    def test_restore_keeps_separately_trashed_children(self, user, make_file):
        """Test children trashed earlier stay in the trash."""
        folder = create_folder(user, 'docs')
        node = make_file('a.txt', parent_id=folder.id)
        soft_delete(user, node.id)
        soft_delete(user, folder.id)

        restore(user, folder.id)

        assert FileNode.objects.filter(id=folder.id).exists()
        assert not FileNode.objects.filter(id=node.id).exists()

    def test_restore_into_root_when_parent_trashed(self, user, make_file):
        """Test a child restored alone goes to the root."""
        folder = create_folder(user, 'docs')
        node = make_file('a.txt', parent_id=folder.id)
        soft_delete(user, folder.id)

        restored = restore(user, node.id)

        assert restored.parent_id is None
        assert FileNode.objects.get(id=node.id).parent_id is None
        assert not FileNode.objects.filter(id=folder.id).exists()

    def test_restore_file_not_in_trash(self, user, make_file):
        """Test live nodes cannot be restored."""
        node = make_file('a.txt')

        with pytest.raises(NotFoundError):
            restore(user, node.id)


@pytest.mark.django_db
class TestPermanentDelete:
    """Tests for permanent deletion."""

    def test_permanent_delete_removes_everything(self, user, bucket, make_file):
        """Test rows, versions and objects go away and space returns."""
        node = make_file('a.txt', b'x' * 10)
        upload_new_version(user, node.id, ContentFile(b'y' * 20))

        permanent_delete(user, node.id)

        assert not FileNode.all_objects.filter(id=node.id).exists()
        assert not FileVersion.objects.filter(file_id=node.id).exists()
        assert _object_keys(bucket) == set()
        assert _used_bytes(user) == 0

    def test_permanent_delete_from_trash(self, user, make_file):
        """Test trashed nodes can be deleted permanently."""
        node = make_file('a.txt', b'x' * 10)
        soft_delete(user, node.id)

        permanent_delete(user, node.id)

        assert FileNode.all_objects.count() == 0
        assert _used_bytes(user) == 0

    def test_permanent_delete_folder_subtree(self, user, bucket, make_file):
        """Test folders are deleted with all their files."""
        folder = create_folder(user, 'docs')
        inner = create_folder(user, 'inner', folder.id)
        make_file('a.txt', b'x' * 10, parent_id=folder.id)
        make_file('b.txt', b'x' * 5, parent_id=inner.id)
        kept = make_file('kept.txt', b'x' * 3)

        permanent_delete(user, folder.id)

        assert list(FileNode.all_objects.values_list('id', flat=True)) == [
            kept.id,
        ]
        assert _object_keys(bucket) == {kept.storage_path}
        assert _used_bytes(user) == 3

    def test_permanent_delete_storage_failure(
        self,
        user,
        make_file,
        monkeypatch,
    ):
        """Test nothing changes when storage refuses the delete."""
        node = make_file('a.txt', b'x' * 10)

        def failing_delete_many(self, names):
            raise StorageBackendError('Failed to delete 1 objects')

        monkeypatch.setattr(FileStorage, 'delete_many', failing_delete_many)

        with pytest.raises(StorageBackendError):
            permanent_delete(user, node.id)

        assert FileNode.objects.filter(id=node.id).exists()
        assert _used_bytes(user) == 10

    def test_permanent_delete_record_failure_keeps_content(
        self,
        user,
        bucket,
        make_file,
        monkeypatch,
    ):
        """Test a failing database step leaves every object in place."""
        node = make_file('a.txt', b'x' * 10)
        upload_new_version(user, node.id, ContentFile(b'y' * 4))
        keys_before = _object_keys(bucket)

        def failing_release(owner, size_bytes):
            raise RuntimeError('ledger unavailable')

        monkeypatch.setattr(
            'server.apps.drive.logic.trash_operations.release',
            failing_release,
        )

        with pytest.raises(RuntimeError):
            permanent_delete(user, node.id)

        assert FileNode.objects.filter(id=node.id).exists()
        assert FileVersion.objects.filter(file_id=node.id).count() == 2
        assert _object_keys(bucket) == keys_before
        assert len(keys_before) == 2


@pytest.mark.django_db
class TestPurge:
    """Tests for the retention sweep."""

    def test_purge_respects_cutoff(self, user, bucket, make_file):
        """Test only nodes deleted before the cutoff are purged."""
        node = make_file('a.txt', b'x' * 10)
        trashed = soft_delete(user, node.id)
        deleted_at = trashed.deleted_at

        report = purge_older_than(deleted_at - timedelta(days=1))
        assert report.purged == 0
        assert FileNode.all_objects.filter(id=node.id).exists()

        report = purge_older_than(deleted_at + timedelta(days=31))
        assert report.purged == 1
        assert report.failed == 0
        assert not FileNode.all_objects.filter(id=node.id).exists()
        assert not FileVersion.objects.filter(file_id=node.id).exists()
        assert _object_keys(bucket) == set()
        assert _used_bytes(user) == 0

    def test_purge_retention_window(self, user, make_file):
        """Test trash younger than the retention period survives."""
        young = make_file('young.txt', b'x' * 10)
        old = make_file('old.txt', b'x' * 20)
        _age(soft_delete(user, young.id), days=29)
        _age(soft_delete(user, old.id), days=31)

        with override_settings(DRIVE_TRASH_RETENTION_DAYS=30):
            report = purge_expired_trash()

        assert report.purged == 1
        assert FileNode.all_objects.filter(id=young.id).exists()
        assert not FileNode.all_objects.filter(id=old.id).exists()
        assert _used_bytes(user) == 10

    def test_purge_is_idempotent(self, user, make_file):
        """Test a second sweep neither fails nor releases twice."""
        make_file('keep.txt', b'x' * 7)
        node = make_file('a.txt', b'x' * 10)
        soft_delete(user, node.id)
        cutoff = timezone.now() + timedelta(seconds=1)

        first = purge_older_than(cutoff)
        second = purge_older_than(cutoff)

        assert (first.purged, first.failed) == (1, 0)
        assert (second.purged, second.failed) == (0, 0)
        assert _used_bytes(user) == 7

    def test_purge_folder_with_children(self, user, make_file):
        """Test a trashed folder is purged with its subtree once."""
        folder = create_folder(user, 'docs')
        make_file('a.txt', b'x' * 10, parent_id=folder.id)
        make_file('b.txt', b'x' * 10, parent_id=folder.id)
        soft_delete(user, folder.id)

        report = purge_older_than(timezone.now() + timedelta(seconds=1))

        assert report.failed == 0
        assert FileNode.all_objects.count() == 0
        assert _used_bytes(user) == 0

    def test_purge_continues_after_storage_error(
        self,
        user,
        make_file,
        monkeypatch,
    ):
        """Test storage errors are logged and records still go away."""
        node = make_file('a.txt', b'x' * 10)
        soft_delete(user, node.id)

        def failing_delete_many(self, names):
            raise StorageBackendError('Failed to delete 1 objects')

        monkeypatch.setattr(FileStorage, 'delete_many', failing_delete_many)

        report = purge_older_than(timezone.now() + timedelta(seconds=1))

        assert report.purged == 1
        assert not FileNode.all_objects.filter(id=node.id).exists()
        assert _used_bytes(user) == 0

    def test_purge_counts_unexpected_failures(
        self,
        user,
        make_file,
        monkeypatch,
    ):
        """Test one broken node does not stop the sweep."""
        first = make_file('a.txt', b'x' * 10)
        second = make_file('b.txt', b'x' * 10)
        soft_delete(user, first.id)
        soft_delete(user, second.id)
        calls = []

        original = FileStorage.delete_many

        def flaky_delete_many(self, names):
            calls.append(names)
            if len(calls) == 1:
                raise RuntimeError('connection reset')
            return original(self, names)

        monkeypatch.setattr(FileStorage, 'delete_many', flaky_delete_many)

        report = purge_older_than(timezone.now() + timedelta(seconds=1))

        assert (report.purged, report.failed) == (1, 1)
        assert FileNode.all_objects.count() == 1

    def test_purge_record_failure_keeps_content(
        self,
        user,
        bucket,
        make_file,
        monkeypatch,
    ):
        """Test a node whose records cannot be removed keeps its objects."""
        node = make_file('a.txt', b'x' * 10)
        soft_delete(user, node.id)

        def failing_release(owner, size_bytes):
            raise RuntimeError('ledger unavailable')

        monkeypatch.setattr(
            'server.apps.drive.logic.trash_operations.release',
            failing_release,
        )

        report = purge_older_than(timezone.now() + timedelta(seconds=1))

        assert (report.purged, report.failed) == (0, 1)
        assert FileNode.all_objects.filter(id=node.id).exists()
        assert _object_keys(bucket) == {node.storage_path}

    def test_purge_batch_size(self, user, make_file):
        """Test batch size limits the sweep, oldest first."""
        nodes = [make_file(f'{index}.txt', b'x') for index in range(3)]
        for days, node in zip((40, 35, 32), nodes, strict=True):
            _age(soft_delete(user, node.id), days=days)

        report = purge_older_than(timezone.now(), batch_size=2)

        assert report.purged == 2
        assert list(FileNode.all_objects.values_list('id', flat=True)) == [
            nodes[2].id,
        ]


@pytest.mark.django_db
class TestListAndEmptyTrash:
    """Tests for listing and emptying the trash."""

    def test_list_trash_top_level_only(self, user, make_file):
        """Test children trashed with their folder are not listed."""
        folder = create_folder(user, 'docs')
        make_file('inner.txt', parent_id=folder.id)
        loose = make_file('loose.txt')
        make_file('live.txt')
        soft_delete(user, loose.id)
        soft_delete(user, folder.id)

        trashed = list_trash(user)

        assert [node.name for node in trashed] == ['docs', 'loose.txt']

    def test_list_trash_user_isolation(self, user, other_user, make_file):
        """Test users only see their own trash."""
        node = make_file('theirs.txt', owner=other_user)
        soft_delete(other_user, node.id)

        assert list_trash(user) == []

    def test_empty_trash(self, user, bucket, make_file):
        """Test emptying removes all trashed content."""
        folder = create_folder(user, 'docs')
        make_file('inner.txt', b'x' * 4, parent_id=folder.id)
        loose = make_file('loose.txt', b'x' * 6)
        live = make_file('live.txt', b'x' * 8)
        soft_delete(user, loose.id)
        soft_delete(user, folder.id)

        assert empty_trash(user) == 2

        assert list(FileNode.all_objects.values_list('id', flat=True)) == [
            live.id,
        ]
        assert _object_keys(bucket) == {live.storage_path}
        assert _used_bytes(user) == 8
