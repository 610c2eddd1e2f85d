"""Shared fixtures for drive app tests."""

from dataclasses import dataclass, field
from typing import Any

import boto3
import pytest
from django.contrib.auth import get_user_model
from django.core.files.base import ContentFile
from moto import mock_aws

from server.apps.drive.logic import sync_operations
from server.apps.drive.logic.quota_operations import get_or_create_quota
from server.apps.drive.logic.tree_operations import create_file

User = get_user_model()


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def mock_s3():
    """Mock S3 service with cloud-drive bucket.

    Yields:
        boto3 S3 resource with cloud-drive bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket='cloud-drive')
        yield conn


@pytest.fixture
def bucket(mock_s3):
    """The mocked drive bucket."""
    return mock_s3.Bucket('cloud-drive')


@pytest.fixture
def sample_file_content():
    """Sample file content for testing.

    Returns:
        ContentFile with test data.
    """
    return ContentFile(b'test file content', name='test.txt')


@pytest.fixture
def small_quota(user):
    """Give the test user a 100 byte quota."""
    quota = get_or_create_quota(user)
    quota.quota_bytes = 100
    quota.save(update_fields=['quota_bytes'])
    return quota


@pytest.fixture
def make_file(user, mock_s3):
    """Factory uploading a file for the test user.

    Returns:
        Callable ``(name, content, parent_id=None, owner=None)``.
    """

    def factory(name='a.txt', content=b'0123456789', parent_id=None, owner=None):
        return create_file(
            owner or user,
            name,
            ContentFile(content, name=name),
            parent_id=parent_id,
        )

    return factory


@dataclass
class FakeScheduler:
    """Records one-shot jobs instead of running them on a thread."""

    jobs: list[tuple[float, Any, tuple[Any, ...]]] = field(default_factory=list)

    def schedule_once(self, delay_seconds, func, *args):
        self.jobs.append((delay_seconds, func, args))

    def run_pending(self):
        """Run and forget every recorded job."""
        jobs, self.jobs = self.jobs, []
        for _delay, func, args in jobs:
            func(*args)


@pytest.fixture
def fake_scheduler(monkeypatch):
    """Replace the background scheduler used by the sync engine."""
    scheduler = FakeScheduler()
    monkeypatch.setattr(sync_operations, 'get_scheduler', lambda: scheduler)
    return scheduler
