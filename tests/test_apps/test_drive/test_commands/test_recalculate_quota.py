"""Tests for recalculate_quota management command."""

from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from server.apps.drive.models import UserQuota


@pytest.mark.django_db
class TestRecalculateQuotaCommand:
    """Tests for recalculate_quota management command."""

    def test_recalculate_all_users(self, user, other_user, make_file):
        """Test every user's usage is rebuilt from file sizes."""
        make_file('a.txt', b'x' * 10)
        make_file('b.txt', b'x' * 30, owner=other_user)
        UserQuota.objects.update(used_bytes=999)

        out = StringIO()
        call_command('recalculate_quota', stdout=out)

        assert UserQuota.objects.get(user=user).used_bytes == 10
        assert UserQuota.objects.get(user=other_user).used_bytes == 30
        assert 'Recalculated quota for 2 users' in out.getvalue()

    def test_recalculate_single_user(self, user, other_user, make_file):
        """Test --user limits the rebuild."""
        make_file('a.txt', b'x' * 10)
        make_file('b.txt', b'x' * 30, owner=other_user)
        UserQuota.objects.update(used_bytes=999)

        out = StringIO()
        call_command('recalculate_quota', '--user', 'testuser', stdout=out)

        assert UserQuota.objects.get(user=user).used_bytes == 10
        assert UserQuota.objects.get(user=other_user).used_bytes == 999
        assert 'testuser: 10 bytes' in out.getvalue()

    def test_recalculate_unknown_user(self, db):
        """Test unknown usernames are reported."""
        with pytest.raises(CommandError):
            call_command('recalculate_quota', '--user', 'nobody')
