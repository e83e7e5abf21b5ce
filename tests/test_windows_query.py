"""
Tests for the Windows installed-update query.
"""

import json
import re
from datetime import date

import pytest

from connectors.base import CommandError, Result
from patching.windows_query import WindowsUpdateQuery, parse_installed_updates


class TestParseInstalledUpdates:
    """Tests for parse_installed_updates()."""

    def test_deduplicates_by_kb(self, hotfix_json):
        """Test that the same KB from hotfix and history ledgers appears once."""
        updates = parse_installed_updates(hotfix_json)

        kb_ids = [u.kb_id for u in updates]
        assert kb_ids == ['KB5073379', 'KB5034441']
        assert updates[0].source == 'hotfix'
        assert updates[0].installed_by == 'NT AUTHORITY\\SYSTEM'

    def test_parses_dates_in_both_formats(self, hotfix_json):
        updates = parse_installed_updates(hotfix_json)

        assert updates[0].installed_on == date(2025, 1, 14)
        assert updates[1].installed_on == date(2024, 12, 10)

    def test_bare_and_lowercase_kb_ids_normalized(self):
        payload = json.dumps([
            {'HotFixID': '5073379', 'Description': 'Update'},
            {'HotFixID': 'kb5073379', 'Description': 'Update'},
        ])
        updates = parse_installed_updates(payload)

        assert [u.kb_id for u in updates] == ['KB5073379']

    def test_single_object_wrapped(self):
        """Test that a lone object from ConvertTo-Json is treated as a one-item list."""
        payload = json.dumps({'HotFixID': 'KB5034441', 'Description': 'Security Update'})
        updates = parse_installed_updates(payload)

        assert len(updates) == 1
        assert updates[0].is_security

    @pytest.mark.parametrize('stdout', ['', '   \n', None, '[]', 'not json'])
    def test_empty_or_garbled_output_gives_empty_list(self, stdout):
        assert parse_installed_updates(stdout) == []

    def test_entries_without_kb_skipped(self):
        payload = json.dumps([{'HotFixID': 'File 1', 'Description': 'Update'}, {'HotFixID': 'KB1'}])
        assert [u.kb_id for u in parse_installed_updates(payload)] == ['KB1']

    def test_error_payload_raises(self):
        """Test that a script-level error is surfaced as CommandError."""
        with pytest.raises(CommandError, match='Access denied'):
            parse_installed_updates(json.dumps({'Error': 'Access denied'}))


class TestWindowsUpdateQuery:
    """Tests for WindowsUpdateQuery against a scripted connection."""

    def test_installed_updates_cached(self, fake_connection, hotfix_json):
        """Test that a second call reuses the first result."""
        conn = fake_connection({'Get-HotFix': Result(stdout=hotfix_json)})
        query = WindowsUpdateQuery(conn)

        first = query.installed_updates()
        second = query.installed_updates()

        assert first is second
        assert len(conn.commands) == 1

    def test_refresh_refetches(self, fake_connection, hotfix_json):
        conn = fake_connection({'Get-HotFix': Result(stdout=hotfix_json)})
        query = WindowsUpdateQuery(conn)

        query.installed_updates()
        query.installed_updates(refresh=True)

        assert len(conn.commands) == 2

    def test_nonzero_exit_still_parsed(self, fake_connection, hotfix_json):
        conn = fake_connection({'Get-HotFix': Result(stdout=hotfix_json, stderr='warning', exit_code=1)})

        assert len(WindowsUpdateQuery(conn).installed_updates()) == 2

    def test_security_updates(self, fake_connection, hotfix_json):
        conn = fake_connection({'Get-HotFix': Result(stdout=hotfix_json)})

        assert [u.kb_id for u in WindowsUpdateQuery(conn).security_updates()] == ['KB5073379']

    def test_updates_between(self, fake_connection, hotfix_json):
        conn = fake_connection({'Get-HotFix': Result(stdout=hotfix_json)})
        query = WindowsUpdateQuery(conn)

        selected = query.updates_between(start=date(2025, 1, 1))
        assert [u.kb_id for u in selected] == ['KB5073379']

        selected = query.updates_between(end=date(2024, 12, 31))
        assert [u.kb_id for u in selected] == ['KB5034441']

    def test_matching_by_regex(self, fake_connection, hotfix_json):
        conn = fake_connection({'Get-HotFix': Result(stdout=hotfix_json)})

        assert [u.kb_id for u in WindowsUpdateQuery(conn).matching(re.compile('^KB507'))] == ['KB5073379']

    def test_compare_with(self, fake_connection, hotfix_json):
        """Test that a protected host missing an update shows it as only_other."""
        other_payload = json.dumps([{'HotFixID': 'KB5073379'}])
        mine = WindowsUpdateQuery(fake_connection({'Get-HotFix': Result(stdout=other_payload)}))
        control = WindowsUpdateQuery(fake_connection({'Get-HotFix': Result(stdout=hotfix_json)}))

        comparison = mine.compare_with(control)

        assert comparison.common == ['KB5073379']
        assert comparison.only_self == []
        assert comparison.only_other == ['KB5034441']

    def test_summary(self, fake_connection, hotfix_json):
        conn = fake_connection({'Get-HotFix': Result(stdout=hotfix_json)})
        summary = WindowsUpdateQuery(conn).summary()

        assert 'Total updates: 2' in summary
        assert 'Security updates: 1' in summary
        assert 'Date range: 2024-12-10 to 2025-01-14' in summary

    def test_summary_without_dates(self, fake_connection):
        conn = fake_connection({'Get-HotFix': Result(stdout='[]')})

        assert 'Date range: N/A' in WindowsUpdateQuery(conn).summary()
