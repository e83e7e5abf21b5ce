"""
Pytest configuration and fixtures for patchpilot tests.
"""

import os
import sys
import json

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from connectors.base import Connection, Result


class FakeConnection(Connection):
    """
    Scripted stand-in transport.

    ``responses`` maps a command fragment to a Result (or an exception to
    raise); the first fragment contained in the executed command wins.
    Unmatched commands return ``default``. ``connect_error`` is raised
    from every connect attempt.
    """

    kind = 'fake'

    def __init__(self, responses=None, default=None, connect_error=None):
        self.responses = list((responses or {}).items())
        self.default = default if default is not None else Result()
        self.commands = []
        self.connect_count = 0
        self.close_count = 0
        self.connect_error = connect_error
        self._connected = False

    @property
    def connected(self):
        return self._connected

    def connect(self):
        self.connect_count += 1
        if self.connect_error is not None:
            raise self.connect_error
        self._connected = True
        return self

    def execute(self, command):
        if not self._connected:
            self.connect()
        self.commands.append(command)
        for fragment, response in self.responses:
            if fragment in command:
                if isinstance(response, Exception):
                    raise response
                return response
        return self.default

    def close(self):
        self.close_count += 1
        self._connected = False


@pytest.fixture
def fake_connection():
    """Factory for scripted connections."""
    return FakeConnection


@pytest.fixture
def inventory_data():
    """Provide a small mixed inventory."""
    return {
        'credentials': {
            'win_admin': {'username': 'patchadmin', 'password': '${TEST_WIN_PASSWORD}', 'domain': 'CORP'},
            'linux_ops': {'username': 'ops', 'password': 'opspass', 'key_file': '/nonexistent/id_ed25519'},
        },
        'assets': [
            {'hostname': 'dc01', 'ip': '10.0.0.10', 'os': 'windows', 'role': 'domain_controller',
             'credential_ref': 'win_admin', 'tags': ['core']},
            {'hostname': 'lab-pc01', 'ip': '10.0.1.21', 'os': 'windows', 'role': 'endpoint',
             'credential_ref': 'win_admin', 'deep_freeze': True, 'tags': ['lab']},
            {'hostname': 'lab-pc02', 'ip': '10.0.1.22', 'os': 'windows', 'role': 'endpoint',
             'credential_ref': 'win_admin', 'tags': ['lab', 'control']},
            {'hostname': 'web01', 'ip': '10.0.2.10', 'os': 'linux', 'role': 'web',
             'credential_ref': 'linux_ops', 'docker': True, 'package_manager': 'apt'},
            {'hostname': 'db01', 'ip': '10.0.2.20', 'os': 'linux', 'role': 'database',
             'credential_ref': 'linux_ops', 'package_manager': 'dnf'},
            {'hostname': 'switch01', 'ip': '10.0.9.1', 'os': 'ios', 'credential_ref': 'linux_ops'},
        ],
    }


@pytest.fixture
def inventory_file(tmp_path, inventory_data):
    """Write the sample inventory to a temporary JSON file."""
    path = tmp_path / 'inventory.json'
    path.write_text(json.dumps(inventory_data))
    return path


@pytest.fixture
def hotfix_json():
    """Installed-update payload with the same KB reported by both ledgers."""
    return json.dumps([
        {'HotFixID': 'KB5073379', 'Description': 'Security Update', 'InstalledOn': '2025-01-14',
         'InstalledBy': 'NT AUTHORITY\\SYSTEM', 'Source': 'hotfix'},
        {'HotFixID': 'KB5073379', 'Description': 'Security Update', 'InstalledOn': '2025-01-14',
         'InstalledBy': None, 'Source': 'history'},
        {'HotFixID': 'KB5034441', 'Description': 'Update', 'InstalledOn': '12/10/2024 3:00:00 AM',
         'InstalledBy': None, 'Source': 'history'},
    ])
