"""
Tests for inventory loading, asset filters and credential resolution.
"""

import os
from unittest.mock import patch

import pytest

from inventory import Asset, CredentialResolver, Inventory, InventoryError, default_inventory_path, load_dotenv


class TestCredentialResolver:
    """Tests for ${VAR} expansion."""

    def test_expands_nested_values(self):
        resolver = CredentialResolver({'WIN_PASS': 's3cret', 'USER': 'admin'})
        resolved = resolver.resolve({'username': '${USER}', 'password': '${WIN_PASS}', 'port': 5985, 'tags': ['${USER}']})

        assert resolved == {'username': 'admin', 'password': 's3cret', 'port': 5985, 'tags': ['admin']}

    def test_partial_string(self):
        resolver = CredentialResolver({'DOMAIN': 'CORP'})
        assert resolver.resolve('${DOMAIN}\\svc') == 'CORP\\svc'

    def test_missing_variable_raises(self):
        with pytest.raises(InventoryError, match='MISSING_VAR'):
            CredentialResolver({}).resolve('${MISSING_VAR}')

    def test_plain_values_untouched(self):
        assert CredentialResolver({}).resolve('plain') == 'plain'
        assert CredentialResolver({}).resolve(None) is None


class TestAsset:
    """Tests for Asset."""

    def test_ecosystem(self):
        assert Asset(hostname='a', ip='1', os='Windows').ecosystem == 'windows'
        assert Asset(hostname='a', ip='1', os='linux').ecosystem == 'apt'
        assert Asset(hostname='a', ip='1', os='linux', package_manager='DNF').ecosystem == 'dnf'
        assert Asset(hostname='a', ip='1', os='ios').ecosystem is None

    def test_missing_field(self):
        with pytest.raises(InventoryError):
            Asset.from_dict({'hostname': 'a', 'os': 'linux'})

    def test_to_dict(self):
        data = Asset(hostname='web01', ip='10.0.2.10', os='linux', credential_ref='ops').to_dict()

        assert data['name'] == 'web01'
        assert data['credential_id'] == 'ops'
        assert data['deep_freeze'] is False


class TestInventory:
    """Tests for Inventory."""

    def test_load(self, inventory_file):
        inventory = Inventory.load(inventory_file)

        assert inventory.count == 6
        assert inventory.find('dc01').role == 'domain_controller'
        assert inventory.find('nope') is None

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(InventoryError, match='not found'):
            Inventory.load(tmp_path / 'missing.json')

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text('{not json')

        with pytest.raises(InventoryError, match='Invalid JSON'):
            Inventory.load(path)

    def test_default_path_from_environment(self, tmp_path):
        with patch.dict(os.environ, {'PATCHPILOT_INVENTORY': str(tmp_path / 'inv.json')}):
            assert default_inventory_path() == tmp_path / 'inv.json'

    def test_filters(self, inventory_data):
        inventory = Inventory(inventory_data)

        assert [a.hostname for a in inventory.windows()] == ['dc01', 'lab-pc01', 'lab-pc02']
        assert [a.hostname for a in inventory.linux()] == ['web01', 'db01']
        assert [a.hostname for a in inventory.deep_freeze_enabled()] == ['lab-pc01']
        assert [a.hostname for a in inventory.control_endpoints()] == ['lab-pc02']
        assert [a.hostname for a in inventory.docker_hosts()] == ['web01']
        assert [a.hostname for a in inventory.by_tag('lab')] == ['lab-pc01', 'lab-pc02']
        assert [a.hostname for a in inventory.by_role('database')] == ['db01']

    def test_credential_resolution(self, inventory_data):
        inventory = Inventory(inventory_data, resolver=CredentialResolver({'TEST_WIN_PASSWORD': 'pw'}))

        assert inventory.credential('win_admin')['password'] == 'pw'
        assert inventory.credential('unknown') is None

    def test_connection_for_windows(self, inventory_data):
        pytest.importorskip('winrm')
        from connectors.winrm_connection import WinRMConnection

        inventory = Inventory(inventory_data, resolver=CredentialResolver({'TEST_WIN_PASSWORD': 'pw'}))
        conn = inventory.connection_for(inventory.find('dc01'))

        assert isinstance(conn, WinRMConnection)
        assert conn.config.hostname == '10.0.0.10'
        assert conn.config.full_username == 'CORP\\patchadmin'
        assert not conn.connected

    def test_connection_for_linux(self, inventory_data):
        from connectors.ssh_connection import SSHConnection

        inventory = Inventory(inventory_data)
        conn = inventory.connection_for(inventory.find('web01'))

        assert isinstance(conn, SSHConnection)
        assert conn.config.private_key_path == '/nonexistent/id_ed25519'
        assert conn.config.password == 'opspass'

    def test_connection_for_unknown_credential(self, inventory_data):
        inventory_data['assets'][0]['credential_ref'] = 'ghost'
        inventory = Inventory(inventory_data)

        with pytest.raises(InventoryError, match='ghost'):
            inventory.connection_for(inventory.find('dc01'))

    def test_summary(self, inventory_data):
        summary = Inventory(inventory_data).summary()

        assert 'Total assets: 6' in summary
        assert 'Deep Freeze enabled: 1' in summary


class TestLoadDotenv:
    """Tests for .env loading."""

    def test_does_not_override_existing(self, tmp_path):
        env_file = tmp_path / '.env'
        env_file.write_text('# comment\nPP_TEST_NEW=from-file\nPP_TEST_SET=from-file\n')

        with patch.dict(os.environ, {'PP_TEST_SET': 'existing'}):
            load_dotenv(env_file)

            assert os.environ['PP_TEST_NEW'] == 'from-file'
            assert os.environ['PP_TEST_SET'] == 'existing'
