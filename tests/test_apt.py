"""
Tests for APT package query and executor.
"""

import pytest

from connectors.base import CommandError, Result
from patching.apt_executor import AptExecutor, parse_upgraded_count, parse_upgraded_packages
from patching.apt_query import AptQuery, parse_dpkg_line, parse_upgradable_line

DPKG_OUTPUT = (
    "bash\t5.2.21-2ubuntu4\tamd64\tinstall ok installed\n"
    "openssl\t3.0.13-0ubuntu3.4\tamd64\tinstall ok installed\n"
    "oldpkg\t1.0\tamd64\tdeinstall ok config-files\n"
    "broken\tline\n"
    "libc6\t2.39-0ubuntu8.3\tamd64\tinstall ok installed\n"
)

UPGRADABLE_OUTPUT = (
    "openssl/noble-updates 3.0.13-0ubuntu3.5 amd64 [upgradable from: 3.0.13-0ubuntu3.4]\n"
    "libc6/noble-updates,noble-security 2.39-0ubuntu8.4 amd64 [upgradable from: 2.39-0ubuntu8.3]\n"
    "WARNING: apt does not have a stable CLI interface.\n"
)

UPGRADE_OUTPUT = """Reading package lists...
Building dependency tree...
Calculating upgrade...
The following packages will be upgraded:
  libc6 openssl
2 upgraded, 0 newly installed, 0 to remove and 0 not upgraded.
Need to get 5,120 kB of archives.
"""

APT3_UPGRADE_OUTPUT = """Reading package lists...
Upgrading:
  libc6  openssl

Summary:
  Upgrading: 2, Installing: 0, Removing: 0, Not Upgrading: 0
"""

NOTHING_OUTPUT = """Reading package lists...
Calculating upgrade...
0 upgraded, 0 newly installed, 0 to remove and 0 not upgraded.
"""


class TestAptParsing:
    """Tests for dpkg-query and apt list line parsing."""

    def test_parse_dpkg_line(self):
        pkg = parse_dpkg_line("bash\t5.2.21-2ubuntu4\tamd64\tinstall ok installed")

        assert pkg.name == 'bash'
        assert pkg.version == '5.2.21-2ubuntu4'
        assert pkg.architecture == 'amd64'
        assert not pkg.is_upgradable

    def test_parse_dpkg_line_not_installed(self):
        assert parse_dpkg_line("oldpkg\t1.0\tamd64\tdeinstall ok config-files") is None

    def test_parse_dpkg_line_too_few_fields(self):
        assert parse_dpkg_line("broken\tline") is None

    def test_parse_upgradable_line(self):
        pkg = parse_upgradable_line(
            "libc6/noble-updates,noble-security 2.39-0ubuntu8.4 amd64 [upgradable from: 2.39-0ubuntu8.3]"
        )

        assert pkg.name == 'libc6'
        assert pkg.version == '2.39-0ubuntu8.4'
        assert pkg.architecture == 'amd64'
        assert pkg.is_upgradable

    def test_parse_upgradable_line_noise(self):
        assert parse_upgradable_line('Listing... Done') is None

    def test_upgraded_count(self):
        assert parse_upgraded_count(UPGRADE_OUTPUT) == 2
        assert parse_upgraded_count(NOTHING_OUTPUT) == 0
        assert parse_upgraded_count(APT3_UPGRADE_OUTPUT) == 2
        assert parse_upgraded_count('') is None

    def test_upgraded_packages(self):
        assert parse_upgraded_packages(UPGRADE_OUTPUT) == ['libc6', 'openssl']
        assert parse_upgraded_packages(APT3_UPGRADE_OUTPUT) == ['libc6', 'openssl']
        assert parse_upgraded_packages(NOTHING_OUTPUT) == []


class TestAptQuery:
    """Tests for AptQuery against a scripted connection."""

    def test_installed_packages(self, fake_connection):
        """Test that malformed and non-installed rows are skipped."""
        conn = fake_connection({'dpkg-query': Result(stdout=DPKG_OUTPUT)})
        query = AptQuery(conn)

        assert query.names() == ['bash', 'openssl', 'libc6']

    def test_upgradable(self, fake_connection):
        conn = fake_connection({'apt list --upgradable': Result(stdout=UPGRADABLE_OUTPUT)})
        packages = AptQuery(conn).upgradable()

        assert [p.name for p in packages] == ['openssl', 'libc6']
        assert all(p.is_upgradable for p in packages)

    def test_empty_output(self, fake_connection):
        conn = fake_connection({'dpkg-query': Result(stdout='')})
        assert AptQuery(conn).installed_packages() == []

    def test_matching(self, fake_connection):
        conn = fake_connection({'dpkg-query': Result(stdout=DPKG_OUTPUT)})
        assert [p.name for p in AptQuery(conn).matching('ssl')] == ['openssl']

    def test_summary(self, fake_connection):
        conn = fake_connection({
            'dpkg-query': Result(stdout=DPKG_OUTPUT),
            'apt list --upgradable': Result(stdout=UPGRADABLE_OUTPUT),
        })
        summary = AptQuery(conn).summary()

        assert 'Installed packages: 3' in summary
        assert 'Upgradable packages: 2' in summary

    def test_compare_with(self, fake_connection):
        mine = AptQuery(fake_connection({'dpkg-query': Result(stdout=DPKG_OUTPUT)}))
        other = AptQuery(fake_connection({'dpkg-query': Result(stdout="bash\t5.2\tamd64\tinstall ok installed\n")}))

        comparison = mine.compare_with(other)

        assert comparison.common == ['bash']
        assert comparison.only_self == ['libc6', 'openssl']
        assert comparison.only_other == []


class TestAptExecutor:
    """Tests for AptExecutor against a scripted connection."""

    def test_upgrade_all(self, fake_connection):
        conn = fake_connection({'apt-get upgrade': Result(stdout=UPGRADE_OUTPUT)})
        result = AptExecutor(conn).upgrade_all()

        assert result.succeeded
        assert result.upgraded_count == 2
        assert result.upgraded_package_names == ['libc6', 'openssl']
        assert 'DEBIAN_FRONTEND=noninteractive' in conn.commands[0]

    def test_nothing_to_upgrade(self, fake_connection):
        """Test that a no-op run reports zero, not a parse failure."""
        conn = fake_connection({'apt-get upgrade': Result(stdout=NOTHING_OUTPUT)})
        result = AptExecutor(conn).upgrade_all()

        assert result.succeeded
        assert result.upgraded_count == 0
        assert result.upgraded_package_names == []

    def test_upgrade_named_packages_quoted(self, fake_connection):
        conn = fake_connection({'--only-upgrade': Result(stdout=UPGRADE_OUTPUT)})
        AptExecutor(conn).upgrade(['openssl', 'libc6; rm -rf /'])

        command = conn.commands[0]
        assert '--only-upgrade openssl' in command
        assert "'libc6; rm -rf /'" in command

    def test_upgrade_requires_names(self, fake_connection):
        with pytest.raises(ValueError):
            AptExecutor(fake_connection()).upgrade([])

    def test_failed_upgrade_is_returned(self, fake_connection):
        """Test that a package manager failure is reported, not raised."""
        conn = fake_connection({'apt-get upgrade': Result(stdout='E: Could not get lock', stderr='lock held', exit_code=100)})
        result = AptExecutor(conn).upgrade_all()

        assert not result.succeeded
        assert result.to_dict()['error'] == 'lock held'

    @pytest.mark.parametrize('stdout,expected', [('true\n', True), ('false\n', False)])
    def test_reboot_required(self, fake_connection, stdout, expected):
        conn = fake_connection({'/var/run/reboot-required': Result(stdout=stdout)})
        assert AptExecutor(conn).reboot_required() is expected

    def test_reboot_check_failure_raises(self, fake_connection):
        conn = fake_connection({'/var/run/reboot-required': Result(stderr='denied', exit_code=1)})
        with pytest.raises(CommandError):
            AptExecutor(conn).reboot_required()

    def test_reboot(self, fake_connection):
        conn = fake_connection()
        request = AptExecutor(conn).reboot()

        assert request.confirmed
        assert conn.commands == ['sudo reboot']
