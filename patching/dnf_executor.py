"""
DNF Package Executor
Non-interactive dnf upgrades on Fedora/RHEL-family hosts
"""

from typing import List

from patching.package_executor import PackageExecutor

ARCHITECTURES = {
    'x86_64', 'noarch', 'i686', 'i386', 'aarch64', 'armv7hl',
    'ppc64le', 'ppc64', 's390x', 'riscv64', 'src',
}

SECTION_ENDS = ('Installing', 'Removing', 'Downgrading', 'Reinstalling', 'Transaction Summary', 'Skipping')


def strip_arch(name_arch: str) -> str:
    """Drop a trailing ``.arch``; dotted names without an architecture stay whole"""
    name, dot, arch = name_arch.rpartition('.')
    if dot and name and arch in ARCHITECTURES:
        return name
    return name_arch


def parse_upgraded_packages(output: str) -> List[str]:
    """Package names from the ``Upgrading:`` table, up to a blank line or the next section"""
    packages = []
    in_upgrading = False

    for line in output.splitlines():
        stripped = line.strip()
        if not in_upgrading:
            if stripped.startswith('Upgrading:'):
                in_upgrading = True
            continue

        if not stripped or stripped.startswith(SECTION_ENDS) or stripped.endswith(':'):
            break

        packages.append(strip_arch(stripped.split()[0]))

    return packages


class DnfExecutor(PackageExecutor):
    """Package upgrades on Fedora/RHEL-family hosts"""

    kind = 'dnf'
    label = 'DNF'
    upgrade_all_command = 'dnf upgrade -y 2>&1'
    upgrade_packages_template = 'dnf upgrade -y {names} 2>&1'
    # needs-restarting -r exits 1 when a reboot is needed; a missing tool means no reboot
    reboot_check_command = (
        'if command -v needs-restarting > /dev/null 2>&1; then '
        'needs-restarting -r > /dev/null 2>&1 && echo false || echo true; '
        'else echo false; fi'
    )

    def parse_upgraded_packages(self, output: str) -> List[str]:
        return parse_upgraded_packages(output)
