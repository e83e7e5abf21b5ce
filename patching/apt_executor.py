"""
APT Package Executor
Non-interactive apt-get upgrades on Debian-family hosts
"""

import re
from typing import List

from patching.package_executor import PackageExecutor

UPGRADED_COUNT_RE = re.compile(r'(\d+)\s+upgraded')
APT3_COUNT_RE = re.compile(r'^[ \t]*Upgrading:[ \t]*(\d+)', re.MULTILINE)
UPGRADE_BLOCK_RE = re.compile(r'The following packages will be upgraded:\s*\n(.*?)(?:\n\S|\Z)', re.DOTALL)
APT3_BLOCK_RE = re.compile(r'^Upgrading:[ \t]*\n((?:[ \t]+\S.*(?:\n|$))+)', re.MULTILINE)


def parse_upgraded_count(output: str):
    """Count from the ``N upgraded, ...`` summary, or apt 3's ``Upgrading: N``; None if absent"""
    match = UPGRADED_COUNT_RE.search(output) or APT3_COUNT_RE.search(output)
    return int(match.group(1)) if match else None


def parse_upgraded_packages(output: str) -> List[str]:
    match = UPGRADE_BLOCK_RE.search(output) or APT3_BLOCK_RE.search(output)
    if not match:
        return []
    return match.group(1).split()


class AptExecutor(PackageExecutor):
    """Package upgrades on Debian-family hosts"""

    kind = 'apt'
    label = 'APT'
    upgrade_all_command = 'sudo DEBIAN_FRONTEND=noninteractive apt-get upgrade -y 2>&1'
    upgrade_packages_template = 'sudo DEBIAN_FRONTEND=noninteractive apt-get install -y --only-upgrade {names} 2>&1'
    reboot_check_command = 'test -f /var/run/reboot-required && echo true || echo false'

    def parse_upgraded_packages(self, output: str) -> List[str]:
        return parse_upgraded_packages(output)

    def parse_upgraded_count(self, output: str, packages: List[str]) -> int:
        count = parse_upgraded_count(output)
        return len(packages) if count is None else count
