"""
APT Package Query
Installed packages from dpkg-query, upgrade candidates from apt list
"""

import re
from typing import List, Optional

from patching.package_query import INSTALLED, UPGRADABLE, Package, PackageQuery

# name/repo version arch [upgradable from: ...]
UPGRADABLE_LINE_RE = re.compile(r'^([^/\s]+)/\S+\s+(\S+)\s+(\S+)')


def parse_dpkg_line(line: str) -> Optional[Package]:
    parts = line.strip().split('\t')
    if len(parts) < 4:
        return None
    status_tokens = parts[3].split()
    if not status_tokens or status_tokens[-1] != 'installed':
        return None
    return Package(name=parts[0], version=parts[1], architecture=parts[2], status=INSTALLED)


def parse_upgradable_line(line: str) -> Optional[Package]:
    match = UPGRADABLE_LINE_RE.match(line.strip())
    if not match:
        return None
    return Package(name=match.group(1), version=match.group(2), architecture=match.group(3), status=UPGRADABLE)


class AptQuery(PackageQuery):
    """Package state on Debian-family hosts"""

    kind = 'apt'
    installed_command = "dpkg-query -W -f='${Package}\\t${Version}\\t${Architecture}\\t${Status}\\n'"
    upgradable_command = 'apt list --upgradable 2>/dev/null | tail -n +2'

    def parse_installed(self, output: str) -> List[Package]:
        return [pkg for pkg in (parse_dpkg_line(line) for line in output.splitlines()) if pkg]

    def parse_upgradable(self, output: str) -> List[Package]:
        return [pkg for pkg in (parse_upgradable_line(line) for line in output.splitlines()) if pkg]
