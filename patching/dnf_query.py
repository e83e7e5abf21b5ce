"""
DNF Package Query
Installed packages and upgrade candidates from dnf's name.arch listings
"""

import logging
from typing import Iterable, List, Optional, Tuple

from patching.package_query import INSTALLED, UPGRADABLE, Package, PackageQuery

logger = logging.getLogger(__name__)


def split_name_arch(name_arch: str) -> Optional[Tuple[str, str]]:
    """Split on the last dot, since package names may contain dots themselves"""
    name, dot, arch = name_arch.rpartition('.')
    if not dot or not name or not arch:
        return None
    return name, arch


def iter_rows(output: str) -> Iterable[List[str]]:
    """
    Whitespace-split rows, rejoining entries dnf wraps across two lines.

    A name.arch too wide for its column is printed alone and the version and
    repository follow on the next line.
    """
    pending = None
    for line in output.splitlines():
        parts = line.split()
        if not parts:
            continue
        if pending is not None:
            parts = [pending] + parts
            pending = None
        if len(parts) == 1:
            if split_name_arch(parts[0]) is not None:
                pending = parts[0]
            continue
        yield parts


def parse_dnf_listing(output: str, status: str) -> List[Package]:
    packages = []
    for parts in iter_rows(output):
        split = split_name_arch(parts[0])
        if split is None:
            logger.debug(f"Skipping malformed dnf line: {' '.join(parts)}")
            continue
        name, arch = split
        packages.append(Package(name=name, version=parts[1], architecture=arch, status=status))
    return packages


class DnfQuery(PackageQuery):
    """Package state on Fedora/RHEL-family hosts"""

    kind = 'dnf'
    installed_command = 'dnf list installed --quiet 2>/dev/null | tail -n +2'
    # check-update exits 100 when updates exist
    upgradable_command = 'dnf check-update --quiet 2>/dev/null || true'

    def parse_installed(self, output: str) -> List[Package]:
        return parse_dnf_listing(output, INSTALLED)

    def parse_upgradable(self, output: str) -> List[Package]:
        return parse_dnf_listing(output, UPGRADABLE)
