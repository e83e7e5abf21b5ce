"""
Linux Package Query Base
Package record and the cached installed/upgradable listings shared by APT and DNF
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from patching.base import BaseQuery
from patching.comparison import NamePattern, matches

logger = logging.getLogger(__name__)

INSTALLED = 'installed'
UPGRADABLE = 'upgradable'
PACKAGE_STATUSES = (INSTALLED, UPGRADABLE)


@dataclass
class Package:
    """A Linux package; status is either installed or upgradable"""
    name: str
    version: str
    architecture: Optional[str]
    status: str = INSTALLED

    def __post_init__(self):
        if self.status not in PACKAGE_STATUSES:
            raise ValueError(f"Invalid package status: {self.status}")

    @property
    def is_upgradable(self) -> bool:
        return self.status == UPGRADABLE

    def matches(self, pattern: NamePattern) -> bool:
        return matches(self.name, pattern)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'version': self.version,
            'architecture': self.architecture,
            'status': self.status,
        }


class PackageQuery(BaseQuery):
    """
    Installed and upgradable packages on one Linux host.

    Subclasses provide the listing commands and line parsers; ``fetch``
    returns the installed set and ``upgradable`` the upgrade candidates.
    """

    installed_command = ''
    upgradable_command = ''

    def __init__(self, connection):
        super().__init__(connection)
        self._upgradable: Optional[List[Package]] = None

    def identity(self, record: Package) -> Optional[str]:
        return record.name

    def installed_packages(self, refresh: bool = False) -> List[Package]:
        return self.fetch(refresh=refresh)

    def upgradable(self, refresh: bool = False) -> List[Package]:
        if refresh or self._upgradable is None:
            result = self.connection.execute(self.upgradable_command)
            self._upgradable = self._parse_lines(result.stdout, self.parse_upgradable)
        return self._upgradable

    def summary(self) -> str:
        return '\n'.join([
            f"Installed packages: {len(self.fetch())}",
            f"Upgradable packages: {len(self.upgradable())}",
        ])

    def parse_installed(self, output: str) -> List[Package]:
        raise NotImplementedError

    def parse_upgradable(self, output: str) -> List[Package]:
        raise NotImplementedError

    def _fetch(self) -> List[Package]:
        result = self.connection.execute(self.installed_command)
        if not result.success:
            logger.warning(f"{self.kind} installed listing exited with {result.exit_code}: {result.stderr.strip()}")
        return self._parse_lines(result.stdout, self.parse_installed)

    @staticmethod
    def _parse_lines(output: Optional[str], parser) -> List[Package]:
        if not output or not output.strip():
            return []
        return parser(output)
