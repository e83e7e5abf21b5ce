"""
Linux Package Executor Base
Upgrade result shape and the upgrade/reboot flow shared by APT and DNF
"""

import logging
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from connectors.base import Result
from patching.base import BaseExecutor

logger = logging.getLogger(__name__)


@dataclass
class UpgradeResult:
    """Outcome of a package upgrade batch"""
    success: bool
    upgraded_count: int = 0
    upgraded_package_names: List[str] = field(default_factory=list)
    stdout: str = ''
    stderr: str = ''

    @property
    def succeeded(self) -> bool:
        return self.success is True

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'succeeded': self.succeeded,
            'upgraded_count': self.upgraded_count,
            'upgraded_packages': list(self.upgraded_package_names),
        }
        if not self.succeeded and self.stderr:
            data['error'] = self.stderr
        return data


class PackageExecutor(BaseExecutor):
    """
    Package upgrades on one Linux host.

    A non-zero exit from the package manager is returned as an UpgradeResult
    with ``success`` False rather than raised; only transport failures raise.
    """

    upgrade_all_command = ''
    upgrade_packages_template = ''
    reboot_check_command = ''
    reboot_command = 'sudo reboot'

    def upgrade_all(self) -> UpgradeResult:
        logger.info(f"Upgrading all packages via {self.kind}")
        return self._run_upgrade(self.upgrade_all_command)

    def upgrade(self, names: Iterable[str]) -> UpgradeResult:
        """Upgrade only the named packages (already-installed ones only)"""
        names = [name.strip() for name in (names or []) if name and name.strip()]
        if not names:
            raise ValueError("At least one package name is required")

        quoted = ' '.join(shlex.quote(name) for name in names)
        logger.info(f"Upgrading {len(names)} packages via {self.kind}: {', '.join(names)}")
        return self._run_upgrade(self.upgrade_packages_template.format(names=quoted))

    def reboot_required(self) -> bool:
        result = self.connection.execute(self.reboot_check_command)
        self.validate_result(result, 'reboot check')
        return result.stdout.strip().lower() == 'true'

    def parse_upgraded_packages(self, output: str) -> List[str]:
        raise NotImplementedError

    def parse_upgraded_count(self, output: str, packages: List[str]) -> int:
        return len(packages)

    def parse_upgrade_result(self, result: Result) -> UpgradeResult:
        stdout = result.stdout or ''
        stderr = result.stderr or ''
        packages = self.parse_upgraded_packages(stdout)

        if not result.success:
            logger.error(f"{self.kind} upgrade exited with {result.exit_code}")

        return UpgradeResult(
            success=result.success,
            upgraded_count=self.parse_upgraded_count(stdout, packages),
            upgraded_package_names=packages,
            stdout=stdout,
            stderr=stderr,
        )

    def _run_upgrade(self, command: str) -> UpgradeResult:
        return self.parse_upgrade_result(self.connection.execute(command))
