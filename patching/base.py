"""
Query and Executor Base Classes
Caching, filtering, comparison and reboot handling shared by every ecosystem
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from connectors.base import (
    NO_EXIT_STATUS,
    CommandError,
    CommandNotAuthorizedError,
    ConnectionError,
    Result,
    describe_error,
)
from patching.comparison import Comparison, NamePattern, compare_keys

logger = logging.getLogger(__name__)


class BaseQuery:
    """
    Read-only state fetcher bound to one connection.

    The first successful ``fetch`` is cached on the instance; ``refresh=True``
    discards the cache. The connection is borrowed, never closed here.
    """

    kind = 'base'

    def __init__(self, connection):
        self.connection = connection
        self._records: Optional[List[Any]] = None

    def fetch(self, refresh: bool = False) -> List[Any]:
        if refresh or self._records is None:
            self._records = self._fetch()
        return self._records

    def matching(self, pattern: NamePattern) -> List[Any]:
        """Records whose identity matches a substring or compiled regex"""
        return [record for record in self.fetch() if record.matches(pattern)]

    def names(self) -> List[str]:
        """Identity keys of the fetched records"""
        return [key for key in (self.identity(record) for record in self.fetch()) if key is not None]

    def compare_with(self, other: 'BaseQuery') -> Comparison:
        """Partition this host's identity keys against another query's"""
        return compare_keys(self.names(), other.names())

    def summary(self) -> str:
        raise NotImplementedError

    def identity(self, record) -> Optional[str]:
        raise NotImplementedError

    def _fetch(self) -> List[Any]:
        raise NotImplementedError


@dataclass
class RebootRequest:
    """
    Outcome of a reboot request that reached the host.

    ``confirmed`` is False when the host dropped the transport before it
    answered. A request that was never dispatched raises instead, so
    ``rebooting`` holds for every instance.
    """
    command: str
    confirmed: bool
    detail: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {'rebooting': True, 'confirmed': self.confirmed, 'detail': self.detail}


class BaseExecutor:
    """Mutating operations bound to one connection; never reboots on its own"""

    kind = 'base'
    label = 'Remote'
    reboot_command = ''

    def __init__(self, connection):
        self.connection = connection

    def reboot_required(self) -> bool:
        raise NotImplementedError

    def reboot(self) -> RebootRequest:
        """
        Ask the host to restart.

        A host that restarts may drop the transport before it answers, or close
        the channel without an exit status; both are reported as an unconfirmed
        request. A command refused for lack of rights, or one that exits
        non-zero, is raised as CommandError.
        """
        try:
            result = self.connection.execute(self.reboot_command)
        except CommandNotAuthorizedError:
            raise
        except (CommandError, ConnectionError) as e:
            logger.info(f"Connection dropped during reboot request, assuming the host is restarting: {e}")
            return RebootRequest(command=self.reboot_command, confirmed=False, detail=describe_error(e))

        if result.exit_code == NO_EXIT_STATUS:
            logger.info("Channel closed without an exit status during reboot request, assuming the host is restarting")
            return RebootRequest(
                command=self.reboot_command,
                confirmed=False,
                detail='channel closed without an exit status',
            )

        self.validate_result(result, 'reboot')
        return RebootRequest(command=self.reboot_command, confirmed=True)

    def validate_result(self, result: Result, operation: str) -> None:
        if result.success:
            return
        raise CommandError(
            f"{self.label} {operation} failed (exit code {result.exit_code}): {result.stderr.strip()}"
        )
