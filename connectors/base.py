"""
Connection Contract
Shared result type, error hierarchy and factory for remote transports
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Exit code reported when the channel closed before an exit status arrived
NO_EXIT_STATUS = -1


class PatchPilotError(Exception):
    """Base error for everything raised by this project"""


class AuthenticationError(PatchPilotError):
    """Credentials were rejected (bad password, expired account, unusable key)"""


class ConnectionError(PatchPilotError):
    """Host unreachable, connection refused, DNS failure or handshake timeout"""


class CommandError(PatchPilotError):
    """The transport could not dispatch or complete a command, or its output carried an error payload"""


class CommandNotAuthorizedError(CommandError):
    """The user may log on but is not allowed to run the command"""


class UnsupportedAssetError(PatchPilotError):
    """No transport exists for the asset's operating system"""


@dataclass(frozen=True)
class Result:
    """Output of one remote command"""
    stdout: str = ''
    stderr: str = ''
    exit_code: int = 0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class Connection:
    """
    Common interface for remote transports.

    Subclasses implement connect/execute/close and the ``connected`` property.
    ``execute`` connects on demand; ``close`` is safe to call repeatedly,
    including on a connection that never connected.
    """

    kind = 'base'

    def connect(self) -> 'Connection':
        raise NotImplementedError

    def execute(self, command: str) -> Result:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    @property
    def connected(self) -> bool:
        raise NotImplementedError

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def connection_for(asset, credentials: Dict[str, Any]) -> Connection:
    """
    Build the transport matching an asset's operating system.

    Windows hosts get a WinRM connection, Linux hosts an SSH connection.
    The connection is returned unconnected; the caller owns closing it.
    """
    os_kind = (asset.os or '').lower()

    if os_kind.startswith('windows'):
        from connectors.winrm_connection import WinRMConfig, WinRMConnection
        config = WinRMConfig(
            hostname=asset.ip,
            username=credentials.get('username', ''),
            password=credentials.get('password', ''),
            domain=credentials.get('domain'),
        )
        return WinRMConnection(config)

    if os_kind == 'linux':
        from connectors.ssh_connection import SSHConfig, SSHConnection
        config = SSHConfig(
            hostname=asset.ip,
            username=credentials.get('username', ''),
            private_key_path=credentials.get('key_file'),
            password=credentials.get('password'),
        )
        return SSHConnection(config)

    raise UnsupportedAssetError(f"Unsupported OS type: {asset.os}")


def describe_error(error: Optional[BaseException]) -> str:
    """Short one-line description of an exception for log and error messages"""
    if error is None:
        return 'unknown error'
    message = str(error).strip()
    return message or error.__class__.__name__
