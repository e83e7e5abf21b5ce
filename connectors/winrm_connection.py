"""
WinRM Connection
Runs PowerShell on remote Windows hosts over a persistent WinRM shell
"""

from __future__ import annotations

import base64
import logging
import re
import socket
import threading
from dataclasses import dataclass
from typing import Optional

import requests
import urllib3
import winrm
from winrm.exceptions import WinRMError, WinRMOperationTimeoutError, WinRMTransportError

from connectors.base import (
    AuthenticationError,
    CommandError,
    CommandNotAuthorizedError,
    Connection,
    ConnectionError,
    Result,
    describe_error,
)

logger = logging.getLogger(__name__)

CLIXML_PREFIX = '#< CLIXML'
CLIXML_ERROR_RE = re.compile(r'<S S="Error">(.*?)</S>', re.DOTALL)

TRANSPORT_ERRORS = (WinRMError, WinRMTransportError, WinRMOperationTimeoutError, requests.exceptions.RequestException)


@dataclass
class WinRMConfig:
    """WinRM connection configuration"""
    hostname: str
    username: str
    password: str
    domain: Optional[str] = None
    port: int = 5985
    use_ssl: bool = False
    transport: str = 'ntlm'  # ntlm negotiates NTLM/Kerberos via SPNEGO
    connect_timeout: int = 10
    operation_timeout: int = 60
    read_timeout: Optional[int] = None

    def __post_init__(self):
        if self.read_timeout is None:
            self.read_timeout = self.operation_timeout + 10
        if self.operation_timeout < 1 or self.read_timeout <= self.operation_timeout:
            # the client would drop the socket before the server reports its own timeout
            raise ValueError(
                f"read_timeout ({self.read_timeout}s) must exceed "
                f"operation_timeout ({self.operation_timeout}s)"
            )

    @property
    def endpoint(self) -> str:
        scheme = 'https' if self.use_ssl else 'http'
        return f"{scheme}://{self.hostname}:{self.port}/wsman"

    @property
    def full_username(self) -> str:
        return f"{self.domain}\\{self.username}" if self.domain else self.username


class WinRMConnection(Connection):
    """
    PowerShell execution over a single persistent WinRM shell.

    ``connect`` probes the TCP port first, then opens the shell on a watchdog
    thread bounded by ``connect_timeout``. The WinRM handshake can stall far
    longer than the client's own timeouts suggest; when the watchdog expires
    the worker is abandoned (it cannot be interrupted) and ConnectionError is
    raised. Every ``execute`` reuses the shell opened by ``connect``.
    """

    kind = 'winrm'

    def __init__(self, config: WinRMConfig):
        self.config = config
        self.protocol = None
        self.shell_id = None

    @property
    def host(self) -> str:
        return self.config.hostname

    @property
    def connected(self) -> bool:
        return self.shell_id is not None

    def connect(self) -> 'WinRMConnection':
        """Open the remote shell, raising AuthenticationError or ConnectionError on failure"""
        if self.connected:
            return self

        self._verify_port_reachable()

        try:
            self.protocol, self.shell_id = self._open_shell_with_watchdog()
        except (AuthenticationError, ConnectionError):
            raise
        except winrm.exceptions.AuthenticationError as e:
            raise AuthenticationError(f"Authentication failed for {self._user_at_host()}: {describe_error(e)}") from e
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise ConnectionError(f"Failed to connect to {self.host}:{self.config.port}: {describe_error(e)}") from e
        except Exception as e:
            raise ConnectionError(f"Connection error for {self.host}: {describe_error(e)}") from e

        logger.info(f"Connected to {self.host} via WinRM")
        return self

    def execute(self, command: str) -> Result:
        """Run a PowerShell command or script in the persistent shell"""
        if not self.connected:
            self.connect()

        encoded = base64.b64encode(command.encode('utf-16-le')).decode('ascii')
        try:
            command_id = self.protocol.run_command(
                self.shell_id,
                'powershell',
                ['-NoProfile', '-NonInteractive', '-EncodedCommand', encoded],
            )
            try:
                stdout, stderr, status_code = self.protocol.get_command_output(self.shell_id, command_id)
            finally:
                self.protocol.cleanup_command(self.shell_id, command_id)
        except winrm.exceptions.AuthenticationError as e:
            raise CommandNotAuthorizedError(self._authorization_help(e)) from e
        except TRANSPORT_ERRORS as e:
            raise CommandError(f"Command execution failed on {self.host}: {describe_error(e)}") from e

        return Result(
            stdout=_decode(stdout),
            stderr=clean_clixml(_decode(stderr)),
            exit_code=status_code,
        )

    def close(self) -> None:
        """Close the remote shell; safe to call more than once"""
        shell_id, protocol = self.shell_id, self.protocol
        self.shell_id = None
        self.protocol = None
        if shell_id is None or protocol is None:
            return

        try:
            protocol.close_shell(shell_id)
            logger.info(f"Disconnected from {self.host}")
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Ignoring error while closing WinRM shell on {self.host}: {e}")

    def _verify_port_reachable(self) -> None:
        """Fail fast with a clear message before starting the slow WinRM handshake"""
        address = (self.host, self.config.port)
        timeout = self.config.connect_timeout
        try:
            sock = socket.create_connection(address, timeout=timeout)
        except socket.gaierror as e:
            raise ConnectionError(f"DNS resolution failed for {self.host}: {describe_error(e)}") from e
        except ConnectionRefusedError as e:
            raise ConnectionError(
                f"Connection refused at {self.host}:{self.config.port} - WinRM may not be enabled. "
                f"Run: winrm quickconfig"
            ) from e
        except socket.timeout as e:
            raise ConnectionError(
                f"Cannot reach {self.host}:{self.config.port} (timed out after {timeout}s)"
            ) from e
        except OSError as e:
            raise ConnectionError(f"Cannot reach {self.host}:{self.config.port}: {describe_error(e)}") from e
        sock.close()

    def _open_shell_with_watchdog(self):
        outcome = {}
        abandoned = threading.Event()

        def worker():
            try:
                protocol = self._build_protocol()
                shell_id = protocol.open_shell(codepage=65001)
            except BaseException as e:
                outcome['error'] = e
                return
            if abandoned.is_set():
                # nobody is waiting for this shell any more
                try:
                    protocol.close_shell(shell_id)
                except TRANSPORT_ERRORS as e:
                    logger.debug(f"Failed to close abandoned WinRM shell on {self.host}: {e}")
                return
            outcome['shell'] = (protocol, shell_id)

        thread = threading.Thread(target=worker, name=f"winrm-connect-{self.host}", daemon=True)
        thread.start()
        thread.join(self.config.connect_timeout)

        if thread.is_alive():
            abandoned.set()
            logger.warning(f"Abandoning WinRM handshake worker for {self.host}")
            raise ConnectionError(
                f"WinRM negotiate timed out for {self.host}:{self.config.port} "
                f"after {self.config.connect_timeout}s"
            )
        if 'error' in outcome:
            raise outcome['error']
        return outcome['shell']

    def _build_protocol(self):
        cert_validation = 'validate'
        if self.config.use_ssl:
            cert_validation = 'ignore'
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        return winrm.protocol.Protocol(
            endpoint=self.config.endpoint,
            transport=self.config.transport,
            username=self.config.full_username,
            password=self.config.password,
            server_cert_validation=cert_validation,
            operation_timeout_sec=self.config.operation_timeout,
            read_timeout_sec=self.config.read_timeout,
        )

    def _user_at_host(self) -> str:
        return f"{self.config.full_username}@{self.host}"

    def _authorization_help(self, error: Exception) -> str:
        user = self.config.full_username
        return (
            f"WinRM authorization failed for {self._user_at_host()}: {describe_error(error)}\n\n"
            f"The user can connect but doesn't have permission to execute PowerShell commands.\n"
            f"To fix this, run these commands on {self.host} as Administrator:\n\n"
            f"1. Add user to Remote Management Users group:\n"
            f"   net localgroup \"Remote Management Users\" \"{user}\" /add\n\n"
            f"2. Grant PowerShell remoting permissions:\n"
            f"   Set-PSSessionConfiguration -Name Microsoft.PowerShell -ShowSecurityDescriptorUI\n\n"
            f"3. Or, if domain user needs admin rights:\n"
            f"   net localgroup \"Administrators\" \"{user}\" /add\n"
        )


def _decode(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='ignore')
    return value


def clean_clixml(stderr: str) -> str:
    """Reduce PowerShell's CLIXML error stream to the plain error text"""
    if not stderr.startswith(CLIXML_PREFIX):
        return stderr

    lines = [m.replace('_x000D__x000A_', '\n') for m in CLIXML_ERROR_RE.findall(stderr)]
    return ''.join(lines).strip()
