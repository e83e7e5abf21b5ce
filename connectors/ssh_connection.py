"""
SSH Connection
Runs shell commands on remote Linux hosts, one channel per command
"""

from __future__ import annotations

import logging
import os
import select
import socket
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import paramiko

from connectors.base import (
    AuthenticationError,
    CommandError,
    Connection,
    ConnectionError,
    Result,
    describe_error,
)

logger = logging.getLogger(__name__)

RECV_BUFFER = 32768
POLL_INTERVAL = 0.5


@dataclass
class SSHConfig:
    """SSH connection configuration"""
    hostname: str
    username: str
    port: int = 22
    private_key_path: str = None
    private_key_passphrase: str = None
    password: str = None
    connect_timeout: int = 10

    @property
    def key_path(self) -> Optional[str]:
        if not self.private_key_path:
            return None
        return os.path.expanduser(self.private_key_path)


class SSHConnection(Connection):
    """
    Command execution over SSH.

    Authentication prefers the configured key file when it exists on disk and
    can be loaded, and falls back to the password otherwise. Only the connect
    phase is time-bounded; a command blocks until the remote side reports its
    exit status.
    """

    kind = 'ssh'

    def __init__(self, config: SSHConfig):
        self.config = config
        self.client = None

    @property
    def host(self) -> str:
        return self.config.hostname

    @property
    def connected(self) -> bool:
        if self.client is None:
            return False
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()

    def connect(self) -> 'SSHConnection':
        """Establish the SSH session, raising AuthenticationError or ConnectionError on failure"""
        if self.connected:
            return self

        connect_kwargs = self._connect_kwargs()
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationError(
                f"Authentication failed for {self.config.username}@{self.host}: {describe_error(e)}"
            ) from e
        except socket.gaierror as e:
            client.close()
            raise ConnectionError(f"DNS resolution failed for {self.host}: {describe_error(e)}") from e
        except (socket.timeout, TimeoutError) as e:
            client.close()
            raise ConnectionError(
                f"Connection to {self.host}:{self.config.port} timed out after {self.config.connect_timeout}s"
            ) from e
        except (OSError, paramiko.SSHException) as e:
            client.close()
            raise ConnectionError(f"Failed to connect to {self.host}:{self.config.port}: {describe_error(e)}") from e

        self.client = client
        logger.info(f"Connected to {self.host}")
        return self

    def execute(self, command: str) -> Result:
        """Run a command on a fresh channel and wait for its exit status"""
        if not self.connected:
            self.connect()

        try:
            channel = self.client.get_transport().open_session()
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise CommandError(f"Could not open a channel on {self.host}: {describe_error(e)}") from e

        try:
            channel.exec_command(command)
            stdout, stderr = self._drain(channel)
            exit_code = channel.recv_exit_status()
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise CommandError(f"Command execution failed on {self.host}: {describe_error(e)}") from e
        finally:
            channel.close()

        return Result(
            stdout=b''.join(stdout).decode('utf-8', errors='ignore'),
            stderr=b''.join(stderr).decode('utf-8', errors='ignore'),
            exit_code=exit_code,
        )

    def close(self) -> None:
        """Close the SSH session; safe to call more than once"""
        client = self.client
        self.client = None
        if client is not None:
            client.close()
            logger.info(f"Disconnected from {self.host}")

    def _drain(self, channel):
        """Collect stdout/stderr chunks until the exit status arrives and both streams are empty"""
        stdout: List[bytes] = []
        stderr: List[bytes] = []

        while True:
            received = False
            if channel.recv_ready():
                stdout.append(channel.recv(RECV_BUFFER))
                received = True
            if channel.recv_stderr_ready():
                stderr.append(channel.recv_stderr(RECV_BUFFER))
                received = True
            if received:
                continue
            if channel.exit_status_ready():
                break
            select.select([channel], [], [], POLL_INTERVAL)

        return stdout, stderr

    def _connect_kwargs(self) -> Dict[str, Any]:
        kwargs = {
            'hostname': self.host,
            'port': self.config.port,
            'username': self.config.username,
            'timeout': self.config.connect_timeout,
            'banner_timeout': self.config.connect_timeout,
            'auth_timeout': self.config.connect_timeout,
            'allow_agent': False,
            'look_for_keys': False,
        }

        private_key = self._usable_private_key()
        if private_key is not None:
            kwargs['pkey'] = private_key
        elif self.config.password:
            kwargs['password'] = self.config.password

        return kwargs

    def _usable_private_key(self):
        key_path = self.config.key_path
        if not key_path or not os.path.exists(key_path):
            return None

        try:
            return self._load_private_key(key_path)
        except (paramiko.SSHException, OSError) as e:
            if self.config.password:
                logger.warning(f"Could not load private key {key_path}, falling back to password: {e}")
                return None
            raise AuthenticationError(f"Could not load private key {key_path}: {describe_error(e)}") from e

    def _load_private_key(self, key_path: str):
        """Load private key, trying different formats"""
        passphrase = self.config.private_key_passphrase

        for key_class in (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey):
            try:
                return key_class.from_private_key_file(key_path, password=passphrase)
            except paramiko.SSHException:
                continue

        raise paramiko.SSHException(f"Could not load private key from {key_path}")
