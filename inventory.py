"""
Inventory
Managed assets and their credential references, loaded from a JSON file
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from connectors.base import Connection, PatchPilotError, connection_for

logger = logging.getLogger(__name__)

DEFAULT_INVENTORY_PATH = Path(__file__).parent / 'config' / 'inventory.json'
ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')


class InventoryError(PatchPilotError):
    """Inventory file missing or invalid, or a credential cannot be resolved"""


def load_dotenv(env_file: Path = None) -> None:
    """Load environment variables from .env file without overriding existing ones"""
    env_file = env_file or Path(__file__).parent / '.env'
    if env_file.exists():
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def default_inventory_path() -> Path:
    return Path(os.getenv('PATCHPILOT_INVENTORY', str(DEFAULT_INVENTORY_PATH)))


class CredentialResolver:
    """Expands ``${VAR}`` placeholders in credential values from the environment"""

    def __init__(self, environ=None):
        self.environ = os.environ if environ is None else environ

    def resolve(self, credentials: Any) -> Any:
        if isinstance(credentials, dict):
            return {key: self.resolve(value) for key, value in credentials.items()}
        if isinstance(credentials, list):
            return [self.resolve(value) for value in credentials]
        if isinstance(credentials, str):
            return ENV_VAR_PATTERN.sub(self._expand, credentials)
        return credentials

    def _expand(self, match) -> str:
        name = match.group(1)
        value = self.environ.get(name)
        if value is None:
            raise InventoryError(f"Environment variable not set: {name}")
        return value


@dataclass
class Asset:
    """A managed server, endpoint or workstation"""
    hostname: str
    ip: str
    os: str
    os_version: Optional[str] = None
    role: Optional[str] = None
    credential_ref: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    deep_freeze: bool = False
    docker: bool = False
    package_manager: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Asset':
        try:
            return cls(
                hostname=data['hostname'],
                ip=data['ip'],
                os=data['os'],
                os_version=data.get('os_version'),
                role=data.get('role'),
                credential_ref=data.get('credential_ref'),
                tags=list(data.get('tags') or []),
                deep_freeze=bool(data.get('deep_freeze', False)),
                docker=bool(data.get('docker', False)),
                package_manager=data.get('package_manager'),
            )
        except KeyError as e:
            raise InventoryError(f"Asset entry missing required field {e}: {data}") from e

    @property
    def is_windows(self) -> bool:
        return self.os.lower().startswith('windows')

    @property
    def is_linux(self) -> bool:
        return self.os.lower() == 'linux'

    @property
    def ecosystem(self) -> Optional[str]:
        """Query/executor discriminator: windows, apt or dnf"""
        if self.is_windows:
            return 'windows'
        if self.is_linux:
            return (self.package_manager or 'apt').lower()
        return None

    def tagged(self, tag: str) -> bool:
        return tag in self.tags

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.hostname,
            'ip': self.ip,
            'os': self.os,
            'os_version': self.os_version,
            'role': self.role,
            'credential_id': self.credential_ref,
            'deep_freeze': self.deep_freeze,
            'package_manager': self.package_manager,
            'tags': list(self.tags),
        }

    def __str__(self):
        return f"{self.hostname} ({self.ip}) - {self.os}"


class Inventory:
    """Assets plus named credential sets"""

    def __init__(self, data: Dict[str, Any], resolver: CredentialResolver = None):
        self.credentials: Dict[str, Dict[str, Any]] = data.get('credentials') or {}
        self.assets: List[Asset] = [Asset.from_dict(entry) for entry in data.get('assets') or []]
        self.resolver = resolver or CredentialResolver()

    @classmethod
    def load(cls, path=None) -> 'Inventory':
        path = Path(path) if path else default_inventory_path()
        if not path.exists():
            raise InventoryError(f"Inventory file not found: {path}")

        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InventoryError(f"Invalid JSON in inventory file {path}: {e}") from e

        inventory = cls(data)
        logger.info(f"Loaded {inventory.count} assets from {path}")
        return inventory

    @property
    def count(self) -> int:
        return len(self.assets)

    def __iter__(self) -> Iterator[Asset]:
        return iter(self.assets)

    def find(self, hostname: str) -> Optional[Asset]:
        return next((a for a in self.assets if a.hostname == hostname), None)

    def windows(self) -> List[Asset]:
        return [a for a in self.assets if a.is_windows]

    def linux(self) -> List[Asset]:
        return [a for a in self.assets if a.is_linux]

    def deep_freeze_enabled(self) -> List[Asset]:
        return [a for a in self.assets if a.deep_freeze]

    def control_endpoints(self) -> List[Asset]:
        """Unprotected Windows endpoints, the baseline for protected ones"""
        return [a for a in self.windows() if not a.deep_freeze and a.role == 'endpoint']

    def docker_hosts(self) -> List[Asset]:
        return [a for a in self.assets if a.docker]

    def by_tag(self, tag: str) -> List[Asset]:
        return [a for a in self.assets if a.tagged(tag)]

    def by_role(self, role: str) -> List[Asset]:
        return [a for a in self.assets if a.role == role]

    def credential(self, ref: str) -> Optional[Dict[str, Any]]:
        """Credential set with environment placeholders expanded"""
        credentials = self.credentials.get(ref)
        if credentials is None:
            return None
        return self.resolver.resolve(credentials)

    def connection_for(self, asset: Asset) -> Connection:
        """Unconnected transport for an asset using its referenced credentials"""
        if not asset.credential_ref:
            raise InventoryError(f"No credential_ref set for asset {asset.hostname}")
        credentials = self.credential(asset.credential_ref)
        if credentials is None:
            raise InventoryError(f"Credential not found: {asset.credential_ref}")
        return connection_for(asset, credentials)

    def summary(self) -> str:
        return '\n'.join([
            'Inventory Summary:',
            f"  Total assets: {self.count}",
            f"  Windows: {len(self.windows())}",
            f"  Linux: {len(self.linux())}",
            f"  Deep Freeze enabled: {len(self.deep_freeze_enabled())}",
            f"  Control endpoints: {len(self.control_endpoints())}",
            f"  Docker hosts: {len(self.docker_hosts())}",
        ])
