"""Patch state queries and executors package"""
from connectors.base import PatchPilotError

from .apt_executor import AptExecutor
from .apt_query import AptQuery
from .comparison import Comparison, compare_keys, normalize_kb
from .dnf_executor import DnfExecutor
from .dnf_query import DnfQuery
from .package_executor import PackageExecutor, UpgradeResult
from .package_query import Package, PackageQuery
from .windows_executor import WindowsUpdateExecutor
from .windows_query import WindowsUpdateQuery

QUERIES = {
    'windows': WindowsUpdateQuery,
    'apt': AptQuery,
    'dnf': DnfQuery,
}

EXECUTORS = {
    'windows': WindowsUpdateExecutor,
    'apt': AptExecutor,
    'dnf': DnfExecutor,
}


class UnsupportedPackageManagerError(PatchPilotError):
    """No query or executor exists for the requested ecosystem"""


def _lookup(registry, kind):
    key = str(kind or '').lower()
    if key not in registry:
        raise UnsupportedPackageManagerError(f"Unknown package manager: {kind}")
    return registry[key]


def query_for(connection, kind: str):
    """Query for ``windows``, ``apt`` or ``dnf``"""
    return _lookup(QUERIES, kind)(connection)


def executor_for(connection, kind: str):
    """Executor for ``windows``, ``apt`` or ``dnf``"""
    return _lookup(EXECUTORS, kind)(connection)


__all__ = [
    'AptExecutor',
    'AptQuery',
    'Comparison',
    'DnfExecutor',
    'DnfQuery',
    'Package',
    'PackageExecutor',
    'PackageQuery',
    'UnsupportedPackageManagerError',
    'UpgradeResult',
    'WindowsUpdateExecutor',
    'WindowsUpdateQuery',
    'compare_keys',
    'executor_for',
    'normalize_kb',
    'query_for',
]
