"""
Windows Update Executor
Search, download and install Windows updates through the Update Agent COM API

EULAs are accepted automatically since nobody is present to accept them.
Reboots are never triggered as a side effect; call ``reboot`` explicitly.
"""

import logging
from typing import Iterable, List, Optional

from connectors.base import CommandError
from patching.base import BaseExecutor
from patching.comparison import normalize_kb
from patching.windows_models import (
    AvailableUpdate,
    InstallationResult,
    RebootSignals,
    UpdateActionResult,
    result_text_for,
)
from patching.windows_query import as_list, load_json_output
from patching.windows_scripts import (
    DOWNLOAD,
    INSTALL,
    RESTART_COMMAND,
    action_script,
    reboot_check_script,
    search_script,
)

logger = logging.getLogger(__name__)


def _as_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_available_updates(stdout: Optional[str]) -> List[AvailableUpdate]:
    updates = []
    for entry in as_list(load_json_output(stdout, 'update search')):
        categories = entry.get('Categories') or ''
        updates.append(AvailableUpdate(
            kb_id=normalize_kb(entry.get('KBArticleIDs')),
            title=entry.get('Title') or '',
            size_bytes=_as_int(entry.get('SizeBytes')),
            severity=entry.get('Severity'),
            is_downloaded=entry.get('IsDownloaded') is True,
            categories=[c for c in categories.split(';') if c],
        ))
    return updates


def parse_installation_result(stdout: Optional[str], operation: str) -> InstallationResult:
    """Aggregate and per-update result codes from a download or install run"""
    data = load_json_output(stdout, operation)
    if not isinstance(data, dict):
        raise CommandError(f"Windows Update {operation} returned no readable result")

    items = []
    for entry in as_list(data.get('Updates')):
        code = _as_int(entry.get('ResultCode'), 0)
        items.append(UpdateActionResult(
            kb_id=normalize_kb(entry.get('KBArticleIDs')),
            title=entry.get('Title') or '',
            result_code=code,
            result_text=result_text_for(code),
        ))

    code = _as_int(data.get('ResultCode'), 0)
    return InstallationResult(
        result_code=code,
        result_text=result_text_for(code),
        reboot_required=data.get('RebootRequired') is True,
        update_count=_as_int(data.get('UpdateCount'), len(items)),
        items=items,
    )


def parse_reboot_signals(stdout: Optional[str]) -> RebootSignals:
    data = load_json_output(stdout, 'reboot check')
    if not isinstance(data, dict):
        return RebootSignals()
    return RebootSignals(
        component_servicing=data.get('ComponentBasedServicing') is True,
        windows_update=data.get('WindowsUpdate') is True,
        pending_file_rename=data.get('PendingFileRename') is True,
    )


class WindowsUpdateExecutor(BaseExecutor):
    """
    Windows Update actions on one host.

    Example::

        executor = WindowsUpdateExecutor(connection)
        result = executor.install(['KB5073379'])
        if result.reboot_required:
            executor.reboot()
    """

    kind = 'windows'
    label = 'Windows Update'
    reboot_command = RESTART_COMMAND

    def __init__(self, connection):
        super().__init__(connection)
        self._available: Optional[List[AvailableUpdate]] = None

    def available(self, refresh: bool = False) -> List[AvailableUpdate]:
        """Updates not yet installed (``IsInstalled=0``), cached after the first search"""
        if refresh or self._available is None:
            result = self.connection.execute(search_script())
            self.validate_result(result, 'update search')
            self._available = parse_available_updates(result.stdout)
        return self._available

    def download(self, kb_ids: Optional[Iterable[str]] = None) -> InstallationResult:
        """Download updates without installing; None or empty means all available"""
        return self._run_action(DOWNLOAD, kb_ids)

    def install(self, kb_ids: Optional[Iterable[str]] = None) -> InstallationResult:
        """Download then install updates; None or empty means all available"""
        return self._run_action(INSTALL, kb_ids)

    def reboot_signals(self) -> RebootSignals:
        result = self.connection.execute(reboot_check_script())
        self.validate_result(result, 'reboot check')
        return parse_reboot_signals(result.stdout)

    def reboot_required(self) -> bool:
        return self.reboot_signals().pending

    def _run_action(self, action: str, kb_ids) -> InstallationResult:
        kb_ids = list(kb_ids or [])
        script = action_script(action, kb_ids)
        target = ', '.join(kb_ids) if kb_ids else 'all available updates'
        logger.info(f"Starting Windows Update {action} for {target}")

        result = self.connection.execute(script)
        self.validate_result(result, action)
        outcome = parse_installation_result(result.stdout, action)

        # cached search results are stale once anything was downloaded or installed
        self._available = None
        logger.info(f"Windows Update {action} finished: {outcome.result_text} ({outcome.update_count} updates)")
        return outcome
