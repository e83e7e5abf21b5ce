"""
Windows Installed Update Query
Unions the hotfix ledger and Windows Update history into one KB-keyed list
"""

import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from connectors.base import CommandError
from patching.base import BaseQuery
from patching.comparison import normalize_kb
from patching.windows_models import InstalledUpdate, parse_date, presence
from patching.windows_scripts import installed_updates_script

logger = logging.getLogger(__name__)


def load_json_output(stdout: Optional[str], operation: str) -> Optional[Any]:
    """
    Decode one line of script JSON output.

    Empty or undecodable output gives None. An ``{"Error": ...}`` payload is
    raised as CommandError because the script caught a remote failure.
    """
    if not stdout or not stdout.strip():
        return None

    try:
        data = json.loads(stdout.strip())
    except json.JSONDecodeError:
        logger.warning(f"Could not parse {operation} output")
        return None

    if isinstance(data, dict) and data.get('Error'):
        raise CommandError(f"Windows Update {operation} failed: {data['Error']}")
    return data


def as_list(data) -> List[Dict[str, Any]]:
    """ConvertTo-Json collapses single-element arrays into an object"""
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return [entry for entry in data if isinstance(entry, dict)]


def parse_installed_updates(stdout: Optional[str]) -> List[InstalledUpdate]:
    """Build InstalledUpdate records, keeping the first report of each KB"""
    updates = []
    seen = set()

    for entry in as_list(load_json_output(stdout, 'installed update listing')):
        kb_id = normalize_kb(entry.get('HotFixID'))
        if kb_id is None:
            logger.debug(f"Skipping update entry without a KB id: {entry}")
            continue
        if kb_id in seen:
            continue
        seen.add(kb_id)

        updates.append(InstalledUpdate(
            kb_id=kb_id,
            description=presence(entry.get('Description')),
            installed_on=parse_date(entry.get('InstalledOn')),
            installed_by=presence(entry.get('InstalledBy')),
            source=entry.get('Source') or 'hotfix',
        ))

    return updates


class WindowsUpdateQuery(BaseQuery):
    """Installed Windows updates on one host"""

    kind = 'windows'

    def identity(self, record: InstalledUpdate) -> Optional[str]:
        return record.kb_id

    def _fetch(self) -> List[InstalledUpdate]:
        result = self.connection.execute(installed_updates_script())
        if not result.success:
            logger.warning(f"Installed update listing exited with {result.exit_code}: {result.stderr.strip()}")
        updates = parse_installed_updates(result.stdout)
        logger.debug(f"Found {len(updates)} installed updates")
        return updates

    def installed_updates(self, refresh: bool = False) -> List[InstalledUpdate]:
        return self.fetch(refresh=refresh)

    def kb_ids(self) -> List[str]:
        return self.names()

    def security_updates(self) -> List[InstalledUpdate]:
        return [update for update in self.fetch() if update.is_security]

    def updates_between(self, start: Optional[date] = None, end: Optional[date] = None) -> List[InstalledUpdate]:
        """Updates installed within an inclusive date range; undated updates are excluded"""
        selected = []
        for update in self.fetch():
            if update.installed_on is None:
                continue
            if start is not None and update.installed_on < start:
                continue
            if end is not None and update.installed_on > end:
                continue
            selected.append(update)
        return selected

    def summary(self) -> str:
        updates = self.fetch()
        lines = [
            f"Total updates: {len(updates)}",
            f"Security updates: {len(self.security_updates())}",
            f"Date range: {self._date_range(updates)}",
        ]
        return '\n'.join(lines)

    @staticmethod
    def _date_range(updates: List[InstalledUpdate]) -> str:
        dates = sorted(u.installed_on for u in updates if u.installed_on)
        if not dates:
            return 'N/A'
        return f"{dates[0].isoformat()} to {dates[-1].isoformat()}"
