"""
Windows Update Records
Typed results parsed from Windows Update and hotfix output
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from patching.comparison import NamePattern, matches

RESULT_CODES = {
    0: 'NotStarted',
    1: 'InProgress',
    2: 'Succeeded',
    3: 'SucceededWithErrors',
    4: 'Failed',
    5: 'Aborted',
}

DATE_FORMATS = ('%Y-%m-%d', '%m/%d/%Y %I:%M:%S %p', '%m/%d/%Y')


def result_text_for(code) -> str:
    return RESULT_CODES.get(code, f"Unknown ({code})")


def parse_date(value) -> Optional[date]:
    """Installation date from ISO or US-locale Windows output; None when unparseable"""
    if not value or not str(value).strip():
        return None
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def presence(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class InstalledUpdate:
    """A Windows update known to be installed, identified by normalized KB id"""
    kb_id: str
    description: Optional[str] = None
    installed_on: Optional[date] = None
    installed_by: Optional[str] = None
    source: str = 'hotfix'

    @property
    def is_security(self) -> bool:
        return bool(self.description) and 'security' in self.description.lower()

    def matches(self, pattern: NamePattern) -> bool:
        return matches(self.kb_id, pattern)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kb_id': self.kb_id,
            'description': self.description,
            'installed_on': self.installed_on.isoformat() if self.installed_on else None,
            'installed_by': self.installed_by,
            'source': self.source,
            'security_update': self.is_security,
        }


@dataclass
class AvailableUpdate:
    """A Windows update that is known to the update agent but not installed"""
    kb_id: Optional[str]
    title: str = ''
    size_bytes: Optional[int] = None
    severity: Optional[str] = None
    is_downloaded: bool = False
    categories: List[str] = field(default_factory=list)

    @property
    def downloaded(self) -> bool:
        return self.is_downloaded is True

    @property
    def is_security(self) -> bool:
        return self.severity is not None and self.severity.lower() != 'unspecified'

    @property
    def size_mb(self) -> Optional[float]:
        if self.size_bytes is None:
            return None
        return round(self.size_bytes / 1_048_576, 2)

    def matches(self, pattern: NamePattern) -> bool:
        return matches(self.kb_id, pattern)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kb_id': self.kb_id,
            'title': self.title,
            'size_bytes': self.size_bytes,
            'size_mb': self.size_mb,
            'severity': self.severity,
            'is_downloaded': self.downloaded,
            'categories': list(self.categories),
        }


@dataclass
class UpdateActionResult:
    """Per-update outcome of a download or install batch"""
    kb_id: Optional[str]
    title: str
    result_code: int
    result_text: str

    @property
    def succeeded(self) -> bool:
        return self.result_code == 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kb_id': self.kb_id,
            'title': self.title,
            'result': self.result_text,
            'succeeded': self.succeeded,
        }


@dataclass
class InstallationResult:
    """Aggregate outcome of a download or install batch"""
    result_code: int
    result_text: str
    reboot_required: bool = False
    update_count: int = 0
    items: List[UpdateActionResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        # SucceededWithErrors still counts as a successful batch
        return self.result_code in (2, 3)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'result': self.result_text,
            'result_code': self.result_code,
            'succeeded': self.succeeded,
            'reboot_required': self.reboot_required,
            'update_count': self.update_count,
            'updates': [item.to_dict() for item in self.items],
        }


@dataclass
class RebootSignals:
    """The three independent reboot-pending markers on a Windows host"""
    component_servicing: bool = False
    windows_update: bool = False
    pending_file_rename: bool = False

    @property
    def pending(self) -> bool:
        return self.component_servicing or self.windows_update or self.pending_file_rename

    def to_dict(self) -> Dict[str, bool]:
        return {
            'component_servicing': self.component_servicing,
            'windows_update': self.windows_update,
            'pending_file_rename': self.pending_file_rename,
            'pending': self.pending,
        }
