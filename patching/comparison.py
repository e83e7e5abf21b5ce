"""
Comparison Helpers
Set differences between two hosts and identifier normalization shared by queries
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Union

KB_RE = re.compile(r'^\s*(?:KB)?\s*(\d+)\s*$', re.IGNORECASE)

NamePattern = Union[str, Pattern]


def normalize_kb(raw) -> Optional[str]:
    """
    Canonical ``KB<digits>`` form of a KB identifier.

    Accepts bare digits, any prefix casing and comma-joined lists (the first
    entry wins, as Windows Update reports ``KBArticleIDs``). Returns None when
    nothing usable is present.
    """
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        raw = ','.join(str(item) for item in raw)

    first = str(raw).split(',')[0]
    match = KB_RE.match(first)
    if not match:
        return None
    return f"KB{match.group(1)}"


def matches(value: Optional[str], pattern: NamePattern) -> bool:
    """Substring match for plain strings, search for compiled regexes"""
    if value is None:
        return False
    if isinstance(pattern, str):
        return pattern in value
    return pattern.search(value) is not None


@dataclass
class Comparison:
    """Partition of two identity-key sets into common, left-only and right-only"""
    common: List[str] = field(default_factory=list)
    only_self: List[str] = field(default_factory=list)
    only_other: List[str] = field(default_factory=list)

    @property
    def identical(self) -> bool:
        return not self.only_self and not self.only_other

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            'common': list(self.common),
            'only_self': list(self.only_self),
            'only_other': list(self.only_other),
        }


def compare_keys(self_keys: Iterable[str], other_keys: Iterable[str]) -> Comparison:
    """Compare two key collections; duplicates and None entries are ignored"""
    left = {key for key in self_keys if key is not None}
    right = {key for key in other_keys if key is not None}

    return Comparison(
        common=sorted(left & right),
        only_self=sorted(left - right),
        only_other=sorted(right - left),
    )
