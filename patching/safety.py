"""
Destructive Action Guard
Caller-side policy deciding whether an install, upgrade or reboot may proceed
"""

import logging
from dataclasses import dataclass

from connectors.base import PatchPilotError

logger = logging.getLogger(__name__)


class DestructiveActionDenied(PatchPilotError):
    """A destructive action was refused by the safety guard"""

    def __init__(self, decision: 'GuardDecision'):
        self.decision = decision
        super().__init__(decision.reason)


@dataclass
class GuardDecision:
    allowed: bool
    reason: str = ''


def check_destructive_action(asset, executor=None, action: str = 'update', check_reboot: bool = True) -> GuardDecision:
    """
    Refuse an action on protected hosts, then on hosts with a pending reboot.

    Protection is decided from the inventory alone so a protected host is
    never contacted. ``check_reboot`` is off for the reboot action itself.
    """
    if getattr(asset, 'deep_freeze', False):
        reason = f"{asset.hostname} is managed by Deep Freeze - manual {action}s are disabled"
        logger.warning(reason)
        return GuardDecision(allowed=False, reason=reason)

    if check_reboot and executor is not None and executor.reboot_required():
        reason = f"{asset.hostname} has a pending reboot - reboot before running {action}s"
        logger.warning(reason)
        return GuardDecision(allowed=False, reason=reason)

    return GuardDecision(allowed=True)


def enforce(asset, executor=None, action: str = 'update', check_reboot: bool = True) -> None:
    """Raise DestructiveActionDenied unless the guard allows the action"""
    decision = check_destructive_action(asset, executor, action=action, check_reboot=check_reboot)
    if not decision.allowed:
        raise DestructiveActionDenied(decision)
