from __future__ import annotations


class SyncSentinelError(Exception):
    """Base class for errors raised by sync_sentinel."""


class SyncSetupError(SyncSentinelError):
    """The monitor cannot run: a required link or setting could not be resolved."""


class SwitchCommandError(SyncSentinelError):
    """The switch rejected a status command."""
