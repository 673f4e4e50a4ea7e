"""Endpoint selection, preference reconciliation and failover."""

from meshlink.selection.failover import FailoverNotifier, ReauthCoordinator
from meshlink.selection.preference import PreferenceSync, reconcile
from meshlink.selection.selector import fastest_endpoint, select_active


__all__ = [
    "FailoverNotifier",
    "PreferenceSync",
    "ReauthCoordinator",
    "fastest_endpoint",
    "reconcile",
    "select_active",
]
