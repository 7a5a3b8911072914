"""Notifications — outbound alerts to moderators and users.

Delivery is always best-effort: callers go through ``SafeNotifier`` so a
failed alert never fails the operation that raised it.
"""

from modengine.notifications.port import EVENTS, LogNotifier, NotificationPort, SafeNotifier

__all__ = ["EVENTS", "LogNotifier", "NotificationPort", "SafeNotifier"]
