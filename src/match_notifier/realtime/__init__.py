"""Realtime module for the data store change stream."""

from match_notifier.realtime.subscriber import ChangeEvent, ChangeEventSubscriber

__all__ = ["ChangeEvent", "ChangeEventSubscriber"]
