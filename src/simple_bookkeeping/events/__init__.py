"""Realtime change events."""

from simple_bookkeeping.events.publisher import EventPublisher
from simple_bookkeeping.events.types import ChangeEvent, EventType, JournalEntryEvent

__all__ = ["ChangeEvent", "EventPublisher", "EventType", "JournalEntryEvent"]
