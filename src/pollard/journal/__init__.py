"""
Event journal: persistent audit log of research run events.
"""

from pollard.journal.event_store import EventStore, StoredEvent
from pollard.journal.journal import EventJournal

__all__ = ["EventJournal", "EventStore", "StoredEvent"]
