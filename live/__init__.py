"""Live tasting sessions: in-memory rooms with chat and polls, plus persisted interactions."""

from .rooms import StreamRoomRegistry
from .interactions import StreamInteractions

__all__ = ["StreamRoomRegistry", "StreamInteractions"]
