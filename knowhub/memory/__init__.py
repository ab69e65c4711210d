"""Question/answer history."""
from knowhub.memory.history import HistoryRecorder

__all__ = ["HistoryRecorder"]
