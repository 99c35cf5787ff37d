"""History persistence: document codecs and the transcript store."""

from flarechat.history.errors import (
    HistoryError,
    MalformedDocumentError,
    ParseWarning,
    PersistenceError,
    RenameError,
    TitleGenerationError,
)
from flarechat.history.store import HistoryEntry, HistoryEvent, TranscriptStore

__all__ = [
    "HistoryEntry",
    "HistoryError",
    "HistoryEvent",
    "MalformedDocumentError",
    "ParseWarning",
    "PersistenceError",
    "RenameError",
    "TitleGenerationError",
    "TranscriptStore",
]
