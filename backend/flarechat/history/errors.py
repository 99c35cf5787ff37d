"""Error taxonomy for history persistence.

Every propagated error carries the document path (when known) and the
operation that failed, so callers can present a user-facing message.
"""

from dataclasses import dataclass


class HistoryError(Exception):
    def __init__(self, message: str, *, path: str | None = None, operation: str = "") -> None:
        self.path = path
        self.operation = operation
        super().__init__(message)


class MalformedDocumentError(HistoryError):
    """The document has no frontmatter block, or the block is never closed."""

    def __init__(self, reason: str, *, path: str | None = None) -> None:
        self.reason = reason
        where = f" in {path}" if path else ""
        super().__init__(f"Malformed history document{where}: {reason}", path=path, operation="load")


class PersistenceError(HistoryError):
    """A vault call failed. The transcript stays dirty so a retry is possible."""

    def __init__(self, operation: str, path: str | None) -> None:
        super().__init__(f"Failed to {operation} {path or '(no file)'}", path=path, operation=operation)


class TitleGenerationError(HistoryError):
    def __init__(self, message: str, *, path: str | None = None, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message, path=path, operation="generate_title")


class RenameError(HistoryError):
    """Renaming the backing file failed; the title was rolled back before raising."""

    def __init__(self, old_path: str, new_path: str) -> None:
        self.new_path = new_path
        super().__init__(f"Failed to rename {old_path} to {new_path}", path=old_path, operation="rename")


@dataclass(frozen=True)
class ParseWarning:
    """A recoverable problem found while decoding a document body."""

    line: int  # 1-based, relative to the body
    reason: str
