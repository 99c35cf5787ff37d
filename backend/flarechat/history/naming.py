"""Timestamps, date formats and collision-free file names."""

import time
from datetime import UTC, datetime

from flarechat.config import DateFormat
from flarechat.vault.base import Vault, join_path

HEADER_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_FILE_DATE_FORMATS = {
    DateFormat.MM_DD_YYYY: "%m-%d-%Y",
    DateFormat.DD_MM_YYYY: "%d-%m-%Y",
    DateFormat.YYYY_MM_DD: "%Y-%m-%d",
    DateFormat.MM_DD_YY: "%m-%d-%y",
    DateFormat.DD_MM_YY: "%d-%m-%y",
    DateFormat.YY_MM_DD: "%y-%m-%d",
}


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def format_timestamp(ms: int) -> str:
    """Epoch milliseconds -> ``YYYY-MM-DD HH:MM:SS`` in UTC. Sub-second precision is dropped."""
    return datetime.fromtimestamp(ms / 1000, UTC).strftime(HEADER_DATE_FORMAT)


def parse_timestamp(text: str) -> int | None:
    """Inverse of format_timestamp. Returns None for anything unparseable."""
    try:
        parsed = datetime.strptime(text.strip(), HEADER_DATE_FORMAT)
    except ValueError:
        return None
    return int(parsed.replace(tzinfo=UTC).timestamp()) * 1000


def format_file_date(ms: int, date_format: DateFormat) -> str:
    """Date part of a new history file name, in the user's local calendar."""
    return datetime.fromtimestamp(ms / 1000).strftime(_FILE_DATE_FORMATS[date_format])


async def unique_path(vault: Vault, folder: str, stem: str, extension: str = ".md") -> str:
    """First free path among ``stem.md``, ``stem-1.md``, ``stem-2.md``, ...

    Existence is re-checked on every probe; nothing is reserved.
    """
    counter = 0
    while True:
        name = f"{stem}{extension}" if counter == 0 else f"{stem}-{counter}{extension}"
        path = join_path(folder, name)
        if not await vault.exists(path):
            return path
        counter += 1
