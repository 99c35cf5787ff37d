"""Frontmatter codec: the ``---`` delimited key/value header of a history document.

The header is small and flat, so it is handled with a line scanner rather
than a YAML parser: values are written exactly as older releases wrote
them (unquoted dates, quoted title) and read back with the same lenient
coercion.
"""

import re

from pydantic import BaseModel, Field

from flarechat.history.errors import MalformedDocumentError
from flarechat.history.naming import format_timestamp, parse_timestamp
from flarechat.models import Transcript

DELIMITER = "---"

_KEY_VALUE = re.compile(r"^([A-Za-z0-9_-]+):\s*(.+)$")
_KEY_LINE = re.compile(r"^([A-Za-z0-9_-]+):[ \t]*(.*)$")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?([eE][-+]?\d+)?$")

# Spellings seen in the wild -> Frontmatter field
_KEY_ALIASES = {
    "date": "date",
    "last-modified": "last_modified",
    "lastModified": "last_modified",
    "last_modified": "last_modified",
    "title": "title",
    "flare": "flare",
    "provider": "provider",
    "provider-name": "provider_name",
    "providerName": "provider_name",
    "provider-type": "provider_type",
    "providerType": "provider_type",
    "model": "model",
    "temperature": "temperature",
}


def split_document(text: str, *, path: str | None = None) -> tuple[str, str]:
    """Split a document into (header body, document body).

    Only the first ``---`` line after the opening one closes the header, so
    later ``---`` lines inside message content are left alone.
    """
    text = text.lstrip("\ufeff").replace("\r\n", "\n")
    lines = text.split("\n")
    if not lines or lines[0].rstrip() != DELIMITER:
        raise MalformedDocumentError("missing opening frontmatter delimiter", path=path)

    for i in range(1, len(lines)):
        if lines[i].rstrip() == DELIMITER:
            return "\n".join(lines[1:i]), "\n".join(lines[i + 1:])

    raise MalformedDocumentError("frontmatter block is never closed", path=path)


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _coerce(value: str) -> str | int | float:
    if _NUMBER.match(value):
        number = float(value)
        return int(number) if number.is_integer() and "." not in value else number
    return value


def decode(header: str, *, coerce: bool = True) -> dict[str, str | int | float]:
    """Parse ``key: value`` lines into a map.

    Every value is unquoted and, when ``coerce`` is set, turned into a number
    if it looks like one. Lines that are not key/value pairs are ignored.
    """
    fields: dict[str, str | int | float] = {}
    for line in header.split("\n"):
        match = _KEY_VALUE.match(line.strip())
        if not match:
            continue
        key, raw = match.groups()
        value = _unquote(raw)
        fields[key] = _coerce(value) if coerce else value
    return fields


def _is_continuation(line: str) -> bool:
    return bool(line.strip()) and (line[0] in " \t" or line == "-" or line.startswith("- "))


def _decode_date(value: str) -> int | None:
    if _NUMBER.match(value):
        # Older documents stored epoch milliseconds
        return int(float(value))
    return parse_timestamp(value)


class Frontmatter(BaseModel):
    """Typed view of a header: known fields plus a side table for the rest.

    ``extras`` keeps the raw text of unrecognized keys so they are written
    back unchanged.
    """

    date: int | None = None
    last_modified: int | None = None
    title: str | None = None
    flare: str | None = None
    provider: str | None = None
    provider_name: str | None = None
    provider_type: str | None = None
    model: str | None = None
    temperature: float | None = None
    extras: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_header(cls, header: str) -> "Frontmatter":
        """Read a header. Indented and ``- item`` lines belong to the key above
        them; under an unknown key they are kept verbatim in ``extras``."""
        fm = cls()
        extra_key = None
        for line in header.split("\n"):
            if _is_continuation(line):
                if extra_key is not None:
                    fm.extras[extra_key] += "\n" + line.rstrip()
                continue
            extra_key = None
            match = _KEY_LINE.match(line.rstrip())
            if not match:
                continue
            key, raw = match.groups()
            field = _KEY_ALIASES.get(key)
            value = _unquote(raw)
            if field is None:
                fm.extras[key] = raw.strip()
                extra_key = key
            elif not value:
                continue
            elif field in ("date", "last_modified"):
                setattr(fm, field, _decode_date(value))
            elif field == "temperature":
                fm.temperature = float(value) if _NUMBER.match(value) else None
            else:
                setattr(fm, field, value)
        return fm

    @classmethod
    def from_transcript(cls, transcript: Transcript) -> "Frontmatter":
        fm = cls()
        fm.apply(transcript)
        return fm

    def apply(self, transcript: Transcript) -> None:
        """Copy the header fields a save owns. Provider fields and extras are kept."""
        self.date = transcript.date
        self.last_modified = transcript.last_modified
        self.title = transcript.title
        self.flare = transcript.flare


def encode(fm: Frontmatter) -> str:
    """Render the full header block, delimiters included, in a fixed key order."""
    lines = [DELIMITER]
    if fm.date is not None:
        lines.append(f"date: {format_timestamp(fm.date)}")
    if fm.last_modified is not None:
        lines.append(f"last-modified: {format_timestamp(fm.last_modified)}")
    title = (fm.title or "").replace("\r", " ").replace("\n", " ")
    lines.append(f'title: "{title}"')
    if fm.flare:
        lines.append(f"flare: {fm.flare}")
    if fm.provider:
        lines.append(f"provider: {fm.provider}")
    if fm.provider_name:
        lines.append(f"provider-name: {fm.provider_name}")
    if fm.provider_type:
        lines.append(f"provider-type: {fm.provider_type}")
    if fm.model:
        lines.append(f"model: {fm.model}")
    if fm.temperature is not None:
        lines.append(f"temperature: {fm.temperature}")
    for key, raw in fm.extras.items():
        # Block values ("tags:" followed by list items) start with a newline
        lines.append(f"{key}:{raw}" if not raw or raw.startswith("\n") else f"{key}: {raw}")
    lines.append(DELIMITER)
    return "\n".join(lines) + "\n"


def encode_transcript(transcript: Transcript) -> str:
    return encode(Frontmatter.from_transcript(transcript))


def join_document(header: str, body: str) -> str:
    """Reassemble a document from split_document() output."""
    lines = [DELIMITER, header, DELIMITER] if header else [DELIMITER, DELIMITER]
    return "\n".join(lines) + "\n" + body
