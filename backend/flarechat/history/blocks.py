"""Message block codec.

A block is a ``## Role`` header line, the raw message content, and a
trailing HTML comment carrying the generation settings as compact JSON::

    ## Assistant

    Any markdown, including blank lines, headings and --- rules.
    <!-- settings: {"provider":"anthropic","model":"claude-sonnet-4-5","temperature":0.7,"timestamp":1718000000000} -->

Decoding is a two-pass scan. Pass one records the line numbers of role
headers; pass two slices the text between consecutive headers. Only a
whole line of ``##`` followed by one of the three role names is reserved
syntax, so content may contain anything else.
"""

import logging
import re
from dataclasses import dataclass, field

from pydantic import ValidationError

from flarechat.history.errors import ParseWarning
from flarechat.history.naming import now_ms
from flarechat.models import GenerationSettings, Message, Role
from flarechat.utils.json import compact_json, parse_json_field

logger = logging.getLogger(__name__)

SETTINGS_MARKER = "<!-- settings:"
COMMENT_END = "-->"

_HEADER = re.compile(r"^##[ \t]+([A-Za-z]+)[ \t]*$")


@dataclass
class DecodedBody:
    messages: list[Message] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)


def encode_message(message: Message) -> str:
    payload = message.settings.to_payload()
    payload["timestamp"] = message.timestamp
    return (
        f"## {message.role.heading}\n\n"
        f"{message.content}\n"
        f"{SETTINGS_MARKER} {compact_json(payload)} {COMMENT_END}\n"
    )


def encode_messages(messages: list[Message]) -> str:
    """All blocks, separated by one blank line."""
    return "\n".join(encode_message(m) for m in messages)


def encode_body(messages: list[Message]) -> str:
    """Everything that follows the closing frontmatter delimiter."""
    return "\n" + encode_messages(messages)


def _trim_blank_lines(text: str) -> str:
    lines = text.split("\n")
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(lines[start:end])


def _split_settings(block: str) -> tuple[str, str | None]:
    """Separate content from the last settings comment, if there is one."""
    marker_at = block.rfind(SETTINGS_MARKER)
    if marker_at < 0:
        return block, None
    close_at = block.find(COMMENT_END, marker_at)
    if close_at < 0:
        return block[:marker_at], ""
    payload = block[marker_at + len(SETTINGS_MARKER):close_at]
    trailing = block[close_at + len(COMMENT_END):]
    content = block[:marker_at]
    if trailing.strip():
        content = content.rstrip("\n") + "\n" + trailing.lstrip("\n")
    return content, payload.strip()


def _parse_settings(payload: str) -> tuple[GenerationSettings, int | None, list[str]] | None:
    """Validate a settings payload. Fields that fail validation are dropped
    and reported; the rest are kept."""
    data = parse_json_field(payload)
    if data is None:
        return None
    data = dict(data)
    raw_timestamp = data.pop("timestamp", None)
    dropped: list[str] = []
    try:
        settings = GenerationSettings.model_validate(data)
    except ValidationError as exc:
        dropped = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        for key in dropped:
            data.pop(key, None)
        try:
            settings = GenerationSettings.model_validate(data)
        except ValidationError:
            return None
    timestamp = None
    if isinstance(raw_timestamp, (int, float)) and not isinstance(raw_timestamp, bool):
        timestamp = int(raw_timestamp)
    return settings, timestamp, dropped


def decode_messages(body: str, *, fallback_timestamp: int | None = None) -> DecodedBody:
    """Decode every message block in a document body, in document order.

    Messages whose stored timestamp is missing get ``fallback_timestamp``
    plus their position, so they stay distinct under deduplication.
    """
    result = DecodedBody()
    lines = body.replace("\r\n", "\n").split("\n")

    def warn(line: int, reason: str) -> None:
        logger.warning("Parse warning at body line %d: %s", line, reason)
        result.warnings.append(ParseWarning(line=line, reason=reason))

    # Pass 1: header positions
    headers: list[tuple[int, Role]] = []
    for i, line in enumerate(lines):
        match = _HEADER.match(line)
        if not match:
            continue
        role = Role.parse(match.group(1))
        if role is None:
            logger.debug("Heading %r at body line %d is not a role, kept as content", line, i + 1)
        else:
            headers.append((i, role))

    first = headers[0][0] if headers else len(lines)
    if any(line.strip() for line in lines[:first]):
        warn(1, "text outside any message block was skipped")

    # Pass 2: slice between headers
    base = fallback_timestamp if fallback_timestamp is not None else now_ms()
    for index, (start, role) in enumerate(headers):
        end = headers[index + 1][0] if index + 1 < len(headers) else len(lines)
        block = "\n".join(lines[start + 1:end])
        content, payload = _split_settings(block)

        settings = GenerationSettings.fallback()
        timestamp = None
        if payload is None:
            warn(start + 1, f"{role.heading} message has no settings comment")
        else:
            parsed = _parse_settings(payload)
            if parsed is None:
                warn(start + 1, f"unreadable settings on {role.heading} message, using defaults")
            else:
                settings, timestamp, dropped = parsed
                if dropped:
                    fields = ", ".join(dropped)
                    warn(start + 1, f"invalid settings field(s) {fields} on {role.heading} message, defaults used")

        result.messages.append(Message(
            role=role,
            content=_trim_blank_lines(content),
            timestamp=timestamp if timestamp is not None else base + index,
            settings=settings,
        ))

    return result
