"""Parsing entry points for ChatLab.

This module provides the convenience API over the format modules:
- detect_format(): Sniff a file's export format
- stream_file(): Lazily stream a file as ParseEvents
- collect_events(): Drain an event stream into a ParseResult
- parse_file(): Parse a whole file into a ParseResult
- parse_file_info(): Summarize a file without keeping its messages
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .config import get_settings
from .formats.base import ParseOptions
from .models import (
    FileParseInfo,
    FormatDescriptor,
    ParsedMember,
    ParsedMeta,
    ParseEvent,
    ParseResult,
)
from .sniffer import FormatSniffer

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def default_options() -> ParseOptions:
    """ParseOptions populated from the current settings."""
    settings = get_settings()
    return ParseOptions(batch_size=settings.batch_size, timezone=settings.timezone)


def detect_format(
    file_path: PathLike, sniffer: Optional[FormatSniffer] = None
) -> Optional[FormatDescriptor]:
    """Detect the export format of a file.

    Returns:
        The matching FormatDescriptor, or None if unrecognized
    """
    return (sniffer or FormatSniffer()).detect(file_path)


def stream_file(
    file_path: PathLike,
    options: Optional[ParseOptions] = None,
    sniffer: Optional[FormatSniffer] = None,
) -> Iterator[ParseEvent]:
    """Stream a file as ParseEvents using the sniffed format's parser.

    The format is sniffed eagerly; parsing starts on the first next().

    Args:
        file_path: Export file
        options: Parse options (default: from settings)
        sniffer: Sniffer to use (default: built-in formats)

    Returns:
        Single-pass iterator of ParseEvents

    Raises:
        UnrecognizedFormatError: If no registered format matches
    """
    path = Path(file_path)
    module = (sniffer or FormatSniffer()).require(path)
    return module.parse(path, options or default_options())


def collect_events(events: Iterable[ParseEvent]) -> ParseResult:
    """Drain an event stream into a ParseResult.

    Members re-emitted under a new display name are updated in place, so
    the result carries the latest name per platform id.
    """
    meta: Optional[ParsedMeta] = None
    members = {}
    messages = []

    for event in events:
        if event.type == "meta":
            meta = event.data
        elif event.type == "members":
            for member in event.data:
                members[member.platform_id] = ParsedMember(
                    platform_id=member.platform_id,
                    name=member.name,
                    aliases=list(member.aliases),
                )
        elif event.type == "messages":
            messages.extend(event.data)

    if meta is None:
        raise ValueError("Event stream ended without a meta event")

    return ParseResult(meta=meta, members=list(members.values()), messages=messages)


def parse_file(
    file_path: PathLike,
    options: Optional[ParseOptions] = None,
    sniffer: Optional[FormatSniffer] = None,
) -> ParseResult:
    """Parse a whole export file into memory.

    Example:
        >>> result = parse_file("group_export.json")
        >>> print(f"{result.meta.name}: {result.message_count} messages")
    """
    return collect_events(stream_file(file_path, options, sniffer))


def parse_file_info(
    file_path: PathLike, sniffer: Optional[FormatSniffer] = None
) -> FileParseInfo:
    """Summarize a file (name, format, counts) while streaming it.

    Raises:
        UnrecognizedFormatError: If no registered format matches
    """
    path = Path(file_path)
    module = (sniffer or FormatSniffer()).require(path)

    meta: Optional[ParsedMeta] = None
    counts = {"message_count": 0, "member_count": 0}
    for event in module.parse(path, default_options()):
        if event.type == "meta":
            meta = event.data
        elif event.type == "done":
            counts = event.data

    return FileParseInfo(
        name=meta.name if meta else path.stem,
        format=module.name,
        platform=meta.platform if meta else module.descriptor.platform,
        message_count=counts["message_count"],
        member_count=counts["member_count"],
    )
