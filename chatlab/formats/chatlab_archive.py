"""ChatLab archives (the merge output format).

Archives already hold normalized records: timestamps in epoch seconds,
integer message types and an explicit member list with aliases. Members
are written before messages, so they are registered up front and the first
'members' event carries the whole list.
"""

from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import ijson

from ..errors import MalformedSourceError
from ..models import (
    ChatPlatform,
    ChatType,
    FormatDescriptor,
    MessageType,
    ParsedMessage,
    ParsedMeta,
    ParseEvent,
)
from ..registry import FormatModule
from .base import ParseOptions, ParseState, read_json_value, stream_json_export

DESCRIPTOR = FormatDescriptor.build(
    id="chatlab",
    name="ChatLab",
    platform=ChatPlatform.UNKNOWN,
    priority=1,
    extensions=[".json"],
    head=[r'"chatlab"\s*:'],
    required_fields=["chatlab", "meta"],
)


def _read_meta(file_path: Path) -> ParsedMeta:
    meta = read_json_value(file_path, "meta", DESCRIPTOR.name)
    if not isinstance(meta, dict):
        raise MalformedSourceError(
            DESCRIPTOR.name, str(file_path), message=f"{file_path.name}: missing 'meta' object"
        )
    return ParsedMeta(
        name=meta.get("name") or "",
        platform=ChatPlatform.parse(meta.get("platform")),
        type=ChatType.parse(meta.get("type")),
    )


def _preload_members(file_path: Path):
    def preload(state: ParseState) -> None:
        try:
            with open(file_path, "rb") as f:
                for member in ijson.items(f, "members.item"):
                    if not isinstance(member, dict) or not member.get("platformId"):
                        continue
                    platform_id = str(member["platformId"])
                    state.see_member(
                        platform_id,
                        member.get("name") or platform_id,
                        [a for a in member.get("aliases") or [] if isinstance(a, str)],
                    )
        except ijson.JSONError as e:
            raise MalformedSourceError(DESCRIPTOR.name, str(file_path), original_error=e) from e

    return preload


def _convert(record: Dict[str, Any], state: ParseState) -> Optional[ParsedMessage]:
    sender = record.get("sender")
    if sender in (None, ""):
        return None
    platform_id = str(sender)
    name = record.get("name") or platform_id

    # The member list is authoritative; only fill in senders it lacks
    if platform_id not in state.members:
        state.see_member(platform_id, name)

    timestamp = record.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None

    content = record.get("content")
    return ParsedMessage(
        sender_platform_id=platform_id,
        sender_name=name,
        timestamp=int(timestamp),
        type=MessageType.parse(record.get("type")),
        content=content if isinstance(content, str) and content else None,
    )


def parse(file_path: Path, options: ParseOptions) -> Iterator[ParseEvent]:
    """Stream a ChatLab archive as ParseEvents."""
    file_path = Path(file_path)
    return stream_json_export(
        file_path,
        options,
        DESCRIPTOR.name,
        read_meta=lambda: _read_meta(file_path),
        convert=_convert,
        preload=_preload_members(file_path),
    )


MODULE = FormatModule(descriptor=DESCRIPTOR, parse=parse)
