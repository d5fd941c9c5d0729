"""QQChatExporter V4 JSON exports.

Top-level layout: {"metadata": {...}, "chatInfo": {...}, "messages": [...]}.
Records carry isSystemMessage / isRecalled flags and a numeric messageType;
senders carry a uid and usually a uin.
"""

from pathlib import Path
from typing import Iterator

from ..models import ChatPlatform, FormatDescriptor, MessageType, ParseEvent
from ..registry import FormatModule
from .base import ParseOptions, qq_record_converter, read_chat_info, stream_json_export

DESCRIPTOR = FormatDescriptor.build(
    id="shuakami-qq-exporter-v4",
    name="QQChatExporter V4",
    platform=ChatPlatform.QQ,
    priority=10,
    extensions=[".json"],
    head=[r"QQChatExporter V4", r'"version"\s*:\s*"4\.'],
    required_fields=["metadata", "chatInfo", "messages"],
)

TYPE_CODES = {
    1: MessageType.TEXT,
    2: MessageType.IMAGE,
    3: MessageType.VOICE,
    7: MessageType.VIDEO,
}


def parse(file_path: Path, options: ParseOptions) -> Iterator[ParseEvent]:
    """Stream a V4 export as ParseEvents."""
    file_path = Path(file_path)
    convert = qq_record_converter(
        system_field="isSystemMessage",
        recalled_field="isRecalled",
        type_field="messageType",
        type_codes=TYPE_CODES,
        tz=options.tzinfo,
    )
    return stream_json_export(
        file_path,
        options,
        DESCRIPTOR.name,
        read_meta=lambda: read_chat_info(file_path, DESCRIPTOR.name),
        convert=convert,
    )


MODULE = FormatModule(descriptor=DESCRIPTOR, parse=parse)
