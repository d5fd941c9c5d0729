"""Pre-V4 QQChatExporter JSON exports.

Same top-level layout as V4 minus "metadata". Records use system / recalled
flags and a string type code ("type_1", "type_17", ...).
"""

from pathlib import Path
from typing import Iterator

from ..models import ChatPlatform, FormatDescriptor, MessageType, ParseEvent
from ..registry import FormatModule
from .base import ParseOptions, qq_record_converter, read_chat_info, stream_json_export

DESCRIPTOR = FormatDescriptor.build(
    id="shuakami-qq-exporter-legacy",
    name="QQChatExporter (legacy)",
    platform=ChatPlatform.QQ,
    priority=20,
    extensions=[".json"],
    head=[r"QQChatExporter", r'"chatInfo"'],
    required_fields=["chatInfo", "messages"],
)

TYPE_CODES = {
    "type_1": MessageType.TEXT,
    "type_17": MessageType.EMOJI,
    "type_3": MessageType.IMAGE,
    "type_7": MessageType.VOICE,
}


def parse(file_path: Path, options: ParseOptions) -> Iterator[ParseEvent]:
    file_path = Path(file_path)
    convert = qq_record_converter(
        system_field="system",
        recalled_field="recalled",
        type_field="type",
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
