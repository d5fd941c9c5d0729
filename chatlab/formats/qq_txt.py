"""QQ desktop client plain-text exports.

Layout:

    消息记录（此消息记录为文本格式，不支持重新导入）
    ================================================================
    消息分组:我的群聊
    ================================================================
    消息对象:Python 学习群
    ================================================================

    2017-02-25 10:40:20 【管理员】Alice(10001)
    first line
    second line

    2017-02-25 10:41:02 Bob<bob@example.com>
    [图片]

Header timestamps are local wall-clock times; they are interpreted in the
configured timezone. The file is read line by line.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from ..constants import DEFAULT_TXT_CHAT_NAME, TXT_HEADER_SCAN_LINES
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
from .base import ParseOptions, ParseState, resolve_record_timestamp

DESCRIPTOR = FormatDescriptor.build(
    id="qq-native-txt",
    name="QQ Native TXT Export",
    platform=ChatPlatform.QQ,
    priority=30,
    extensions=[".txt"],
    head=[
        r"消息记录",
        r"消息分组",
        r"消息对象",
        r"(?m)^\s*={4,}",
        r"(?m)^\d{4}-\d{2}-\d{2}\s+\d{1,2}:\d{2}:\d{2}\s+.+?(?:\(\d+\)|<[^>]+>)\s*$",
    ],
)

# 2017-02-25 10:40:20 [【title】]name(qq) or name<email>
MESSAGE_HEADER = re.compile(
    r"^(\d{4}-\d{2}-\d{2}\s+\d{1,2}:\d{2}:\d{2})\s+"
    r"(?:【[^】]+】)?(.+?)(?:\((\d+)\)|<([^>]+)>)\s*$"
)
GROUP_NAME = re.compile(r"^消息对象[:：](.+)$")

# Preamble lines ("消息记录", "消息分组:...", "消息对象:...") and separators
SKIPPED_PREFIXES = ("===", "消息记录", "消息分组", "消息对象")

EMOJI_ONLY = re.compile(r"^\[.+\]$|^\[\[.+\]\]$")

SYSTEM_PHRASES = ("加入了群聊", "退出了群聊", "撤回了一条消息", "被管理员", "成为管理员")


def detect_message_type(content: str) -> MessageType:
    """Infer a message type from the text the client rendered for it."""
    text = content.strip()
    if text.startswith("[图片]"):
        return MessageType.IMAGE
    # A lone bracketed token is a sticker/face
    if EMOJI_ONLY.match(text):
        return MessageType.EMOJI
    if text.startswith("[语音]"):
        return MessageType.VOICE
    if text.startswith("[视频]"):
        return MessageType.VIDEO
    if text.startswith("[文件]"):
        return MessageType.FILE
    if any(phrase in text for phrase in SYSTEM_PHRASES):
        return MessageType.SYSTEM
    return MessageType.TEXT


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").lstrip("\ufeff").strip()


def _read_group_name(file_path: Path) -> str:
    with open(file_path, "rb") as f:
        for index, raw in enumerate(f):
            if index >= TXT_HEADER_SCAN_LINES:
                break
            match = GROUP_NAME.match(_decode(raw))
            if match:
                return match.group(1).strip()
    return DEFAULT_TXT_CHAT_NAME


def _parse_header(match: re.Match, options: ParseOptions) -> Tuple[str, str, Optional[int]]:
    platform_id = match.group(3) or match.group(4)
    name = match.group(2).strip() or platform_id
    try:
        local = datetime.strptime(
            " ".join(match.group(1).split()), "%Y-%m-%d %H:%M:%S"
        )
    except ValueError:
        return platform_id, name, None
    timestamp = resolve_record_timestamp(local.isoformat(), options.tzinfo)
    return platform_id, name, timestamp


def parse(file_path: Path, options: ParseOptions) -> Iterator[ParseEvent]:
    """Stream a QQ TXT export as ParseEvents."""
    file_path = Path(file_path)
    state = ParseState(file_path, options)
    yield state.start()
    yield state.emit_meta(
        ParsedMeta(
            name=_read_group_name(file_path),
            platform=ChatPlatform.QQ,
            type=ChatType.GROUP,
        )
    )

    sender: Optional[Tuple[str, str]] = None
    timestamp = 0
    lines: List[str] = []

    def pending() -> Optional[ParsedMessage]:
        if sender is None or not lines:
            return None
        content = "\n".join(lines).strip()
        if not content:
            return None
        return ParsedMessage(
            sender_platform_id=sender[0],
            sender_name=sender[1],
            timestamp=timestamp,
            type=detect_message_type(content),
            content=content,
        )

    with open(file_path, "rb") as f:
        for raw in f:
            line = _decode(raw)
            if not line or line.startswith(SKIPPED_PREFIXES):
                continue

            match = MESSAGE_HEADER.match(line)
            if match is None:
                lines.append(line)
                continue

            message = pending()
            if message is not None:
                yield from state.add_message(message, f.tell())
            lines = []

            platform_id, name, header_ts = _parse_header(match, options)
            state.see_member(platform_id, name)
            if header_ts is None:
                # Content up to the next header belongs to a dropped record
                state.drop()
                sender = None
            else:
                sender = (platform_id, name)
                timestamp = header_ts

        message = pending()
        if message is not None:
            yield from state.add_message(message, f.tell())

    yield from state.finish()


MODULE = FormatModule(descriptor=DESCRIPTOR, parse=parse)
