"""ChatLab archive model and writer.

A ChatLab archive is the merge output: a single UTF-8 JSON document

    {
      "chatlab":  {"version", "exportedAt", "generator"},
      "meta":     {"name", "platform", "type", "sources": [...]},
      "members":  [{"platformId", "name", "aliases"?}],
      "messages": [{"sender", "name", "timestamp", "type", "content"}]
    }

Members are always written before messages so that the archive parser can
stream them back in member-first order.
"""

import json
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import ARCHIVE_SUFFIX, CHATLAB_GENERATOR, CHATLAB_VERSION
from .models import (
    ChatPlatform,
    ChatType,
    MergeSource,
    MessageType,
    ParsedMember,
    ParsedMessage,
    ParsedMeta,
)
from .utils import sanitize_filename


@dataclass
class ChatLabArchive:
    """In-memory form of a ChatLab archive.

    Attributes:
        meta: Conversation meta (platform may be 'mixed')
        members: Unified members with aliases
        messages: Deduplicated, time-ordered messages
        sources: Provenance of each merged input file
        exported_at: Unix seconds when the archive was produced
        version: Archive format version
        generator: Tool that produced the archive
    """

    meta: ParsedMeta
    members: List[ParsedMember] = field(default_factory=list)
    messages: List[ParsedMessage] = field(default_factory=list)
    sources: List[MergeSource] = field(default_factory=list)
    exported_at: int = field(default_factory=lambda: int(time.time()))
    version: str = CHATLAB_VERSION
    generator: str = CHATLAB_GENERATOR

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the archive's JSON structure."""
        members = []
        for member in self.members:
            entry: Dict[str, Any] = {"platformId": member.platform_id, "name": member.name}
            if member.aliases:
                entry["aliases"] = list(member.aliases)
            members.append(entry)

        return {
            "chatlab": {
                "version": self.version,
                "exportedAt": self.exported_at,
                "generator": self.generator,
            },
            "meta": {
                "name": self.meta.name,
                "platform": self.meta.platform.value,
                "type": self.meta.type.value,
                "sources": [
                    {
                        "filename": s.filename,
                        "platform": s.platform,
                        "messageCount": s.message_count,
                    }
                    for s in self.sources
                ],
            },
            "members": members,
            "messages": [
                {
                    "sender": m.sender_platform_id,
                    "name": m.sender_name,
                    "timestamp": m.timestamp,
                    "type": int(m.type),
                    "content": m.content,
                }
                for m in self.messages
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatLabArchive":
        """Build an archive from its JSON structure."""
        header = data.get("chatlab", {})
        meta = data.get("meta", {})

        return cls(
            meta=ParsedMeta(
                name=meta.get("name", ""),
                platform=ChatPlatform.parse(meta.get("platform")),
                type=ChatType.parse(meta.get("type")),
            ),
            members=[
                ParsedMember(
                    platform_id=str(m["platformId"]),
                    name=m.get("name") or str(m["platformId"]),
                    aliases=list(m.get("aliases", [])),
                )
                for m in data.get("members", [])
            ],
            messages=[
                ParsedMessage(
                    sender_platform_id=str(m["sender"]),
                    sender_name=m.get("name") or str(m["sender"]),
                    timestamp=int(m["timestamp"]),
                    type=MessageType.parse(m.get("type")),
                    content=m.get("content"),
                )
                for m in data.get("messages", [])
            ],
            sources=[
                MergeSource(
                    filename=s.get("filename", ""),
                    platform=s.get("platform", ChatPlatform.UNKNOWN.value),
                    message_count=int(s.get("messageCount", 0)),
                )
                for s in meta.get("sources", [])
            ],
            exported_at=int(header.get("exportedAt", 0)),
            version=header.get("version", CHATLAB_VERSION),
            generator=header.get("generator", CHATLAB_GENERATOR),
        )


def write_archive(archive: ChatLabArchive, output_path: Path) -> Path:
    """Write an archive as indented UTF-8 JSON.

    Returns:
        The path written
    """
    output_path = Path(output_path)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(archive.to_dict(), f, ensure_ascii=False, indent=2)
    return output_path


def read_archive(path: Path) -> ChatLabArchive:
    """Load a whole archive into memory."""
    with open(path, "r", encoding="utf-8") as f:
        return ChatLabArchive.from_dict(json.load(f))


def generate_output_filename(name: str, today: Optional[date] = None) -> str:
    """Archive file name for a merged conversation.

    Example:
        >>> generate_output_filename("Team: Q1/Q2", date(2024, 3, 1))
        'Team_ Q1_Q2_merged_20240301.chatlab.json'
    """
    stamp = (today or date.today()).strftime("%Y%m%d")
    return f"{sanitize_filename(name)}_merged_{stamp}{ARCHIVE_SUFFIX}"


def resolve_output_path(
    target_dir: Path, name: str, today: Optional[date] = None
) -> Path:
    """Pick a non-existing archive path in target_dir, creating the directory.

    On a collision, _1, _2, ... is appended before the .chatlab.json suffix.
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    filename = generate_output_filename(name, today)
    candidate = target_dir / filename
    stem = filename[: -len(ARCHIVE_SUFFIX)]
    counter = 1
    while candidate.exists():
        candidate = target_dir / f"{stem}_{counter}{ARCHIVE_SUFFIX}"
        counter += 1
    return candidate
