"""Shared streaming machinery for ChatLab format parsers.

Every parser is a generator producing ParseEvents in a fixed order:

    progress(0) -> meta -> [members -> messages -> progress]* -> progress(done) -> done

ParseState owns the per-invocation state (member map, pending batch,
counters) and enforces that order: init -> meta-emitted -> streaming ->
finalized, with no backward transitions. A parser raises to enter the error
state, which ends the stream.

JSON exports are read incrementally with ijson so that only one batch of
messages (plus the member map) is held in memory at a time.
"""

import logging
import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Set, Union

import ijson

from ..config import resolve_timezone
from ..constants import DEFAULT_BATCH_SIZE, DEFAULT_GROUP_NAME, RECALLED_MARKER
from ..errors import MalformedSourceError
from ..models import (
    ChatPlatform,
    ChatType,
    MessageType,
    ParsedMember,
    ParsedMessage,
    ParsedMeta,
    ParseEvent,
    ParseProgress,
)
from ..utils import is_valid_year, parse_timestamp

logger = logging.getLogger(__name__)

# Attached resource type -> message type
RESOURCE_TYPES = {
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "voice": MessageType.VOICE,
    "audio": MessageType.VOICE,
    "file": MessageType.FILE,
}

# Inline elements that mark a message as a sticker/emoji
EMOJI_ELEMENTS = {"face", "market_face"}


@dataclass
class ParseOptions:
    """Options for a single parse invocation.

    Attributes:
        batch_size: Messages per 'messages' event
        on_progress: Optional observer called with every ParseProgress
        timezone: Zone for formats that record local wall-clock times
            (IANA name or tzinfo; default: configured zone)
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    on_progress: Optional[Callable[[ParseProgress], None]] = None
    timezone: Union[str, tzinfo, None] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")

    @property
    def tzinfo(self) -> tzinfo:
        return resolve_timezone(self.timezone)


class ParseState:
    """Per-invocation parser state and event builder.

    Example:
        >>> state = ParseState(path, options)
        >>> yield state.start()
        >>> yield state.emit_meta(meta)
        >>> for record in records:
        ...     yield from state.add_message(message, bytes_read)
        >>> yield from state.finish()
    """

    INIT = "init"
    META_EMITTED = "meta-emitted"
    STREAMING = "streaming-batches"
    FINALIZED = "finalized"

    def __init__(self, file_path: Path, options: ParseOptions):
        self.file_path = file_path
        self.options = options
        self.total_bytes = os.path.getsize(file_path)
        self.state = self.INIT
        self.members: Dict[str, ParsedMember] = {}
        self.messages_processed = 0
        self.dropped = 0
        self._pending_members: Dict[str, ParsedMember] = {}
        self._batch: List[ParsedMessage] = []

    def _progress(self, stage: str, bytes_read: int, message: str) -> ParseEvent:
        progress = ParseProgress(
            stage=stage,
            bytes_read=bytes_read,
            total_bytes=self.total_bytes,
            messages_processed=self.messages_processed,
            message=message,
        )
        if self.options.on_progress is not None:
            self.options.on_progress(progress)
        return ParseEvent("progress", progress)

    def _require(self, *states: str) -> None:
        if self.state not in states:
            raise RuntimeError(
                f"Parser event out of order: state is '{self.state}', "
                f"expected one of {', '.join(states)}"
            )

    def start(self) -> ParseEvent:
        self._require(self.INIT)
        return self._progress("parsing", 0, "Parsing started")

    def emit_meta(self, meta: ParsedMeta) -> ParseEvent:
        self._require(self.INIT)
        self.state = self.META_EMITTED
        return ParseEvent("meta", meta)

    def see_member(
        self, platform_id: str, name: str, aliases: Optional[List[str]] = None
    ) -> None:
        """Record a sender, updating its display name in place if it changed."""
        member = self.members.get(platform_id)
        if member is None:
            member = ParsedMember(platform_id=platform_id, name=name, aliases=list(aliases or []))
            self.members[platform_id] = member
        elif member.name != name:
            member.name = name
        else:
            return
        self._pending_members[platform_id] = member

    def drop(self) -> None:
        """Count a record skipped for a record-level defect."""
        self.dropped += 1

    def add_message(self, message: ParsedMessage, bytes_read: int) -> Iterator[ParseEvent]:
        """Queue a message, emitting a full batch when batch_size is reached."""
        self._require(self.META_EMITTED, self.STREAMING)
        self.state = self.STREAMING
        self._batch.append(message)
        self.messages_processed += 1
        if len(self._batch) >= self.options.batch_size:
            yield from self._flush()
            yield self._progress(
                "parsing", bytes_read, f"Processed {self.messages_processed} messages"
            )

    def _flush(self) -> Iterator[ParseEvent]:
        if self._pending_members:
            yield ParseEvent("members", list(self._pending_members.values()))
            self._pending_members = {}
        if self._batch:
            yield ParseEvent("messages", self._batch)
            self._batch = []

    def finish(self) -> Iterator[ParseEvent]:
        """Flush the last batch and emit the terminal events."""
        self._require(self.META_EMITTED, self.STREAMING)
        yield from self._flush()
        self.state = self.FINALIZED
        if self.dropped:
            logger.debug(
                "Dropped %d invalid records from %s", self.dropped, self.file_path.name
            )
        yield self._progress("done", self.total_bytes, "Parsing complete")
        yield ParseEvent(
            "done",
            {"message_count": self.messages_processed, "member_count": len(self.members)},
        )


# =============================================================================
# JSON streaming helpers
# =============================================================================


def read_json_value(file_path: Path, key: str, format_name: str) -> Any:
    """Read one top-level value without loading the rest of the document.

    Returns:
        The value, or None if the key is absent

    Raises:
        MalformedSourceError: If the document is not valid JSON
    """
    try:
        with open(file_path, "rb") as f:
            return next(ijson.items(f, key, use_float=True), None)
    except ijson.JSONError as e:
        raise MalformedSourceError(format_name, str(file_path), original_error=e) from e


def iter_json_array(
    fileobj: BinaryIO, key: str, format_name: str, file_path: Path
) -> Iterator[Any]:
    """Stream the items of a top-level array.

    Args:
        fileobj: Binary file positioned at the start of the document
        key: Top-level key holding the array
        format_name: Format name for error messages
        file_path: Path for error messages

    Yields:
        Each array item as a Python object

    Raises:
        MalformedSourceError: If the document is invalid JSON, its root is
            not an object, or the key is missing or not an array
    """
    top_level_keys: Set[str] = set()
    root_events: List[str] = []
    array_events: List[str] = []

    def observe(events):
        for prefix, event, value in events:
            if prefix == "":
                if not root_events:
                    root_events.append(event)
                    if event != "start_map":
                        raise MalformedSourceError(
                            format_name,
                            str(file_path),
                            message=f"{file_path.name}: top-level JSON value is not an object",
                        )
                if event == "map_key":
                    top_level_keys.add(value)
            elif prefix == key and not array_events:
                array_events.append(event)
                if event != "start_array":
                    raise MalformedSourceError(
                        format_name,
                        str(file_path),
                        message=f"{file_path.name}: top-level '{key}' is not an array",
                    )
            yield prefix, event, value

    try:
        yield from ijson.items(observe(ijson.parse(fileobj, use_float=True)), f"{key}.item")
    except ijson.JSONError as e:
        raise MalformedSourceError(format_name, str(file_path), original_error=e) from e

    if key not in top_level_keys:
        raise MalformedSourceError(
            format_name,
            str(file_path),
            message=f"{file_path.name}: missing top-level '{key}' array",
        )


# =============================================================================
# Record normalization
# =============================================================================


def resolve_sender_id(sender: Any) -> Optional[str]:
    """Pick the sender's platform id, preferring the numeric uin over uid."""
    if not isinstance(sender, dict):
        return None
    for key in ("uin", "uid"):
        value = sender.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def resolve_record_timestamp(value: Any, tz: Optional[tzinfo] = None) -> Optional[int]:
    """Epoch seconds for a record, or None if unparseable or before 2000."""
    timestamp = parse_timestamp(value, tz)
    if timestamp is None or not is_valid_year(timestamp):
        return None
    return timestamp


def classify_message_type(
    is_system: bool,
    content: Any,
    legacy_code: Any = None,
    legacy_codes: Optional[Dict[Any, MessageType]] = None,
) -> MessageType:
    """Classify a record using the shared priority chain.

    System flag, then attached resource type, then inline face/sticker
    elements, then the format's own type code, then TEXT.
    """
    if is_system:
        return MessageType.SYSTEM

    content = content if isinstance(content, dict) else {}

    resources = content.get("resources") or []
    if resources and isinstance(resources[0], dict):
        resource_type = RESOURCE_TYPES.get(resources[0].get("type"))
        if resource_type is not None:
            return resource_type

    for element in content.get("elements") or []:
        if isinstance(element, dict) and element.get("type") in EMOJI_ELEMENTS:
            return MessageType.EMOJI

    if legacy_codes and legacy_code in legacy_codes:
        return legacy_codes[legacy_code]

    return MessageType.TEXT


def normalize_text(text: Any, recalled: bool) -> Optional[str]:
    """Text content with the recall marker applied; None when empty."""
    text = text if isinstance(text, str) else ""
    if recalled:
        text = RECALLED_MARKER + text
    return text or None


RecordConverter = Callable[[Any, ParseState], Optional[ParsedMessage]]


def stream_json_export(
    file_path: Path,
    options: ParseOptions,
    format_name: str,
    read_meta: Callable[[], ParsedMeta],
    convert: RecordConverter,
    preload: Optional[Callable[[ParseState], None]] = None,
) -> Iterator[ParseEvent]:
    """Drive the event sequence for a JSON export with a 'messages' array.

    Args:
        file_path: Export file
        options: Parse options
        format_name: Format name for error messages
        read_meta: Produces the conversation meta (may read the file)
        convert: Turns one raw record into a ParsedMessage, registering its
            sender on the state; returns None to drop the record
        preload: Optional hook that registers members before streaming

    Yields:
        ParseEvents in the standard order
    """
    state = ParseState(file_path, options)
    yield state.start()
    yield state.emit_meta(read_meta())

    if preload is not None:
        preload(state)

    with open(file_path, "rb") as f:
        for record in iter_json_array(f, "messages", format_name, file_path):
            message = convert(record, state) if isinstance(record, dict) else None
            if message is None:
                state.drop()
                continue
            yield from state.add_message(message, f.tell())

    yield from state.finish()


# =============================================================================
# QQChatExporter records (V4 and legacy share one layout)
# =============================================================================


def read_chat_info(file_path: Path, format_name: str) -> ParsedMeta:
    """Conversation meta from a QQChatExporter 'chatInfo' object."""
    chat_info = read_json_value(file_path, "chatInfo", format_name)
    if not isinstance(chat_info, dict):
        chat_info = {}
    return ParsedMeta(
        name=chat_info.get("name") or DEFAULT_GROUP_NAME,
        platform=ChatPlatform.QQ,
        type=ChatType.parse(chat_info.get("type", ChatType.GROUP.value)),
    )


def qq_record_converter(
    system_field: str,
    recalled_field: str,
    type_field: str,
    type_codes: Dict[Any, MessageType],
    tz: Optional[tzinfo] = None,
) -> RecordConverter:
    """Build the record converter for one QQChatExporter schema version.

    Args:
        system_field: Boolean flag marking system notices
        recalled_field: Boolean flag marking recalled messages
        type_field: Field holding the exporter's own type code
        type_codes: Exporter type code -> MessageType
        tz: Zone for naive ISO timestamps
    """

    def convert(record: Dict[str, Any], state: ParseState) -> Optional[ParsedMessage]:
        sender = record.get("sender")
        platform_id = resolve_sender_id(sender)
        if platform_id is None:
            return None

        sender_name = sender.get("name") or platform_id
        # Latest name wins even when the record itself is dropped below
        state.see_member(platform_id, sender_name)

        timestamp = resolve_record_timestamp(record.get("timestamp"), tz)
        if timestamp is None:
            return None

        content = record.get("content")
        message_type = classify_message_type(
            bool(record.get(system_field)), content, record.get(type_field), type_codes
        )
        text = content.get("text") if isinstance(content, dict) else None

        return ParsedMessage(
            sender_platform_id=platform_id,
            sender_name=sender_name,
            timestamp=timestamp,
            type=message_type,
            content=normalize_text(text, bool(record.get(recalled_field))),
        )

    return convert
