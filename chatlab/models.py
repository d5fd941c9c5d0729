"""Data models for ChatLab.

This module contains the dataclasses and enums used throughout the package:
- ChatPlatform, ChatType, MessageType: Normalized vocabularies
- FormatDescriptor: Detection signature for an export format
- ParsedMeta, ParsedMember, ParsedMessage: Normalized corpus records
- ParseProgress, ParseEvent, ParseResult, FileParseInfo: Parser output
- MergeConflict, ConflictResolution, MergeSource, MergeParams,
  MergeResult, ConflictCheckResult: Merge engine inputs and outputs
- TimeFilter and the *Analysis containers: Analytics inputs and results
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Tuple

from .utils import _compile_regex_safe


class ChatPlatform(str, Enum):
    """Platform a conversation was exported from."""

    QQ = "qq"
    WECHAT = "wechat"
    DISCORD = "discord"
    WHATSAPP = "whatsapp"
    UNKNOWN = "unknown"
    MIXED = "mixed"  # Merge of sources from differing platforms

    @classmethod
    def parse(cls, value: Any) -> "ChatPlatform":
        """Map a raw platform value onto the enum, falling back to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ChatType(str, Enum):
    """Conversation type."""

    GROUP = "group"
    PRIVATE = "private"

    @classmethod
    def parse(cls, value: Any) -> "ChatType":
        """Anything that is not explicitly private is treated as a group."""
        return cls.PRIVATE if value == cls.PRIVATE.value else cls.GROUP


class MessageType(IntEnum):
    """Normalized message type, stored and serialized as its integer value."""

    TEXT = 0
    IMAGE = 1
    VOICE = 2
    VIDEO = 3
    FILE = 4
    EMOJI = 5
    SYSTEM = 6

    @classmethod
    def parse(cls, value: Any) -> "MessageType":
        """Map a raw integer onto the enum, falling back to TEXT."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.TEXT


@dataclass(frozen=True)
class FormatDescriptor:
    """Detection signature for one export format.

    Attributes:
        id: Stable identifier (e.g., "shuakami-qq-exporter-v4")
        name: Human-readable name
        platform: Platform the format belongs to
        priority: Lower values are checked first
        extensions: Accepted lowercase file extensions, including the dot
        head_patterns: Regexes of which at least one must match the file head
        required_fields: Top-level field names that must appear in the file head
        field_patterns: Extra regexes that must all match the file head
    """

    id: str
    name: str
    platform: ChatPlatform
    priority: int
    extensions: Tuple[str, ...]
    head_patterns: Tuple[Pattern, ...] = ()
    required_fields: Tuple[str, ...] = ()
    field_patterns: Dict[str, Pattern] = field(default_factory=dict, hash=False)

    @classmethod
    def build(
        cls,
        id: str,
        name: str,
        platform: ChatPlatform,
        priority: int,
        extensions: List[str],
        head: Optional[List[str]] = None,
        required_fields: Optional[List[str]] = None,
        field_patterns: Optional[Dict[str, str]] = None,
    ) -> "FormatDescriptor":
        """Create a descriptor from plain strings, compiling its patterns."""
        return cls(
            id=id,
            name=name,
            platform=platform,
            priority=priority,
            extensions=tuple(ext.lower() for ext in extensions),
            head_patterns=tuple(_compile_regex_safe(p) for p in head or []),
            required_fields=tuple(required_fields or []),
            field_patterns={
                k: _compile_regex_safe(v) for k, v in (field_patterns or {}).items()
            },
        )


@dataclass
class ParsedMeta:
    """Conversation-level metadata."""

    name: str
    platform: ChatPlatform
    type: ChatType


@dataclass
class ParsedMember:
    """A conversation participant.

    Attributes:
        platform_id: Identifier unique within the platform (e.g., QQ number)
        name: Display name
        aliases: Alternate display names collected while merging sources
    """

    platform_id: str
    name: str
    aliases: List[str] = field(default_factory=list)


@dataclass
class ParsedMessage:
    """A single normalized message.

    Attributes:
        sender_platform_id: Platform id of the sender
        sender_name: Sender display name at the time of sending
        timestamp: Unix epoch seconds
        type: Normalized message type
        content: Text content; None for non-text or empty content
    """

    sender_platform_id: str
    sender_name: str
    timestamp: int
    type: MessageType
    content: Optional[str] = None

    @property
    def content_length(self) -> int:
        return len(self.content or "")

    @property
    def fingerprint(self) -> Tuple[int, str, int]:
        """Identity used for dedup: (timestamp, sender id, content length)."""
        return (self.timestamp, self.sender_platform_id, self.content_length)


@dataclass
class ParseProgress:
    """Progress snapshot emitted while parsing."""

    stage: str  # 'parsing' or 'done'
    bytes_read: int
    total_bytes: int
    messages_processed: int
    message: str = ""

    @property
    def percentage(self) -> float:
        if self.total_bytes <= 0:
            return 100.0 if self.stage == "done" else 0.0
        return round(min(self.bytes_read / self.total_bytes, 1.0) * 100, 2)


@dataclass
class ParseEvent:
    """One item of a parser's event stream.

    Attributes:
        type: One of 'meta', 'members', 'messages', 'progress', 'done'
        data: ParsedMeta, List[ParsedMember], List[ParsedMessage],
            ParseProgress, or a dict of final counts respectively
    """

    type: str
    data: Any


@dataclass
class ParseResult:
    """A fully materialized parse: meta, members and messages."""

    meta: ParsedMeta
    members: List[ParsedMember] = field(default_factory=list)
    messages: List[ParsedMessage] = field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def member_count(self) -> int:
        return len(self.members)


@dataclass
class FileParseInfo:
    """Summary of a parsed file, used for previews before merging."""

    name: str
    format: str
    platform: ChatPlatform
    message_count: int
    member_count: int


@dataclass
class MergeConflict:
    """Two sources disagreeing about what looks like the same message.

    Attributes:
        id: Stable identifier "conflict_{timestamp}_{sender}_{ordinal}"
        timestamp: Shared timestamp of the conflicting messages
        sender_platform_id: Shared sender id
        sender: Sender display name (falls back to the id)
        content_length1: Content length of the first side
        content_length2: Content length of the second side
        content1: Content of the first side
        content2: Content of the second side
        source1: Filename contributing the first side
        source2: Filename contributing the second side
    """

    id: str
    timestamp: int
    sender_platform_id: str
    sender: str
    content_length1: int
    content_length2: int
    content1: str
    content2: str
    source1: str = ""
    source2: str = ""


@dataclass
class ConflictResolution:
    """User decision for one conflict: 'keep1', 'keep2' or 'keepBoth'."""

    id: str
    resolution: str

    KEEP_FIRST = "keep1"
    KEEP_SECOND = "keep2"
    KEEP_BOTH = "keepBoth"
    CHOICES = (KEEP_FIRST, KEEP_SECOND, KEEP_BOTH)


@dataclass
class MergeSource:
    """Provenance of one merged input file."""

    filename: str
    platform: str
    message_count: int


@dataclass
class ConflictCheckResult:
    """Outcome of a conflict check over several files."""

    success: bool
    conflicts: List[MergeConflict] = field(default_factory=list)
    total_messages: int = 0
    error: Optional[str] = None


@dataclass
class MergeParams:
    """Inputs for a merge.

    Attributes:
        file_paths: Export files, merged in this order
        output_name: Conversation name for the merged archive
        output_dir: Target directory (default: configured output directory)
        conflict_resolutions: Decisions for conflicts reported by a check
        and_analyze: Import the merged archive into the session store
    """

    file_paths: List[Path]
    output_name: str
    output_dir: Optional[Path] = None
    conflict_resolutions: List[ConflictResolution] = field(default_factory=list)
    and_analyze: bool = False


@dataclass
class MergeResult:
    """Outcome of a merge."""

    success: bool
    output_path: Optional[Path] = None
    session_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TimeFilter:
    """Inclusive timestamp range (Unix seconds) for analytics queries."""

    start_ts: Optional[int] = None
    end_ts: Optional[int] = None


# =============================================================================
# Analytics results
# =============================================================================


@dataclass
class RankItem:
    """A member's count with its share of a total."""

    member_id: int
    platform_id: str
    name: str
    count: int
    percentage: float


@dataclass
class RateItem:
    """A member's count relative to their own message total."""

    member_id: int
    platform_id: str
    name: str
    count: int
    total_messages: int
    rate: float


@dataclass
class HotContent:
    """A frequently repeated content."""

    content: str
    count: int
    max_chain_length: int
    originator_name: str
    last_ts: int


@dataclass
class RepeatAnalysis:
    """Repeat-chain ("echo") statistics for a session."""

    originators: List[RankItem] = field(default_factory=list)
    initiators: List[RankItem] = field(default_factory=list)
    breakers: List[RankItem] = field(default_factory=list)
    originator_rates: List[RateItem] = field(default_factory=list)
    initiator_rates: List[RateItem] = field(default_factory=list)
    breaker_rates: List[RateItem] = field(default_factory=list)
    chain_length_distribution: List[Tuple[int, int]] = field(default_factory=list)
    hot_contents: List[HotContent] = field(default_factory=list)
    avg_chain_length: float = 0.0
    total_repeat_chains: int = 0


@dataclass
class Catchphrase:
    content: str
    count: int


@dataclass
class MemberCatchphrases:
    """A member's most frequent distinct texts."""

    member_id: int
    platform_id: str
    name: str
    catchphrases: List[Catchphrase] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(c.count for c in self.catchphrases)


@dataclass
class CatchphraseAnalysis:
    members: List[MemberCatchphrases] = field(default_factory=list)


@dataclass
class NightOwlItem:
    """A member's late-night activity.

    hourly_breakdown has the keys h23, h0, h1, h2 and h3to4.
    """

    member_id: int
    platform_id: str
    name: str
    total_night_messages: int
    title: str
    hourly_breakdown: Dict[str, int]
    percentage: float


@dataclass
class SpeakerTimeItem:
    """How often a member closes (or opens) the day, and at what time."""

    member_id: int
    platform_id: str
    name: str
    count: int
    avg_time: str
    extreme_time: str
    percentage: float


@dataclass
class ConsecutiveRecord:
    member_id: int
    platform_id: str
    name: str
    max_consecutive_days: int
    current_streak: int


@dataclass
class NightOwlChampion:
    member_id: int
    platform_id: str
    name: str
    score: int
    night_messages: int
    last_speaker_count: int
    consecutive_days: int


@dataclass
class NightOwlAnalysis:
    """Sleep-pattern rankings for a session."""

    night_owl_rank: List[NightOwlItem] = field(default_factory=list)
    last_speaker_rank: List[SpeakerTimeItem] = field(default_factory=list)
    first_speaker_rank: List[SpeakerTimeItem] = field(default_factory=list)
    consecutive_records: List[ConsecutiveRecord] = field(default_factory=list)
    champions: List[NightOwlChampion] = field(default_factory=list)
    total_days: int = 0


@dataclass
class DragonKingAnalysis:
    """Daily most-active member ("dragon king") ranking."""

    rank: List[RankItem] = field(default_factory=list)
    total_days: int = 0


@dataclass
class DivingItem:
    member_id: int
    platform_id: str
    name: str
    last_message_ts: int
    days_since_last_message: int


@dataclass
class DivingAnalysis:
    """Members ordered from longest silent to most recently active."""

    rank: List[DivingItem] = field(default_factory=list)


@dataclass
class MonologueItem:
    member_id: int
    platform_id: str
    name: str
    total_streaks: int
    max_combo: int
    low_streak: int
    mid_streak: int
    high_streak: int


@dataclass
class MaxComboRecord:
    member_id: int
    platform_id: str
    member_name: str
    combo_length: int
    start_ts: int


@dataclass
class MonologueAnalysis:
    """Self-reply streak statistics for a session."""

    rank: List[MonologueItem] = field(default_factory=list)
    max_combo_record: Optional[MaxComboRecord] = None


@dataclass
class MemberActivity:
    member_id: int
    platform_id: str
    name: str
    message_count: int
    percentage: float
