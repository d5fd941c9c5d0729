"""ChatLab - Import, merge and analyze exported chat histories.

This package normalizes chat exports from several tools into one model,
merges overlapping exports of the same conversation, stores conversations
as SQLite sessions and computes social statistics over them.

Modules:
    models: Data classes for formats, parsed records, merges and analyses
    formats: Streaming parsers, one module per export format
    registry: Format registry (descriptor + parser per format)
    sniffer: Format detection from a bounded file head
    parser: Convenience parsing entry points
    archive: ChatLab archive model and writer
    merger: Multi-file merge and conflict detection
    store: SQLite session store
    analytics: Social analyses over a stored session
    cli: Command-line interface

Example:
    >>> from chatlab import SessionStore, stream_file, get_dragon_king_analysis
    >>> store = SessionStore()
    >>> session_id = store.import_events(stream_file("group_export.json"))
    >>> for item in get_dragon_king_analysis(store, session_id).rank[:3]:
    ...     print(f"{item.name}: {item.count} days")
"""

__version__ = "0.1.0"

# Re-export commonly used symbols for convenience
from .analytics import (
    get_catchphrase_analysis,
    get_daily_activity,
    get_diving_analysis,
    get_dragon_king_analysis,
    get_member_activity,
    get_monologue_analysis,
    get_night_owl_analysis,
    get_repeat_analysis,
)
from .archive import ChatLabArchive, read_archive, write_archive
from .errors import (
    ChatLabError,
    FormatMismatchError,
    MalformedSourceError,
    SessionNotFoundError,
    UnrecognizedFormatError,
)
from .formats.base import ParseOptions
from .merger import check_conflicts, merge_files
from .models import (
    ChatPlatform,
    ChatType,
    ConflictResolution,
    FormatDescriptor,
    MergeConflict,
    MergeParams,
    MessageType,
    ParsedMember,
    ParsedMessage,
    ParsedMeta,
    ParseEvent,
    ParseResult,
    TimeFilter,
)
from .parser import detect_format, parse_file, parse_file_info, stream_file
from .registry import FormatModule, FormatRegistry, default_registry
from .sniffer import FormatSniffer
from .store import SessionStore

__all__ = [
    # Version
    "__version__",
    # Data models
    "ChatPlatform",
    "ChatType",
    "MessageType",
    "FormatDescriptor",
    "ParsedMeta",
    "ParsedMember",
    "ParsedMessage",
    "ParseEvent",
    "ParseResult",
    "MergeConflict",
    "MergeParams",
    "ConflictResolution",
    "TimeFilter",
    "ChatLabArchive",
    # Errors
    "ChatLabError",
    "UnrecognizedFormatError",
    "FormatMismatchError",
    "MalformedSourceError",
    "SessionNotFoundError",
    # Formats
    "FormatModule",
    "FormatRegistry",
    "FormatSniffer",
    "default_registry",
    "ParseOptions",
    # Parsing
    "detect_format",
    "stream_file",
    "parse_file",
    "parse_file_info",
    # Merging
    "check_conflicts",
    "merge_files",
    "read_archive",
    "write_archive",
    # Storage
    "SessionStore",
    # Analytics
    "get_repeat_analysis",
    "get_catchphrase_analysis",
    "get_night_owl_analysis",
    "get_dragon_king_analysis",
    "get_diving_analysis",
    "get_monologue_analysis",
    "get_member_activity",
    "get_daily_activity",
]
