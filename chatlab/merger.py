"""Multi-file merge engine for ChatLab.

Merging combines several exports of the same conversation into one
deduplicated timeline:

1. Every input must sniff to the same format (checked before any parsing)
2. Members are unified by platform id: first-seen name wins, later distinct
   names become aliases
3. Messages are deduplicated by fingerprint (timestamp, sender id, content
   length), keeping the first occurrence in source order
4. Conflict resolutions drop one side of a reported conflict
5. The result is sorted by timestamp and written as a ChatLab archive

A conflict is two sources reporting a message at the same second from the
same sender but with different content lengths. Conflicting messages never
share a fingerprint, so without a resolution both are kept.
"""

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from .archive import ChatLabArchive, resolve_output_path, write_archive
from .config import get_settings
from .constants import CONFLICT_LOG_LIMIT, CONFLICT_SNIPPET_LOG_LIMIT
from .errors import (
    FormatMismatchError,
    UnrecognizedFormatError,
    get_user_friendly_error_message,
)
from .formats import chatlab_archive
from .models import (
    ChatPlatform,
    ConflictCheckResult,
    ConflictResolution,
    MergeConflict,
    MergeParams,
    MergeResult,
    MergeSource,
    ParsedMember,
    ParsedMessage,
    ParsedMeta,
    ParseResult,
)
from .parser import collect_events, default_options
from .registry import FormatModule
from .sniffer import FormatSniffer
from .utils import format_timestamp

logger = logging.getLogger(__name__)

# (message, index of the source file in merge order)
Entry = Tuple[ParsedMessage, int]


def check_format_consistency(
    file_paths: Iterable[Path], sniffer: FormatSniffer
) -> List[FormatModule]:
    """Sniff every file and require a single shared format.

    Returns:
        The format module for each file, in input order

    Raises:
        UnrecognizedFormatError: If a file matches no format
        FormatMismatchError: If the files sniff to more than one format
    """
    modules = []
    for path in file_paths:
        module = sniffer.get_parser(path)
        if module is None:
            raise UnrecognizedFormatError(
                str(path),
                [d.name for d in sniffer.supported_formats()],
                message=f"Could not detect file format: {Path(path).name}",
            )
        modules.append(module)

    names = list(OrderedDict.fromkeys(m.name for m in modules))
    if len(names) > 1:
        raise FormatMismatchError(names)

    if names:
        logger.info("Format check passed: %s", names[0])
    return modules


class MergeAccumulator:
    """State for one merge or conflict check.

    Collects parse results in source order and derives members, conflicts
    and the deduplicated message list from them.
    """

    def __init__(self):
        self.entries: List[Entry] = []
        self.members: "OrderedDict[str, ParsedMember]" = OrderedDict()
        self.sources: List[MergeSource] = []
        self.metas: List[ParsedMeta] = []

    def add(self, result: ParseResult, source: str) -> None:
        """Add one parsed file.

        Files are told apart by the order they were added in, so two inputs
        sharing a basename still count as separate sources.
        """
        index = len(self.sources)
        self.metas.append(result.meta)
        self.sources.append(
            MergeSource(
                filename=source,
                platform=result.meta.platform.value,
                message_count=result.message_count,
            )
        )

        for member in result.members:
            existing = self.members.get(member.platform_id)
            if existing is None:
                self.members[member.platform_id] = ParsedMember(
                    platform_id=member.platform_id, name=member.name, aliases=[]
                )
                existing = self.members[member.platform_id]
                names = list(member.aliases)
            else:
                names = [member.name] + list(member.aliases)
            for name in names:
                if name != existing.name and name not in existing.aliases:
                    existing.aliases.append(name)

        for message in result.messages:
            self.entries.append((message, index))

    @property
    def unique_count(self) -> int:
        return len({message.fingerprint for message, _ in self.entries})

    @property
    def platform(self) -> ChatPlatform:
        platforms = {meta.platform for meta in self.metas}
        if len(platforms) == 1:
            return platforms.pop()
        return ChatPlatform.MIXED

    def find_conflicts(self) -> List[MergeConflict]:
        """Report same-second, same-sender messages whose lengths disagree.

        Groups whose entries all come from one file are skipped (several
        messages in one second is normal within a single export). For each
        pair of distinct lengths, every entry of both groups is searched for
        a cross-source pair, so the result does not depend on file order.
        """
        return [conflict for conflict, _ in self._conflict_pairs()]

    def _conflict_pairs(self) -> List[Tuple[MergeConflict, Tuple[int, int]]]:
        by_time: "OrderedDict[int, OrderedDict[str, List[Entry]]]" = OrderedDict()
        for entry in self.entries:
            message = entry[0]
            senders = by_time.setdefault(message.timestamp, OrderedDict())
            senders.setdefault(message.sender_platform_id, []).append(entry)

        found: List[Tuple[MergeConflict, Tuple[int, int]]] = []
        for ts, senders in by_time.items():
            for sender_id, items in senders.items():
                if len(items) < 2 or len({source for _, source in items}) < 2:
                    continue

                by_length: "OrderedDict[int, List[Entry]]" = OrderedDict()
                for entry in items:
                    by_length.setdefault(entry[0].content_length, []).append(entry)
                if len(by_length) < 2:
                    continue

                lengths = list(by_length.items())
                for i in range(len(lengths) - 1):
                    for j in range(i + 1, len(lengths)):
                        pair = _cross_source_pair(lengths[i][1], lengths[j][1])
                        if pair is None:
                            continue
                        (_, index1), (_, index2) = pair
                        conflict = _build_conflict(
                            ts,
                            sender_id,
                            pair,
                            (self.sources[index1].filename, self.sources[index2].filename),
                            len(found),
                        )
                        found.append((conflict, (index1, index2)))
        return found

    def merged_messages(
        self, resolutions: Iterable[ConflictResolution] = ()
    ) -> List[ParsedMessage]:
        """Deduplicate, apply resolutions and sort by timestamp."""
        dropped = self._dropped_keys(resolutions)

        seen: Set[Tuple[int, str, int]] = set()
        merged: List[ParsedMessage] = []
        for message, source in self.entries:
            if (message.fingerprint, source) in dropped:
                continue
            if message.fingerprint in seen:
                continue
            seen.add(message.fingerprint)
            merged.append(message)

        # sort() is stable: equal timestamps keep source/file order
        merged.sort(key=lambda m: m.timestamp)
        return merged

    def _dropped_keys(
        self, resolutions: Iterable[ConflictResolution]
    ) -> Set[Tuple[Tuple[int, str, int], int]]:
        resolutions = list(resolutions)
        if not resolutions:
            return set()

        conflicts = {
            conflict.id: (conflict, indexes) for conflict, indexes in self._conflict_pairs()
        }
        dropped = set()
        for resolution in resolutions:
            if resolution.id not in conflicts:
                logger.warning("Ignoring resolution for unknown conflict %s", resolution.id)
                continue
            conflict, (index1, index2) = conflicts[resolution.id]
            key = (conflict.timestamp, conflict.sender_platform_id)
            if resolution.resolution == ConflictResolution.KEEP_FIRST:
                dropped.add((key + (conflict.content_length2,), index2))
            elif resolution.resolution == ConflictResolution.KEEP_SECOND:
                dropped.add((key + (conflict.content_length1,), index1))
            elif resolution.resolution != ConflictResolution.KEEP_BOTH:
                raise ValueError(
                    f"Invalid resolution '{resolution.resolution}' for {resolution.id}; "
                    f"expected one of {', '.join(ConflictResolution.CHOICES)}"
                )
        return dropped


def _cross_source_pair(
    first: List[Entry], second: List[Entry]
) -> Optional[Tuple[Entry, Entry]]:
    for a in first:
        for b in second:
            if a[1] != b[1]:
                return a, b
    return None


def _build_conflict(
    ts: int,
    sender_id: str,
    pair: Tuple[Entry, Entry],
    filenames: Tuple[str, str],
    ordinal: int,
) -> MergeConflict:
    (first, _), (second, _) = pair
    source1, source2 = filenames
    if ordinal < CONFLICT_LOG_LIMIT:
        logger.info(
            "Conflict #%d at %s from %s (%s): %s [%d] %r vs %s [%d] %r",
            ordinal + 1,
            format_timestamp(ts),
            sender_id,
            first.sender_name,
            source1,
            first.content_length,
            (first.content or "")[:CONFLICT_SNIPPET_LOG_LIMIT],
            source2,
            second.content_length,
            (second.content or "")[:CONFLICT_SNIPPET_LOG_LIMIT],
        )
    return MergeConflict(
        id=f"conflict_{ts}_{sender_id}_{ordinal}",
        timestamp=ts,
        sender_platform_id=sender_id,
        sender=first.sender_name or sender_id,
        content_length1=first.content_length,
        content_length2=second.content_length,
        content1=first.content or "",
        content2=second.content or "",
        source1=source1,
        source2=source2,
    )


def _accumulate(
    file_paths: List[Path], sniffer: Optional[FormatSniffer]
) -> MergeAccumulator:
    sniffer = sniffer or FormatSniffer()
    logger.info("Merging inputs: %s", ", ".join(p.name for p in file_paths))
    modules = check_format_consistency(file_paths, sniffer)

    accumulator = MergeAccumulator()
    options = default_options()
    for path, module in zip(file_paths, modules):
        result = collect_events(module.parse(path, options))
        logger.info("Parsed %s: %d messages", path.name, result.message_count)
        accumulator.add(result, path.name)
    return accumulator


def check_conflicts(
    file_paths: Iterable[Path], sniffer: Optional[FormatSniffer] = None
) -> ConflictCheckResult:
    """Detect conflicts between several exports of one conversation.

    Args:
        file_paths: Export files, in merge order
        sniffer: Sniffer to use (default: built-in formats)

    Returns:
        ConflictCheckResult; failures are reported with success=False
    """
    paths = [Path(p) for p in file_paths]
    try:
        accumulator = _accumulate(paths, sniffer)
        conflicts = accumulator.find_conflicts()
        total = accumulator.unique_count
        logger.info(
            "Detected %d conflicts among %d messages (%d unique)",
            len(conflicts),
            len(accumulator.entries),
            total,
        )
        return ConflictCheckResult(success=True, conflicts=conflicts, total_messages=total)
    except Exception as e:
        logger.exception("Conflict check failed")
        return ConflictCheckResult(success=False, error=get_user_friendly_error_message(e))


def merge_files(
    params: MergeParams, sniffer: Optional[FormatSniffer] = None, store=None
) -> MergeResult:
    """Merge several exports into one ChatLab archive.

    Args:
        params: Files, output name/directory, resolutions and whether to
            import the result for analysis
        sniffer: Sniffer to use (default: built-in formats)
        store: SessionStore for and_analyze (default: configured store)

    Returns:
        MergeResult; failures are reported with success=False
    """
    paths = [Path(p) for p in params.file_paths]
    try:
        if not paths:
            raise ValueError("No files to merge")

        accumulator = _accumulate(paths, sniffer)
        messages = accumulator.merged_messages(params.conflict_resolutions)
        logger.info("Merged %d messages from %d files", len(messages), len(paths))

        archive = ChatLabArchive(
            meta=ParsedMeta(
                name=params.output_name,
                platform=accumulator.platform,
                type=accumulator.metas[0].type,
            ),
            members=list(accumulator.members.values()),
            messages=messages,
            sources=accumulator.sources,
        )

        target_dir = Path(params.output_dir) if params.output_dir else get_settings().output_dir
        output_path = write_archive(archive, resolve_output_path(target_dir, params.output_name))
        logger.info("Wrote %s", output_path)

        session_id = None
        if params.and_analyze:
            if store is None:
                from .store import SessionStore

                store = SessionStore()
            session_id = store.import_events(
                chatlab_archive.MODULE.parse(output_path, default_options())
            )

        return MergeResult(success=True, output_path=output_path, session_id=session_id)
    except Exception as e:
        logger.exception("Merge failed")
        return MergeResult(success=False, error=get_user_friendly_error_message(e))
