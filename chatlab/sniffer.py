"""Format sniffing for ChatLab.

The sniffer decides which parser handles a file by looking only at a bounded
prefix of it (SNIFF_HEAD_SIZE bytes), so classification stays cheap for
multi-gigabyte exports:

1. The file extension must be one the descriptor accepts
2. If head patterns are declared, at least one must match the prefix
3. If required fields are declared, each must appear as a JSON key
4. If field patterns are declared, all must match the prefix

The first descriptor (in priority order) passing every declared check wins.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Union

from .constants import SNIFF_HEAD_SIZE
from .errors import UnrecognizedFormatError
from .models import FormatDescriptor
from .registry import FormatModule, FormatRegistry, default_registry

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def read_file_head(file_path: PathLike, size: int = SNIFF_HEAD_SIZE) -> str:
    """Read at most size bytes from the start of a file as text.

    Bytes that are not valid UTF-8 (including a multi-byte character cut
    at the boundary) are replaced rather than raising.
    """
    with open(file_path, "rb") as f:
        head = f.read(size)
    return head.decode("utf-8", errors="replace")


def _matches_head(head: str, patterns) -> bool:
    return any(pattern.search(head) for pattern in patterns)


def _matches_required_fields(head: str, fields) -> bool:
    # A probe against the raw prefix, not a parse: "field" used as a key,
    # or at least quoted somewhere in the head
    for name in fields:
        quoted = f'"{name}"'
        if re.search(re.escape(quoted) + r"\s*:", head) is None and quoted not in head:
            return False
    return True


def matches_descriptor(descriptor: FormatDescriptor, extension: str, head: str) -> bool:
    """Check one descriptor against a file's extension and head text."""
    if extension not in descriptor.extensions:
        return False

    if descriptor.head_patterns and not _matches_head(head, descriptor.head_patterns):
        return False

    if descriptor.required_fields and not _matches_required_fields(
        head, descriptor.required_fields
    ):
        return False

    for pattern in descriptor.field_patterns.values():
        if not pattern.search(head):
            return False

    return True


class FormatSniffer:
    """Selects the format module for a file using a FormatRegistry.

    Example:
        >>> sniffer = FormatSniffer()
        >>> descriptor = sniffer.detect("group_export.json")
        >>> descriptor.id if descriptor else "unrecognized"
        'shuakami-qq-exporter-v4'
    """

    def __init__(self, registry: Optional[FormatRegistry] = None):
        self.registry = registry if registry is not None else default_registry()

    def _match(self, file_path: PathLike) -> Optional[FormatModule]:
        path = Path(file_path)
        extension = path.suffix.lower()
        head = read_file_head(path)

        for module in self.registry:
            if matches_descriptor(module.descriptor, extension, head):
                logger.debug("Sniffed %s as %s", path.name, module.id)
                return module

        logger.debug("No format matched %s", path.name)
        return None

    def detect(self, file_path: PathLike) -> Optional[FormatDescriptor]:
        """Detect a file's format.

        Args:
            file_path: File to classify

        Returns:
            Matching FormatDescriptor, or None if the format is unrecognized
        """
        module = self._match(file_path)
        return module.descriptor if module else None

    def get_parser(self, file_path: PathLike) -> Optional[FormatModule]:
        """Get the format module (descriptor + parser) for a file, or None."""
        return self._match(file_path)

    def get_parser_by_id(self, format_id: str) -> Optional[FormatModule]:
        return self.registry.get(format_id)

    def supported_formats(self) -> List[FormatDescriptor]:
        return self.registry.descriptors

    def require(self, file_path: PathLike) -> FormatModule:
        """Like get_parser(), but raise when nothing matches.

        Raises:
            UnrecognizedFormatError: If no registered format matches
        """
        module = self._match(file_path)
        if module is None:
            raise UnrecognizedFormatError(
                str(file_path), [d.name for d in self.supported_formats()]
            )
        return module
