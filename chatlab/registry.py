"""Format registry for ChatLab.

Each supported export format is a FormatModule: a FormatDescriptor (how to
recognize the file) paired with a parse function (how to stream it). The
registry keeps modules ordered by descriptor priority so that the sniffer
can apply first-match-wins; formats with overlapping signatures must use a
lower priority number for the more specific one.

New formats are added by registering a module, never by editing the sniffer:

    >>> registry = default_registry()
    >>> registry.register(FormatModule(descriptor=my_descriptor, parse=my_parse))
"""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, List, Optional

from .models import FormatDescriptor, ParseEvent

if TYPE_CHECKING:
    from .formats.base import ParseOptions

ParseFunction = Callable[[Path, "ParseOptions"], Iterator[ParseEvent]]


@dataclass(frozen=True)
class FormatModule:
    """A descriptor bound to the parser implementation for its format."""

    descriptor: FormatDescriptor
    parse: ParseFunction

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name


class FormatRegistry:
    """Ordered collection of format modules (lowest priority number first)."""

    def __init__(self, modules: Optional[Iterable[FormatModule]] = None):
        self._modules: List[FormatModule] = []
        if modules:
            self.register_all(modules)

    def register(self, module: FormatModule) -> None:
        """Add a format module, keeping priority order.

        Raises:
            ValueError: If a module with the same id is already registered
        """
        if self.get(module.id) is not None:
            raise ValueError(f"Format '{module.id}' is already registered")
        self._modules.append(module)
        # sort() is stable, so equal priorities keep registration order
        self._modules.sort(key=lambda m: m.descriptor.priority)

    def register_all(self, modules: Iterable[FormatModule]) -> None:
        for module in modules:
            self.register(module)

    def get(self, format_id: str) -> Optional[FormatModule]:
        """Find a module by descriptor id."""
        for module in self._modules:
            if module.id == format_id:
                return module
        return None

    @property
    def formats(self) -> List[FormatModule]:
        return list(self._modules)

    @property
    def descriptors(self) -> List[FormatDescriptor]:
        return [m.descriptor for m in self._modules]

    def __iter__(self) -> Iterator[FormatModule]:
        return iter(list(self._modules))

    def __len__(self) -> int:
        return len(self._modules)


def builtin_formats() -> List[FormatModule]:
    """The format modules shipped with ChatLab."""
    from .formats import chatlab_archive, qq_exporter_legacy, qq_exporter_v4, qq_txt

    return [
        chatlab_archive.MODULE,
        qq_exporter_v4.MODULE,
        qq_exporter_legacy.MODULE,
        qq_txt.MODULE,
    ]


def default_registry() -> FormatRegistry:
    """Create a new registry holding every built-in format."""
    return FormatRegistry(builtin_formats())
