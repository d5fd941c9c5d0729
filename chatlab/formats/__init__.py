"""Built-in export formats.

Each module exposes MODULE, a FormatModule registered by
chatlab.registry.default_registry().
"""

from .base import ParseOptions, ParseState

__all__ = ["ParseOptions", "ParseState"]
