"""Runtime configuration for ChatLab.

Settings are read from environment variables so that the CLI, tests and
embedding applications can point ChatLab at different data directories or
time zones without code changes:

    CHATLAB_HOME          Data root (default: ~/.chatlab)
    CHATLAB_SESSIONS_DIR  Where session databases live (default: $CHATLAB_HOME/sessions)
    CHATLAB_OUTPUT_DIR    Where merged archives are written
    CHATLAB_TIMEZONE      IANA zone used for day/hour bucketing (default: UTC)
    CHATLAB_BATCH_SIZE    Messages per parser batch (default: 5000)
"""

import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .constants import DEFAULT_BATCH_SIZE

DEFAULT_TIMEZONE = "UTC"


def get_default_output_dir() -> Path:
    """Get the default directory for merged archives.

    Returns:
        ~/Documents/ChatLab/merged, or ./merged when the home directory
        cannot be resolved
    """
    try:
        return Path.home() / "Documents" / "ChatLab" / "merged"
    except RuntimeError:
        return Path.cwd() / "merged"


def resolve_timezone(tz: Union[str, tzinfo, None]) -> tzinfo:
    """Turn a zone name (or None) into a tzinfo.

    Args:
        tz: IANA zone name, tzinfo instance, or None for the configured zone

    Returns:
        A tzinfo instance

    Raises:
        zoneinfo.ZoneInfoNotFoundError: If the zone name is unknown
    """
    if tz is None:
        tz = get_settings().timezone
    if isinstance(tz, tzinfo):
        return tz
    return ZoneInfo(tz)


@dataclass
class Settings:
    """Resolved ChatLab settings.

    Attributes:
        home: Data root directory
        sessions_dir: Directory holding one SQLite database per session
        output_dir: Default directory for merged archives
        timezone: IANA zone name for calendar bucketing
        batch_size: Messages per parser batch
    """

    home: Path
    sessions_dir: Path
    output_dir: Path
    timezone: str = DEFAULT_TIMEZONE
    batch_size: int = DEFAULT_BATCH_SIZE

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from CHATLAB_* environment variables."""
        home = Path(os.getenv("CHATLAB_HOME") or Path.home() / ".chatlab").expanduser()
        sessions_dir = os.getenv("CHATLAB_SESSIONS_DIR")
        output_dir = os.getenv("CHATLAB_OUTPUT_DIR")

        return cls(
            home=home,
            sessions_dir=Path(sessions_dir).expanduser() if sessions_dir else home / "sessions",
            output_dir=Path(output_dir).expanduser() if output_dir else get_default_output_dir(),
            timezone=os.getenv("CHATLAB_TIMEZONE") or DEFAULT_TIMEZONE,
            batch_size=int(os.getenv("CHATLAB_BATCH_SIZE") or DEFAULT_BATCH_SIZE),
        )


def get_settings(refresh: bool = False) -> Settings:
    """Get the process-wide settings, loading them on first use.

    Args:
        refresh: Re-read the environment even if settings are cached

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None or refresh:
        _settings = Settings.from_env()
    return _settings


_settings: Optional[Settings] = None
