"""CLI interface for ChatLab.

This module provides the command-line interface for importing, merging and
analyzing exported chat histories. It uses Click for argument parsing and
Rich for terminal formatting.

Commands:
    formats: List the supported export formats
    detect: Detect the format of an export file
    parse: Preview the contents of an export file
    import: Import an export file into the session store
    sessions: List imported sessions
    conflicts: Check several exports for merge conflicts
    merge: Merge several exports into one ChatLab archive
    analyze: Run an analysis on an imported session
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfoNotFoundError

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from sparklines import sparklines

from . import __version__
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
from .config import get_settings, resolve_timezone
from .constants import (
    CONTENT_DISPLAY_LIMIT,
    DATETIME_FORMAT_FULL,
    DEFAULT_PARSE_LIMIT,
    DEFAULT_RANK_LIMIT,
)
from .errors import ChatLabError, get_user_friendly_error_message
from .formats.base import ParseOptions
from .merger import check_conflicts, merge_files
from .models import ConflictResolution, MergeParams, MessageType, TimeFilter
from .parser import stream_file
from .sniffer import FormatSniffer
from .store import SessionStore
from .utils import format_timestamp

__all__ = ["main"]

console = Console()
err_console = Console(stderr=True)

ANALYSES = [
    "repeat",
    "catchphrase",
    "night-owl",
    "dragon-king",
    "diving",
    "monologue",
    "activity",
]


def configure_logging(verbose: bool) -> None:
    """Route package logging through Rich (DEBUG with -v, else WARNING)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Truncate text to a maximum length with suffix.

    Args:
        text: The text to truncate
        limit: Maximum length before truncation
        suffix: String to append when truncated

    Returns:
        Original text if short enough, or truncated with suffix
    """
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def safe_sparkline(values: List[int]) -> Optional[str]:
    """Generate a sparkline string, returning None on failure.

    Wraps the sparklines library with error handling for edge cases
    like empty lists, single values, or invalid data.

    Args:
        values: List of integers to visualize

    Returns:
        Sparkline string or None if generation fails
    """
    if not values or len(values) < 2:
        return None
    try:
        result = sparklines(values)
        return result[0] if result else None
    except (ValueError, TypeError):
        return None


def _display_content(content: Optional[str], message_type: MessageType) -> str:
    if content is None:
        return f"[dim]<{message_type.name.lower()}>[/dim]"
    return escape(truncate(content.replace("\n", " "), CONTENT_DISPLAY_LIMIT))


def _echo_json(data) -> None:
    # Plain echo: Rich would wrap long lines and break the JSON
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _zone(tz: Optional[str]):
    try:
        return resolve_timezone(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise click.BadParameter(f"Unknown timezone '{tz}'", param_hint="--tz")


def _parse_bound(value: Optional[str], zone, end: bool = False) -> Optional[int]:
    """Turn a --since/--until value into a Unix timestamp.

    Dates without a time cover the whole day: --until 2024-03-01 includes
    every message sent on March 1st.
    """
    if value is None:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Expected YYYY-MM-DD or an ISO datetime, got '{value}'")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone)
    if end and "T" not in value and " " not in value:
        dt += timedelta(days=1, seconds=-1)
    return int(dt.timestamp())


def _parse_resolution(value: str) -> ConflictResolution:
    conflict_id, sep, choice = value.rpartition("=")
    if not sep or not conflict_id or choice not in ConflictResolution.CHOICES:
        raise click.BadParameter(
            f"Expected ID=keep1|keep2|keepBoth, got '{value}'", param_hint="--resolve"
        )
    return ConflictResolution(id=conflict_id, resolution=choice)


# Example text for each command
EXAMPLES = {
    "formats": """
Examples:
  chatlab formats                            # List supported export formats
""",
    "detect": """
Examples:
  chatlab detect group.json                  # Detect the export format of a file
""",
    "parse": """
Examples:
  chatlab parse group.json                   # Preview the first messages
  chatlab parse group.json -n 50             # Preview 50 messages
  chatlab parse chat.txt --tz Asia/Shanghai  # TXT times are local wall-clock times
  chatlab parse group.json --raw             # Output messages as JSON lines
""",
    "import": """
Examples:
  chatlab import group.json                  # Import into a new session
  chatlab -v import group.json               # With debug logging
""",
    "sessions": """
Examples:
  chatlab sessions                           # List imported sessions
""",
    "conflicts": """
Examples:
  chatlab conflicts part1.json part2.json    # Show conflicting messages
  chatlab conflicts a.json b.json --tz Asia/Shanghai   # Local times
""",
    "merge": """
Examples:
  chatlab merge part1.json part2.json --name "Study Group"
  chatlab merge a.json b.json -N Team -o ./out           # Custom output directory
  chatlab merge a.json b.json -N Team --analyze          # Import the merged archive
  chatlab merge a.json b.json -N Team \\
      --resolve conflict_1700000000_10001_0=keep1          # Resolve a conflict
""",
    "analyze": """
Examples:
  chatlab analyze <session-id> repeat                      # Repeat chains
  chatlab analyze <session-id> night-owl --tz Asia/Shanghai
  chatlab analyze <session-id> dragon-king --since 2024-01-01 --until 2024-03-31
  chatlab analyze <session-id> catchphrase --format json   # JSON for scripting
""",
}


def show_examples(command: str) -> None:
    """Display example usage for a command."""
    if command in EXAMPLES:
        console.print(EXAMPLES[command])
    else:
        console.print(f"[yellow]No examples available for '{command}'[/yellow]")


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """Import, merge and analyze exported chat histories.

    Supports QQChatExporter JSON exports, QQ desktop TXT exports and
    ChatLab archives. Imported conversations are kept as sessions under
    $CHATLAB_HOME (default ~/.chatlab).
    """
    configure_logging(verbose)


@main.command()
@click.option("--example", is_flag=True, help="Show usage examples")
def formats(example: bool):
    """List the supported export formats in detection order."""
    if example:
        show_examples("formats")
        return

    table = Table(title="Supported Formats")
    table.add_column("Priority", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Platform")
    table.add_column("Extensions", style="yellow")

    for descriptor in FormatSniffer().supported_formats():
        table.add_row(
            str(descriptor.priority),
            descriptor.id,
            descriptor.name,
            descriptor.platform.value,
            ", ".join(descriptor.extensions),
        )

    console.print(table)


@main.command()
@click.argument("file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--example", is_flag=True, help="Show usage examples")
def detect(file: str, example: bool):
    """Detect the export format of FILE."""
    if example:
        show_examples("detect")
        return
    if not file:
        console.print("[red]Error: Missing argument 'FILE'[/red]")
        console.print("Use --example to see usage examples.")
        return

    descriptor = FormatSniffer().detect(file)
    if descriptor is None:
        console.print(f"[red]Unrecognized format: {escape(file)}[/red]")
        console.print("\nUse 'chatlab formats' to see supported formats.")
        return

    console.print(
        f"[bold]{escape(Path(file).name)}[/bold]: {descriptor.name} "
        f"[dim]({descriptor.id}, {descriptor.platform.value})[/dim]"
    )


@main.command()
@click.argument("file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--limit", "-n", default=DEFAULT_PARSE_LIMIT, help="Maximum messages to show")
@click.option("--tz", default=None, help="Timezone for local times (default: $CHATLAB_TIMEZONE)")
@click.option("--raw", is_flag=True, help="Output messages as JSON lines")
@click.option("--example", is_flag=True, help="Show usage examples")
def parse(file: str, limit: int, tz: Optional[str], raw: bool, example: bool):
    """Preview the conversation in FILE without importing it."""
    if example:
        show_examples("parse")
        return
    if not file:
        console.print("[red]Error: Missing argument 'FILE'[/red]")
        console.print("Use --example to see usage examples.")
        return

    try:
        zone = _zone(tz)
        options = ParseOptions(batch_size=get_settings().batch_size, timezone=zone)
        meta = None
        members = {}
        preview = []
        counts = {"message_count": 0, "member_count": 0}
        for event in stream_file(file, options):
            if event.type == "meta":
                meta = event.data
            elif event.type == "members":
                members.update((m.platform_id, m) for m in event.data)
            elif event.type == "messages" and len(preview) < limit:
                preview.extend(event.data[: limit - len(preview)])
            elif event.type == "done":
                counts = event.data
    except ChatLabError as e:
        raise click.ClickException(get_user_friendly_error_message(e))

    if raw:
        for message in preview:
            click.echo(
                json.dumps(
                    {
                        "sender": message.sender_platform_id,
                        "name": message.sender_name,
                        "timestamp": message.timestamp,
                        "type": int(message.type),
                        "content": message.content,
                    },
                    ensure_ascii=False,
                )
            )
        return

    console.print(
        Panel(
            f"[bold]Name:[/bold] {escape(meta.name)}\n"
            f"[bold]Platform:[/bold] {meta.platform.value}\n"
            f"[bold]Type:[/bold] {meta.type.value}\n"
            f"[bold]Members:[/bold] {counts['member_count']}\n"
            f"[bold]Messages:[/bold] {counts['message_count']}",
            title="Conversation",
        )
    )

    table = Table(title=f"First {len(preview)} messages")
    table.add_column("Time", style="yellow")
    table.add_column("Sender", style="cyan")
    table.add_column("Type", style="dim")
    table.add_column("Content")

    for message in preview:
        member = members.get(message.sender_platform_id)
        table.add_row(
            format_timestamp(message.timestamp, zone, DATETIME_FORMAT_FULL),
            escape(member.name if member else message.sender_name),
            message.type.name.lower(),
            _display_content(message.content, message.type),
        )

    console.print(table)


@main.command(name="import")
@click.argument("file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--tz", default=None, help="Timezone for local times (default: $CHATLAB_TIMEZONE)")
@click.option("--example", is_flag=True, help="Show usage examples")
def import_file(file: str, tz: Optional[str], example: bool):
    """Import FILE into a new session."""
    if example:
        show_examples("import")
        return
    if not file:
        console.print("[red]Error: Missing argument 'FILE'[/red]")
        console.print("Use --example to see usage examples.")
        return

    store = SessionStore()
    try:
        options = ParseOptions(batch_size=get_settings().batch_size, timezone=_zone(tz))
        with console.status(f"Importing {escape(Path(file).name)}..."):
            session_id = store.import_events(stream_file(file, options))
    except ChatLabError as e:
        raise click.ClickException(get_user_friendly_error_message(e))

    with store.session(session_id) as reader:
        message_count = reader.scalar("SELECT COUNT(*) FROM message")
        member_count = reader.scalar("SELECT COUNT(*) FROM member")

    console.print(
        f"[green]Imported[/green] {message_count} messages from {member_count} members"
    )
    console.print(f"[bold]Session:[/bold] {session_id}")


@main.command()
@click.option("--example", is_flag=True, help="Show usage examples")
def sessions(example: bool):
    """List imported sessions, newest first."""
    if example:
        show_examples("sessions")
        return

    all_sessions = SessionStore().list_sessions()
    if not all_sessions:
        console.print("[yellow]No sessions found.[/yellow]")
        console.print("\nUse 'chatlab import FILE' to import a conversation.")
        return

    table = Table(title=f"Sessions ({len(all_sessions)} total)")
    table.add_column("Session ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Platform")
    table.add_column("Messages", justify="right")
    table.add_column("Members", justify="right")
    table.add_column("Imported", style="yellow")

    for session in all_sessions:
        table.add_row(
            session["id"],
            escape(session["name"]),
            session["platform"],
            str(session["message_count"]),
            str(session["member_count"]),
            format_timestamp(session["imported_at"]),
        )

    console.print(table)


@main.command()
@click.argument("files", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option("--tz", default=None, help="Timezone for displayed times (default: $CHATLAB_TIMEZONE)")
@click.option("--example", is_flag=True, help="Show usage examples")
def conflicts(files: Tuple[str, ...], tz: Optional[str], example: bool):
    """Check FILES (exports of one conversation) for merge conflicts."""
    if example:
        show_examples("conflicts")
        return
    if len(files) < 2:
        console.print("[red]Error: At least two FILES are required[/red]")
        console.print("Use --example to see usage examples.")
        return

    zone = _zone(tz)
    result = check_conflicts([Path(f) for f in files])
    if not result.success:
        raise click.ClickException(result.error)

    console.print(f"[bold]Unique messages:[/bold] {result.total_messages}")
    if not result.conflicts:
        console.print("[green]No conflicts found.[/green]")
        return

    table = Table(title=f"Conflicts ({len(result.conflicts)} total)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Time", style="yellow")
    table.add_column("Sender", style="green")
    table.add_column("First")
    table.add_column("Second")

    for conflict in result.conflicts:
        table.add_row(
            conflict.id,
            format_timestamp(conflict.timestamp, zone, DATETIME_FORMAT_FULL),
            escape(conflict.sender),
            f"[dim]{escape(conflict.source1)}[/dim]\n"
            + escape(truncate(conflict.content1, CONTENT_DISPLAY_LIMIT)),
            f"[dim]{escape(conflict.source2)}[/dim]\n"
            + escape(truncate(conflict.content2, CONTENT_DISPLAY_LIMIT)),
        )

    console.print(table)
    console.print(
        "\n[dim]Resolve with: chatlab merge ... --resolve ID=keep1|keep2|keepBoth[/dim]"
    )


@main.command()
@click.argument("files", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option("--name", "-N", "output_name", default=None, help="Name of the merged conversation")
@click.option(
    "--output-dir",
    "-o",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory for the archive (default: $CHATLAB_OUTPUT_DIR)",
)
@click.option(
    "--resolve",
    "resolutions",
    multiple=True,
    help="Conflict resolution as ID=keep1|keep2|keepBoth (repeatable)",
)
@click.option("--analyze", is_flag=True, help="Import the merged archive as a session")
@click.option("--example", is_flag=True, help="Show usage examples")
def merge(
    files: Tuple[str, ...],
    output_name: Optional[str],
    output_dir: Optional[str],
    resolutions: Tuple[str, ...],
    analyze: bool,
    example: bool,
):
    """Merge FILES into one deduplicated ChatLab archive."""
    if example:
        show_examples("merge")
        return
    if len(files) < 2:
        console.print("[red]Error: At least two FILES are required[/red]")
        console.print("Use --example to see usage examples.")
        return
    if not output_name:
        console.print("[red]Error: Missing option '--name'[/red]")
        console.print("Use --example to see usage examples.")
        return

    params = MergeParams(
        file_paths=[Path(f) for f in files],
        output_name=output_name,
        output_dir=Path(output_dir) if output_dir else None,
        conflict_resolutions=[_parse_resolution(r) for r in resolutions],
        and_analyze=analyze,
    )
    result = merge_files(params)
    if not result.success:
        raise click.ClickException(result.error)

    console.print(f"[green]Merged archive written to[/green] {escape(str(result.output_path))}")
    if result.session_id:
        console.print(f"[bold]Session:[/bold] {result.session_id}")


@main.command()
@click.argument("session_id", required=False)
@click.argument("analysis", required=False, type=click.Choice(ANALYSES))
@click.option("--since", default=None, help="Only messages from this date/time on")
@click.option("--until", default=None, help="Only messages up to this date/time")
@click.option("--tz", default=None, help="Timezone for day bucketing (default: $CHATLAB_TIMEZONE)")
@click.option("--limit", "-n", default=DEFAULT_RANK_LIMIT, help="Maximum rows per ranking")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.option("--example", is_flag=True, help="Show usage examples")
def analyze(
    session_id: Optional[str],
    analysis: Optional[str],
    since: Optional[str],
    until: Optional[str],
    tz: Optional[str],
    limit: int,
    output_format: str,
    example: bool,
):
    """Run ANALYSIS on the session SESSION_ID.

    ANALYSIS is one of: repeat, catchphrase, night-owl, dragon-king, diving,
    monologue, activity.
    """
    if example:
        show_examples("analyze")
        return
    if not session_id or not analysis:
        console.print("[red]Error: Missing argument 'SESSION_ID' or 'ANALYSIS'[/red]")
        console.print("Use --example to see usage examples.")
        return

    zone = _zone(tz)
    time_filter = TimeFilter(
        start_ts=_parse_bound(since, zone), end_ts=_parse_bound(until, zone, end=True)
    )
    store = SessionStore()

    try:
        if analysis == "activity":
            members = get_member_activity(store, session_id, time_filter, tz=zone)
            daily = get_daily_activity(store, session_id, time_filter, tz=zone)
            if output_format == "json":
                _echo_json(
                    {
                        "members": [asdict(m) for m in members],
                        "daily": [{"date": d.isoformat(), "count": c} for d, c in daily],
                    }
                )
            else:
                _display_activity(members, daily, limit)
            return

        function, display = ANALYSIS_HANDLERS[analysis]
        result = function(store, session_id, time_filter, tz=zone)
    except ChatLabError as e:
        raise click.ClickException(get_user_friendly_error_message(e))

    if output_format == "json":
        _echo_json(asdict(result))
    else:
        display(result, limit, zone)


# =============================================================================
# Analysis display
# =============================================================================


def _rank_table(title: str, items, limit: int, count_label: str = "Count") -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Member", style="cyan")
    table.add_column(count_label, justify="right", style="green")
    table.add_column("%", justify="right")
    for index, item in enumerate(items[:limit], 1):
        table.add_row(str(index), escape(item.name), str(item.count), f"{item.percentage:.2f}")
    return table


def _display_repeat(result, limit: int, zone) -> None:
    if not result.total_repeat_chains:
        console.print("[yellow]No repeat chains found.[/yellow]")
        return

    distribution = " ".join(f"{length}×{count}" for length, count in result.chain_length_distribution)
    console.print(
        Panel(
            f"[bold]Repeat chains:[/bold] {result.total_repeat_chains}\n"
            f"[bold]Average length:[/bold] {result.avg_chain_length:.2f}\n"
            f"[bold]Length distribution:[/bold] {distribution}",
            title="Repeat Analysis",
        )
    )
    console.print(_rank_table("Originators", result.originators, limit))
    console.print(_rank_table("Initiators", result.initiators, limit))
    console.print(_rank_table("Breakers", result.breakers, limit))

    table = Table(title="Hot Contents")
    table.add_column("Content")
    table.add_column("Chains", justify="right", style="green")
    table.add_column("Longest", justify="right")
    table.add_column("Started by", style="cyan")
    table.add_column("Last", style="yellow")
    for hot in result.hot_contents[:limit]:
        table.add_row(
            escape(truncate(hot.content, CONTENT_DISPLAY_LIMIT)),
            str(hot.count),
            str(hot.max_chain_length),
            escape(hot.originator_name),
            format_timestamp(hot.last_ts, zone),
        )
    console.print(table)


def _display_catchphrase(result, limit: int, zone) -> None:
    if not result.members:
        console.print("[yellow]No catchphrases found.[/yellow]")
        return

    table = Table(title="Catchphrases")
    table.add_column("Member", style="cyan")
    table.add_column("Top phrases")
    for member in result.members[:limit]:
        phrases = ", ".join(
            f"{escape(truncate(c.content, 20))} [green]×{c.count}[/green]"
            for c in member.catchphrases
        )
        table.add_row(escape(member.name), phrases)
    console.print(table)


def _display_night_owl(result, limit: int, zone) -> None:
    if not result.total_days:
        console.print("[yellow]No messages in range.[/yellow]")
        return

    table = Table(title=f"Night Owls ({result.total_days} days)")
    table.add_column("Member", style="cyan")
    table.add_column("Night msgs", justify="right", style="green")
    table.add_column("Title", style="magenta")
    for hour in ("23", "0", "1", "2", "3-4"):
        table.add_column(hour, justify="right", style="dim")
    table.add_column("%", justify="right")
    for item in result.night_owl_rank[:limit]:
        breakdown = item.hourly_breakdown
        table.add_row(
            escape(item.name),
            str(item.total_night_messages),
            item.title,
            *(str(breakdown[k]) for k in ("h23", "h0", "h1", "h2", "h3to4")),
            f"{item.percentage:.2f}",
        )
    console.print(table)

    for title, items in (
        ("Last Speakers", result.last_speaker_rank),
        ("First Speakers", result.first_speaker_rank),
    ):
        speakers = Table(title=title)
        speakers.add_column("Member", style="cyan")
        speakers.add_column("Days", justify="right", style="green")
        speakers.add_column("Avg", justify="right")
        speakers.add_column("Extreme", justify="right", style="yellow")
        for item in items[:limit]:
            speakers.add_row(escape(item.name), str(item.count), item.avg_time, item.extreme_time)
        console.print(speakers)

    champions = Table(title="Champions")
    champions.add_column("Member", style="cyan")
    champions.add_column("Score", justify="right", style="green")
    champions.add_column("Night msgs", justify="right")
    champions.add_column("Last speaker", justify="right")
    champions.add_column("Streak", justify="right")
    for item in result.champions[:limit]:
        champions.add_row(
            escape(item.name),
            str(item.score),
            str(item.night_messages),
            str(item.last_speaker_count),
            str(item.consecutive_days),
        )
    console.print(champions)


def _display_dragon_king(result, limit: int, zone) -> None:
    if not result.rank:
        console.print("[yellow]No messages in range.[/yellow]")
        return
    console.print(
        _rank_table(f"Dragon Kings ({result.total_days} days)", result.rank, limit, "Days")
    )


def _display_diving(result, limit: int, zone) -> None:
    if not result.rank:
        console.print("[yellow]No messages in range.[/yellow]")
        return

    table = Table(title="Divers (longest silent first)")
    table.add_column("Member", style="cyan")
    table.add_column("Last message", style="yellow")
    table.add_column("Days silent", justify="right", style="green")
    for item in result.rank[:limit]:
        table.add_row(
            escape(item.name),
            format_timestamp(item.last_message_ts, zone),
            str(item.days_since_last_message),
        )
    console.print(table)


def _display_monologue(result, limit: int, zone) -> None:
    if not result.rank:
        console.print("[yellow]No monologues found.[/yellow]")
        return

    if result.max_combo_record:
        record = result.max_combo_record
        console.print(
            f"[bold]Longest monologue:[/bold] {escape(record.member_name)} sent "
            f"{record.combo_length} messages in a row at "
            f"{format_timestamp(record.start_ts, zone)}\n"
        )

    table = Table(title="Monologues")
    table.add_column("Member", style="cyan")
    table.add_column("Streaks", justify="right", style="green")
    table.add_column("Max", justify="right")
    table.add_column("3-4", justify="right", style="dim")
    table.add_column("5-9", justify="right", style="dim")
    table.add_column("10+", justify="right", style="dim")
    for item in result.rank[:limit]:
        table.add_row(
            escape(item.name),
            str(item.total_streaks),
            str(item.max_combo),
            str(item.low_streak),
            str(item.mid_streak),
            str(item.high_streak),
        )
    console.print(table)


def _display_activity(members, daily, limit: int) -> None:
    if not members:
        console.print("[yellow]No messages in range.[/yellow]")
        return

    table = Table(title="Member Activity")
    table.add_column("Member", style="cyan")
    table.add_column("Messages", justify="right", style="green")
    table.add_column("%", justify="right")
    for item in members[:limit]:
        table.add_row(escape(item.name), str(item.message_count), f"{item.percentage:.2f}")
    console.print(table)

    spark = safe_sparkline([count for _, count in daily])
    if spark:
        console.print(
            f"\n[bold]Daily activity[/bold] {daily[0][0]} → {daily[-1][0]}\n{spark}"
        )


ANALYSIS_HANDLERS = {
    "repeat": (get_repeat_analysis, _display_repeat),
    "catchphrase": (get_catchphrase_analysis, _display_catchphrase),
    "night-owl": (get_night_owl_analysis, _display_night_owl),
    "dragon-king": (get_dragon_king_analysis, _display_dragon_king),
    "diving": (get_diving_analysis, _display_diving),
    "monologue": (get_monologue_analysis, _display_monologue),
}


if __name__ == "__main__":
    main()
