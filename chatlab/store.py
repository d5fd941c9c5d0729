"""Session store for ChatLab.

Each imported conversation is a "session": one SQLite database at
{root}/{session_id}.db holding three tables:

    meta(name, platform, type, imported_at)
    member(id, platform_id UNIQUE, name, aliases)
    message(id, sender_id, ts, type, content)   -- indexed on ts

The store is written through SQLAlchemy Core. Analytics read it through a
SessionReader obtained from the session() context manager, which always
closes the connection and disposes the engine.
"""

import json
import logging
import re
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    text,
)
from sqlalchemy.engine import Connection, Engine

from .config import get_settings
from .errors import SessionNotFoundError
from .models import ParsedMember, ParseEvent, ParseResult

logger = logging.getLogger(__name__)

_SESSION_ID = re.compile(r"[0-9a-f]{32}")

metadata = MetaData()

meta_table = Table(
    "meta",
    metadata,
    Column("name", String, nullable=False),
    Column("platform", String, nullable=False),
    Column("type", String, nullable=False),
    Column("imported_at", Integer, nullable=False),
)

member_table = Table(
    "member",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("platform_id", String, nullable=False, unique=True),
    Column("name", String, nullable=False),
    Column("aliases", Text, nullable=False, default="[]"),  # JSON list
)

message_table = Table(
    "message",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sender_id", Integer, ForeignKey("member.id"), nullable=False),
    Column("ts", Integer, nullable=False, index=True),
    Column("type", Integer, nullable=False),
    Column("content", Text, nullable=True),
)


def create_db_engine(db_path: Path) -> Engine:
    """Engine for one session database file."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        future=True,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False},
    )


class SessionReader:
    """Read-only access to one session database."""

    def __init__(self, session_id: str, connection: Connection):
        self.session_id = session_id
        self.connection = connection

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a SELECT and return rows as dicts."""
        result = self.connection.execute(text(sql), params or {})
        return [dict(row._mapping) for row in result]

    def scalar(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Run a SELECT and return the first column of the first row."""
        return self.connection.execute(text(sql), params or {}).scalar()

    def meta(self) -> Optional[Dict[str, Any]]:
        rows = self.query("SELECT name, platform, type, imported_at FROM meta LIMIT 1")
        return rows[0] if rows else None

    def members(self) -> List[Dict[str, Any]]:
        rows = self.query("SELECT id, platform_id, name, aliases FROM member ORDER BY id")
        for row in rows:
            row["aliases"] = json.loads(row["aliases"] or "[]")
        return rows


class _Importer:
    """Writes one event stream into an open transaction."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self.member_ids: Dict[str, int] = {}
        self.message_count = 0
        self.has_meta = False

    def handle(self, event: ParseEvent) -> None:
        if event.type == "meta":
            meta = event.data
            self.connection.execute(
                meta_table.insert().values(
                    name=meta.name,
                    platform=meta.platform.value,
                    type=meta.type.value,
                    imported_at=int(time.time()),
                )
            )
            self.has_meta = True
        elif event.type == "members":
            for member in event.data:
                self.upsert_member(member)
        elif event.type == "messages":
            self.insert_messages(event.data)

    def upsert_member(self, member: ParsedMember) -> int:
        aliases = json.dumps(list(member.aliases), ensure_ascii=False)
        member_id = self.member_ids.get(member.platform_id)
        if member_id is not None:
            self.connection.execute(
                member_table.update()
                .where(member_table.c.id == member_id)
                .values(name=member.name, aliases=aliases)
            )
            return member_id

        result = self.connection.execute(
            member_table.insert().values(
                platform_id=member.platform_id, name=member.name, aliases=aliases
            )
        )
        member_id = result.inserted_primary_key[0]
        self.member_ids[member.platform_id] = member_id
        return member_id

    def insert_messages(self, messages) -> None:
        rows = []
        for message in messages:
            sender_id = self.member_ids.get(message.sender_platform_id)
            if sender_id is None:
                sender_id = self.upsert_member(
                    ParsedMember(
                        platform_id=message.sender_platform_id, name=message.sender_name
                    )
                )
            rows.append(
                {
                    "sender_id": sender_id,
                    "ts": message.timestamp,
                    "type": int(message.type),
                    "content": message.content,
                }
            )
        if rows:
            self.connection.execute(message_table.insert(), rows)
            self.message_count += len(rows)


class SessionStore:
    """Directory of session databases.

    Example:
        >>> store = SessionStore()
        >>> session_id = store.import_events(stream_file("export.json"))
        >>> with store.session(session_id) as reader:
        ...     reader.scalar("SELECT COUNT(*) FROM message")
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else get_settings().sessions_dir

    def path_for(self, session_id: str) -> Path:
        return self.root / f"{session_id}.db"

    def exists(self, session_id: str) -> bool:
        return bool(_SESSION_ID.fullmatch(session_id)) and self.path_for(session_id).exists()

    def import_events(self, events: Iterable[ParseEvent]) -> str:
        """Stream a parser's events into a new session.

        Returns:
            The new session id

        Raises:
            Whatever the event stream raises; the partial database is removed
        """
        session_id = uuid.uuid4().hex
        db_path = self.path_for(session_id)
        engine = create_db_engine(db_path)
        try:
            metadata.create_all(engine)
            with engine.begin() as connection:
                importer = _Importer(connection)
                for event in events:
                    importer.handle(event)
                if not importer.has_meta:
                    raise ValueError("Event stream ended without a meta event")
        except Exception:
            engine.dispose()
            db_path.unlink(missing_ok=True)
            raise
        engine.dispose()

        logger.info(
            "Imported session %s: %d members, %d messages",
            session_id,
            len(importer.member_ids),
            importer.message_count,
        )
        return session_id

    def import_result(self, result: ParseResult) -> str:
        """Store a fully parsed result as a new session."""
        return self.import_events(
            [
                ParseEvent("meta", result.meta),
                ParseEvent("members", result.members),
                ParseEvent("messages", result.messages),
            ]
        )

    @contextmanager
    def session(self, session_id: str) -> Iterator[SessionReader]:
        """Open a session for reading.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        if not self.exists(session_id):
            raise SessionNotFoundError(session_id)
        db_path = self.path_for(session_id)

        engine = create_db_engine(db_path)
        try:
            with engine.connect() as connection:
                yield SessionReader(session_id, connection)
        finally:
            engine.dispose()

    def list_sessions(self) -> List[Dict[str, Any]]:
        """Summaries of every stored session, newest first."""
        if not self.root.exists():
            return []

        sessions = []
        for db_path in self.root.glob("*.db"):
            if not _SESSION_ID.fullmatch(db_path.stem):
                continue
            with self.session(db_path.stem) as reader:
                meta = reader.meta() or {}
                sessions.append(
                    {
                        "id": db_path.stem,
                        "name": meta.get("name", ""),
                        "platform": meta.get("platform", ""),
                        "type": meta.get("type", ""),
                        "imported_at": meta.get("imported_at", 0),
                        "message_count": reader.scalar("SELECT COUNT(*) FROM message"),
                        "member_count": reader.scalar("SELECT COUNT(*) FROM member"),
                    }
                )
        sessions.sort(key=lambda s: s["imported_at"], reverse=True)
        return sessions

    def delete_session(self, session_id: str) -> None:
        """Remove a session's database.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        if not self.exists(session_id):
            raise SessionNotFoundError(session_id)
        db_path = self.path_for(session_id)
        db_path.unlink()
        logger.info("Deleted session %s", session_id)
