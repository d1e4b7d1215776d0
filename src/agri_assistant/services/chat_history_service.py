"""Chat history persistence service.

Stores users (with their farmer profile), chats and messages in a SQLite
database. Messages are append-only; each turn's (user, assistant) pair is
written in a single transaction so a conversation never ends with an
unanswered user message.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from agri_assistant.application.exceptions import ConversationNotFoundError, PersistenceError
from agri_assistant.domain.models import Chat, ChatSummary, Message, UserProfile

TITLE_CHARS = 80

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT,
    location TEXT,
    field_size TEXT,
    crops_grown TEXT DEFAULT '[]',
    climate TEXT,
    farming_strategy TEXT DEFAULT '[]',
    soil_type TEXT,
    irrigation_method TEXT,
    profile_completed BOOLEAN DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS chats (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    title TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    chat_id TEXT NOT NULL REFERENCES chats(id),
    role TEXT NOT NULL CHECK(role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    files TEXT DEFAULT '[]',
    has_files BOOLEAN DEFAULT 0,
    document_data TEXT
);

CREATE INDEX IF NOT EXISTS idx_messages_chat_id ON messages(chat_id);
CREATE INDEX IF NOT EXISTS idx_chats_user_id ON chats(user_id);
"""


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _utcnow() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


def _title_from(content: str) -> str:
    title = content[:TITLE_CHARS].strip()
    if len(content) > TITLE_CHARS:
        title += "..."
    return title


def _json_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Translate sqlite3 failures into PersistenceError."""
    try:
        yield
    except sqlite3.Error as exc:
        logger.error("Chat history DB error | action={} | error={}", action, exc)
        raise PersistenceError(f"failed to {action}: {exc}") from exc


class ChatHistoryService:
    """Conversation and profile storage in a dedicated SQLite file.

    Implements both ``IConversationStore`` and ``IProfileStore``.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open (or create) the database and ensure the schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.executescript(_SCHEMA_SQL)
        self.conn.commit()
        logger.info("Chat history DB ready at {}", self.db_path)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------
    # Users and profiles
    # ------------------------------------------------------------------

    def ensure_user(self, user_id: str) -> None:
        """Create a placeholder user row (empty profile) if none exists."""
        assert self.conn
        with _storage_errors("ensure user"), self.conn:
            self.conn.execute(
                "INSERT OR IGNORE INTO users (id, created_at) VALUES (?, ?)",
                (user_id, _utcnow()),
            )

    def save_profile(self, user_id: str, profile: UserProfile) -> None:
        """Insert or replace the farmer profile for *user_id*.

        Profile editing belongs to a separate subsystem; this exists for
        seeding and tests.
        """
        assert self.conn
        with _storage_errors("save profile"), self.conn:
            self.conn.execute(
                """
                INSERT INTO users (id, username, location, field_size, crops_grown, climate,
                                   farming_strategy, soil_type, irrigation_method,
                                   profile_completed, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    username = excluded.username,
                    location = excluded.location,
                    field_size = excluded.field_size,
                    crops_grown = excluded.crops_grown,
                    climate = excluded.climate,
                    farming_strategy = excluded.farming_strategy,
                    soil_type = excluded.soil_type,
                    irrigation_method = excluded.irrigation_method,
                    profile_completed = excluded.profile_completed
                """,
                (
                    user_id,
                    profile.username,
                    profile.location,
                    profile.field_size,
                    json.dumps(profile.crops_grown),
                    profile.climate,
                    json.dumps(profile.farming_strategy),
                    profile.soil_type,
                    profile.irrigation_method,
                    1 if profile.profile_completed else 0,
                    _utcnow(),
                ),
            )

    def get_user_profile(self, user_id: str) -> UserProfile | None:
        """Return the user's profile, or None for an unknown user."""
        assert self.conn
        with _storage_errors("load profile"):
            row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            return None
        return UserProfile(
            username=row["username"],
            location=row["location"],
            field_size=row["field_size"],
            crops_grown=_json_list(row["crops_grown"]),
            climate=row["climate"],
            farming_strategy=_json_list(row["farming_strategy"]),
            soil_type=row["soil_type"],
            irrigation_method=row["irrigation_method"],
            profile_completed=bool(row["profile_completed"]),
        )

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def get_chat(self, chat_id: str) -> Chat | None:
        """Return a chat by ID, or None if not found."""
        assert self.conn
        with _storage_errors("load chat"):
            row = self.conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
        if not row:
            return None
        return Chat(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_owned_chat(self, chat_id: str, user_id: str) -> Chat:
        """Return *chat_id* if it exists and belongs to *user_id*.

        Raises:
            ConversationNotFoundError: Unknown chat, or owned by someone else.
        """
        chat = self.get_chat(chat_id)
        if chat is None or chat.user_id != user_id:
            raise ConversationNotFoundError(chat_id)
        return chat

    def get_or_create_chat(self, chat_id: str | None, user_id: str) -> Chat:
        """Return the caller's existing chat or create a new one.

        If *chat_id* is ``None``, a brand-new chat is created. An existing
        chat owned by another user is reported as not found.
        """
        assert self.conn

        if chat_id:
            chat = self.get_chat(chat_id)
            if chat:
                if chat.user_id != user_id:
                    raise ConversationNotFoundError(chat_id)
                return chat

        new_id = chat_id or str(uuid.uuid4())
        now = _utcnow()
        self.ensure_user(user_id)
        with _storage_errors("create chat"), self.conn:
            self.conn.execute(
                "INSERT INTO chats (id, user_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (new_id, user_id, None, now, now),
            )
        logger.info("Created new chat {}", new_id)
        return Chat(id=new_id, user_id=user_id, title=None, created_at=now, updated_at=now)

    def delete_chat_if_empty(self, chat_id: str) -> bool:
        """Delete *chat_id* when it holds no messages. Returns True if a row was removed."""
        assert self.conn
        with _storage_errors("delete chat"), self.conn:
            cur = self.conn.execute(
                "DELETE FROM chats WHERE id = ? AND NOT EXISTS (SELECT 1 FROM messages WHERE chat_id = ?)",
                (chat_id, chat_id),
            )
        if cur.rowcount:
            logger.info("Discarded empty chat {}", chat_id)
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def load_conversation(self, chat_id: str) -> list[Message]:
        """Return all messages in a chat in insertion order (empty for unknown chats)."""
        assert self.conn
        with _storage_errors("load conversation"):
            rows = self.conn.execute(
                "SELECT * FROM messages WHERE chat_id = ? ORDER BY seq ASC", (chat_id,)
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def append_messages(self, chat_id: str, messages: list[Message]) -> None:
        """Append *messages* atomically, titling the chat from its first user message."""
        assert self.conn
        if not messages:
            return
        with _storage_errors("append messages"), self.conn:
            self.conn.executemany(
                "INSERT INTO messages (id, chat_id, role, content, timestamp, files, has_files, document_data) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        str(uuid.uuid4()),
                        chat_id,
                        m.role,
                        m.content,
                        m.timestamp,
                        json.dumps(m.files),
                        1 if m.has_files else 0,
                        m.document_data,
                    )
                    for m in messages
                ],
            )
            first_user = next((m.content for m in messages if m.role == "user"), None)
            if first_user is not None:
                self.conn.execute(
                    "UPDATE chats SET title = ? WHERE id = ? AND title IS NULL",
                    (_title_from(first_user), chat_id),
                )
            self.conn.execute("UPDATE chats SET updated_at = ? WHERE id = ?", (_utcnow(), chat_id))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_user_chats(self, user_id: str) -> list[ChatSummary]:
        """Return all chats for a user, newest first, with message counts."""
        assert self.conn
        with _storage_errors("list chats"):
            rows = self.conn.execute(
                """
                SELECT c.id, c.title, c.created_at, c.updated_at,
                       COUNT(m.seq) AS message_count
                FROM chats c
                LEFT JOIN messages m ON m.chat_id = c.id
                WHERE c.user_id = ?
                GROUP BY c.id
                ORDER BY c.updated_at DESC, c.rowid DESC
                """,
                (user_id,),
            ).fetchall()
        return [
            ChatSummary(
                id=row["id"],
                title=row["title"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                message_count=row["message_count"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            role=row["role"],
            content=row["content"],
            timestamp=row["timestamp"],
            files=_json_list(row["files"]),
            has_files=bool(row["has_files"]),
            document_data=row["document_data"],
        )
