"""SQLite-backed conversation storage."""

import asyncio
import sqlite3
import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Optional, List

from errors import ConversationNotFoundError
from .models import Conversation, ConversationTurn, ConversationSummary, InterfaceType, TimeRange
from .storage import ConversationStorage, new_id

logger = logging.getLogger(__name__)


class SQLiteConversationStorage(ConversationStorage):
    """SQLite-based persistent conversation storage.

    Turns live in a single table with a ``tier`` column; moving a turn to the
    archive flips the tier and stamps an archive sequence number so the
    archive preserves arrival order.
    """

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                interface_type TEXT NOT NULL,
                room_id TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                metadata TEXT,
                UNIQUE (room_id, interface_type)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS turns (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                conversation_id TEXT NOT NULL,
                tier TEXT NOT NULL CHECK(tier IN ('active', 'archived')),
                archive_seq INTEGER,
                timestamp TIMESTAMP NOT NULL,
                query TEXT NOT NULL,
                response TEXT NOT NULL,
                user_id TEXT,
                user_name TEXT,
                metadata TEXT,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS summaries (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                conversation_id TEXT NOT NULL,
                range_start TIMESTAMP NOT NULL,
                range_end TIMESTAMP NOT NULL,
                text TEXT NOT NULL,
                turn_count INTEGER DEFAULT 0,
                turn_ids TEXT,
                created_at TIMESTAMP NOT NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id)
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_turns_conversation ON turns(conversation_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_summaries_conversation ON summaries(conversation_id)"
        )

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    def _touch(self, cursor: sqlite3.Cursor, conversation_id: str):
        cursor.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?",
            (datetime.now().isoformat(), conversation_id)
        )

    def _require(self, cursor: sqlite3.Cursor, conversation_id: str):
        cursor.execute("SELECT id FROM conversations WHERE id = ?", (conversation_id,))
        if cursor.fetchone() is None:
            raise ConversationNotFoundError(conversation_id)

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> ConversationTurn:
        return ConversationTurn(
            id=row["id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            query=row["query"],
            response=row["response"],
            user_id=row["user_id"],
            user_name=row["user_name"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> ConversationSummary:
        return ConversationSummary(
            id=row["id"],
            time_range=TimeRange(
                start=datetime.fromisoformat(row["range_start"]),
                end=datetime.fromisoformat(row["range_end"]),
            ),
            text=row["text"],
            turn_count=row["turn_count"],
            turn_ids=json.loads(row["turn_ids"]) if row["turn_ids"] else [],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _load(self, conn: sqlite3.Connection, conversation_id: str) -> Optional[Conversation]:
        """Load a conversation with all tiers."""
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,))
        conv_row = cursor.fetchone()
        if not conv_row:
            return None

        cursor.execute(
            "SELECT * FROM turns WHERE conversation_id = ? AND tier = 'active' ORDER BY timestamp, seq",
            (conversation_id,)
        )
        active = [self._row_to_turn(row) for row in cursor.fetchall()]

        cursor.execute(
            "SELECT * FROM turns WHERE conversation_id = ? AND tier = 'archived' ORDER BY archive_seq",
            (conversation_id,)
        )
        archived = [self._row_to_turn(row) for row in cursor.fetchall()]

        cursor.execute(
            "SELECT * FROM summaries WHERE conversation_id = ? ORDER BY seq",
            (conversation_id,)
        )
        summaries = [self._row_to_summary(row) for row in cursor.fetchall()]

        return Conversation(
            id=conv_row["id"],
            interface_type=InterfaceType(conv_row["interface_type"]),
            room_id=conv_row["room_id"],
            created_at=datetime.fromisoformat(conv_row["created_at"]),
            updated_at=datetime.fromisoformat(conv_row["updated_at"]),
            active_turns=active,
            archived_turns=archived,
            summaries=summaries,
            metadata=json.loads(conv_row["metadata"]) if conv_row["metadata"] else {},
        )

    def _load_required(self, conn: sqlite3.Connection, conversation_id: str) -> Conversation:
        conversation = self._load(conn, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    # Blocking operations; each opens and closes its own connection so it
    # can run in a worker thread.

    def _create_conversation(self, interface_type: InterfaceType, room_id: str) -> Conversation:
        now = datetime.now()
        conversation = Conversation(
            id=new_id("conv"),
            interface_type=interface_type,
            room_id=room_id,
            created_at=now,
            updated_at=now,
        )
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO conversations (id, interface_type, room_id, created_at, updated_at, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (conversation.id, interface_type.value, room_id, now.isoformat(), now.isoformat(), "{}")
            )
            conn.commit()
        finally:
            conn.close()
        return conversation

    def _get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conn = self._get_connection()
        try:
            return self._load(conn, conversation_id)
        finally:
            conn.close()

    def _get_conversation_by_room_id(
        self,
        room_id: str,
        interface_type: Optional[InterfaceType]
    ) -> Optional[Conversation]:
        conn = self._get_connection()
        try:
            if interface_type is not None:
                row = conn.execute(
                    "SELECT id FROM conversations WHERE room_id = ? AND interface_type = ?",
                    (room_id, interface_type.value)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT id FROM conversations WHERE room_id = ? ORDER BY created_at LIMIT 1",
                    (room_id,)
                ).fetchone()
            if not row:
                return None
            return self._load(conn, row["id"])
        finally:
            conn.close()

    def _add_turn(self, conversation_id: str, turn: ConversationTurn) -> Conversation:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            self._require(cursor, conversation_id)
            cursor.execute(
                """
                INSERT INTO turns (id, conversation_id, tier, timestamp, query, response,
                                   user_id, user_name, metadata)
                VALUES (?, ?, 'active', ?, ?, ?, ?, ?, ?)
                """,
                (
                    turn.id or new_id("turn"),
                    conversation_id,
                    turn.timestamp.isoformat(),
                    turn.query,
                    turn.response,
                    turn.user_id,
                    turn.user_name,
                    json.dumps(turn.metadata, default=str),
                )
            )
            self._touch(cursor, conversation_id)
            conn.commit()
            return self._load_required(conn, conversation_id)
        finally:
            conn.close()

    def _insert_summary(self, cursor: sqlite3.Cursor, conversation_id: str, summary: ConversationSummary):
        cursor.execute(
            """
            INSERT INTO summaries (id, conversation_id, range_start, range_end, text,
                                   turn_count, turn_ids, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                summary.id or new_id("summ"),
                conversation_id,
                summary.time_range.start.isoformat(),
                summary.time_range.end.isoformat(),
                summary.text,
                summary.turn_count,
                json.dumps(summary.turn_ids),
                summary.created_at.isoformat(),
            )
        )

    def _add_summary(self, conversation_id: str, summary: ConversationSummary) -> Conversation:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            self._require(cursor, conversation_id)
            self._insert_summary(cursor, conversation_id, summary)
            self._touch(cursor, conversation_id)
            conn.commit()
            return self._load_required(conn, conversation_id)
        finally:
            conn.close()

    def _replace_summaries(self, conversation_id: str, summaries: List[ConversationSummary]) -> Conversation:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            self._require(cursor, conversation_id)
            cursor.execute("DELETE FROM summaries WHERE conversation_id = ?", (conversation_id,))
            for summary in summaries:
                self._insert_summary(cursor, conversation_id, summary)
            self._touch(cursor, conversation_id)
            conn.commit()
            return self._load_required(conn, conversation_id)
        finally:
            conn.close()

    def _move_turns_to_archive(self, conversation_id: str, turn_indices: List[int]) -> Conversation:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            self._require(cursor, conversation_id)
            # Same order as the active tier returned by _load
            cursor.execute(
                "SELECT seq FROM turns WHERE conversation_id = ? AND tier = 'active' ORDER BY timestamp, seq",
                (conversation_id,)
            )
            active_seqs = [row["seq"] for row in cursor.fetchall()]
            cursor.execute(
                "SELECT COALESCE(MAX(archive_seq), 0) FROM turns WHERE conversation_id = ?",
                (conversation_id,)
            )
            next_archive = cursor.fetchone()[0] + 1

            for index in sorted(set(turn_indices)):
                if 0 <= index < len(active_seqs):
                    cursor.execute(
                        "UPDATE turns SET tier = 'archived', archive_seq = ? WHERE seq = ?",
                        (next_archive, active_seqs[index])
                    )
                    next_archive += 1

            self._touch(cursor, conversation_id)
            conn.commit()
            return self._load_required(conn, conversation_id)
        finally:
            conn.close()

    def _get_recent_conversations(
        self,
        limit: Optional[int],
        interface_type: Optional[InterfaceType]
    ) -> List[Conversation]:
        conn = self._get_connection()
        try:
            sql = "SELECT id FROM conversations"
            params: list = []
            if interface_type is not None:
                sql += " WHERE interface_type = ?"
                params.append(interface_type.value)
            sql += " ORDER BY updated_at DESC"
            if limit:
                sql += " LIMIT ?"
                params.append(limit)
            rows = conn.execute(sql, params).fetchall()
            return [self._load(conn, row["id"]) for row in rows]
        finally:
            conn.close()

    def _delete_conversation(self, conversation_id: str) -> bool:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM turns WHERE conversation_id = ?", (conversation_id,))
            cursor.execute("DELETE FROM summaries WHERE conversation_id = ?", (conversation_id,))
            cursor.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
            return deleted
        finally:
            conn.close()

    def _update_metadata(self, conversation_id: str, metadata: Dict[str, Any]) -> Conversation:
        conn = self._get_connection()
        try:
            conversation = self._load_required(conn, conversation_id)
            merged = {**conversation.metadata, **metadata}
            conn.execute(
                "UPDATE conversations SET metadata = ?, updated_at = ? WHERE id = ?",
                (json.dumps(merged, default=str), datetime.now().isoformat(), conversation_id)
            )
            conn.commit()
            return self._load_required(conn, conversation_id)
        finally:
            conn.close()

    # ConversationStorage

    async def create_conversation(
        self,
        interface_type: InterfaceType,
        room_id: str
    ) -> Conversation:
        return await asyncio.to_thread(self._create_conversation, interface_type, room_id)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return await asyncio.to_thread(self._get_conversation, conversation_id)

    async def get_conversation_by_room_id(
        self,
        room_id: str,
        interface_type: Optional[InterfaceType] = None
    ) -> Optional[Conversation]:
        return await asyncio.to_thread(self._get_conversation_by_room_id, room_id, interface_type)

    async def add_turn(self, conversation_id: str, turn: ConversationTurn) -> Conversation:
        return await asyncio.to_thread(self._add_turn, conversation_id, turn)

    async def add_summary(
        self,
        conversation_id: str,
        summary: ConversationSummary
    ) -> Conversation:
        return await asyncio.to_thread(self._add_summary, conversation_id, summary)

    async def replace_summaries(
        self,
        conversation_id: str,
        summaries: List[ConversationSummary]
    ) -> Conversation:
        return await asyncio.to_thread(self._replace_summaries, conversation_id, summaries)

    async def move_turns_to_archive(
        self,
        conversation_id: str,
        turn_indices: List[int]
    ) -> Conversation:
        return await asyncio.to_thread(self._move_turns_to_archive, conversation_id, turn_indices)

    async def get_recent_conversations(
        self,
        limit: Optional[int] = None,
        interface_type: Optional[InterfaceType] = None
    ) -> List[Conversation]:
        return await asyncio.to_thread(self._get_recent_conversations, limit, interface_type)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return await asyncio.to_thread(self._delete_conversation, conversation_id)

    async def update_metadata(
        self,
        conversation_id: str,
        metadata: Dict[str, Any]
    ) -> Conversation:
        return await asyncio.to_thread(self._update_metadata, conversation_id, metadata)
