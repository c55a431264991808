import asyncio
import itertools
from collections import defaultdict
from typing import Dict, List, Optional
import psycopg
from psycopg.rows import dict_row
from src.core.models.chat import ConversationTurn, Role
from src.core.models.documents import utc_now
from src.core.services.db_service import DatabaseService
from src.utils.errors import PersistenceFailure
from src.utils.logging import logger


class PostgresConversationStore:
    """Append-only turn log. Turns of a session are ordered by the BIGSERIAL id."""

    def __init__(self, db_service: DatabaseService):
        self.db_service = db_service

    async def append(
        self,
        session_id: str,
        role: Role,
        content: str,
        image_ref: Optional[str] = None
    ) -> ConversationTurn:
        try:
            async with self.db_service.pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        INSERT INTO conversation_turns (session_id, role, content, image_ref)
                        VALUES (%s, %s, %s, %s)
                        RETURNING id, created_at
                        """,
                        (session_id, Role(role).value, content, image_ref)
                    )
                    row = await cur.fetchone()
        except psycopg.Error as e:
            logger.error(f"Error appending turn for session {session_id}: {e}")
            raise PersistenceFailure(f"Could not store turn: {e}") from e

        return ConversationTurn(
            session_id=session_id,
            role=role,
            content=content,
            image_ref=image_ref,
            created_at=row["created_at"],
            sequence=row["id"]
        )

    async def history(self, session_id: str, max_turns: int) -> List[ConversationTurn]:
        """Most recent ``max_turns`` turns of a session, oldest first."""
        if max_turns <= 0:
            return []
        try:
            async with self.db_service.pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT id, session_id, role, content, image_ref, created_at
                        FROM conversation_turns
                        WHERE session_id = %s
                        ORDER BY id DESC
                        LIMIT %s
                        """,
                        (session_id, max_turns)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"Error reading history for session {session_id}: {e}")
            raise PersistenceFailure(f"Could not read history: {e}") from e

        return [
            ConversationTurn(
                session_id=row["session_id"],
                role=Role(row["role"]),
                content=row["content"],
                image_ref=row["image_ref"],
                created_at=row["created_at"],
                sequence=row["id"]
            )
            for row in reversed(rows)
        ]


class InMemoryConversationStore:
    """Process-local turn log; a global counter orders appends."""

    def __init__(self):
        self._turns: Dict[str, List[ConversationTurn]] = defaultdict(list)
        self._sequence = itertools.count(1)
        self._lock = asyncio.Lock()

    async def append(
        self,
        session_id: str,
        role: Role,
        content: str,
        image_ref: Optional[str] = None
    ) -> ConversationTurn:
        async with self._lock:
            turn = ConversationTurn(
                session_id=session_id,
                role=role,
                content=content,
                image_ref=image_ref,
                created_at=utc_now(),
                sequence=next(self._sequence)
            )
            self._turns[session_id].append(turn)
        return turn

    async def history(self, session_id: str, max_turns: int) -> List[ConversationTurn]:
        if max_turns <= 0:
            return []
        return list(self._turns.get(session_id, [])[-max_turns:])
