"""Local SQLite storage for challenges, participants, day logs and activity data."""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from ..models import (
    ActivityData,
    Challenge,
    DayLog,
    Participant,
    entity_from_dict,
    entity_to_dict,
)

logger = logging.getLogger(__name__)

# Entities are stored as JSON payloads; the indexed columns are the ones the
# sync engine queries on.
SCHEMA = """
CREATE TABLE IF NOT EXISTS challenges (
    id TEXT PRIMARY KEY,
    invite_code TEXT,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_challenges_invite ON challenges(invite_code);

CREATE TABLE IF NOT EXISTS participants (
    id TEXT PRIMARY KEY,
    challenge_id TEXT NOT NULL,
    needs_sync INTEGER NOT NULL DEFAULT 1,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_participants_challenge ON participants(challenge_id);
CREATE INDEX IF NOT EXISTS idx_participants_needs_sync ON participants(needs_sync);

CREATE TABLE IF NOT EXISTS day_logs (
    id TEXT PRIMARY KEY,
    participant_id TEXT NOT NULL,
    day_number INTEGER NOT NULL,
    needs_sync INTEGER NOT NULL DEFAULT 1,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_day_logs_participant ON day_logs(participant_id, day_number);

CREATE TABLE IF NOT EXISTS activity_data (
    id TEXT PRIMARY KEY,
    day_log_id TEXT NOT NULL,
    needs_sync INTEGER NOT NULL DEFAULT 1,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_activity_day_log ON activity_data(day_log_id);
"""


class LocalStore:
    """SQLite-backed store of the domain entities the sync engine pushes.

    Saving a participant saves its day logs and their activity data too.
    Loading a participant reassembles the whole tree.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the local store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"LocalStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    # ==================== Challenges ====================

    def save_challenge(self, challenge: Challenge) -> None:
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT OR REPLACE INTO challenges (id, invite_code, payload)
            VALUES (?, ?, ?)
            """,
            (challenge.id, challenge.invite_code, json.dumps(entity_to_dict(challenge))),
        )
        conn.commit()

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT payload FROM challenges WHERE id = ?", (challenge_id,)
        ).fetchone()
        return entity_from_dict(Challenge, json.loads(row["payload"])) if row else None

    def find_challenge_by_invite_code(self, invite_code: str) -> Challenge | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT payload FROM challenges WHERE invite_code = ?", (invite_code,)
        ).fetchone()
        return entity_from_dict(Challenge, json.loads(row["payload"])) if row else None

    # ==================== Participants ====================

    def save_participant(self, participant: Participant) -> None:
        """Upsert a participant together with its day logs and activity data."""
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT OR REPLACE INTO participants (id, challenge_id, needs_sync, payload)
            VALUES (?, ?, ?, ?)
            """,
            (
                participant.id,
                participant.challenge_id,
                int(participant.needs_sync),
                json.dumps(entity_to_dict(participant)),
            ),
        )
        for day_log in participant.day_logs:
            self._write_day_log(conn, day_log)
        conn.commit()

    def get_participant(self, participant_id: str) -> Participant | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT payload FROM participants WHERE id = ?", (participant_id,)
        ).fetchone()
        if row is None:
            return None
        return self._hydrate_participant(conn, row["payload"])

    def list_participants(self, challenge_id: str) -> list[Participant]:
        conn = self._ensure_connected()
        cursor = conn.execute(
            "SELECT payload FROM participants WHERE challenge_id = ?", (challenge_id,)
        )
        return [self._hydrate_participant(conn, row["payload"]) for row in cursor.fetchall()]

    def participants_needing_sync(self) -> list[Participant]:
        """Participants whose own record, or any child record, is flagged for sync."""
        conn = self._ensure_connected()
        cursor = conn.execute(
            """
            SELECT DISTINCT p.payload FROM participants p
            LEFT JOIN day_logs d ON d.participant_id = p.id
            LEFT JOIN activity_data a ON a.day_log_id = d.id
            WHERE p.needs_sync = 1 OR d.needs_sync = 1 OR a.needs_sync = 1
            """
        )
        return [self._hydrate_participant(conn, row["payload"]) for row in cursor.fetchall()]

    def _hydrate_participant(self, conn: sqlite3.Connection, payload: str) -> Participant:
        participant = entity_from_dict(Participant, json.loads(payload))
        cursor = conn.execute(
            "SELECT payload FROM day_logs WHERE participant_id = ? ORDER BY day_number",
            (participant.id,),
        )
        participant.day_logs = [
            self._hydrate_day_log(conn, row["payload"]) for row in cursor.fetchall()
        ]
        return participant

    # ==================== Day logs ====================

    def save_day_log(self, day_log: DayLog) -> None:
        conn = self._ensure_connected()
        self._write_day_log(conn, day_log)
        conn.commit()

    def _write_day_log(self, conn: sqlite3.Connection, day_log: DayLog) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO day_logs (id, participant_id, day_number, needs_sync, payload)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                day_log.id,
                day_log.participant_id,
                day_log.day_number,
                int(day_log.needs_sync),
                json.dumps(entity_to_dict(day_log)),
            ),
        )
        if day_log.activity_data is not None:
            self._write_activity_data(conn, day_log.activity_data)

    def get_day_log(self, day_log_id: str) -> DayLog | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT payload FROM day_logs WHERE id = ?", (day_log_id,)
        ).fetchone()
        return self._hydrate_day_log(conn, row["payload"]) if row else None

    def _hydrate_day_log(self, conn: sqlite3.Connection, payload: str) -> DayLog:
        day_log = entity_from_dict(DayLog, json.loads(payload))
        row = conn.execute(
            "SELECT payload FROM activity_data WHERE day_log_id = ?", (day_log.id,)
        ).fetchone()
        if row:
            day_log.activity_data = entity_from_dict(ActivityData, json.loads(row["payload"]))
        return day_log

    # ==================== Activity data ====================

    def save_activity_data(self, data: ActivityData) -> None:
        conn = self._ensure_connected()
        self._write_activity_data(conn, data)
        conn.commit()

    def _write_activity_data(self, conn: sqlite3.Connection, data: ActivityData) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO activity_data (id, day_log_id, needs_sync, payload)
            VALUES (?, ?, ?, ?)
            """,
            (data.id, data.day_log_id, int(data.needs_sync), json.dumps(entity_to_dict(data))),
        )

    def get_activity_data(self, activity_id: str) -> ActivityData | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT payload FROM activity_data WHERE id = ?", (activity_id,)
        ).fetchone()
        return entity_from_dict(ActivityData, json.loads(row["payload"])) if row else None

    # ==================== Stats ====================

    def get_stats(self) -> dict[str, Any]:
        """Get entity counts.

        Returns:
            Dictionary with per-table totals and how many rows await sync.
        """
        conn = self._ensure_connected()
        stats: dict[str, Any] = {}

        stats["challenge_count"] = conn.execute("SELECT COUNT(*) FROM challenges").fetchone()[0]
        for table in ("participants", "day_logs", "activity_data"):
            stats[f"{table}_count"] = conn.execute(
                f"SELECT COUNT(*) FROM {table}"
            ).fetchone()[0]
            stats[f"{table}_needing_sync"] = conn.execute(
                f"SELECT COUNT(*) FROM {table} WHERE needs_sync = 1"
            ).fetchone()[0]

        return stats
