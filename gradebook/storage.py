"""SQLite-backed document store for assignments and submissions."""

from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .base import Document, StaleWriteError, submission_key


def _upper_trim(value: object) -> str:
    return ("" if value is None else str(value)).strip().upper()


class GradebookStore:
    """Stores JSON documents in SQLite; submissions carry a version for compare-and-set."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        """Create a connection, ensuring the parent directory exists."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.db_path, timeout=30)

    def _ensure_schema(self) -> None:
        schema_sql = Path(__file__).with_name("schema.sql").read_text(encoding="utf-8")
        with closing(self._connect()) as con:
            con.executescript(schema_sql)

    # ------------------------------------------------------------------
    # Assignments

    def put_assignment(self, document: Document) -> None:
        assignment_id = document.get("id") or document.get("_id")
        if not assignment_id:
            raise ValueError("Assignment documents need an id")
        with closing(self._connect()) as con, con:
            con.execute(
                "INSERT INTO assignments(id, category, document) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET category = excluded.category, "
                "document = excluded.document, updated_at = CURRENT_TIMESTAMP",
                (str(assignment_id), _upper_trim(document.get("category")), json.dumps(document)),
            )

    def get_assignment(self, assignment_id: str) -> Optional[Document]:
        rows = self.query("SELECT document FROM assignments WHERE id = ?", (str(assignment_id),))
        return json.loads(rows[0][0]) if rows else None

    def list_assignments(self, category: Optional[str] = None) -> List[Document]:
        if category is None:
            rows = self.query("SELECT document FROM assignments ORDER BY id")
        else:
            rows = self.query(
                "SELECT document FROM assignments WHERE category = ? ORDER BY id",
                (_upper_trim(category),),
            )
        return [json.loads(row[0]) for row in rows]

    # ------------------------------------------------------------------
    # Submissions

    def load_submission(self, student_id: str, assignment_id: str) -> Tuple[Optional[Document], int]:
        rows = self.query(
            "SELECT document, version FROM submissions WHERE student_id = ? AND assignment_id = ?",
            (str(student_id), str(assignment_id)),
        )
        if not rows:
            return None, 0
        return json.loads(rows[0][0]), int(rows[0][1])

    def save_submission(self, document: Document, *, expected_version: int) -> int:
        student_id, assignment_id = submission_key(document)
        payload = json.dumps(document)
        submitted_at = document.get("submitted_at")
        with closing(self._connect()) as con, con:
            if expected_version == 0:
                try:
                    con.execute(
                        "INSERT INTO submissions(student_id, assignment_id, version, submitted_at, document) "
                        "VALUES (?, ?, 1, ?, ?)",
                        (student_id, assignment_id, submitted_at, payload),
                    )
                except sqlite3.IntegrityError as exc:
                    raise StaleWriteError(student_id, assignment_id, expected_version) from exc
                return 1
            cur = con.execute(
                "UPDATE submissions SET version = version + 1, submitted_at = ?, document = ? "
                "WHERE student_id = ? AND assignment_id = ? AND version = ?",
                (submitted_at, payload, student_id, assignment_id, expected_version),
            )
            if cur.rowcount != 1:
                raise StaleWriteError(student_id, assignment_id, expected_version)
            return expected_version + 1

    def list_submissions(
        self,
        *,
        student_id: Optional[str] = None,
        assignment_ids: Optional[Iterable[str]] = None,
    ) -> List[Document]:
        sql = "SELECT document FROM submissions"
        clauses: List[str] = []
        params: List[str] = []
        if student_id is not None:
            clauses.append("student_id = ?")
            params.append(str(student_id))
        if assignment_ids is not None:
            ids = [str(value) for value in assignment_ids]
            if not ids:
                return []
            clauses.append(f"assignment_id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY submitted_at DESC"
        return [json.loads(row[0]) for row in self.query(sql, tuple(params))]

    def delete_submission(self, student_id: str, assignment_id: str) -> bool:
        with closing(self._connect()) as con, con:
            cur = con.execute(
                "DELETE FROM submissions WHERE student_id = ? AND assignment_id = ?",
                (str(student_id), str(assignment_id)),
            )
            return cur.rowcount > 0

    def query(self, sql: str, params: tuple | None = None) -> list[tuple]:
        with closing(self._connect()) as con:
            cur = con.execute(sql, params or tuple())
            return cur.fetchall()


__all__ = ["GradebookStore"]
