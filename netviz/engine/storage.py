"""SQLite persistence adapter for the triplet store.

Triplets are kept one row each, in insertion order. Predicates are stored as
canonical JSON so that by-value pattern matching is a plain string
comparison in SQL.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from netviz.engine.core import Predicate
from netviz.engine.triplets import (
    Pattern,
    PatternOrList,
    StoreError,
    Triplet,
    TripletOrList,
    _check_pattern,
    as_pattern_list,
    as_triplet_list,
)

SCHEMA_VERSION = "1"

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS triplets (
    position INTEGER PRIMARY KEY AUTOINCREMENT,
    subject TEXT NOT NULL,
    predicate TEXT NOT NULL,
    object TEXT NOT NULL,
    predicate_type TEXT NOT NULL,
    predicate_hash TEXT
);

CREATE INDEX IF NOT EXISTS idx_triplets_subject ON triplets(subject);
CREATE INDEX IF NOT EXISTS idx_triplets_object ON triplets(object);
CREATE INDEX IF NOT EXISTS idx_triplets_hash ON triplets(predicate_hash);
"""


def _where(pattern: Pattern) -> tuple[str, list[Any]]:
    _check_pattern(pattern)
    clauses: list[str] = []
    params: list[Any] = []
    if "subject" in pattern:
        clauses.append("subject = ?")
        params.append(pattern["subject"])
    if "object" in pattern:
        clauses.append("object = ?")
        params.append(pattern["object"])
    if "predicate" in pattern:
        predicate = pattern["predicate"]
        if not isinstance(predicate, Predicate):
            raise TypeError(
                f"Pattern predicate must be a Predicate, got: {type(predicate).__name__}"
            )
        clauses.append("predicate = ?")
        params.append(predicate.canonical())
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


class SQLiteTripletStore:
    """Triplet store backed by a SQLite file (or ``:memory:``).

    Every ``sqlite3.Error`` is re-raised as ``StoreError`` so callers can
    handle persistence failures without knowing the medium.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        with self._guard("open"):
            self._conn = sqlite3.connect(self._path)
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    @contextmanager
    def _guard(self, action: str) -> Generator[None, None, None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise StoreError(f"Triplet store {action} failed on '{self._path}': {exc}") from exc

    def _init_schema(self) -> None:
        with self._guard("schema setup"):
            conn = self._conn
            # Check if meta table exists (i.e., schema already initialized)
            has_meta = conn.execute(
                "SELECT count(*) FROM sqlite_master WHERE type='table' AND name='meta'"
            ).fetchone()[0]

            if has_meta:
                row = conn.execute(
                    "SELECT value FROM meta WHERE key = 'schema_version'"
                ).fetchone()
                if row is None:
                    raise ValueError(
                        f"Database has meta table but no schema_version key. "
                        f"The database at '{self._path}' may be corrupted."
                    )
                if row[0] != SCHEMA_VERSION:
                    raise ValueError(
                        f"Unsupported schema version '{row[0]}' in database "
                        f"'{self._path}'. Expected version {SCHEMA_VERSION}."
                    )
                return

            conn.executescript(_SCHEMA_V1)
            conn.execute(
                "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()

    def close(self) -> None:
        self._conn.close()

    def get(self, pattern: Pattern) -> list[Triplet]:
        where, params = _where(pattern)
        with self._guard("read"):
            rows = self._conn.execute(
                "SELECT subject, predicate, object FROM triplets" + where + " ORDER BY position",
                params,
            ).fetchall()
        return [
            Triplet(subject=s, predicate=Predicate.from_dict(json.loads(p)), object=o)
            for s, p, o in rows
        ]

    def put(self, triplets: TripletOrList) -> None:
        rows = [
            (
                t.subject,
                t.predicate.canonical(),
                t.object,
                t.predicate.type,
                t.predicate.hash,
            )
            for t in as_triplet_list(triplets)
        ]
        with self._guard("write"):
            try:
                self._conn.executemany(
                    "INSERT INTO triplets"
                    " (subject, predicate, object, predicate_type, predicate_hash)"
                    " VALUES (?, ?, ?, ?, ?)",
                    rows,
                )
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise

    def delete(self, patterns: PatternOrList) -> int:
        """Delete every triplet matching any of the patterns. Returns the count removed."""
        removed = 0
        with self._guard("delete"):
            try:
                for pattern in as_pattern_list(patterns):
                    where, params = _where(pattern)
                    cur = self._conn.execute("DELETE FROM triplets" + where, params)
                    removed += cur.rowcount
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
        return removed

    def __len__(self) -> int:
        with self._guard("read"):
            return self._conn.execute("SELECT count(*) FROM triplets").fetchone()[0]
