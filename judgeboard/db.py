from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .config import get_settings
from .models import (
    Award,
    JudgeComment,
    JudgeProfile,
    RubricCriterion,
    Score,
    ScoreSubmission,
    Team,
)

DEFAULT_RUBRIC = (
    # name, short_name, max_score, display_order
    ("Effective Communication", "Communication", 25, 1),
    ("Would Fund/Buy Solution", "Funding", 25, 2),
    ("Presentation Quality", "Presentation", 25, 3),
    ("Team Cohesion", "Cohesion", 25, 4),
)


# -----------------------
# DB helpers
# -----------------------
def db() -> sqlite3.Connection:
    conn = sqlite3.connect(get_settings().DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def utcnow() -> str:
    return datetime.utcnow().isoformat(timespec="seconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def init_db():
    with db() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                sponsor_name TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS teams (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                mentor_name TEXT,
                created_at TEXT NOT NULL
            );

            -- named judge identities; one operator may run several
            CREATE TABLE IF NOT EXISTS event_judges (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE,
                name TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS rubric_criteria (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                short_name TEXT NOT NULL UNIQUE,
                max_score INTEGER NOT NULL,
                display_order INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS score_submissions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE,
                team_id INTEGER NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
                judge_id INTEGER NOT NULL REFERENCES event_judges(id) ON DELETE CASCADE,
                started_at TEXT NOT NULL,
                submitted_at TEXT,
                time_spent_seconds INTEGER,
                UNIQUE(team_id, judge_id)
            );

            CREATE TABLE IF NOT EXISTS scores (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                submission_id INTEGER NOT NULL REFERENCES score_submissions(id) ON DELETE CASCADE,
                criteria_id INTEGER NOT NULL REFERENCES rubric_criteria(id),
                score REAL NOT NULL,
                reflection TEXT
            );

            CREATE TABLE IF NOT EXISTS judge_comments (
                submission_id INTEGER PRIMARY KEY REFERENCES score_submissions(id) ON DELETE CASCADE,
                comments TEXT
            );

            CREATE TABLE IF NOT EXISTS team_awards (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE,
                team_id INTEGER NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
                award_type TEXT NOT NULL,
                awarded_at TEXT NOT NULL,
                UNIQUE(event_id, award_type)
            );
            """
        )

        has_rubric = conn.execute("SELECT COUNT(*) AS n FROM rubric_criteria").fetchone()["n"]
        if not has_rubric:
            conn.executemany(
                "INSERT INTO rubric_criteria(name, short_name, max_score, display_order) VALUES(?,?,?,?)",
                DEFAULT_RUBRIC,
            )


# -----------------------
# Snapshot for the scoring engine
# -----------------------
@dataclass
class EventSnapshot:
    event_id: int
    event_name: str
    sponsor_name: Optional[str]
    teams: List[Team] = field(default_factory=list)
    judges: List[JudgeProfile] = field(default_factory=list)
    criteria: List[RubricCriterion] = field(default_factory=list)
    submissions: List[ScoreSubmission] = field(default_factory=list)
    scores: List[Score] = field(default_factory=list)
    comments: List[JudgeComment] = field(default_factory=list)
    awards: List[Award] = field(default_factory=list)


def load_rubric(conn: sqlite3.Connection) -> List[RubricCriterion]:
    return [
        RubricCriterion(
            id=r["id"],
            name=r["name"],
            short_name=r["short_name"],
            max_score=r["max_score"],
            display_order=r["display_order"],
        )
        for r in conn.execute("SELECT * FROM rubric_criteria ORDER BY display_order, id").fetchall()
    ]


def load_event_snapshot(conn: sqlite3.Connection, event_id: int) -> Optional[EventSnapshot]:
    """
    Read every row the engine needs for one event inside a single read
    transaction. Returns None if the event does not exist.
    """
    conn.execute("BEGIN")
    try:
        event = conn.execute("SELECT id, name, sponsor_name FROM events WHERE id=?", (event_id,)).fetchone()
        if not event:
            return None

        snap = EventSnapshot(event_id=event["id"], event_name=event["name"], sponsor_name=event["sponsor_name"])

        snap.teams = [
            Team(id=r["id"], event_id=r["event_id"], name=r["name"], mentor_name=r["mentor_name"])
            for r in conn.execute(
                "SELECT * FROM teams WHERE event_id=? ORDER BY created_at, id", (event_id,)
            ).fetchall()
        ]

        snap.judges = [
            JudgeProfile(id=r["id"], event_id=r["event_id"], name=r["name"])
            for r in conn.execute(
                "SELECT * FROM event_judges WHERE event_id=? ORDER BY name, id", (event_id,)
            ).fetchall()
        ]

        snap.criteria = load_rubric(conn)

        snap.submissions = [
            ScoreSubmission(
                id=r["id"],
                event_id=r["event_id"],
                team_id=r["team_id"],
                judge_id=r["judge_id"],
                started_at=_parse_ts(r["started_at"]),
                submitted_at=_parse_ts(r["submitted_at"]),
                time_spent_seconds=r["time_spent_seconds"],
            )
            for r in conn.execute(
                "SELECT * FROM score_submissions WHERE event_id=? ORDER BY id", (event_id,)
            ).fetchall()
        ]

        snap.scores = [
            Score(submission_id=r["submission_id"], criteria_id=r["criteria_id"], score=r["score"], reflection=r["reflection"])
            for r in conn.execute(
                """
                SELECT s.submission_id, s.criteria_id, s.score, s.reflection
                FROM scores s
                JOIN score_submissions ss ON ss.id = s.submission_id
                WHERE ss.event_id=?
                ORDER BY s.id
                """,
                (event_id,),
            ).fetchall()
        ]

        snap.comments = [
            JudgeComment(submission_id=r["submission_id"], comments=r["comments"])
            for r in conn.execute(
                """
                SELECT jc.submission_id, jc.comments
                FROM judge_comments jc
                JOIN score_submissions ss ON ss.id = jc.submission_id
                WHERE ss.event_id=?
                """,
                (event_id,),
            ).fetchall()
        ]

        snap.awards = [
            Award(team_id=r["team_id"], event_id=r["event_id"], award_type=r["award_type"])
            for r in conn.execute(
                "SELECT team_id, event_id, award_type FROM team_awards WHERE event_id=? ORDER BY id", (event_id,)
            ).fetchall()
        ]
        return snap
    finally:
        conn.rollback()
