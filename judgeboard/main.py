from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .config import get_settings
from .db import EventSnapshot, db, init_db, load_event_snapshot, load_rubric, utcnow
from .errors import ScoringInputError
from .logging_config import setup_logging
from .models import TeamStanding
from .reports import (
    awards_view,
    build_results_report,
    detailed_view,
    insights_view,
    judge_progress_view,
    score_matrix_view,
    summary_view,
    team_list_view,
    to_csv,
    to_xlsx,
)
from .scoring import AWARD_TYPES, compute_leaderboard, resolve_awards

logger = logging.getLogger(__name__)

app = FastAPI(title="Judgeboard")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@app.on_event("startup")
def _startup():
    setup_logging(get_settings().LOG_LEVEL)
    init_db()


@app.exception_handler(ScoringInputError)
async def _scoring_input_error(_request: Request, exc: ScoringInputError):
    logger.error("Scoring input rejected: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# -----------------------
# Request bodies
# -----------------------
class EventIn(BaseModel):
    name: str = Field(min_length=1)
    sponsor_name: Optional[str] = None


class TeamIn(BaseModel):
    name: str = Field(min_length=1)
    mentor_name: Optional[str] = None


class JudgeIn(BaseModel):
    name: str = Field(min_length=1)


class CriterionScoreIn(BaseModel):
    criteria_id: int
    score: float = Field(ge=0)
    reflection: Optional[str] = None


class ScoreSubmissionIn(BaseModel):
    team_id: int
    judge_id: int
    scores: List[CriterionScoreIn]
    comments: Optional[str] = None
    time_spent_seconds: int = Field(default=0, ge=0)
    submit: bool = True


class AwardIn(BaseModel):
    team_id: int


# -----------------------
# Helpers
# -----------------------
def require_event(event_id: int) -> None:
    with db() as conn:
        row = conn.execute("SELECT id FROM events WHERE id=?", (event_id,)).fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="Event not found.")


def load_standings(event_id: int) -> Tuple[EventSnapshot, List[TeamStanding]]:
    """Fetch the event's rows in one snapshot and rank them."""
    settings = get_settings()
    conn = db()
    try:
        snap = load_event_snapshot(conn, event_id)
    finally:
        conn.close()
    if snap is None:
        raise HTTPException(status_code=404, detail="Event not found.")

    standings = compute_leaderboard(
        snap.teams,
        snap.criteria,
        snap.submissions,
        snap.scores,
        snap.judges,
        snap.comments,
        consensus_high_below=settings.CONSENSUS_HIGH_BELOW,
        consensus_low_from=settings.CONSENSUS_LOW_FROM,
        unknown_judge_name=settings.UNKNOWN_JUDGE_NAME,
    )
    return snap, standings


def safe_filename(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE)


# -----------------------
# Routes: Setup
# -----------------------
@app.post("/events", status_code=201)
def create_event(body: EventIn):
    with db() as conn:
        cur = conn.execute(
            "INSERT INTO events(name, sponsor_name, created_at) VALUES(?,?,?)",
            (body.name.strip(), body.sponsor_name, utcnow()),
        )
        event_id = cur.lastrowid
    return {"event": {"id": event_id, "name": body.name.strip(), "sponsor_name": body.sponsor_name}}


@app.get("/events")
def list_events():
    with db() as conn:
        rows = conn.execute(
            """
            SELECT e.id, e.name, e.sponsor_name, e.created_at,
                   (SELECT COUNT(*) FROM teams WHERE event_id=e.id) AS teams_count,
                   (SELECT COUNT(*) FROM event_judges WHERE event_id=e.id) AS judges_count
            FROM events e
            ORDER BY e.created_at DESC, e.id DESC
            """
        ).fetchall()
    events = [dict(r) for r in rows]
    return {"events": events, "total": len(events)}


@app.get("/events/{event_id}")
def get_event(event_id: int):
    snap, standings = load_standings(event_id)
    by_id = {s.team_id: s for s in standings}
    return {
        "event": {
            "id": snap.event_id,
            "name": snap.event_name,
            "sponsor_name": snap.sponsor_name,
            "teams_count": len(snap.teams),
            "judges_count": len(snap.judges),
        },
        "teams": team_list_view([by_id[t.id] for t in snap.teams]),
        "stats": insights_view(standings),
    }


@app.get("/events/{event_id}/teams")
def list_teams(event_id: int, judge_id: Optional[int] = None):
    """Teams in roster order, flagged with whether `judge_id` has already submitted for each."""
    snap, standings = load_standings(event_id)
    if judge_id is not None and not any(j.id == judge_id for j in snap.judges):
        raise HTTPException(404, "Judge profile not found for this event.")
    by_id = {s.team_id: s for s in standings}
    return {"teams": team_list_view([by_id[t.id] for t in snap.teams], judge_id)}


@app.post("/events/{event_id}/teams", status_code=201)
def create_team(event_id: int, body: TeamIn):
    require_event(event_id)
    with db() as conn:
        cur = conn.execute(
            "INSERT INTO teams(event_id, name, mentor_name, created_at) VALUES(?,?,?,?)",
            (event_id, body.name.strip(), body.mentor_name, utcnow()),
        )
        team_id = cur.lastrowid
    return {"team": {"id": team_id, "event_id": event_id, "name": body.name.strip(), "mentor_name": body.mentor_name}}


@app.post("/events/{event_id}/judges", status_code=201)
def create_judge(event_id: int, body: JudgeIn):
    require_event(event_id)
    with db() as conn:
        cur = conn.execute("INSERT INTO event_judges(event_id, name) VALUES(?,?)", (event_id, body.name.strip()))
        judge_id = cur.lastrowid
    return {"judge": {"id": judge_id, "event_id": event_id, "name": body.name.strip()}}


@app.get("/rubric")
def get_rubric():
    with db() as conn:
        criteria = load_rubric(conn)
    return {
        "criteria": [
            {
                "id": c.id,
                "name": c.name,
                "short_name": c.short_name,
                "max_score": c.max_score,
                "display_order": c.display_order,
            }
            for c in criteria
        ]
    }


# -----------------------
# Routes: Scoring
# -----------------------
@app.post("/events/{event_id}/scores")
def submit_scores(event_id: int, body: ScoreSubmissionIn):
    """
    Create or replace one judge profile's scores for one team. With
    submit=false the submission stays in progress and is not ranked; once
    submitted it can no longer be changed.
    """
    with db() as conn:
        team = conn.execute("SELECT id FROM teams WHERE id=? AND event_id=?", (body.team_id, event_id)).fetchone()
        if not team:
            raise HTTPException(404, "Team not found.")
        judge = conn.execute(
            "SELECT id FROM event_judges WHERE id=? AND event_id=?", (body.judge_id, event_id)
        ).fetchone()
        if not judge:
            raise HTTPException(404, "Judge profile not found for this event.")

        existing = conn.execute(
            "SELECT submitted_at FROM score_submissions WHERE team_id=? AND judge_id=?",
            (body.team_id, body.judge_id),
        ).fetchone()
        if existing and existing["submitted_at"]:
            raise HTTPException(409, "Scores for this team were already submitted by this judge.")

        rubric = {c.id: c for c in load_rubric(conn)}
        seen = set()
        for s in body.scores:
            criterion = rubric.get(s.criteria_id)
            if criterion is None:
                raise HTTPException(400, f"Unknown rubric criterion {s.criteria_id}.")
            if s.score > criterion.max_score:
                raise HTTPException(400, f"Score for {criterion.short_name} must be between 0 and {criterion.max_score}.")
            if s.criteria_id in seen:
                raise HTTPException(400, f"Duplicate score for {criterion.short_name}.")
            seen.add(s.criteria_id)

        now = utcnow()
        submitted_at = now if body.submit else None
        conn.execute(
            """
            INSERT INTO score_submissions(event_id, team_id, judge_id, started_at, submitted_at, time_spent_seconds)
            VALUES(?,?,?,?,?,?)
            ON CONFLICT(team_id, judge_id) DO UPDATE SET
                submitted_at=excluded.submitted_at,
                time_spent_seconds=excluded.time_spent_seconds
            """,
            (event_id, body.team_id, body.judge_id, now, submitted_at, body.time_spent_seconds),
        )
        submission_id = conn.execute(
            "SELECT id FROM score_submissions WHERE team_id=? AND judge_id=?", (body.team_id, body.judge_id)
        ).fetchone()["id"]

        conn.execute("DELETE FROM scores WHERE submission_id=?", (submission_id,))
        conn.executemany(
            "INSERT INTO scores(submission_id, criteria_id, score, reflection) VALUES(?,?,?,?)",
            [(submission_id, s.criteria_id, s.score, s.reflection) for s in body.scores],
        )

        if body.comments:
            conn.execute(
                """
                INSERT INTO judge_comments(submission_id, comments) VALUES(?,?)
                ON CONFLICT(submission_id) DO UPDATE SET comments=excluded.comments
                """,
                (submission_id, body.comments),
            )
        else:
            conn.execute("DELETE FROM judge_comments WHERE submission_id=?", (submission_id,))

    logger.info(
        "Judge %s %s scores for team %s in event %s.",
        body.judge_id, "submitted" if body.submit else "saved", body.team_id, event_id,
    )
    return {"submission_id": submission_id, "submitted": body.submit}


@app.put("/events/{event_id}/awards/{award_type}")
def assign_award(event_id: int, award_type: str, body: AwardIn):
    if award_type not in AWARD_TYPES:
        raise HTTPException(400, f"Unknown award type {award_type!r}.")
    with db() as conn:
        team = conn.execute("SELECT id FROM teams WHERE id=? AND event_id=?", (body.team_id, event_id)).fetchone()
        if not team:
            raise HTTPException(404, "Team not found.")
        conn.execute(
            """
            INSERT INTO team_awards(event_id, team_id, award_type, awarded_at) VALUES(?,?,?,?)
            ON CONFLICT(event_id, award_type) DO UPDATE SET team_id=excluded.team_id, awarded_at=excluded.awarded_at
            """,
            (event_id, body.team_id, award_type, utcnow()),
        )
    return {"award_type": award_type, "team_id": body.team_id}


@app.get("/events/{event_id}/awards")
def get_awards(event_id: int):
    snap, _standings = load_standings(event_id)
    awards = resolve_awards(snap.awards, snap.teams, get_settings().UNASSIGNED_AWARD_LABEL)
    return {"awards": awards_view(awards)}


# -----------------------
# Routes: Results
# -----------------------
@app.get("/events/{event_id}/leaderboard")
def leaderboard(event_id: int):
    _snap, standings = load_standings(event_id)
    return {"leaderboard": summary_view(standings)}


@app.get("/events/{event_id}/leaderboard/detailed")
def leaderboard_detailed(event_id: int):
    _snap, standings = load_standings(event_id)
    return {"leaderboard": detailed_view(standings)}


@app.get("/events/{event_id}/teams/scores")
def team_scores(event_id: int):
    snap, standings = load_standings(event_id)
    # roster order rather than rank order for the moderator grid
    by_id = {s.team_id: s for s in standings}
    return score_matrix_view([by_id[t.id] for t in snap.teams], snap.judges)


@app.get("/events/{event_id}/judges/{judge_id}/progress")
def judge_progress(event_id: int, judge_id: int):
    snap, standings = load_standings(event_id)
    if not any(j.id == judge_id for j in snap.judges):
        raise HTTPException(404, "Judge profile not found for this event.")
    return {"scored_teams": judge_progress_view(standings, judge_id)}


@app.get("/events/{event_id}/insights")
def insights(event_id: int):
    _snap, standings = load_standings(event_id)
    return {"insights": insights_view(standings)}


def _results_report(event_id: int):
    settings = get_settings()
    snap, standings = load_standings(event_id)
    awards = resolve_awards(snap.awards, snap.teams, settings.UNASSIGNED_AWARD_LABEL)
    report = build_results_report(
        snap.event_name,
        snap.sponsor_name or settings.DEFAULT_SPONSOR_NAME,
        standings,
        snap.judges,
        snap.teams,
        snap.criteria,
        awards,
    )
    return snap, report


@app.get("/events/{event_id}/export.xlsx")
def export_xlsx(event_id: int):
    snap, report = _results_report(event_id)
    content = to_xlsx(report)
    logger.info("Generated results workbook for event %s (%d bytes).", event_id, len(content))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{safe_filename(snap.event_name)}_Results.xlsx"'},
    )


@app.get("/events/{event_id}/download/results")
def download_results(event_id: int):
    _snap, report = _results_report(event_id)
    return Response(
        content=to_csv(report.rankings),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="event_{event_id}_results.csv"'},
    )


@app.get("/events/{event_id}/download/scores")
def download_scores(event_id: int):
    _snap, report = _results_report(event_id)
    return Response(
        content=to_csv(report.score_sheet),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="event_{event_id}_score_sheet.csv"'},
    )
