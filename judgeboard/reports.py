"""
Views over computed standings: the JSON leaderboards, the moderator score
matrix, per-judge progress, event insights, and the three-sheet results
export (as DataFrames, then CSV or XLSX bytes).
"""
from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO, StringIO
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .models import (
    AwardResult,
    JudgeProfile,
    JudgeScore,
    Key,
    RubricCriterion,
    Team,
    TeamStanding,
)
from .scoring import ordered_criteria


def _format_number(value: float):
    # 84.0 -> 84 so whole-point scores don't render as floats in sheets
    return int(value) if float(value).is_integer() else value


# -----------------------
# JSON views
# -----------------------
def summary_view(standings: Sequence[TeamStanding]) -> List[dict]:
    return [
        {
            "team_id": s.team_id,
            "team_name": s.team_name,
            "avg_score": s.avg_score,
            "total_score": s.total_score,
            "judges_scored": s.judges_scored,
            "rank": s.rank,
            "score_stddev": s.score_stddev,
            "consensus": s.consensus.value,
        }
        for s in standings
    ]


def _judge_score_view(js: JudgeScore) -> dict:
    return {
        "judge_id": js.judge_id,
        "judge_name": js.judge_name,
        "total_score": js.total_score,
        "submitted_at": js.submitted_at.isoformat() if js.submitted_at else None,
        "comments": js.comments,
        "criteria_scores": [
            {
                "criteria_id": cs.criteria_id,
                "criteria_name": cs.criteria_name,
                "score": cs.score,
                "max_score": cs.max_score,
                "reflection": cs.reflection,
            }
            for cs in js.criteria_scores
        ],
    }


def detailed_view(standings: Sequence[TeamStanding]) -> List[dict]:
    summaries = summary_view(standings)
    for row, s in zip(summaries, standings):
        row["mentor_name"] = s.mentor_name
        row["judge_scores"] = [_judge_score_view(js) for js in s.judge_scores]
    return summaries


def awards_view(awards: Sequence[AwardResult]) -> List[dict]:
    return [
        {"award_type": a.award_type, "label": a.label, "team_id": a.team_id, "team_name": a.team_name}
        for a in awards
    ]


def score_matrix_view(standings: Sequence[TeamStanding], judges: Sequence[JudgeProfile]) -> dict:
    """
    Moderator grid in roster order.
      rows = team, cols = judge, value = judge total or None when not yet submitted
    """
    teams = []
    for s in standings:
        totals = s.judge_totals
        teams.append(
            {
                "id": s.team_id,
                "name": s.team_name,
                "scores": [
                    {"judge_id": j.id, "judge_name": j.name, "score": totals.get(j.id)}
                    for j in judges
                ],
            }
        )
    return {"teams": teams, "judges": [{"id": j.id, "name": j.name} for j in judges]}


def judge_progress_view(standings: Sequence[TeamStanding], judge_id: Key) -> List[dict]:
    """Everything one judge has submitted, newest first."""
    scored = []
    for s in standings:
        js = next((j for j in s.judge_scores if j.judge_id == judge_id), None)
        if js is None:
            continue
        scored.append((s, js))

    scored.sort(key=lambda pair: pair[1].submitted_at, reverse=True)
    return [
        {
            "team_id": s.team_id,
            "team_name": s.team_name,
            "total_score": js.total_score,
            "judged_at": js.submitted_at.isoformat() if js.submitted_at else None,
            "breakdown": {cs.criteria_name.lower(): cs.score for cs in js.criteria_scores},
            "reflections": {cs.criteria_name.lower(): cs.reflection for cs in js.criteria_scores if cs.reflection},
            "comments": js.comments,
        }
        for s, js in scored
    ]


def team_list_view(standings: Sequence[TeamStanding], judge_id: Optional[Key] = None) -> List[dict]:
    """
    Team picker for judges, in the order given. average_score is None until
    a judge has submitted; has_current_user_scored is False without judge_id.
    """
    return [
        {
            "id": s.team_id,
            "name": s.team_name,
            "mentor_name": s.mentor_name,
            "completed_scores": s.judges_scored,
            "average_score": s.avg_score if s.judges_scored else None,
            "has_current_user_scored": judge_id is not None and judge_id in s.judge_totals,
        }
        for s in standings
    ]


def insights_view(standings: Sequence[TeamStanding]) -> dict:
    criterion_scores = [cs.score for s in standings for js in s.judge_scores for cs in js.criteria_scores]
    judges = {js.judge_id for s in standings for js in s.judge_scores}
    return {
        "total_teams": len(standings),
        "total_judges": len(judges),
        "completed_scores": sum(s.judges_scored for s in standings),
        "average_score": (sum(criterion_scores) / len(criterion_scores)) if criterion_scores else None,
    }


# -----------------------
# Export
# -----------------------
@dataclass
class ResultsReport:
    title: str
    roster: pd.DataFrame
    score_sheet: pd.DataFrame
    rankings: pd.DataFrame
    awards: pd.DataFrame


def build_roster_sheet(judges: Sequence[JudgeProfile], teams: Sequence[Team]) -> pd.DataFrame:
    """Section, Label, Name: judges first, then teams each followed by their mentor."""
    rows = [("Judges", f"Judge {idx}:", j.name) for idx, j in enumerate(judges, start=1)]
    for idx, t in enumerate(teams, start=1):
        rows.append(("Teams", f"Team {idx}:", t.name))
        if t.mentor_name:
            rows.append(("Teams", "Mentor:", t.mentor_name))
    return pd.DataFrame(rows, columns=["Section", "Label", "Name"])


def build_score_sheet(
    standings: Sequence[TeamStanding],
    judges: Sequence[JudgeProfile],
    teams: Sequence[Team],
    criteria: Sequence[RubricCriterion],
) -> pd.DataFrame:
    """
    rows = every (team, judge) pair in roster order
    cols = Team, Judge, one column per criterion, Total
    Pairs without a submitted score are all zeros.
    """
    rubric = ordered_criteria(criteria)
    criterion_cols = [f"{c.short_name} ({_format_number(c.max_score)})" for c in rubric]
    total_col = f"Total ({_format_number(sum(c.max_score for c in rubric))})"

    by_team: Dict[Key, Dict[Key, JudgeScore]] = {
        s.team_id: {js.judge_id: js for js in s.judge_scores} for s in standings
    }

    rows = []
    for team in teams:
        for judge in judges:
            js: Optional[JudgeScore] = by_team.get(team.id, {}).get(judge.id)
            values = {cs.criteria_id: cs.score for cs in js.criteria_scores} if js else {}
            rows.append(
                [team.name, judge.name]
                + [_format_number(values.get(c.id, 0)) for c in rubric]
                + [_format_number(js.total_score if js else 0)]
            )
    return pd.DataFrame(rows, columns=["Team", "Judge", *criterion_cols, total_col])


def build_rankings_sheet(standings: Sequence[TeamStanding]) -> pd.DataFrame:
    return pd.DataFrame(
        [(s.rank, s.team_name, s.avg_score) for s in standings],
        columns=["Rank", "Team Name", "Average Score"],
    )


def build_awards_sheet(awards: Sequence[AwardResult]) -> pd.DataFrame:
    return pd.DataFrame([(f"{a.label}:", a.team_name) for a in awards], columns=["Award", "Team"])


def build_results_report(
    event_name: str,
    sponsor_name: str,
    standings: Sequence[TeamStanding],
    judges: Sequence[JudgeProfile],
    teams: Sequence[Team],
    criteria: Sequence[RubricCriterion],
    awards: Sequence[AwardResult],
) -> ResultsReport:
    return ResultsReport(
        title=f"{sponsor_name} - {event_name}",
        roster=build_roster_sheet(judges, teams),
        score_sheet=build_score_sheet(standings, judges, teams, criteria),
        rankings=build_rankings_sheet(standings),
        awards=build_awards_sheet(awards),
    )


def to_csv(df: pd.DataFrame) -> str:
    buf = StringIO()
    df.to_csv(buf, index=False)
    return buf.getvalue()


def to_xlsx(report: ResultsReport) -> bytes:
    """
    Sheets:
      "Judge & Team Names" - title, then roster
      "Score Sheet"        - team x judge matrix
      "Final Results"      - rankings, then special awards below them
    """
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame([[report.title]]).to_excel(
            writer, sheet_name="Judge & Team Names", index=False, header=False
        )
        report.roster.to_excel(writer, sheet_name="Judge & Team Names", index=False, startrow=2)

        report.score_sheet.to_excel(writer, sheet_name="Score Sheet", index=False)

        pd.DataFrame([[report.title], [None], ["Rankings"]]).to_excel(
            writer, sheet_name="Final Results", index=False, header=False
        )
        report.rankings.to_excel(writer, sheet_name="Final Results", index=False, startrow=3)
        awards_row = len(report.rankings) + 6
        pd.DataFrame([["Special Awards"]]).to_excel(
            writer, sheet_name="Final Results", index=False, header=False, startrow=awards_row
        )
        report.awards.to_excel(writer, sheet_name="Final Results", index=False, startrow=awards_row + 1)
    return buf.getvalue()
