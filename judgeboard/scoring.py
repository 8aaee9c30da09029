"""
Scoring aggregation and ranking.

Turns raw per-criterion judge scores into ranked team standings:

  submissions + scores --(completeness filter)--> score matrix
      rows = submission, cols = criterion, values = score (missing -> 0)
  score matrix --(row sums)--> judge totals per team
  judge totals --(mean / sum / population stddev)--> team aggregates
  team aggregates --(stable sort, dense rank)--> leaderboard

Everything here is a pure function of its arguments. Callers are expected to
fetch a consistent snapshot of rows before calling in.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import ScoringInputError
from .models import (
    Award,
    AwardResult,
    Consensus,
    CriterionScore,
    JudgeComment,
    JudgeProfile,
    JudgeScore,
    Key,
    RubricCriterion,
    Score,
    ScoreSubmission,
    Team,
    TeamStanding,
)

logger = logging.getLogger(__name__)

DEFAULT_CONSENSUS_HIGH_BELOW = 5.0
DEFAULT_CONSENSUS_LOW_FROM = 10.0
UNKNOWN_JUDGE_NAME = "Unknown"
NOT_ASSIGNED_LABEL = "(Not Assigned)"

# Fixed award slots, in report order
AWARD_SLOTS: Tuple[Tuple[str, str], ...] = (
    ("first_place", "First Place"),
    ("second_place", "Second Place"),
    ("third_place", "Third Place"),
    ("most_feasible", "Most Feasible Solution"),
    ("best_prototype", "Best Prototype"),
    ("best_video", "Best Video"),
    ("best_presentation", "Best Presentation"),
)
AWARD_TYPES = frozenset(slot for slot, _label in AWARD_SLOTS)


def round_score(value: float) -> float:
    """Round half away from zero to 2 places (same as SQL ROUND(numeric, 2))."""
    return float(Decimal(repr(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def classify_consensus(
    stddev: float,
    high_below: float = DEFAULT_CONSENSUS_HIGH_BELOW,
    low_from: float = DEFAULT_CONSENSUS_LOW_FROM,
) -> Consensus:
    """
    Bucket the spread of judge totals. Lower bounds are inclusive:
      stddev <  high_below             -> HIGH
      high_below <= stddev < low_from  -> MEDIUM
      stddev >= low_from               -> LOW
    """
    if stddev < high_below:
        return Consensus.HIGH
    if stddev < low_from:
        return Consensus.MEDIUM
    return Consensus.LOW


def ordered_criteria(criteria: Iterable[RubricCriterion]) -> List[RubricCriterion]:
    """Criteria by display_order (stable), rejecting duplicate ids or short names."""
    ordered = sorted(criteria, key=lambda c: c.display_order)
    seen_ids = set()
    seen_short = set()
    for c in ordered:
        if c.id in seen_ids:
            raise ScoringInputError(f"Duplicate rubric criterion id {c.id!r}.")
        if c.short_name in seen_short:
            raise ScoringInputError(f"Duplicate rubric criterion short_name {c.short_name!r}.")
        seen_ids.add(c.id)
        seen_short.add(c.short_name)
    return ordered


def _counted_submissions(
    submissions: Sequence[ScoreSubmission], team_ids: set
) -> Tuple[Dict[Key, ScoreSubmission], Dict[Key, ScoreSubmission]]:
    """
    Returns (all submissions by id, counted submissions by id).

    A submission counts when it is complete and it is the latest complete
    submission for its (team, judge) pair. Ties on submitted_at go to the
    row that appears later in the input.
    """
    by_id: Dict[Key, ScoreSubmission] = {}
    chosen: Dict[Tuple[Key, Key], ScoreSubmission] = {}

    for sub in submissions:
        if sub.id in by_id:
            raise ScoringInputError(f"Duplicate score submission id {sub.id!r}.")
        if sub.team_id not in team_ids:
            raise ScoringInputError(
                f"Score submission {sub.id!r} references team {sub.team_id!r}, which is not in this event."
            )
        by_id[sub.id] = sub
        if not sub.is_complete:
            continue

        pair = (sub.team_id, sub.judge_id)
        current = chosen.get(pair)
        if current is not None:
            logger.warning(
                "Judge %r has more than one submitted score for team %r (submissions %r, %r); keeping the latest.",
                sub.judge_id, sub.team_id, current.id, sub.id,
            )
            if sub.submitted_at < current.submitted_at:
                continue
        chosen[pair] = sub

    counted = {sub.id: sub for sub in by_id.values() if chosen.get((sub.team_id, sub.judge_id)) is sub}
    return by_id, counted


def _collect_scores(
    scores: Iterable[Score],
    submissions_by_id: Dict[Key, ScoreSubmission],
    counted: Dict[Key, ScoreSubmission],
    criteria_by_id: Dict[Key, RubricCriterion],
) -> Dict[Key, Dict[Key, Score]]:
    collected: Dict[Key, Dict[Key, Score]] = {}
    for s in scores:
        criterion = criteria_by_id.get(s.criteria_id)
        if criterion is None:
            raise ScoringInputError(f"Score {s!r} references unknown rubric criterion {s.criteria_id!r}.")
        if s.submission_id not in submissions_by_id:
            # callers may pass only complete submissions
            logger.warning("Skipping score %r: submission %r was not provided.", s, s.submission_id)
            continue
        if s.submission_id not in counted:
            # in progress, or superseded by a later submission for the same pair
            continue
        if not 0 <= s.score <= criterion.max_score:
            raise ScoringInputError(
                f"Score {s!r} is outside 0..{criterion.max_score} for criterion {criterion.short_name!r}."
            )
        bucket = collected.setdefault(s.submission_id, {})
        if s.criteria_id in bucket:
            raise ScoringInputError(
                f"Submission {s.submission_id!r} has more than one score for criterion {criterion.short_name!r}."
            )
        bucket[s.criteria_id] = s
    return collected


def _score_matrix(
    collected: Dict[Key, Dict[Key, Score]], submission_ids: List[Key], criteria_ids: List[Key]
) -> pd.DataFrame:
    """rows = submission id, cols = criterion id, values = score; missing cells are 0."""
    values = {sid: {cid: s.score for cid, s in by_criterion.items()} for sid, by_criterion in collected.items()}
    return (
        pd.DataFrame.from_dict(values, orient="index")
        .reindex(index=submission_ids, columns=criteria_ids)
        .astype(float)
        .fillna(0.0)
    )


def compute_leaderboard(
    teams: Sequence[Team],
    criteria: Iterable[RubricCriterion],
    submissions: Sequence[ScoreSubmission],
    scores: Iterable[Score],
    judges: Iterable[JudgeProfile],
    comments: Iterable[JudgeComment] = (),
    *,
    consensus_high_below: float = DEFAULT_CONSENSUS_HIGH_BELOW,
    consensus_low_from: float = DEFAULT_CONSENSUS_LOW_FROM,
    unknown_judge_name: str = UNKNOWN_JUDGE_NAME,
) -> List[TeamStanding]:
    """
    Rank every team in `teams`.

    avg_score  = mean of per-judge totals, rounded to 2 places (0 with no judges)
    total_score = sum of per-judge totals
    score_stddev = population stddev of per-judge totals (0 with fewer than 2 judges)
    rank = dense rank by avg_score descending

    Ordering: teams are sorted by avg_score descending with a stable sort, so
    teams with equal avg_score keep their relative order from `teams`, and
    share a rank.

    Raises ScoringInputError when rows contradict each other (unknown
    criterion or team, out-of-range or duplicated scores). Scores whose
    submission is not in `submissions` are skipped.
    """
    teams = list(teams)
    team_ids = {t.id for t in teams}
    if len(team_ids) != len(teams):
        raise ScoringInputError("Duplicate team ids in team list.")

    rubric = ordered_criteria(criteria)
    criteria_by_id = {c.id: c for c in rubric}

    judges = list(judges)
    judge_names = {j.id: j.name for j in judges}
    judge_order = {j.id: idx for idx, j in enumerate(judges)}

    submissions_by_id, counted = _counted_submissions(list(submissions), team_ids)
    collected = _collect_scores(scores, submissions_by_id, counted, criteria_by_id)
    comments_by_submission = {c.submission_id: c.comments for c in comments}

    matrix = _score_matrix(collected, list(counted), [c.id for c in rubric])
    judge_totals = matrix.sum(axis=1)

    by_team: Dict[Key, List[ScoreSubmission]] = {}
    for sub in counted.values():
        by_team.setdefault(sub.team_id, []).append(sub)

    missing_judges = sorted({str(sub.judge_id) for sub in counted.values() if sub.judge_id not in judge_names})
    if missing_judges:
        logger.warning("No judge profile for judge ids %s; reporting them as %r.", missing_judges, unknown_judge_name)

    aggregates = []
    for team in teams:
        team_subs = sorted(
            by_team.get(team.id, []),
            key=lambda sub: (judge_order.get(sub.judge_id, len(judge_order)), str(sub.judge_id)),
        )

        judge_scores: List[JudgeScore] = []
        for sub in team_subs:
            entered = collected.get(sub.id, {})
            criteria_scores = [
                CriterionScore(
                    criteria_id=c.id,
                    criteria_name=c.short_name,
                    score=float(matrix.at[sub.id, c.id]),
                    max_score=c.max_score,
                    reflection=entered[c.id].reflection if c.id in entered else None,
                )
                for c in rubric
            ]
            judge_scores.append(
                JudgeScore(
                    judge_id=sub.judge_id,
                    judge_name=judge_names.get(sub.judge_id, unknown_judge_name),
                    total_score=float(judge_totals.loc[sub.id]),
                    criteria_scores=criteria_scores,
                    submitted_at=sub.submitted_at,
                    comments=comments_by_submission.get(sub.id),
                )
            )

        totals = np.array([js.total_score for js in judge_scores], dtype=float)
        avg_score = round_score(totals.mean()) if totals.size else 0.0
        stddev = float(np.std(totals)) if totals.size >= 2 else 0.0
        aggregates.append((team, judge_scores, avg_score, float(totals.sum()), stddev))

    if not aggregates:
        return []

    ranking = pd.DataFrame({"avg_score": [agg[2] for agg in aggregates]})
    # mergesort is stable: equal averages keep their input order
    ranking = ranking.sort_values(by="avg_score", ascending=False, kind="mergesort")
    ranking["rank"] = ranking["avg_score"].rank(method="dense", ascending=False).astype(int)

    standings: List[TeamStanding] = []
    for position, rank in zip(ranking.index, ranking["rank"]):
        team, judge_scores, avg_score, total_score, stddev = aggregates[position]
        standings.append(
            TeamStanding(
                team_id=team.id,
                team_name=team.name,
                mentor_name=team.mentor_name,
                avg_score=avg_score,
                total_score=total_score,
                rank=int(rank),
                score_stddev=stddev,
                consensus=classify_consensus(stddev, consensus_high_below, consensus_low_from),
                judge_scores=judge_scores,
            )
        )

    logger.debug(
        "Ranked %d teams from %d counted submissions (%d submitted rows total).",
        len(standings), len(counted), len(submissions_by_id),
    )
    return standings


def resolve_awards(
    awards: Iterable[Award],
    teams: Iterable[Team],
    unassigned_label: str = NOT_ASSIGNED_LABEL,
) -> List[AwardResult]:
    """
    One AwardResult per fixed slot in AWARD_SLOTS order. A slot with no award
    row gets team_id=None and team_name=unassigned_label.
    """
    team_names = {t.id: t.name for t in teams}
    assigned: Dict[str, Key] = {}
    for award in awards:
        if award.award_type not in AWARD_TYPES:
            raise ScoringInputError(f"Award {award!r} uses unknown award type {award.award_type!r}.")
        if award.team_id not in team_names:
            raise ScoringInputError(f"Award {award!r} references team {award.team_id!r}, which is not in this event.")
        if award.award_type in assigned:
            raise ScoringInputError(f"Award slot {award.award_type!r} is assigned more than once.")
        assigned[award.award_type] = award.team_id

    results = []
    for slot, label in AWARD_SLOTS:
        team_id = assigned.get(slot)
        results.append(
            AwardResult(
                award_type=slot,
                label=label,
                team_id=team_id,
                team_name=team_names[team_id] if team_id is not None else unassigned_label,
            )
        )
    return results
