"""Shared fixtures: rubric rows, an in-memory event builder, and an API client on a temp database."""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from judgeboard.config import get_settings
from judgeboard.main import app
from judgeboard.models import JudgeComment, JudgeProfile, RubricCriterion, Score, ScoreSubmission, Team
from judgeboard.scoring import compute_leaderboard

BASE_TIME = datetime(2025, 4, 12, 9, 0, 0)


@pytest.fixture
def criteria():
    """Four 25-point criteria, 100 points total."""
    return [
        RubricCriterion(id=1, name="Effective Communication", short_name="Communication", max_score=25, display_order=1),
        RubricCriterion(id=2, name="Would Fund/Buy Solution", short_name="Funding", max_score=25, display_order=2),
        RubricCriterion(id=3, name="Presentation Quality", short_name="Presentation", max_score=25, display_order=3),
        RubricCriterion(id=4, name="Team Cohesion", short_name="Cohesion", max_score=25, display_order=4),
    ]


class EventRows:
    """Collects the rows one event would load from storage."""

    def __init__(self, criteria):
        self.criteria = list(criteria)
        self.teams = []
        self.judges = []
        self.submissions = []
        self.scores = []
        self.comments = []
        self._next_submission = 1

    def team(self, team_id, name=None, mentor_name=None):
        self.teams.append(Team(id=team_id, event_id=1, name=name or f"Team {team_id}", mentor_name=mentor_name))
        return self

    def judge(self, judge_id, name=None):
        self.judges.append(JudgeProfile(id=judge_id, event_id=1, name=name or f"Judge {judge_id}"))
        return self

    def score(self, team_id, judge_id, values, submitted=True, submitted_at=None, reflections=None, comments=None):
        """Record one submission; `values` line up with criteria in order and may be shorter."""
        sid = self._next_submission
        self._next_submission += 1
        if submitted and submitted_at is None:
            submitted_at = BASE_TIME + timedelta(minutes=sid)
        if not submitted:
            submitted_at = None

        sub = ScoreSubmission(
            id=sid, event_id=1, team_id=team_id, judge_id=judge_id, started_at=BASE_TIME, submitted_at=submitted_at
        )
        self.submissions.append(sub)
        for criterion, value in zip(self.criteria, values):
            reflection = (reflections or {}).get(criterion.short_name)
            self.scores.append(Score(submission_id=sid, criteria_id=criterion.id, score=value, reflection=reflection))
        if comments:
            self.comments.append(JudgeComment(submission_id=sid, comments=comments))
        return sub

    def compute(self, **kwargs):
        return compute_leaderboard(
            self.teams, self.criteria, self.submissions, self.scores, self.judges, self.comments, **kwargs
        )


@pytest.fixture
def event_rows(criteria):
    return EventRows(criteria)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient against a fresh sqlite file."""
    monkeypatch.setenv("JUDGEBOARD_DB_PATH", str(tmp_path / "judging.sqlite"))
    get_settings.cache_clear()
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()
