from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

# Row ids come back as ints from sqlite but callers may use any hashable key
Key = Union[int, str]


# -----------------------
# Input rows
# -----------------------
@dataclass(frozen=True)
class RubricCriterion:
    id: Key
    name: str
    short_name: str
    max_score: float
    display_order: int


@dataclass(frozen=True)
class ScoreSubmission:
    """One judge's pass over one team. Only counts once submitted_at is set."""

    id: Key
    event_id: Key
    team_id: Key
    judge_id: Key
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    time_spent_seconds: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.submitted_at is not None


@dataclass(frozen=True)
class Score:
    submission_id: Key
    criteria_id: Key
    score: float
    reflection: Optional[str] = None


@dataclass(frozen=True)
class JudgeComment:
    submission_id: Key
    comments: Optional[str]


@dataclass(frozen=True)
class Team:
    id: Key
    event_id: Key
    name: str
    mentor_name: Optional[str] = None


@dataclass(frozen=True)
class JudgeProfile:
    id: Key
    event_id: Key
    name: str


@dataclass(frozen=True)
class Award:
    team_id: Key
    event_id: Key
    award_type: str


# -----------------------
# Engine output
# -----------------------
class Consensus(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"  # needs discussion


@dataclass
class CriterionScore:
    criteria_id: Key
    criteria_name: str
    score: float
    max_score: float
    reflection: Optional[str] = None


@dataclass
class JudgeScore:
    judge_id: Key
    judge_name: str
    total_score: float
    criteria_scores: List[CriterionScore] = field(default_factory=list)
    submitted_at: Optional[datetime] = None
    comments: Optional[str] = None


@dataclass
class TeamStanding:
    team_id: Key
    team_name: str
    mentor_name: Optional[str]
    avg_score: float
    total_score: float
    rank: int
    score_stddev: float
    consensus: Consensus
    judge_scores: List[JudgeScore] = field(default_factory=list)

    @property
    def judge_totals(self) -> dict:
        return {js.judge_id: js.total_score for js in self.judge_scores}

    @property
    def judges_scored(self) -> int:
        return len(self.judge_scores)


@dataclass
class AwardResult:
    award_type: str
    label: str
    team_id: Optional[Key]
    team_name: str
