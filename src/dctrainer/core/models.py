from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ScoredAttempt:
    attempt_id: str
    challenge_id: str
    subject_id: str
    score_percent: int
    time_spent_minutes: Optional[int] = None
    completed_at: Optional[datetime] = None
    category: Optional[str] = None
    answers: Optional[Dict[str, str]] = None
    correct_answers: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class ChallengeDefinition:
    challenge_id: str
    category: Optional[str]
    difficulty: str = ""
    title: str = ""


@dataclass(frozen=True)
class Subject:
    subject_id: str
    display_name: str


@dataclass(frozen=True)
class GradeResult:
    letter: str
    points: float


@dataclass(frozen=True)
class SkillLevel:
    label: str
    minimum: int


@dataclass(frozen=True)
class AnswerTally:
    correct_count: int
    incorrect_count: int

    @property
    def total(self) -> int:
        return self.correct_count + self.incorrect_count


@dataclass(frozen=True)
class CategoryStat:
    category: str
    attempt_count: int
    average_score_percent: int


@dataclass(frozen=True)
class SubjectRanking:
    subject_id: str
    display_name: str
    attempt_count: int
    average_score_percent: int


@dataclass(frozen=True)
class SubmissionRow:
    attempt: ScoredAttempt
    challenge_title: str
    category: str
    subject_name: str


@dataclass(frozen=True)
class PerformanceSummary:
    total_attempts: int
    average_score_percent: int
    average_time_minutes: int
    active_subjects: int
    category_performance: List[CategoryStat] = field(default_factory=list)
    top_performers: List[SubjectRanking] = field(default_factory=list)


@dataclass(frozen=True)
class LearnerDashboard:
    gpa: float
    cgpa: float
    category_stats: List[CategoryStat] = field(default_factory=list)
    skill_levels: Dict[str, SkillLevel] = field(default_factory=dict)
    recent_attempts: List[ScoredAttempt] = field(default_factory=list)
