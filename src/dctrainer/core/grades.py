from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple

from dctrainer.core.models import AnswerTally, GradeResult, ScoredAttempt, SkillLevel

# (lower bound, letter, points), checked top down.
GRADE_BANDS: List[Tuple[int, str, float]] = [
    (80, "A", 4.0),
    (70, "B", 3.0),
    (60, "C", 2.0),
    (50, "D", 1.0),
]
FAILING_GRADE = GradeResult("F", 0.0)

SKILL_LEVELS: List[SkillLevel] = [
    SkillLevel("Expert", 90),
    SkillLevel("Advanced", 80),
    SkillLevel("Intermediate", 70),
    SkillLevel("Beginner", 60),
]
LEARNING_LEVEL = SkillLevel("Learning", 0)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def grade_of(score_percent: int) -> GradeResult:
    """
    Map a percentage to a letter grade and grade point.
    The 0-100 range is not enforced: anything >= 80 is an A, anything < 50 an F.
    """
    for low, letter, points in GRADE_BANDS:
        if score_percent >= low:
            return GradeResult(letter, points)
    return FAILING_GRADE


def skill_level(average_percent: float) -> SkillLevel:
    for level in SKILL_LEVELS:
        if average_percent >= level.minimum:
            return level
    return LEARNING_LEVEL


def question_outcomes(attempt: ScoredAttempt) -> Dict[str, bool]:
    """
    Compare each chosen option against the stored correct option.
    A question with no stored correct option counts as incorrect.
    """
    answers = attempt.answers or {}
    correct_answers = attempt.correct_answers or {}

    outcomes: Dict[str, bool] = {}
    for question_id, chosen in answers.items():
        expected = correct_answers.get(question_id)
        outcomes[question_id] = expected is not None and chosen == expected
    return outcomes


def answer_correctness(attempt: ScoredAttempt) -> AnswerTally:
    outcomes = question_outcomes(attempt)
    correct = sum(1 for ok in outcomes.values() if ok)
    return AnswerTally(correct_count=correct, incorrect_count=len(outcomes) - correct)


def score_submission(answers: Mapping[str, str], correct_answers: Mapping[str, str]) -> int:
    """
    answers: question id -> chosen option
    correct_answers: question id -> correct option, one entry per question in the challenge
    """
    if not correct_answers:
        return 0
    correct = sum(1 for qid, option in correct_answers.items() if answers.get(qid) == option)
    return round_half_up(correct / len(correct_answers) * 100)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def minutes_spent(started_at: datetime, finished_at: Optional[datetime] = None) -> int:
    if finished_at is None:
        finished_at = datetime.now(timezone.utc)
    seconds = (as_utc(finished_at) - as_utc(started_at)).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)

