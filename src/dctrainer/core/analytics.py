from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from dctrainer.core.gpa import overall_average, recent_average
from dctrainer.core.grades import as_utc, round_half_up, skill_level
from dctrainer.core.models import (
    CategoryStat,
    ChallengeDefinition,
    LearnerDashboard,
    PerformanceSummary,
    ScoredAttempt,
    Subject,
    SubjectRanking,
    SubmissionRow,
)

DEFAULT_CATEGORIES = ("WIFI", "VoIP", "CCTV", "LAN", "Operations")

UNKNOWN_CHALLENGE = "Unknown Challenge"
UNKNOWN_SUBJECT = "Unknown Intern"
GENERAL_CATEGORY = "General"


def _average_score(attempts: Sequence[ScoredAttempt]) -> int:
    if not attempts:
        return 0
    return round_half_up(sum(a.score_percent for a in attempts) / len(attempts))


def resolve_category(
    attempt: ScoredAttempt,
    challenges_by_id: Mapping[str, ChallengeDefinition],
) -> Optional[str]:
    if attempt.category:
        return attempt.category
    challenge = challenges_by_id.get(attempt.challenge_id)
    if challenge is not None and challenge.category:
        return challenge.category
    return None


def category_stats(
    attempts: Iterable[ScoredAttempt],
    challenges_by_id: Mapping[str, ChallengeDefinition],
    categories: Sequence[str],
) -> List[CategoryStat]:
    """
    One CategoryStat per requested category, in the requested order.
    Attempts whose category cannot be resolved count toward none of them.
    """
    grouped: Dict[str, List[ScoredAttempt]] = {category: [] for category in categories}
    for attempt in attempts:
        category = resolve_category(attempt, challenges_by_id)
        if category in grouped:
            grouped[category].append(attempt)

    return [
        CategoryStat(
            category=category,
            attempt_count=len(grouped[category]),
            average_score_percent=_average_score(grouped[category]),
        )
        for category in categories
    ]


def top_subjects(
    attempts: Iterable[ScoredAttempt],
    subjects: Iterable[Subject],
    limit: int,
) -> List[SubjectRanking]:
    by_subject: Dict[str, List[ScoredAttempt]] = {}
    for attempt in attempts:
        by_subject.setdefault(attempt.subject_id, []).append(attempt)

    rankings: List[SubjectRanking] = []
    for subject in subjects:
        matched = by_subject.get(subject.subject_id, [])
        if not matched:
            continue
        rankings.append(
            SubjectRanking(
                subject_id=subject.subject_id,
                display_name=subject.display_name,
                attempt_count=len(matched),
                average_score_percent=_average_score(matched),
            )
        )

    # sorted() is stable: equal averages keep the order subjects were given in.
    rankings = sorted(rankings, key=lambda row: row.average_score_percent, reverse=True)
    return rankings[: max(limit, 0)]


def filter_attempts(
    attempts: Iterable[ScoredAttempt],
    challenges_by_id: Mapping[str, ChallengeDefinition],
    *,
    category: Optional[str] = None,
    within_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[ScoredAttempt]:
    results = list(attempts)

    if category is not None:
        results = [a for a in results if resolve_category(a, challenges_by_id) == category]

    if within_days is not None:
        current = now or datetime.now(timezone.utc)
        cutoff = as_utc(current) - timedelta(days=within_days)
        results = [a for a in results if a.completed_at is not None and as_utc(a.completed_at) >= cutoff]

    return results


def performance_summary(
    attempts: Iterable[ScoredAttempt],
    challenges_by_id: Mapping[str, ChallengeDefinition],
    subjects: Iterable[Subject],
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    *,
    top_limit: int = 5,
) -> PerformanceSummary:
    rows = list(attempts)
    total = len(rows)

    average_time = 0
    if total:
        average_time = round_half_up(sum(a.time_spent_minutes or 0 for a in rows) / total)

    return PerformanceSummary(
        total_attempts=total,
        average_score_percent=_average_score(rows),
        average_time_minutes=average_time,
        active_subjects=len({a.subject_id for a in rows}),
        category_performance=category_stats(rows, challenges_by_id, categories),
        top_performers=top_subjects(rows, subjects, top_limit),
    )


def _completed_sort_key(attempt: ScoredAttempt) -> float:
    if attempt.completed_at is None:
        return float("-inf")
    return as_utc(attempt.completed_at).timestamp()


def recent_submissions(
    attempts: Iterable[ScoredAttempt],
    challenges_by_id: Mapping[str, ChallengeDefinition],
    subjects: Iterable[Subject],
    limit: int = 10,
) -> List[SubmissionRow]:
    names = {subject.subject_id: subject.display_name for subject in subjects}
    newest_first = sorted(attempts, key=_completed_sort_key, reverse=True)

    rows: List[SubmissionRow] = []
    for attempt in newest_first[: max(limit, 0)]:
        challenge = challenges_by_id.get(attempt.challenge_id)
        rows.append(
            SubmissionRow(
                attempt=attempt,
                challenge_title=challenge.title if challenge and challenge.title else UNKNOWN_CHALLENGE,
                category=resolve_category(attempt, challenges_by_id) or GENERAL_CATEGORY,
                subject_name=names.get(attempt.subject_id, UNKNOWN_SUBJECT),
            )
        )
    return rows


def learner_dashboard(
    attempts: Sequence[ScoredAttempt],
    challenges_by_id: Mapping[str, ChallengeDefinition],
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    *,
    recent_limit: int = 5,
) -> LearnerDashboard:
    """
    attempts: one learner's attempts, newest first.
    """
    stats = category_stats(attempts, challenges_by_id, categories)
    return LearnerDashboard(
        gpa=recent_average(attempts),
        cgpa=overall_average(attempts),
        category_stats=stats,
        skill_levels={stat.category: skill_level(stat.average_score_percent) for stat in stats},
        recent_attempts=list(attempts[:recent_limit]),
    )
