from decimal import ROUND_HALF_UP, Decimal
from itertools import islice
from typing import Iterable

from dctrainer.core.grades import grade_of
from dctrainer.core.models import ScoredAttempt

RECENT_WINDOW = 5


def _mean_grade_points(attempts: Iterable[ScoredAttempt], round_to: int) -> float:
    total_points = 0.0
    count = 0
    for attempt in attempts:
        total_points += grade_of(attempt.score_percent).points
        count += 1

    if count == 0:
        return 0.0

    # Ties round up, e.g. 3.125 -> 3.13.
    mean = Decimal(repr(total_points / count))
    return float(mean.quantize(Decimal(1).scaleb(-round_to), rounding=ROUND_HALF_UP))


def recent_average(attempts: Iterable[ScoredAttempt], *, window: int = RECENT_WINDOW, round_to: int = 2) -> float:
    """
    GPA: mean grade point of the first `window` attempts, in the order given.
    Callers pass attempts newest first; nothing is re-sorted here.
    """
    return _mean_grade_points(islice(attempts, window), round_to)


def overall_average(attempts: Iterable[ScoredAttempt], *, round_to: int = 2) -> float:
    """
    CGPA: mean grade point over every attempt.
    """
    return _mean_grade_points(attempts, round_to)
