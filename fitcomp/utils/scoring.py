"""
Scoring helpers for competition standings

Pure functions only: metric extraction from activity points, score formulas
per scoring method, team aggregation and rank ordering. Database access and
orchestration per competition mode live in
fitcomp/services/calculation_service.py.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

SCORING_METHODS = (
    "total_value",
    "cumulative",
    "change_percentage",
    "best_value",
    "average_value",
)
TEAM_SCORING_METHODS = ("sum", "average", "best")


@dataclass(frozen=True)
class ActivityPoint:
    """One non-deleted activity entry as seen by the scoring code"""

    value: float
    day: date
    date: Optional[datetime] = None
    source: str = "manual"


@dataclass(frozen=True)
class ActivityMetrics:
    first_value: float = 0.0
    last_value: float = 0.0
    best_value: float = 0.0
    average_value: float = 0.0
    total_value: float = 0.0
    count: int = 0


def include_baseline_activity(activities, baseline):
    """
    Prepend the participant's earliest-ever entry to the in-window list.

    The baseline only goes in front when it is from an earlier day than the
    first in-window entry and is not that same entry already.
    """
    if baseline is None:
        return list(activities)

    if not activities:
        return [baseline]

    first = activities[0]
    if first.day is None or baseline.day is None:
        return list(activities)

    if baseline.day < first.day:
        already_included = first.value == baseline.value and first.day == baseline.day
        return list(activities) if already_included else [baseline, *activities]

    return list(activities)


def calculate_metrics(activities):
    """Compute first/last/best/average/total over date-ordered activities"""
    if not activities:
        return ActivityMetrics()

    values = [a.value or 0 for a in activities]
    total = sum(values)

    return ActivityMetrics(
        first_value=values[0],
        last_value=values[-1],
        best_value=max(values),
        average_value=total / len(values),
        total_value=total,
        count=len(values),
    )


def value_change_percentage(starting_value, current_value):
    if not starting_value:
        return 0.0
    return (current_value - starting_value) / starting_value * 100


def calculate_score(metrics, scoring_method, starting_value=None):
    """
    Score a participant's metrics.

    Args:
        metrics: ActivityMetrics for the in-window activities
        scoring_method: competition scoring method
        starting_value: anchored starting value; defaults to the first value

    Returns:
        float score; unrecognized scoring methods score 0
    """
    if starting_value is None:
        starting_value = metrics.first_value

    if scoring_method == "change_percentage":
        return value_change_percentage(starting_value, metrics.last_value)
    if scoring_method in ("total_value", "cumulative"):
        return metrics.total_value
    if scoring_method == "best_value":
        return metrics.best_value
    if scoring_method == "average_value":
        return metrics.average_value
    return 0.0


def aggregate_team_score(member_scores, team_scoring_method):
    """Combine member scores into a team score (sum unless average/best)"""
    scores = list(member_scores)
    if not scores:
        return 0.0

    if team_scoring_method == "average":
        return sum(scores) / len(scores)
    if team_scoring_method == "best":
        return max(scores)
    return sum(scores)


def weight_lost(activities):
    """
    Pounds lost between the first and last weigh-in.

    Returns (score, starting_value, current_value). A single weigh-in records
    the values but scores 0.
    """
    if not activities:
        return 0.0, None, None

    starting_value = activities[0].value
    current_value = activities[-1].value
    if len(activities) < 2:
        return 0.0, starting_value, current_value
    return starting_value - current_value, starting_value, current_value


def cumulative_total(activities):
    return sum(a.value or 0 for a in activities)


def order_for_ranking(items, ranking_direction, score_key, id_key):
    """
    Sort items best-first for ranking.

    `desc` puts the highest score first, anything else the lowest. Equal
    scores are ordered by subject id ascending so ranks are stable across
    runs.
    """
    # Two stable passes: tie-break key first, then score
    by_id = sorted(items, key=lambda item: str(id_key(item)))
    return sorted(
        by_id,
        key=lambda item: score_key(item) or 0,
        reverse=ranking_direction == "desc",
    )


def assign_ranks(items, ranking_direction, score_key, id_key):
    """Return [(item, rank)] with sequential 1-based ranks"""
    ordered = order_for_ranking(items, ranking_direction, score_key, id_key)
    return [(item, position + 1) for position, item in enumerate(ordered)]
