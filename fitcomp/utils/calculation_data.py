"""
Shapes of CalculationResult.calculation_data

Each variant serializes with a `kind` tag so readers can tell a seeded
baseline from a scored participant, a team aggregate or a collaborative
contribution without guessing from which keys are present.
"""

from dataclasses import asdict, dataclass
from typing import ClassVar, Optional

from fitcomp.utils.scoring import value_change_percentage


@dataclass
class CalculationData:
    kind: ClassVar[str] = "base"

    def to_dict(self):
        data = asdict(self)
        data["kind"] = self.kind
        return data


@dataclass
class ParticipantScoreData(CalculationData):
    kind: ClassVar[str] = "participant"

    starting_value: Optional[float]
    current_value: Optional[float]
    value_change: float = 0.0
    value_change_percentage: float = 0.0
    best_value: float = 0.0
    average_value: float = 0.0
    total_value: float = 0.0

    @classmethod
    def from_metrics(cls, metrics, starting_value, **extra):
        return cls(
            starting_value=starting_value,
            current_value=metrics.last_value,
            value_change=metrics.last_value - starting_value,
            value_change_percentage=value_change_percentage(
                starting_value, metrics.last_value
            ),
            best_value=metrics.best_value,
            average_value=metrics.average_value,
            total_value=metrics.total_value,
            **extra,
        )

    @classmethod
    def empty(cls, starting_value=None, **extra):
        """No activity yet: carry the anchored starting value forward (None stays None)"""
        return cls(starting_value=starting_value, current_value=starting_value, **extra)


@dataclass
class TeamParticipantScoreData(ParticipantScoreData):
    kind: ClassVar[str] = "team_participant"

    team_id: Optional[str] = None


@dataclass
class TeamAggregateData(CalculationData):
    kind: ClassVar[str] = "team"

    team_scoring_method: str
    member_count: int
    total_entries: int


@dataclass
class CollaborativeContributionData(CalculationData):
    kind: ClassVar[str] = "collaborative"

    total_contribution: float
    entry_count: int
    competition_goal: Optional[float] = None


@dataclass
class BaselineSeedData(CalculationData):
    kind: ClassVar[str] = "baseline"

    starting_value: Optional[float]
    seeded_at: str
    current_value: Optional[float] = None
    value_change: float = 0.0
    value_change_percentage: float = 0.0
    entry_count: int = 0
    baseline: bool = True

    def __post_init__(self):
        if self.current_value is None:
            self.current_value = self.starting_value
