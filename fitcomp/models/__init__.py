from fitcomp import db  # noqa: F401 - imported for model imports

from .activity_entry import ActivityEntry
from .calculation_result import CalculationResult
from .competition import Competition
from .participant import CompetitionParticipant
from .team import CompetitionTeam, CompetitionTeamMember

__all__ = [
    "Competition",
    "CompetitionParticipant",
    "ActivityEntry",
    "CalculationResult",
    "CompetitionTeam",
    "CompetitionTeamMember",
]
