"""Errors raised by the scoring engine and its data store"""


class ScoringError(Exception):
    """Base class for competition scoring failures"""


class CompetitionNotFoundError(ScoringError):
    def __init__(self, competition_id):
        self.competition_id = competition_id
        super().__init__(f"Competition {competition_id} not found")


class InvalidCompetitionError(ScoringError):
    """Competition row exists but cannot be scored as configured"""


class ActivityFetchError(ScoringError):
    """Reading a participant's activity entries failed"""

    def __init__(self, user_id, message):
        self.user_id = user_id
        super().__init__(f"Failed to fetch activities for user {user_id}: {message}")


class PersistenceError(ScoringError):
    """Writing calculation results, ranks or team rows failed"""
