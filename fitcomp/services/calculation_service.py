"""
Competition scoring engine

Computes per-participant and per-team scores for one competition, persists
them as CalculationResult rows (or team/team member rows for team_v2) and
assigns sequential ranks. Four competition modes are supported:

- individual: every active participant is scored and ranked
- team: participants with a team are scored, then aggregated per team and
  the teams are ranked among themselves
- team_v2: CompetitionTeam/CompetitionTeamMember rows are updated in place
  (pounds lost for weight, summed values otherwise)
- collaborative: every participant feeds one shared pool, all ranked 1

All data access goes through a data store (see data_store.py) so the engine
can be run against an in-memory fake.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from fitcomp.exceptions import (
    ActivityFetchError,
    CompetitionNotFoundError,
    InvalidCompetitionError,
)
from fitcomp.services.data_store import SqlAlchemyDataStore
from fitcomp.utils.cache_utils import invalidate_leaderboard_cache
from fitcomp.utils.calculation_data import (
    CollaborativeContributionData,
    ParticipantScoreData,
    TeamAggregateData,
    TeamParticipantScoreData,
)
from fitcomp.utils.logging_config import ContextualLogger
from fitcomp.utils.performance import PerformanceMonitor, timer
from fitcomp.utils.scoring import (
    aggregate_team_score,
    assign_ranks,
    calculate_metrics,
    calculate_score,
    cumulative_total,
    include_baseline_activity,
    weight_lost,
)
from fitcomp.utils.time_utils import get_utc_time


@dataclass
class CalculationSummary:
    """Outcome of one recalculation run"""

    success: bool
    message: str
    updated_count: int = 0
    total_progress: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self):
        data = {
            "success": self.success,
            "message": self.message,
            "updated_count": self.updated_count,
        }
        if self.total_progress is not None:
            data["total_progress"] = self.total_progress
        if self.error is not None:
            data["error"] = self.error
        return data


def _display_number(value):
    value = round(float(value), 2)
    return int(value) if value.is_integer() else value


def make_logging_diagnostics(logger):
    """
    Build a diagnostics hook that logs a participant's latest entries

    The engine calls the hook when a participant has no activity inside the
    competition window, so the log shows which entries fell outside it.
    """

    def diagnostics(competition, user_id, window, recent_activities):
        start_day, end_day = window
        if not recent_activities:
            logger.info(
                f"No {competition.activity_type} entries recorded at all for user {user_id}"
            )
            return

        days = ", ".join(a.day.isoformat() for a in recent_activities if a.day)
        inside = [a for a in recent_activities if competition.contains_day(a.day)]
        logger.info(
            f"User {user_id} has {len(recent_activities)} recent entries ({days}); "
            f"{len(inside)} inside window {start_day} to {end_day or 'open'}"
        )

    return diagnostics


class CalculationService:
    """Recalculates standings for a single competition"""

    def __init__(self, data_store=None, logger=None, diagnostics=None):
        self.data_store = data_store or SqlAlchemyDataStore()
        self.logger = logger or ContextualLogger(__name__)
        self.diagnostics = diagnostics
        self._calculators = {
            "individual": self._calculate_individual,
            "team": self._calculate_team,
            "team_v2": self._calculate_team_v2,
            "collaborative": self._calculate_collaborative,
        }

    @timer
    def calculate(self, competition_id):
        """
        Recalculate one competition.

        A missing competition or an unknown mode yields an unsuccessful
        summary without any write. Activity fetch failures outside
        collaborative mode and every PersistenceError propagate.
        """
        log = self.logger.bind(competition_id=competition_id)

        try:
            competition = self.data_store.get_competition(competition_id)
        except CompetitionNotFoundError as e:
            log.warning(str(e))
            return CalculationSummary(success=False, message=str(e))

        mode = competition.competition_mode
        calculator = self._calculators.get(mode)
        if calculator is None:
            message = f"Unknown competition mode: {mode}"
            log.error(message)
            return CalculationSummary(success=False, message=message, updated_count=0)

        log = log.bind(mode=mode)
        log.info(
            f"Recalculating {competition.name} "
            f"({competition.activity_type}, {competition.scoring_method})"
        )

        with PerformanceMonitor(f"calculate_{mode}"):
            summary = calculator(competition, log)

        log.info(summary.message)
        return summary

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_window(competition):
        start_day, end_day = competition.get_window()
        if start_day is None:
            raise InvalidCompetitionError(
                f"Competition {competition.id} must have a start date"
            )
        return start_day, end_day

    @staticmethod
    def _allows_manual(competition):
        return competition.allow_manual_activities is not False

    def _run_diagnostics(self, competition, user_id, window):
        if self.diagnostics is None:
            return
        try:
            recent = self.data_store.get_recent_activities(
                user_id, competition.activity_type
            )
        except ActivityFetchError as e:
            self.logger.warning(f"Skipping diagnostics for user {user_id}: {e}")
            return
        self.diagnostics(competition, user_id, window, recent)

    def _participant_activities(self, competition, user_id, window, allow_manual):
        """In-window activities, with the earliest-ever entry in front for weight"""
        start_day, end_day = window
        baseline = None
        if competition.activity_type == "weight":
            baseline = self.data_store.get_baseline_activity(
                user_id, competition.activity_type, allow_manual
            )

        activities = self.data_store.get_activities(
            user_id, competition.activity_type, start_day, end_day, allow_manual
        )
        return include_baseline_activity(activities, baseline)

    def _score_participant(
        self, competition, participant, window, existing_starts, data_cls, **extra
    ):
        allow_manual = self._allows_manual(competition)
        activities = self._participant_activities(
            competition, participant.user_id, window, allow_manual
        )
        existing_start = existing_starts.get(participant.id)

        if not activities:
            self._run_diagnostics(competition, participant.user_id, window)
            score = 0.0
            data = data_cls.empty(existing_start, **extra)
        else:
            metrics = calculate_metrics(activities)
            starting_value = (
                existing_start if existing_start is not None else metrics.first_value
            )
            score = calculate_score(metrics, competition.scoring_method, starting_value)
            data = data_cls.from_metrics(metrics, starting_value, **extra)

        return {
            "competition_id": competition.id,
            "subject_type": "participant",
            "subject_id": participant.id,
            "calculated_score": score,
            "calculation_method": competition.scoring_method,
            "calculation_data": data.to_dict(),
            "activity_entries_count": len(activities),
            "calculated_at": get_utc_time(),
        }

    def _rank_results(self, competition, results):
        ranked = assign_ranks(
            results,
            competition.ranking_direction or "desc",
            score_key=lambda r: r.calculated_score,
            id_key=lambda r: r.subject_id,
        )
        self.data_store.update_ranks(ranked)
        return ranked

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def _calculate_individual(self, competition, log):
        participants = self.data_store.get_active_participants(competition.id)
        if not participants:
            return CalculationSummary(
                success=True, message="No active participants found", updated_count=0
            )

        window = self._require_window(competition)
        log.debug(f"Window {window[0]} to {window[1] or 'open'}, {len(participants)} participants")

        existing_starts = self.data_store.get_existing_starting_values(
            competition.id, [p.id for p in participants]
        )
        rows = [
            self._score_participant(
                competition, participant, window, existing_starts, ParticipantScoreData
            )
            for participant in participants
        ]

        results = self.data_store.upsert_results(rows)
        self._rank_results(competition, results)

        return CalculationSummary(
            success=True,
            message=f"Individual competition recalculated: {len(rows)} participants",
            updated_count=len(rows),
        )

    def _calculate_team(self, competition, log):
        participants = self.data_store.get_active_participants(
            competition.id, with_team_only=True
        )
        if not participants:
            return CalculationSummary(
                success=True,
                message="No active participants with teams found",
                updated_count=0,
            )

        window = self._require_window(competition)
        existing_starts = self.data_store.get_existing_starting_values(
            competition.id, [p.id for p in participants]
        )

        participant_rows = []
        rows_by_team = OrderedDict()
        for participant in participants:
            row = self._score_participant(
                competition,
                participant,
                window,
                existing_starts,
                TeamParticipantScoreData,
                team_id=participant.team_id,
            )
            participant_rows.append(row)
            rows_by_team.setdefault(participant.team_id, []).append(row)

        self.data_store.upsert_results(participant_rows)

        team_scoring_method = competition.team_scoring_method or "sum"
        team_rows = []
        for team_id, member_rows in rows_by_team.items():
            total_entries = sum(r["activity_entries_count"] for r in member_rows)
            data = TeamAggregateData(
                team_scoring_method=team_scoring_method,
                member_count=len(member_rows),
                total_entries=total_entries,
            )
            team_rows.append(
                {
                    "competition_id": competition.id,
                    "subject_type": "team",
                    "subject_id": team_id,
                    "calculated_score": aggregate_team_score(
                        (r["calculated_score"] for r in member_rows),
                        team_scoring_method,
                    ),
                    "calculation_method": (
                        f"{competition.scoring_method}_{team_scoring_method}"
                    ),
                    "calculation_data": data.to_dict(),
                    "activity_entries_count": total_entries,
                    "calculated_at": get_utc_time(),
                }
            )

        team_results = self.data_store.upsert_results(team_rows)
        self._rank_results(competition, team_results)

        return CalculationSummary(
            success=True,
            message=(
                f"Team competition recalculated: {len(participant_rows)} participants, "
                f"{len(team_rows)} teams"
            ),
            updated_count=len(participant_rows) + len(team_rows),
        )

    def _score_team_member(self, competition, member, window):
        """Return (score, starting_value, current_value) for a team_v2 member"""
        start_day, end_day = window

        if competition.activity_type == "weight":
            baseline = self.data_store.get_baseline_activity(member.user_id, "weight", True)
            activities = include_baseline_activity(
                self.data_store.get_activities(
                    member.user_id, "weight", start_day, end_day, True
                ),
                baseline,
            )
            return weight_lost(activities)

        activities = self.data_store.get_activities(
            member.user_id, competition.activity_type, start_day, end_day, True
        )
        if not activities:
            return 0.0, None, None
        total = cumulative_total(activities)
        return total, 0.0, total

    def _calculate_team_v2(self, competition, log):
        teams = self.data_store.get_active_teams(competition.id)
        if not teams:
            return CalculationSummary(
                success=True, message="No active teams found", updated_count=0
            )

        window = self._require_window(competition)

        members_updated = 0
        for team in teams:
            active_members = team.active_members
            team_total = 0.0

            for member in active_members:
                score, starting_value, current_value = self._score_team_member(
                    competition, member, window
                )
                self.data_store.update_team_member(
                    member,
                    individual_score=score,
                    starting_value=starting_value,
                    current_value=current_value,
                    contribution_value=score,
                )
                members_updated += 1
                team_total += score

            self.data_store.update_team(
                team, total_score=team_total, member_count=len(active_members)
            )
            log.debug(f"Team {team.name}: total score = {team_total}")

        # Higher is better for both pounds lost and summed totals
        ranked = assign_ranks(
            teams, "desc", score_key=lambda t: t.total_score, id_key=lambda t: t.id
        )
        self.data_store.update_team_ranks(ranked)

        return CalculationSummary(
            success=True,
            message=(
                f"Team V2 competition recalculated: {len(teams)} teams, "
                f"{members_updated} members"
            ),
            updated_count=len(teams) + members_updated,
        )

    def _calculate_collaborative(self, competition, log):
        participants = self.data_store.get_active_participants(competition.id)
        if not participants:
            self.data_store.update_collaborative_progress(competition.id, 0.0)
            return CalculationSummary(
                success=True,
                message="No active participants found",
                updated_count=0,
                total_progress=0.0,
            )

        start_day, end_day = self._require_window(competition)

        rows = []
        for participant in participants:
            try:
                activities = self.data_store.get_activities(
                    participant.user_id,
                    competition.activity_type,
                    start_day,
                    end_day,
                    True,
                )
            except ActivityFetchError as e:
                log.error(f"Scoring participant {participant.id} as 0: {e}")
                activities = []

            if not activities:
                self._run_diagnostics(competition, participant.user_id, (start_day, end_day))

            contribution = cumulative_total(activities)
            data = CollaborativeContributionData(
                total_contribution=contribution,
                entry_count=len(activities),
                competition_goal=competition.goal_value or None,
            )
            rows.append(
                {
                    "competition_id": competition.id,
                    "subject_type": "participant",
                    "subject_id": participant.id,
                    "calculated_score": contribution,
                    "calculation_method": "collaborative_total",
                    "calculation_data": data.to_dict(),
                    "activity_entries_count": len(activities),
                    "rank": 1,
                    "calculated_at": get_utc_time(),
                }
            )

        self.data_store.upsert_results(rows)

        total_progress = sum(row["calculated_score"] for row in rows)
        self.data_store.update_collaborative_progress(competition.id, total_progress)

        if total_progress == 0:
            log.warning("No participant contributions found, progress set to 0")

        return CalculationSummary(
            success=True,
            message=(
                f"Collaborative competition recalculated: {len(rows)} participants, "
                f"total progress: {_display_number(total_progress)}"
            ),
            updated_count=len(rows),
            total_progress=total_progress,
        )


def calculate_competition(competition_id, data_store=None, logger=None, diagnostics=None):
    """
    Recalculate a competition and drop its cached leaderboard

    Returns a CalculationSummary.
    """
    service = CalculationService(data_store, logger=logger, diagnostics=diagnostics)
    summary = service.calculate(competition_id)

    if summary.success:
        invalidate_leaderboard_cache(competition_id)

    return summary
