"""
SQLAlchemy-backed data store for the scoring engine

Everything the engine reads or writes goes through SqlAlchemyDataStore, so
the engine can be exercised against any object with the same methods.
Write failures roll the session back and surface as PersistenceError.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from fitcomp import db
from fitcomp.exceptions import (
    ActivityFetchError,
    CompetitionNotFoundError,
    PersistenceError,
)
from fitcomp.models import (
    ActivityEntry,
    CalculationResult,
    Competition,
    CompetitionParticipant,
    CompetitionTeam,
)
from fitcomp.utils.scoring import ActivityPoint
from fitcomp.utils.time_utils import get_utc_time

logger = logging.getLogger(__name__)

RESULT_FIELDS = (
    "calculated_score",
    "calculation_method",
    "calculation_data",
    "activity_entries_count",
    "calculated_at",
    "rank",
)


def _to_point(entry):
    return ActivityPoint(
        value=entry.value,
        day=entry.date_only,
        date=entry.date,
        source=entry.source,
    )


class SqlAlchemyDataStore:
    """Read/write interface used by CalculationService"""

    def __init__(self, session=None):
        self.session = session or db.session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch_activities(self, user_id, read):
        """Run an activity read; on failure roll back so later reads still work"""
        try:
            return read()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ActivityFetchError(user_id, str(e)) from e

    def get_competition(self, competition_id):
        competition = self.session.get(Competition, competition_id)
        if competition is None:
            raise CompetitionNotFoundError(competition_id)
        return competition

    def get_active_participants(self, competition_id, with_team_only=False):
        query = CompetitionParticipant.query.filter(
            CompetitionParticipant.competition_id == competition_id,
            CompetitionParticipant.is_active.is_(True),
        )
        if with_team_only:
            query = query.filter(CompetitionParticipant.team_id.isnot(None))
        return query.order_by(
            CompetitionParticipant.joined_at, CompetitionParticipant.id
        ).all()

    def get_activities(
        self, user_id, activity_type, start_day, end_day=None, allow_manual=True
    ):
        """Non-deleted entries with date_only inside [start_day, end_day], oldest first"""
        query = ActivityEntry.query.filter(
            ActivityEntry.user_id == user_id,
            ActivityEntry.activity_type == activity_type,
            ActivityEntry.deleted_at.is_(None),
            ActivityEntry.date_only >= start_day,
        )
        if end_day is not None:
            query = query.filter(ActivityEntry.date_only <= end_day)
        if not allow_manual:
            query = query.filter(ActivityEntry.source != "manual")

        entries = self._fetch_activities(
            user_id, query.order_by(ActivityEntry.date, ActivityEntry.id).all
        )

        return [_to_point(entry) for entry in entries]

    def get_baseline_activity(self, user_id, activity_type, allow_manual=True):
        """Earliest non-deleted entry ever recorded for this activity type"""
        query = ActivityEntry.query.filter(
            ActivityEntry.user_id == user_id,
            ActivityEntry.activity_type == activity_type,
            ActivityEntry.deleted_at.is_(None),
        )
        if not allow_manual:
            query = query.filter(ActivityEntry.source != "manual")

        entry = self._fetch_activities(
            user_id, query.order_by(ActivityEntry.date, ActivityEntry.id).first
        )

        return _to_point(entry) if entry else None

    def get_latest_activity(self, user_id, activity_type):
        entry = (
            ActivityEntry.query.filter(
                ActivityEntry.user_id == user_id,
                ActivityEntry.activity_type == activity_type,
                ActivityEntry.deleted_at.is_(None),
            )
            .order_by(ActivityEntry.date.desc())
            .first()
        )
        return _to_point(entry) if entry else None

    def get_recent_activities(self, user_id, activity_type, limit=5):
        """Latest entries regardless of window (diagnostics only)"""
        query = (
            ActivityEntry.query.filter(
                ActivityEntry.user_id == user_id,
                ActivityEntry.activity_type == activity_type,
                ActivityEntry.deleted_at.is_(None),
            )
            .order_by(ActivityEntry.date.desc())
            .limit(limit)
        )
        entries = self._fetch_activities(user_id, query.all)
        return [_to_point(entry) for entry in entries]

    def get_existing_starting_values(self, competition_id, subject_ids):
        """Map participant id -> previously stored non-null starting_value"""
        if not subject_ids:
            return {}

        rows = CalculationResult.query.filter(
            CalculationResult.competition_id == competition_id,
            CalculationResult.subject_type == "participant",
            CalculationResult.subject_id.in_(list(subject_ids)),
        ).all()

        return {
            row.subject_id: row.starting_value
            for row in rows
            if row.starting_value is not None
        }

    def get_active_teams(self, competition_id):
        """Active team_v2 teams with members loaded"""
        return (
            CompetitionTeam.query.options(selectinload(CompetitionTeam.members))
            .filter(
                CompetitionTeam.competition_id == competition_id,
                CompetitionTeam.is_active.is_(True),
            )
            .order_by(CompetitionTeam.created_at, CompetitionTeam.id)
            .all()
        )

    def get_results(self, competition_id, subject_type=None):
        query = CalculationResult.query.filter_by(competition_id=competition_id)
        if subject_type:
            query = query.filter_by(subject_type=subject_type)
        return query.all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_results(self, rows):
        """
        Insert or update result rows keyed on (competition, subject_type, subject_id).

        Returns the persisted CalculationResult objects in input order.
        """
        if not rows:
            return []

        try:
            competition_ids = {row["competition_id"] for row in rows}
            existing = {
                (r.competition_id, r.subject_type, r.subject_id): r
                for r in CalculationResult.query.filter(
                    CalculationResult.competition_id.in_(sorted(competition_ids))
                ).all()
            }

            persisted = []
            for row in rows:
                key = (row["competition_id"], row["subject_type"], row["subject_id"])
                result = existing.get(key)
                if result is None:
                    result = CalculationResult(
                        competition_id=row["competition_id"],
                        subject_type=row["subject_type"],
                        subject_id=row["subject_id"],
                    )
                    self.session.add(result)
                    existing[key] = result

                for field in RESULT_FIELDS:
                    if field in row:
                        setattr(result, field, row[field])
                persisted.append(result)

            self.session.commit()
            return persisted
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to upsert calculation results: {e}") from e

    def insert_missing_results(self, competition_id, rows):
        """
        Write participant rows that have no stored starting_value yet.

        Used for baseline seeding: an existing anchored starting_value is
        never overwritten. Returns the number of rows written.
        """
        existing_starts = self.get_existing_starting_values(
            competition_id, [row["subject_id"] for row in rows]
        )
        pending = [row for row in rows if row["subject_id"] not in existing_starts]
        self.upsert_results(pending)
        if len(pending) < len(rows):
            logger.info(
                f"Kept {len(rows) - len(pending)} existing starting values "
                f"for competition {competition_id}"
            )
        return len(pending)

    def update_ranks(self, ranked_results):
        """Write ranks back per result id; ranked_results is [(result, rank)]"""
        try:
            for result, rank in ranked_results:
                result.rank = rank
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to update ranks: {e}") from e

    def update_collaborative_progress(self, competition_id, total_progress):
        try:
            competition = self.get_competition(competition_id)
            competition.collaborative_progress = total_progress
            competition.updated_at = get_utc_time()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(
                f"Failed to update collaborative_progress: {e}"
            ) from e

    def update_team_member(self, member, **fields):
        try:
            for field, value in fields.items():
                setattr(member, field, value)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to update team member {member.id}: {e}") from e

    def update_team(self, team, **fields):
        try:
            for field, value in fields.items():
                setattr(team, field, value)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to update team {team.id}: {e}") from e

    def update_team_ranks(self, ranked_teams):
        try:
            for team, rank in ranked_teams:
                team.rank = rank
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to update team ranks: {e}") from e
