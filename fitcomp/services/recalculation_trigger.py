"""
Recalculation trigger for activity writes

After an activity entry is created, updated or deleted, every started
competition the owner takes part in and whose window contains the entry's
day is queued for recalculation. Queueing never blocks the request and a
failure here never fails the activity write.
"""

import logging

from fitcomp import db
from fitcomp.models import (
    Competition,
    CompetitionParticipant,
    CompetitionTeam,
    CompetitionTeamMember,
)
from fitcomp.services.scheduler_service import scheduler_service
from fitcomp.utils.time_utils import to_date_only

logger = logging.getLogger(__name__)


def find_competitions_for_activity(user_id, activity_type, activity_date):
    """
    Competitions affected by an activity entry

    Args:
        user_id: Owner of the entry
        activity_type: Entry activity type
        activity_date: Entry timestamp, date or ISO string

    Returns:
        list of Competition, ordered by id
    """
    activity_day = to_date_only(activity_date)
    if activity_day is None:
        return []

    participant_ids = (
        db.session.query(CompetitionParticipant.competition_id)
        .filter(
            CompetitionParticipant.user_id == user_id,
            CompetitionParticipant.is_active.is_(True),
        )
        .all()
    )
    team_member_ids = (
        db.session.query(CompetitionTeam.competition_id)
        .join(CompetitionTeamMember, CompetitionTeamMember.team_id == CompetitionTeam.id)
        .filter(
            CompetitionTeamMember.user_id == user_id,
            CompetitionTeamMember.is_active.is_(True),
            CompetitionTeam.is_active.is_(True),
        )
        .all()
    )
    competition_ids = {row[0] for row in participant_ids} | {
        row[0] for row in team_member_ids
    }
    if not competition_ids:
        return []

    candidates = (
        Competition.query.filter(
            Competition.id.in_(sorted(competition_ids)),
            Competition.activity_type == activity_type,
            Competition.status == "started",
        )
        .order_by(Competition.id)
        .all()
    )

    # contains_day is False when the competition has no start date
    return [c for c in candidates if c.contains_day(activity_day)]


def trigger_recalculations(user_id, activity_type, activity_date):
    """
    Queue recalculation of every competition affected by an activity entry

    Returns the list of queued competition ids. Errors are logged, never
    raised.
    """
    try:
        competitions = find_competitions_for_activity(
            user_id, activity_type, activity_date
        )
    except Exception as e:
        db.session.rollback()
        logger.error(
            f"Failed to find competitions for user {user_id} ({activity_type}): {e}",
            exc_info=True,
        )
        return []

    if not competitions:
        logger.debug(f"No started {activity_type} competitions for user {user_id}")
        return []

    queued = []
    for competition in competitions:
        try:
            scheduler_service.queue_recalculation(competition.id)
            queued.append(competition.id)
            logger.info(
                f"Queued recalculation of competition {competition.id} "
                f"({competition.competition_mode}) for user {user_id}"
            )
        except Exception as e:
            logger.error(
                f"Failed to queue recalculation of competition {competition.id}: {e}",
                exc_info=True,
            )

    return queued
