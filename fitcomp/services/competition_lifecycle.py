"""
Competition lifecycle jobs

Moves competitions from `scheduled` to `started` (anchoring the window and
seeding weight baselines) and from `started` to `completed` once their
window has passed. Each job processes a batch; a failure on one
competition is logged, rolled back and counted without stopping the rest.
"""

import logging
from datetime import timedelta

from fitcomp import db
from fitcomp.exceptions import ScoringError
from fitcomp.models import CalculationResult, Competition, CompetitionTeam
from fitcomp.services.calculation_service import calculate_competition
from fitcomp.services.data_store import SqlAlchemyDataStore
from fitcomp.utils.calculation_data import BaselineSeedData
from fitcomp.utils.time_utils import (
    get_app_today,
    get_utc_time,
    start_of_app_day,
    to_date_only,
)

logger = logging.getLogger(__name__)

BASELINE_MODES = ("individual", "team")


def seed_baseline_results(competition, data_store=None):
    """
    Anchor each active participant's starting weight before the first run

    The starting value is the participant's latest weight entry at start
    time. Rows that already carry a starting value are left untouched.
    Returns the number of rows written.
    """
    data_store = data_store or SqlAlchemyDataStore()
    participants = data_store.get_active_participants(competition.id)
    if not participants:
        return 0

    seeded_at = get_utc_time()
    rows = []
    for participant in participants:
        latest = data_store.get_latest_activity(participant.user_id, "weight")
        data = BaselineSeedData(
            starting_value=latest.value if latest else None,
            seeded_at=seeded_at.isoformat(),
        )
        rows.append(
            {
                "competition_id": competition.id,
                "subject_type": "participant",
                "subject_id": participant.id,
                "calculated_score": 0.0,
                "calculation_method": competition.scoring_method,
                "calculation_data": data.to_dict(),
                "activity_entries_count": 0,
                "rank": None,
                "calculated_at": seeded_at,
            }
        )

    return data_store.insert_missing_results(competition.id, rows)


def start_competition(competition, today=None, data_store=None):
    """Start one competition at midnight of `today` in the app timezone"""
    actual_start = start_of_app_day(today)

    competition.actual_start_date = actual_start
    if competition.duration_days:
        competition.actual_end_date = actual_start + timedelta(
            days=competition.duration_days
        )
    else:
        competition.actual_end_date = competition.end_date
    competition.status = "started"

    seeded = 0
    if (
        competition.activity_type == "weight"
        and competition.competition_mode in BASELINE_MODES
    ):
        seeded = seed_baseline_results(competition, data_store)

    db.session.commit()

    logger.info(
        f"Started competition {competition.id} ({competition.name}) "
        f"window {to_date_only(competition.actual_start_date)} to "
        f"{to_date_only(competition.actual_end_date) or 'open'}, "
        f"{seeded} baselines seeded"
    )
    return seeded


def start_scheduled_competitions(today=None):
    """
    Start every scheduled competition whose start day has arrived

    Competitions without a nominal start date start immediately.

    Returns:
        dict with started/failed counts and per-competition errors
    """
    today = today or get_app_today()
    competitions = Competition.query.filter_by(status="scheduled").all()

    started = 0
    failed = 0
    errors = []

    for competition in competitions:
        start_day = to_date_only(competition.start_date)
        if start_day is not None and start_day > today:
            continue

        try:
            start_competition(competition, today)
            started += 1
        except Exception as e:
            db.session.rollback()
            failed += 1
            errors.append({"competition_id": competition.id, "error": str(e)})
            logger.error(
                f"Failed to start competition {competition.id}: {e}", exc_info=True
            )

    if started or failed:
        logger.info(f"Competition start job: {started} started, {failed} failed")

    return {"started": started, "failed": failed, "errors": errors}


def get_winner(competition):
    """Rank 1 subject of a competition, or None (collaborative has no winner)"""
    mode = competition.competition_mode

    if mode == "collaborative":
        return None

    if mode == "team_v2":
        team = CompetitionTeam.query.filter_by(
            competition_id=competition.id, is_active=True, rank=1
        ).first()
        if team is None:
            return None
        return {"subject_type": "team", "subject_id": team.id, "score": team.total_score}

    subject_type = "team" if mode == "team" else "participant"
    result = CalculationResult.query.filter_by(
        competition_id=competition.id, subject_type=subject_type, rank=1
    ).first()
    if result is None:
        return None
    return {
        "subject_type": subject_type,
        "subject_id": result.subject_id,
        "score": result.calculated_score,
    }


def finalize_competition(competition):
    """Run the final recalculation and mark the competition completed"""
    summary = calculate_competition(competition.id)
    if not summary.success:
        raise ScoringError(summary.message)

    competition.status = "completed"
    competition.completed_at = get_utc_time()
    db.session.commit()

    winner = get_winner(competition)
    if winner:
        logger.info(
            f"Competition {competition.id} ({competition.name}) completed, winner "
            f"{winner['subject_type']} {winner['subject_id']} with {winner['score']}"
        )
    elif competition.competition_mode == "collaborative":
        logger.info(
            f"Collaborative competition {competition.id} completed with progress "
            f"{competition.collaborative_progress} of goal {competition.goal_value}"
        )
    else:
        logger.info(f"Competition {competition.id} completed without a ranked winner")

    return {
        "competition_id": competition.id,
        "name": competition.name,
        "winner": winner,
        "collaborative_progress": competition.collaborative_progress,
    }


def finalize_expired_competitions(today=None):
    """
    Complete every started competition whose window ended before today

    Returns:
        dict with finalized/failed counts and per-competition details
    """
    today = today or get_app_today()
    competitions = Competition.query.filter_by(status="started").all()

    finalized = 0
    failed = 0
    details = []

    for competition in competitions:
        end_day = to_date_only(competition.effective_end)
        if end_day is None or end_day >= today:
            continue

        try:
            details.append(finalize_competition(competition))
            finalized += 1
        except Exception as e:
            db.session.rollback()
            failed += 1
            details.append({"competition_id": competition.id, "error": str(e)})
            logger.error(
                f"Failed to finalize competition {competition.id}: {e}", exc_info=True
            )

    if finalized or failed:
        logger.info(f"Competition finalize job: {finalized} finalized, {failed} failed")

    return {"finalized": finalized, "failed": failed, "competitions": details}


def recalculate_started_competitions():
    """
    Recalculate every started competition

    Safety net for triggers lost between an activity write and its queued
    recalculation.
    """
    competition_ids = [
        competition_id
        for (competition_id,) in db.session.query(Competition.id)
        .filter(Competition.status == "started")
        .all()
    ]

    recalculated = 0
    failed = 0
    details = []

    for competition_id in competition_ids:
        try:
            summary = calculate_competition(competition_id)
        except Exception as e:
            db.session.rollback()
            failed += 1
            details.append({"competition_id": competition_id, "error": str(e)})
            logger.error(
                f"Failed to recalculate competition {competition_id}: {e}",
                exc_info=True,
            )
            continue

        if summary.success:
            recalculated += 1
        else:
            failed += 1
        details.append({"competition_id": competition_id, **summary.to_dict()})

    return {"recalculated": recalculated, "failed": failed, "competitions": details}
