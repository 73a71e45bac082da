from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from fitcomp import db, limiter
from fitcomp.exceptions import ScoringError
from fitcomp.models import ActivityEntry, CalculationResult, Competition, CompetitionTeam
from fitcomp.models.activity_entry import get_default_unit
from fitcomp.models.calculation_result import SUBJECT_TYPES
from fitcomp.routes import require_bearer_token
from fitcomp.routes.api import bp
from fitcomp.services.calculation_service import CalculationSummary, calculate_competition
from fitcomp.services.recalculation_trigger import trigger_recalculations
from fitcomp.services.scheduler_service import scheduler_service
from fitcomp.utils.cache_utils import cached_leaderboard
from fitcomp.utils.time_utils import get_utc_time, parse_iso_datetime, to_date_only


def _activity_rate_limit():
    return current_app.config.get("ACTIVITY_RATE_LIMIT", "120 per minute")


def derive_source(metadata, explicit_source=None):
    """Integration name for an entry; `manual` unless the client says otherwise"""
    if explicit_source:
        return explicit_source

    metadata = metadata or {}
    device_name = metadata.get("device_name")
    health_source = metadata.get("health_source")

    if device_name and device_name != "Unknown":
        return device_name
    if health_source and health_source != "Unknown":
        return health_source
    if metadata.get("sync_method") == "health_service":
        return "apple_health"
    return "manual"


def _validate_activity_payload(data):
    """Return (cleaned, error) for a POST /activities body"""
    if not isinstance(data, dict):
        return None, "Request body must be a JSON object"

    user_id = data.get("user_id")
    if not user_id or not isinstance(user_id, str):
        return None, "user_id is required and must be a string"

    activity_type = data.get("activity_type")
    if not activity_type or not isinstance(activity_type, str):
        return None, "activity_type is required and must be a string"

    value = data.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return None, "value is required and must be a non-negative number"

    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        return None, "metadata must be an object"

    raw_date = data.get("date")
    if raw_date:
        try:
            entry_date = parse_iso_datetime(str(raw_date))
        except ValueError:
            return None, "date must be an ISO-8601 timestamp"
    else:
        entry_date = get_utc_time()

    return {
        "user_id": user_id,
        "activity_type": activity_type,
        "value": float(value),
        "unit": data.get("unit") or get_default_unit(activity_type),
        "notes": data.get("notes") or None,
        "metadata": metadata or {},
        "source": derive_source(metadata, data.get("source")),
        "date": entry_date,
        "date_only": to_date_only(entry_date),
    }, None


@bp.route("/activities", methods=["POST"])
@require_bearer_token("API_TOKEN")
@limiter.limit(_activity_rate_limit)
def create_activity():
    """Log an activity entry (one per user, type and day) and queue recalculation"""
    cleaned, error = _validate_activity_payload(request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    now = get_utc_time().isoformat()
    entry = ActivityEntry.query.filter_by(
        user_id=cleaned["user_id"],
        activity_type=cleaned["activity_type"],
        date_only=cleaned["date_only"],
    ).first()
    created = entry is None

    try:
        if created:
            entry = ActivityEntry(
                user_id=cleaned["user_id"],
                activity_type=cleaned["activity_type"],
            )
            db.session.add(entry)
            audit = {"created_via": "api_token", "created_at": now}
        else:
            previous_audit = (entry.entry_metadata or {}).get("_audit", {})
            audit = {**previous_audit, "updated_via": "api_token", "updated_at": now}
            entry.restore()

        entry.value = cleaned["value"]
        entry.unit = cleaned["unit"]
        entry.notes = cleaned["notes"]
        entry.source = cleaned["source"]
        entry.date = cleaned["date"]
        entry.date_only = cleaned["date_only"]
        entry.entry_metadata = {**cleaned["metadata"], "_audit": audit}

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to save activity entry: {e}")
        return jsonify({"error": "Failed to save activity entry"}), 500

    current_app.logger.info(
        f"Activity {'created' if created else 'updated'}: {entry.activity_type}="
        f"{entry.value} user={entry.user_id} day={entry.date_only} source={entry.source}"
    )

    queued = trigger_recalculations(entry.user_id, entry.activity_type, entry.date)

    return (
        jsonify(
            {
                "success": True,
                "created": created,
                "activity": entry.to_dict(),
                "recalculations_queued": len(queued),
            }
        ),
        201 if created else 200,
    )


@bp.route("/activities/<entry_id>", methods=["DELETE"])
@require_bearer_token("API_TOKEN")
def delete_activity(entry_id):
    """Soft-delete an activity entry and queue recalculation for its day"""
    entry = db.session.get(ActivityEntry, entry_id)
    if entry is None or entry.is_deleted:
        return jsonify({"error": "Activity entry not found"}), 404

    data = request.get_json(silent=True) or {}
    try:
        entry.soft_delete(data.get("reason"))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to delete activity entry {entry_id}: {e}")
        return jsonify({"error": "Failed to delete activity entry"}), 500

    queued = trigger_recalculations(entry.user_id, entry.activity_type, entry.date)

    return jsonify(
        {
            "success": True,
            "activity": entry.to_dict(),
            "recalculations_queued": len(queued),
        }
    )


@bp.route("/activities")
@require_bearer_token("API_TOKEN")
def list_activities():
    """List a user's non-deleted entries, newest first"""
    user_id = request.args.get("user_id")
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400

    max_limit = current_app.config.get("ACTIVITY_LIST_LIMIT", 100)
    limit = request.args.get("limit", max_limit, type=int)
    limit = max(1, min(limit, max_limit))

    query = ActivityEntry.query.filter(
        ActivityEntry.user_id == user_id, ActivityEntry.deleted_at.is_(None)
    )
    activity_type = request.args.get("activity_type")
    if activity_type:
        query = query.filter(ActivityEntry.activity_type == activity_type)

    entries = query.order_by(ActivityEntry.date.desc()).limit(limit).all()
    return jsonify({"activities": [entry.to_dict() for entry in entries]})


@bp.route("/competitions/<competition_id>/recalculate", methods=["POST"])
@require_bearer_token("API_TOKEN")
def recalculate_competition(competition_id):
    """Recalculate a competition synchronously"""
    if db.session.get(Competition, competition_id) is None:
        summary = CalculationSummary(
            success=False, message=f"Competition {competition_id} not found"
        )
        return jsonify(summary.to_dict()), 404

    try:
        summary = calculate_competition(competition_id)
    except ScoringError as e:
        db.session.rollback()
        current_app.logger.error(
            f"Recalculation of competition {competition_id} failed: {e}", exc_info=True
        )
        summary = CalculationSummary(
            success=False, message="Recalculation failed", error=str(e)
        )

    if not summary.success:
        return jsonify(summary.to_dict()), 500
    return jsonify(summary.to_dict())


@bp.route("/competitions/<competition_id>/leaderboard")
@require_bearer_token("API_TOKEN")
@cached_leaderboard
def competition_leaderboard(competition_id):
    """Current standings ordered by rank (unranked rows last)"""
    competition = db.session.get(Competition, competition_id)
    if competition is None:
        return {"error": "Competition not found"}, 404

    subject_type = request.args.get("subject_type")
    if subject_type and subject_type not in SUBJECT_TYPES:
        return {"error": f"subject_type must be one of {', '.join(SUBJECT_TYPES)}"}, 400

    if competition.competition_mode == "team_v2":
        teams = (
            CompetitionTeam.query.filter_by(competition_id=competition_id, is_active=True)
            .order_by(
                CompetitionTeam.rank.is_(None),
                CompetitionTeam.rank,
                CompetitionTeam.total_score.desc(),
                CompetitionTeam.id,
            )
            .all()
        )
        return {
            "competition": competition.to_dict(),
            "teams": [team.to_dict(include_members=True) for team in teams],
        }

    if subject_type is None:
        subject_type = "team" if competition.competition_mode == "team" else "participant"

    score_order = (
        CalculationResult.calculated_score.asc()
        if competition.ranking_direction == "asc"
        else CalculationResult.calculated_score.desc()
    )
    results = (
        CalculationResult.query.filter_by(
            competition_id=competition_id, subject_type=subject_type
        )
        .order_by(
            CalculationResult.rank.is_(None),
            CalculationResult.rank,
            score_order,
            CalculationResult.subject_id,
        )
        .all()
    )
    return {
        "competition": competition.to_dict(),
        "subject_type": subject_type,
        "results": [result.to_dict() for result in results],
    }


@bp.route("/scheduler/status")
@require_bearer_token("API_TOKEN")
def scheduler_status():
    """Background scheduler jobs and run statistics"""
    return jsonify(scheduler_service.get_status())
