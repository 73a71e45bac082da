from flask import current_app, jsonify

from fitcomp.routes import require_bearer_token
from fitcomp.routes.cron import bp
from fitcomp.services.competition_lifecycle import (
    finalize_expired_competitions,
    recalculate_started_competitions,
    start_scheduled_competitions,
)


@bp.route("/start-competitions", methods=["POST"])
@require_bearer_token("CRON_SECRET")
def start_competitions():
    """Start scheduled competitions whose start day has arrived"""
    result = start_scheduled_competitions()
    current_app.logger.info(
        f"Cron start-competitions: {result['started']} started, {result['failed']} failed"
    )
    return jsonify({"success": result["failed"] == 0, **result})


@bp.route("/finalize-competitions", methods=["POST"])
@require_bearer_token("CRON_SECRET")
def finalize_competitions():
    """Complete started competitions whose window has passed"""
    result = finalize_expired_competitions()
    current_app.logger.info(
        f"Cron finalize-competitions: {result['finalized']} finalized, "
        f"{result['failed']} failed"
    )
    return jsonify({"success": result["failed"] == 0, **result})


@bp.route("/recalculate-competitions", methods=["POST"])
@require_bearer_token("CRON_SECRET")
def recalculate_competitions():
    """Recalculate every started competition"""
    result = recalculate_started_competitions()
    return jsonify({"success": result["failed"] == 0, **result})
