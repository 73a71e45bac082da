from datetime import date
from unittest.mock import MagicMock, patch

from fitcomp.models import CalculationResult
from fitcomp.services.calculation_service import CalculationSummary
from fitcomp.services.scheduler_service import SchedulerService


def test_queue_uses_one_job_per_competition(app):
    service = SchedulerService()
    service.app = app
    service.scheduler = MagicMock()
    service.scheduler.add_job.return_value.id = "recalculate_comp-1"
    service.is_running = True

    job_id = service.queue_recalculation("comp-1")

    assert job_id == "recalculate_comp-1"
    kwargs = service.scheduler.add_job.call_args.kwargs
    assert kwargs["id"] == "recalculate_comp-1"
    assert kwargs["args"] == ["comp-1"]
    assert kwargs["replace_existing"] is True
    assert kwargs["max_instances"] == 2
    assert kwargs["coalesce"] is True


def test_queue_falls_back_to_background_thread(app):
    service = SchedulerService()

    with patch("fitcomp.services.scheduler_service.threading.Thread") as thread:
        service.queue_recalculation("comp-1")

    assert thread.call_args.kwargs["args"] == ("comp-1", app)
    assert thread.call_args.kwargs["daemon"] is True
    thread.return_value.start.assert_called_once()


def test_recalculation_job_updates_stats(app, make_competition, add_participant, add_entry):
    competition = make_competition()
    add_participant(competition, "user-1")
    add_entry("user-1", "steps", 2000, date(2026, 1, 4))
    competition_id = competition.id

    service = SchedulerService()
    service._recalculate_competition(competition_id, app)

    assert service.job_stats["successful_runs"] == 1
    assert service.job_stats["competitions_recalculated"] == 1
    assert CalculationResult.query.filter_by(competition_id=competition_id).count() == 1


def test_failed_recalculation_is_recorded(app):
    service = SchedulerService()
    service._recalculate_competition("missing", app)

    assert service.job_stats["failed_runs"] == 1
    assert service.job_stats["last_error"] == "Competition missing not found"


def test_status_without_scheduler(app):
    status = SchedulerService().get_status()

    assert status["is_running"] is False
    assert status["jobs"] == []
    assert status["stats"]["total_runs"] == 0


def test_force_run_unknown_job(app):
    ok, message = SchedulerService().force_run("weekly")

    assert ok is False
    assert message == "Unknown job type: weekly"


def test_request_during_run_triggers_one_follow_up(app):
    service = SchedulerService()
    calls = []

    def recalculate(competition_id):
        calls.append(competition_id)
        if len(calls) == 1:
            # Two more writes land while the first run is still going
            service._recalculate_competition(competition_id, app)
            service._recalculate_competition(competition_id, app)
        return CalculationSummary(success=True, message="ok", updated_count=1)

    with patch(
        "fitcomp.services.scheduler_service.calculate_competition", side_effect=recalculate
    ):
        service._recalculate_competition("comp-1", app)

    assert calls == ["comp-1", "comp-1"]
    assert service.job_stats["successful_runs"] == 2
    assert service._running == set()
    assert service._dirty == set()


def test_thread_fallback_skips_busy_competition(app):
    service = SchedulerService()
    service._running.add("comp-1")

    with patch("fitcomp.services.scheduler_service.threading.Thread") as thread:
        service.queue_recalculation("comp-1")

    thread.assert_not_called()
    assert service._dirty == {"comp-1"}
