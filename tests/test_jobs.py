"""Tests for the Celery pipeline tasks."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from vecna.errors import GameNotFound
from vecna.pipeline.runner import GameRunResult, ProcessingMode, RunSummary
from vecna.pipeline.states import PipelineState

_MOD = "vecna.jobs.tasks"


def _session_cm(mock_get_session, session=None):
    session = session or MagicMock()
    mock_get_session.return_value.__enter__ = MagicMock(return_value=session)
    mock_get_session.return_value.__exit__ = MagicMock(return_value=False)
    return session


def _summary(success: bool = True) -> RunSummary:
    result = GameRunResult(
        game_id=1,
        name="Azul",
        previous_state=PipelineState.parsed,
        state=PipelineState.generated if success else PipelineState.taxonomy_assigned,
        success=success,
        error=None if success else "Generation failed",
        steps=["taxonomy", "generate"],
    )
    return RunSummary(
        total=1,
        processed=1 if success else 0,
        skipped=0,
        errors=0 if success else 1,
        duration_seconds=0.5,
        results=[result],
    )


class TestAdvanceGame:
    @patch(f"{_MOD}.release_redis_lock")
    @patch(f"{_MOD}.acquire_redis_lock", return_value=True)
    @patch(f"{_MOD}.PipelineRunner")
    @patch(f"{_MOD}.get_session")
    @patch(f"{_MOD}.ContentServiceClient")
    def test_runs_game_under_lock(self, mock_client, mock_get_session, mock_runner, mock_acquire, mock_release):
        from vecna.jobs.tasks import advance_game

        _session_cm(mock_get_session)
        mock_runner.return_value.process_game.return_value = _summary()

        result = advance_game(1)

        assert result["status"] == "success"
        assert result["results"][0]["state"] == "generated"
        assert mock_runner.call_args.kwargs["client"] is mock_client.return_value.__enter__.return_value
        mock_client.return_value.__exit__.assert_called_once()
        mock_acquire.assert_called_once()
        assert mock_acquire.call_args.args[0] == "lock:vecna:game:1"
        mock_release.assert_called_once_with("lock:vecna:game:1")

    @patch(f"{_MOD}.release_redis_lock")
    @patch(f"{_MOD}.acquire_redis_lock", return_value=False)
    @patch(f"{_MOD}.PipelineRunner")
    def test_skips_when_locked(self, mock_runner, mock_acquire, mock_release):
        from vecna.jobs.tasks import advance_game

        result = advance_game(1)

        assert result == {"game_id": 1, "status": "skipped", "reason": "locked"}
        mock_runner.assert_not_called()
        mock_release.assert_not_called()

    @patch(f"{_MOD}.release_redis_lock")
    @patch(f"{_MOD}.acquire_redis_lock", return_value=True)
    @patch(f"{_MOD}.PipelineRunner")
    @patch(f"{_MOD}.get_session")
    @patch(f"{_MOD}.ContentServiceClient")
    def test_missing_game(self, mock_client, mock_get_session, mock_runner, mock_acquire, mock_release):
        from vecna.jobs.tasks import advance_game

        _session_cm(mock_get_session)
        mock_runner.return_value.process_game.side_effect = GameNotFound(1)

        assert advance_game(1)["status"] == "not_found"
        mock_release.assert_called_once()

    @patch(f"{_MOD}.release_redis_lock")
    @patch(f"{_MOD}.acquire_redis_lock", return_value=True)
    @patch(f"{_MOD}.PipelineRunner")
    @patch(f"{_MOD}.get_session")
    @patch(f"{_MOD}.ContentServiceClient")
    def test_reports_step_errors(self, mock_client, mock_get_session, mock_runner, mock_acquire, mock_release):
        from vecna.jobs.tasks import advance_game

        _session_cm(mock_get_session)
        mock_runner.return_value.process_game.return_value = _summary(success=False)

        result = advance_game(1)

        assert result["status"] == "error"
        assert result["results"][0]["error"] == "Generation failed"


class TestProcessFamily:
    @patch(f"{_MOD}.release_redis_lock")
    @patch(f"{_MOD}.acquire_redis_lock", return_value=True)
    @patch(f"{_MOD}.PipelineRunner")
    @patch(f"{_MOD}.get_session")
    @patch(f"{_MOD}.ContentServiceClient")
    def test_passes_options(self, mock_client, mock_get_session, mock_runner, mock_acquire, mock_release):
        from vecna.jobs.tasks import process_family

        _session_cm(mock_get_session)
        mock_runner.return_value.process_family.return_value = _summary()

        result = process_family(9, stop_on_error=True, quality_tier="opus", mode="generate-only")

        assert result["family_id"] == 9
        options = mock_runner.return_value.process_family.call_args.args[1]
        assert options.stop_on_error is True
        assert options.quality_tier == "opus"
        assert options.mode is ProcessingMode.generate_only
        mock_release.assert_called_once_with("lock:vecna:family:9")


class TestReconcileStuckGames:
    @patch(f"{_MOD}.release_redis_lock")
    @patch(f"{_MOD}.acquire_redis_lock", return_value=True)
    @patch(f"{_MOD}.reconcile_expired_leases", return_value=[4, 5])
    @patch(f"{_MOD}.get_session")
    def test_demotes(self, mock_get_session, mock_reconcile, mock_acquire, mock_release):
        from vecna.jobs.tasks import reconcile_stuck_games

        session = _session_cm(mock_get_session)

        assert reconcile_stuck_games() == {"status": "success", "demoted": [4, 5]}
        mock_reconcile.assert_called_once_with(session)
