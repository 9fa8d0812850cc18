"""Tests for processing lease reconciliation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from vecna.pipeline.reconcile import reconcile_expired_leases

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestReconcileExpiredLeases:
    def test_expired_parse_lease_rolls_back(self, session, make_game):
        game = make_game(pipeline_state="parsing", lease_expires_at=NOW - timedelta(minutes=1))

        demoted = reconcile_expired_leases(session, now=NOW)

        assert demoted == [game.id]
        assert game.pipeline_state == "rulebook_ready"
        assert game.last_error == "Timed out while parsing"
        assert game.lease_expires_at is None

    def test_expired_generate_lease_rolls_back(self, session, make_game):
        game = make_game(pipeline_state="generating", lease_expires_at=NOW - timedelta(seconds=1))

        reconcile_expired_leases(session, now=NOW)

        assert game.pipeline_state == "taxonomy_assigned"
        assert game.last_error == "Timed out while generating"

    def test_live_lease_untouched(self, session, make_game):
        game = make_game(pipeline_state="generating", lease_expires_at=NOW + timedelta(minutes=5))

        assert reconcile_expired_leases(session, now=NOW) == []
        assert game.pipeline_state == "generating"

    def test_missing_lease_uses_claim_time(self, session, make_game):
        stale = make_game(pipeline_state="parsing", last_processed_at=NOW - timedelta(hours=1))
        fresh = make_game(pipeline_state="parsing", last_processed_at=NOW - timedelta(minutes=1))

        demoted = reconcile_expired_leases(session, now=NOW, lease_seconds=900)

        assert demoted == [stale.id]
        assert fresh.pipeline_state == "parsing"

    def test_stable_states_ignored(self, session, make_game):
        game = make_game(pipeline_state="parsed", lease_expires_at=NOW - timedelta(days=1))

        assert reconcile_expired_leases(session, now=NOW) == []
        assert game.pipeline_state == "parsed"
