"""Tests for ConsensusEngine grouping, scoring and publication."""

from datetime import timedelta

import pytest

from conftest import NOW, make_report, make_trust
from fuelwatch.services.dve.consensus import ConsensusEngine
from fuelwatch.services.dve.exceptions import StorageError
from fuelwatch.services.dve.policy import DVEPolicy
from fuelwatch.services.dve.trust_ledger import TrustScoreLedger


@pytest.fixture
def station_id(station):
    return station.id


class TestDecide:
    def test_two_users_corroborate(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", dve_score=0.5),
            make_report(station_id, "user_b", dve_score=0.6),
        ]

        decisions = consensus.decide(station_id, reports)

        assert len(decisions) == 1
        decision = decisions[0]
        assert decision.fuel_type == "Diesel"
        assert decision.distinct_users == 2
        assert decision.mean_score == pytest.approx(0.55)
        assert decision.confidence == pytest.approx(0.75)
        assert decision.verified
        assert set(decision.report_ids) == {r.id for r in reports}

    def test_single_user_never_reaches_consensus(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", dve_score=1.0),
            make_report(station_id, "user_a", dve_score=1.0),
            make_report(station_id, "user_a", dve_score=1.0),
        ]
        assert consensus.decide(station_id, reports) == []

    def test_too_few_reports_overall(self, consensus, station_id):
        assert consensus.decide(station_id, [make_report(station_id)]) == []
        assert consensus.decide(station_id, []) == []

    def test_below_threshold_is_not_verified(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", dve_score=0.1),
            make_report(station_id, "user_b", dve_score=0.1),
        ]
        (decision,) = consensus.decide(station_id, reports)
        assert decision.confidence == pytest.approx(0.3)
        assert not decision.verified

    def test_confidence_capped_at_one(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", dve_score=0.9),
            make_report(station_id, "user_b", dve_score=0.95),
        ]
        (decision,) = consensus.decide(station_id, reports)
        assert decision.confidence == 1.0

    def test_mean_is_over_reports_not_users(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", dve_score=0.2),
            make_report(station_id, "user_a", dve_score=0.2),
            make_report(station_id, "user_b", dve_score=0.8),
        ]
        (decision,) = consensus.decide(station_id, reports)
        assert decision.distinct_users == 2
        assert decision.mean_score == pytest.approx(0.4)
        assert decision.confidence == pytest.approx(0.6)

    def test_fuel_types_are_judged_separately(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", fuel_type="Diesel", dve_score=0.5),
            make_report(station_id, "user_b", fuel_type="Diesel", dve_score=0.5),
            make_report(station_id, "user_a", fuel_type="CNG", dve_score=0.9),
            make_report(station_id, "user_a", fuel_type="E20", dve_score=0.9),
        ]
        decisions = consensus.decide(station_id, reports)
        assert [d.fuel_type for d in decisions] == ["Diesel"]

    def test_missing_score_counts_as_zero(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", dve_score=None),
            make_report(station_id, "user_b", dve_score=0.6),
        ]
        (decision,) = consensus.decide(station_id, reports)
        assert decision.mean_score == pytest.approx(0.3)

    def test_groups_come_out_in_fuel_type_order(self, consensus, station_id):
        reports = [
            make_report(station_id, user, fuel_type=fuel, dve_score=0.5)
            for fuel in ("Petrol", "Diesel", "CNG")
            for user in ("user_b", "user_a")
        ]
        forward = [d.fuel_type for d in consensus.decide(station_id, reports)]
        backward = [d.fuel_type for d in consensus.decide(station_id, list(reversed(reports)))]
        assert forward == backward == ["CNG", "Diesel", "Petrol"]

    def test_idempotent_on_unchanged_reports(self, consensus, station_id):
        reports = [
            make_report(station_id, "user_a", dve_score=0.5),
            make_report(station_id, "user_b", dve_score=0.6),
        ]
        assert consensus.decide(station_id, reports) == consensus.decide(station_id, reports)

    def test_policy_minimum_is_respected(self, station_id):
        policy = DVEPolicy(MIN_REPORTS_FOR_CONSENSUS=3)
        engine = ConsensusEngine(policy, TrustScoreLedger(policy))
        reports = [
            make_report(station_id, "user_a", dve_score=0.9),
            make_report(station_id, "user_b", dve_score=0.9),
            make_report(station_id, "user_b", dve_score=0.9),
        ]
        assert engine.decide(station_id, reports) == []


class TestEvaluateStation:
    @pytest.mark.asyncio
    async def test_publishes_and_flags_reports(self, consensus, mock_repo, station_id, trust_rows):
        reports = [
            make_report(station_id, "user_a", dve_score=0.5),
            make_report(station_id, "user_b", dve_score=0.6),
        ]
        trust_rows.update({"user_a": make_trust("user_a"), "user_b": make_trust("user_b")})
        mock_repo.fetch_window_reports.return_value = reports
        mock_repo.mark_reports_verified.return_value = [
            (reports[0].id, "user_a"), (reports[1].id, "user_b"),
        ]

        published = await consensus.evaluate_station(mock_repo, station_id, now=NOW)

        assert len(published) == 1
        mock_repo.fetch_window_reports.assert_awaited_once_with(station_id, NOW - timedelta(hours=168))
        mock_repo.upsert_verified_entry.assert_awaited_once()
        args = mock_repo.upsert_verified_entry.await_args
        assert args.args == (station_id, "Diesel")
        assert args.kwargs["confidence_score"] == pytest.approx(0.75)
        assert args.kwargs["verified_by_count"] == 2
        assert args.kwargs["verified_at"] == NOW
        mock_repo.mark_reports_verified.assert_awaited_once_with(
            tuple(r.id for r in reports), NOW
        )
        mock_repo.commit.assert_awaited_once()

        # Contributors credited
        assert trust_rows["user_a"].correct_reports == 1
        assert trust_rows["user_a"].trust_score == pytest.approx(0.55)
        assert trust_rows["user_b"].trust_score == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_rerun_refreshes_without_recrediting(self, consensus, mock_repo, station_id, trust_rows):
        reports = [
            make_report(station_id, "user_a", dve_score=0.5, is_verified=True),
            make_report(station_id, "user_b", dve_score=0.6, is_verified=True),
        ]
        trust_rows.update({"user_a": make_trust("user_a"), "user_b": make_trust("user_b")})
        mock_repo.fetch_window_reports.return_value = reports
        # Nothing left to flip
        mock_repo.mark_reports_verified.return_value = []

        published = await consensus.evaluate_station(mock_repo, station_id, now=NOW)

        assert published[0].confidence == pytest.approx(0.75)
        mock_repo.upsert_verified_entry.assert_awaited_once()
        assert trust_rows["user_a"].trust_score == 0.5
        mock_repo.get_trust_score.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_below_threshold_writes_nothing(self, consensus, mock_repo, station_id):
        mock_repo.fetch_window_reports.return_value = [
            make_report(station_id, "user_a", dve_score=0.05),
            make_report(station_id, "user_b", dve_score=0.05),
        ]

        published = await consensus.evaluate_station(mock_repo, station_id, now=NOW)

        assert published == []
        mock_repo.upsert_verified_entry.assert_not_awaited()
        mock_repo.mark_reports_verified.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_user_reports_publish_nothing(self, consensus, mock_repo, station_id):
        mock_repo.fetch_window_reports.return_value = [
            make_report(station_id, "user_a", dve_score=0.9),
            make_report(station_id, "user_a", dve_score=0.9),
        ]

        assert await consensus.evaluate_station(mock_repo, station_id, now=NOW) == []
        mock_repo.upsert_verified_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_keeps_earlier_groups(self, consensus, mock_repo, station_id):
        mock_repo.fetch_window_reports.return_value = [
            make_report(station_id, "user_a", fuel_type="Diesel", dve_score=0.5),
            make_report(station_id, "user_b", fuel_type="Diesel", dve_score=0.5),
            make_report(station_id, "user_a", fuel_type="CNG", dve_score=0.5),
            make_report(station_id, "user_b", fuel_type="CNG", dve_score=0.5),
        ]
        mock_repo.upsert_verified_entry.side_effect = [None, StorageError("upsert failed")]

        with pytest.raises(StorageError):
            await consensus.evaluate_station(mock_repo, station_id, now=NOW)

        # CNG sorts first and was committed before Diesel failed
        assert mock_repo.upsert_verified_entry.await_count == 2
        mock_repo.commit.assert_awaited_once()


class TestSweep:
    @pytest.mark.asyncio
    async def test_deletes_entries_older_than_window(self, consensus, mock_repo):
        mock_repo.delete_verified_entries_before.return_value = 3

        deleted = await consensus.sweep_stale_entries(mock_repo, now=NOW)

        assert deleted == 3
        mock_repo.delete_verified_entries_before.assert_awaited_once_with(NOW - timedelta(hours=168))
        mock_repo.commit.assert_awaited_once()
