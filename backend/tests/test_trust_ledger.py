"""Tests for TrustScoreLedger."""

import pytest

from conftest import NOW, make_trust
from fuelwatch.services.dve.exceptions import StorageError


class TestClamp:
    def test_bounds(self, ledger):
        assert ledger.clamp(1.7) == 1.0
        assert ledger.clamp(-0.3) == 0.1
        assert ledger.clamp(0.42) == 0.42


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_existing_row_returned(self, ledger, mock_repo, trust_rows):
        trust_rows["user_a"] = make_trust("user_a", 0.8)

        trust = await ledger.get_or_create(mock_repo, "user_a")

        assert trust.trust_score == 0.8
        mock_repo.insert_trust_score_if_absent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_new_user_starts_at_initial(self, ledger, mock_repo, trust_rows):
        trust = await ledger.get_or_create(mock_repo, "newcomer")

        assert trust.trust_score == 0.5
        assert trust.total_reports == 0
        assert trust_rows["newcomer"] is trust
        mock_repo.insert_trust_score_if_absent.assert_awaited_once_with("newcomer", 0.5)

    @pytest.mark.asyncio
    async def test_row_missing_after_insert(self, ledger, mock_repo):
        mock_repo.get_trust_score.side_effect = None
        mock_repo.get_trust_score.return_value = None
        mock_repo.insert_trust_score_if_absent.side_effect = None

        with pytest.raises(StorageError):
            await ledger.get_or_create(mock_repo, "ghost")


class TestRecordSubmission:
    @pytest.mark.asyncio
    async def test_accepted_counts_only(self, ledger, mock_repo, trust_rows):
        trust_rows["user_a"] = make_trust("user_a", 0.5)

        trust = await ledger.record_submission(mock_repo, "user_a", rejected=False, now=NOW)

        assert trust.total_reports == 1
        assert trust.incorrect_reports == 0
        assert trust.trust_score == 0.5
        mock_repo.get_trust_score.assert_awaited_once_with("user_a", for_update=True)
        mock_repo.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_penalised(self, ledger, mock_repo, trust_rows):
        trust_rows["user_a"] = make_trust("user_a", 0.5)

        trust = await ledger.record_submission(mock_repo, "user_a", rejected=True, now=NOW)

        assert trust.total_reports == 1
        assert trust.incorrect_reports == 1
        assert trust.trust_score == pytest.approx(0.4)
        assert trust.last_outcome_at == NOW

    @pytest.mark.asyncio
    async def test_penalty_floors_at_minimum(self, ledger, mock_repo, trust_rows):
        trust_rows["user_a"] = make_trust("user_a", 0.15)

        trust = await ledger.record_submission(mock_repo, "user_a", rejected=True, now=NOW)

        assert trust.trust_score == 0.1

    @pytest.mark.asyncio
    async def test_missing_row_is_skipped(self, ledger, mock_repo):
        assert await ledger.record_submission(mock_repo, "nobody", rejected=True) is None
        mock_repo.flush.assert_not_awaited()


class TestRecordCorroborated:
    @pytest.mark.asyncio
    async def test_one_credit_per_user(self, ledger, mock_repo, trust_rows):
        trust_rows["a"] = make_trust("a", 0.5)
        trust_rows["b"] = make_trust("b", 0.5)

        updated = await ledger.record_corroborated(mock_repo, ["a", "a", "b"], now=NOW)

        assert len(updated) == 2
        assert trust_rows["a"].correct_reports == 2
        assert trust_rows["a"].trust_score == pytest.approx(0.55)
        assert trust_rows["b"].correct_reports == 1
        assert trust_rows["b"].trust_score == pytest.approx(0.55)
        mock_repo.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_credit_caps_at_maximum(self, ledger, mock_repo, trust_rows):
        trust_rows["a"] = make_trust("a", 0.98)

        await ledger.record_corroborated(mock_repo, ["a"], now=NOW)

        assert trust_rows["a"].trust_score == 1.0

    @pytest.mark.asyncio
    async def test_nothing_to_credit(self, ledger, mock_repo):
        assert await ledger.record_corroborated(mock_repo, [], now=NOW) == []
        mock_repo.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rows_locked_in_user_order(self, ledger, mock_repo, trust_rows):
        for user in ("user_a", "user_b", "user_c"):
            trust_rows[user] = make_trust(user, 0.5)

        await ledger.record_corroborated(mock_repo, ["user_c", "user_a", "user_b", "user_c"], now=NOW)
        first_run = [c.args[0] for c in mock_repo.get_trust_score.await_args_list]
        mock_repo.get_trust_score.reset_mock()
        await ledger.record_corroborated(mock_repo, ["user_b", "user_c", "user_a"], now=NOW)
        second_run = [c.args[0] for c in mock_repo.get_trust_score.await_args_list]

        assert first_run == second_run == ["user_a", "user_b", "user_c"]
        assert all(c.kwargs == {"for_update": True} for c in mock_repo.get_trust_score.await_args_list)
