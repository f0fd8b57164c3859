"""Tests for the entitlement ledger: free-before-metered, exactly-once, no overdraw."""

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from brandforge.core.database import credit_history, get_db_session, team_entitlements, team_free_usage
from brandforge.core.errors import InsufficientCreditsError, LedgerWriteError, ValidationError
from brandforge.core.metrics import ledger_settlement_failures_total, ledger_settlements_total
from brandforge.features.entitlements import service as ledger
from brandforge.models.entitlement import ActionType, CreditPool


def _ledger_count(team_id="team-1"):
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(credit_history).where(credit_history.c.team_id == team_id)
        ).scalar()


def _snapshot(team_id="team-1"):
    with get_db_session() as session:
        balances = session.execute(
            select(team_entitlements.c.credits, team_entitlements.c.image_credits)
            .where(team_entitlements.c.team_id == team_id)
        ).first()
        usage = session.execute(
            select(team_free_usage.c.action_type, team_free_usage.c.used)
            .where(team_free_usage.c.team_id == team_id)
            .order_by(team_free_usage.c.action_type)
        ).fetchall()
    return tuple(balances), tuple(tuple(row) for row in usage), _ledger_count(team_id)


class TestProvisioning:
    def test_ensure_is_idempotent(self):
        assert ledger.ensure_team_entitlement("team-x", credits=5) is True
        assert ledger.ensure_team_entitlement("team-x", credits=99) is False
        assert ledger.get_entitlement_state("team-x", ActionType.PERSONA_CREATION).metered_balance == 5

    def test_concurrent_provisioning_does_not_conflict(self, monkeypatch):
        assert ledger.ensure_team_entitlement("team-race", credits=4) is True

        # A second request that checked before the first one committed
        monkeypatch.setattr(ledger, "_entitlement_row_exists", lambda session, team_id: False)
        monkeypatch.setattr(ledger, "_free_usage_row_exists", lambda session, team_id, action_type: False)

        assert ledger.ensure_team_entitlement("team-race", credits=99) is False
        entry = ledger.settle("team-race", "user-1", ActionType.PERSONA_CREATION)
        assert entry.metadata["free"] is True

        balances, usage, _ = _snapshot("team-race")
        assert balances == (4, 0)
        assert len(usage) == len(ledger.quota_action_types())

    def test_free_allotments(self):
        assert ledger.free_allotment(ActionType.PERSONA_CREATION) == 3
        assert ledger.free_allotment(ActionType.THEME_CREATION) == 3
        assert ledger.free_allotment(ActionType.BRAND_CREATION) == 3
        assert ledger.free_allotment(ActionType.IMAGE_GENERATION) == 0

    def test_pools(self):
        assert ledger.credit_pool(ActionType.IMAGE_GENERATION) == CreditPool.IMAGE_CREDITS
        assert ledger.credit_pool(ActionType.THEME_CREATION) == CreditPool.CREDITS


class TestPrecheck:
    def test_free_uses_available(self, seed_team):
        seed_team(credits=0)
        result = ledger.precheck("team-1", ActionType.PERSONA_CREATION)
        assert result.allowed is True
        assert result.is_free is True
        assert result.free_remaining == 3

    def test_exhausted_free_and_zero_balance_denied(self, seed_team):
        """freeUsesConsumed=3, granted=3, balance=0 -> not allowed."""
        seed_team(credits=0)
        with get_db_session() as session:
            session.execute(update(team_free_usage).values(used=3))

        result = ledger.precheck("team-1", ActionType.PERSONA_CREATION)
        assert result.allowed is False
        assert result.is_free is False

        with pytest.raises(InsufficientCreditsError) as exc_info:
            ledger.require_entitlement("team-1", ActionType.PERSONA_CREATION)
        assert exc_info.value.status_code == 402
        assert exc_info.value.available == 0

    def test_image_generation_needs_image_credits(self, seed_team):
        seed_team(credits=10, image_credits=0)
        assert ledger.precheck("team-1", ActionType.IMAGE_GENERATION).allowed is False

    def test_unknown_team_gets_free_uses(self):
        result = ledger.precheck("team-unknown", ActionType.THEME_CREATION)
        assert result.allowed is True
        assert result.balance == 0


class TestSettlement:
    def test_free_before_metered(self, seed_team):
        seed_team(credits=2)
        entries = [
            ledger.settle("team-1", "user-1", ActionType.PERSONA_CREATION, description=f"persona {i}")
            for i in range(4)
        ]

        assert [e.amount_debited for e in entries] == [0, 0, 0, 1]
        assert all(e.metadata["free"] for e in entries[:3])
        assert entries[3].metadata["free"] is False
        assert entries[3].balance_before == 2
        assert entries[3].balance_after == 1
        assert ledger.get_entitlement_state("team-1", ActionType.PERSONA_CREATION).free_uses_consumed == 3

    def test_exactly_one_entry_per_success(self, seed_team):
        seed_team(image_credits=3)
        before = _ledger_count()
        entry = ledger.settle("team-1", "user-1", ActionType.IMAGE_GENERATION)

        assert _ledger_count() == before + 1
        assert entry.amount_debited == 1
        assert entry.balance_after == entry.balance_before - entry.amount_debited
        assert ledger.get_entitlement_state("team-1", ActionType.IMAGE_GENERATION).metered_balance == 2

    def test_free_use_does_not_touch_balance(self, seed_team):
        seed_team(credits=7)
        entry = ledger.settle("team-1", "user-1", ActionType.THEME_CREATION)
        assert entry.amount_debited == 0
        assert entry.balance_before == entry.balance_after == 7

    def test_allotments_are_per_action_type(self, seed_team):
        seed_team(credits=0)
        for _ in range(3):
            ledger.settle("team-1", "user-1", ActionType.PERSONA_CREATION)
        assert ledger.precheck("team-1", ActionType.THEME_CREATION).is_free is True
        assert ledger.precheck("team-1", ActionType.BRAND_CREATION).is_free is True

    def test_conditional_debit_never_overdraws(self, seed_team):
        """Two settlements against a balance of 1: the second must fail, balance stays 0."""
        seed_team(image_credits=1)
        first = ledger.precheck("team-1", ActionType.IMAGE_GENERATION)
        second = ledger.precheck("team-1", ActionType.IMAGE_GENERATION)
        assert first.allowed and second.allowed

        ledger.settle("team-1", "user-1", ActionType.IMAGE_GENERATION)
        with pytest.raises(InsufficientCreditsError):
            ledger.settle("team-1", "user-2", ActionType.IMAGE_GENERATION)

        assert ledger.get_entitlement_state("team-1", ActionType.IMAGE_GENERATION).metered_balance == 0
        assert _ledger_count() == 1

    def test_failed_settlement_leaves_state_untouched(self, seed_team):
        seed_team(credits=0)
        with get_db_session() as session:
            session.execute(update(team_free_usage).values(used=3))
        snapshot = _snapshot()

        with pytest.raises(InsufficientCreditsError):
            ledger.settle("team-1", "user-1", ActionType.BRAND_CREATION)

        assert _snapshot() == snapshot

    def test_settlement_metrics(self, seed_team):
        seed_team(credits=1)
        ledger.settle("team-1", "user-1", ActionType.PERSONA_CREATION)
        assert ledger_settlements_total.value({"action_type": "persona_creation", "free": "true"}) == 1

    def test_store_errors_become_ledger_write_error(self, seed_team, monkeypatch):
        seed_team(image_credits=1)

        def broken(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger, "_append_entry", broken)
        with pytest.raises(LedgerWriteError):
            ledger.settle("team-1", "user-1", ActionType.IMAGE_GENERATION)

        assert ledger_settlement_failures_total.value({"action_type": "image_generation"}) == 1
        # Debit rolled back with the failed ledger write
        assert ledger.get_entitlement_state("team-1", ActionType.IMAGE_GENERATION).metered_balance == 1


class TestGrantsAndHistory:
    def test_grant_appends_adjustment(self, seed_team):
        seed_team(credits=1)
        entry = ledger.grant_credits("team-1", 10, CreditPool.CREDITS, description="support top-up")

        assert entry.amount_debited == -10
        assert entry.balance_before == 1
        assert entry.balance_after == 11
        assert entry.action_type == ledger.ADJUSTMENT_ACTION

    @pytest.mark.parametrize("amount", [0, -5, True])
    def test_grant_requires_positive_amount(self, amount):
        with pytest.raises(ValidationError):
            ledger.grant_credits("team-1", amount)

    def test_history_newest_first(self, seed_team):
        seed_team(image_credits=0)
        ledger.grant_credits("team-1", 2, CreditPool.IMAGE_CREDITS)
        ledger.settle("team-1", "user-1", ActionType.IMAGE_GENERATION)
        ledger.settle("team-1", "user-1", ActionType.IMAGE_GENERATION)

        history = ledger.get_credit_history("team-1", limit=10)
        assert [e.balance_after for e in history] == [0, 1, 2]
        assert len(ledger.get_credit_history("team-1", limit=1)) == 1

    def test_balance_summary(self, seed_team):
        seed_team(credits=4, image_credits=2)
        ledger.settle("team-1", "user-1", ActionType.PERSONA_CREATION)

        summary = ledger.get_balance_summary("team-1")
        assert summary["credits"] == 4
        assert summary["imageCredits"] == 2
        assert summary["freeUsage"]["persona_creation"] == {"granted": 3, "consumed": 1, "remaining": 2}
        assert "image_generation" not in summary["freeUsage"]
