"""
brandforge/features/entitlements/service.py

Entitlement ledger: free-usage counters, metered credit pools, append-only history.

Handles:
- Precheck (may this team perform this action, and would it be free)
- Settlement after a successful action: free use first, then exactly one metered debit
- Credit grants (adjustment entries) and team provisioning
- Balance summary and history listing

Every counter change is a single conditional UPDATE with an affected-row
check, so concurrent requests cannot overdraw a pool or over-consume an
allotment. Each settlement appends exactly one credit_history row in the
same transaction as the counter change.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional
import logging

from sqlalchemy import desc, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brandforge.core.config import settings
from brandforge.core.database import credit_history, get_db_session, team_entitlements, team_free_usage
from brandforge.core.errors import InsufficientCreditsError, LedgerWriteError, ValidationError
from brandforge.core.metrics import ledger_settlement_failures_total, ledger_settlements_total
from brandforge.models.entitlement import ActionType, CreditPool, EntitlementState, PrecheckResult
from brandforge.models.ledger import LedgerEntry

logger = logging.getLogger(__name__)

ACTION_COST = 1
ADJUSTMENT_ACTION = "credit_adjustment"
MAX_HISTORY_LIMIT = 200

# Which pool each action type is debited from
ACTION_POOLS = {
    ActionType.IMAGE_GENERATION: CreditPool.IMAGE_CREDITS,
    ActionType.PERSONA_CREATION: CreditPool.CREDITS,
    ActionType.THEME_CREATION: CreditPool.CREDITS,
    ActionType.BRAND_CREATION: CreditPool.CREDITS,
}

ACTION_LABELS = {
    ActionType.IMAGE_GENERATION: "image generation",
    ActionType.PERSONA_CREATION: "persona creation",
    ActionType.THEME_CREATION: "theme creation",
    ActionType.BRAND_CREATION: "brand creation",
}


def free_allotment(action_type: ActionType) -> int:
    """Free uses granted per team. Image generation has none."""
    if action_type == ActionType.PERSONA_CREATION:
        return settings.FREE_PERSONA_CREATIONS
    if action_type == ActionType.THEME_CREATION:
        return settings.FREE_THEME_CREATIONS
    if action_type == ActionType.BRAND_CREATION:
        return settings.FREE_BRAND_CREATIONS
    return 0


def credit_pool(action_type: ActionType) -> CreditPool:
    return ACTION_POOLS[action_type]


def quota_action_types() -> List[ActionType]:
    return [a for a in ActionType if free_allotment(a) > 0]


@contextmanager
def _session_scope(session: Optional[Session]) -> Iterator[Session]:
    """Join the caller's transaction when given one, otherwise open our own."""
    if session is not None:
        yield session
        return
    with get_db_session() as own:
        yield own


def _pool_balance(session: Session, team_id: str, pool: CreditPool) -> int:
    row = session.execute(
        select(team_entitlements.c[pool.value]).where(team_entitlements.c.team_id == team_id)
    ).first()
    return int(row[0]) if row else 0


def _free_used(session: Session, team_id: str, action_type: ActionType) -> int:
    row = session.execute(
        select(team_free_usage.c.used).where(
            team_free_usage.c.team_id == team_id,
            team_free_usage.c.action_type == action_type.value,
        )
    ).first()
    return int(row[0]) if row else 0


def _insert_if_absent(session: Session, table, conflict_columns: List[str], values: Dict[str, Any]) -> bool:
    """Insert a row unless one with the same key exists. True if this call inserted it."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    elif dialect == "sqlite":
        stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    else:
        raise RuntimeError(f"Unsupported database dialect: {dialect}")
    return session.execute(stmt).rowcount == 1


def _entitlement_row_exists(session: Session, team_id: str) -> bool:
    return session.execute(
        select(team_entitlements.c.team_id).where(team_entitlements.c.team_id == team_id)
    ).first() is not None


def _free_usage_row_exists(session: Session, team_id: str, action_type: ActionType) -> bool:
    return session.execute(
        select(team_free_usage.c.id).where(
            team_free_usage.c.team_id == team_id,
            team_free_usage.c.action_type == action_type.value,
        )
    ).first() is not None


def _ensure_rows(session: Session, team_id: str, credits: int = 0, image_credits: int = 0) -> bool:
    # Concurrent first requests for a team both miss the lookup; the insert tolerates the loser
    created = False
    if not _entitlement_row_exists(session, team_id):
        created = _insert_if_absent(
            session,
            team_entitlements,
            ["team_id"],
            {"team_id": team_id, "credits": credits, "image_credits": image_credits},
        )

    for action_type in quota_action_types():
        if not _free_usage_row_exists(session, team_id, action_type):
            _insert_if_absent(
                session,
                team_free_usage,
                ["team_id", "action_type"],
                {"team_id": team_id, "action_type": action_type.value, "used": 0},
            )
    return created


def _append_entry(
    session: Session,
    *,
    team_id: str,
    user_id: Optional[str],
    action_type: str,
    amount_debited: int,
    balance_before: int,
    balance_after: int,
    description: Optional[str],
    metadata: Dict[str, Any],
) -> LedgerEntry:
    created_at = datetime.now(timezone.utc)
    result = session.execute(insert(credit_history).values({
        "team_id": team_id,
        "user_id": user_id,
        "action_type": action_type,
        "amount_debited": amount_debited,
        "balance_before": balance_before,
        "balance_after": balance_after,
        "description": description,
        "metadata": metadata,
        "created_at": created_at,
    }))
    entry_id = result.inserted_primary_key[0] if result.inserted_primary_key else None
    return LedgerEntry(
        id=entry_id,
        team_id=team_id,
        user_id=user_id,
        action_type=action_type,
        amount_debited=amount_debited,
        balance_before=balance_before,
        balance_after=balance_after,
        description=description,
        metadata=metadata,
        created_at=created_at,
    )


def _row_to_entry(row) -> LedgerEntry:
    data = row._mapping
    return LedgerEntry(
        id=data["id"],
        team_id=data["team_id"],
        user_id=data["user_id"],
        action_type=data["action_type"],
        amount_debited=data["amount_debited"],
        balance_before=data["balance_before"],
        balance_after=data["balance_after"],
        description=data["description"],
        metadata=data["metadata"] or {},
        created_at=data["created_at"],
    )


def ensure_team_entitlement(
    team_id: str,
    *,
    credits: Optional[int] = None,
    image_credits: Optional[int] = None,
    session: Optional[Session] = None,
) -> bool:
    """
    Provision the entitlement row and free-usage rows of a team (idempotent).

    Initial balances default to SIGNUP_CREDITS / SIGNUP_IMAGE_CREDITS and only
    apply when the team row is created.

    Returns:
        True if the team row was created by this call
    """
    with _session_scope(session) as s:
        created = _ensure_rows(
            s,
            team_id,
            credits=settings.SIGNUP_CREDITS if credits is None else credits,
            image_credits=settings.SIGNUP_IMAGE_CREDITS if image_credits is None else image_credits,
        )
    if created:
        logger.info("[entitlement] team provisioned", extra={"team_id": team_id})
    return created


def get_entitlement_state(team_id: str, action_type: ActionType, session: Optional[Session] = None) -> EntitlementState:
    with _session_scope(session) as s:
        consumed = _free_used(s, team_id, action_type)
        balance = _pool_balance(s, team_id, credit_pool(action_type))
    return EntitlementState(
        team_id=team_id,
        action_type=action_type,
        free_uses_granted=free_allotment(action_type),
        free_uses_consumed=consumed,
        metered_balance=balance,
    )


def precheck(team_id: str, action_type: ActionType, session: Optional[Session] = None) -> PrecheckResult:
    """
    Would this action be allowed right now, and would it be free?

    Read-only. The authoritative check happens again at settlement.
    """
    state = get_entitlement_state(team_id, action_type, session=session)
    is_free = state.free_remaining > 0
    allowed = is_free or state.metered_balance >= ACTION_COST
    return PrecheckResult(
        action_type=action_type,
        allowed=allowed,
        is_free=is_free,
        free_remaining=state.free_remaining,
        balance=state.metered_balance,
        required=ACTION_COST,
    )


def insufficient_credits_error(action_type: ActionType, available: int) -> InsufficientCreditsError:
    label = ACTION_LABELS[action_type]
    granted = free_allotment(action_type)
    if granted:
        message = (
            f"Your team has used all {granted} free uses for {label} and has no credits left. "
            f"Purchase credits to continue."
        )
    else:
        message = f"Insufficient credits for {label}: {ACTION_COST} required, {available} available. Purchase credits to continue."
    return InsufficientCreditsError(message, required=ACTION_COST, available=available)


def require_entitlement(team_id: str, action_type: ActionType, session: Optional[Session] = None) -> PrecheckResult:
    """Precheck that raises InsufficientCreditsError (402) when not allowed."""
    result = precheck(team_id, action_type, session=session)
    if not result.allowed:
        logger.warning(
            "[entitlement] action blocked",
            extra={"team_id": team_id, "action_type": action_type.value, "balance": result.balance},
        )
        raise insufficient_credits_error(action_type, result.balance)
    return result


def settle(
    team_id: str,
    user_id: Optional[str],
    action_type: ActionType,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    session: Optional[Session] = None,
) -> LedgerEntry:
    """
    Record a successful action: consume a free use if one is left, else debit 1.

    Call only after the action succeeded. Exactly one counter changes by 1 and
    exactly one ledger entry is appended, in one transaction (the caller's,
    when a session is given).

    Raises:
        InsufficientCreditsError: No free use and no credit left (lost a race)
        LedgerWriteError: The store rejected the write
    """
    pool = credit_pool(action_type)
    granted = free_allotment(action_type)
    entry_metadata = dict(metadata or {})

    try:
        with _session_scope(session) as s:
            _ensure_rows(s, team_id)

            is_free = False
            if granted > 0:
                result = s.execute(
                    update(team_free_usage)
                    .where(
                        team_free_usage.c.team_id == team_id,
                        team_free_usage.c.action_type == action_type.value,
                        team_free_usage.c.used < granted,
                    )
                    .values(used=team_free_usage.c.used + 1)
                )
                is_free = result.rowcount == 1

            if is_free:
                balance = _pool_balance(s, team_id, pool)
                entry_metadata.update({
                    "free": True,
                    "free_uses_consumed": _free_used(s, team_id, action_type),
                    "free_uses_granted": granted,
                })
                amount, before, after = 0, balance, balance
            else:
                column = team_entitlements.c[pool.value]
                result = s.execute(
                    update(team_entitlements)
                    .where(team_entitlements.c.team_id == team_id, column >= ACTION_COST)
                    .values({pool.value: column - ACTION_COST})
                )
                if result.rowcount != 1:
                    raise insufficient_credits_error(action_type, _pool_balance(s, team_id, pool))
                after = _pool_balance(s, team_id, pool)
                amount, before = ACTION_COST, after + ACTION_COST
                entry_metadata.update({"free": False, "pool": pool.value})

            entry = _append_entry(
                s,
                team_id=team_id,
                user_id=user_id,
                action_type=action_type.value,
                amount_debited=amount,
                balance_before=before,
                balance_after=after,
                description=description,
                metadata=entry_metadata,
            )
    except SQLAlchemyError as e:
        ledger_settlement_failures_total.inc(labels={"action_type": action_type.value})
        logger.error(
            "[entitlement] settlement write failed",
            extra={"team_id": team_id, "user_id": user_id, "action_type": action_type.value, "error_code": "ledger_write_failed"},
        )
        raise LedgerWriteError("Could not record the credit settlement") from e

    ledger_settlements_total.inc(labels={"action_type": action_type.value, "free": str(is_free).lower()})
    logger.info(
        "[entitlement] settled",
        extra={
            "team_id": team_id,
            "user_id": user_id,
            "action_type": action_type.value,
            "amount_debited": entry.amount_debited,
            "balance_after": entry.balance_after,
        },
    )
    return entry


def grant_credits(
    team_id: str,
    amount: int,
    pool: CreditPool = CreditPool.CREDITS,
    *,
    user_id: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    session: Optional[Session] = None,
) -> LedgerEntry:
    """
    Add credits to a pool and append an adjustment entry (negative debit).

    Used by provisioning and support tooling; payment capture happens elsewhere.
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("amount must be a positive integer")

    entry_metadata = dict(metadata or {})
    entry_metadata["pool"] = pool.value

    with _session_scope(session) as s:
        _ensure_rows(s, team_id)
        column = team_entitlements.c[pool.value]
        s.execute(
            update(team_entitlements)
            .where(team_entitlements.c.team_id == team_id)
            .values({pool.value: column + amount})
        )
        after = _pool_balance(s, team_id, pool)
        entry = _append_entry(
            s,
            team_id=team_id,
            user_id=user_id,
            action_type=ADJUSTMENT_ACTION,
            amount_debited=-amount,
            balance_before=after - amount,
            balance_after=after,
            description=description or f"Granted {amount} {pool.value}",
            metadata=entry_metadata,
        )

    logger.info(
        "[entitlement] credits granted",
        extra={"team_id": team_id, "pool": pool.value, "amount": amount, "balance_after": after},
    )
    return entry


def get_credit_history(team_id: str, limit: int = 50) -> List[LedgerEntry]:
    """Ledger entries of a team, newest first."""
    limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
    with get_db_session() as session:
        rows = session.execute(
            select(credit_history)
            .where(credit_history.c.team_id == team_id)
            .order_by(desc(credit_history.c.created_at), desc(credit_history.c.id))
            .limit(limit)
        ).fetchall()
    return [_row_to_entry(row) for row in rows]


def get_balance_summary(team_id: str) -> Dict[str, Any]:
    """Both pools plus free-usage state per quota-bearing action type."""
    with get_db_session() as session:
        credits = _pool_balance(session, team_id, CreditPool.CREDITS)
        image_credits = _pool_balance(session, team_id, CreditPool.IMAGE_CREDITS)
        free_usage = {}
        for action_type in quota_action_types():
            granted = free_allotment(action_type)
            consumed = _free_used(session, team_id, action_type)
            free_usage[action_type.value] = {
                "granted": granted,
                "consumed": consumed,
                "remaining": max(0, granted - consumed),
            }
    return {
        "teamId": team_id,
        "credits": credits,
        "imageCredits": image_credits,
        "freeUsage": free_usage,
    }
