"""
brandforge/features/actions/service.py

Action orchestrator: one request/response cycle per metered action.

Image generation:
    validate -> precheck (402 before any compile/network cost) -> admit assets
    -> compile -> invoke -> settle -> record history
Entity creation (persona, theme, brand):
    validate -> precheck -> insert entity + settle in one transaction

A terminal generation failure raises before settlement, so balances are
untouched. A settlement failure after a delivered image is logged for
reconciliation and the image is still returned.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4
import logging

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError

from brandforge.core.auth import Identity
from brandforge.core.database import actions, brands, get_db_session
from brandforge.core.errors import InsufficientCreditsError, LedgerWriteError, NotFoundError
from brandforge.core.logging import log_event
from brandforge.core.metrics import ledger_settlement_failures_total
from brandforge.features.actions.entities import ENTITY_KINDS, validate_entity
from brandforge.features.assets.admission import admit, admit_base_image
from brandforge.features.briefs.validator import validate_brief
from brandforge.features.entitlements.service import require_entitlement, settle
from brandforge.features.generation.client import ImageModelClient
from brandforge.features.generation.invoker import RetryPolicy, invoke
from brandforge.features.prompts.compiler import compile_prompt
from brandforge.models.brief import CreativeBrief
from brandforge.models.entitlement import ActionType
from brandforge.models.generation import GenerationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageActionResult:
    image_url: str
    attempts_used: int
    remaining_balance: int
    action_id: Optional[str]
    description: Optional[str]
    settled: bool


@dataclass(frozen=True)
class EntityActionResult:
    entity_id: str
    attempts_used: int
    remaining_balance: int
    is_free: bool
    free_uses_remaining: int


def _brief_summary(brief: CreativeBrief) -> Dict[str, Any]:
    return {
        "description": brief.description,
        "platform": brief.platform.value if brief.platform else None,
        "tones": list(brief.tones),
        "brand": brief.brand,
        "theme": brief.theme,
        "isEdit": brief.is_edit,
        "referenceAssets": len(brief.reference_assets),
    }


def record_action(identity: Identity, brief: CreativeBrief, result: GenerationResult) -> Optional[str]:
    """Store the generated image in the action history. Best-effort: None on failure."""
    action_id = str(uuid4())
    try:
        with get_db_session() as session:
            session.execute(insert(actions).values(
                id=action_id,
                team_id=identity.team_id,
                user_id=identity.user_id,
                type="EDIT_IMAGE" if brief.is_edit else "CREATE_IMAGE",
                status="completed",
                details=_brief_summary(brief),
                result={"imageUrl": result.asset.url, "attemptsUsed": result.attempts_used},
            ))
    except SQLAlchemyError as e:
        log_event(
            "warning",
            "[actions] history write failed",
            user_id=identity.user_id,
            team_id=identity.team_id,
            extra={"error": e},
        )
        return None
    return action_id


async def generate_image(
    identity: Identity,
    brief_payload: Any,
    *,
    is_edit: bool = False,
    existing_image: Optional[str] = None,
    client: Optional[ImageModelClient] = None,
    policy: Optional[RetryPolicy] = None,
) -> ImageActionResult:
    """
    Generate (or edit) one image for the caller's team.

    Raises:
        ValidationError: Bad brief or edit base image (400)
        InsufficientCreditsError: No image credits (402), before any model call
        GenerationError: Classified provider failure; nothing is settled
    """
    action_type = ActionType.IMAGE_GENERATION
    brief = validate_brief(brief_payload, is_edit=is_edit, existing_image=existing_image)
    gate = require_entitlement(identity.team_id, action_type)

    admitted = admit(brief.reference_assets)
    base_asset = admit_base_image(brief.existing_image) if brief.is_edit else None
    prompt = compile_prompt(brief, brand_assets=admitted.brand_count, user_assets=admitted.user_count)

    log_event(
        "info",
        "[actions] invoking image model",
        user_id=identity.user_id,
        team_id=identity.team_id,
        action_type=action_type.value,
        extra={"prompt_length": len(prompt), "brand_assets": admitted.brand_count, "user_assets": admitted.user_count},
    )
    result = await invoke(prompt, admitted, is_edit=brief.is_edit, base_asset=base_asset, client=client, policy=policy)

    remaining = gate.balance
    settled = False
    try:
        entry = settle(
            identity.team_id,
            identity.user_id,
            action_type,
            description=f"{'Image edit' if brief.is_edit else 'Image generation'}: {brief.description[:120]}",
            metadata={"attempts_used": result.attempts_used, "is_edit": brief.is_edit},
        )
        remaining = entry.balance_after
        settled = True
    except (LedgerWriteError, InsufficientCreditsError) as e:
        # Image already delivered: log for reconciliation, do not fail the response
        if isinstance(e, InsufficientCreditsError):
            ledger_settlement_failures_total.inc(labels={"action_type": action_type.value})
            # Another request drained the pool after precheck; report what is left now
            remaining = e.available
        log_event(
            "error",
            "[reconcile] image delivered without settlement",
            user_id=identity.user_id,
            team_id=identity.team_id,
            action_type=action_type.value,
            error_code=e.code,
            extra={"reconcile": True, "attempts_used": result.attempts_used},
        )

    action_id = record_action(identity, brief, result)

    return ImageActionResult(
        image_url=result.asset.url,
        attempts_used=result.attempts_used,
        remaining_balance=remaining,
        action_id=action_id,
        description=result.description,
        settled=settled,
    )


def _check_brand_reference(session, team_id: str, brand_id: str) -> None:
    row = session.execute(
        select(brands.c.id).where(brands.c.id == brand_id, brands.c.team_id == team_id)
    ).first()
    if row is None:
        raise NotFoundError(f"Brand {brand_id} not found")


def create_entity(identity: Identity, action_type: ActionType, payload: Any) -> EntityActionResult:
    """
    Create a persona, theme or brand and settle it in the same transaction.

    The row insert is the paid action: if settlement fails the insert is
    rolled back with it.
    """
    kind = ENTITY_KINDS[action_type]
    draft = validate_entity(action_type, payload)
    gate = require_entitlement(identity.team_id, action_type)

    entity_id = str(uuid4())
    with get_db_session() as session:
        if draft.brand_id:
            _check_brand_reference(session, identity.team_id, draft.brand_id)
        session.execute(insert(kind.table).values(
            id=entity_id,
            team_id=identity.team_id,
            user_id=identity.user_id,
            brand_id=draft.brand_id,
            name=draft.name,
            attributes=draft.attributes,
        ))
        entry = settle(
            identity.team_id,
            identity.user_id,
            action_type,
            description=f"Created {kind.label}: {draft.name}",
            metadata={"entity_id": entity_id},
            session=session,
        )

    is_free = bool(entry.metadata.get("free"))
    if is_free:
        free_remaining = entry.metadata["free_uses_granted"] - entry.metadata["free_uses_consumed"]
    else:
        free_remaining = 0

    log_event(
        "info",
        f"[actions] {kind.label} created",
        user_id=identity.user_id,
        team_id=identity.team_id,
        action_type=action_type.value,
        extra={"entity_id": entity_id, "is_free": is_free, "precheck_free": gate.is_free},
    )
    return EntityActionResult(
        entity_id=entity_id,
        attempts_used=1,
        remaining_balance=entry.balance_after,
        is_free=is_free,
        free_uses_remaining=max(0, free_remaining),
    )


def create_persona(identity: Identity, payload: Any) -> EntityActionResult:
    return create_entity(identity, ActionType.PERSONA_CREATION, payload)


def create_theme(identity: Identity, payload: Any) -> EntityActionResult:
    return create_entity(identity, ActionType.THEME_CREATION, payload)


def create_brand(identity: Identity, payload: Any) -> EntityActionResult:
    return create_entity(identity, ActionType.BRAND_CREATION, payload)
