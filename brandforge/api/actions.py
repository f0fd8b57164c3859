"""Metered action API.

Image generation/editing and persona, theme and brand creation. Each call is
gated by the team's entitlements and settled only on success.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel, ConfigDict

from brandforge.core.auth import Identity, get_current_identity
from brandforge.core.logging import get_request_id
from brandforge.features.actions.service import (
    EntityActionResult,
    create_brand,
    create_persona,
    create_theme,
    generate_image,
)
from brandforge.features.generation.client import ImageModelClient
from brandforge.features.generation.invoker import RetryPolicy

router = APIRouter(prefix="/v1", tags=["actions"])


class ImageGenerateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    brief: Dict[str, Any]
    isEdit: bool = False
    existingImage: Optional[str] = None


def get_image_client() -> ImageModelClient:
    return ImageModelClient()


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy.from_settings()


def _entity_response(result: EntityActionResult, rid: Optional[str]) -> Dict[str, Any]:
    return {
        "entityId": result.entity_id,
        "attemptsUsed": result.attempts_used,
        "remainingBalance": result.remaining_balance,
        "isFree": result.is_free,
        "freeUsesRemaining": result.free_uses_remaining,
        "request_id": rid,
    }


@router.post("/images/generate")
async def generate_image_endpoint(
    body: ImageGenerateRequest,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    client: ImageModelClient = Depends(get_image_client),
    policy: RetryPolicy = Depends(get_retry_policy),
):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    result = await generate_image(
        identity,
        body.brief,
        is_edit=body.isEdit,
        existing_image=body.existingImage,
        client=client,
        policy=policy,
    )
    return {
        "imageUrl": result.image_url,
        "attemptsUsed": result.attempts_used,
        "remainingBalance": result.remaining_balance,
        "actionId": result.action_id,
        "description": result.description,
        "request_id": rid,
    }


@router.post("/personas")
def create_persona_endpoint(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    identity: Identity = Depends(get_current_identity),
):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    return _entity_response(create_persona(identity, payload), rid)


@router.post("/themes")
def create_theme_endpoint(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    identity: Identity = Depends(get_current_identity),
):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    return _entity_response(create_theme(identity, payload), rid)


@router.post("/brands")
def create_brand_endpoint(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    identity: Identity = Depends(get_current_identity),
):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    return _entity_response(create_brand(identity, payload), rid)
