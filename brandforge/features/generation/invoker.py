"""
brandforge/features/generation/invoker.py

Generation invoker: calls the image model with bounded retries and
classifies every failure exactly once, at this boundary.

Classification order against the provider response:
- 429 -> RateLimitedError (terminal)
- 402 -> QuotaExhaustedUpstreamError (terminal)
- 400 -> AssetProcessingError (terminal)
- any other non-2xx, a 2xx without an image, or a transport error
  -> TransientProviderError (retryable, consumes one attempt)
- retries exhausted -> GenerationFailedError
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import httpx

from brandforge.core.config import settings
from brandforge.core.errors import (
    AssetProcessingError,
    GenerationError,
    GenerationFailedError,
    QuotaExhaustedUpstreamError,
    RateLimitedError,
    TransientProviderError,
)
from brandforge.core.logging import _safe_truncate, log_event
from brandforge.core.metrics import generation_attempts_total, generation_failures_total
from brandforge.features.generation.client import ImageModelClient, ProviderResponse, extract_image
from brandforge.models.generation import (
    AdmittedAsset,
    AdmittedAssets,
    AssetRef,
    AttemptOutcome,
    ContentBlock,
    GenerationAttempt,
    GenerationResult,
)

SleepFn = Callable[[float], Awaitable[None]]

RATE_LIMITED_MESSAGE = "Too many requests right now. Please wait a moment and try again."
QUOTA_MESSAGE = "The image service has no remaining capacity. Please try again later."
ASSET_MESSAGE = "The image request could not be processed. Check the reference images and try again."
FAILED_MESSAGE = "We could not complete your image. Please try again."


def linear_delay(base_delay: float) -> Callable[[int], float]:
    """Wait attempt x base before the next attempt (no jitter)."""
    def delay(attempt: int) -> float:
        return attempt * base_delay
    return delay


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    delay_fn: Callable[[int], float] = field(default_factory=lambda: linear_delay(2.0))
    sleep: SleepFn = asyncio.sleep

    @classmethod
    def from_settings(cls, sleep: Optional[SleepFn] = None) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.GENERATION_MAX_ATTEMPTS),
            delay_fn=linear_delay(settings.GENERATION_BASE_DELAY_SECONDS),
            sleep=sleep or asyncio.sleep,
        )


def build_content_blocks(
    prompt: str,
    admitted: AdmittedAssets,
    *,
    is_edit: bool = False,
    base_asset: Optional[AdmittedAsset] = None,
) -> List[ContentBlock]:
    """Order the message: edit base first (edit mode), reference assets brand-first, instruction text last."""
    blocks: List[ContentBlock] = []
    if is_edit and base_asset is not None:
        blocks.append(ContentBlock.image(base_asset.mime_type, base_asset.data))
    for asset in admitted.assets:
        blocks.append(ContentBlock.image(asset.mime_type, asset.data))
    blocks.append(ContentBlock.instruction(prompt))
    return blocks


def classify_response(response: ProviderResponse) -> Tuple[AssetRef, Optional[str]]:
    """
    Turn a provider response into an image reference or a classified error.

    Raises:
        GenerationError subclass (see module docstring for the order)
    """
    status = response.status_code
    detail = _safe_truncate(response.text)

    if status == 429:
        raise RateLimitedError(RATE_LIMITED_MESSAGE, provider_status=status, provider_detail=detail)
    if status == 402:
        raise QuotaExhaustedUpstreamError(QUOTA_MESSAGE, provider_status=status, provider_detail=detail)
    if status == 400:
        raise AssetProcessingError(ASSET_MESSAGE, provider_status=status, provider_detail=detail)
    if not 200 <= status < 300:
        raise TransientProviderError(f"provider returned HTTP {status}", provider_status=status, provider_detail=detail)

    image = extract_image(response.body)
    if image is None:
        raise TransientProviderError("provider response contained no image", provider_status=status, provider_detail=detail)

    asset = AssetRef(url=f"data:{image['mime_type']};base64,{image['data']}", mime_type=image["mime_type"])
    return asset, image["text"]


async def _attempt(client: ImageModelClient, blocks: Sequence[ContentBlock]) -> Tuple[AssetRef, Optional[str]]:
    try:
        response = await client.generate(blocks)
    except httpx.TransportError as e:
        raise TransientProviderError(
            f"provider unreachable: {type(e).__name__}",
            provider_detail=_safe_truncate(e),
        )
    return classify_response(response)


async def invoke(
    prompt: str,
    admitted: AdmittedAssets,
    *,
    is_edit: bool = False,
    base_asset: Optional[AdmittedAsset] = None,
    client: Optional[ImageModelClient] = None,
    policy: Optional[RetryPolicy] = None,
) -> GenerationResult:
    """
    Call the model until success, a terminal error or attempts run out.

    Returns:
        GenerationResult with the image reference and every attempt made

    Raises:
        GenerationError: Terminal classification or GenerationFailedError;
            `.attempts` lists the attempts made
    """
    client = client or ImageModelClient()
    policy = policy or RetryPolicy.from_settings()
    blocks = build_content_blocks(prompt, admitted, is_edit=is_edit, base_asset=base_asset)

    attempts: List[GenerationAttempt] = []
    last_error: Optional[GenerationError] = None

    for attempt_number in range(1, policy.max_attempts + 1):
        started_at = datetime.now(timezone.utc)
        try:
            asset, description = await _attempt(client, blocks)
        except GenerationError as e:
            outcome = AttemptOutcome.RETRYABLE_FAILURE if e.retryable else AttemptOutcome.TERMINAL_FAILURE
            attempts.append(GenerationAttempt(
                attempt_number=attempt_number,
                started_at=started_at,
                outcome=outcome,
                reason=e.message,
                status_code=e.provider_status,
            ))
            generation_attempts_total.inc(labels={"outcome": outcome.value})

            if not e.retryable:
                e.attempts = list(attempts)
                generation_failures_total.inc(labels={"error": e.code})
                log_event(
                    "warning",
                    "[generation] terminal provider error",
                    error_code=e.code,
                    extra={"attempt": attempt_number, "provider_status": e.provider_status, "provider_detail": e.provider_detail},
                )
                raise

            last_error = e
            log_event(
                "warning",
                "[generation] transient provider error",
                error_code=e.code,
                extra={"attempt": attempt_number, "provider_status": e.provider_status, "provider_detail": e.provider_detail},
            )
            if attempt_number < policy.max_attempts:
                await policy.sleep(policy.delay_fn(attempt_number))
            continue

        attempts.append(GenerationAttempt(
            attempt_number=attempt_number,
            started_at=started_at,
            outcome=AttemptOutcome.SUCCESS,
        ))
        generation_attempts_total.inc(labels={"outcome": AttemptOutcome.SUCCESS.value})
        log_event("info", "[generation] image generated", extra={"attempts_used": attempt_number})
        return GenerationResult(asset=asset, attempts=attempts, description=description)

    last_message = last_error.message if last_error else "no attempts made"
    failure = GenerationFailedError(
        FAILED_MESSAGE,
        provider_detail=f"attempts exhausted: {last_message}",
        provider_status=last_error.provider_status if last_error else None,
    )
    failure.attempts = list(attempts)
    generation_failures_total.inc(labels={"error": failure.code})
    log_event(
        "error",
        "[generation] attempts exhausted",
        error_code=failure.code,
        extra={"attempts_used": len(attempts), "last_error": last_message},
    )
    raise failure
