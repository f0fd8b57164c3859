"""
brandforge/features/assets/admission.py

Reference-asset admission.

Bounds and prioritizes the images attached to a brief before they are sent
to the model:
- every asset must decode and carry an accepted image signature; failing
  assets are dropped one by one (logged), never failing the batch
- brand assets are ordered before user assets
- the result is truncated to the cap (REFERENCE_ASSET_CAP)
"""

import base64
import binascii
import logging
import re
from typing import Iterable, List, Optional, Tuple

from brandforge.core.config import settings
from brandforge.core.errors import ValidationError
from brandforge.core.logging import log_event
from brandforge.models.brief import AssetSource, ReferenceAsset
from brandforge.models.generation import AdmittedAsset, AdmittedAssets

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<payload>.*)$", re.DOTALL)

ACCEPTED_MIME_TYPES = ("image/png", "image/jpeg", "image/webp", "image/gif")


def sniff_image_mime(raw: bytes) -> Optional[str]:
    """Return the MIME type implied by the file signature, or None."""
    if raw.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if raw.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if raw.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(raw) >= 12 and raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    return None


def decode_image(data: str) -> Tuple[str, str]:
    """
    Check an encoded image and split it into (mime_type, base64 payload).

    Accepts a data URL or bare base64. A declared MIME type must agree with
    the signature of the decoded bytes.

    Raises:
        ValueError: Not base64, not an accepted image, or MIME mismatch
    """
    declared = None
    payload = data.strip()
    match = _DATA_URL.match(payload)
    if match:
        declared = match.group("mime").lower()
        if declared == "image/jpg":
            declared = "image/jpeg"
        payload = match.group("payload")
    elif payload.startswith("data:"):
        raise ValueError("data URL is not base64-encoded")

    payload = re.sub(r"\s+", "", payload)
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("payload is not valid base64")

    detected = sniff_image_mime(raw)
    if detected is None:
        raise ValueError("unrecognized image signature")
    if declared is not None and declared != detected:
        raise ValueError(f"declared {declared} but content is {detected}")
    return detected, payload


def admit_base_image(data: str) -> AdmittedAsset:
    """
    Check the base image of an edit request.

    Unlike reference assets the base image cannot be dropped: without it
    there is nothing to edit.

    Raises:
        ValidationError: The image is not an accepted encoding
    """
    try:
        mime_type, payload = decode_image(data)
    except ValueError as e:
        logger.warning("[assets] edit base image rejected", extra={"reason": str(e)})
        raise ValidationError("existingImage must be a PNG, JPEG, WEBP or GIF image")
    return AdmittedAsset(mime_type=mime_type, data=payload, source="base")


def admit(assets: Iterable[ReferenceAsset], cap: Optional[int] = None) -> AdmittedAssets:
    """
    Admit reference assets: check, order brand-first, cap.

    Args:
        assets: Assets from the validated brief, in request order
        cap: Maximum number admitted (defaults to REFERENCE_ASSET_CAP)

    Returns:
        AdmittedAssets with per-source counts of what was actually kept
    """
    limit = settings.REFERENCE_ASSET_CAP if cap is None else cap

    brand: List[AdmittedAsset] = []
    user: List[AdmittedAsset] = []
    dropped = 0

    for index, asset in enumerate(assets):
        try:
            mime_type, payload = decode_image(asset.data)
        except ValueError as e:
            dropped += 1
            log_event(
                "warning",
                "[assets] reference asset dropped",
                extra={"index": index, "source": asset.source.value, "reason": str(e)},
            )
            continue
        admitted = AdmittedAsset(mime_type=mime_type, data=payload, source=asset.source.value)
        if asset.source == AssetSource.BRAND:
            brand.append(admitted)
        else:
            user.append(admitted)

    ordered = brand + user
    kept = ordered[:max(0, limit)]
    brand_count = sum(1 for a in kept if a.source == AssetSource.BRAND.value)

    result = AdmittedAssets(
        assets=tuple(kept),
        brand_count=brand_count,
        user_count=len(kept) - brand_count,
        dropped=dropped,
        truncated=len(ordered) - len(kept),
    )
    if result.dropped or result.truncated:
        logger.info(
            "[assets] admission reduced reference set",
            extra={
                "brand_count": result.brand_count,
                "user_count": result.user_count,
                "dropped": result.dropped,
                "truncated": result.truncated,
            },
        )
    return result
