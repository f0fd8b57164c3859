"""
brandforge/features/briefs/validator.py

Brief validation.

Rejects malformed or oversized briefs before any paid work happens. The
asset list is limited twice: grossly oversized lists are rejected here
(MAX_REFERENCE_ASSETS), the admitted set is capped later by asset admission
(REFERENCE_ASSET_CAP). No network or storage side effects.
"""

from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple, Type, TypeVar
import logging

from brandforge.core.config import settings
from brandforge.core.errors import ValidationError
from brandforge.features.prompts.compiler import sanitize
from brandforge.models.brief import (
    AssetSource,
    CameraAngle,
    ColorPalette,
    Composition,
    CreativeBrief,
    DEFAULT_DETAIL_LEVEL,
    Lighting,
    Mood,
    Platform,
    ReferenceAsset,
)

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 2000
MAX_TONES = 10

E = TypeVar("E", bound=Enum)

# Accepted spellings that are not enum values
PLATFORM_ALIASES = {
    "twitter/x": Platform.TWITTER,
    "x": Platform.TWITTER,
    "comunidades": Platform.COMMUNITIES,
    "instagram_feed": Platform.INSTAGRAM,
    "instagram_stories": Platform.INSTAGRAM,
    "instagram_reels": Platform.INSTAGRAM,
    "facebook_post": Platform.FACEBOOK,
    "linkedin_post": Platform.LINKEDIN,
    "youtube_thumbnail": Platform.YOUTUBE,
}

# Optional long-text fields: (request key, snake_case key)
_TEXT_FIELDS = (
    ("persona", "persona"),
    ("brand", "brand"),
    ("theme", "theme"),
    ("objective", "objective"),
    ("additionalInfo", "additional_info"),
    ("negativePrompt", "negative_prompt"),
)


def _get(raw: Mapping[str, Any], camel: str, snake: Optional[str] = None) -> Any:
    if camel in raw:
        return raw[camel]
    if snake and snake in raw:
        return raw[snake]
    return None


def _optional_text(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if len(text) > MAX_TEXT_LENGTH:
        raise ValidationError(f"{field} must be at most {MAX_TEXT_LENGTH} characters")
    return text or None


def _parse_description(value: Any) -> str:
    if value is None:
        raise ValidationError("description is required")
    text = _optional_text(value, "description")
    # Markup-only text sanitizes to nothing and would compile without a subject
    if not text or not sanitize(text):
        raise ValidationError("description is required")
    return text


def _parse_tones(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: List[Any] = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValidationError("tones must be a string or a list of strings")

    tones: List[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ValidationError("tones must be a string or a list of strings")
        tone = item.strip().lower()
        if not tone:
            continue
        if len(tone) > 100:
            raise ValidationError("tone values must be at most 100 characters")
        if tone not in tones:
            tones.append(tone)
    if len(tones) > MAX_TONES:
        raise ValidationError(f"at most {MAX_TONES} tones are allowed")
    return tuple(tones)


def _parse_enum(enum_cls: Type[E], value: Any, default: E, field: str) -> E:
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return enum_cls(key)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def _parse_platform(value: Any) -> Optional[Platform]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError("platform must be a string")
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    if key in PLATFORM_ALIASES:
        return PLATFORM_ALIASES[key]
    return _parse_enum(Platform, key, None, "platform")


def _parse_detail_level(value: Any) -> int:
    if value is None or value == "":
        return DEFAULT_DETAIL_LEVEL
    if isinstance(value, bool):
        raise ValidationError("detailLevel must be an integer between 1 and 10")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or not 1 <= value <= 10:
        raise ValidationError("detailLevel must be an integer between 1 and 10")
    return value


def _parse_asset(item: Any, default_source: AssetSource) -> ReferenceAsset:
    if isinstance(item, str):
        data, source = item, default_source
    elif isinstance(item, Mapping):
        data = item.get("data")
        source_value = item.get("source") or default_source.value
        try:
            source = AssetSource(str(source_value).lower())
        except ValueError:
            raise ValidationError("reference asset source must be 'brand' or 'user'")
    else:
        raise ValidationError("reference assets must be strings or objects with a data field")

    if not isinstance(data, str) or not data.strip():
        raise ValidationError("reference asset data must be a non-empty string")
    return ReferenceAsset(data=data.strip(), source=source)


def _parse_asset_list(value: Any, field: str, default_source: AssetSource) -> List[ReferenceAsset]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be an array")
    return [_parse_asset(item, default_source) for item in value]


def _parse_reference_assets(raw: Mapping[str, Any], max_assets: int) -> Tuple[ReferenceAsset, ...]:
    # preserveImages/styleReferenceImages are the brand/user lists used by older clients
    assets = _parse_asset_list(_get(raw, "referenceAssets", "reference_assets"), "referenceAssets", AssetSource.USER)
    assets += _parse_asset_list(_get(raw, "preserveImages", "preserve_images"), "preserveImages", AssetSource.BRAND)
    assets += _parse_asset_list(_get(raw, "styleReferenceImages", "style_reference_images"), "styleReferenceImages", AssetSource.USER)

    if len(assets) > max_assets:
        raise ValidationError(f"at most {max_assets} reference assets are allowed, got {len(assets)}")
    return tuple(assets)


def validate_brief(
    raw: Any,
    *,
    is_edit: bool = False,
    existing_image: Optional[str] = None,
    max_assets: Optional[int] = None,
) -> CreativeBrief:
    """
    Validate a raw brief mapping and return the normalized brief.

    Args:
        raw: Request body brief (camelCase keys; snake_case accepted)
        is_edit: Edit an existing image instead of generating a new one
        existing_image: Base image for edit mode (data URL or base64)
        max_assets: Override for MAX_REFERENCE_ASSETS

    Raises:
        ValidationError: On the first rule violation (400)
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("brief must be an object")

    limit = max_assets if max_assets is not None else settings.MAX_REFERENCE_ASSETS

    fields = {
        "description": _parse_description(raw.get("description")),
        "tones": _parse_tones(_get(raw, "tones", "tone")),
        "platform": _parse_platform(raw.get("platform")),
        "color_palette": _parse_enum(ColorPalette, _get(raw, "colorPalette", "color_palette"), ColorPalette.AUTO, "colorPalette"),
        "lighting": _parse_enum(Lighting, raw.get("lighting"), Lighting.NATURAL, "lighting"),
        "composition": _parse_enum(Composition, raw.get("composition"), Composition.AUTO, "composition"),
        "camera_angle": _parse_enum(CameraAngle, _get(raw, "cameraAngle", "camera_angle"), CameraAngle.EYE_LEVEL, "cameraAngle"),
        "mood": _parse_enum(Mood, raw.get("mood"), Mood.AUTO, "mood"),
        "detail_level": _parse_detail_level(_get(raw, "detailLevel", "detail_level")),
        "reference_assets": _parse_reference_assets(raw, limit),
    }
    for camel, snake in _TEXT_FIELDS:
        fields[snake] = _optional_text(_get(raw, camel, snake), camel)

    if is_edit:
        base = existing_image.strip() if isinstance(existing_image, str) else None
        if not base:
            raise ValidationError("existingImage is required when isEdit is true")
        fields["is_edit"] = True
        fields["existing_image"] = base

    brief = CreativeBrief(**fields)
    logger.debug(
        "[briefs] brief validated",
        extra={
            "platform": brief.platform.value if brief.platform else None,
            "reference_assets": len(brief.reference_assets),
            "is_edit": brief.is_edit,
        },
    )
    return brief
