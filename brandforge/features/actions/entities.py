"""Validation of persona, theme and brand payloads.

Each entity kind has one required display field and a fixed set of optional
text and list attributes. Unknown keys are ignored; only known attributes are
stored.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import Table

from brandforge.core.database import brands, personas, themes
from brandforge.core.errors import ValidationError
from brandforge.models.entitlement import ActionType

MAX_NAME_LENGTH = 200
MAX_TEXT_LENGTH = 2000
MAX_LIST_ITEMS = 20


@dataclass(frozen=True)
class EntityKind:
    label: str
    table: Table
    name_field: str
    text_fields: Tuple[str, ...] = ()
    list_fields: Tuple[str, ...] = ()


ENTITY_KINDS: Dict[ActionType, EntityKind] = {
    ActionType.PERSONA_CREATION: EntityKind(
        label="persona",
        table=personas,
        name_field="name",
        text_fields=("age", "occupation", "location", "description", "demographics", "psychographics"),
        list_fields=("goals", "frustrations", "behaviors", "channels", "personalityTraits"),
    ),
    ActionType.THEME_CREATION: EntityKind(
        label="theme",
        table=themes,
        name_field="title",
        text_fields=("description", "targetAudience", "tone"),
        list_fields=("objectives", "keyMessages"),
    ),
    ActionType.BRAND_CREATION: EntityKind(
        label="brand",
        table=brands,
        name_field="name",
        text_fields=(
            "responsible", "segment", "values", "keywords", "goals", "inspirations",
            "successMetrics", "references", "specialDates", "promise", "crisisInfo",
            "milestones", "collaborations", "restrictions",
        ),
    ),
}


@dataclass(frozen=True)
class EntityDraft:
    name: str
    brand_id: Optional[str]
    attributes: Dict[str, Any]


def _text(value: Any, field: str, limit: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if len(text) > limit:
        raise ValidationError(f"{field} must be at most {limit} characters")
    return text or None


def _text_list(value: Any, field: str) -> Optional[list]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list of strings")
    if len(value) > MAX_LIST_ITEMS:
        raise ValidationError(f"{field} accepts at most {MAX_LIST_ITEMS} items")
    items = [_text(item, field, MAX_TEXT_LENGTH) for item in value]
    return [item for item in items if item] or None


def validate_entity(action_type: ActionType, payload: Any) -> EntityDraft:
    """Check an entity payload; raises ValidationError (400) on the first problem."""
    kind = ENTITY_KINDS.get(action_type)
    if kind is None:
        raise ValidationError(f"{action_type.value} does not create an entity")
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{kind.label} must be an object")

    name = _text(payload.get(kind.name_field), kind.name_field, MAX_NAME_LENGTH)
    if not name:
        raise ValidationError(f"{kind.name_field} is required")

    brand_id = None
    if action_type != ActionType.BRAND_CREATION:
        brand_id = _text(payload.get("brandId"), "brandId", MAX_NAME_LENGTH)

    attributes: Dict[str, Any] = {}
    for field in kind.text_fields:
        value = _text(payload.get(field), field, MAX_TEXT_LENGTH)
        if value is not None:
            attributes[field] = value
    for field in kind.list_fields:
        value = _text_list(payload.get(field), field)
        if value is not None:
            attributes[field] = value

    return EntityDraft(name=name, brand_id=brand_id, attributes=attributes)
