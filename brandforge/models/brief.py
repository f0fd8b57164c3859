"""
brandforge/models/brief.py

Creative brief model.

A brief is the structured description of the image a user wants. The raw
request body is checked by the brief validator and turned into this frozen
model; everything downstream (prompt compiler, asset admission) reads only
the validated form.
"""

from enum import Enum
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    TIKTOK = "tiktok"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    COMMUNITIES = "communities"
    PINTEREST = "pinterest"
    YOUTUBE = "youtube"


class ColorPalette(str, Enum):
    AUTO = "auto"
    WARM = "warm"
    COOL = "cool"
    MONOCHROME = "monochrome"
    VIBRANT = "vibrant"
    PASTEL = "pastel"
    EARTHY = "earthy"


class Lighting(str, Enum):
    NATURAL = "natural"
    STUDIO = "studio"
    DRAMATIC = "dramatic"
    SOFT = "soft"
    BACKLIT = "backlit"
    GOLDEN_HOUR = "golden_hour"


class Composition(str, Enum):
    AUTO = "auto"
    RULE_OF_THIRDS = "rule_of_thirds"
    CENTERED = "centered"
    LEADING_LINES = "leading_lines"
    FRAME_WITHIN_FRAME = "frame_within_frame"
    SYMMETRICAL = "symmetrical"


class CameraAngle(str, Enum):
    EYE_LEVEL = "eye_level"
    BIRD_EYE = "bird_eye"
    LOW_ANGLE = "low_angle"
    DUTCH_ANGLE = "dutch_angle"
    OVER_SHOULDER = "over_shoulder"
    CLOSE_UP = "close_up"


class Mood(str, Enum):
    AUTO = "auto"
    ENERGETIC = "energetic"
    CALM = "calm"
    MYSTERIOUS = "mysterious"
    JOYFUL = "joyful"
    MELANCHOLIC = "melancholic"
    POWERFUL = "powerful"


class AssetSource(str, Enum):
    """Brand assets come from the brand's identity kit; user assets are ad-hoc style references."""
    BRAND = "brand"
    USER = "user"


DEFAULT_DETAIL_LEVEL = 7


class ReferenceAsset(BaseModel):
    """An auxiliary image attached to a brief (data URL or raw base64)."""
    model_config = ConfigDict(frozen=True)

    data: str
    source: AssetSource = AssetSource.USER


class CreativeBrief(BaseModel):
    """
    Validated creative brief.

    Text fields are trimmed and never empty strings (absent is None).
    Closed vocabularies are enums; their defaults are the "leave it to the
    model" sentinels (auto / natural / eye_level / detail 7).
    """
    model_config = ConfigDict(frozen=True)

    description: str
    tones: Tuple[str, ...] = ()
    platform: Optional[Platform] = None
    persona: Optional[str] = None
    brand: Optional[str] = None
    theme: Optional[str] = None
    objective: Optional[str] = None
    additional_info: Optional[str] = None
    color_palette: ColorPalette = ColorPalette.AUTO
    lighting: Lighting = Lighting.NATURAL
    composition: Composition = Composition.AUTO
    camera_angle: CameraAngle = CameraAngle.EYE_LEVEL
    mood: Mood = Mood.AUTO
    detail_level: int = Field(default=DEFAULT_DETAIL_LEVEL, ge=1, le=10)
    negative_prompt: Optional[str] = None
    reference_assets: Tuple[ReferenceAsset, ...] = ()
    is_edit: bool = False
    existing_image: Optional[str] = None
