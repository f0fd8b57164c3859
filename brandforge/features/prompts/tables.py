"""Static phrase tables for prompt compilation.

Closed vocabularies are keyed by their enum member, so a member without a
phrase is a bug caught by the table coverage test rather than a silent
fallthrough. Defaults ("auto", "natural", "eye_level", detail 7) map to None:
they leave the choice to the model and emit no clause.
"""

from typing import Dict, Optional

from brandforge.models.brief import (
    CameraAngle,
    ColorPalette,
    Composition,
    Lighting,
    Mood,
    Platform,
)

PHOTO_PREFIX = "Professional high-resolution photograph"

TECHNICAL_CLAUSE = (
    "Shot on a full-frame DSLR with an 85mm f/1.4 lens, tack-sharp focus, "
    "realistic textures, accurate colors and balanced exposure"
)

ASSET_PREAMBLE = (
    "The attached reference images are inspirational, not reproducible: "
    "draw on their colors, atmosphere and visual language without copying them"
)

BRAND_ASSET_PREAMBLE = (
    "{count} brand identity image(s) are attached: keep the brand's visual identity "
    "recognizable for continuity, but produce a materially different composition"
)

USER_ASSET_PREAMBLE = "{count} style reference image(s) are attached as additional inspiration"

EDIT_PREAMBLE = (
    "Edit the first attached image according to the instructions below, "
    "keeping its subject and framing unless an instruction changes them"
)

CLOSING_CLAUSE = "Deliver a polished, visually striking final image with professional quality"

# Open vocabulary: unknown tones fall back to "with a {tone} aesthetic"
TONE_PHRASES: Dict[str, str] = {
    "inspiring": "with an inspiring and uplifting atmosphere",
    "motivational": "with a motivational and encouraging energy",
    "professional": "with a professional and corporate polish",
    "casual": "with a casual and relaxed feel",
    "elegant": "with an elegant and sophisticated finish",
    "modern": "with a modern and contemporary look",
    "traditional": "with a traditional and classic character",
    "fun": "with a fun and playful spirit",
    "playful": "with a fun and playful spirit",
    "serious": "with a serious and formal tone",
    "bold": "with a bold and confident presence",
    "minimalist": "with a clean and minimalist restraint",
    # Portuguese labels used by older clients
    "inspirador": "with an inspiring and uplifting atmosphere",
    "motivacional": "with a motivational and encouraging energy",
    "profissional": "with a professional and corporate polish",
    "elegante": "with an elegant and sophisticated finish",
    "moderno": "with a modern and contemporary look",
    "tradicional": "with a traditional and classic character",
    "divertido": "with a fun and playful spirit",
    "sério": "with a serious and formal tone",
}

PLATFORM_PHRASES: Dict[Platform, str] = {
    Platform.INSTAGRAM: "Optimized for Instagram: visual-first, mobile-friendly, scroll-stopping with key elements centered",
    Platform.FACEBOOK: "Optimized for Facebook: clear, direct and shareable for a broad audience",
    Platform.TIKTOK: "Optimized for TikTok: dynamic and trendy vertical framing with central subject placement",
    Platform.TWITTER: "Optimized for Twitter/X: concise, newsworthy and readable at small sizes",
    Platform.LINKEDIN: "Optimized for LinkedIn: professional, clean and business-oriented",
    Platform.COMMUNITIES: "Optimized for online communities: authentic, niche-focused and value-driven",
    Platform.PINTEREST: "Optimized for Pinterest: vertical, aesthetic and inspirational",
    Platform.YOUTUBE: "Optimized for a YouTube thumbnail: 16:9, high contrast and attention-grabbing",
}

COLOR_PALETTE_PHRASES: Dict[ColorPalette, Optional[str]] = {
    ColorPalette.AUTO: None,
    ColorPalette.WARM: "Color palette: warm orange, red, yellow and golden tones",
    ColorPalette.COOL: "Color palette: cool blue, green, purple and silver tones",
    ColorPalette.MONOCHROME: "Color palette: monochromatic variations of a single tone",
    ColorPalette.VIBRANT: "Color palette: vibrant, saturated and contrasting colors",
    ColorPalette.PASTEL: "Color palette: soft pastel colors, delicate and subtle",
    ColorPalette.EARTHY: "Color palette: earthy natural browns, greens and beiges",
}

LIGHTING_PHRASES: Dict[Lighting, Optional[str]] = {
    Lighting.NATURAL: None,
    Lighting.STUDIO: "Lighting: professional studio softboxes with controlled shadows",
    Lighting.DRAMATIC: "Lighting: dramatic high-contrast Rembrandt lighting with chiaroscuro",
    Lighting.SOFT: "Lighting: soft diffused light with minimal, flattering shadows",
    Lighting.BACKLIT: "Lighting: backlit with rim light and a subtle lens flare halo",
    Lighting.GOLDEN_HOUR: "Lighting: golden hour with warm orange tones",
}

COMPOSITION_PHRASES: Dict[Composition, Optional[str]] = {
    Composition.AUTO: None,
    Composition.RULE_OF_THIRDS: "Composition: rule of thirds",
    Composition.CENTERED: "Composition: centered and symmetrical",
    Composition.LEADING_LINES: "Composition: leading lines guiding the eye",
    Composition.FRAME_WITHIN_FRAME: "Composition: frame within a frame",
    Composition.SYMMETRICAL: "Composition: symmetrical and balanced",
}

CAMERA_ANGLE_PHRASES: Dict[CameraAngle, Optional[str]] = {
    CameraAngle.EYE_LEVEL: None,
    CameraAngle.BIRD_EYE: "Camera: bird's eye view from above",
    CameraAngle.LOW_ANGLE: "Camera: low angle looking up, heroic and powerful",
    CameraAngle.DUTCH_ANGLE: "Camera: tilted dutch angle, dynamic",
    CameraAngle.OVER_SHOULDER: "Camera: over the shoulder shot",
    CameraAngle.CLOSE_UP: "Camera: detailed close-up",
}

MOOD_PHRASES: Dict[Mood, Optional[str]] = {
    Mood.AUTO: None,
    Mood.ENERGETIC: "Mood: energetic and dynamic atmosphere",
    Mood.CALM: "Mood: calm and serene atmosphere",
    Mood.MYSTERIOUS: "Mood: mysterious and intriguing atmosphere",
    Mood.JOYFUL: "Mood: joyful and festive atmosphere",
    Mood.MELANCHOLIC: "Mood: melancholic and contemplative atmosphere",
    Mood.POWERFUL: "Mood: powerful and impactful atmosphere",
}

# Index = detail level - 1; level 7 is the default and emits nothing
DETAIL_LADDER = (
    "Detail: extremely minimal, only the essential shapes",
    "Detail: minimal, with large simple forms",
    "Detail: low, with clean uncluttered surfaces",
    "Detail: moderate-low, with a few supporting elements",
    "Detail: moderate, with balanced supporting elements",
    "Detail: moderately rich, with visible textures",
    None,
    "Detail: high, with fine textures and crisp small elements",
    "Detail: very high, with intricate textures and micro-details",
    "Detail: maximal, hyper-detailed down to the finest surface texture",
)
