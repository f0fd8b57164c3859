"""
brandforge/features/prompts/compiler.py

Compile a validated brief into the single instruction string sent to the model.

compile_prompt is pure: the same brief and asset counts always give the same
string. Every free-text field is sanitized before interpolation so user text
cannot inject prompt structure.
"""

import re
import unicodedata
from typing import Iterable, List, Optional, Union

from brandforge.features.prompts import tables
from brandforge.models.brief import AssetSource, CreativeBrief

CLAUSE_SEPARATOR = ". "

_MARKUP_CHARS = re.compile(r"[<>{}\[\]\"'`]")
_WHITESPACE = re.compile(r"\s+")


def _strip_control(text: str) -> str:
    return "".join(" " if unicodedata.category(ch) == "Cc" else ch for ch in text)


def sanitize(value: Union[None, str, Iterable[str]]) -> str:
    """
    Remove structural characters and control characters, collapse whitespace.

    Lists are flattened to a comma-joined string first. Idempotent.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = ", ".join(str(item) for item in value if item)
    text = _strip_control(value)
    text = _MARKUP_CHARS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def _clean_clause(clause: Optional[str]) -> str:
    if not clause:
        return ""
    return clause.strip().rstrip(". ").strip()


def _asset_clauses(brand_assets: int, user_assets: int) -> List[str]:
    if brand_assets + user_assets == 0:
        return []
    clauses = [tables.ASSET_PREAMBLE]
    if brand_assets:
        clauses.append(tables.BRAND_ASSET_PREAMBLE.format(count=brand_assets))
    if user_assets:
        clauses.append(tables.USER_ASSET_PREAMBLE.format(count=user_assets))
    return clauses


def _framing_clause(brand: str, theme: str) -> Optional[str]:
    if brand and theme:
        return f"Created for the brand {brand} as part of the campaign theme {theme}"
    if brand:
        return f"Created for the brand {brand}"
    if theme:
        return f"Created for the campaign theme {theme}"
    return None


def _tone_clause(tones: Iterable[str]) -> Optional[str]:
    phrases: List[str] = []
    for tone in tones:
        phrase = tables.TONE_PHRASES.get(tone.lower())
        if phrase is None:
            cleaned = sanitize(tone)
            if not cleaned:
                continue
            phrase = f"with a {cleaned} aesthetic"
        if phrase not in phrases:
            phrases.append(phrase)
    if not phrases:
        return None
    return "Rendered " + ", ".join(phrases)


def _advanced_clauses(brief: CreativeBrief) -> List[Optional[str]]:
    return [
        tables.COLOR_PALETTE_PHRASES[brief.color_palette],
        tables.LIGHTING_PHRASES[brief.lighting],
        tables.COMPOSITION_PHRASES[brief.composition],
        tables.CAMERA_ANGLE_PHRASES[brief.camera_angle],
        tables.MOOD_PHRASES[brief.mood],
        tables.DETAIL_LADDER[brief.detail_level - 1],
    ]


def _closing_clause(brand: str, theme: str) -> str:
    if brand and theme:
        return f"{tables.CLOSING_CLAUSE}, consistent with the {brand} brand identity and the {theme} theme"
    if brand:
        return f"{tables.CLOSING_CLAUSE}, consistent with the {brand} brand identity"
    if theme:
        return f"{tables.CLOSING_CLAUSE}, consistent with the {theme} theme"
    return tables.CLOSING_CLAUSE


def compile_prompt(
    brief: CreativeBrief,
    *,
    brand_assets: Optional[int] = None,
    user_assets: Optional[int] = None,
) -> str:
    """
    Build the ordered clause list and join it with ". ".

    Args:
        brief: Validated brief
        brand_assets: Brand images actually admitted (defaults to the brief's count)
        user_assets: User images actually admitted (defaults to the brief's count)

    Clause order: edit preamble, asset preamble, brand/theme framing,
    description, tones, technical quality, platform, persona/objective/extra,
    advanced parameters, closing, then "Must avoid" last so it is the most
    recent instruction the model reads.
    """
    if brand_assets is None:
        brand_assets = sum(1 for a in brief.reference_assets if a.source == AssetSource.BRAND)
    if user_assets is None:
        user_assets = sum(1 for a in brief.reference_assets if a.source == AssetSource.USER)

    brand = sanitize(brief.brand)
    theme = sanitize(brief.theme)
    description = sanitize(brief.description)
    persona = sanitize(brief.persona)
    objective = sanitize(brief.objective)
    additional_info = sanitize(brief.additional_info)
    negative = sanitize(brief.negative_prompt)

    clauses: List[Optional[str]] = []
    if brief.is_edit:
        clauses.append(tables.EDIT_PREAMBLE)
    clauses.extend(_asset_clauses(brand_assets, user_assets))
    clauses.append(_framing_clause(brand, theme))
    clauses.append(f"{tables.PHOTO_PREFIX}: {description}" if description else tables.PHOTO_PREFIX)
    clauses.append(_tone_clause(brief.tones))
    clauses.append(tables.TECHNICAL_CLAUSE)
    if brief.platform is not None:
        clauses.append(tables.PLATFORM_PHRASES[brief.platform])
    if persona:
        clauses.append(f"Designed to resonate with this audience: {persona}")
    if objective:
        clauses.append(f"Post objective: {objective}")
    if additional_info:
        clauses.append(f"Additional context: {additional_info}")
    clauses.extend(_advanced_clauses(brief))
    clauses.append(_closing_clause(brand, theme))
    if negative:
        clauses.append(f"Must avoid: {negative}")

    return CLAUSE_SEPARATOR.join(c for c in (_clean_clause(c) for c in clauses) if c)
