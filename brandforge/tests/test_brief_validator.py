"""Tests for creative brief validation."""

import pytest

from brandforge.core.errors import ValidationError
from brandforge.features.briefs.validator import validate_brief
from brandforge.models.brief import (
    AssetSource,
    CameraAngle,
    ColorPalette,
    Lighting,
    Mood,
    Platform,
)


class TestDescription:
    def test_description_is_trimmed(self):
        brief = validate_brief({"description": "  A coffee cup  "})
        assert brief.description == "A coffee cup"

    @pytest.mark.parametrize("value", [None, "", "   ", "[[]]", "<\"{}\">", " `''` "])
    def test_missing_description_rejected(self, value):
        with pytest.raises(ValidationError, match="description is required"):
            validate_brief({"description": value})

    def test_description_length_limit(self):
        validate_brief({"description": "x" * 2000})
        with pytest.raises(ValidationError, match="at most 2000"):
            validate_brief({"description": "x" * 2001})

    def test_description_must_be_string(self):
        with pytest.raises(ValidationError):
            validate_brief({"description": 42})

    def test_brief_must_be_mapping(self):
        with pytest.raises(ValidationError, match="brief must be an object"):
            validate_brief(["description"])


class TestOptionalText:
    def test_long_optional_field_rejected(self):
        with pytest.raises(ValidationError, match="additionalInfo"):
            validate_brief({"description": "ok", "additionalInfo": "y" * 2001})

    def test_empty_optional_fields_become_none(self):
        brief = validate_brief({"description": "ok", "persona": "  ", "brand": ""})
        assert brief.persona is None
        assert brief.brand is None

    def test_snake_case_keys_accepted(self):
        brief = validate_brief({"description": "ok", "negative_prompt": "text", "additional_info": "info"})
        assert brief.negative_prompt == "text"
        assert brief.additional_info == "info"


class TestEnums:
    def test_defaults_are_sentinels(self):
        brief = validate_brief({"description": "ok"})
        assert brief.platform is None
        assert brief.color_palette == ColorPalette.AUTO
        assert brief.lighting == Lighting.NATURAL
        assert brief.camera_angle == CameraAngle.EYE_LEVEL
        assert brief.mood == Mood.AUTO
        assert brief.detail_level == 7

    @pytest.mark.parametrize("value,expected", [
        ("Instagram", Platform.INSTAGRAM),
        ("LINKEDIN", Platform.LINKEDIN),
        ("Twitter/X", Platform.TWITTER),
        ("x", Platform.TWITTER),
        ("Comunidades", Platform.COMMUNITIES),
        ("instagram_stories", Platform.INSTAGRAM),
        ("instagram-feed", Platform.INSTAGRAM),
        ("Instagram Feed", Platform.INSTAGRAM),
        ("YouTube Thumbnail", Platform.YOUTUBE),
    ])
    def test_platform_case_insensitive_and_aliases(self, value, expected):
        assert validate_brief({"description": "ok", "platform": value}).platform == expected

    def test_unknown_platform_rejected(self):
        with pytest.raises(ValidationError, match="platform must be one of"):
            validate_brief({"description": "ok", "platform": "myspace"})

    def test_enum_spelling_normalized(self):
        brief = validate_brief({"description": "ok", "lighting": "Golden Hour", "cameraAngle": "low-angle"})
        assert brief.lighting == Lighting.GOLDEN_HOUR
        assert brief.camera_angle == CameraAngle.LOW_ANGLE

    def test_unknown_mood_rejected(self):
        with pytest.raises(ValidationError, match="mood"):
            validate_brief({"description": "ok", "mood": "sleepy"})


class TestTonesAndDetail:
    def test_tones_from_list_and_string(self):
        assert validate_brief({"description": "ok", "tones": ["Casual", "modern", "casual"]}).tones == ("casual", "modern")
        assert validate_brief({"description": "ok", "tones": "elegant, bold"}).tones == ("elegant", "bold")

    def test_tones_must_be_strings(self):
        with pytest.raises(ValidationError):
            validate_brief({"description": "ok", "tones": [1, 2]})

    @pytest.mark.parametrize("level", [1, 10, "5"])
    def test_detail_level_in_range(self, level):
        assert 1 <= validate_brief({"description": "ok", "detailLevel": level}).detail_level <= 10

    @pytest.mark.parametrize("level", [0, 11, True, "high", 3.5])
    def test_detail_level_out_of_range(self, level):
        with pytest.raises(ValidationError, match="detailLevel"):
            validate_brief({"description": "ok", "detailLevel": level})


class TestReferenceAssets:
    def test_ten_assets_accepted(self):
        brief = validate_brief({"description": "ok", "referenceAssets": ["abc"] * 10})
        assert len(brief.reference_assets) == 10

    def test_eleven_assets_rejected_not_truncated(self):
        with pytest.raises(ValidationError, match="at most 10 reference assets"):
            validate_brief({"description": "ok", "referenceAssets": ["abc"] * 11})

    def test_assets_must_be_array(self):
        with pytest.raises(ValidationError, match="must be an array"):
            validate_brief({"description": "ok", "referenceAssets": "abc"})

    def test_asset_sources(self):
        brief = validate_brief({
            "description": "ok",
            "referenceAssets": [{"data": "u1"}, {"data": "b1", "source": "brand"}],
            "preserveImages": ["b2"],
            "styleReferenceImages": ["u2"],
        })
        sources = [a.source for a in brief.reference_assets]
        assert sources == [AssetSource.USER, AssetSource.BRAND, AssetSource.BRAND, AssetSource.USER]

    def test_legacy_lists_count_toward_limit(self):
        with pytest.raises(ValidationError):
            validate_brief({"description": "ok", "preserveImages": ["b"] * 6, "styleReferenceImages": ["u"] * 5})

    def test_bad_source_rejected(self):
        with pytest.raises(ValidationError, match="source"):
            validate_brief({"description": "ok", "referenceAssets": [{"data": "x", "source": "stock"}]})

    def test_empty_asset_data_rejected(self):
        with pytest.raises(ValidationError):
            validate_brief({"description": "ok", "referenceAssets": [{"data": ""}]})


class TestEditMode:
    def test_edit_requires_existing_image(self):
        with pytest.raises(ValidationError, match="existingImage"):
            validate_brief({"description": "make it blue"}, is_edit=True)

    def test_edit_keeps_base_image(self):
        brief = validate_brief({"description": "make it blue"}, is_edit=True, existing_image=" data:image/png;base64,AAAA ")
        assert brief.is_edit is True
        assert brief.existing_image == "data:image/png;base64,AAAA"

    def test_existing_image_ignored_without_edit(self):
        brief = validate_brief({"description": "ok"}, existing_image="abc")
        assert brief.is_edit is False
        assert brief.existing_image is None
