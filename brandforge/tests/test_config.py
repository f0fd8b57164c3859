import logging

import pytest

from brandforge.core.config import Settings, validate_config


def test_defaults_match_policy():
    cfg = Settings(_env_file=None)
    assert cfg.GENERATION_MAX_ATTEMPTS == 3
    assert cfg.GENERATION_BASE_DELAY_SECONDS == 2.0
    assert cfg.REFERENCE_ASSET_CAP == 5
    assert cfg.MAX_REFERENCE_ASSETS == 10
    assert cfg.FREE_PERSONA_CREATIONS == cfg.FREE_THEME_CREATIONS == cfg.FREE_BRAND_CREATIONS == 3


def test_missing_keys_warn_in_lenient_mode(caplog):
    cfg = Settings(_env_file=None, DATABASE_URL=None, GEMINI_API_KEY=None, AUTH_JWT_SECRET="s")
    logger = logging.getLogger("brandforge.test_config")
    with caplog.at_level(logging.WARNING, logger="brandforge.test_config"):
        assert validate_config(strict=False, settings_obj=cfg, logger=logger) is True

    message = caplog.records[-1].getMessage()
    assert "DATABASE_URL" in message
    assert "GEMINI_API_KEY" in message
    assert "AUTH_JWT_SECRET" not in message


def test_missing_keys_raise_in_strict_mode():
    cfg = Settings(_env_file=None, DATABASE_URL=None, GEMINI_API_KEY="k", AUTH_JWT_SECRET="s")
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        validate_config(strict=True, settings_obj=cfg)


def test_secrets_never_logged(caplog):
    cfg = Settings(_env_file=None, DATABASE_URL="sqlite://", GEMINI_API_KEY="super-secret-key", AUTH_JWT_SECRET="jwt-secret")
    with caplog.at_level(logging.DEBUG):
        validate_config(strict=False, settings_obj=cfg)
    assert "super-secret-key" not in caplog.text
