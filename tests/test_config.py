"""Unit tests for core/config.py -- secret policy and derived values.

Settings is constructed directly with keyword overrides; the conftest
environment (DEBUG=true plus fixed secrets) is the baseline.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings

_ENC = "e" * 40
_SES = "s" * 40


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_production_requires_encryption_secret():
    with pytest.raises(ValidationError, match="ENCRYPTION_SECRET is required"):
        _settings(debug=False, encryption_secret="", session_secret=_SES)


def test_production_requires_session_secret():
    with pytest.raises(ValidationError, match="SESSION_SECRET is required"):
        _settings(debug=False, encryption_secret=_ENC, session_secret="")


def test_debug_generates_missing_secrets():
    settings = _settings(debug=True, encryption_secret="", session_secret="")
    assert len(settings.encryption_secret) >= 32
    assert len(settings.session_secret) >= 32
    assert settings.encryption_secret != settings.session_secret


def test_short_secret_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        _settings(encryption_secret="too-short", session_secret=_SES)


def test_identical_secrets_rejected():
    with pytest.raises(ValidationError, match="must be different"):
        _settings(encryption_secret=_ENC, session_secret=_ENC)


@pytest.mark.parametrize("debug, expected", [(False, True), (True, False)])
def test_secure_cookies_follow_mode(debug, expected):
    settings = _settings(debug=debug, encryption_secret=_ENC, session_secret=_SES, secure_cookies=None)
    assert settings.secure_cookies is expected


def test_secure_cookies_explicit_override():
    settings = _settings(debug=False, encryption_secret=_ENC, session_secret=_SES, secure_cookies=False)
    assert settings.secure_cookies is False


def test_defaults():
    settings = _settings(encryption_secret=_ENC, session_secret=_SES)
    assert settings.session_ttl_seconds == 86400
    assert settings.chat_timeout_seconds == 30.0
    assert settings.liveness_timeout_seconds == 10.0


def test_chat_url_joins_cleanly():
    settings = _settings(encryption_secret=_ENC, session_secret=_SES, upstream_base_url="http://backend:8000/")
    assert settings.chat_url == "http://backend:8000/api/chat"
