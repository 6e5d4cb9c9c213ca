from datetime import timedelta

import pytest

from api import create_app
from api.config import (
    AuthSettings,
    ConfigurationError,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
)


@pytest.mark.parametrize(
    "overrides",
    [
        {"JWT_ACCESS_SECRET": None},
        {"JWT_REFRESH_SECRET": ""},
        {"JWT_ACCESS_SECRET": "same-secret-for-both", "JWT_REFRESH_SECRET": "same-secret-for-both"},
    ],
)
def test_app_refuses_to_start_without_distinct_secrets(overrides):
    with pytest.raises(ConfigurationError):
        create_app("testing", overrides)


def test_non_positive_lifetime_is_rejected():
    with pytest.raises(ConfigurationError):
        AuthSettings(access_secret="a", refresh_secret="b", access_ttl=timedelta(0))


def test_settings_are_immutable():
    settings = AuthSettings(access_secret="a", refresh_secret="b")
    with pytest.raises(AttributeError):
        settings.access_secret = "c"


def test_settings_from_config():
    settings = AuthSettings.from_config(
        {
            "JWT_ACCESS_SECRET": "a",
            "JWT_REFRESH_SECRET": "b",
            "ACCESS_TOKEN_EXPIRES": timedelta(minutes=5),
            "REFRESH_TOKEN_COOKIE": "rt",
            "COOKIE_SECURE": True,
        }
    )
    assert settings.access_ttl == timedelta(minutes=5)
    assert settings.refresh_ttl == timedelta(days=7)
    assert settings.refresh_cookie == "rt"
    assert settings.cookie_secure is True
    assert settings.issuer == "cosmos-admin"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("dev", DevelopmentConfig),
        ("test", TestingConfig),
        ("testing", TestingConfig),
        ("prod", ProductionConfig),
        ("production", ProductionConfig),
        ("PROD", ProductionConfig),
    ],
)
def test_get_config(name, expected):
    assert get_config(name) is expected


def test_testing_app_is_wired(app):
    assert app.config["TESTING"] is True
    assert app.extensions["auth_settings"].access_ttl == timedelta(minutes=15)
    assert app.extensions["session_service"].password_min_length == 6
