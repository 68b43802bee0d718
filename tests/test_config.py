import pytest

from querygate.core.config import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("CONNECT_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("EXECUTION_TIMEOUT_SECONDS", raising=False)

    settings = Settings()

    assert settings.CONNECT_TIMEOUT_SECONDS == 5.0
    assert settings.EXECUTION_TIMEOUT_SECONDS == 30.0
    assert settings.API_V1_STR == "/api/v1"


def test_timeouts_from_environment(monkeypatch):
    monkeypatch.setenv("CONNECT_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("EXECUTION_TIMEOUT_SECONDS", "60")

    settings = Settings()

    assert settings.CONNECT_TIMEOUT_SECONDS == 2.5
    assert settings.EXECUTION_TIMEOUT_SECONDS == 60.0


def test_explicit_arguments_override_environment(monkeypatch):
    monkeypatch.setenv("CONNECT_TIMEOUT_SECONDS", "2")

    settings = Settings(connect_timeout_seconds=1.0, execution_timeout_seconds=3.0)

    assert settings.CONNECT_TIMEOUT_SECONDS == 1.0


@pytest.mark.parametrize("value", ["soon", "0", "-1"])
def test_invalid_timeout_values(monkeypatch, value):
    monkeypatch.setenv("CONNECT_TIMEOUT_SECONDS", value)

    with pytest.raises(ValueError):
        Settings()


def test_connect_timeout_must_be_shorter_than_execution_timeout():
    with pytest.raises(ValueError):
        Settings(connect_timeout_seconds=30.0, execution_timeout_seconds=30.0)


def test_cors_origins_from_environment(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://dash.example.com, https://admin.example.com,")

    settings = Settings()

    assert settings.CORS_ORIGINS == ["https://dash.example.com", "https://admin.example.com"]
