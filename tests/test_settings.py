import pytest

from main import build_broadcaster
from services.realtime.broadcaster import InMemoryBroadcaster, RedisBroadcaster
from utils.auth import bearer_token
from utils.settings import load_settings


def test_load_settings_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("MODERATOR_JWT_SECRET", "s3cret")
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path))
    monkeypatch.setenv("SESSION_IDLE_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("BROADCAST_BACKEND", "memory")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.moderator_jwt_secret == "s3cret"
    assert settings.database_dir == tmp_path
    assert settings.session_idle_timeout_seconds == 120
    assert settings.log_level == "DEBUG"
    assert isinstance(build_broadcaster(settings), InMemoryBroadcaster)


def test_missing_secret_fails_fast(monkeypatch):
    monkeypatch.delenv("MODERATOR_JWT_SECRET", raising=False)

    with pytest.raises(RuntimeError):
        load_settings()


def test_unknown_backend_fails_fast(monkeypatch):
    monkeypatch.setenv("MODERATOR_JWT_SECRET", "s3cret")
    monkeypatch.setenv("BROADCAST_BACKEND", "kafka")

    with pytest.raises(RuntimeError):
        load_settings()


def test_redis_backend_builds_redis_broadcaster(monkeypatch):
    monkeypatch.setenv("MODERATOR_JWT_SECRET", "s3cret")
    monkeypatch.setenv("BROADCAST_BACKEND", "redis")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/1")

    assert isinstance(build_broadcaster(load_settings()), RedisBroadcaster)


@pytest.mark.parametrize(
    "header,expected",
    [(None, None), ("", None), ("Bearer abc", "abc"), ("bearer  abc ", "abc"), ("Basic abc", None), ("Bearer ", None)],
)
def test_bearer_token(header, expected):
    assert bearer_token(header) == expected
