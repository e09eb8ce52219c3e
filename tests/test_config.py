"""
Tests for configuration loading: defaults, YAML file, environment overrides.
"""
import pytest
from werkzeug.security import check_password_hash

from taskboard.config import Config, parse_duration
from taskboard.errors import ConfigError


@pytest.mark.parametrize("value,expected", [
    ("15m", 900),
    ("30s", 30),
    ("2h", 7200),
    ("1d", 86400),
    ("45", 45),
    (120, 120),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["soon", "10w", "", True])
def test_parse_duration_rejects(value):
    with pytest.raises(ConfigError):
        parse_duration(value)


def test_defaults():
    cfg = Config()
    assert cfg.port == 3001
    assert cfg.mode == "per-account"
    assert cfg.access_ttl_seconds == 900
    assert cfg.refresh_token_ttl_ms == 30 * 24 * 60 * 60 * 1000
    assert cfg.max_body_bytes == 50 * 1024


def test_env_overrides():
    cfg = Config().apply_env({
        "PORT": "8080",
        "TASKBOARD_MODE": " Shared-Secret ",
        "TASKBOARD_DATA": "/tmp/board.json",
        "TASKBOARD_PASSWORD": "pw",
        "JWT_SECRET": "s3cret",
        "ACCESS_TOKEN_TTL": "5m",
        "REFRESH_TOKEN_TTL_MS": "60000",
        "CORS_ORIGIN": "http://a.test, http://b.test",
        "TASKBOARD_ENV": "production",
    })
    assert cfg.port == 8080
    assert cfg.mode == "shared-secret"
    assert cfg.data_path == "/tmp/board.json"
    assert cfg.jwt_secret == "s3cret"
    assert cfg.access_ttl_seconds == 300
    assert cfg.refresh_token_ttl_ms == 60000
    assert cfg.cors_origins == ["http://a.test", "http://b.test"]
    assert cfg.production is True


def test_empty_env_changes_nothing():
    assert Config().apply_env({}) == Config()


def test_validate_unknown_mode():
    with pytest.raises(ConfigError):
        Config(mode="anonymous").validate()


def test_validate_shared_secret_needs_password():
    with pytest.raises(ConfigError):
        Config(mode="shared-secret").validate()
    assert Config(mode="shared-secret", password_hash="x").validate()


def test_validate_bad_ttl():
    with pytest.raises(ConfigError):
        Config(access_token_ttl="forever").validate()


def test_validate_warns_on_dev_secret(caplog):
    Config(mode="per-account").validate()
    assert "JWT_SECRET" in caplog.text


def test_resolved_password_hash():
    assert Config(password_hash="stored").resolved_password_hash() == "stored"
    hashed = Config(password="pw").resolved_password_hash()
    assert check_password_hash(hashed, "pw")
    assert Config().resolved_password_hash() == ""


def test_load_yaml(tmp_path):
    path = tmp_path / "taskboard.yaml"
    path.write_text(
        "port: 4000\n"
        "mode: open\n"
        "data_path: board.json\n"
        "unknown_key: ignored\n"
    )
    cfg = Config.load(str(path), env={})
    assert cfg.port == 4000
    assert cfg.mode == "open"
    assert cfg.data_path == "board.json"


def test_env_beats_yaml(tmp_path):
    path = tmp_path / "taskboard.yaml"
    path.write_text("port: 4000\nmode: open\n")
    cfg = Config.load(str(path), env={"PORT": "5000"})
    assert cfg.port == 5000


def test_load_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        Config.load(str(tmp_path / "nope.yaml"), env={})


def test_load_non_mapping(tmp_path):
    path = tmp_path / "taskboard.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        Config.load(str(path), env={})
