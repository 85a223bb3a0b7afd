from __future__ import annotations

import pytest

from boardgamebash import config


@pytest.fixture()
def isolated_env(monkeypatch, tmp_path):
    for key in list(config.DEFAULTS) + ["BASE_DIR", "CONFIG", "DATA_DIR", "DB"]:
        monkeypatch.delenv(f"{config.ENV_PREFIX}{key.upper()}", raising=False)
    monkeypatch.setenv(f"{config.ENV_PREFIX}BASE_DIR", str(tmp_path))
    monkeypatch.setattr(config, "settings", config.settings)
    return tmp_path


def test_defaults_without_config_file(isolated_env):
    loaded = config.load_settings()

    assert loaded.app_port == 8000
    assert loaded.cancel_removes_participation is False
    assert loaded.database_path == isolated_env / "data" / "boardgamebash.db"
    assert loaded.database_url.startswith("sqlite:///")
    assert loaded.data_dir.exists()


def test_toml_file_overrides_defaults(isolated_env):
    (isolated_env / "boardgamebash.toml").write_text(
        'app_port = 9000\nguest_name_max_length = 40\ndatabase_path = "games.db"\n'
    )

    loaded = config.load_settings()

    assert loaded.app_port == 9000
    assert loaded.guest_name_max_length == 40
    assert loaded.database_path == isolated_env / "games.db"


def test_environment_beats_toml(isolated_env, monkeypatch):
    (isolated_env / "boardgamebash.toml").write_text("cancel_removes_participation = false\n")
    monkeypatch.setenv("BOARDGAMEBASH_CANCEL_REMOVES_PARTICIPATION", "yes")
    monkeypatch.setenv("BOARDGAMEBASH_APP_PORT", "8123")

    loaded = config.load_settings()

    assert loaded.cancel_removes_participation is True
    assert loaded.app_port == 8123


def test_invalid_boolean_is_rejected(isolated_env, monkeypatch):
    monkeypatch.setenv("BOARDGAMEBASH_CANCEL_REMOVES_PARTICIPATION", "maybe")
    with pytest.raises(ValueError):
        config.load_settings()


def test_update_config_file_merges_known_keys(isolated_env):
    path = isolated_env / "custom.toml"
    path.write_text("seed_games = 2\n")

    updated = config.update_config_file(
        {"app_port": 8080, "unknown_key": "ignored"}, path=path
    )

    content = path.read_text()
    assert "app_port = 8080" in content
    assert "seed_games = 2" in content
    assert "unknown_key" not in content
    assert updated.app_port == 8080
    assert config.settings is updated
