"""Tests for settings loading and path resolution."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from chatwave.config import get_config, load_config, reset_config


def test_missing_file_yields_defaults(tmp_path):
    cfg = load_config(settings_path=tmp_path / "absent.yaml")
    assert cfg.server.port == 8080
    assert cfg.chat.history_limit == 50
    assert cfg.chat.max_content_length == 2000
    assert cfg.persistence.workers == 2
    assert cfg.rooms.seed_defaults is True


def test_values_are_read_from_yaml(tmp_path):
    settings_file = tmp_path / "chatwave.settings.yaml"
    settings_file.write_text(
        "server:\n"
        "  port: 9001\n"
        "chat:\n"
        "  history_limit: 20\n"
        "persistence:\n"
        "  workers: 4\n"
        "  queue_size: 10\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)

    assert cfg.server.port == 9001
    assert cfg.chat.history_limit == 20
    assert cfg.persistence.workers == 4
    assert cfg.persistence.queue_size == 10
    assert cfg.logging.level == "debug"


def test_relative_db_path_resolves_from_settings_dir(tmp_path):
    settings_file = tmp_path / "chatwave.settings.yaml"
    settings_file.write_text("storage:\n  db_path: data/chat.duckdb\n", encoding="utf-8")

    cfg = load_config(settings_path=settings_file)

    assert Path(cfg.storage.db_path) == tmp_path.resolve() / "data" / "chat.duckdb"


def test_absolute_and_memory_db_paths_unchanged(tmp_path):
    absolute = tmp_path / "abs" / "chat.duckdb"
    settings_file = tmp_path / "chatwave.settings.yaml"
    settings_file.write_text(f"storage:\n  db_path: {absolute}\n", encoding="utf-8")
    assert Path(load_config(settings_path=settings_file).storage.db_path) == absolute

    settings_file.write_text("storage:\n  db_path: ':memory:'\n", encoding="utf-8")
    assert load_config(settings_path=settings_file).storage.db_path == ":memory:"


def test_invalid_values_are_rejected(tmp_path):
    settings_file = tmp_path / "chatwave.settings.yaml"
    settings_file.write_text("chat:\n  history_limit: 0\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(settings_path=settings_file)

    settings_file.write_text("logging:\n  level: loud\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(settings_path=settings_file)


def test_env_var_selects_settings_file(tmp_path, monkeypatch):
    settings_file = tmp_path / "custom.yaml"
    settings_file.write_text("server:\n  port: 7000\n", encoding="utf-8")
    monkeypatch.setenv("CHATWAVE_SETTINGS", str(settings_file))

    reset_config()
    assert get_config().server.port == 7000
