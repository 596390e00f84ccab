"""Tests for YAML configuration loading."""
from pathlib import Path

import pytest

from config import DEFAULT_INGREDIENT_PROMPT, DEFAULT_PIN_CODE, DEFAULT_RECIPE_PROMPT, load_config


def write_config(tmp_path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:

    def test_empty_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PIN_CODE", raising=False)
        config = load_config(write_config(tmp_path, ""))
        assert config.server.pin_code == DEFAULT_PIN_CODE
        assert config.server.port == 3000
        assert config.gemini.api_key == ""
        assert config.storage.path == Path("data")
        assert config.prompts.recipe == DEFAULT_RECIPE_PROMPT
        assert config.prompts.ingredient == DEFAULT_INGREDIENT_PROMPT

    def test_pin_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PIN_CODE", "9876")
        config = load_config(write_config(tmp_path, "server: {}\n"))
        assert config.server.pin_code == "9876"

    def test_env_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GEMINI_KEY", "secret")
        config = load_config(write_config(tmp_path, "gemini:\n  api_key: ${GEMINI_KEY}\n  model: m1\n"))
        assert config.gemini.api_key == "secret"
        assert config.gemini.model == "m1"
        assert config.gemini.transcription_model == "m1"

    def test_numeric_pin_is_string(self, tmp_path):
        config = load_config(write_config(tmp_path, "server:\n  pin_code: 2468\n"))
        assert config.server.pin_code == "2468"

    def test_invalid_port_falls_back(self, tmp_path):
        config = load_config(write_config(tmp_path, "server:\n  port: nope\n"))
        assert config.server.port == 3000

    def test_allowed_users_validated(self, tmp_path):
        text = "telegram:\n  bot_token: abc\n  allowed_users: [1, '22', x, true]\n"
        config = load_config(write_config(tmp_path, text))
        assert config.telegram.allowed_users == [1, 22]

    def test_prompt_override(self, tmp_path):
        config = load_config(write_config(tmp_path, "prompts:\n  ingredient: Just the name\n"))
        assert config.prompts.ingredient == "Just the name"
        assert config.prompts.recipe == DEFAULT_RECIPE_PROMPT

    def test_storage_path(self, tmp_path):
        config = load_config(write_config(tmp_path, f"storage:\n  path: {tmp_path / 'kv'}\n"))
        assert config.storage.path == tmp_path / "kv"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")
