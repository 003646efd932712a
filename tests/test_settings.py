"""Tests for settings persistence and overrides."""

from __future__ import annotations

import json

import pytest

from mori.services.settings import (
    SecretVault,
    Settings,
    SettingsStore,
    default_settings_path,
    redact_secret,
)


@pytest.fixture
def store(tmp_path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")


class TestDefaults:
    def test_defaults(self):
        settings = Settings()
        assert settings.max_tool_iterations == 3
        assert settings.history_window == 10
        assert settings.tool_result_role == "user"
        assert settings.max_retries == 1

    def test_default_path_follows_mori_home(self, isolated_mori_home):
        assert default_settings_path() == isolated_mori_home / "settings.json"

    def test_missing_file_loads_defaults(self, store):
        assert store.load() == Settings()

    def test_conversions(self):
        settings = Settings(
            base_url="https://llm.example.com/v1",
            api_key="sk",
            model="m",
            max_tool_iterations=5,
            tool_timeout=None,
            locale="de",
        )

        client = settings.to_client_settings()
        runner = settings.to_runner_config()
        executor = settings.to_executor_config()

        assert client.completions_url == "https://llm.example.com/v1/chat/completions"
        assert client.default_headers is None
        assert runner.max_iterations == 5
        assert runner.locale == "de"
        assert executor.default_timeout is None


class TestPersistence:
    def test_save_encrypts_api_key(self, store):
        store.save(Settings(api_key="sk-secret-value", model="custom"))

        payload = json.loads(store.path.read_text(encoding="utf-8"))
        assert "api_key" not in payload
        assert payload["api_key_ciphertext"].startswith("fernet:")
        assert "sk-secret-value" not in store.path.read_text(encoding="utf-8")
        assert payload["version"] == 1

        loaded = store.load()
        assert loaded.api_key == "sk-secret-value"
        assert loaded.model == "custom"

    def test_plaintext_key_is_migrated(self, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text(json.dumps({"api_key": "sk-plain", "version": 1}), encoding="utf-8")

        settings = store.load()

        assert settings.api_key == "sk-plain"
        payload = json.loads(store.path.read_text(encoding="utf-8"))
        assert "api_key" not in payload
        assert payload["api_key_ciphertext"].startswith("fernet:")

    def test_invalid_json_falls_back_to_defaults(self, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("{broken", encoding="utf-8")
        assert store.load() == Settings()

    def test_non_object_payload_is_ignored(self, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("[1, 2]", encoding="utf-8")
        assert store.load() == Settings()

    def test_unknown_fields_are_dropped(self, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text(json.dumps({"model": "x", "theme": "dark", "version": 1}), encoding="utf-8")
        assert store.load().model == "x"

    def test_undecryptable_key_is_blank(self, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text(
            json.dumps({"api_key_ciphertext": "fernet:not-a-token", "version": 1}),
            encoding="utf-8",
        )
        assert store.load().api_key == ""


class TestOverrides:
    def test_cli_overrides_apply_over_file(self, store):
        store.save(Settings(model="from-file"))

        settings = store.load(overrides={"model": "from-cli", "unknown": 1, "locale": None})

        assert settings.model == "from-cli"
        assert settings.locale == "en"

    def test_environment_wins_over_cli(self, store, monkeypatch):
        monkeypatch.setenv("MORI_MODEL", "from-env")
        monkeypatch.setenv("MORI_MAX_TOOL_ITERATIONS", "5")
        monkeypatch.setenv("MORI_TEMPERATURE", "0.4")
        monkeypatch.setenv("MORI_DEBUG_EVENT_LOGGING", "yes")

        settings = store.load(overrides={"model": "from-cli"})

        assert settings.model == "from-env"
        assert settings.max_tool_iterations == 5
        assert settings.temperature == 0.4
        assert settings.debug_event_logging is True

    def test_invalid_numeric_env_is_ignored(self, store, monkeypatch):
        monkeypatch.setenv("MORI_MAX_TOOL_ITERATIONS", "many")
        assert store.load().max_tool_iterations == 3

    def test_metadata_overrides_merge(self, store):
        store.save(Settings(metadata={"a": 1}))
        settings = store.load(overrides={"metadata": {"b": 2}})
        assert settings.metadata == {"a": 1, "b": 2}


class TestSecretVault:
    def test_round_trip(self, tmp_path):
        vault = SecretVault(key_path=tmp_path / "vault.key")

        token = vault.encrypt("hunter2")

        assert token.startswith("fernet:")
        assert vault.decrypt(token) == "hunter2"
        assert (tmp_path / "vault.key").exists()

    def test_key_is_reused_across_instances(self, tmp_path):
        token = SecretVault(key_path=tmp_path / "vault.key").encrypt("hunter2")
        assert SecretVault(key_path=tmp_path / "vault.key").decrypt(token) == "hunter2"

    def test_empty_values(self, tmp_path):
        vault = SecretVault(key_path=tmp_path / "vault.key")
        assert vault.encrypt("") == ""
        assert vault.decrypt(None) == ""

    def test_unknown_prefix(self, tmp_path):
        vault = SecretVault(key_path=tmp_path / "vault.key")
        with pytest.raises(ValueError):
            vault.decrypt("dpapi:abc")

    def test_foreign_key_is_rejected(self, tmp_path):
        token = SecretVault(key_path=tmp_path / "one.key").encrypt("hunter2")
        with pytest.raises(ValueError):
            SecretVault(key_path=tmp_path / "two.key").decrypt(token)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value, expected):
    assert redact_secret(value) == expected
