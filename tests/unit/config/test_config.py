"""Unit tests for configuration resolution.

These tests verify the core behaviors of the configuration module:
- Loading settings from DIRECTOR_* environment variables and .env files.
- The GEMINI_API_KEY fallback for the API key.
- Prioritizing programmatic overrides over the environment.
- The immutability and redaction of FrozenConfig.
"""

import dataclasses
import os
from unittest.mock import patch

import pytest

from storyboard_director.config import FrozenConfig, resolve_config
from storyboard_director.exceptions import ConfigurationError


class TestResolution:
    @pytest.mark.unit
    def test_defaults(self):
        config = resolve_config()

        assert isinstance(config, FrozenConfig)
        assert config.api_key is None
        assert config.model == "gemini-2.0-flash"
        assert config.use_real_api is False
        assert config.iteration_budget == 5
        assert config.quality_threshold == 70.0
        assert config.fallback_min_overlap == 0.3
        assert config.max_retries == 2

    @pytest.mark.unit
    def test_environment_values(self):
        with patch.dict(
            os.environ,
            {"DIRECTOR_MODEL": "env-model-pro", "DIRECTOR_ITERATION_BUDGET": "8"},
        ):
            config = resolve_config()

        assert config.model == "env-model-pro"
        assert config.iteration_budget == 8

    @pytest.mark.unit
    def test_gemini_api_key_is_a_fallback(self):
        with patch.dict(os.environ, {"GEMINI_API_KEY": "gemini-key"}):
            assert resolve_config().api_key == "gemini-key"

    @pytest.mark.unit
    def test_director_api_key_beats_gemini_api_key(self):
        with patch.dict(
            os.environ,
            {"GEMINI_API_KEY": "gemini-key", "DIRECTOR_API_KEY": "director-key"},
        ):
            assert resolve_config().api_key == "director-key"

    @pytest.mark.unit
    def test_programmatic_beats_environment(self):
        with patch.dict(
            os.environ,
            {
                "DIRECTOR_API_KEY": "env-key",
                "GEMINI_API_KEY": "gemini-key",
                "DIRECTOR_MODEL": "env-model",
            },
        ):
            config = resolve_config({"api_key": "explicit-key", "model": "explicit-model"})

        assert config.api_key == "explicit-key"
        assert config.model == "explicit-model"

    @pytest.mark.unit
    def test_unknown_and_none_values_are_ignored(self):
        config = resolve_config({"not_a_field": 1, "model": None})
        assert config.model == "gemini-2.0-flash"

    @pytest.mark.unit
    def test_blank_key_becomes_none(self):
        assert resolve_config({"api_key": "   "}).api_key is None

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "overrides",
        [
            {"iteration_budget": 0},
            {"temperature": 3.5},
            {"quality_threshold": 101},
            {"fallback_min_overlap": -0.1},
            {"model": ""},
            {"max_retries": -1},
        ],
    )
    def test_invalid_values_raise(self, overrides):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            resolve_config(overrides)

    @pytest.mark.unit
    def test_invalid_environment_value_raises(self):
        with (
            patch.dict(os.environ, {"DIRECTOR_ITERATION_BUDGET": "many"}),
            pytest.raises(ConfigurationError),
        ):
            resolve_config()

    @pytest.mark.unit
    def test_real_api_requires_a_key(self):
        with pytest.raises(ConfigurationError, match="api_key is required"):
            resolve_config({"use_real_api": True})

        config = resolve_config({"use_real_api": True, "api_key": "k"})
        assert config.use_real_api is True


class TestEnvFile:
    @pytest.mark.unit
    @pytest.mark.allow_dotenv
    def test_env_file_is_read_when_requested(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DIRECTOR_MODEL=dotenv-model\nDIRECTOR_QUALITY_THRESHOLD=85\n")

        config = resolve_config(use_env_file=env_file)

        assert config.model == "dotenv-model"
        assert config.quality_threshold == 85.0

    @pytest.mark.unit
    @pytest.mark.allow_dotenv
    def test_environment_beats_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DIRECTOR_MODEL=dotenv-model\n")

        with patch.dict(os.environ, {"DIRECTOR_MODEL": "env-model"}):
            config = resolve_config(use_env_file=env_file)

        assert config.model == "env-model"

    @pytest.mark.unit
    def test_env_file_is_not_read_by_default(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("DIRECTOR_MODEL=dotenv-model\n")
        monkeypatch.chdir(tmp_path)

        assert resolve_config().model == "gemini-2.0-flash"


class TestFrozenConfig:
    @pytest.mark.unit
    def test_is_immutable(self):
        config = resolve_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.model = "other"  # type: ignore[misc]

    @pytest.mark.unit
    def test_key_is_redacted(self):
        config = resolve_config({"api_key": "super-secret"})

        assert "super-secret" not in str(config)
        assert "super-secret" not in repr(config)
        assert config.to_dict()["api_key"] == "[REDACTED]"
        assert config.to_dict(redact=False)["api_key"] == "super-secret"

    @pytest.mark.unit
    def test_with_overrides(self):
        config = resolve_config()
        stricter = config.with_overrides(quality_threshold=90.0)

        assert stricter.quality_threshold == 90.0
        assert config.quality_threshold == 70.0
        with pytest.raises(ValueError, match="Unknown configuration fields"):
            config.with_overrides(colour="red")
