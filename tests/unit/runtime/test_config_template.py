"""Unit tests for config_template module."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from src.userhub.runtime.config.config_data import ConfigData, RedisConfig
from src.userhub.runtime.config.config_template import (
    load_config_or_default,
    load_templated_yaml,
    substitute_env_vars,
)

SAMPLE_YAML = """
config:
  app:
    environment: ${APP_ENVIRONMENT:-development}
    port: ${PORT:-8000}
  redis:
    url: ${REDIS_URL:-redis://localhost:6379/0}
  store:
    backend: ${STORE_BACKEND:-redis}
    key_prefix: ${STORE_PREFIX:?store prefix is required}
    users_table: people
  users:
    route_prefix: /v2/users
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content)
    return path


class TestSubstituteEnvVars:
    """Test cases for substitute_env_vars function."""

    def test_substitute_simple_env_var(self):
        with patch.dict(os.environ, {"TEST_VAR": "test_value"}):
            assert substitute_env_vars("${TEST_VAR}") == "test_value"

    def test_substitute_env_var_in_text(self):
        with patch.dict(os.environ, {"HOST": "localhost", "PORT": "8080"}):
            result = substitute_env_vars("redis://${HOST}:${PORT}/0")
            assert result == "redis://localhost:8080/0"

    def test_substitute_env_var_with_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert substitute_env_vars("${MISSING_VAR:-memory}") == "memory"

    def test_default_ignored_when_set(self):
        with patch.dict(os.environ, {"STORE_BACKEND": "redis"}):
            assert substitute_env_vars("${STORE_BACKEND:-memory}") == "redis"

    def test_substitute_required_env_var_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(
                ValueError, match="Required environment variable MISSING_VAR not set"
            ):
                substitute_env_vars("${MISSING_VAR}")

    def test_substitute_env_var_with_custom_error(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="MISSING_VAR: needed for redis"):
                substitute_env_vars("${MISSING_VAR:?needed for redis}")

    def test_substitute_no_env_vars(self):
        text = "plain text with $MALFORMED and ${UNCLOSED variables"
        assert substitute_env_vars(text) == text


class TestLoadTemplatedYaml:
    """Test cases for load_templated_yaml function."""

    def test_load_success(self, tmp_path):
        env_vars = {"APP_ENVIRONMENT": "test", "PORT": "9000", "STORE_PREFIX": "t:"}
        with patch.dict(os.environ, env_vars):
            config = load_templated_yaml(_write(tmp_path, SAMPLE_YAML))

        assert config.app.environment == "test"
        assert config.app.port == 9000
        assert config.store.backend == "redis"
        assert config.store.key_prefix == "t:"
        assert config.store.users_table == "people"
        assert config.store.email_lookup_table == "users_email_lookup"
        assert config.users.route_prefix == "/v2/users"

    def test_environment_prefixed_override(self, tmp_path):
        env_vars = {
            "APP_ENVIRONMENT": "test",
            "TEST_STORE_BACKEND": "memory",
            "STORE_PREFIX": "t:",
        }
        with patch.dict(os.environ, env_vars):
            config = load_templated_yaml(_write(tmp_path, SAMPLE_YAML))

        assert config.store.backend == "memory"

    def test_missing_required_env_var(self, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="store prefix is required"):
                load_templated_yaml(_write(tmp_path, SAMPLE_YAML))

    def test_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            load_templated_yaml(Path("/path/that/does/not/exist.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path, "config:\n  app:\n    invalid: [unclosed bracket\n")

        with pytest.raises(ValueError, match="Error parsing YAML"):
            load_templated_yaml(path)

    def test_empty_file(self, tmp_path):
        with pytest.raises(ValueError, match="Failed to parse YAML"):
            load_templated_yaml(_write(tmp_path, ""))

    def test_missing_config_section_uses_defaults(self, tmp_path):
        config = load_templated_yaml(_write(tmp_path, "other:\n  key: value\n"))

        assert config.store.users_table == "users"
        assert config.users.route_prefix == "/api/users"

    def test_invalid_backend(self, tmp_path):
        path = _write(tmp_path, "config:\n  store:\n    backend: dynamo\n")

        with pytest.raises(ValueError, match="Invalid configuration"):
            load_templated_yaml(path)

    def test_load_config_or_default_without_file(self, tmp_path):
        config = load_config_or_default(tmp_path / "absent.yaml")

        assert config == ConfigData()

    def test_repository_config_file_loads(self):
        config = load_config_or_default(Path("config.yaml"))

        assert config.store.email_lookup_table == "users_email_lookup"


class TestRedisConfig:
    def test_password_is_injected(self):
        config = RedisConfig(url="redis://localhost:6379/0", password="secret")

        assert config.connection_string == "redis://:secret@localhost:6379/0"
        assert "secret" not in config.sanitized_connection_string

    def test_url_with_credentials_kept(self):
        config = RedisConfig(url="redis://:pw@localhost:6379/0", password="other")

        assert config.connection_string == "redis://:pw@localhost:6379/0"
