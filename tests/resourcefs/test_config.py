"""
Tests for configuration loading.
"""

import json

import pytest

from resourcefs.config import (
    DEFAULT_EXCLUDED_PREFIXES,
    ResourceFSConfig,
    expand_env_vars,
    load_config,
)
from resourcefs.exceptions import ConfigError, UnavailableError


@pytest.fixture
def clean_env(monkeypatch):
    """Remove resourcefs variables from the environment."""
    for name in ("RESOURCEFS_CONFIG", "RESOURCEFS_API_URL", "RESOURCEFS_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestEnvExpansion:
    def test_expand_set_variable(self, monkeypatch):
        monkeypatch.setenv("CONTOSO_TOKEN", "secret")
        assert expand_env_vars("Bearer ${CONTOSO_TOKEN}") == "Bearer secret"

    def test_expand_default(self, monkeypatch):
        monkeypatch.delenv("MISSING_VAR", raising=False)
        assert expand_env_vars("${MISSING_VAR:-fallback}") == "fallback"
        assert expand_env_vars("${MISSING_VAR}") == ""


class TestResourceFSConfig:
    """Tests for ResourceFSConfig."""

    def test_defaults(self):
        config = ResourceFSConfig()

        assert config.environments == {}
        assert config.excluded_prefixes == DEFAULT_EXCLUDED_PREFIXES
        assert config.publish_on_save is True
        assert config.create_operation_log() is None

    def test_from_dict(self):
        config = ResourceFSConfig.from_dict(
            {
                "environments": {
                    "contoso": {
                        "api_url": "https://contoso.crm.dynamics.com/",
                        "token": "abc",
                    }
                },
                "default_host": "contoso.crm.dynamics.com",
                "filter_extensions": ["JS", ".html"],
                "page_size": "250",
                "publish_on_save": False,
            }
        )

        # Keyed by host regardless of the key used in the file
        assert list(config.environments) == ["contoso.crm.dynamics.com"]
        assert config.filter_extensions == [".js", ".html"]
        assert config.page_size == 250
        assert config.publish_on_save is False

    def test_from_dict_missing_api_url(self):
        with pytest.raises(ConfigError):
            ResourceFSConfig.from_dict({"environments": {"x": {"token": "abc"}}})

    def test_from_dict_bad_value(self):
        with pytest.raises(ConfigError):
            ResourceFSConfig.from_dict({"timeout": "soon"})

    def test_save_and_load(self, tmp_path):
        config = ResourceFSConfig(operation_log=str(tmp_path / "ops.jsonl"))
        host = config.add_environment("https://contoso.crm.dynamics.com", "abc")
        path = tmp_path / "nested" / "config.json"

        config.save(path)
        loaded = ResourceFSConfig.from_file(path)

        assert host == "contoso.crm.dynamics.com"
        assert loaded.default_host == host
        assert loaded.environments[host].token == "abc"
        assert loaded.create_operation_log() is not None

    def test_from_file_expands_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONTOSO_TOKEN", "from-env")
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "environments": {
                        "contoso": {
                            "api_url": "https://contoso.crm.dynamics.com",
                            "token": "${CONTOSO_TOKEN}",
                        }
                    }
                }
            )
        )

        config = ResourceFSConfig.from_file(path)

        assert config.environments["contoso.crm.dynamics.com"].token == "from-env"

    def test_from_file_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigError):
            ResourceFSConfig.from_file(path)

    @pytest.mark.asyncio
    async def test_credential_provider(self):
        config = ResourceFSConfig()
        config.add_environment("https://contoso.crm.dynamics.com", "abc")
        config.add_environment("https://fabrikam.crm.dynamics.com")

        provider = config.credential_provider()

        connection = await provider.get_connection("contoso.crm.dynamics.com")
        assert connection.token == "abc"
        with pytest.raises(UnavailableError):
            await provider.get_connection("fabrikam.crm.dynamics.com")
        with pytest.raises(UnavailableError):
            await provider.get_connection("unknown.crm.dynamics.com")


class TestLoadConfig:
    """Tests for load_config()."""

    def test_missing_file_gives_defaults(self, tmp_path, clean_env):
        config = load_config(tmp_path / "missing.json")

        assert config.environments == {}
        assert config.default_host is None

    def test_config_env_variable(self, tmp_path, clean_env):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"filter_extensions": [".css"]}))
        clean_env.setenv("RESOURCEFS_CONFIG", str(path))

        assert load_config().filter_extensions == [".css"]

    def test_environment_override(self, tmp_path, clean_env):
        path = tmp_path / "config.json"
        ResourceFSConfig(
            default_host="contoso.crm.dynamics.com",
        ).save(path)
        clean_env.setenv("RESOURCEFS_API_URL", "https://fabrikam.crm.dynamics.com")
        clean_env.setenv("RESOURCEFS_TOKEN", "env-token")

        config = load_config(path)

        assert config.default_host == "fabrikam.crm.dynamics.com"
        assert config.environments["fabrikam.crm.dynamics.com"].token == "env-token"
