"""Tests for settings loading."""

from __future__ import annotations

import pytest

from scholar_harvest.core.config import HarvestSettings, load_settings
from scholar_harvest.core.exceptions import ConfigurationError


class TestDefaults:
    def test_tuned_constants(self):
        settings = HarvestSettings()
        assert settings.primary_batch_size == 40
        assert settings.primary_breaker_cooldown == 15.0
        assert settings.politeness_delay == 5.0
        assert settings.strategy_margin == 20
        assert settings.enrichment_cooldown == 30.0
        assert settings.resolver_max_requests == 10
        assert settings.resolver_max_depth == 2
        assert settings.processing_breaker_cooldown == 120.0
        assert settings.min_pdf_bytes == 10 * 1024
        assert settings.pdf_max_pages == 20
        assert settings.require_abstract is True
        assert settings.llm_provider == "none"

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            HarvestSettings(llm_provider="gpt")

    def test_minimums(self):
        with pytest.raises(ConfigurationError):
            HarvestSettings(resolver_max_requests=0)


class TestDictRoundTrip:
    def test_as_dict_lists_hosts(self):
        data = HarvestSettings().as_dict()
        assert data["pdf_html_allowed_hosts"] == ["semanticscholar.org", "arxiv.org"]

    def test_from_dict_coerces(self):
        settings = HarvestSettings.from_dict(
            {
                "primary_batch_size": "25",
                "politeness_delay": "1.5",
                "require_abstract": "false",
                "pdf_html_allowed_hosts": "arxiv.org, example.org",
            }
        )
        assert settings.primary_batch_size == 25
        assert settings.politeness_delay == 1.5
        assert settings.require_abstract is False
        assert settings.pdf_html_allowed_hosts == ("arxiv.org", "example.org")

    def test_from_dict_rebuilds_as_dict(self):
        original = HarvestSettings(primary_batch_size=12, llm_provider="ollama")
        assert HarvestSettings.from_dict(original.as_dict()) == original

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Unknown settings"):
            HarvestSettings.from_dict({"batch": 10})

    def test_uncoercible_value(self):
        with pytest.raises(ConfigurationError, match="primary_batch_size"):
            HarvestSettings.from_dict({"primary_batch_size": "many"})

    def test_bad_boolean(self):
        with pytest.raises(ConfigurationError):
            HarvestSettings.from_dict({"require_abstract": "maybe"})


class TestLoadSettings:
    def test_defaults_with_empty_env(self):
        assert load_settings(environ={}) == HarvestSettings()

    def test_yaml_then_env(self, temp_dir):
        path = temp_dir / "harvest.yaml"
        path.write_text("primary_batch_size: 30\npoliteness_delay: 2\n", encoding="utf-8")
        settings = load_settings(
            path,
            environ={"SCHOLAR_HARVEST_PRIMARY_BATCH_SIZE": "35"},
        )
        assert settings.primary_batch_size == 35
        assert settings.politeness_delay == 2.0

    def test_config_path_from_env(self, temp_dir):
        path = temp_dir / "harvest.yaml"
        path.write_text("max_scan_depth: 100\n", encoding="utf-8")
        settings = load_settings(environ={"SCHOLAR_HARVEST_CONFIG": str(path)})
        assert settings.max_scan_depth == 100

    def test_conventional_key_aliases(self):
        settings = load_settings(
            environ={
                "SCHOLAR_HARVEST_LLM_PROVIDER": "gemini",
                "GEMINI_API_KEY": "g-key",
                "SEMANTIC_SCHOLAR_API_KEY": "s2-key",
            }
        )
        assert settings.gemini_api_key == "g-key"
        assert settings.semantic_scholar_api_key == "s2-key"

    def test_gemini_without_key_is_fatal(self):
        with pytest.raises(ConfigurationError, match="API key"):
            load_settings(environ={"SCHOLAR_HARVEST_LLM_PROVIDER": "gemini"})

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(temp_dir / "absent.yaml", environ={})

    def test_non_mapping_yaml(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(path, environ={})

    def test_unrelated_env_ignored(self):
        settings = load_settings(environ={"SCHOLAR_HARVEST_NOT_A_SETTING": "1", "PATH": "/usr/bin"})
        assert settings == HarvestSettings()
