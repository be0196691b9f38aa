"""Tests for configuration loading -- file sections and env overrides."""

import json
import os
from unittest.mock import patch


class TestDefaults:
    def test_query_defaults(self):
        from georag.common.config import QueryConfig
        cfg = QueryConfig()
        assert cfg.confidence_threshold == 0.5
        assert cfg.enable_caching is True
        assert cfg.max_cache_size == 100
        assert cfg.cache_ttl_seconds == 300.0
        assert cfg.default_spatial_radius == 50.0

    def test_grid_defaults(self):
        from georag.common.config import GeoRagConfig
        cfg = GeoRagConfig()
        assert cfg.spatial.grid_size == 0.01
        assert cfg.vector_store.grid_size == 0.1
        assert cfg.vector_store.spatial_weight == 0.3
        assert cfg.embedding.mode == "hash"

    def test_llm_key_follows_provider(self):
        from georag.common.config import LLMConfig
        cfg = LLMConfig(anthropic_api_key="sk-ant", openai_api_key="sk-oai")
        assert cfg.api_key == "sk-ant"
        cfg.provider = "openai"
        assert cfg.api_key == "sk-oai"
        assert cfg.model == "gpt-4o-mini"


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        from georag.common.config import load_config

        with patch("georag.common.config.CONFIG_PATH", tmp_path / "absent.json"), \
             patch.dict(os.environ, {}, clear=True):
            cfg = load_config()

        assert cfg.query.confidence_threshold == 0.5
        assert cfg.llm.api_key == ""

    def test_file_sections(self, tmp_path):
        from georag.common.config import load_config
        config_data = {
            "embedding": {"mode": "femb", "dimensions": 768},
            "spatial": {"grid_size": 0.05},
            "vector_store": {"spatial_weight": 0.6, "max_results": 3},
            "query": {"confidence_threshold": 0.7, "enable_caching": False},
        }
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(config_data))

        with patch("georag.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True):
            cfg = load_config()

        assert cfg.embedding.mode == "femb"
        assert cfg.embedding.dimensions == 768
        assert cfg.spatial.grid_size == 0.05
        assert cfg.vector_store.spatial_weight == 0.6
        assert cfg.vector_store.max_results == 3
        assert cfg.vector_store.grid_size == 0.1
        assert cfg.query.confidence_threshold == 0.7
        assert cfg.query.enable_caching is False

    def test_env_var_overrides_file(self, tmp_path):
        from georag.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"query": {"confidence_threshold": 0.7}}))

        env = {
            "GEORAG_CONFIDENCE_THRESHOLD": "0.4",
            "GEORAG_SPATIAL_WEIGHT": "0.5",
            "GEORAG_CACHE_TTL": "60",
            "OPENAI_API_KEY": "sk-env",
            "GEORAG_LLM_PROVIDER": "openai",
        }
        with patch("georag.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=True):
            cfg = load_config()

        assert cfg.query.confidence_threshold == 0.4
        assert cfg.query.cache_ttl_seconds == 60.0
        assert cfg.vector_store.spatial_weight == 0.5
        assert cfg.llm.provider == "openai"
        assert cfg.llm.api_key == "sk-env"

    def test_malformed_file_logs_warning(self, tmp_path, caplog):
        import logging
        from georag.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with patch("georag.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True), \
             caplog.at_level(logging.WARNING, logger="georag.common.config"):
            cfg = load_config()

        assert "Failed to load config file" in caplog.text
        assert cfg.query.confidence_threshold == 0.5
