# -*- coding: utf-8 -*-
"""Tests for PlannerConfig and its singleton accessors."""

from portgraph.config import PlannerConfig, get_config, reset_config, set_config


class TestPlannerConfig:
    """Defaults and environment overrides."""

    def test_defaults(self):
        config = PlannerConfig()
        assert config.default_triplet == "x64-linux"
        assert config.host_triplet == "x64-linux"
        assert config.max_graph_nodes == 10000
        assert config.allow_hash_port_version is False
        assert config.always_emit_port_version is False
        assert config.enable_audit is True
        assert config.log_level == "INFO"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PORTGRAPH_DEFAULT_TRIPLET", "arm64-osx")
        monkeypatch.setenv("PORTGRAPH_HOST_TRIPLET", "x64-windows")
        monkeypatch.setenv("PORTGRAPH_MAX_GRAPH_NODES", "50")
        monkeypatch.setenv("PORTGRAPH_ALLOW_HASH_PORT_VERSION", "yes")
        monkeypatch.setenv("PORTGRAPH_ENABLE_AUDIT", "false")
        monkeypatch.setenv("PORTGRAPH_LOG_LEVEL", "DEBUG")

        config = PlannerConfig.from_env()

        assert config.default_triplet == "arm64-osx"
        assert config.host_triplet == "x64-windows"
        assert config.max_graph_nodes == 50
        assert config.allow_hash_port_version is True
        assert config.always_emit_port_version is False
        assert config.enable_audit is False
        assert config.log_level == "DEBUG"

    def test_invalid_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("PORTGRAPH_MAX_GRAPH_NODES", "lots")
        assert PlannerConfig.from_env().max_graph_nodes == 10000


class TestSingleton:
    """get_config / set_config / reset_config."""

    def test_set_and_get(self):
        config = PlannerConfig(default_triplet="x86-windows")
        set_config(config)
        assert get_config() is config

    def test_reset_reloads_from_env(self, monkeypatch):
        monkeypatch.setenv("PORTGRAPH_HOST_TRIPLET", "arm64-linux")
        reset_config()

        first = get_config()
        assert first.host_triplet == "arm64-linux"
        assert get_config() is first
