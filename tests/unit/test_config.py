"""
Tests for configuration system.
"""

import os

import pytest
from pydantic import ValidationError

from resilient_agent.config import (
    Settings,
    ResolutionSettings,
    MemorySettings,
    HealingSettings,
    BehaviorSettings,
    ConfigLoader,
    load_config,
    get_settings,
    reset_settings,
    DEFAULT_BASE_SCORES,
)
from resilient_agent.exceptions import ConfigurationError


class TestSettings:
    """Test the Settings classes."""
    
    def test_default_settings(self):
        settings = Settings()
        
        assert settings.resolution.confident_threshold == 0.7
        assert settings.resolution.acceptable_floor == 0.35
        assert settings.memory.dimension == 256
        assert settings.memory.k == 5
        assert settings.memory.index == "lsh"
        assert settings.healing.enabled is True
        assert settings.behavior.seed is None
    
    def test_base_scores_follow_locator_rank(self):
        scores = ResolutionSettings().base_scores
        ordered = [scores[k] for k in ("identifier", "attribute", "role", "text", "structural", "fuzzy")]
        
        assert ordered == sorted(ordered, reverse=True)
    
    def test_partial_base_scores_are_filled_in(self):
        settings = ResolutionSettings(base_scores={"fuzzy": 0.5})
        
        assert settings.base_scores["fuzzy"] == 0.5
        assert settings.base_scores["identifier"] == DEFAULT_BASE_SCORES["identifier"]
    
    def test_unknown_base_score_kind_rejected(self):
        with pytest.raises(ValidationError):
            ResolutionSettings(base_scores={"xpath": 0.5})
    
    def test_floor_must_not_exceed_threshold(self):
        with pytest.raises(ValidationError):
            ResolutionSettings(confident_threshold=0.5, acceptable_floor=0.6)
    
    def test_dimension_must_be_multiple_of_16(self):
        assert MemorySettings(dimension=128).dimension == 128
        with pytest.raises(ValidationError):
            MemorySettings(dimension=100)
    
    def test_behavior_ranges_validated(self):
        with pytest.raises(ValidationError):
            BehaviorSettings(dwell_ms=(300.0, 100.0))
        with pytest.raises(ValidationError):
            BehaviorSettings(thinking_probability=1.5)
    
    def test_healing_threshold_bounds(self):
        with pytest.raises(ValidationError):
            HealingSettings(similarity_threshold=1.2)
    
    def test_merge_with_overrides(self):
        settings = Settings()
        merged = settings.merge_with({
            "memory": {"k": 12},
            "healing": {"enabled": False},
        })
        
        assert merged.memory.k == 12
        assert merged.healing.enabled is False
        assert merged.memory.dimension == 256
        assert settings.memory.k == 5


class TestEnvironment:
    """Environment variable loading."""
    
    def test_nested_env_vars(self, monkeypatch):
        monkeypatch.setenv("RESILIENT_AGENT__MEMORY__K", "9")
        monkeypatch.setenv("RESILIENT_AGENT__BEHAVIOR__SEED", "42")
        
        settings = Settings()
        
        assert settings.memory.k == 9
        assert settings.behavior.seed == 42
    
    def test_get_settings_is_singleton(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first
        
        monkeypatch.setenv("RESILIENT_AGENT__MEMORY__K", "3")
        reset_settings()
        
        assert get_settings().memory.k == 3


class TestConfigLoader:
    """YAML and .env loading."""
    
    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "agent.yaml"
        path.write_text(
            "resolution:\n"
            "  budget_ms: 1500\n"
            "memory:\n"
            "  index: brute_force\n"
        )
        
        settings = load_config(config_path=path)
        
        assert settings.resolution.budget_ms == 1500
        assert settings.memory.index == "brute_force"
    
    def test_overrides_beat_file(self, tmp_path):
        path = tmp_path / "agent.yaml"
        path.write_text("memory:\n  k: 4\n")
        
        settings = load_config(config_path=path, memory={"k": 8})
        
        assert settings.memory.k == 8
    
    def test_empty_yaml_is_defaults(self, tmp_path):
        path = tmp_path / "agent.yaml"
        path.write_text("")
        
        assert load_config(config_path=path).memory.k == 5
    
    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigLoader(tmp_path / "missing.yaml").load()
    
    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "agent.yaml"
        path.write_text("- just\n- a list\n")
        
        with pytest.raises(ConfigurationError):
            load_config(config_path=path)
    
    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("RESILIENT_AGENT__HEALING__MAX_CANDIDATES=7\n")
        try:
            settings = load_config(env_file=env_file)
            assert settings.healing.max_candidates == 7
        finally:
            os.environ.pop("RESILIENT_AGENT__HEALING__MAX_CANDIDATES", None)
    
    def test_environment_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "agent.yaml"
        path.write_text("memory:\n  k: 4\n  index: brute_force\n")
        monkeypatch.setenv("RESILIENT_AGENT__MEMORY__K", "9")
        
        settings = load_config(config_path=path)
        
        assert settings.memory.k == 9
        assert settings.memory.index == "brute_force"
    
    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "agent.yaml"
        path.write_text("healing:\n  enabled: false\n")
        monkeypatch.setenv("RESILIENT_AGENT_CONFIG", str(path))
        
        loader = ConfigLoader()
        settings = loader.load()
        
        assert loader.source == path
        assert settings.healing.enabled is False
