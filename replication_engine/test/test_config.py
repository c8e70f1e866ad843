"""
Tests for configuration management
"""
from pathlib import Path

import pytest

from replication_engine.config import (
    MODEL_PROFILES, ModelConfig, ReplicationConfig, get_config, get_profile, reset_config, set_config
)
from replication_engine.exceptions import ConfigurationError

ENV_VARS = [
    'REPLICATION_HOME', 'REPLICATION_WARNING_SIZE', 'REPLICATION_TREE_DEPTH',
    'REPLICATION_INCLUDE_EXTENSIONS', 'REPLICATION_GENERATION_TIMEOUT',
    'LMSTUDIO_HOST', 'LMSTUDIO_PORT', 'GEMINI_API_KEY', 'GEMINI_MODEL',
    'DEEPSEEK_API_KEY', 'DEEPSEEK_MODEL', 'OPENROUTER_API_KEY',
    'OPENAI_API_KEY', 'OPENAI_MODEL', 'ANTHROPIC_API_KEY', 'ANTHROPIC_MODEL',
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestModelConfig:
    """Test ModelConfig overrides"""

    def test_merged_skips_none(self):
        """Test None overrides keep the current value"""
        config = ModelConfig(temperature=0.1, max_tokens=4000)

        merged = config.merged(temperature=None, max_tokens=100)

        assert merged.temperature == 0.1
        assert merged.max_tokens == 100

    def test_merged_keeps_zero(self):
        """Test 0 is a real override"""
        assert ModelConfig(temperature=0.6).merged(temperature=0.0).temperature == 0.0


class TestModelProfiles:
    """Test the profile registry"""

    def test_output_folders(self):
        """Test output folder and log label conventions"""
        phi4 = MODEL_PROFILES["openrouter-phi4"]

        assert phi4.output_folder == "openrouter/phi-4-reasoning-plus"
        assert phi4.log_label == "openrouter_phi-4-reasoning-plus"
        assert MODEL_PROFILES["gemini"].output_folder == "gemini"
        assert MODEL_PROFILES["gemini"].log_label == "gemini"

    def test_profile_defaults(self):
        """Test per-profile generation defaults"""
        assert MODEL_PROFILES["deepseek"].defaults.max_tokens == 4000
        assert MODEL_PROFILES["openrouter-llama"].defaults.temperature == 0.0
        assert MODEL_PROFILES["openrouter-llama"].defaults.top_p == 0.9

    def test_unknown_profile(self):
        """Test unknown profile keys"""
        with pytest.raises(ConfigurationError, match="Unknown model profile"):
            get_profile("gpt-9")


class TestReplicationConfig:
    """Test ReplicationConfig"""

    def test_from_environment_defaults(self, clean_env, tmp_path):
        """Test defaults with an empty environment"""
        clean_env.chdir(tmp_path)

        config = ReplicationConfig.from_environment()

        assert config.home == tmp_path
        assert config.warning_size == 200 * 1024
        assert config.tree_depth == 3
        assert config.generation_timeout is None
        assert config.providers["local"].endpoint == "http://127.0.0.1:1234"
        assert config.providers["deepseek"].model == "deepseek-reasoner"
        assert ".js" in config.skip_rules.include_extensions

    def test_from_environment_overrides(self, clean_env, tmp_path):
        """Test environment variables are honored"""
        clean_env.setenv('REPLICATION_HOME', str(tmp_path))
        clean_env.setenv('REPLICATION_WARNING_SIZE', '1024')
        clean_env.setenv('REPLICATION_GENERATION_TIMEOUT', '30')
        clean_env.setenv('REPLICATION_INCLUDE_EXTENSIONS', 'py, .MD')
        clean_env.setenv('LMSTUDIO_HOST', 'gpu-box')
        clean_env.setenv('LMSTUDIO_PORT', '8080')
        clean_env.setenv('GEMINI_API_KEY', 'g-key')
        clean_env.setenv('GEMINI_MODEL', 'gemini-2.5-pro')

        config = ReplicationConfig.from_environment()

        assert config.home == Path(tmp_path)
        assert config.warning_size == 1024
        assert config.generation_timeout == 30.0
        assert config.skip_rules.include_extensions == frozenset({".py", ".md"})
        assert config.providers["local"].endpoint == "http://gpu-box:8080"
        assert config.providers["gemini"].api_key == "g-key"
        assert config.providers["gemini"].model == "gemini-2.5-pro"

    def test_empty_include_list_disables_filter(self, clean_env):
        """Test an empty REPLICATION_INCLUDE_EXTENSIONS keeps every extension"""
        clean_env.setenv('REPLICATION_INCLUDE_EXTENSIONS', '')

        config = ReplicationConfig.from_environment()

        assert config.skip_rules.include_extensions == frozenset()

    def test_invalid_numbers_fall_back(self, clean_env):
        """Test malformed numbers use the defaults"""
        clean_env.setenv('REPLICATION_TREE_DEPTH', 'deep')
        clean_env.setenv('REPLICATION_GENERATION_TIMEOUT', 'soon')

        config = ReplicationConfig.from_environment()

        assert config.tree_depth == 3
        assert config.generation_timeout is None

    def test_missing_api_keys(self, clean_env):
        """Test keyed providers without credentials are reported"""
        clean_env.setenv('OPENROUTER_API_KEY', 'or')

        missing = ReplicationConfig.from_environment().missing_api_keys()

        assert "OPENROUTER_API_KEY" not in missing
        assert "GEMINI_API_KEY" in missing
        assert "DEEPSEEK_API_KEY" in missing

    def test_to_dict_masks_keys(self, clean_env):
        """Test API keys never appear in dumps"""
        clean_env.setenv('ANTHROPIC_API_KEY', 'secret')

        data = ReplicationConfig.from_environment().to_dict()

        assert data["providers"]["anthropic"]["api_key"] == "***"
        assert data["providers"]["gemini"]["api_key"] is None
        assert "secret" not in str(data)

    def test_validate(self):
        """Test validation issues"""
        assert ReplicationConfig().validate() == []

        issues = ReplicationConfig(warning_size=0, tree_depth=-1, generation_timeout=-5).validate()

        assert len(issues) == 3

    def test_validate_unknown_provider(self):
        """Test profiles must resolve to configured providers"""
        config = ReplicationConfig()
        del config.providers["anthropic"]

        assert any("claude" in issue for issue in config.validate())

    def test_provider_settings_unknown(self):
        """Test unknown provider lookups"""
        with pytest.raises(ConfigurationError):
            ReplicationConfig().provider_settings("nope")


class TestGlobalConfig:
    """Test the global configuration instance"""

    def test_set_and_reset(self, tmp_path):
        """Test set_config / reset_config"""
        custom = ReplicationConfig(home=tmp_path)

        set_config(custom)
        assert get_config() is custom

        reset_config()
        assert get_config() is not custom
