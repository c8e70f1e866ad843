"""
Configuration management for the replication engine
"""
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import ConfigurationError
from .filesystem import SkipRules


@dataclass(frozen=True)
class ModelConfig:
    """Generation parameters handed to a backend; None means provider default"""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    include_reasoning: bool = False

    def merged(self, **overrides) -> 'ModelConfig':
        """Copy with every non-None override applied"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


@dataclass(frozen=True)
class ModelProfile:
    """A selectable model: which provider serves it and where its artifacts go"""
    key: str
    display_name: str
    provider_type: str
    folder_name: str
    model_name: Optional[str] = None  # None = provider's configured default
    log_name: Optional[str] = None
    defaults: ModelConfig = field(default_factory=ModelConfig)

    @property
    def output_folder(self) -> str:
        if self.provider_type == "openrouter":
            return f"openrouter/{self.folder_name}"
        return self.folder_name

    @property
    def log_label(self) -> str:
        if self.provider_type == "openrouter":
            return f"openrouter_{self.log_name or self.folder_name}"
        return self.provider_type


MODEL_PROFILES: Dict[str, ModelProfile] = {
    "local": ModelProfile(
        key="local",
        display_name="🏠 Local LLM (LM Studio)",
        provider_type="local",
        folder_name="local",
        defaults=ModelConfig(temperature=0.6, max_tokens=8000),
    ),
    "gemini": ModelProfile(
        key="gemini",
        display_name="🔮 Gemini 2.5 Flash (Google)",
        provider_type="gemini",
        folder_name="gemini",
        defaults=ModelConfig(temperature=0.1, max_tokens=8000),
    ),
    "deepseek": ModelProfile(
        key="deepseek",
        display_name="🧠 DeepSeek R1 (DeepSeek)",
        provider_type="deepseek",
        folder_name="deepseek",
        defaults=ModelConfig(temperature=0.1, max_tokens=4000, stream=False),
    ),
    "openrouter-llama": ModelProfile(
        key="openrouter-llama",
        display_name="🦙 Llama 3.1 70B Instruct (OpenRouter)",
        provider_type="openrouter",
        folder_name="llama-3.1-70b",
        model_name="meta-llama/llama-3.1-70b-instruct",
        log_name="llama-3.1-70b",
        defaults=ModelConfig(temperature=0.0, max_tokens=8000, top_p=0.9,
                             frequency_penalty=0.0, presence_penalty=0.0),
    ),
    "openrouter-phi4": ModelProfile(
        key="openrouter-phi4",
        display_name="🔬 Phi-4 Reasoning Plus (OpenRouter)",
        provider_type="openrouter",
        folder_name="phi-4-reasoning-plus",
        model_name="microsoft/phi-4-reasoning-plus",
        log_name="phi-4-reasoning-plus",
        defaults=ModelConfig(temperature=0.1, max_tokens=12000, top_p=0.95,
                             frequency_penalty=0.1, presence_penalty=0.1,
                             include_reasoning=False),
    ),
    "openai": ModelProfile(
        key="openai",
        display_name="🤖 GPT-4o mini (OpenAI)",
        provider_type="openai",
        folder_name="openai",
        defaults=ModelConfig(temperature=0.1, max_tokens=4000),
    ),
    "claude": ModelProfile(
        key="claude",
        display_name="🪶 Claude Sonnet (Anthropic)",
        provider_type="anthropic",
        folder_name="claude",
        defaults=ModelConfig(temperature=0.1, max_tokens=8000),
    ),
}


def get_profile(key: str) -> ModelProfile:
    try:
        return MODEL_PROFILES[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown model profile: {key}. Available: {list(MODEL_PROFILES.keys())}"
        ) from None


@dataclass(frozen=True)
class ProviderSettings:
    """Credentials, default model and endpoint for one provider"""
    api_key: Optional[str] = None
    model: str = ""
    endpoint: str = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)


def _default_providers() -> Dict[str, ProviderSettings]:
    return {
        "local": ProviderSettings(endpoint="http://127.0.0.1:1234"),
        "gemini": ProviderSettings(model="gemini-2.5-flash"),
        "deepseek": ProviderSettings(model="deepseek-reasoner", endpoint="https://api.deepseek.com/v1"),
        "openrouter": ProviderSettings(
            model="meta-llama/llama-3.1-70b-instruct",
            endpoint="https://openrouter.ai/api/v1/chat/completions",
        ),
        "openai": ProviderSettings(model="gpt-4o-mini"),
        "anthropic": ProviderSettings(model="claude-3-5-sonnet-latest"),
    }


# Provider types that need an API key before they can be called
KEYED_PROVIDERS = {
    "gemini": "GEMINI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


@dataclass
class ReplicationConfig:
    """Configuration class for the replication engine"""

    # Workspace
    home: Path = field(default_factory=Path.cwd)
    warning_size: int = 200 * 1024  # 200KB
    tree_depth: int = 3

    # Snapshot filtering
    skip_rules: SkipRules = field(default_factory=SkipRules)

    # Generation
    generation_timeout: Optional[float] = None  # seconds; None = wait indefinitely
    status_timeout: float = 5.0

    providers: Dict[str, ProviderSettings] = field(default_factory=_default_providers)

    @classmethod
    def from_environment(cls) -> 'ReplicationConfig':
        """Create configuration from environment variables"""
        defaults = _default_providers()

        host = _env_str('LMSTUDIO_HOST', '127.0.0.1')
        port = _env_int('LMSTUDIO_PORT', 1234)

        providers = {
            "local": ProviderSettings(endpoint=f"http://{host}:{port}"),
            "gemini": ProviderSettings(
                api_key=_env_str('GEMINI_API_KEY') or None,
                model=_env_str('GEMINI_MODEL', defaults["gemini"].model),
            ),
            "deepseek": ProviderSettings(
                api_key=_env_str('DEEPSEEK_API_KEY') or None,
                model=_env_str('DEEPSEEK_MODEL', defaults["deepseek"].model),
                endpoint=defaults["deepseek"].endpoint,
            ),
            "openrouter": ProviderSettings(
                api_key=_env_str('OPENROUTER_API_KEY') or None,
                model=defaults["openrouter"].model,
                endpoint=defaults["openrouter"].endpoint,
            ),
            "openai": ProviderSettings(
                api_key=_env_str('OPENAI_API_KEY') or None,
                model=_env_str('OPENAI_MODEL', defaults["openai"].model),
            ),
            "anthropic": ProviderSettings(
                api_key=_env_str('ANTHROPIC_API_KEY') or None,
                model=_env_str('ANTHROPIC_MODEL', defaults["anthropic"].model),
            ),
        }

        skip_rules = SkipRules()
        include = os.getenv('REPLICATION_INCLUDE_EXTENSIONS')
        if include is not None:
            skip_rules = skip_rules.with_include_extensions(include.split(','))

        timeout = _env_float('REPLICATION_GENERATION_TIMEOUT', 0.0)

        return cls(
            home=Path(_env_str('REPLICATION_HOME') or os.getcwd()),
            warning_size=_env_int('REPLICATION_WARNING_SIZE', 200 * 1024),
            tree_depth=_env_int('REPLICATION_TREE_DEPTH', 3),
            skip_rules=skip_rules,
            generation_timeout=timeout if timeout > 0 else None,
            providers=providers,
        )

    def provider_settings(self, provider_type: str) -> ProviderSettings:
        try:
            return self.providers[provider_type]
        except KeyError:
            raise ConfigurationError(f"No settings for provider type: {provider_type}") from None

    def missing_api_keys(self) -> List[str]:
        """Environment variable names of keyed providers without credentials"""
        return [
            env_name for provider, env_name in KEYED_PROVIDERS.items()
            if not self.providers.get(provider, ProviderSettings()).has_credentials
        ]

    def to_dict(self) -> Dict:
        """Convert configuration to dictionary, with API keys masked"""
        data = asdict(self)
        data['home'] = str(self.home)
        data['skip_rules'] = {k: sorted(v) for k, v in data['skip_rules'].items()}
        for settings in data['providers'].values():
            if settings['api_key']:
                settings['api_key'] = '***'
        return data

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        if not isinstance(self.warning_size, int) or self.warning_size <= 0:
            issues.append("warning_size must be a positive integer")

        if not isinstance(self.tree_depth, int) or self.tree_depth < 0:
            issues.append("tree_depth must be a non-negative integer")

        if self.generation_timeout is not None and self.generation_timeout <= 0:
            issues.append("generation_timeout must be positive when set")

        if self.status_timeout <= 0:
            issues.append("status_timeout must be positive")

        for profile in MODEL_PROFILES.values():
            if profile.provider_type not in self.providers:
                issues.append(f"profile '{profile.key}' uses unknown provider '{profile.provider_type}'")

        return issues


def _env_str(key: str, default: str = '') -> str:
    """Get string from environment"""
    return os.getenv(key, default)


def _env_int(key: str, default: int = 0) -> int:
    """Get integer from environment"""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_float(key: str, default: float = 0.0) -> float:
    """Get float from environment"""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


# Global configuration instance
_global_config: Optional[ReplicationConfig] = None


def get_config() -> ReplicationConfig:
    """Get global configuration instance"""
    global _global_config
    if _global_config is None:
        _global_config = ReplicationConfig.from_environment()
    return _global_config


def set_config(config: ReplicationConfig) -> None:
    """Set global configuration instance"""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to environment defaults"""
    global _global_config
    _global_config = None


def print_current_config() -> None:
    """Print current configuration for debugging"""
    config = get_config()
    print("🔧 Current Replication Configuration:")
    print(f"  Home: {config.home}")
    print(f"  Warning Size: {config.warning_size:,} bytes")
    print(f"  Tree Depth: {config.tree_depth}")
    print(f"  Include Extensions: {sorted(config.skip_rules.include_extensions) or 'any'}")
    timeout = f"{config.generation_timeout}s" if config.generation_timeout else "none"
    print(f"  Generation Timeout: {timeout}")
    print("  Providers:")
    for name, settings in config.providers.items():
        key_state = "🔑" if settings.has_credentials else "  "
        target = settings.endpoint or settings.model or "-"
        print(f"    {key_state} {name}: {target}")

    issues = config.validate()
    if issues:
        print("⚠️ Configuration Issues:")
        for issue in issues:
            print(f"  - {issue}")
