"""
Configuration module for querygate
"""
import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import ConfigurationError
from .utils import has_unresolved_placeholder, substitute_env_vars_deep

logger = logging.getLogger(__name__)

CONTEXT_BACKENDS = ("memory", "redis")


@dataclass
class TranslatorConfig:
    """Configuration for the natural language to SQL translator"""
    model: str = "gemini-2.0-flash"
    api_key: str = "${GEMINI_API_KEY}"
    temperature: float = 0.1
    top_p: float = 0.8
    top_k: int = 40
    timeout: float = 30
    introspect_schema: bool = False
    schema_description: Optional[str] = None

    def require_api_key(self) -> str:
        """Return the API key, failing if it was never resolved from the environment"""
        if not self.api_key or has_unresolved_placeholder(self.api_key):
            raise ConfigurationError(
                "Translator API key is not configured (set GEMINI_API_KEY or translator.api_key)"
            )
        return self.api_key


@dataclass
class DatabaseConfig:
    """Configuration for the MySQL query target"""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    name: str = ""
    pool_size: int = 10
    timeout: float = 30
    max_rows: int = 1000


@dataclass
class ContextConfig:
    """Configuration for the conversation context store"""
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    expiration_minutes: float = 60
    sweep_interval_minutes: float = 15
    max_message_history: int = 50
    memory_retrieval_limit: int = 5
    lock_timeout_seconds: float = 5
    lock_ttl_seconds: float = 10


@dataclass
class SecurityConfig:
    """Configuration for result redaction"""
    redact_sensitive_results: bool = True
    redaction_detectors: List[str] = field(
        default_factory=lambda: ["password", "api_key", "credit_card"]
    )
    phone_region: str = "US"


@dataclass
class ExportConfig:
    """Configuration for the SQL script exporter"""
    scripts_dir: str = "exports"
    default_script_name: str = "querygate_queries"


@dataclass
class GatewayConfig:
    """Complete querygate configuration"""
    translator: TranslatorConfig = field(default_factory=TranslatorConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    export: ExportConfig = field(default_factory=ExportConfig)


SECTIONS = {
    "translator": TranslatorConfig,
    "database": DatabaseConfig,
    "context": ContextConfig,
    "security": SecurityConfig,
    "export": ExportConfig,
}


class ConfigurationManager:
    """Manages configuration for querygate"""

    def __init__(self, config_file: Union[str, Path]):
        self.config_file = Path(config_file)
        self.config: Dict = {}  # Raw configuration after env substitution
        self.gateway_config: Optional[GatewayConfig] = None

    def load(self) -> GatewayConfig:
        """Load configuration from JSON file"""
        if not self.config_file.exists():
            error_msg = f"Configuration file not found: {self.config_file}"
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        try:
            with self.config_file.open('r') as f:
                config_data = json.load(f)

            if not isinstance(config_data, dict):
                raise ValueError("Top-level configuration must be a JSON object")

            self.config = substitute_env_vars_deep(config_data)
            self.gateway_config = self._create_config(self.config)
            logger.info(
                f"Loaded configuration from {self.config_file} "
                f"(context backend: {self.gateway_config.context.backend})"
            )

            return self.gateway_config

        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file: {e}")
            raise ConfigurationError(f"Invalid JSON: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Configuration error: {e}")
            raise ConfigurationError(str(e)) from e

    def _create_config(self, config_data: Dict[str, Any]) -> GatewayConfig:
        """Build the section dataclasses, rejecting unknown keys"""
        sections = {
            name: self._create_section(name, section_cls, config_data.get(name, {}))
            for name, section_cls in SECTIONS.items()
        }
        gateway_config = GatewayConfig(**sections)

        if gateway_config.context.backend not in CONTEXT_BACKENDS:
            raise ValueError(
                f"Unknown context backend '{gateway_config.context.backend}', "
                f"expected one of {', '.join(CONTEXT_BACKENDS)}"
            )
        if gateway_config.context.max_message_history < 1:
            raise ValueError("context.max_message_history must be at least 1")

        return gateway_config

    @staticmethod
    def _create_section(name: str, section_cls: type, section_data: Any):
        if not isinstance(section_data, dict):
            raise TypeError(f"Section '{name}' must be a JSON object")

        known = {f.name for f in fields(section_cls)}
        if unknown := set(section_data) - known:
            raise KeyError(f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}")

        return section_cls(**section_data)
