"""
Configuration management for DeskBridge.
"""

import os
import yaml
import re
from datetime import datetime
from typing import Dict, List, Optional, Any
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv


class DatabaseConfig(BaseModel):
    """Database configuration."""
    url: str = Field(default="sqlite:///./deskbridge.db")
    echo: bool = Field(default=False)
    pool_recycle: int = Field(default=3600)  # seconds, server databases only
    connect_timeout: int = Field(default=30)  # seconds, PostgreSQL only


class OpenAIConfig(BaseModel):
    """OpenAI Assistants configuration."""
    api_key: str
    base_url: Optional[str] = None
    fallback_model: str = Field(default="gpt-3.5-turbo", description="Model used by the direct-completion fallback")
    max_tokens: int = Field(default=800)
    temperature: float = Field(default=0.7)
    run_poll_interval: float = Field(default=1.0, description="Seconds between run status polls")
    run_timeout: float = Field(default=30.0, description="Seconds before a run is considered timed out")
    history_window: int = Field(default=10, description="Recent turns sent to the fallback completion")
    history_size: int = Field(default=20, description="Turns kept in memory per thread")


class JiraConfig(BaseModel):
    """Jira Cloud configuration."""
    base_url: str = Field(default="")
    email: Optional[str] = None
    api_token: Optional[str] = None
    widget_email: Optional[str] = Field(default=None, description="Identity used to post customer messages")
    widget_api_token: Optional[str] = None
    bot_account_ids: List[str] = Field(default_factory=list, description="Account ids always treated as AI authors")
    active_project: Optional[str] = Field(default=None, description="Only handle issues of this project, if set")
    default_service_id: str = Field(default="landing-page")
    issue_type: str = Field(default="Task")
    timeout: float = Field(default=15.0)


class WhatsAppConfig(BaseModel):
    """WhatsApp Cloud API configuration."""
    enabled: bool = Field(default=False)
    verify_token: Optional[str] = None
    access_token: Optional[str] = None
    phone_number_id: Optional[str] = None
    graph_url: str = Field(default="https://graph.facebook.com")
    api_version: str = Field(default="v18.0")
    default_user_id: Optional[str] = Field(default=None, description="Tenant owning inbound WhatsApp conversations")
    default_service_id: Optional[str] = None
    timeout: float = Field(default=10.0)


class IntakeConfig(BaseModel):
    """Jira comment intake limits."""
    throttle_seconds: float = Field(default=10.0)
    dedup_capacity: int = Field(default=100)
    dedup_retain: int = Field(default=50)
    recency_warning_seconds: float = Field(default=5.0)
    conversation_log_size: int = Field(default=20)


class ChatConfig(BaseModel):
    """Direct and widget chat configuration."""
    direct_service_id: str = Field(default="landing-page")
    widget_service_id: str = Field(default="landing-page")


class WebhookForwardConfig(BaseModel):
    """Outbound webhook forwarding configuration."""
    timeout: float = Field(default=10.0)
    user_agent: str = Field(default="DeskBridge-Webhook/1.0")


class RetentionConfig(BaseModel):
    """Thread retention configuration."""
    thread_days: int = Field(default=30)
    sweep_on_startup: bool = Field(default=False)


class ConversationConfig(BaseModel):
    """Conversation store configuration."""
    store_messages: bool = Field(default=False, description="Append every turn to the local message log")


class ServiceSeedConfig(BaseModel):
    """Global service seeded into the registry at startup."""
    service_id: str
    service_name: str
    assistant_id: Optional[str] = None
    assistant_name: Optional[str] = None
    project_key: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    is_active: bool = Field(default=True)


class AdminConfig(BaseModel):
    """Operator API configuration."""
    enabled: bool = Field(default=False)
    username: Optional[str] = None
    password: Optional[str] = None


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")


class Config(BaseModel):
    """Main configuration model."""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    openai: OpenAIConfig
    jira: JiraConfig = Field(default_factory=JiraConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)
    intake: IntakeConfig = Field(default_factory=IntakeConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    webhooks: WebhookForwardConfig = Field(default_factory=WebhookForwardConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    conversations: ConversationConfig = Field(default_factory=ConversationConfig)
    services: List[ServiceSeedConfig] = Field(default_factory=list)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def substitute_variables(value: Any, env_config: Optional['EnvironmentConfig'] = None) -> Any:
    """
    Substitute variables in configuration values.

    Variable formats:
    - ${variable_name} - standard variable substitution
    - ${variable_name|default_value} - variable with default fallback

    Priority order:
    1. Environment variables (highest priority)
    2. .env file variables
    3. Built-in variables
    4. Default value (if specified with | syntax)
    5. Empty string if not found

    Args:
        value: Configuration value that may contain variables
        env_config: Environment configuration instance

    Returns:
        Value with variables substituted
    """
    if not isinstance(value, str):
        return value

    variable_pattern = r'\$\{([^}]*)\}'

    def replace_variable(match):
        variable_content = match.group(1)

        if not variable_content.strip():
            return ""

        if '|' in variable_content:
            variable_name, default_value = variable_content.split('|', 1)
            variable_name = variable_name.strip()
            default_value = default_value.strip()
        else:
            variable_name = variable_content
            default_value = None

        env_value = os.getenv(variable_name)
        if env_value is not None:
            return env_value

        if env_config:
            env_value = env_config.get(variable_name)
            if env_value is not None:
                return env_value

        builtin_value = _get_builtin_variable(variable_name)
        if builtin_value is not None:
            return builtin_value

        if default_value is not None:
            return default_value

        return ""

    result = re.sub(variable_pattern, replace_variable, value)

    # Empty results fall back to pydantic defaults
    if result == "None" or result == "":
        return None

    return result


def _get_builtin_variable(variable_name: str) -> Optional[str]:
    """Get built-in variable value, or None if not found."""
    builtin_variables = {
        'today': datetime.now().strftime('%Y-%m-%d')
    }

    return builtin_variables.get(variable_name)


def _substitute_config_values(config_data: Any, env_config: Optional['EnvironmentConfig'] = None) -> Any:
    """Recursively substitute variables in configuration data, omitting keys that resolve to None."""
    if isinstance(config_data, dict):
        result = {}
        for key, value in config_data.items():
            substituted_value = _substitute_config_values(value, env_config)
            if substituted_value is not None:
                result[key] = substituted_value
        return result
    elif isinstance(config_data, list):
        return [_substitute_config_values(item, env_config) for item in config_data]
    elif isinstance(config_data, str):
        return substitute_variables(config_data, env_config)
    else:
        return config_data


def load_config(config_path: str, env_config: Optional['EnvironmentConfig'] = None) -> Config:
    """Load configuration from YAML file with variable substitution."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        config_data = yaml.safe_load(f) or {}

    if env_config is None:
        env_config = get_env_config()

    config_data = _substitute_config_values(config_data, env_config)

    config = Config(**config_data)

    service_ids = [service.service_id for service in config.services]
    duplicates = sorted({service_id for service_id in service_ids if service_ids.count(service_id) > 1})
    if duplicates:
        raise ValueError(f"Duplicate service ids in configuration: {duplicates}")

    return config


# Global config variable
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration."""
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config first.")
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration."""
    global _config
    _config = config


class EnvironmentConfig:
    """Environment configuration backed by process env and an optional .env file."""

    def __init__(self, env_file_path: Optional[str] = None):
        self.env_file_path = env_file_path or ".env"
        self._load_env_file()

    def _load_env_file(self) -> None:
        """Load environment variables from .env file if it exists."""
        env_path = Path(self.env_file_path)
        if env_path.exists():
            load_dotenv(env_path)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get an environment variable, .env values included, or the default."""
        value = os.getenv(key)
        if value is not None:
            return value
        return default

    def get_config_path(self) -> str:
        """Get configuration file path."""
        return self.get("DESKBRIDGE_CONFIG", default="config.yaml")


# Global environment config instance
_env_config: Optional[EnvironmentConfig] = None


def get_env_config() -> EnvironmentConfig:
    """Get the global environment configuration."""
    global _env_config
    if _env_config is None:
        _env_config = EnvironmentConfig()
    return _env_config


def initialize_env_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Initialize environment configuration with optional .env file path."""
    global _env_config
    _env_config = EnvironmentConfig(env_file_path)
    return _env_config
