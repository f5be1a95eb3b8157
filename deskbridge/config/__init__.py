"""
Configuration management for DeskBridge.
"""

from .config import (
    Config, load_config, get_config, set_config, DatabaseConfig, OpenAIConfig, JiraConfig,
    WhatsAppConfig, IntakeConfig, ChatConfig, WebhookForwardConfig, RetentionConfig,
    ConversationConfig, ServiceSeedConfig, AdminConfig, LoggingConfig, get_env_config,
    initialize_env_config, EnvironmentConfig
)

__all__ = [
    "Config", "load_config", "get_config", "set_config", "DatabaseConfig", "OpenAIConfig", "JiraConfig",
    "WhatsAppConfig", "IntakeConfig", "ChatConfig", "WebhookForwardConfig", "RetentionConfig",
    "ConversationConfig", "ServiceSeedConfig", "AdminConfig", "LoggingConfig", "get_env_config",
    "initialize_env_config", "EnvironmentConfig"
]
