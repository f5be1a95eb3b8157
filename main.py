"""
Main entry point for DeskBridge.
"""

import os
import uvicorn
import logging
from pathlib import Path

from deskbridge.config import load_config, get_env_config
from deskbridge.api.main import create_app

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_level: str = "INFO"):
    """Configure root and deskbridge loggers with the specified level."""
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL
    }

    numeric_level = level_map.get(log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        force=True
    )

    logging.getLogger().setLevel(numeric_level)

    # Loggers created before this call keep their own level unless reset here
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if logger_name == "deskbridge" or logger_name.startswith("deskbridge."):
            existing = logging.getLogger(logger_name)
            existing.setLevel(numeric_level)
            existing.propagate = True

    base_logger = logging.getLogger("deskbridge")
    base_logger.setLevel(numeric_level)
    base_logger.propagate = True


logger = logging.getLogger(__name__)


def main():
    """Main application entry point."""
    try:
        env_config = get_env_config()
        config_path = Path(env_config.get_config_path())

        if not config_path.exists():
            logger.error(f"Configuration file not found: {config_path}")
            logger.info("Copy config.example.yaml to config.yaml or set DESKBRIDGE_CONFIG")
            return

        logger.info(f"Loading configuration from {config_path}")
        config = load_config(str(config_path))

        configure_logging(config.logging.level)
        logger.info(f"Logging configured with level: {config.logging.level}")

        app = create_app(config)

        # Loggers imported during app creation need the level too
        configure_logging(config.logging.level)

        logger.info("Starting DeskBridge server...")
        uvicorn_log_config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "formatter": "default",
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": config.logging.level,
                "handlers": ["default"],
            },
        }

        uvicorn.run(
            app,
            host=os.getenv("DESKBRIDGE_HOST", "0.0.0.0"),
            port=int(os.getenv("DESKBRIDGE_PORT", "8000")),
            log_config=uvicorn_log_config
        )

    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise


if __name__ == "__main__":
    main()
