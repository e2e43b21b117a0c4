"""
Configuration loader with YAML + environment variable support.

Loads and validates configuration files from the config/ directory.
Supports:
- Loading from YAML files
- ${VAR} / ${VAR:default} placeholders
- Environment variable overrides
- Pydantic validation
- Caching and reload
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dotenv import load_dotenv
import logging

from .settings import AppConfig


logger = logging.getLogger(__name__)

# Repository root (src/edge_engine/config/loader.py -> repo)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# Optional section files merged over config.yaml, keyed by AppConfig section
SECTION_FILES = {
    "breakout": "breakout",
    "risk_review": "risk_review",
    "position": "position",
}


class ConfigLoader:
    """
    Configuration loader with YAML + environment variable support.

    Features:
    - Loads config.yaml plus optional per-section files
    - Overrides with environment variables
    - Validates using Pydantic models
    - Caches loaded configurations
    """

    def __init__(self, config_dir: Optional[Path] = None, env_file: Optional[Path] = None):
        """
        Initialize configuration loader.

        Args:
            config_dir: Configuration directory (defaults to PROJECT_ROOT/config)
            env_file: .env file to load (defaults to PROJECT_ROOT/.env)
        """
        self.config_dir = Path(config_dir) if config_dir else (PROJECT_ROOT / "config")
        self._cache: Dict[str, Any] = {}

        load_dotenv(env_file or (PROJECT_ROOT / ".env"))
        logger.info(f"ConfigLoader initialized with config_dir: {self.config_dir}")

    def load_yaml(self, config_name: str) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Args:
            config_name: Name of the config file (without .yaml extension)

        Returns:
            Dictionary containing configuration data

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        config_path = self.config_dir / f"{config_name}.yaml"

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.debug(f"Loading YAML config from: {config_path}")

        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}

        return self._replace_env_vars(config)

    def _replace_env_vars(self, config: Any) -> Any:
        """
        Recursively replace environment variable placeholders in config.

        Placeholders format: ${ENV_VAR_NAME} or ${ENV_VAR_NAME:default_value}
        """
        if isinstance(config, dict):
            return {k: self._replace_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._replace_env_vars(item) for item in config]
        elif isinstance(config, str):
            if config.startswith("${") and config.endswith("}"):
                env_expr = config[2:-1]

                if ":" in env_expr:
                    var_name, default_value = env_expr.split(":", 1)
                    return os.getenv(var_name.strip(), default_value.strip())

                var_name = env_expr.strip()
                value = os.getenv(var_name)
                if value is None:
                    logger.warning(f"Environment variable {var_name} not set, using empty string")
                    return ""
                return value

        return config

    def load_app_config(self, use_cache: bool = True) -> AppConfig:
        """
        Load complete application configuration.

        Args:
            use_cache: Use cached config if available

        Returns:
            Validated AppConfig instance
        """
        cache_key = "app_config"

        if use_cache and cache_key in self._cache:
            logger.debug("Returning cached app config")
            return self._cache[cache_key]

        logger.info("Loading complete application configuration")

        config_data: Dict[str, Any] = {}

        try:
            config_data.update(self.load_yaml("config"))
        except FileNotFoundError:
            logger.warning("config.yaml not found, using defaults")

        for section, file_name in SECTION_FILES.items():
            try:
                section_data = self.load_yaml(file_name)
            except FileNotFoundError:
                continue
            merged = dict(config_data.get(section) or {})
            merged.update(section_data)
            config_data[section] = merged

        config_data = self._apply_env_overrides(config_data)

        try:
            app_config = AppConfig(**config_data)
            logger.info("Application configuration loaded and validated successfully")
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

        if use_cache:
            self._cache[cache_key] = app_config

        return app_config

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides to configuration.

        Supported: LOG_LEVEL, RISK_REVIEW_BASE_URL, RISK_REVIEW_MODEL,
        EXCHANGE_TYPE, DISABLED_DIRECTION, CYCLE_DEADLINE_SECONDS.
        """
        for section in ("system", "risk_review", "position", "gate", "pipeline"):
            if not isinstance(config.get(section), dict):
                config[section] = {}

        if env_val := os.getenv("LOG_LEVEL"):
            config["system"]["log_level"] = env_val.upper()

        if env_val := os.getenv("RISK_REVIEW_BASE_URL"):
            config["risk_review"]["base_url"] = env_val

        if env_val := os.getenv("RISK_REVIEW_MODEL"):
            config["risk_review"]["model"] = env_val

        if env_val := os.getenv("EXCHANGE_TYPE"):
            config["position"]["exchange_type"] = env_val.lower()

        if (env_val := os.getenv("DISABLED_DIRECTION")) is not None:
            env_val = env_val.strip().lower()
            config["gate"]["disabled_direction"] = env_val if env_val in ("long", "short") else None

        if env_val := os.getenv("CYCLE_DEADLINE_SECONDS"):
            config["pipeline"]["cycle_deadline_seconds"] = float(env_val)

        return config

    def reload(self) -> AppConfig:
        """Reload configuration from disk."""
        logger.info("Reloading configuration from disk")
        self._cache.clear()
        return self.load_app_config(use_cache=False)

    def clear_cache(self):
        """Clear the configuration cache."""
        self._cache.clear()
