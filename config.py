"""
Configuration Management for the RIPS Processor
===============================================

This module provides centralized configuration management with support for:
- Environment variables
- Configuration files (JSON)
- Programmatic defaults
- Runtime overrides

Configuration Priority (highest to lowest):
1. Environment variables
2. Config file values
3. Programmatic defaults
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class Config:
    """Central configuration manager for RIPS processing"""

    # Default configuration values
    DEFAULTS = {
        # Input file paths (None = not configured, dependent feature is skipped)
        "cups_dictionary_path": None,
        "asiste_xlsx_path": None,
        "especialidades_xlsx_path": None,
        # Output file names (relative to output folder)
        "output_xlsx_name": "Reporte_RIPS.xlsx",
        "af_summary_xlsx_name": "Resumen_AF.xlsx",
        "validation_report_txt_name": "rips_validation_report.txt",
        # Input discovery
        "rips_file_extensions": [".txt", ".rips", ".csv"],
        "file_encoding": "utf-8",
        # Heuristic parser thresholds (files without ARCHIVO-RIPS markers)
        "fallback_ct_min_columns": 4,
        "fallback_af_min_columns": 17,
        "fallback_us_min_columns": 11,
        # Logging configuration
        "log_level": "INFO",
        "log_file": None,  # None = console only
        "simple_log_format": False,
    }

    BOOLEAN_KEYS = ("simple_log_format",)
    INTEGER_KEYS = (
        "fallback_ct_min_columns",
        "fallback_af_min_columns",
        "fallback_us_min_columns",
    )

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to a JSON configuration file.
                        If None, looks for 'rips_config.json' in the user config
                        directory, the current directory, then the home directory.
        """
        self._config: Dict[str, Any] = self.DEFAULTS.copy()
        self._config_file_path: Optional[Path] = None

        if config_file:
            self.load_config_file(config_file)
        else:
            self._auto_discover_config()

        self._load_from_environment()

    def _auto_discover_config(self):
        """Auto-discover config file in standard locations"""
        search_paths = [
            self._get_default_config_path(),
            Path.cwd() / "rips_config.json",
            Path.home() / "rips_config.json",
        ]

        for path in search_paths:
            if path.exists():
                logger.info("Found config file: %s", path)
                self.load_config_file(str(path))
                break

    def load_config_file(self, config_file: str):
        """
        Load configuration from JSON file.

        Args:
            config_file: Path to JSON config file
        """
        config_path = Path(config_file)

        if not config_path.exists():
            logger.warning("Config file not found: %s", config_file)
            return

        try:
            with open(config_path, encoding="utf-8") as f:
                file_config = json.load(f)

            self._config.update(file_config)
            self._config_file_path = config_path
            logger.info("Loaded configuration from: %s", config_path)

        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in config file %s: %s", config_file, e)
        except OSError as e:
            logger.error("Error loading config file %s: %s", config_file, e)

    def _load_from_environment(self):
        """Load configuration from environment variables"""
        env_mapping = {
            "RIPS_CUPS_DICTIONARY_PATH": "cups_dictionary_path",
            "RIPS_ASISTE_XLSX_PATH": "asiste_xlsx_path",
            "RIPS_ESPECIALIDADES_XLSX_PATH": "especialidades_xlsx_path",
            "RIPS_OUTPUT_XLSX_NAME": "output_xlsx_name",
            "RIPS_AF_SUMMARY_XLSX_NAME": "af_summary_xlsx_name",
            "RIPS_VALIDATION_REPORT_TXT": "validation_report_txt_name",
            "RIPS_FILE_ENCODING": "file_encoding",
            "RIPS_FALLBACK_CT_MIN_COLUMNS": "fallback_ct_min_columns",
            "RIPS_FALLBACK_AF_MIN_COLUMNS": "fallback_af_min_columns",
            "RIPS_FALLBACK_US_MIN_COLUMNS": "fallback_us_min_columns",
            "RIPS_LOG_LEVEL": "log_level",
            "RIPS_LOG_FILE": "log_file",
            "RIPS_SIMPLE_LOG_FORMAT": "simple_log_format",
        }

        for env_var, config_key in env_mapping.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            if config_key in self.BOOLEAN_KEYS:
                value = value.lower() in ("true", "1", "yes", "on")
            elif config_key in self.INTEGER_KEYS:
                try:
                    value = int(value)
                except ValueError:
                    logger.warning("Ignoring non-integer %s=%r", env_var, value)
                    continue

            self._config[config_key] = value
            logger.debug("Config from env %s: %s = %s", env_var, config_key, value)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value at runtime"""
        self._config[key] = value

    def __getitem__(self, key: str) -> Any:
        return self._config[key]

    def __setitem__(self, key: str, value: Any):
        self._config[key] = value

    @property
    def cups_dictionary_path(self) -> Optional[str]:
        """Path to the CUPS code dictionary workbook (None if not configured)"""
        return self._config["cups_dictionary_path"]

    @property
    def asiste_xlsx_path(self) -> Optional[str]:
        """Path to the Asiste-EspeB template (None if not configured)"""
        return self._config["asiste_xlsx_path"]

    @property
    def especialidades_xlsx_path(self) -> Optional[str]:
        """Path to the Especialidades template (None if not configured)"""
        return self._config["especialidades_xlsx_path"]

    @property
    def fallback_thresholds(self) -> Dict[str, int]:
        """Column-count thresholds for the heuristic segment parser"""
        return {
            "ct_min_columns": self._config["fallback_ct_min_columns"],
            "af_min_columns": self._config["fallback_af_min_columns"],
            "us_min_columns": self._config["fallback_us_min_columns"],
        }

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dictionary"""
        return self._config.copy()

    def save(self, file_path: Optional[str] = None):
        """
        Save current configuration to JSON file.

        Args:
            file_path: Path to save config. If None, uses loaded config file path
                      or defaults to user-writable config location.
        """
        if file_path is None:
            file_path = self._config_file_path or self._get_default_config_path()
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(file_path, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2)
            logger.info("Saved configuration to: %s", file_path)
        except OSError as e:
            logger.error("Error saving config to %s: %s", file_path, e)

    def _get_default_config_path(self) -> Path:
        """
        Get default config file path in user-writable location.

        Returns:
            Path to config file in AppData (Windows) or home directory (Unix)
        """
        appdata = os.getenv("APPDATA")
        if appdata:
            return Path(appdata) / "RIPS-Processor" / "rips_config.json"
        return Path.home() / ".rips-processor" / "rips_config.json"

    def __repr__(self) -> str:
        return f"Config({len(self._config)} settings loaded)"


# Global configuration instance
_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None, reload: bool = False) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        config_file: Path to config file (only used on first call or if reload=True)
        reload: If True, reload configuration from file

    Returns:
        Config instance
    """
    global _config

    if _config is None or reload:
        _config = Config(config_file)

    return _config


def reset_config():
    """Reset global configuration to None (useful for testing)"""
    global _config
    _config = None
