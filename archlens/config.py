"""
Configuration management for ArchLens.
"""

import copy
import os
import yaml
import toml
import json
from pathlib import Path
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field

from .constants import (
    CONFIG_FILES,
    DEFAULT_CONFIG,
    DEFAULT_EXCLUDED_DIRS,
    DEFAULT_INCLUDE_EXTENSIONS,
    DEFAULT_EXCLUDE_EXTENSIONS,
)
from .utils import logger, merge_dicts, add_file_handler


class ScannerConfig(BaseModel):
    """File scanning configuration."""
    max_file_size: int = Field(default=1024 * 1024)
    large_file_threshold: int = Field(default=100 * 1024)
    excluded_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRS))
    include_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE_EXTENSIONS))
    exclude_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_EXTENSIONS))
    follow_symlinks: bool = Field(default=False)


class PolicyConfig(BaseModel):
    """Thresholds and weights used by the detectors, in one table."""
    # Per-function and per-file rules
    function_complexity_medium: int = Field(default=10)
    function_complexity_high: int = Field(default=15)
    function_complexity_critical: int = Field(default=20)
    max_parameters: int = Field(default=5)
    component_complexity_limit: int = Field(default=15)
    inline_style_limit: int = Field(default=3)
    large_file_bytes: int = Field(default=100 * 1024)
    duplicate_line_min_length: int = Field(default=10)

    # Pattern detection
    god_object_min_chars: int = Field(default=5000)
    god_object_min_loc: int = Field(default=500)
    observer_min_matches: int = Field(default=3)
    duplicate_block_lines: int = Field(default=10)
    duplicate_block_min_chars: int = Field(default=100)

    # Optimization heuristics
    code_split_min_loc: int = Field(default=300)
    refactor_max_maintainability: float = Field(default=50.0)
    api_consolidation_min_count: int = Field(default=10)

    # Project metrics
    gzip_ratio: float = Field(default=0.3)
    bundle_window_lines: int = Field(default=6)
    bundle_window_min_chars: int = Field(default=100)
    bundle_warning_bytes: int = Field(default=1024 * 1024)
    duplication_warning_percent: float = Field(default=10.0)
    debt_ratio_warning: float = Field(default=20.0)
    debt_baseline_per_file: float = Field(default=100.0)
    debt_minutes_per_complexity: int = Field(default=15)
    debt_minutes_by_issue: Dict[str, int] = Field(default_factory=lambda: {
        'complexity': 60,
        'duplication': 30,
        'smell': 20,
        'anti-pattern': 45,
        'performance': 40,
        'maintainability': 25,
    })
    debt_minutes_default: int = Field(default=20)
    debt_loc_threshold: int = Field(default=500)
    debt_loc_step: int = Field(default=50)
    debt_minutes_per_loc_step: int = Field(default=10)

    # Health score blend
    health_weight_quality: float = Field(default=0.4)
    health_weight_security: float = Field(default=0.3)
    health_weight_performance: float = Field(default=0.2)
    health_weight_architecture: float = Field(default=0.1)

    # Feedback loop and scorer
    retraining_threshold: int = Field(default=100)
    retraining_batch_limit: int = Field(default=1000)
    batch_interval: float = Field(default=60.0)
    batch_size: int = Field(default=10)
    drift_interval: float = Field(default=3600.0)
    drift_min_accuracy: float = Field(default=70.0)
    drift_min_f1: float = Field(default=0.65)
    systematic_min_count: int = Field(default=5)
    systematic_window_days: int = Field(default=7)
    systematic_max_rating: float = Field(default=3.0)
    confidence_penalty: int = Field(default=10)
    confidence_reward: int = Field(default=5)
    scorer_timeout: float = Field(default=60.0)
    respawn_backoff: float = Field(default=5.0)
    feature_width: int = Field(default=128)


class AnalysisConfig(BaseModel):
    """Analysis run configuration."""
    max_workers: Optional[int] = None
    db_path: str = Field(default=".archlens/archlens.db")
    report_dir: str = Field(default=".")
    ml_model_version: str = Field(default="v1.0.0")
    model_path: str = Field(default=".archlens/scorer.npz")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")
    file: Optional[str] = None


class ArchLensConfig(BaseModel):
    """Main configuration model."""
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Config:
    """Configuration manager for ArchLens."""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.config_data = self._load_config()
        self.config = ArchLensConfig(**self.config_data)
        self._apply_environment_overrides()
        self._configure_logging()

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in current directory or parent directories."""
        current_dir = Path.cwd()

        for parent in [current_dir] + list(current_dir.parents):
            for config_name in CONFIG_FILES:
                config_path = parent / config_name
                if config_path.exists():
                    logger.debug(f"Found config file: {config_path}")
                    return config_path

        return None

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file."""
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_file:
            config_path = Path(self.config_file)
        else:
            config_path = self._find_config_file()

        if not config_path or not config_path.exists():
            logger.debug("No config file found, using defaults")
            return config

        try:
            if config_path.suffix in ['.yaml', '.yml']:
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            elif config_path.suffix == '.toml':
                with open(config_path, 'r') as f:
                    file_config = toml.load(f)
            elif config_path.suffix == '.json':
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
            else:
                logger.warning(f"Unknown config file format: {config_path}")
                return config

            config = merge_dicts(config, file_config)
            logger.info(f"Loaded config from: {config_path}")

        except Exception as e:
            logger.error(f"Error loading config file: {e}")

        return config

    def _apply_environment_overrides(self):
        """Apply environment variable overrides to configuration."""
        log_level = os.getenv('ARCHLENS_LOG_LEVEL')
        if log_level:
            self.config.logging.level = log_level

        db_path = os.getenv('ARCHLENS_DB_PATH')
        if db_path:
            self.config.analysis.db_path = db_path

        timeout = os.getenv('ARCHLENS_SCORER_TIMEOUT')
        if timeout:
            try:
                self.config.policy.scorer_timeout = float(timeout)
            except ValueError:
                logger.warning(f"Ignoring invalid ARCHLENS_SCORER_TIMEOUT: {timeout}")

    def _configure_logging(self):
        logger.setLevel(self.config.logging.level.upper())
        if self.config.logging.file:
            add_file_handler(self.config.logging.file, self.config.logging.level)

    @property
    def scanner(self) -> ScannerConfig:
        return self.config.scanner

    @property
    def policy(self) -> PolicyConfig:
        return self.config.policy

    @property
    def analysis(self) -> AnalysisConfig:
        return self.config.analysis

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split('.')
        value = self.config_data

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """Set configuration value by dot-notation key."""
        keys = key.split('.')
        config_dict = self.config_data

        for k in keys[:-1]:
            if k not in config_dict or config_dict[k] is None:
                config_dict[k] = {}
            config_dict = config_dict[k]

        config_dict[keys[-1]] = value

        # Recreate config object
        self.config = ArchLensConfig(**self.config_data)

    def save(self, path: Optional[str] = None):
        """Save configuration to file."""
        save_path = Path(path) if path else Path(self.config_file or '.archlens.yaml')

        if save_path.suffix == '.toml':
            with open(save_path, 'w') as f:
                toml.dump(self.config_data, f)
        elif save_path.suffix == '.json':
            with open(save_path, 'w') as f:
                json.dump(self.config_data, f, indent=2)
        else:
            save_path = save_path.with_suffix('.yaml')
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)

        logger.info(f"Configuration saved to: {save_path}")

    def validate(self) -> bool:
        """Validate configuration."""
        try:
            ArchLensConfig(**self.config_data)
            return True
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            return False
