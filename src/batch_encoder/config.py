"""
Configuration management for Batch Encoder.
Handles loading from YAML files and CLI argument overrides.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import yaml


class Config:
    """Configuration manager for the batch encoder."""

    DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config.yaml"

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to custom config file, or None for default
        """
        self.config_path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self):
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r') as f:
            self._config = yaml.safe_load(f) or {}

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path (e.g., 'encoder.transcode_timeout')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any):
        """
        Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path (e.g., 'paths.root_directory')
            value: Value to set
        """
        keys = key_path.split('.')
        config = self._config

        for key in keys[:-1]:
            if key not in config:
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def update_from_args(self, **kwargs):
        """
        Update configuration from CLI arguments.
        Only non-None values will override config.

        Args:
            **kwargs: Keyword arguments from CLI
        """
        arg_mapping = {
            'root_directory': 'paths.root_directory',
            'output_root_directory': 'paths.output_root_directory',
            'ffmpeg_path': 'encoder.ffmpeg_path',
            'transcode_timeout': 'encoder.transcode_timeout',
            'split_timeout': 'encoder.split_timeout',
            'log_level': 'logging.level',
        }

        for arg_name, config_path in arg_mapping.items():
            if arg_name in kwargs and kwargs[arg_name] is not None:
                self.set(config_path, kwargs[arg_name])

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate configuration.

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        if not self.get('paths.root_directory'):
            errors.append("Root directory is required (paths.root_directory)")

        profiles = self.get('profiles')
        if not isinstance(profiles, dict) or not profiles:
            errors.append("At least one encoding profile is required (profiles)")
        else:
            for key, profile in profiles.items():
                if not isinstance(profile, dict):
                    errors.append(f"Profile '{key}' must be a mapping")
                    continue
                if not profile.get('extension'):
                    errors.append(f"Profile '{key}' is missing an extension")
                if not isinstance(profile.get('ffmpeg_args'), list):
                    errors.append(f"Profile '{key}' must define ffmpeg_args as a list")

        extensions = self.get('files.audio_extensions')
        if not isinstance(extensions, list) or not extensions:
            errors.append("Audio extensions list is required (files.audio_extensions)")
        else:
            bad = [ext for ext in extensions if not str(ext).startswith('.')]
            if bad:
                errors.append(
                    f"Audio extensions must start with '.': {', '.join(map(str, bad))}"
                )

        for key in ('encoder.transcode_timeout', 'encoder.split_timeout'):
            timeout = self.get(key, 600)
            if not isinstance(timeout, (int, float)) or timeout <= 0:
                errors.append(f"Invalid timeout for {key}: {timeout}. Must be positive")

        log_level = self.get('logging.level', 'INFO')
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if log_level not in valid_levels:
            errors.append(
                f"Invalid log level: {log_level}. "
                f"Must be one of {valid_levels}"
            )

        return (len(errors) == 0, errors)

    def get_profiles(self) -> Dict[str, Dict[str, Any]]:
        """Return the profile table (key -> profile mapping)."""
        return self.get('profiles') or {}

    def get_profile(self, profile_key: str) -> Optional[Dict[str, Any]]:
        """
        Get a single encoding profile.

        Args:
            profile_key: Profile key (e.g., 'mp3', 'opus')

        Returns:
            Profile dictionary or None if not found
        """
        return self.get_profiles().get(profile_key)

    def get_root_directory(self) -> Path:
        """Return the source root directory."""
        return Path(self.get('paths.root_directory'))

    def get_audio_extensions(self) -> List[str]:
        """Return recognized audio extensions, lower-cased (CUE included)."""
        return [ext.lower() for ext in self.get('files.audio_extensions', [])]

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return self._config.copy()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(path={self.config_path})"
