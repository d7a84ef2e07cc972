import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union

class ConfigurationError(Exception):
    """Exception raised for errors in the configuration."""
    pass

STALE_POLICIES = ("warn", "reconnect")

class Settings:
    """
    Application settings management.

    This class handles loading and providing access to application settings
    from a combination of environment variables, configuration files, and defaults.
    """
    # Default settings
    DEFAULTS = {
        # Application settings
        "APP_NAME": "BioLink Monitor",
        "APP_VERSION": "0.1.0",
        "DEBUG": False,

        # Logging settings
        "LOG_DIR": "logs",
        "LOG_LEVEL": "INFO",
        "LOG_FORMAT": "%(asctime)s - [%(endpoint)s] - %(name)s - %(levelname)s - %(message)s",
        "LOG_TO_CONSOLE": True,
        "LOG_TO_FILE": False,

        # Link settings
        "DEFAULT_ENDPOINT": "ws://192.168.4.1:81",
        "OPEN_TIMEOUT": 10.0,  # s
        "DEFAULT_BAUDRATE": 115200,
        "SERIAL_TIMEOUT": 1.0,  # s

        # Reconnection settings
        "MAX_RECONNECT_ATTEMPTS": 5,
        "RECONNECT_BASE_DELAY_MS": 1000,
        "RECONNECT_MAX_DELAY_MS": 30000,  # 0 disables the ceiling

        # Liveness settings
        "HEARTBEAT_INTERVAL_MS": 2000,
        "STALE_THRESHOLD_MS": 5000,
        "STALE_POLICY": "warn",

        # File paths
        "CONFIG_PROFILES_DIR": "config/profiles",
    }

    ENV_PREFIX = "BIOLINK_"

    def __init__(self, load_files: bool = True, load_env: bool = True):
        """Initialize settings with defaults, then override from files and environment."""
        self._settings = self.DEFAULTS.copy()
        if load_files:
            self._load_from_yaml()
        if load_env:
            self._load_from_env()

    def _load_from_yaml(self):
        """Load settings from YAML configuration files."""
        config_paths = [
            Path(__file__).parent / "default_config.yaml",  # Default config
            Path.home() / ".biolink" / "config.yaml",       # User config
            Path("biolink.yaml")                            # Project-level config
        ]

        for config_path in config_paths:
            if config_path.exists():
                try:
                    self.load_file(config_path)
                except ConfigurationError as e:
                    print(f"Warning: {e}")

    def _load_from_env(self):
        """Override settings from environment variables."""
        for key in self._settings.keys():
            env_value = os.environ.get(f"{self.ENV_PREFIX}{key}")
            if env_value is not None:
                # Try to convert to the same type as the default
                default_type = type(self._settings[key])
                if default_type == bool:
                    self._settings[key] = env_value.lower() in ('true', 'yes', '1', 'y')
                else:
                    try:
                        self._settings[key] = default_type(env_value)
                    except (ValueError, TypeError):
                        # If conversion fails, use string value
                        self._settings[key] = env_value

    def __getattr__(self, name: str) -> Any:
        """Allow attribute-style access to settings."""
        if name.startswith('_'):
            raise AttributeError(name)
        if name in self._settings:
            return self._settings[name]
        raise AttributeError(f"Setting '{name}' not found")

    def get(self, name: str, default: Any = None) -> Any:
        """Dictionary-style access to settings with default value."""
        return self._settings.get(name, default)

    def as_dict(self) -> Dict[str, Any]:
        """Return all settings as a dictionary."""
        return self._settings.copy()

    def update(self, settings_dict: Dict[str, Any]) -> None:
        """Update settings from a dictionary."""
        self._settings.update(settings_dict)

    def load_file(self, path: Union[str, Path]) -> None:
        """
        Merge settings from a YAML file.

        Args:
            path: Path of the YAML file

        Raises:
            ConfigurationError: If the file cannot be read or is not a mapping
        """
        path = Path(path)
        try:
            with open(path, 'r') as f:
                yaml_settings = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not load configuration from {path}: {e}") from e

        if yaml_settings is None:
            return
        if not isinstance(yaml_settings, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")
        self._settings.update(yaml_settings)

    def load_profile(self, profile_name: str) -> bool:
        """
        Load a specific configuration profile.

        Args:
            profile_name: Name of the profile to load

        Returns:
            bool: True if profile was loaded successfully
        """
        profile_path = Path(self._settings["CONFIG_PROFILES_DIR"]) / f"{profile_name}.yaml"

        if not profile_path.exists():
            return False

        try:
            self.load_file(profile_path)
            return True
        except ConfigurationError:
            return False

    def save_profile(self, profile_name: str, settings: Optional[Dict[str, Any]] = None) -> bool:
        """
        Save current or provided settings to a profile.

        Args:
            profile_name: Name to save the profile as
            settings: Specific settings to save, or None for all current settings

        Returns:
            bool: True if profile was saved successfully
        """
        profile_dir = Path(self._settings["CONFIG_PROFILES_DIR"])

        try:
            profile_dir.mkdir(exist_ok=True, parents=True)
            profile_path = profile_dir / f"{profile_name}.yaml"

            with open(profile_path, 'w') as f:
                yaml.safe_dump(settings or self._settings, f, default_flow_style=False)
            return True
        except (OSError, yaml.YAMLError):
            return False

    def link_options(self) -> Dict[str, Any]:
        """
        Return the validated connection options in the units the core expects.

        Raises:
            ConfigurationError: If a link setting is out of range
        """
        try:
            options = {
                "max_reconnect_attempts": int(self._settings["MAX_RECONNECT_ATTEMPTS"]),
                "reconnect_base_delay_ms": float(self._settings["RECONNECT_BASE_DELAY_MS"]),
                "reconnect_max_delay_ms": float(self._settings["RECONNECT_MAX_DELAY_MS"]) or None,
                "heartbeat_interval_ms": float(self._settings["HEARTBEAT_INTERVAL_MS"]),
                "stale_threshold_ms": float(self._settings["STALE_THRESHOLD_MS"]),
                "stale_policy": str(self._settings["STALE_POLICY"]).lower(),
            }
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid link setting: {e}") from e

        validate_link_options(**options)
        return options

def validate_link_options(max_reconnect_attempts: int, reconnect_base_delay_ms: float,
                          reconnect_max_delay_ms: Optional[float], heartbeat_interval_ms: float,
                          stale_threshold_ms: float, stale_policy: str) -> None:
    """Raise ConfigurationError if any connection option is out of range."""
    if max_reconnect_attempts < 0:
        raise ConfigurationError("MAX_RECONNECT_ATTEMPTS must be >= 0")
    if reconnect_base_delay_ms <= 0:
        raise ConfigurationError("RECONNECT_BASE_DELAY_MS must be > 0")
    if reconnect_max_delay_ms is not None and reconnect_max_delay_ms < reconnect_base_delay_ms:
        raise ConfigurationError("RECONNECT_MAX_DELAY_MS must be >= RECONNECT_BASE_DELAY_MS")
    if heartbeat_interval_ms <= 0:
        raise ConfigurationError("HEARTBEAT_INTERVAL_MS must be > 0")
    if stale_threshold_ms <= 0:
        raise ConfigurationError("STALE_THRESHOLD_MS must be > 0")
    if stale_policy not in STALE_POLICIES:
        raise ConfigurationError(f"STALE_POLICY must be one of {', '.join(STALE_POLICIES)}")

# Create a singleton instance
settings = Settings()
