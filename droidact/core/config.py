"""Configuration loader with layered priority.

Priority order (highest to lowest):
1. Environment variables (DROIDACT_DEVICE, DROIDACT_ACTIONS, DROIDACT_VERBOSE, ...)
2. Project config (.droidact.yaml in current directory)
3. Global config (~/.droidact.yaml)
4. Default values
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Config file paths
GLOBAL_CONFIG = Path.home() / ".droidact.yaml"
PROJECT_CONFIG = Path.cwd() / ".droidact.yaml"

# Environment variable -> config key. Later names are legacy fallbacks.
ENV_KEYS = {
    "device": ("DROIDACT_DEVICE", "ADB_SERIAL"),
    "adb_path": ("DROIDACT_ADB_PATH", "ADB_PATH"),
    "actions_path": ("DROIDACT_ACTIONS", "ACTIONS_PATH"),
    "artifacts_dir": ("DROIDACT_ARTIFACTS_DIR", "ARTIFACTS_DIR"),
}


def _parse_bool(value: Any, default: bool = False) -> bool:
    """Parse boolean value from various formats.

    Handles:
    - None -> default
    - bool -> as-is
    - str -> "true", "1", "yes", "on" are True
    - other -> bool(value)
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on")
    return bool(value)


def parse_duration(value: Any, default: float) -> float:
    """Parse duration value from string (e.g., '5s', '500ms') or number.

    Args:
        value: Duration as string ('5s', '500ms', '1.5s') or number (seconds)
        default: Default value if parsing fails

    Returns:
        Duration in seconds as float
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        value = value.strip().lower()
        if value.endswith("ms"):
            try:
                return float(value[:-2]) / 1000
            except ValueError:
                return default
        if value.endswith("s"):
            try:
                return float(value[:-1])
            except ValueError:
                return default
        # Try parsing as plain number
        try:
            return float(value)
        except ValueError:
            return default
    return default


@dataclass
class TimeoutConfig:
    """Timeouts in seconds."""

    action: float = 30.0
    device_ready: float = 120.0
    wait_for_device: float = 30.0
    command: float = 30.0
    ui_dump: float = 10.0
    screenshot: float = 10.0


@dataclass
class PollingConfig:
    """Polling intervals in seconds."""

    poll_interval: float = 0.5  # Between snapshot polls in waits
    boot_poll_interval: float = 1.0  # Between sys.boot_completed checks
    snapshot_ttl: float = 0.3  # Lifetime of a cached UI dump
    recovery_pause: float = 0.25  # Pause after dismissing an interstitial


@dataclass
class RetryConfig:
    """Default delays for control steps."""

    delay: float = 0.5  # Between retry attempts
    repeat_delay: float = 0.0  # Between repeat iterations


@dataclass
class DroidactConfig:
    """Main configuration for droidact."""

    device: str = "emulator-5554"
    adb_path: str = "adb"
    actions_path: Path = field(default_factory=lambda: Path("config/actions.yaml"))
    artifacts_dir: Path = field(default_factory=lambda: Path("data/artifacts"))
    verbose: bool = False

    # Nested configs with defaults
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    @classmethod
    def load(cls) -> DroidactConfig:
        """Load configuration with layered priority.

        Returns:
            Merged DroidactConfig instance.
        """
        config_dict: dict[str, Any] = {}

        # Layer 1: Global config (~/.droidact.yaml)
        if GLOBAL_CONFIG.exists():
            global_data = cls._load_yaml(GLOBAL_CONFIG)
            config_dict = cls._deep_merge(config_dict, global_data)

        # Layer 2: Project config (.droidact.yaml)
        if PROJECT_CONFIG.exists():
            project_data = cls._load_yaml(PROJECT_CONFIG)
            config_dict = cls._deep_merge(config_dict, project_data)

        # Layer 3: Environment variables (highest priority)
        env_overrides = cls._get_env_overrides()
        config_dict = cls._deep_merge(config_dict, env_overrides)

        return cls._build_config(config_dict)

    @classmethod
    def _load_yaml(cls, path: Path) -> dict[str, Any]:
        """Load YAML file safely."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except (yaml.YAMLError, OSError):
            return {}

    @classmethod
    def _get_env_overrides(cls) -> dict[str, Any]:
        """Get configuration overrides from environment variables."""
        overrides: dict[str, Any] = {}

        for key, names in ENV_KEYS.items():
            for name in names:
                if os.environ.get(name):
                    overrides[key] = os.environ[name]
                    break

        if "DROIDACT_VERBOSE" in os.environ:
            overrides["verbose"] = _parse_bool(os.environ["DROIDACT_VERBOSE"])

        # Legacy *_MS names hold plain milliseconds
        if "DROIDACT_DEFAULT_TIMEOUT" in os.environ:
            overrides["timeouts"] = {"action": os.environ["DROIDACT_DEFAULT_TIMEOUT"]}
        elif os.environ.get("DEFAULT_TIMEOUT_MS"):
            overrides["timeouts"] = {"action": f"{os.environ['DEFAULT_TIMEOUT_MS']}ms"}

        if "DROIDACT_POLL_INTERVAL" in os.environ:
            overrides["polling"] = {"poll_interval": os.environ["DROIDACT_POLL_INTERVAL"]}
        elif os.environ.get("STEP_POLL_MS"):
            overrides["polling"] = {"poll_interval": f"{os.environ['STEP_POLL_MS']}ms"}

        return overrides

    @classmethod
    def _deep_merge(cls, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @classmethod
    def _section(cls, config_dict: dict[str, Any], name: str) -> dict[str, Any]:
        section = config_dict.get(name)
        return section if isinstance(section, dict) else {}

    @classmethod
    def _build_config(cls, config_dict: dict[str, Any]) -> DroidactConfig:
        """Build DroidactConfig from dictionary."""
        defaults = DroidactConfig()
        timeouts_dict = cls._section(config_dict, "timeouts")
        polling_dict = cls._section(config_dict, "polling")
        retry_dict = cls._section(config_dict, "retry")

        timeouts = TimeoutConfig(**{
            name: parse_duration(timeouts_dict.get(name), default)
            for name, default in vars(defaults.timeouts).items()
        })
        polling = PollingConfig(**{
            name: parse_duration(polling_dict.get(name), default)
            for name, default in vars(defaults.polling).items()
        })
        retry = RetryConfig(**{
            name: parse_duration(retry_dict.get(name), default)
            for name, default in vars(defaults.retry).items()
        })

        return DroidactConfig(
            device=str(config_dict.get("device") or defaults.device),
            adb_path=str(config_dict.get("adb_path") or defaults.adb_path),
            actions_path=Path(config_dict.get("actions_path") or defaults.actions_path),
            artifacts_dir=Path(config_dict.get("artifacts_dir") or defaults.artifacts_dir),
            verbose=_parse_bool(config_dict.get("verbose"), False),
            timeouts=timeouts,
            polling=polling,
            retry=retry,
        )


def setup_logging(verbose: bool, log_dir: Path | None) -> Path | None:
    """Configure file-based DEBUG logging.

    Args:
        verbose: Enable logging when True
        log_dir: Directory to write debug.log

    Returns:
        Path to log file if created, None otherwise
    """
    if not verbose or log_dir is None:
        return None

    log_file = log_dir / "debug.log"
    log_dir.mkdir(parents=True, exist_ok=True)

    # Create file handler
    handler = logging.FileHandler(log_file, mode="w")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s.%(msecs)03d [%(levelname)-5s] %(name)-22s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    # Configure root droidact logger (clear existing handlers to prevent duplicates)
    root_logger = logging.getLogger("droidact")
    for existing in list(root_logger.handlers):
        existing.close()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    return log_file
