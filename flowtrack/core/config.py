"""
Configuration management for flowtrack.

Tracker parameters live in a single dataclass that can be loaded from
JSON files and overridden from environment variables. A config is static
for the lifetime of the tracker built from it.
"""

import json
import os
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class TrackerConfig:
    """
    Parameters for detection, estimation and re-seeding.

    Attributes:
        max_features: Maximum points returned by one detection
        quality_level: Minimum corner response as a fraction of the best one
        min_distance: Minimum distance between detected points in pixels
        reseed_cadence: Frames between forced re-detection
        block_size: Neighborhood size for corner response
        win_size: Lucas-Kanade search window (square, pixels)
        max_level: Highest pyramid level (0 = no pyramid)
        max_iterations: Iteration limit of the LK solver
        epsilon: Convergence threshold of the LK solver
        min_eig_threshold: Minimum eigenvalue below which a patch is rejected
        fb_threshold: Forward-backward error limit in pixels (None = off)
    """
    max_features: int = 300
    quality_level: float = 0.005
    min_distance: float = 3.0
    reseed_cadence: int = 300
    block_size: int = 3
    win_size: int = 21
    max_level: int = 3
    max_iterations: int = 30
    epsilon: float = 0.01
    min_eig_threshold: float = 1e-4
    fb_threshold: float | None = None

    def validate(self) -> "TrackerConfig":
        """
        Check parameter ranges.

        Returns:
            self, so calls can be chained

        Raises:
            ValueError: If any parameter is out of range
        """
        if self.max_features < 1:
            raise ValueError(f"max_features must be >= 1, got {self.max_features}")
        if not 0 < self.quality_level <= 1:
            raise ValueError(
                f"quality_level must be in (0, 1], got {self.quality_level}"
            )
        if self.min_distance < 0:
            raise ValueError(f"min_distance must be >= 0, got {self.min_distance}")
        if self.reseed_cadence < 1:
            raise ValueError(
                f"reseed_cadence must be >= 1, got {self.reseed_cadence}"
            )
        if self.block_size < 1:
            raise ValueError(f"block_size must be >= 1, got {self.block_size}")
        if self.win_size < 3:
            raise ValueError(f"win_size must be >= 3, got {self.win_size}")
        if self.max_level < 0:
            raise ValueError(f"max_level must be >= 0, got {self.max_level}")
        if self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be > 0, got {self.epsilon}")
        if self.fb_threshold is not None and self.fb_threshold <= 0:
            raise ValueError(f"fb_threshold must be > 0, got {self.fb_threshold}")
        return self

    @classmethod
    def load(cls, path: str | Path) -> "TrackerConfig":
        """Load configuration from a JSON file."""
        return load_config(path)

    def save(self, path: str | Path) -> None:
        """Save configuration to a JSON file."""
        save_config(self, path)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackerConfig":
        """
        Build a config from a dictionary, using defaults for missing keys.

        Raises:
            ValueError: If the dictionary contains unknown keys
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**data)

    def with_overrides(self, overrides: dict[str, Any]) -> "TrackerConfig":
        """
        Return a copy with some fields replaced.

        String values (from the command line or environment) are coerced
        to the type of the field's default. Unknown keys are ignored so
        unrelated environment variables do not break loading.
        """
        defaults = {f.name: f.default for f in fields(self)}
        changes = {}
        for key, value in overrides.items():
            if key not in defaults or value is None:
                continue
            changes[key] = _coerce(key, value, defaults[key])
        return replace(self, **changes)


def _coerce(key: str, value: Any, default: Any) -> Any:
    """Coerce a raw override value to the type of a field default."""
    if not isinstance(value, str):
        return value

    if default is None:
        # Only fb_threshold is optional; it is a float when set
        if value.strip().lower() in ("", "none", "off"):
            return None
        return float(value)

    try:
        if isinstance(default, int):
            return int(value)
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid value for {key}: {value!r}") from None


def load_config(path: str | Path) -> TrackerConfig:
    """
    Load configuration from a JSON file.

    Args:
        path: Path to the JSON configuration file

    Returns:
        Parsed and validated TrackerConfig

    Raises:
        FileNotFoundError: If the config file doesn't exist
        json.JSONDecodeError: If the JSON is invalid
        ValueError: If keys are unknown or values out of range
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    return TrackerConfig.from_dict(data.get("tracker", data)).validate()


def save_config(config: TrackerConfig, path: str | Path) -> None:
    """
    Save configuration to a JSON file.

    Args:
        config: Configuration object to save
        path: Output path for the JSON file
    """
    path = Path(path)
    with open(path, "w") as f:
        json.dump({"tracker": config.to_dict()}, f, indent=2)


def create_example_config(path: str | Path = "flowtrack_config.json") -> TrackerConfig:
    """
    Write a configuration file holding the default parameters.

    Args:
        path: Output path for the example config

    Returns:
        The written TrackerConfig
    """
    config = TrackerConfig()
    config.save(path)
    print(f"Created example configuration: {path}")
    return config


def get_env_config(prefix: str = "FLOWTRACK_") -> dict[str, Any]:
    """
    Get configuration from environment variables.

    All environment variables starting with the prefix will be included.
    Variable names are converted to lowercase with the prefix removed.

    Example:
        FLOWTRACK_MAX_FEATURES=100 -> {"max_features": "100"}
    """
    config = {}
    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            config[config_key] = value
    return config
