"""
ConfigManager: dynamic, dot-notation game configuration access for Arcadia.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable reward configuration
  (backoff tables, milestone lists, opponent ratings, worker batch sizes).
- Back configuration with built-in defaults deep-merged with YAML files from
  the project's `config/` directory.
- Allow in-process overrides for tests and operator tooling.

Key Design Decisions
--------------------
- Built-in defaults are the last resort; YAML overrides them; `set()` overrides
  both until `reset()`.
- Reads never raise. Unknown keys return the caller's default.
- Singleton via class methods, so services can be handed the class itself or
  any object exposing `get(key, default)`.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "queue": {
        "backoff_minutes": [1, 5, 15, 60, 1440],
        "max_attempts": 5,
        "retention_days": 7,
    },
    "workers": {
        "poll_interval_seconds": 5,
        "batch_size": 5,
    },
    "achievements": {
        "recent_unlocks_limit": 5,
    },
    "rating": {
        "starting_rating": 1200,
        "opponents": {"easy": 800, "medium": 1200, "hard": 1600, "expert": 2000},
        "default_difficulty": "medium",
    },
    "session": {
        "transaction_timeout_seconds": 10,
        "max_conflict_retries": 3,
        "enqueue_leaderboard_refresh": False,
        "inline_achievements": True,
    },
    "streaks": {
        "milestones": [3, 7, 14, 30, 50, 100],
    },
    "leaderboard": {
        "default_limit": 100,
    },
}


class ConfigManager:
    """
    Dynamic reward configuration with YAML-backed defaults.

    Examples
    --------
    >>> ConfigManager.get("queue.backoff_minutes")
    [1, 5, 15, 60, 1440]
    >>> ConfigManager.set("workers.batch_size", 10)
    >>> ConfigManager.get("workers.batch_size")
    10
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _initialized: bool = False

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> int:
        """Deep-merge every YAML file under `config_dir` into `_defaults`."""
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return 0

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                loaded_count += 1
                logger.debug("Loaded YAML config", extra={"file": str(yaml_file)})
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": str(yaml_file), "root_type": type(data).__name__},
                )

        return loaded_count

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Build defaults from built-ins plus YAML files.

        Safe to call repeatedly; each call rebuilds from scratch and keeps
        runtime overrides.
        """
        cls._defaults = copy.deepcopy(_BUILTIN_DEFAULTS)
        loaded = cls._load_yaml_configs(config_dir or Config.GAME_CONFIG_DIR)
        cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={
                "yaml_file_count": loaded,
                "top_level_keys": len(cls._defaults),
                "override_count": len(cls._overrides),
            },
        )

    # =========================================================================
    # READS
    # =========================================================================

    @staticmethod
    def _resolve(source: Dict[str, Any], key: str) -> Any:
        value: Any = source
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Overrides win over YAML, YAML wins over built-ins.
        """
        if not cls._initialized:
            cls.initialize()

        if key in cls._overrides:
            return cls._overrides[key]

        value = cls._resolve(cls._defaults, key)
        return default if value is None else value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        if not cls._initialized:
            cls.initialize()
        return sorted(cls._defaults.keys())

    # =========================================================================
    # WRITES
    # =========================================================================

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """Override a value in-process until `reset()`."""
        cls._overrides[key] = value
        logger.info("Config override applied", extra={"config_key": key})

    @classmethod
    def reset(cls) -> None:
        """Drop all runtime overrides."""
        cls._overrides.clear()
