"""
Configuration loading
=====================
Settings live in config/smartscan.yaml (override the location with the
SMARTSCAN_CONFIG environment variable). A missing file is not an error:
the built-in defaults below are used and a warning is logged. Values from
the file are deep-merged over the defaults, so a config file only needs
the keys it changes.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from smartscan.exceptions import ConfigError


CONFIG_ENV_VAR = "SMARTSCAN_CONFIG"
CATEGORIES_ENV_VAR = "SMARTSCAN_CATEGORIES"

# <repo>/config is two levels above src/smartscan/
CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"


DEFAULT_CONFIG: Dict[str, Any] = {
    "detection": {
        "working_size": 800,          # longest side of the downsampled search image
        "confidence_threshold": 0.3,  # first strategy above this wins
        "strategies": ["edge", "adaptive", "bright"],
        "min_area_percent": 10.0,
        "max_area_percent": 98.0,
        "min_aspect_ratio": 0.4,
        "max_aspect_ratio": 2.5,
        "epsilon_factor": 0.02,
        "confidence_scale": 2.5,
        "bright_confidence_factor": 0.9,
        "default_margin": 0.1,
    },
    "perspective": {
        "min_size": 100,
    },
    "enhancement": {
        "contrast": 1.2,
        "brightness": 10,
        "auto_levels": True,
        "denoise": True,
        "sharpen": True,
        "black_white": False,
    },
    "classification": {
        "ml_threshold": 0.6,
        "ml_max_chars": 1000,
        "other_base_score": 0.1,
        "strong_weight": 3,
        "medium_weight": 1,
        "amount_bonus": 1,
        "extracted_keyword_weight": 2,
        "total_multiplier": 0.5,
        "confidence_floor": 5,
        "empty_confidence": 0.1,
    },
    "ml": {
        "enabled": False,
        "model": "MoritzLaurer/mDeBERTa-v3-base-mnli-xnli",
        "init_timeout": 30,
        "hypothesis_template": "Dieses Dokument ist ein {}.",
    },
    "ocr": {
        "enabled": True,
        "lang": "german",
        "use_angle_cls": True,
        "use_gpu": False,
        "init_timeout": 30,
    },
    "export": {
        "base_folder": "/SmartScan",
        "extension": ".pdf",
    },
    "logging": {
        "level": "INFO",
        "file": "logs/smartscan.log",
    },
}


def _deep_merge(base: Dict, override: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve(path: Optional[Union[str, Path]], env_var: str, filename: str) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.getenv(env_var)
    if env_path:
        return Path(env_path)
    return CONFIG_DIR / filename


def read_yaml(path: Path) -> Dict:
    """Read a YAML mapping; raises ConfigError on malformed content."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load settings merged over DEFAULT_CONFIG.

    Args:
        config_path: Explicit YAML path. Falls back to $SMARTSCAN_CONFIG,
                     then config/smartscan.yaml.

    Returns:
        Complete configuration dict (a fresh copy; safe to mutate)
    """
    path = _resolve(config_path, CONFIG_ENV_VAR, "smartscan.yaml")

    if not path.exists():
        logger.warning(f"Config file not found: {path}, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    config = _deep_merge(DEFAULT_CONFIG, read_yaml(path))
    logger.debug(f"[Config] Loaded {path}")
    return config


def categories_path(path: Optional[Union[str, Path]] = None) -> Path:
    return _resolve(path, CATEGORIES_ENV_VAR, "categories.yaml")
