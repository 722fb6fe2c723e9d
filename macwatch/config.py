#!/usr/bin/env python3
"""
MACWATCH Configuration
======================

Default configuration and YAML loading.
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


DEFAULT_CONFIG: Dict[str, Any] = {
    "general": {
        "app_name": "MACWATCH",
        "version": "1.0.0",
        "debug": False,
        "log_level": "INFO",
    },
    "logging": {
        "file": "data/logs/macwatch.log",
        "max_size": "10 MB",
        "backup_count": 5,
    },
    "capture": {
        "interfaces": ["eth0"],
        "bpf": "",
        "promiscuous": False,
        "ndp": False,
        "queue_size": 0,
    },
    "detection": {
        "ipv6_mismatch": False,
    },
    "alerting": {
        "command": "",
        "max_concurrent": 8,
        "max_pending": 1000,
        "timeout": 30,
    },
    "database": {
        "path": "./macs.db",
    },
    "persistence": {
        "queue_size": 10000,
    },
    "api": {
        "enabled": True,
        "host": "0.0.0.0",
        "port": 2114,
    },
}


def merge_config(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge ``override`` into a copy of ``base``.

    Nested dictionaries are merged key by key; any other value replaces the
    base value.
    """
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Union[str, Path, None] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file over the defaults.

    Args:
        config_path: YAML file; None returns the defaults

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the file does not exist
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    with open(config_file, "r") as f:
        loaded = yaml.safe_load(f) or {}

    return merge_config(DEFAULT_CONFIG, loaded)


def parse_interfaces(value: Union[str, list, None]) -> list:
    """Split a comma separated interface list, dropping blanks."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [iface.strip() for iface in value if iface and iface.strip()]
