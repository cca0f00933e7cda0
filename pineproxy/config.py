"""
PineProxy Configuration Management
==================================
Handles config loading, environment overrides, and platform-specific paths.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from platformdirs import user_config_dir, user_data_dir

APP_NAME = "pineproxy"

# ── paths ────────────────────────────────────────────────────────────────────

CONFIG_DIR = Path(user_config_dir(APP_NAME))
DATA_DIR = Path(user_data_dir(APP_NAME))
MODULES_DIR = CONFIG_DIR / "modules"
LOGS_DIR = DATA_DIR / "logs"
CONFIG_FILE = CONFIG_DIR / "config.yaml"


def ensure_dirs() -> None:
    """Create all required directories."""
    for d in (CONFIG_DIR, DATA_DIR, MODULES_DIR, LOGS_DIR):
        d.mkdir(parents=True, exist_ok=True)


# ── default config ───────────────────────────────────────────────────────────

DEFAULT_CONFIG: Dict[str, Any] = {
    "proxy": {
        "address": "0.0.0.0",
        "port": 8080,
    },
    "modules": {
        "directory": "",
    },
    "logging": {
        "verbose": False,
        "logfile": "",
    },
    "ui": {
        "show_banner": True,
    },
}

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class ProxyConfig:
    address: str = "0.0.0.0"
    port: int = 8080


@dataclass
class ModulesConfig:
    directory: str = ""

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser() if self.directory else MODULES_DIR


@dataclass
class LoggingConfig:
    verbose: bool = False
    logfile: str = ""


@dataclass
class UIConfig:
    show_banner: bool = True


@dataclass
class PineProxyConfig:
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    modules: ModulesConfig = field(default_factory=ModulesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    ui: UIConfig = field(default_factory=UIConfig)


def load_config(config_file: Optional[Path] = None) -> PineProxyConfig:
    """Load configuration from disk, env vars, and defaults."""
    if config_file is None:
        ensure_dirs()
        config_file = CONFIG_FILE
    raw: Dict[str, Any] = {}

    if config_file.exists():
        with open(config_file) as f:
            raw = yaml.safe_load(f) or {}

    merged = _deep_merge(DEFAULT_CONFIG, raw)

    # Env-var overrides
    if os.environ.get("PINEPROXY_ADDRESS"):
        merged["proxy"]["address"] = os.environ["PINEPROXY_ADDRESS"]
    if os.environ.get("PINEPROXY_PORT"):
        merged["proxy"]["port"] = int(os.environ["PINEPROXY_PORT"])
    if os.environ.get("PINEPROXY_MODULES"):
        merged["modules"]["directory"] = os.environ["PINEPROXY_MODULES"]
    if os.environ.get("PINEPROXY_VERBOSE"):
        merged["logging"]["verbose"] = os.environ["PINEPROXY_VERBOSE"].lower() in _TRUE_VALUES
    if os.environ.get("PINEPROXY_LOGFILE"):
        merged["logging"]["logfile"] = os.environ["PINEPROXY_LOGFILE"]

    return PineProxyConfig(
        proxy=ProxyConfig(**merged.get("proxy", {})),
        modules=ModulesConfig(**merged.get("modules", {})),
        logging=LoggingConfig(**merged.get("logging", {})),
        ui=UIConfig(**merged.get("ui", {})),
    )


def save_config(cfg: PineProxyConfig, config_file: Optional[Path] = None) -> Path:
    """Persist current configuration to disk."""
    if config_file is None:
        ensure_dirs()
        config_file = CONFIG_FILE
    data = {
        "proxy": {
            "address": cfg.proxy.address,
            "port": cfg.proxy.port,
        },
        "modules": {
            "directory": cfg.modules.directory,
        },
        "logging": {
            "verbose": cfg.logging.verbose,
            "logfile": cfg.logging.logfile,
        },
        "ui": {
            "show_banner": cfg.ui.show_banner,
        },
    }
    with open(config_file, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    return config_file


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    result = copy.deepcopy(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result
