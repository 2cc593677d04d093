# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
numpkg Configuration - Single source of truth.
YAML for settings, a handful of env vars for per-shell overrides.

- ALL configuration in plain text (YAML)
- NO hidden state - everything inspectable via `cat`
"""

import os
import platform
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Tuple

from numpkg.core.errors import ConfigurationError


DEFAULT_CONFIG_PATH = "~/.config/numpkg/numpkg.yaml"


def _home(*parts: str) -> str:
    return str(Path.home().joinpath(*parts))


def _default_arch() -> str:
    return f"{platform.machine() or 'unknown'}-{platform.system().lower() or 'unknown'}"


def _as_version(value) -> Optional[str]:
    # YAML reads 9.2 as a float
    return None if value is None else str(value)


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Config:
    """
    Immutable package manager configuration.
    All values from YAML. No hidden state.
    """

    # -- Registries --
    local_list: str = field(default_factory=lambda: _home(".numpkg", "packages.json"))
    global_list: str = "/usr/local/share/numpkg/packages.json"

    # -- Install prefixes --
    prefix: str = field(default_factory=lambda: _home(".local", "share", "numpkg", "packages"))
    arch_prefix: str = field(default_factory=lambda: _home(".local", "share", "numpkg", "packages"))
    global_prefix: str = "/usr/local/share/numpkg/packages"
    global_arch_prefix: str = "/usr/local/lib/numpkg/packages"
    arch: str = field(default_factory=_default_arch)

    # -- Runtime the packages extend --
    runtime_name: str = "octave"
    runtime_version: Optional[str] = None

    # -- Forge (remote index) --
    forge_url: str = "https://packages.octave.org"
    http_timeout: float = 30.0

    # -- Build / test --
    mkoctfile: str = "mkoctfile"
    make_command: str = "make"
    test_command: List[str] = field(default_factory=list)
    staging_root: Optional[str] = None

    # -- Logging --
    transactions_log: str = field(default_factory=lambda: _home(".numpkg", "transactions.jsonl"))
    log_level: str = "INFO"
    log_format: str = "text"

    def local_list_path(self) -> Path:
        return Path(self.local_list).expanduser()

    def global_list_path(self) -> Path:
        return Path(self.global_list).expanduser()

    def transactions_log_path(self) -> Path:
        return Path(self.transactions_log).expanduser()

    def prefixes(self, global_install: bool) -> Tuple[Path, Path]:
        """Return (prefix, arch_prefix) for the chosen scope."""
        if global_install:
            return Path(self.global_prefix).expanduser(), Path(self.global_arch_prefix).expanduser()
        return Path(self.prefix).expanduser(), Path(self.arch_prefix).expanduser()


# =============================================================================
# LOADER
# =============================================================================

def load_config(path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML.
    Returns defaults if file doesn't exist.
    """
    config_path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    y = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                y = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}", str(config_path)) from e
        if not isinstance(y, dict):
            raise ConfigurationError(f"Config root must be a mapping: {config_path}", str(config_path))

    defaults = Config()

    # Helper to safely navigate nested dicts
    def get(d: dict, *keys, default=None):
        for k in keys:
            if not isinstance(d, dict):
                return default
            d = d.get(k, {})
        return d if d != {} else default

    test_command = get(y, "test", "command") or defaults.test_command
    if isinstance(test_command, str):
        test_command = test_command.split()

    return Config(
        # Registries
        local_list=os.getenv("NUMPKG_LOCAL_LIST") or get(y, "registries", "local") or defaults.local_list,
        global_list=os.getenv("NUMPKG_GLOBAL_LIST") or get(y, "registries", "global") or defaults.global_list,

        # Prefixes
        prefix=os.getenv("NUMPKG_PREFIX") or get(y, "prefix", "local") or defaults.prefix,
        arch_prefix=get(y, "prefix", "local_arch") or os.getenv("NUMPKG_PREFIX") or defaults.arch_prefix,
        global_prefix=os.getenv("NUMPKG_GLOBAL_PREFIX") or get(y, "prefix", "global") or defaults.global_prefix,
        global_arch_prefix=get(y, "prefix", "global_arch") or defaults.global_arch_prefix,
        arch=get(y, "arch") or defaults.arch,

        # Runtime
        runtime_name=get(y, "runtime", "name") or defaults.runtime_name,
        runtime_version=_as_version(get(y, "runtime", "version")),

        # Forge
        forge_url=(get(y, "forge", "url") or defaults.forge_url).rstrip("/"),
        http_timeout=float(get(y, "forge", "timeout") or defaults.http_timeout),

        # Build / test
        mkoctfile=get(y, "build", "mkoctfile") or defaults.mkoctfile,
        make_command=get(y, "build", "make") or defaults.make_command,
        test_command=list(test_command),
        staging_root=get(y, "build", "staging_root"),

        # Logging
        transactions_log=get(y, "logging", "transactions") or defaults.transactions_log,
        log_level=os.getenv("LOG_LEVEL") or get(y, "logging", "level") or defaults.log_level,
        log_format=get(y, "logging", "format") or defaults.log_format,
    )


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = load_config(os.getenv("NUMPKG_CONFIG_PATH"))
    return _config


def reload_config() -> Config:
    """Force reload configuration."""
    global _config
    _config = None
    return get_config()
