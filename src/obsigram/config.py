"""
Configuration management for ObsiGram.

Uses XDG base directories:
- Config: ~/.config/obsigram/config.toml
- Vault: ~/vault (or OBSIGRAM_VAULT_PATH / VAULT_PATH)
"""

from pathlib import Path
from typing import Any
import os

# XDG defaults
DEFAULT_CONFIG_HOME = Path.home() / ".config"
DEFAULT_VAULT_PATH = Path.home() / "vault"

DEFAULT_AGENT_COMMAND = ["opencode", "acp"]
DEFAULT_AGENT_MODEL = "github-copilot/gpt-5-mini"
DEFAULT_AGENT_TIMEOUT_MS = 240_000


def get_config_dir() -> Path:
    """Get the config directory (XDG_CONFIG_HOME/obsigram)."""
    base = Path(os.environ.get("XDG_CONFIG_HOME", DEFAULT_CONFIG_HOME))
    return base / "obsigram"


def get_config_path() -> Path:
    """Get the path to config.toml."""
    return get_config_dir() / "config.toml"


def load_config() -> dict[str, Any]:
    """
    Load configuration from config.toml.

    Returns default config if file doesn't exist. Sections missing from the
    file fall back to their defaults.
    """
    config = get_default_config()
    config_path = get_config_path()

    if not config_path.exists():
        return config

    # Lazy import tomli only when needed
    import tomli

    with open(config_path, "rb") as f:
        loaded = tomli.load(f)

    for section, values in loaded.items():
        if isinstance(values, dict):
            config.setdefault(section, {}).update(values)
        else:
            config[section] = values
    return config


def get_default_config() -> dict[str, Any]:
    """Return default configuration."""
    return {
        "vault": {
            "path": str(DEFAULT_VAULT_PATH),
        },
        "telegram": {
            "authorized_users": [],
        },
        "agent": {
            "command": list(DEFAULT_AGENT_COMMAND),
            "model": DEFAULT_AGENT_MODEL,
            "timeout_ms": DEFAULT_AGENT_TIMEOUT_MS,
        },
        "classifier": {
            "theme_threshold": 2,  # Marker hits needed before a theme wins
            "max_candidates": 5,
            "scan_depth": 2,
        },
    }


def get_vault_path(config: dict[str, Any] | None = None) -> Path:
    """Get the vault root (env overrides config)."""
    for name in ("OBSIGRAM_VAULT_PATH", "VAULT_PATH"):
        if env_path := os.environ.get(name):
            return Path(env_path).expanduser()
    config = config or load_config()
    return Path(config.get("vault", {}).get("path", DEFAULT_VAULT_PATH)).expanduser()


def get_agent_settings(config: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Get agent bridge settings.

    OPENCODE_MODEL and OPENCODE_TIMEOUT_MS override the config file.
    """
    config = config or load_config()
    agent = config.get("agent", {})

    model = os.environ.get("OPENCODE_MODEL") or agent.get("model", DEFAULT_AGENT_MODEL)
    timeout_ms = agent.get("timeout_ms", DEFAULT_AGENT_TIMEOUT_MS)
    if env_timeout := os.environ.get("OPENCODE_TIMEOUT_MS"):
        timeout_ms = int(env_timeout)

    return {
        "command": list(agent.get("command", DEFAULT_AGENT_COMMAND)),
        "model": model,
        "timeout_ms": int(timeout_ms),
    }
