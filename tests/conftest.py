"""
Pytest configuration for ObsiGram tests.

Provides fixtures shared across all test files: an isolated config
environment and throwaway vaults.
"""

from pathlib import Path

import pytest

from obsigram.buffer import BufferItem


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the developer's real config and env out of every test."""
    config_home = tmp_path / "xdg-config"
    config_home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    for name in (
        "OBSIGRAM_VAULT_PATH",
        "VAULT_PATH",
        "OBSIGRAM_TELEGRAM_TOKEN",
        "TELEGRAM_BOT_TOKEN",
        "OBSIGRAM_TELEGRAM_USERS",
        "OPENCODE_MODEL",
        "OPENCODE_TIMEOUT_MS",
    ):
        monkeypatch.delenv(name, raising=False)
    return config_home


@pytest.fixture
def vault(tmp_path) -> Path:
    """An empty vault root."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def make_vault(vault):
    """Create folders (and optional notes) inside the vault."""

    def _make(*folders: str, notes: dict[str, str] | None = None) -> Path:
        for folder in folders:
            (vault / folder).mkdir(parents=True, exist_ok=True)
        for rel, content in (notes or {}).items():
            path = vault / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return vault

    return _make


@pytest.fixture
def github_items() -> list[BufferItem]:
    return [
        BufferItem(kind="url", content="https://github.com/acme/tool"),
        BufferItem(kind="text", content="investigate tool and release notes"),
    ]
